"""
streamswap.journal — journaling writes, checkpoints, revert/commit.

A deterministic, in-memory write journal over a flat byte key/value mapping.
Nested checkpoints are a stack of overlays: writes go to the top overlay,
reads consult overlays from top → base. `commit()` merges the top overlay into
the next layer (or the base mapping when it is the last one); `revert()`
discards it.

Every public contract operation runs inside one checkpoint, so a failure at
any point (ledger overflow, lifecycle violation, custody refusal) leaves the
base mapping exactly as it was. Stream records, position records and custody
balances all live in the same journal, which is what makes an operation
atomic across accounting and asset movement.

Intended usage
--------------
    j = Journal()
    j.begin()
    j.set(b"stream/1", payload)
    j.delete(b"position/1/alice")
    j.commit()          # or j.revert()

Listeners registered with `on_commit` / `on_revert` fire when the outermost
checkpoint closes; the event sink uses them to flush or drop buffered events.
"""

from __future__ import annotations

from typing import (Callable, Dict, Iterator, List, MutableMapping, Optional,
                    Tuple)

# Deletion marker inside an overlay (distinct from "not staged here").
_DELETED = None


def _b(x: bytes | bytearray | memoryview | str, *, name: str) -> bytes:
    if isinstance(x, str):
        return x.encode("utf-8")
    if not isinstance(x, (bytes, bytearray, memoryview)):
        raise TypeError(f"{name} must be bytes-like or str")
    return bytes(x)


class Journal:
    """
    Copy-on-write byte journal with nested checkpoints.

    Parameters
    ----------
    base : MutableMapping[bytes, bytes], optional
        The persisted mapping. A fresh dict is used when omitted.

    API highlights
    --------------
    - begin() / commit() / revert() / depth()
    - get(), set(), delete(), has()
    - items(prefix) for ordered prefix scans with overlay precedence
    """

    def __init__(self, base: Optional[MutableMapping[bytes, bytes]] = None) -> None:
        self._base: MutableMapping[bytes, bytes] = {} if base is None else base
        self._layers: List[Dict[bytes, Optional[bytes]]] = []
        self._on_commit: List[Callable[[], None]] = []
        self._on_revert: List[Callable[[], None]] = []

    # --------------------------------------------------------------------- #
    # Checkpointing
    # --------------------------------------------------------------------- #

    def depth(self) -> int:
        """Number of open checkpoints (0 when idle)."""
        return len(self._layers)

    def begin(self) -> int:
        """Open a checkpoint. Returns the new depth."""
        self._layers.append({})
        return len(self._layers)

    def commit(self) -> None:
        """Merge the top overlay into its parent, or into the base if it is the last one."""
        if not self._layers:
            raise RuntimeError("commit without an open checkpoint")
        top = self._layers.pop()
        if self._layers:
            self._layers[-1].update(top)
            return
        for k, v in top.items():
            if v is _DELETED:
                self._base.pop(k, None)
            else:
                self._base[k] = v
        for fn in list(self._on_commit):
            fn()

    def revert(self) -> None:
        """Discard the top overlay."""
        if not self._layers:
            raise RuntimeError("revert without an open checkpoint")
        self._layers.pop()
        if not self._layers:
            for fn in list(self._on_revert):
                fn()

    def on_commit(self, fn: Callable[[], None]) -> None:
        self._on_commit.append(fn)

    def on_revert(self, fn: Callable[[], None]) -> None:
        self._on_revert.append(fn)

    # --------------------------------------------------------------------- #
    # Reads & writes
    # --------------------------------------------------------------------- #

    def get(self, key: bytes | str, default: Optional[bytes] = None) -> Optional[bytes]:
        k = _b(key, name="key")
        for layer in reversed(self._layers):
            if k in layer:
                v = layer[k]
                return default if v is _DELETED else v
        return self._base.get(k, default)

    def has(self, key: bytes | str) -> bool:
        return self.get(key) is not None

    def set(self, key: bytes | str, value: bytes | bytearray | memoryview) -> None:
        """Stage a write. Writing outside a checkpoint goes straight to the base."""
        k = _b(key, name="key")
        v = _b(value, name="value")
        if not v:
            raise ValueError("empty value; use delete()")
        if self._layers:
            self._layers[-1][k] = v
        else:
            self._base[k] = v

    def delete(self, key: bytes | str) -> None:
        k = _b(key, name="key")
        if self._layers:
            self._layers[-1][k] = _DELETED
        else:
            self._base.pop(k, None)

    def items(self, prefix: bytes | str = b"") -> Iterator[Tuple[bytes, bytes]]:
        """
        Visible (key, value) pairs under `prefix`, sorted by key, with overlay
        precedence and deletions respected.
        """
        p = _b(prefix, name="prefix")
        visible: Dict[bytes, bytes] = {k: v for k, v in self._base.items() if k.startswith(p)}
        for layer in self._layers:
            for k, v in layer.items():
                if not k.startswith(p):
                    continue
                if v is _DELETED:
                    visible.pop(k, None)
                else:
                    visible[k] = v
        for k in sorted(visible):
            yield k, visible[k]

    # --------------------------------------------------------------------- #
    # Introspection
    # --------------------------------------------------------------------- #

    def pending_keys(self) -> int:
        """Total number of staged entries across open checkpoints."""
        return sum(len(layer) for layer in self._layers)

    def snapshot(self) -> Dict[bytes, bytes]:
        """A copy of the visible state (base plus staged changes)."""
        return dict(self.items())


__all__ = ["Journal"]
