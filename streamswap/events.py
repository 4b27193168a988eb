from __future__ import annotations

import logging
import re
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Deque, Dict, List, Mapping, Optional

from .errors import StreamSwapError
from .journal import Journal

log = logging.getLogger(__name__)

MAX_EVENT_NAME_LEN = 64
MAX_ATTRS = 32
# committed events kept until drained; older ones are dropped first
MAX_COMMITTED = 10_000

# Names and attribute keys: letters/underscore, then letters/digits/underscore.
_IDENT_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


@dataclass(frozen=True)
class Event:
    """A committed contract event, e.g. Event("subscribe", {"stream_id": 1, ...})."""

    name: str
    attrs: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "attrs": dict(self.attrs)}


class EventSink:
    """
    Buffers events emitted during an operation and publishes them only when
    the operation's journal checkpoint commits. A reverted operation leaves no
    events behind.

    Committed events accumulate until the host calls `drain()`. At most
    `max_committed` are held; past that the oldest are dropped and counted in
    `dropped`.
    """

    def __init__(self, journal: Optional[Journal] = None, *, max_committed: int = MAX_COMMITTED) -> None:
        if max_committed < 1:
            raise ValueError("max_committed must be >= 1")
        self._pending: List[Event] = []
        self.max_committed = max_committed
        self._committed: Deque[Event] = deque(maxlen=max_committed)
        self.dropped = 0
        if journal is not None:
            journal.on_commit(self.flush)
            journal.on_revert(self.discard)

    # --- validation ---------------------------------------------------------

    @staticmethod
    def _check_ident(what: str, s: Any) -> str:
        if not isinstance(s, str) or not s:
            raise StreamSwapError(f"event {what} must be a non-empty str")
        if len(s) > MAX_EVENT_NAME_LEN or not _IDENT_RE.match(s):
            raise StreamSwapError(f"event {what} is not a valid identifier", details={what: s})
        return s

    @staticmethod
    def _check_value(key: str, v: Any) -> Any:
        if v is None or isinstance(v, (str, bool, int)):
            return v
        raise StreamSwapError(
            "unsupported event attribute type",
            details={"key": key, "py_type": type(v).__name__},
        )

    # --- core ---------------------------------------------------------------

    def emit(self, name: str, attrs: Optional[Mapping[str, Any]] = None, **kw: Any) -> Event:
        merged = dict(attrs or {})
        merged.update(kw)
        if len(merged) > MAX_ATTRS:
            raise StreamSwapError("too many event attributes", details={"count": len(merged)})
        ev = Event(
            name=self._check_ident("name", name),
            attrs={self._check_ident("key", k): self._check_value(k, v) for k, v in merged.items()},
        )
        self._pending.append(ev)
        return ev

    def flush(self) -> None:
        if self._pending:
            overflow = len(self._committed) + len(self._pending) - self.max_committed
            if overflow > 0:
                self.dropped += overflow
                log.warning("event buffer full, dropping %d oldest events", overflow)
            self._committed.extend(self._pending)
            for ev in self._pending:
                log.debug("event %s %s", ev.name, ev.attrs)
            self._pending = []

    def discard(self) -> None:
        self._pending = []

    # --- access -------------------------------------------------------------

    @property
    def pending(self) -> List[Event]:
        return list(self._pending)

    @property
    def events(self) -> List[Event]:
        return list(self._committed)

    def drain(self) -> List[Event]:
        """Return and clear committed events."""
        out = list(self._committed)
        self._committed.clear()
        return out


__all__ = ["Event", "EventSink", "MAX_COMMITTED"]
