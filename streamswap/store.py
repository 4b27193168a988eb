"""
streamswap.store — storage maps for streams, positions and protocol config.

Layout over the journaled byte map:

    config                                   canonical CBOR of ProtocolConfig
    stream_id_counter                        canonical CBOR uint (last id issued)
    stream/<id:020d>                         canonical CBOR of Stream
    position/<id:020d>/<owner>               canonical CBOR of Position

Stream ids are zero-padded so the key order of a prefix scan is the numeric
order of ids, which is what the paginated listings rely on.

Records are encoded with `cbor2` in canonical mode (map keys sorted), so the
same record always produces the same bytes.
"""

from __future__ import annotations

from typing import Any, Iterator, List, Optional, Tuple

import cbor2

from .config import ProtocolConfig
from .errors import PositionNotFound, StreamNotFound
from .journal import Journal
from .types import Position, Stream

DEFAULT_LIMIT = 10
MAX_LIMIT = 30

CONFIG_KEY = b"config"
COUNTER_KEY = b"stream_id_counter"
STREAM_PREFIX = b"stream/"
POSITION_PREFIX = b"position/"


# ------------------------------ encoding ------------------------------------


def dumps(obj: Any) -> bytes:
    return cbor2.dumps(obj, canonical=True)


def loads(data: bytes) -> Any:
    return cbor2.loads(data)


def stream_key(stream_id: int) -> bytes:
    return STREAM_PREFIX + f"{int(stream_id):020d}".encode()


def position_prefix(stream_id: int) -> bytes:
    return POSITION_PREFIX + f"{int(stream_id):020d}/".encode()


def position_key(stream_id: int, owner: str) -> bytes:
    return position_prefix(stream_id) + owner.encode("utf-8")


def clamp_limit(limit: Optional[int]) -> int:
    if limit is None:
        return DEFAULT_LIMIT
    return max(0, min(int(limit), MAX_LIMIT))


# ------------------------------ store ---------------------------------------


class Store:
    """Typed access to the contract's records through a Journal."""

    def __init__(self, journal: Journal) -> None:
        self.journal = journal

    # config

    def load_config(self) -> ProtocolConfig:
        raw = self.journal.get(CONFIG_KEY)
        if raw is None:
            raise LookupError("contract config not initialized")
        return ProtocolConfig.from_dict(loads(raw))

    def save_config(self, cfg: ProtocolConfig) -> None:
        self.journal.set(CONFIG_KEY, dumps(cfg.to_dict()))

    # ids

    def next_stream_id(self) -> int:
        raw = self.journal.get(COUNTER_KEY)
        nxt = (loads(raw) if raw is not None else 0) + 1
        self.journal.set(COUNTER_KEY, dumps(nxt))
        return nxt

    # streams

    def find_stream(self, stream_id: int) -> Optional[Stream]:
        raw = self.journal.get(stream_key(stream_id))
        return None if raw is None else Stream.from_dict(loads(raw))

    def load_stream(self, stream_id: int) -> Stream:
        stream = self.find_stream(stream_id)
        if stream is None:
            raise StreamNotFound(stream_id)
        return stream

    def save_stream(self, stream: Stream) -> None:
        self.journal.set(stream_key(stream.id), dumps(stream.to_dict()))

    def iter_streams(self, start_after: Optional[int] = None) -> Iterator[Stream]:
        floor = stream_key(start_after) if start_after is not None else None
        for k, v in self.journal.items(STREAM_PREFIX):
            if floor is not None and k <= floor:
                continue
            yield Stream.from_dict(loads(v))

    def list_streams(self, start_after: Optional[int] = None, limit: Optional[int] = None) -> List[Stream]:
        n = clamp_limit(limit)
        out: List[Stream] = []
        for s in self.iter_streams(start_after):
            if len(out) >= n:
                break
            out.append(s)
        return out

    # positions

    def find_position(self, stream_id: int, owner: str) -> Optional[Position]:
        raw = self.journal.get(position_key(stream_id, owner))
        return None if raw is None else Position.from_dict(loads(raw))

    def load_position(self, stream_id: int, owner: str) -> Position:
        pos = self.find_position(stream_id, owner)
        if pos is None:
            raise PositionNotFound(stream_id, owner)
        return pos

    def save_position(self, position: Position) -> None:
        self.journal.set(position_key(position.stream_id, position.owner), dumps(position.to_dict()))

    def delete_position(self, stream_id: int, owner: str) -> None:
        self.journal.delete(position_key(stream_id, owner))

    def iter_positions(self, stream_id: int, start_after: Optional[str] = None) -> Iterator[Tuple[str, Position]]:
        prefix = position_prefix(stream_id)
        floor = position_key(stream_id, start_after) if start_after is not None else None
        for k, v in self.journal.items(prefix):
            if floor is not None and k <= floor:
                continue
            pos = Position.from_dict(loads(v))
            yield pos.owner, pos

    def list_positions(
        self, stream_id: int, start_after: Optional[str] = None, limit: Optional[int] = None
    ) -> List[Position]:
        n = clamp_limit(limit)
        out: List[Position] = []
        for _, pos in self.iter_positions(stream_id, start_after):
            if len(out) >= n:
                break
            out.append(pos)
        return out


__all__ = [
    "DEFAULT_LIMIT",
    "MAX_LIMIT",
    "dumps",
    "loads",
    "stream_key",
    "position_key",
    "clamp_limit",
    "Store",
]
