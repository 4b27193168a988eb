"""
streamswap.query — read-only projections of stream and position state.

Every projection loads records, syncs *copies* of them to the requested time
with the same engine code the transactions use, and returns the copies.
Nothing is written back: querying never changes stored state, and two
queries at the same `now` always agree with what a transaction at that `now`
would observe.
"""

from __future__ import annotations

from typing import List, Optional

from . import engine, lifecycle
from .config import ProtocolConfig
from .store import Store
from .types import Position, PositionView, Status, Stream, StreamView


def query_config(store: Store) -> ProtocolConfig:
    return store.load_config()


def synced_stream(stream: Stream, now: int) -> Stream:
    """A copy of `stream` advanced to `now` (cancelled streams are frozen)."""
    s = stream.copy()
    if s.status is not Status.CANCELLED:
        engine.sync_stream(s, now)
    return s


def query_stream(store: Store, stream_id: int, now: int) -> StreamView:
    stream = store.load_stream(stream_id)
    status = lifecycle.status_of(stream, now)
    return StreamView(
        stream=synced_stream(stream, now),
        as_of=now,
        status=status,
        threshold_reached=lifecycle.threshold_reached(stream),
    )


def query_threshold(store: Store, stream_id: int) -> Optional[int]:
    """The minimum in_supply the stream must hold at its end, or None when unset."""
    return store.load_stream(stream_id).threshold


def query_position(store: Store, stream_id: int, owner: str, now: int) -> PositionView:
    """
    The position as a sync at `now` would leave it. `pending_earned` is what a
    withdraw at `now` would pay (0 on a cancelled stream, where it is forfeited).
    """
    stream = store.load_stream(stream_id)
    position = store.load_position(stream_id, owner).copy()
    status = lifecycle.status_of(stream, now)

    if status is Status.CANCELLED:
        return PositionView(position=position, as_of=now, pending_earned=0, status=status)

    s = stream.copy()
    engine.sync_position(s, position, now)
    return PositionView(position=position, as_of=now, pending_earned=position.earned_unclaimed, status=status)


def list_streams(store: Store, *, start_after: Optional[int] = None, limit: Optional[int] = None) -> List[Stream]:
    """Stored streams in id order, at most `limit` (default 10, max 30)."""
    return store.list_streams(start_after, limit)


def list_positions(
    store: Store,
    stream_id: int,
    *,
    start_after: Optional[str] = None,
    limit: Optional[int] = None,
) -> List[Position]:
    """Stored positions of one stream in owner order, at most `limit` (default 10, max 30)."""
    store.load_stream(stream_id)
    return store.list_positions(stream_id, start_after, limit)


__all__ = [
    "query_config",
    "synced_stream",
    "query_stream",
    "query_threshold",
    "query_position",
    "list_streams",
    "list_positions",
]
