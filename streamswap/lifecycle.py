"""
streamswap.lifecycle — phase gate for stream operations.

A stream's *stored* status is one of Pending, Active, Finalized, Cancelled.
Its *effective* status at time `now` also accounts for the clock:

    Finalized / Cancelled   if stored so (terminal, the clock no longer matters)
    Ended                   if now >= end_time
    Active                  if now >= start_time
    Pending                 otherwise

`Pending -> Active` and `Active -> Ended` therefore happen automatically the
first time any call observes the new time. Everything here is a pure function
of (status, now, start_time, end_time); nothing mutates funds or records.
"""

from __future__ import annotations

from typing import Dict, FrozenSet, Optional, Type

from .errors import (AlreadyFinalized, LifecycleError, StreamCancelled,
                     StreamNotActive, StreamNotCancelled, StreamNotEnded,
                     ThresholdNotReached)
from .types import Status, Stream

_ALL_BUT_CANCELLED = frozenset({Status.PENDING, Status.ACTIVE, Status.ENDED, Status.FINALIZED})

# operation -> effective statuses in which it may run
ALLOWED: Dict[str, FrozenSet[Status]] = {
    "subscribe": frozenset({Status.ACTIVE}),
    "update_position": frozenset({Status.ACTIVE}),
    "update_stream": _ALL_BUT_CANCELLED,
    "sync_position": _ALL_BUT_CANCELLED,
    "withdraw": _ALL_BUT_CANCELLED,
    "exit": frozenset({Status.ACTIVE, Status.ENDED}),
    "finalize": frozenset({Status.ENDED}),
    "cancel": frozenset({Status.PENDING, Status.ACTIVE}),
    "exit_cancelled": frozenset({Status.CANCELLED}),
    "cancel_with_threshold": frozenset({Status.ENDED}),
}

# operation -> error raised for a disallowed, non-terminal status
_FALLBACK: Dict[str, Type[LifecycleError]] = {
    "finalize": StreamNotEnded,
    "exit_cancelled": StreamNotCancelled,
    "cancel_with_threshold": StreamNotEnded,
}


def effective_status(status: Status, now: int, start_time: int, end_time: int) -> Status:
    """Resolve the stored status against the clock."""
    status = Status(status)
    if status.is_terminal:
        return status
    if now >= end_time:
        return Status.ENDED
    if now >= start_time:
        return Status.ACTIVE
    return Status.PENDING


def status_of(stream: Stream, now: int) -> Status:
    return effective_status(stream.status, now, stream.start_time, stream.end_time)


def stored_status(effective: Status) -> Status:
    """Status to persist after a call observed `effective` (Ended is derived, so it stays Active)."""
    return Status.ACTIVE if effective is Status.ENDED else effective


def check(op: str, stream: Stream, now: int) -> Status:
    """
    Validate that `op` may run on `stream` at `now`.

    Returns the effective status on success, raises a LifecycleError subclass
    otherwise:

    - Cancelled stream (for anything but exit_cancelled) -> StreamCancelled
    - Finalized stream for finalize / cancel(_with_threshold) -> AlreadyFinalized
    - finalize / cancel_with_threshold before end_time    -> StreamNotEnded
    - exit_cancelled on a live stream                     -> StreamNotCancelled
    - everything else                                     -> StreamNotActive
    """
    try:
        allowed = ALLOWED[op]
    except KeyError:
        raise ValueError(f"unknown operation: {op!r}") from None

    current = status_of(stream, now)
    if current in allowed:
        return current

    err: Optional[Type[LifecycleError]] = None
    if current is Status.CANCELLED and op != "exit_cancelled":
        err = StreamCancelled
    elif current is Status.FINALIZED and op in ("finalize", "cancel", "cancel_with_threshold"):
        err = AlreadyFinalized
    else:
        err = _FALLBACK.get(op, StreamNotActive)

    raise err(
        f"{op} not allowed while stream is {current.value}",
        stream_id=stream.id,
        status=current.value,
        now=now,
    )


def threshold_reached(stream: Stream, *, leaving: int = 0) -> bool:
    """
    True when the stream has no threshold or holds at least that much input,
    after `leaving` input is refunded.
    """
    return stream.threshold is None or stream.in_supply - leaving >= stream.threshold


def require_threshold(op: str, stream: Stream, now: int, *, leaving: int = 0) -> None:
    """
    Settling ops (finalize, post-end exit) refuse a stream that missed its
    threshold. A post-end exit passes its refund as `leaving`, so it can not
    pull a settled sale back under the threshold.
    """
    if not threshold_reached(stream, leaving=leaving):
        raise ThresholdNotReached(
            f"{op} blocked: threshold not reached",
            stream_id=stream.id,
            status=status_of(stream, now).value,
            now=now,
            details={"threshold": stream.threshold, "in_supply": stream.in_supply, "leaving": leaving},
        )


__all__ = [
    "ALLOWED",
    "effective_status",
    "status_of",
    "stored_status",
    "check",
    "threshold_reached",
    "require_threshold",
]
