from __future__ import annotations

"""
Record types for streams and positions.

- Stream is the per-sale aggregate: window, supplies, the distribution index
  and its carry, and the stored lifecycle status.
- Position is one subscriber's stake in a stream: shares, the index snapshot
  taken at its last sync, and its earned/spent/withdrawn totals.

Records are plain mutable dataclasses. The engine mutates them in place; the
store serializes them with `to_dict()` and rebuilds them with `from_dict()`.
Queries work on `copy()` so stored records are never touched.

Conventions
-----------
- Addresses are opaque strings (bech32, hex, or test names like "alice").
- Amounts are ints in the smallest unit of their denom.
- Timestamps are UNIX seconds supplied by the caller, never read from a clock.
"""

import copy as _copy
from dataclasses import asdict, dataclass, fields
from enum import Enum
from typing import Any, Dict, Mapping, NewType, Optional

Address = NewType("Address", str)
Denom = NewType("Denom", str)
StreamId = NewType("StreamId", int)
Timestamp = NewType("Timestamp", int)


class Status(str, Enum):
    PENDING = "Pending"
    ACTIVE = "Active"
    ENDED = "Ended"  # derived only, never stored
    FINALIZED = "Finalized"
    CANCELLED = "Cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (Status.FINALIZED, Status.CANCELLED)


# ────────────────────────────────────────────────────────────────────────────────
# Stream
# ────────────────────────────────────────────────────────────────────────────────


@dataclass
class Stream:
    """
    One continuous-distribution sale.

    Immutable after creation: id, name, url, creator, treasury, denoms, window,
    output_total, exit_fee_bps, threshold.

    `threshold`, when set, is the minimum in_supply the sale must hold at its
    end. Below it the stream can be neither finalized nor exited; the creator
    cancels it instead and every subscriber is refunded.

    Mutable accounting fields
    -------------------------
    total_shares:       sum of all position shares.
    in_supply:          input asset currently held for positions (sale proceeds at finalize).
    distributed_total:  output released by the schedule so far.
    unallocated_total:  part of distributed_total released while no shares were outstanding.
    claimed_total:      output already paid out to subscribers.
    index_per_share:    cumulative output per share, scaled by INDEX_SCALE.
    index_remainder:    scaled output not yet folded into the index.
    dust_fraction:      scaled sub-unit output left behind by removed positions.
    last_updated:       timestamp of the last index advance.
    """

    id: StreamId
    name: str
    treasury: Address
    creator: Address
    input_denom: Denom
    output_denom: Denom
    start_time: Timestamp
    end_time: Timestamp
    output_total: int
    url: Optional[str] = None
    exit_fee_bps: int = 0
    threshold: Optional[int] = None
    created_at: Timestamp = Timestamp(0)
    total_shares: int = 0
    in_supply: int = 0
    distributed_total: int = 0
    unallocated_total: int = 0
    claimed_total: int = 0
    index_per_share: int = 0
    index_remainder: int = 0
    dust_fraction: int = 0
    last_updated: Timestamp = Timestamp(0)
    status: Status = Status.PENDING

    def __post_init__(self) -> None:
        if not isinstance(self.status, Status):
            self.status = Status(self.status)
        if not self.last_updated:
            self.last_updated = self.start_time

    @property
    def duration(self) -> int:
        return self.end_time - self.start_time

    def copy(self) -> "Stream":
        return _copy.copy(self)

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["status"] = self.status.value
        return d

    @staticmethod
    def from_dict(d: Mapping[str, Any]) -> "Stream":
        known = {f.name for f in fields(Stream)}
        return Stream(**{k: v for k, v in d.items() if k in known})


# ────────────────────────────────────────────────────────────────────────────────
# Position
# ────────────────────────────────────────────────────────────────────────────────


@dataclass
class Position:
    """
    One subscriber's stake in a stream.

    `pending_fraction` is the sub-unit part of the last accrual, scaled by
    INDEX_SCALE, kept so that repeated syncs never lose output to rounding.
    """

    stream_id: StreamId
    owner: Address
    shares: int = 0
    index_snapshot: int = 0
    earned_unclaimed: int = 0
    pending_fraction: int = 0
    spent: int = 0
    withdrawn: int = 0
    operator: Optional[Address] = None
    last_updated: Timestamp = Timestamp(0)

    def copy(self) -> "Position":
        return _copy.copy(self)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @staticmethod
    def from_dict(d: Mapping[str, Any]) -> "Position":
        known = {f.name for f in fields(Position)}
        return Position(**{k: v for k, v in d.items() if k in known})


# ────────────────────────────────────────────────────────────────────────────────
# Operation results
# ────────────────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class ExitResult:
    stream_id: int
    owner: str
    output_paid: int
    input_refunded: int


@dataclass(frozen=True)
class FinalizeResult:
    stream_id: int
    proceeds: int
    fee: int
    proceeds_recipient: str
    swept_output: int


@dataclass(frozen=True)
class CancelResult:
    stream_id: int
    output_returned: int


@dataclass(frozen=True)
class PositionView:
    """A position synced to `as_of`, plus what withdraw would pay right now."""

    position: Position
    as_of: int
    pending_earned: int
    status: Status

    def to_dict(self) -> Dict[str, Any]:
        d = self.position.to_dict()
        d.update(as_of=self.as_of, pending_earned=self.pending_earned, status=self.status.value)
        return d


@dataclass(frozen=True)
class StreamView:
    stream: Stream
    as_of: int
    status: Status
    threshold_reached: bool = True

    def to_dict(self) -> Dict[str, Any]:
        d = self.stream.to_dict()
        d.update(as_of=self.as_of, status=self.status.value, threshold_reached=self.threshold_reached)
        return d


@dataclass(frozen=True)
class Context:
    """Caller identity and the single timestamp an operation runs at."""

    sender: Address
    now: Timestamp


__all__ = [
    "Address",
    "Denom",
    "StreamId",
    "Timestamp",
    "Status",
    "Stream",
    "Position",
    "ExitResult",
    "FinalizeResult",
    "CancelResult",
    "PositionView",
    "StreamView",
    "Context",
]
