"""
streamswap.engine — the distribution index and per-position reconciliation.

Every mutating operation follows the same discipline:

    1. sync_stream(stream, now)        advance the index to `now`
    2. sync_position(stream, position) reconcile the position against it
    3. apply the mutation              shares / spent / earned change

Because a position only ever compares itself against the single scalar
`stream.index_per_share`, no call ever visits another position; the cost of
every operation is O(1) in the number of subscribers. Skipping step 1 or 2
before step 3 would let a share change apply retroactively, so the helpers
below always perform both.

All functions mutate the records they are given and return the amounts the
caller must move through custody. They never touch storage or custody
themselves, so the query path can run them on copies.

Rounding
--------
- `distributed_total` follows the linear schedule with one floor per sync.
- The index step floors; its remainder is carried in `index_remainder`.
- A position's accrual floors to whole units; the remainder is carried in
  `pending_fraction`.
- Output released while `total_shares == 0` is booked to `unallocated_total`
  and never enters the index.

Hence, with every position synced:

    claimed_total + sum(earned_unclaimed) + unallocated_total
        + (index_remainder + sum(pending_fraction) + dust_fraction) / INDEX_SCALE
    == distributed_total
"""

from __future__ import annotations

import logging
from typing import Optional, Tuple

from . import ledger
from .errors import InvalidAmount
from .ledger import INDEX_SCALE, U256_MAX
from .types import Position, Stream

log = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Sync
# -----------------------------------------------------------------------------


def clamp_time(stream: Stream, now: int) -> int:
    return min(max(int(now), stream.start_time), stream.end_time)


def scheduled_total(stream: Stream, t: int) -> int:
    """Output released by the schedule at time t (already clamped)."""
    return ledger.checked_mul_by_elapsed_fraction(
        stream.output_total, t - stream.start_time, stream.duration
    )


def sync_stream(stream: Stream, now: int) -> int:
    """
    Advance the distribution index to `now`.

    Returns the output released by this advance (0 if time did not move).
    Time never moves backwards: a `now` at or before `last_updated` is a no-op.
    """
    t = clamp_time(stream, now)
    if t <= stream.last_updated:
        return 0

    new_total = scheduled_total(stream, t)
    delta = ledger.checked_sub(new_total, stream.distributed_total)

    if stream.total_shares == 0:
        stream.unallocated_total = ledger.checked_add(stream.unallocated_total, delta)
        log.debug("stream %s: %d released with no shares (t=%d)", stream.id, delta, t)
    elif delta:
        inc, carry = ledger.index_increment(delta, stream.index_remainder, stream.total_shares)
        stream.index_per_share = ledger.checked_add(stream.index_per_share, inc, bound=U256_MAX)
        stream.index_remainder = carry
        log.debug(
            "stream %s: index +%d -> %d (delta=%d shares=%d t=%d)",
            stream.id, inc, stream.index_per_share, delta, stream.total_shares, t,
        )

    stream.distributed_total = new_total
    stream.last_updated = t
    return delta


def sync_position(stream: Stream, position: Position, now: int) -> int:
    """
    Sync the stream, then credit `position` with everything the index moved
    since its snapshot. Returns the whole output units credited.
    """
    sync_stream(stream, now)
    index_delta = ledger.checked_sub(stream.index_per_share, position.index_snapshot, bound=U256_MAX)

    credited = 0
    if index_delta and position.shares:
        credited, position.pending_fraction = ledger.accrue(
            position.shares, index_delta, position.pending_fraction
        )
        position.earned_unclaimed = ledger.checked_add(position.earned_unclaimed, credited)

    position.index_snapshot = stream.index_per_share
    position.last_updated = stream.last_updated
    return credited


def new_position(stream: Stream, owner: str, now: int) -> Position:
    """A zero position whose snapshot is the index as of `now`."""
    sync_stream(stream, now)
    return Position(
        stream_id=stream.id,
        owner=owner,
        index_snapshot=stream.index_per_share,
        last_updated=stream.last_updated,
    )


# -----------------------------------------------------------------------------
# Mutations
# -----------------------------------------------------------------------------


def _require_positive(amount: int, what: str) -> int:
    if not isinstance(amount, int) or isinstance(amount, bool) or amount <= 0:
        raise InvalidAmount(f"{what} must be a positive integer", amount=amount if isinstance(amount, int) else None)
    return amount


def subscribe(stream: Stream, position: Position, amount: int, now: int) -> int:
    """
    Deposit `amount` input into `position`, minting shares 1:1.

    Returns the amount the caller must receive from the subscriber.
    """
    _require_positive(amount, "deposit")
    sync_position(stream, position, now)

    position.shares = ledger.checked_add(position.shares, amount)
    position.spent = ledger.checked_add(position.spent, amount)
    stream.total_shares = ledger.checked_add(stream.total_shares, amount)
    stream.in_supply = ledger.checked_add(stream.in_supply, amount)
    return amount


def withdraw(stream: Stream, position: Position, now: int, cap: Optional[int] = None) -> int:
    """
    Pay out earned output, optionally at most `cap`.

    With no cap the whole earned balance is paid; when nothing is earned the
    call returns 0. An explicit cap must be positive and no larger than the
    earned balance.
    """
    sync_position(stream, position, now)

    earned = position.earned_unclaimed
    if cap is None:
        amount = earned
    else:
        _require_positive(cap, "withdraw cap")
        if cap > earned:
            raise InvalidAmount(
                "withdraw cap exceeds earned balance",
                amount=cap,
                details={"earned": earned},
            )
        amount = cap

    if amount:
        position.earned_unclaimed = ledger.checked_sub(earned, amount)
        position.withdrawn = ledger.checked_add(position.withdrawn, amount)
        stream.claimed_total = ledger.checked_add(stream.claimed_total, amount)
    return amount


def release_shares(stream: Stream, position: Position) -> int:
    """Remove a (synced) position's shares from the stream. Returns the shares removed."""
    shares = position.shares
    if shares:
        stream.total_shares = ledger.checked_sub(stream.total_shares, shares)
        position.shares = 0
    return shares


def _drop(stream: Stream, position: Position) -> None:
    # The position record is going away; keep its sub-unit carry on the stream.
    if position.pending_fraction:
        stream.dust_fraction = ledger.checked_add(stream.dust_fraction, position.pending_fraction, bound=U256_MAX)
        position.pending_fraction = 0


def exit_position(stream: Stream, position: Position, now: int) -> Tuple[int, int]:
    """
    Close a position: pay all earned output and refund `spent` input in full.

    Returns (output_paid, input_refunded). The position is left zeroed; the
    caller deletes its record.
    """
    paid = withdraw(stream, position, now)
    release_shares(stream, position)

    refund = position.spent
    stream.in_supply = ledger.checked_sub(stream.in_supply, refund)
    position.spent = 0
    _drop(stream, position)
    return paid, refund


def exit_cancelled(stream: Stream, position: Position) -> int:
    """
    Close a position on a cancelled stream. Earned output is forfeited (it was
    returned to the treasury by the cancellation); the input is refunded.
    """
    refund = position.spent
    stream.in_supply = ledger.checked_sub(stream.in_supply, refund)
    if position.shares:
        stream.total_shares = ledger.checked_sub(stream.total_shares, position.shares)
    position.shares = 0
    position.spent = 0
    position.earned_unclaimed = 0
    position.pending_fraction = 0
    return refund


def finalize(stream: Stream, now: int) -> Tuple[int, int]:
    """
    Final sync at/after end_time.

    Folds whole units of the index carry and of dropped positions' dust into
    `unallocated_total` and returns (proceeds, swept_output): the input held
    for the sale and the output nobody can ever claim.
    """
    sync_stream(stream, now)

    whole, stream.index_remainder = divmod(stream.index_remainder, INDEX_SCALE)
    dust_whole, stream.dust_fraction = divmod(stream.dust_fraction, INDEX_SCALE)
    stream.unallocated_total = ledger.checked_add(stream.unallocated_total, whole + dust_whole)

    proceeds = stream.in_supply
    swept = stream.unallocated_total
    stream.in_supply = 0
    log.debug("stream %s finalized: proceeds=%d swept=%d", stream.id, proceeds, swept)
    return proceeds, swept


def cancel(stream: Stream) -> int:
    """Output that goes back to the treasury when the stream is cancelled."""
    return ledger.checked_sub(stream.output_total, stream.claimed_total)


__all__ = [
    "clamp_time",
    "scheduled_total",
    "sync_stream",
    "sync_position",
    "new_position",
    "subscribe",
    "withdraw",
    "release_shares",
    "exit_position",
    "exit_cancelled",
    "finalize",
    "cancel",
]
