"""
streamswap.contract — public operations on streams and positions.

Each public method is one transaction:

    1. journal.begin()
    2. LifecycleController gate for the operation at ctx.now
    3. DistributionEngine sync of the stream (and the caller's position)
    4. the mutation itself, records saved, custody transfers, events emitted
    5. journal.commit()   (or journal.revert() and re-raise on any error)

Stream records, position records, custody balances and buffered events all
hang off the same Journal, so a failure at any step leaves nothing behind.

Intended usage
--------------
    swap = StreamSwap.instantiate(ProtocolConfig(protocol_admin="admin"))
    swap.bank.credit("creator", "uatom", 1_000)
    sid = swap.create_stream(Context("creator", 0), name="sale", treasury="creator",
                             input_denom="uosmo", output_denom="uatom",
                             output_total=1_000, start_time=10, end_time=110)
    swap.subscribe(Context("alice", 10), sid, 100)
"""

from __future__ import annotations

import functools
import logging
from typing import Any, Callable, List, Optional, Tuple, TypeVar

from . import engine, ledger, lifecycle, metrics, query
from .config import ProtocolConfig, get_config
from .custody import Bank, Custody
from .errors import (ConfigError, InvalidAmount, InvalidStream,
                     PositionNotFound, ThresholdReached, Unauthorized)
from .events import EventSink
from .journal import Journal
from .store import Store
from .types import (CancelResult, Context, ExitResult, FinalizeResult,
                    Position, PositionView, Status, Stream, StreamView)

log = logging.getLogger(__name__)

MAX_NAME_LEN = 64
MAX_URL_LEN = 256

F = TypeVar("F", bound=Callable[..., Any])


def operation(action: str) -> Callable[[F], F]:
    """Run the wrapped method inside a journal checkpoint (atomic-or-nothing)."""

    def deco(fn: F) -> F:
        @functools.wraps(fn)
        def wrapper(self: "StreamSwap", ctx: Context, *args: Any, **kwargs: Any) -> Any:
            self.journal.begin()
            self._moves = []
            try:
                result = fn(self, ctx, *args, **kwargs)
            except Exception as e:
                self.journal.revert()
                metrics.observe_op(action, ok=False)
                log.warning("%s reverted (sender=%s now=%s): %s", action, ctx.sender, ctx.now, e)
                raise
            self.journal.commit()
            metrics.observe_op(action, ok=True)
            for direction, amount in self._moves:
                metrics.observe_transfer(direction, amount)
            log.info("%s committed (sender=%s now=%s)", action, ctx.sender, ctx.now)
            return result

        return wrapper  # type: ignore[return-value]

    return deco


class StreamSwap:
    """
    The stream sale contract.

    Parameters
    ----------
    journal : Journal
        Journaled byte map holding all contract records.
    custody : Custody
        Asset mover. The default `Bank` keeps its balances in the same
        journal, which is what makes transfers revert with the operation.
    events : EventSink, optional
        Receives events on commit. Created over `journal` when omitted.
    """

    def __init__(self, journal: Journal, custody: Custody, events: Optional[EventSink] = None) -> None:
        self.journal = journal
        self.store = Store(journal)
        self.custody = custody
        self.events = events if events is not None else EventSink(journal)
        self._moves: List[Tuple[str, int]] = []

    @classmethod
    def instantiate(
        cls,
        config: Optional[ProtocolConfig] = None,
        *,
        journal: Optional[Journal] = None,
        custody: Optional[Custody] = None,
    ) -> "StreamSwap":
        """Build a contract over a fresh (or given) journal and persist its config."""
        journal = journal if journal is not None else Journal()
        custody = custody if custody is not None else Bank(journal)
        swap = cls(journal, custody)
        cfg = config if config is not None else get_config().protocol
        journal.begin()
        swap.store.save_config(ProtocolConfig.from_dict(cfg.to_dict()))
        journal.commit()
        log.info("instantiated: admin=%s fee_collector=%s", cfg.protocol_admin, cfg.fee_collector)
        return swap

    @property
    def bank(self) -> Bank:
        if not isinstance(self.custody, Bank):
            raise TypeError("custody is not a Bank")
        return self.custody

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #

    def _receive(self, denom: str, amount: int, frm: str) -> None:
        if amount:
            self.custody.receive(denom, amount, frm)
            self._moves.append(("in", amount))

    def _send(self, denom: str, amount: int, to: str) -> None:
        if amount:
            self.custody.send(denom, amount, to)
            self._moves.append(("out", amount))

    def _open(self, op: str, ctx: Context, stream_id: int) -> Tuple[Stream, Status]:
        stream = self.store.load_stream(stream_id)
        status = lifecycle.check(op, stream, ctx.now)
        if not status.is_terminal:
            stream.status = lifecycle.stored_status(status)
        return stream, status

    def _require_admin(self, ctx: Context) -> ProtocolConfig:
        cfg = self.store.load_config()
        if ctx.sender != cfg.protocol_admin:
            raise Unauthorized("protocol admin only", sender=ctx.sender)
        return cfg

    @staticmethod
    def _check_access(position: Position, sender: str) -> None:
        if sender != position.owner and (position.operator is None or sender != position.operator):
            raise Unauthorized(
                "sender is neither owner nor operator",
                sender=sender,
                details={"owner": position.owner, "stream_id": position.stream_id},
            )

    def _load_for(self, ctx: Context, stream_id: int, owner: Optional[str]) -> Position:
        position = self.store.load_position(stream_id, owner or ctx.sender)
        self._check_access(position, ctx.sender)
        return position

    # ------------------------------------------------------------------ #
    # Stream creation
    # ------------------------------------------------------------------ #

    @operation("create_stream")
    def create_stream(
        self,
        ctx: Context,
        *,
        name: str,
        treasury: str,
        input_denom: str,
        output_denom: str,
        output_total: int,
        start_time: int,
        end_time: int,
        url: Optional[str] = None,
        threshold: Optional[int] = None,
    ) -> int:
        """
        Create a stream. The output supply is pulled from the sender.

        `threshold` is the minimum input the sale must collect; below it the
        stream cannot be finalized and the creator cancels it instead.

        Raises InvalidAmount for a zero supply and InvalidStream for any other
        rejected parameter.
        """
        cfg = self.store.load_config()

        if not isinstance(output_total, int) or output_total <= 0:
            raise InvalidAmount(
                "output supply must be positive",
                amount=output_total if isinstance(output_total, int) else None,
            )
        ledger.require_amount(output_total, name="output_total")

        def reject(msg: str, **details: Any) -> InvalidStream:
            return InvalidStream(msg, details=details)

        if end_time <= start_time:
            raise reject("end_time must be after start_time", start_time=start_time, end_time=end_time)
        if end_time - start_time < cfg.min_stream_seconds:
            raise reject("stream duration too short", duration=end_time - start_time, min=cfg.min_stream_seconds)
        if start_time - ctx.now < cfg.min_seconds_until_start:
            raise reject("stream starts too soon", start_time=start_time, now=ctx.now,
                         min=cfg.min_seconds_until_start)
        if not input_denom or not output_denom:
            raise reject("denoms must be non-empty")
        if input_denom == output_denom:
            raise reject("input and output denom must differ", denom=input_denom)
        if cfg.accepted_in_denom is not None and input_denom != cfg.accepted_in_denom:
            raise reject("input denom not accepted", denom=input_denom, accepted=cfg.accepted_in_denom)
        if not isinstance(name, str) or not (1 <= len(name) <= MAX_NAME_LEN):
            raise reject(f"name must be 1..{MAX_NAME_LEN} characters")
        if url is not None and len(url) > MAX_URL_LEN:
            raise reject(f"url must be at most {MAX_URL_LEN} characters", length=len(url))
        if not treasury:
            raise reject("treasury must be set")
        if threshold is not None and (
            not isinstance(threshold, int) or isinstance(threshold, bool) or not (0 < threshold <= ledger.U128_MAX)
        ):
            raise reject("threshold must be a positive amount", threshold=str(threshold))

        stream = Stream(
            id=self.store.next_stream_id(),
            name=name,
            url=url,
            creator=ctx.sender,
            treasury=treasury,
            input_denom=input_denom,
            output_denom=output_denom,
            start_time=int(start_time),
            end_time=int(end_time),
            output_total=output_total,
            exit_fee_bps=cfg.exit_fee_bps,
            threshold=threshold,
            created_at=ctx.now,
        )
        self._receive(output_denom, output_total, ctx.sender)
        self.store.save_stream(stream)
        self.events.emit(
            "create_stream",
            stream_id=stream.id,
            creator=ctx.sender,
            treasury=treasury,
            in_denom=input_denom,
            out_denom=output_denom,
            out_supply=output_total,
            start_time=stream.start_time,
            end_time=stream.end_time,
            threshold=threshold,
        )
        return stream.id

    # ------------------------------------------------------------------ #
    # Subscriber operations
    # ------------------------------------------------------------------ #

    @operation("subscribe")
    def subscribe(
        self,
        ctx: Context,
        stream_id: int,
        amount: int,
        *,
        owner: Optional[str] = None,
        operator: Optional[str] = None,
    ) -> Position:
        """
        Deposit `amount` input (paid by the sender) into a position.

        Creates the position on first use; only the owner can do that. An
        existing position may be topped up by its owner or operator.
        """
        stream, _ = self._open("subscribe", ctx, stream_id)
        owner = owner or ctx.sender
        position = self.store.find_position(stream_id, owner)
        if position is None:
            if owner != ctx.sender:
                raise Unauthorized("operator cannot create a position", sender=ctx.sender)
            position = engine.new_position(stream, owner, ctx.now)
            position.operator = operator
        else:
            self._check_access(position, ctx.sender)

        paid = engine.subscribe(stream, position, amount, ctx.now)
        self._receive(stream.input_denom, paid, ctx.sender)
        self.store.save_position(position)
        self.store.save_stream(stream)
        self.events.emit(
            "subscribe",
            stream_id=stream_id,
            owner=owner,
            amount=amount,
            shares=position.shares,
            total_shares=stream.total_shares,
        )
        return position

    @operation("update_position")
    def update_position(self, ctx: Context, stream_id: int, amount: int, *, owner: Optional[str] = None) -> Position:
        """Increase an existing position by `amount` input."""
        stream, _ = self._open("update_position", ctx, stream_id)
        position = self._load_for(ctx, stream_id, owner)
        paid = engine.subscribe(stream, position, amount, ctx.now)
        self._receive(stream.input_denom, paid, ctx.sender)
        self.store.save_position(position)
        self.store.save_stream(stream)
        self.events.emit(
            "update_position",
            stream_id=stream_id,
            owner=position.owner,
            amount=amount,
            shares=position.shares,
            total_shares=stream.total_shares,
        )
        return position

    @operation("sync_position")
    def sync_position(self, ctx: Context, stream_id: int, *, owner: Optional[str] = None) -> Position:
        """Persist a sync of the stream and of one position; no funds move."""
        stream, _ = self._open("sync_position", ctx, stream_id)
        position = self._load_for(ctx, stream_id, owner)
        engine.sync_position(stream, position, ctx.now)
        self.store.save_position(position)
        self.store.save_stream(stream)
        self.events.emit(
            "sync_position",
            stream_id=stream_id,
            owner=position.owner,
            earned=position.earned_unclaimed,
            index=position.index_snapshot,
        )
        return position

    @operation("update_stream")
    def update_stream(self, ctx: Context, stream_id: int) -> Stream:
        """Persist a stream sync. Anyone may call it."""
        stream, _ = self._open("update_stream", ctx, stream_id)
        engine.sync_stream(stream, ctx.now)
        self.store.save_stream(stream)
        self.events.emit(
            "update_stream",
            stream_id=stream_id,
            distributed=stream.distributed_total,
            index=stream.index_per_share,
        )
        return stream

    @operation("withdraw")
    def withdraw(
        self,
        ctx: Context,
        stream_id: int,
        *,
        cap: Optional[int] = None,
        owner: Optional[str] = None,
        recipient: Optional[str] = None,
    ) -> int:
        """
        Pay earned output to `recipient` (default: the owner). Returns the
        amount paid; 0 when nothing is earned and no cap was given.

        After finalization this also retires the position's shares.
        """
        stream, status = self._open("withdraw", ctx, stream_id)
        position = self._load_for(ctx, stream_id, owner)
        amount = engine.withdraw(stream, position, ctx.now, cap)
        if status is Status.FINALIZED:
            engine.release_shares(stream, position)

        self._send(stream.output_denom, amount, recipient or position.owner)
        self.store.save_position(position)
        self.store.save_stream(stream)
        if amount:
            self.events.emit(
                "withdraw",
                stream_id=stream_id,
                owner=position.owner,
                recipient=recipient or position.owner,
                amount=amount,
            )
        return amount

    @operation("exit")
    def exit(
        self,
        ctx: Context,
        stream_id: int,
        *,
        owner: Optional[str] = None,
        recipient: Optional[str] = None,
    ) -> ExitResult:
        """Close a position: pay earned output, refund spent input, delete the record."""
        stream, status = self._open("exit", ctx, stream_id)
        position = self._load_for(ctx, stream_id, owner)
        if status is Status.ENDED:
            lifecycle.require_threshold("exit", stream, ctx.now, leaving=position.spent)
        paid, refund = engine.exit_position(stream, position, ctx.now)

        to = recipient or position.owner
        self._send(stream.output_denom, paid, to)
        self._send(stream.input_denom, refund, to)
        self.store.delete_position(stream_id, position.owner)
        self.store.save_stream(stream)
        self.events.emit(
            "exit",
            stream_id=stream_id,
            owner=position.owner,
            recipient=to,
            output_paid=paid,
            input_refunded=refund,
        )
        return ExitResult(stream_id=stream_id, owner=position.owner, output_paid=paid, input_refunded=refund)

    # ------------------------------------------------------------------ #
    # Settlement
    # ------------------------------------------------------------------ #

    @operation("finalize")
    def finalize(self, ctx: Context, stream_id: int, *, new_treasury: Optional[str] = None) -> FinalizeResult:
        """
        Settle an ended stream: proceeds (minus the exit fee) and every output
        unit nobody can claim go to the treasury, the fee to the fee collector.
        """
        stream, _ = self._open("finalize", ctx, stream_id)
        cfg = self.store.load_config()
        is_treasury = ctx.sender == stream.treasury
        if cfg.finalize_policy == "treasury" and not is_treasury:
            raise Unauthorized("only the stream treasury may finalize", sender=ctx.sender)
        if new_treasury is not None and not is_treasury:
            raise Unauthorized("only the stream treasury may redirect proceeds", sender=ctx.sender)
        lifecycle.require_threshold("finalize", stream, ctx.now)

        proceeds, swept = engine.finalize(stream, ctx.now)
        stream.status = Status.FINALIZED

        fee = ledger.apply_bps(proceeds, stream.exit_fee_bps)
        net = ledger.checked_sub(proceeds, fee)
        to = new_treasury or stream.treasury
        self._send(stream.input_denom, fee, cfg.fee_collector)
        self._send(stream.input_denom, net, to)
        self._send(stream.output_denom, swept, to)
        self.store.save_stream(stream)
        self.events.emit(
            "finalize",
            stream_id=stream_id,
            treasury=to,
            proceeds=net,
            fee=fee,
            fee_collector=cfg.fee_collector,
            swept_output=swept,
        )
        return FinalizeResult(stream_id=stream_id, proceeds=net, fee=fee, proceeds_recipient=to, swept_output=swept)

    @operation("cancel")
    def cancel(self, ctx: Context, stream_id: int) -> CancelResult:
        """Admin kill switch: unclaimed output goes back to the treasury."""
        self._require_admin(ctx)
        stream, _ = self._open("cancel", ctx, stream_id)
        engine.sync_stream(stream, ctx.now)
        returned = engine.cancel(stream)
        stream.status = Status.CANCELLED
        self._send(stream.output_denom, returned, stream.treasury)
        self.store.save_stream(stream)
        self.events.emit("cancel", stream_id=stream_id, output_returned=returned)
        return CancelResult(stream_id=stream_id, output_returned=returned)

    @operation("cancel_with_threshold")
    def cancel_with_threshold(self, ctx: Context, stream_id: int) -> CancelResult:
        """
        Cancel an ended stream that missed its threshold. Only the creator or
        the treasury may call it. The output supply goes back to the treasury
        and subscribers recover their input through exit_cancelled.
        """
        stream, _ = self._open("cancel_with_threshold", ctx, stream_id)
        if ctx.sender not in (stream.creator, stream.treasury):
            raise Unauthorized("only the stream creator or treasury may cancel", sender=ctx.sender)
        if lifecycle.threshold_reached(stream):
            raise ThresholdReached(
                "threshold reached or not set; finalize instead",
                stream_id=stream_id,
                status=Status.ENDED.value,
                now=ctx.now,
                details={"threshold": stream.threshold, "in_supply": stream.in_supply},
            )
        engine.sync_stream(stream, ctx.now)
        returned = engine.cancel(stream)
        stream.status = Status.CANCELLED
        self._send(stream.output_denom, returned, stream.treasury)
        self.store.save_stream(stream)
        self.events.emit(
            "cancel_with_threshold",
            stream_id=stream_id,
            threshold=stream.threshold,
            in_supply=stream.in_supply,
            output_returned=returned,
        )
        return CancelResult(stream_id=stream_id, output_returned=returned)

    @operation("exit_cancelled")
    def exit_cancelled(
        self,
        ctx: Context,
        stream_id: int,
        *,
        owner: Optional[str] = None,
        recipient: Optional[str] = None,
    ) -> int:
        """Refund a position's input on a cancelled stream. Returns the refund."""
        stream, _ = self._open("exit_cancelled", ctx, stream_id)
        position = self._load_for(ctx, stream_id, owner)
        refund = engine.exit_cancelled(stream, position)
        to = recipient or position.owner
        self._send(stream.input_denom, refund, to)
        self.store.delete_position(stream_id, position.owner)
        self.store.save_stream(stream)
        self.events.emit("exit_cancelled", stream_id=stream_id, owner=position.owner, input_refunded=refund)
        return refund

    # ------------------------------------------------------------------ #
    # Operators & admin
    # ------------------------------------------------------------------ #

    @operation("update_operator")
    def update_operator(self, ctx: Context, stream_id: int, operator: Optional[str]) -> Position:
        """Name (or clear, with None) the operator of the sender's own position."""
        self.store.load_stream(stream_id)
        position = self.store.find_position(stream_id, ctx.sender)
        if position is None:
            raise PositionNotFound(stream_id, ctx.sender)
        position.operator = operator or None
        self.store.save_position(position)
        self.events.emit("update_operator", stream_id=stream_id, owner=ctx.sender, operator=position.operator)
        return position

    @operation("update_config")
    def update_config(self, ctx: Context, **changes: Any) -> ProtocolConfig:
        """Change protocol parameters. Streams keep the fee they were created with."""
        cfg = self._require_admin(ctx)
        if "protocol_admin" in changes:
            raise ConfigError("use update_protocol_admin to change the admin")
        new = cfg.updated(**changes)
        self.store.save_config(new)
        self.events.emit("update_config", **changes)
        return new

    @operation("update_protocol_admin")
    def update_protocol_admin(self, ctx: Context, new_admin: str) -> ProtocolConfig:
        cfg = self._require_admin(ctx)
        new = cfg.updated(protocol_admin=new_admin)
        self.store.save_config(new)
        self.events.emit("update_protocol_admin", old_admin=cfg.protocol_admin, new_admin=new_admin)
        return new

    # ------------------------------------------------------------------ #
    # Queries (never persist)
    # ------------------------------------------------------------------ #

    def query_config(self) -> ProtocolConfig:
        return query.query_config(self.store)

    def query_stream(self, stream_id: int, now: int) -> StreamView:
        return query.query_stream(self.store, stream_id, now)

    def query_threshold(self, stream_id: int) -> Optional[int]:
        return query.query_threshold(self.store, stream_id)

    def query_position(self, stream_id: int, owner: str, now: int) -> PositionView:
        return query.query_position(self.store, stream_id, owner, now)

    def list_streams(self, start_after: Optional[int] = None, limit: Optional[int] = None) -> List[Stream]:
        return query.list_streams(self.store, start_after=start_after, limit=limit)

    def list_positions(
        self, stream_id: int, start_after: Optional[str] = None, limit: Optional[int] = None
    ) -> List[Position]:
        return query.list_positions(self.store, stream_id, start_after=start_after, limit=limit)


__all__ = ["StreamSwap", "operation", "MAX_NAME_LEN", "MAX_URL_LEN"]
