from __future__ import annotations

import pytest

from streamswap import lifecycle
from streamswap.custody import CONTRACT_ADDRESS
from streamswap.errors import (InvalidStream, StreamCancelled, StreamNotEnded,
                               ThresholdNotReached, ThresholdReached,
                               Unauthorized)
from streamswap.ledger import U128_MAX
from streamswap.types import Status, Stream

from .conftest import (ALICE, BOB, CAROL, CREATOR, IN, OUT, TREASURY, ctx,
                       deposit, make_stream)


@pytest.fixture
def gated(swap) -> int:
    """output 1000 over [0, 100], needs 150 input by the end."""
    return make_stream(swap, threshold=150)


def test_reached_threshold_finalizes(swap, gated):
    deposit(swap, gated, ALICE, 100, 0)
    deposit(swap, gated, BOB, 100, 0)

    view = swap.query_stream(gated, 100)
    assert view.threshold_reached
    assert view.to_dict()["threshold"] == 150

    res = swap.finalize(ctx(TREASURY, 100), gated)
    assert res.proceeds == 200
    assert swap.bank.balance(TREASURY, IN) == 200
    assert swap.query_stream(gated, 100).status is Status.FINALIZED


def test_missed_threshold_blocks_finalize_and_late_exit(swap, gated):
    deposit(swap, gated, ALICE, 100, 0)

    assert swap.query_threshold(gated) == 150
    assert not swap.query_stream(gated, 100).threshold_reached

    with pytest.raises(ThresholdNotReached) as ei:
        swap.finalize(ctx(TREASURY, 100), gated)
    assert ei.value.code == "THRESHOLD_NOT_REACHED"
    assert ei.value.details["threshold"] == 150
    assert ei.value.details["in_supply"] == 100

    with pytest.raises(ThresholdNotReached):
        swap.exit(ctx(ALICE, 120), gated)
    assert swap.store.find_position(gated, ALICE) is not None
    assert swap.bank.balance(CONTRACT_ADDRESS, IN) == 100


def test_exit_while_active_ignores_threshold(swap, gated):
    deposit(swap, gated, ALICE, 100, 0)
    res = swap.exit(ctx(ALICE, 50), gated)
    assert (res.output_paid, res.input_refunded) == (500, 100)


def test_late_exit_can_not_pull_a_sale_under_its_threshold(swap, gated):
    deposit(swap, gated, ALICE, 100, 0)
    deposit(swap, gated, BOB, 100, 0)
    deposit(swap, gated, CAROL, 60, 10)

    res = swap.exit(ctx(BOB, 100), gated)
    assert res.input_refunded == 100
    assert swap.store.load_stream(gated).in_supply == 160

    with pytest.raises(ThresholdNotReached) as ei:
        swap.exit(ctx(ALICE, 100), gated)
    assert ei.value.details["leaving"] == 100
    assert swap.finalize(ctx(TREASURY, 100), gated).proceeds == 160


def test_cancel_with_threshold_refunds_subscribers(swap, gated):
    deposit(swap, gated, ALICE, 100, 0)
    assert swap.withdraw(ctx(ALICE, 40), gated) == 400

    res = swap.cancel_with_threshold(ctx(CREATOR, 100), gated)
    assert res.output_returned == 600
    assert swap.bank.balance(TREASURY, OUT) == 600
    assert swap.query_stream(gated, 100).status is Status.CANCELLED
    assert "cancel_with_threshold" in [e.name for e in swap.events.events]

    with pytest.raises(StreamCancelled):
        swap.finalize(ctx(TREASURY, 100), gated)

    assert swap.exit_cancelled(ctx(ALICE, 110), gated) == 100
    assert swap.bank.balance(ALICE, IN) == 100
    assert swap.bank.balance(ALICE, OUT) == 400
    assert swap.bank.balance(CONTRACT_ADDRESS, IN) == 0
    assert swap.bank.balance(CONTRACT_ADDRESS, OUT) == 0


def test_treasury_may_cancel_with_threshold(swap, gated):
    deposit(swap, gated, ALICE, 10, 0)
    swap.cancel_with_threshold(ctx(TREASURY, 100), gated)
    assert swap.store.load_stream(gated).status is Status.CANCELLED


def test_cancel_with_threshold_rules(swap, gated):
    deposit(swap, gated, ALICE, 100, 0)
    with pytest.raises(Unauthorized):
        swap.cancel_with_threshold(ctx(ALICE, 100), gated)
    with pytest.raises(StreamNotEnded):
        swap.cancel_with_threshold(ctx(CREATOR, 50), gated)

    deposit(swap, gated, BOB, 50, 60)
    with pytest.raises(ThresholdReached):
        swap.cancel_with_threshold(ctx(CREATOR, 100), gated)

    plain = make_stream(swap, name="plain")
    with pytest.raises(ThresholdReached):
        swap.cancel_with_threshold(ctx(CREATOR, 100), plain)
    assert swap.query_threshold(plain) is None
    assert swap.query_stream(plain, 100).threshold_reached


@pytest.mark.parametrize("bad", [0, -5, True, "150", U128_MAX + 1])
def test_invalid_threshold_rejected(swap, bad):
    with pytest.raises(InvalidStream):
        make_stream(swap, threshold=bad)
    assert swap.store.list_streams(None, None) == []


def test_threshold_predicate():
    s = mk(threshold=100, in_supply=100)
    assert lifecycle.threshold_reached(s)
    assert not lifecycle.threshold_reached(s, leaving=1)
    assert lifecycle.threshold_reached(mk(threshold=None, in_supply=0))
    with pytest.raises(ThresholdNotReached):
        lifecycle.require_threshold("finalize", mk(threshold=100, in_supply=99), 300)


def mk(*, threshold, in_supply) -> Stream:
    return Stream(
        id=1,
        name="s",
        treasury="t",
        creator="c",
        input_denom="in",
        output_denom="out",
        start_time=0,
        end_time=100,
        output_total=10,
        threshold=threshold,
        in_supply=in_supply,
    )
