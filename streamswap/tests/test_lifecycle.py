from __future__ import annotations

import pytest

from streamswap import lifecycle
from streamswap.errors import (AlreadyFinalized, StreamCancelled,
                               StreamNotActive, StreamNotCancelled,
                               StreamNotEnded)
from streamswap.types import Status, Stream


def mk(status: Status = Status.PENDING, start: int = 100, end: int = 200) -> Stream:
    return Stream(
        id=7,
        name="s",
        treasury="t",
        creator="c",
        input_denom="in",
        output_denom="out",
        start_time=start,
        end_time=end,
        output_total=1_000,
        status=status,
    )


@pytest.mark.parametrize(
    "now,expected",
    [(0, Status.PENDING), (99, Status.PENDING), (100, Status.ACTIVE), (199, Status.ACTIVE), (200, Status.ENDED), (10**9, Status.ENDED)],
)
def test_effective_status_follows_clock(now, expected):
    assert lifecycle.status_of(mk(), now) is expected
    # a stored Active behaves the same
    assert lifecycle.status_of(mk(Status.ACTIVE), now) is (Status.ENDED if now >= 200 else Status.ACTIVE if now >= 100 else Status.PENDING)


@pytest.mark.parametrize("stored", [Status.FINALIZED, Status.CANCELLED])
def test_terminal_status_ignores_clock(stored):
    for now in (0, 150, 500):
        assert lifecycle.status_of(mk(stored), now) is stored


def test_stored_status_never_persists_ended():
    assert lifecycle.stored_status(Status.ENDED) is Status.ACTIVE
    assert lifecycle.stored_status(Status.PENDING) is Status.PENDING
    assert lifecycle.stored_status(Status.FINALIZED) is Status.FINALIZED


def test_subscribe_only_while_active():
    s = mk()
    with pytest.raises(StreamNotActive):
        lifecycle.check("subscribe", s, 50)
    assert lifecycle.check("subscribe", s, 100) is Status.ACTIVE
    with pytest.raises(StreamNotActive):
        lifecycle.check("subscribe", s, 200)
    with pytest.raises(StreamCancelled):
        lifecycle.check("subscribe", mk(Status.CANCELLED), 150)
    with pytest.raises(StreamNotActive):
        lifecycle.check("update_position", mk(Status.FINALIZED), 300)


def test_exit_window():
    s = mk()
    with pytest.raises(StreamNotActive):
        lifecycle.check("exit", s, 10)
    assert lifecycle.check("exit", s, 150) is Status.ACTIVE
    assert lifecycle.check("exit", s, 250) is Status.ENDED
    with pytest.raises(StreamNotActive):
        lifecycle.check("exit", mk(Status.FINALIZED), 250)


def test_finalize_rules():
    with pytest.raises(StreamNotEnded):
        lifecycle.check("finalize", mk(), 150)
    assert lifecycle.check("finalize", mk(), 200) is Status.ENDED
    with pytest.raises(AlreadyFinalized) as ei:
        lifecycle.check("finalize", mk(Status.FINALIZED), 300)
    assert ei.value.details == {"stream_id": 7, "status": "Finalized", "now": 300}
    with pytest.raises(StreamCancelled):
        lifecycle.check("finalize", mk(Status.CANCELLED), 300)


def test_cancel_rules():
    assert lifecycle.check("cancel", mk(), 0) is Status.PENDING
    assert lifecycle.check("cancel", mk(), 150) is Status.ACTIVE
    with pytest.raises(StreamNotActive):
        lifecycle.check("cancel", mk(), 200)
    with pytest.raises(AlreadyFinalized):
        lifecycle.check("cancel", mk(Status.FINALIZED), 300)
    with pytest.raises(StreamCancelled):
        lifecycle.check("cancel", mk(Status.CANCELLED), 150)


def test_withdraw_and_syncs_allowed_until_cancelled():
    for op in ("withdraw", "update_stream", "sync_position"):
        for now in (0, 150, 250):
            lifecycle.check(op, mk(), now)
        lifecycle.check(op, mk(Status.FINALIZED), 250)
        with pytest.raises(StreamCancelled):
            lifecycle.check(op, mk(Status.CANCELLED), 150)


def test_exit_cancelled_requires_cancelled():
    with pytest.raises(StreamNotCancelled):
        lifecycle.check("exit_cancelled", mk(), 150)
    with pytest.raises(StreamNotCancelled):
        lifecycle.check("exit_cancelled", mk(Status.FINALIZED), 250)
    assert lifecycle.check("exit_cancelled", mk(Status.CANCELLED), 150) is Status.CANCELLED


def test_unknown_operation():
    with pytest.raises(ValueError):
        lifecycle.check("teleport", mk(), 0)


def test_cancel_with_threshold_only_once_ended():
    with pytest.raises(StreamNotEnded):
        lifecycle.check("cancel_with_threshold", mk(), 150)
    assert lifecycle.check("cancel_with_threshold", mk(), 200) is Status.ENDED
    with pytest.raises(AlreadyFinalized):
        lifecycle.check("cancel_with_threshold", mk(Status.FINALIZED), 300)
    with pytest.raises(StreamCancelled):
        lifecycle.check("cancel_with_threshold", mk(Status.CANCELLED), 300)
