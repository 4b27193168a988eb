from __future__ import annotations

import pytest

from streamswap.errors import PositionNotFound, StreamNotFound
from streamswap.types import Status

from .conftest import ADMIN, ALICE, BOB, TREASURY, ctx, deposit, make_stream


def test_queries_never_write(swap, stream):
    deposit(swap, stream, ALICE, 100, 0)
    before = swap.journal.snapshot()

    view = swap.query_stream(stream, 60)
    assert view.stream.distributed_total == 600
    assert view.status is Status.ACTIVE
    pv = swap.query_position(stream, ALICE, 60)
    assert pv.pending_earned == 600

    assert swap.journal.snapshot() == before
    assert swap.store.load_stream(stream).last_updated == 0


def test_query_matches_what_withdraw_pays(swap, stream):
    deposit(swap, stream, ALICE, 100, 0)
    deposit(swap, stream, BOB, 300, 20)
    quoted = swap.query_position(stream, BOB, 70).pending_earned
    assert quoted == swap.withdraw(ctx(BOB, 70), stream)
    assert swap.query_position(stream, BOB, 70).pending_earned == 0


def test_query_in_the_past_does_not_rewind(swap, stream):
    deposit(swap, stream, ALICE, 100, 0)
    swap.update_stream(ctx(ALICE, 50), stream)
    view = swap.query_stream(stream, 10)
    assert view.stream.distributed_total == 500
    assert view.as_of == 10


def test_status_reported_from_the_clock(swap):
    sid = make_stream(swap, start=100, end=200, created_at=0)
    assert swap.query_stream(sid, 0).status is Status.PENDING
    assert swap.query_stream(sid, 150).status is Status.ACTIVE
    assert swap.query_stream(sid, 250).status is Status.ENDED
    # stored status is untouched
    assert swap.store.load_stream(sid).status is Status.PENDING


def test_cancelled_position_has_nothing_pending(swap, stream):
    deposit(swap, stream, ALICE, 100, 0)
    swap.cancel(ctx(ADMIN, 30), stream)
    pv = swap.query_position(stream, ALICE, 90)
    assert pv.status is Status.CANCELLED
    assert pv.pending_earned == 0
    sv = swap.query_stream(stream, 90)
    assert sv.stream.distributed_total == 300


def test_missing_records(swap, stream):
    with pytest.raises(StreamNotFound):
        swap.query_stream(42, 0)
    with pytest.raises(PositionNotFound):
        swap.query_position(stream, ALICE, 0)
    with pytest.raises(StreamNotFound):
        swap.list_positions(42)


def test_views_serialize(swap, stream):
    deposit(swap, stream, ALICE, 100, 0)
    d = swap.query_position(stream, ALICE, 25).to_dict()
    assert d["pending_earned"] == 250
    assert d["status"] == "Active"
    assert d["owner"] == ALICE
    s = swap.query_stream(stream, 25).to_dict()
    assert s["treasury"] == TREASURY
    assert s["as_of"] == 25


def test_list_streams_paging(swap):
    for i in range(35):
        make_stream(swap, output_total=10, name=f"s{i}")
    assert [s.id for s in swap.list_streams()] == list(range(1, 11))
    assert len(swap.list_streams(limit=100)) == 30
    assert [s.id for s in swap.list_streams(start_after=30, limit=100)] == [31, 32, 33, 34, 35]


def test_list_positions_paging(swap, stream):
    owners = [f"user{i:02d}" for i in range(12)]
    for who in owners:
        deposit(swap, stream, who, 1, 0)
    got = swap.list_positions(stream)
    assert [p.owner for p in got] == owners[:10]
    rest = swap.list_positions(stream, start_after=got[-1].owner)
    assert [p.owner for p in rest] == owners[10:]
    assert swap.query_config().protocol_admin == ADMIN
