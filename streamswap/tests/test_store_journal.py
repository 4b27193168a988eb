from __future__ import annotations

import pytest

from streamswap.config import ProtocolConfig
from streamswap.errors import PositionNotFound, StreamNotFound
from streamswap.journal import Journal
from streamswap.store import (DEFAULT_LIMIT, MAX_LIMIT, Store, clamp_limit,
                              dumps, loads, position_key, stream_key)
from streamswap.types import Position, Status, Stream


def _stream(sid: int) -> Stream:
    return Stream(
        id=sid,
        name=f"s{sid}",
        treasury="t",
        creator="c",
        input_denom="in",
        output_denom="out",
        start_time=0,
        end_time=10,
        output_total=100,
    )


# --------------------------------------------------------------------------- #
# Journal
# --------------------------------------------------------------------------- #


def test_commit_and_revert_basic():
    j = Journal()
    j.begin()
    j.set(b"a", b"1")
    assert j.get(b"a") == b"1"
    j.revert()
    assert j.get(b"a") is None

    j.begin()
    j.set("a", b"2")
    j.commit()
    assert j.get(b"a") == b"2"
    assert j.depth() == 0


def test_nested_checkpoints_merge_into_parent():
    base = {b"k": b"v0"}
    j = Journal(base)
    j.begin()
    j.set(b"k", b"v1")
    j.begin()
    j.set(b"k", b"v2")
    j.delete(b"gone")
    assert j.depth() == 2
    j.commit()
    # merged into the outer overlay, base untouched until the outer commit
    assert j.get(b"k") == b"v2"
    assert base[b"k"] == b"v0"
    j.commit()
    assert base[b"k"] == b"v2"


def test_inner_revert_keeps_outer_writes():
    j = Journal()
    j.begin()
    j.set(b"x", b"1")
    j.begin()
    j.set(b"x", b"2")
    j.set(b"y", b"3")
    j.revert()
    assert j.get(b"x") == b"1"
    assert not j.has(b"y")
    j.commit()
    assert j.snapshot() == {b"x": b"1"}


def test_delete_shadows_base_and_applies_on_commit():
    base = {b"p/1": b"a", b"p/2": b"b", b"q/1": b"c"}
    j = Journal(base)
    j.begin()
    j.delete(b"p/1")
    j.set(b"p/3", b"d")
    assert j.get(b"p/1") is None
    assert j.get(b"p/1", b"dflt") == b"dflt"
    assert list(j.items(b"p/")) == [(b"p/2", b"b"), (b"p/3", b"d")]
    assert j.pending_keys() == 2
    j.commit()
    assert b"p/1" not in base
    assert base[b"p/3"] == b"d"


def test_misuse_is_rejected():
    j = Journal()
    with pytest.raises(RuntimeError):
        j.commit()
    with pytest.raises(RuntimeError):
        j.revert()
    with pytest.raises(ValueError):
        j.set(b"k", b"")
    with pytest.raises(TypeError):
        j.set(b"k", 5)  # type: ignore[arg-type]


def test_listeners_fire_on_outermost_close_only():
    j = Journal()
    seen = []
    j.on_commit(lambda: seen.append("commit"))
    j.on_revert(lambda: seen.append("revert"))

    j.begin()
    j.begin()
    j.commit()
    assert seen == []
    j.revert()
    assert seen == ["revert"]

    j.begin()
    j.begin()
    j.revert()
    j.commit()
    assert seen == ["revert", "commit"]


# --------------------------------------------------------------------------- #
# Store
# --------------------------------------------------------------------------- #


def test_canonical_encoding_is_stable():
    a = dumps({"b": 1, "a": 2})
    b = dumps({"a": 2, "b": 1})
    assert a == b
    assert loads(a) == {"a": 2, "b": 1}


def test_keys_sort_numerically():
    assert stream_key(2) < stream_key(10)
    assert stream_key(7) == b"stream/00000000000000000007"
    assert position_key(7, "alice") == b"position/00000000000000000007/alice"


def test_stream_ids_are_sequential_and_survive_reload():
    base: dict = {}
    store = Store(Journal(base))
    assert [store.next_stream_id() for _ in range(3)] == [1, 2, 3]
    assert Store(Journal(base)).next_stream_id() == 4


def test_stream_record_roundtrip():
    store = Store(Journal())
    s = _stream(1)
    s.status = Status.ACTIVE
    s.index_per_share = 3 * 10**30
    store.save_stream(s)
    got = store.load_stream(1)
    assert got == s
    assert got.status is Status.ACTIVE
    assert store.find_stream(2) is None
    with pytest.raises(StreamNotFound) as ei:
        store.load_stream(2)
    assert ei.value.details["stream_id"] == 2


def test_position_records():
    store = Store(Journal())
    p = Position(stream_id=1, owner="bob", shares=10, operator="op")
    store.save_position(p)
    assert store.load_position(1, "bob") == p
    with pytest.raises(PositionNotFound):
        store.load_position(1, "alice")
    store.delete_position(1, "bob")
    assert store.find_position(1, "bob") is None


def test_config_roundtrip_and_missing():
    store = Store(Journal())
    with pytest.raises(LookupError):
        store.load_config()
    cfg = ProtocolConfig(protocol_admin="root", exit_fee_bps=25, accepted_in_denom="uosmo")
    store.save_config(cfg)
    assert store.load_config() == cfg


def test_clamp_limit():
    assert clamp_limit(None) == DEFAULT_LIMIT
    assert clamp_limit(5) == 5
    assert clamp_limit(1_000) == MAX_LIMIT
    assert clamp_limit(-1) == 0


def test_listing_pages_in_id_order():
    store = Store(Journal())
    for sid in range(1, 41):
        store.save_stream(_stream(sid))

    first = store.list_streams()
    assert [s.id for s in first] == list(range(1, 11))
    page = store.list_streams(start_after=10, limit=100)
    assert [s.id for s in page] == list(range(11, 41))
    assert store.list_streams(start_after=40) == []


def test_positions_listing_is_per_stream_and_owner_ordered():
    store = Store(Journal())
    for owner in ("carol", "alice", "bob"):
        store.save_position(Position(stream_id=1, owner=owner, shares=1))
    store.save_position(Position(stream_id=2, owner="zed", shares=1))
    # stream 1 must not pick up stream 10
    store.save_position(Position(stream_id=10, owner="aaron", shares=1))

    assert [p.owner for p in store.list_positions(1)] == ["alice", "bob", "carol"]
    assert [p.owner for p in store.list_positions(1, start_after="alice", limit=1)] == ["bob"]
    assert [p.owner for p in store.list_positions(2)] == ["zed"]
