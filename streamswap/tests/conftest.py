from __future__ import annotations

from typing import Callable, Optional

import pytest

from streamswap.config import ProtocolConfig, get_config
from streamswap.contract import StreamSwap
from streamswap.types import Context

IN = "uosmo"
OUT = "uatom"
ADMIN = "admin"
FEES = "fees"
CREATOR = "creator"
TREASURY = "treasury"
ALICE = "alice"
BOB = "bob"
CAROL = "carol"


@pytest.fixture(autouse=True)
def _fresh_config_cache():
    get_config.cache_clear()
    yield
    get_config.cache_clear()


@pytest.fixture
def protocol() -> ProtocolConfig:
    return ProtocolConfig(protocol_admin=ADMIN, fee_collector=FEES)


@pytest.fixture
def swap(protocol: ProtocolConfig) -> StreamSwap:
    return StreamSwap.instantiate(protocol)


def ctx(sender: str, now: int) -> Context:
    return Context(sender=sender, now=now)


def make_stream(
    swap: StreamSwap,
    *,
    output_total: int = 1_000,
    start: int = 0,
    end: int = 100,
    created_at: Optional[int] = None,
    treasury: str = TREASURY,
    name: str = "demo",
    threshold: Optional[int] = None,
) -> int:
    swap.bank.credit(CREATOR, OUT, output_total)
    return swap.create_stream(
        ctx(CREATOR, start if created_at is None else created_at),
        name=name,
        treasury=treasury,
        input_denom=IN,
        output_denom=OUT,
        output_total=output_total,
        start_time=start,
        end_time=end,
        threshold=threshold,
    )


def deposit(swap: StreamSwap, sid: int, who: str, amount: int, now: int, **kw):
    swap.bank.credit(who, IN, amount)
    return swap.subscribe(ctx(who, now), sid, amount, **kw)


@pytest.fixture
def stream(swap: StreamSwap) -> int:
    """output 1000 released linearly over [0, 100]."""
    return make_stream(swap)


@pytest.fixture
def subscribe(swap: StreamSwap) -> Callable[..., object]:
    def _sub(sid: int, who: str, amount: int, now: int, **kw):
        return deposit(swap, sid, who, amount, now, **kw)

    return _sub
