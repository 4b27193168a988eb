# -*- coding: utf-8 -*-
"""
streamswap.ledger
=================

Checked, integer-only fixed-point arithmetic for stream accounting.

Goals
-----
- Never use Python floats. Every quantity is an `int`.
- Fail fast: leaving the numeric envelope raises `Overflow`, going negative
  raises `Underflow`, a zero divisor raises `DivisionByZero`. Nothing clamps
  or wraps silently.
- Explicit rounding: every division here rounds toward zero (floor, since all
  operands are non-negative), in exactly one step per call.

Conventions
-----------
- *Amounts* (supplies, deposits, shares, earned/spent totals) live in
  [0, U128_MAX].
- The *distribution index* is a scaled integer: output-per-share times
  INDEX_SCALE (1e18), living in [0, U256_MAX].
- Remainders that a floor throws away are returned to the caller so they can
  be carried forward instead of vanishing (see `index_increment` and
  `accrue`).
"""

from __future__ import annotations

from typing import Final, Tuple

from .errors import DivisionByZero, Overflow, Underflow

# ---------------------------------------------------------------------------
# Numeric envelopes & constants
# ---------------------------------------------------------------------------

U128_MAX: Final[int] = (1 << 128) - 1
U256_MAX: Final[int] = (1 << 256) - 1

INDEX_SCALE: Final[int] = 10**18  # 18 fractional digits for the per-share index
BPS_DEN: Final[int] = 10_000


# ---------------------------------------------------------------------------
# Guards
# ---------------------------------------------------------------------------


def _require_int(name: str, x: object) -> int:
    # bool is an int subclass; reject it so True never becomes an amount.
    if not isinstance(x, int) or isinstance(x, bool):
        raise TypeError(f"{name} must be int, got {type(x).__name__}")
    return x


def require_amount(x: int, *, name: str = "amount", bound: int = U128_MAX) -> int:
    """Return x if it lies in [0, bound]; raise Underflow/Overflow otherwise."""
    _require_int(name, x)
    if x < 0:
        raise Underflow(f"{name} is negative", details={name: x})
    if x > bound:
        raise Overflow(f"{name} exceeds envelope", details={name: x, "bound_bits": bound.bit_length()})
    return x


def _check_result(x: int, bound: int, op: str) -> int:
    if x > bound:
        raise Overflow(details={"op": op, "bound_bits": bound.bit_length()})
    return x


# ---------------------------------------------------------------------------
# Checked primitives
# ---------------------------------------------------------------------------


def checked_add(a: int, b: int, *, bound: int = U128_MAX) -> int:
    """a + b, raising Overflow above `bound`."""
    require_amount(a, name="a", bound=bound)
    require_amount(b, name="b", bound=bound)
    return _check_result(a + b, bound, "add")


def checked_sub(a: int, b: int, *, bound: int = U128_MAX) -> int:
    """a - b, raising Underflow when b > a."""
    require_amount(a, name="a", bound=bound)
    require_amount(b, name="b", bound=bound)
    if b > a:
        raise Underflow(details={"op": "sub", "a": a, "b": b})
    return a - b


def checked_mul(a: int, b: int, *, bound: int = U128_MAX) -> int:
    require_amount(a, name="a", bound=bound)
    require_amount(b, name="b", bound=bound)
    return _check_result(a * b, bound, "mul")


def mul_ratio(x: int, num: int, den: int, *, bound: int = U128_MAX) -> int:
    """
    floor(x * num / den) with a single rounding step.

    The intermediate product is exact (Python ints are unbounded); only the
    final result is checked against `bound`.
    """
    require_amount(x, name="x", bound=U256_MAX)
    require_amount(num, name="num", bound=U256_MAX)
    require_amount(den, name="den", bound=U256_MAX)
    if den == 0:
        raise DivisionByZero(details={"op": "mul_ratio"})
    return _check_result((x * num) // den, bound, "mul_ratio")


def div_ratio(x: int, y: int, *, bound: int = U256_MAX) -> int:
    """Scaled quotient floor(x * INDEX_SCALE / y): the fixed-point value of x/y."""
    return mul_ratio(x, INDEX_SCALE, y, bound=bound)


def checked_mul_by_elapsed_fraction(amount: int, elapsed: int, total_duration: int) -> int:
    """
    floor(amount * elapsed / total_duration), rounding toward zero once.

    `elapsed` is clamped into [0, total_duration], so the result can never
    exceed `amount`; with elapsed == total_duration the result is exactly
    `amount`.
    """
    require_amount(amount)
    _require_int("elapsed", elapsed)
    _require_int("total_duration", total_duration)
    if total_duration <= 0:
        raise DivisionByZero("total_duration must be positive", details={"total_duration": total_duration})
    if elapsed <= 0:
        return 0
    if elapsed >= total_duration:
        return amount
    return mul_ratio(amount, elapsed, total_duration)


def apply_bps(amount: int, bps: int) -> int:
    """floor(amount * bps / 10_000). `bps` must lie in [0, 10_000]."""
    _require_int("bps", bps)
    if bps < 0 or bps > BPS_DEN:
        raise Overflow("bps out of range", details={"bps": bps})
    return mul_ratio(amount, bps, BPS_DEN)


# ---------------------------------------------------------------------------
# Index primitives
# ---------------------------------------------------------------------------


def index_increment(delta: int, carry: int, total_shares: int) -> Tuple[int, int]:
    """
    Fold `delta` output units (plus a scaled `carry`) into a per-share index step.

    Returns (increment, new_carry) with

        num       = delta * INDEX_SCALE + carry
        increment = num // total_shares
        new_carry = num %  total_shares

    `increment * total_shares + new_carry == num` always holds, so nothing is
    lost: the remainder is offered again on the next advance.
    """
    require_amount(delta)
    require_amount(carry, name="carry", bound=U256_MAX)
    require_amount(total_shares, name="total_shares")
    if total_shares == 0:
        raise DivisionByZero("no shares outstanding", details={"op": "index_increment"})
    num = delta * INDEX_SCALE + carry
    inc, rem = divmod(num, total_shares)
    return _check_result(inc, U256_MAX, "index_increment"), rem


def accrue(shares: int, index_delta: int, pending: int) -> Tuple[int, int]:
    """
    Convert a position's index movement into whole output units.

    Returns (whole, new_pending) where

        num         = shares * index_delta + pending
        whole       = num // INDEX_SCALE
        new_pending = num %  INDEX_SCALE

    `pending` is the sub-unit remainder carried from the position's previous
    accrual.
    """
    require_amount(shares, name="shares")
    require_amount(index_delta, name="index_delta", bound=U256_MAX)
    require_amount(pending, name="pending", bound=INDEX_SCALE - 1)
    whole, frac = divmod(shares * index_delta + pending, INDEX_SCALE)
    return _check_result(whole, U128_MAX, "accrue"), frac


__all__ = [
    "U128_MAX",
    "U256_MAX",
    "INDEX_SCALE",
    "BPS_DEN",
    "require_amount",
    "checked_add",
    "checked_sub",
    "checked_mul",
    "mul_ratio",
    "div_ratio",
    "checked_mul_by_elapsed_fraction",
    "apply_bps",
    "index_increment",
    "accrue",
]
