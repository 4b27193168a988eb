"""
streamswap.errors — typed failures for the stream accounting core.

Every failure is terminal for the call that raised it: the contract layer
reverts the journal checkpoint and re-raises the same exception object, so the
boundary always sees the original error. Nothing here is retried.

Hierarchy
---------
StreamSwapError (base)
 ├─ LedgerError          : fixed-point arithmetic violations
 │   ├─ Overflow
 │   ├─ Underflow
 │   └─ DivisionByZero
 ├─ InvalidAmount        : zero/negative deposit, bad withdraw cap
 ├─ LifecycleError       : operation not legal in the stream's phase
 │   ├─ StreamNotActive
 │   ├─ StreamNotEnded
 │   ├─ AlreadyFinalized
 │   ├─ StreamCancelled
 │   ├─ StreamNotCancelled
 │   ├─ ThresholdNotReached
 │   └─ ThresholdReached
 ├─ NotFound
 │   ├─ StreamNotFound
 │   └─ PositionNotFound
 ├─ Unauthorized         : caller is neither owner nor operator / admin
 ├─ InvalidStream        : creation parameters rejected
 ├─ ConfigError          : protocol configuration rejected
 └─ CustodyError         : asset movement rejected by the custody collaborator
     └─ InsufficientFunds

All classes are dependency-free and JSON-serializable via `to_dict()`.
"""

from __future__ import annotations

import json
from typing import Any, Dict, Mapping, Optional


class StreamSwapError(Exception):
    """Base class for streamswap domain errors."""

    code: str = "STREAMSWAP_ERROR"

    def __init__(self, message: str = "", *, details: Optional[Mapping[str, Any]] = None) -> None:
        self.message = message or self.__class__.__name__
        self.details = dict(details or {})
        super().__init__(self.__str__())

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": dict(self.details)}

    def __str__(self) -> str:
        if self.details:
            packed = json.dumps(self.details, sort_keys=True, separators=(",", ":"), default=str)
            return f"{self.code}: {self.message} [{packed}]"
        return f"{self.code}: {self.message}"


# ---------------------------------------------------------------------------
# Ledger
# ---------------------------------------------------------------------------


class LedgerError(StreamSwapError):
    code = "LEDGER_ERROR"


class Overflow(LedgerError):
    """Result exceeds the numeric envelope (U128 for amounts, U256 for the index)."""

    code = "OVERFLOW"

    def __init__(self, message: str = "arithmetic overflow", *, details: Optional[Mapping[str, Any]] = None) -> None:
        super().__init__(message, details=details)


class Underflow(LedgerError):
    """Subtraction would go negative."""

    code = "UNDERFLOW"

    def __init__(self, message: str = "arithmetic underflow", *, details: Optional[Mapping[str, Any]] = None) -> None:
        super().__init__(message, details=details)


class DivisionByZero(LedgerError):
    code = "DIVISION_BY_ZERO"

    def __init__(self, message: str = "division by zero", *, details: Optional[Mapping[str, Any]] = None) -> None:
        super().__init__(message, details=details)


# ---------------------------------------------------------------------------
# Amounts
# ---------------------------------------------------------------------------


class InvalidAmount(StreamSwapError):
    code = "INVALID_AMOUNT"

    def __init__(
        self,
        message: str = "invalid amount",
        *,
        amount: Optional[int] = None,
        details: Optional[Mapping[str, Any]] = None,
    ) -> None:
        d = dict(details or {})
        if amount is not None:
            d.setdefault("amount", int(amount))
        super().__init__(message, details=d)


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


class LifecycleError(StreamSwapError):
    """An operation is not legal given the stream's phase and the current time."""

    code = "LIFECYCLE_ERROR"

    def __init__(
        self,
        message: str = "",
        *,
        stream_id: Optional[int] = None,
        status: Optional[str] = None,
        now: Optional[int] = None,
        details: Optional[Mapping[str, Any]] = None,
    ) -> None:
        d = dict(details or {})
        if stream_id is not None:
            d.setdefault("stream_id", int(stream_id))
        if status is not None:
            d.setdefault("status", status)
        if now is not None:
            d.setdefault("now", int(now))
        super().__init__(message, details=d)


class StreamNotActive(LifecycleError):
    code = "STREAM_NOT_ACTIVE"


class StreamNotEnded(LifecycleError):
    code = "STREAM_NOT_ENDED"


class AlreadyFinalized(LifecycleError):
    code = "ALREADY_FINALIZED"


class StreamCancelled(LifecycleError):
    code = "STREAM_CANCELLED"


class StreamNotCancelled(LifecycleError):
    code = "STREAM_NOT_CANCELLED"


class ThresholdNotReached(LifecycleError):
    """The stream ended holding less input than its threshold."""

    code = "THRESHOLD_NOT_REACHED"


class ThresholdReached(LifecycleError):
    code = "THRESHOLD_REACHED"


# ---------------------------------------------------------------------------
# Lookup / access
# ---------------------------------------------------------------------------


class NotFound(StreamSwapError):
    code = "NOT_FOUND"


class StreamNotFound(NotFound):
    code = "STREAM_NOT_FOUND"

    def __init__(self, stream_id: int, *, details: Optional[Mapping[str, Any]] = None) -> None:
        d = dict(details or {})
        d["stream_id"] = int(stream_id)
        super().__init__("stream not found", details=d)


class PositionNotFound(NotFound):
    code = "POSITION_NOT_FOUND"

    def __init__(self, stream_id: int, owner: str, *, details: Optional[Mapping[str, Any]] = None) -> None:
        d = dict(details or {})
        d.update({"stream_id": int(stream_id), "owner": owner})
        super().__init__("position not found", details=d)


class Unauthorized(StreamSwapError):
    code = "UNAUTHORIZED"

    def __init__(
        self,
        message: str = "unauthorized",
        *,
        sender: Optional[str] = None,
        details: Optional[Mapping[str, Any]] = None,
    ) -> None:
        d = dict(details or {})
        if sender is not None:
            d.setdefault("sender", sender)
        super().__init__(message, details=d)


# ---------------------------------------------------------------------------
# Admin / configuration
# ---------------------------------------------------------------------------


class InvalidStream(StreamSwapError):
    """Stream creation parameters were rejected."""

    code = "INVALID_STREAM"


class ConfigError(StreamSwapError):
    code = "CONFIG_ERROR"


# ---------------------------------------------------------------------------
# Custody
# ---------------------------------------------------------------------------


class CustodyError(StreamSwapError):
    """The custody collaborator refused an asset movement."""

    code = "CUSTODY_ERROR"


class InsufficientFunds(CustodyError):
    code = "INSUFFICIENT_FUNDS"

    def __init__(
        self,
        *,
        account: str,
        denom: str,
        have: int,
        need: int,
        message: str = "insufficient funds",
    ) -> None:
        super().__init__(
            message,
            details={"account": account, "denom": denom, "have": int(have), "need": int(need)},
        )


__all__ = [
    "StreamSwapError",
    "LedgerError",
    "Overflow",
    "Underflow",
    "DivisionByZero",
    "InvalidAmount",
    "LifecycleError",
    "StreamNotActive",
    "StreamNotEnded",
    "AlreadyFinalized",
    "StreamCancelled",
    "StreamNotCancelled",
    "ThresholdNotReached",
    "ThresholdReached",
    "NotFound",
    "StreamNotFound",
    "PositionNotFound",
    "Unauthorized",
    "InvalidStream",
    "ConfigError",
    "CustodyError",
    "InsufficientFunds",
]
