"""
streamswap.config — protocol configuration for stream sales.

This module centralizes the knobs the contract enforces at stream creation
and settlement:
  • Roles (protocol admin, fee collector)
  • Creation rules (accepted input denom, minimum duration, minimum lead time)
  • Settlement (exit fee in bps, who may finalize)

Configuration may be provided via environment variables. Safe defaults are
chosen so a local simulation works out of the box.

Environment variables (all optional):
  STREAMSWAP_PROTOCOL_ADMIN           -> admin address (default: admin)
  STREAMSWAP_FEE_COLLECTOR            -> fee collector address (default: fee_collector)
  STREAMSWAP_ACCEPTED_IN_DENOM        -> only this input denom may be streamed (default: any)
  STREAMSWAP_MIN_STREAM_SECONDS       -> integer ≥ 1 (default: 1)
  STREAMSWAP_MIN_SECONDS_UNTIL_START  -> integer ≥ 0 (default: 0)
  STREAMSWAP_EXIT_FEE_BPS             -> integer in [0, 9999] (default: 0)
  STREAMSWAP_FINALIZE_POLICY          -> "treasury" | "anyone" (default: treasury)
  STREAMSWAP_LOG_LEVEL                -> logging level for the CLI (default: INFO)

Programmatic usage:
    from streamswap.config import get_config
    cfg = get_config()
    contract = StreamSwap.instantiate(cfg.protocol)

The protocol part is also persisted in contract state at instantiation; after
that `StreamSwap.update_config` is the only way to change it.
"""

from __future__ import annotations

import logging
import os
from dataclasses import asdict, dataclass, replace
from functools import lru_cache
from typing import Any, Dict, Mapping, Optional, Union

from .errors import ConfigError

FINALIZE_POLICIES = ("treasury", "anyone")
MAX_EXIT_FEE_BPS = 9_999

# ------------------------------ dataclasses ---------------------------------


@dataclass(frozen=True)
class ProtocolConfig:
    protocol_admin: str = "admin"
    fee_collector: str = "fee_collector"
    accepted_in_denom: Optional[str] = None
    min_stream_seconds: int = 1
    min_seconds_until_start: int = 0
    exit_fee_bps: int = 0
    finalize_policy: str = "treasury"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @staticmethod
    def from_dict(d: Mapping[str, Any]) -> "ProtocolConfig":
        return validate(ProtocolConfig(**{k: d[k] for k in _FIELDS if k in d}))

    def updated(self, **changes: Any) -> "ProtocolConfig":
        """
        Return a validated copy with `changes` applied. None is applied like any
        other value: it clears `accepted_in_denom` and fails validation elsewhere.
        """
        unknown = set(changes) - set(_FIELDS)
        if unknown:
            raise ConfigError("unknown config fields", details={"fields": sorted(unknown)})
        return validate(replace(self, **changes))


_FIELDS = tuple(ProtocolConfig.__dataclass_fields__)


@dataclass(frozen=True)
class StreamSwapConfig:
    protocol: ProtocolConfig
    log_level: str = "INFO"

    def to_dict(self) -> Dict[str, object]:
        return {"protocol": self.protocol.to_dict(), "log_level": self.log_level}


# ------------------------------ validation ----------------------------------


def validate(p: ProtocolConfig) -> ProtocolConfig:
    if not p.protocol_admin:
        raise ConfigError("protocol_admin must be non-empty")
    if not p.fee_collector:
        raise ConfigError("fee_collector must be non-empty")
    if p.accepted_in_denom is not None and not p.accepted_in_denom:
        raise ConfigError("accepted_in_denom must be non-empty when set")
    if not isinstance(p.min_stream_seconds, int) or p.min_stream_seconds < 1:
        raise ConfigError("min_stream_seconds must be ≥ 1", details={"value": p.min_stream_seconds})
    if not isinstance(p.min_seconds_until_start, int) or p.min_seconds_until_start < 0:
        raise ConfigError("min_seconds_until_start must be ≥ 0", details={"value": p.min_seconds_until_start})
    if not isinstance(p.exit_fee_bps, int) or not (0 <= p.exit_fee_bps <= MAX_EXIT_FEE_BPS):
        raise ConfigError(
            f"exit_fee_bps must be in [0, {MAX_EXIT_FEE_BPS}]", details={"value": p.exit_fee_bps}
        )
    if p.finalize_policy not in FINALIZE_POLICIES:
        raise ConfigError(
            "finalize_policy must be one of " + "|".join(FINALIZE_POLICIES),
            details={"value": p.finalize_policy},
        )
    return p


# ------------------------------ loader --------------------------------------


def _int(name: str, raw: Union[str, int]) -> int:
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise ConfigError(f"{name} must be an integer", details={"value": str(raw)}) from None


def _log_level(raw: str) -> str:
    level = str(raw).strip().upper()
    if not isinstance(logging.getLevelName(level), int):
        raise ConfigError("unknown log level", details={"value": raw})
    return level


def load_config(
    env: Optional[Mapping[str, str]] = None,
    *,
    overrides: Optional[Mapping[str, Any]] = None,
) -> StreamSwapConfig:
    """
    Build a StreamSwapConfig from environment and optional overrides.

    Args:
        env: mapping to read variables from (default: os.environ)
        overrides: explicit field overrides, taking precedence over env; keys
          are the ProtocolConfig field names plus 'log_level'
    """
    env = os.environ if env is None else env
    overrides = dict(overrides or {})

    def pick(field: str, var: str, default: Any) -> Any:
        if field in overrides:
            return overrides[field]
        return env.get(var, default)

    accepted = pick("accepted_in_denom", "STREAMSWAP_ACCEPTED_IN_DENOM", None)
    protocol = ProtocolConfig(
        protocol_admin=str(pick("protocol_admin", "STREAMSWAP_PROTOCOL_ADMIN", "admin")).strip(),
        fee_collector=str(pick("fee_collector", "STREAMSWAP_FEE_COLLECTOR", "fee_collector")).strip(),
        accepted_in_denom=(str(accepted).strip() or None) if accepted is not None else None,
        min_stream_seconds=_int(
            "min_stream_seconds", pick("min_stream_seconds", "STREAMSWAP_MIN_STREAM_SECONDS", 1)
        ),
        min_seconds_until_start=_int(
            "min_seconds_until_start",
            pick("min_seconds_until_start", "STREAMSWAP_MIN_SECONDS_UNTIL_START", 0),
        ),
        exit_fee_bps=_int("exit_fee_bps", pick("exit_fee_bps", "STREAMSWAP_EXIT_FEE_BPS", 0)),
        finalize_policy=str(pick("finalize_policy", "STREAMSWAP_FINALIZE_POLICY", "treasury")).strip().lower(),
    )

    return StreamSwapConfig(
        protocol=validate(protocol),
        log_level=_log_level(pick("log_level", "STREAMSWAP_LOG_LEVEL", "INFO")),
    )


@lru_cache(maxsize=1)
def get_config() -> StreamSwapConfig:
    """
    Cached global config. Suitable for application bootstraps and module-level consumers.
    """
    return load_config()


# ----------------------------- pretty-print ---------------------------------


def summary(cfg: Optional[StreamSwapConfig] = None) -> str:
    """
    Return a human-friendly one-line summary of the protocol knobs.
    """
    cfg = cfg or get_config()
    p = cfg.protocol
    return (
        "streamswap{"
        f"admin={p.protocol_admin}, fee_collector={p.fee_collector}, "
        f"in_denom={p.accepted_in_denom or '*'}, min_duration={p.min_stream_seconds}s, "
        f"min_lead={p.min_seconds_until_start}s, exit_fee={p.exit_fee_bps}bps, "
        f"finalize={p.finalize_policy}, log={cfg.log_level}"
        "}"
    )


__all__ = [
    "FINALIZE_POLICIES",
    "MAX_EXIT_FEE_BPS",
    "ProtocolConfig",
    "StreamSwapConfig",
    "validate",
    "load_config",
    "get_config",
    "summary",
]
