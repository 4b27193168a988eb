"""
streamswap.metrics — Prometheus counters for contract operations.

Centralized registry: consumers call `get_registry()` and
`generate_latest_text()` to expose metrics (e.g. from a node's RPC app).

Exposed metrics (names are prefixed with `streamswap_`):
  - ops_total{action,result}              : Counter — public operations by outcome
  - transfer_amount_total{direction}      : Counter — base units moved through custody

Labels:
  - action    ∈ {create_stream, subscribe, update_position, ..., update_protocol_admin}
  - result    ∈ {ok, error}
  - direction ∈ {in, out}
"""

from __future__ import annotations

from typing import Optional

from prometheus_client import (CONTENT_TYPE_LATEST, CollectorRegistry,
                               Counter, generate_latest)

_PREFIX = "streamswap_"

_registry: Optional[CollectorRegistry] = None

# Metric singletons (bound during _build_metrics)
OPS_TOTAL: Counter
TRANSFER_AMOUNT_TOTAL: Counter


def set_registry(registry: CollectorRegistry) -> None:
    """
    Inject a custom CollectorRegistry (e.g. an app-global one shared across
    modules). Must be called before the first metric is recorded.
    """
    global _registry
    if _registry is not None:
        return
    _registry = registry
    _build_metrics(registry)


def get_registry() -> CollectorRegistry:
    """Return the metrics registry, creating it (and the metrics) on first use."""
    global _registry
    if _registry is None:
        _registry = CollectorRegistry()
        _build_metrics(_registry)
    return _registry


def _build_metrics(reg: CollectorRegistry) -> None:
    global OPS_TOTAL, TRANSFER_AMOUNT_TOTAL

    OPS_TOTAL = Counter(
        _PREFIX + "ops_total",
        "Contract operations executed (by action and result).",
        labelnames=("action", "result"),
        registry=reg,
    )
    TRANSFER_AMOUNT_TOTAL = Counter(
        _PREFIX + "transfer_amount_total",
        "Base units moved through custody (in = received, out = sent).",
        labelnames=("direction",),
        registry=reg,
    )


# ------------------------------ helpers -------------------------------------


def observe_op(action: str, *, ok: bool) -> None:
    get_registry()
    OPS_TOTAL.labels(action=action, result="ok" if ok else "error").inc()


def observe_transfer(direction: str, amount: int) -> None:
    if amount <= 0:
        return
    get_registry()
    TRANSFER_AMOUNT_TOTAL.labels(direction=direction).inc(amount)


def generate_latest_text() -> bytes:
    """Prometheus text exposition for the streamswap registry."""
    return generate_latest(get_registry())


__all__ = [
    "CONTENT_TYPE_LATEST",
    "get_registry",
    "set_registry",
    "observe_op",
    "observe_transfer",
    "generate_latest_text",
]
