"""
streamswap.cli.simulate
=======================

Replay a scenario file against a fresh in-memory contract and report the
resulting positions and balances.

Scenario format (YAML or JSON)
------------------------------
    config:                 # optional ProtocolConfig overrides
      exit_fee_bps: 100
    stream:
      creator: creator      # pays the output supply (minted for the run)
      name: demo
      treasury: treasury
      input_denom: uosmo
      output_denom: uatom
      output_total: 1000
      start_time: 0
      end_time: 100
      created_at: 0         # optional, defaults to start_time
      threshold: 150        # optional minimum input; below it only cancel_with_threshold settles
    steps:
      - {at: 0,   sender: alice, op: subscribe, amount: 100}
      - {at: 50,  sender: bob,   op: subscribe, amount: 100}
      - {at: 100, sender: treasury, op: finalize}
      - {at: 100, sender: carol, op: withdraw, expect_error: POSITION_NOT_FOUND}
    report_at: 100          # optional, defaults to the last step's time

Deposits are minted to the sender right before each subscribe/update_position
step, so scenarios only describe the flow.

Usage
-----
python -m streamswap.cli simulate scenario.yaml
python -m streamswap.cli simulate scenario.yaml --json
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import typer
import yaml
from rich import box
from rich.console import Console
from rich.table import Table

from ..config import ProtocolConfig, get_config
from ..contract import StreamSwap
from ..errors import NotFound, StreamSwapError
from ..types import Context

OPS = (
    "subscribe",
    "update_position",
    "sync_position",
    "update_stream",
    "withdraw",
    "exit",
    "finalize",
    "cancel",
    "cancel_with_threshold",
    "exit_cancelled",
    "update_operator",
)

STREAM_REQUIRED = ("name", "treasury", "input_denom", "output_denom", "output_total", "start_time", "end_time")
STREAM_OPTIONAL = ("creator", "created_at", "url", "threshold")


class ScenarioError(ValueError):
    pass


# ----------------- loading -----------------


def load_scenario(path: Path) -> Dict[str, Any]:
    text = path.read_text(encoding="utf-8")
    data = json.loads(text) if path.suffix.lower() == ".json" else yaml.safe_load(text)
    if not isinstance(data, dict):
        raise ScenarioError("scenario must be a mapping")
    if not isinstance(data.get("stream"), dict):
        raise ScenarioError("scenario needs a 'stream' mapping")
    stream = data["stream"]
    unknown = sorted(str(k) for k in set(stream) - set(STREAM_REQUIRED) - set(STREAM_OPTIONAL))
    if unknown:
        raise ScenarioError(f"stream: unknown keys {', '.join(unknown)}")
    missing = [k for k in STREAM_REQUIRED if k not in stream]
    if missing:
        raise ScenarioError(f"stream: missing keys {', '.join(missing)}")
    steps = data.get("steps") or []
    if not isinstance(steps, list):
        raise ScenarioError("'steps' must be a list")
    for i, step in enumerate(steps):
        if not isinstance(step, dict) or step.get("op") not in OPS:
            raise ScenarioError(f"step {i}: 'op' must be one of {', '.join(OPS)}")
        if "at" not in step or "sender" not in step:
            raise ScenarioError(f"step {i}: 'at' and 'sender' are required")
    return data


# ----------------- running -----------------


def _apply(swap: StreamSwap, sid: int, step: Mapping[str, Any]) -> Any:
    ctx = Context(sender=str(step["sender"]), now=int(step["at"]))
    op = step["op"]
    owner = step.get("owner")

    if op in ("subscribe", "update_position"):
        amount = int(step["amount"])
        if amount > 0:
            swap.bank.credit(ctx.sender, swap.store.load_stream(sid).input_denom, amount)
        if op == "subscribe":
            return swap.subscribe(ctx, sid, amount, owner=owner, operator=step.get("operator")).shares
        return swap.update_position(ctx, sid, amount, owner=owner).shares
    if op == "sync_position":
        return swap.sync_position(ctx, sid, owner=owner).earned_unclaimed
    if op == "update_stream":
        return swap.update_stream(ctx, sid).distributed_total
    if op == "withdraw":
        cap = step.get("cap")
        return swap.withdraw(ctx, sid, cap=None if cap is None else int(cap), owner=owner)
    if op == "exit":
        r = swap.exit(ctx, sid, owner=owner)
        return {"output_paid": r.output_paid, "input_refunded": r.input_refunded}
    if op == "finalize":
        r = swap.finalize(ctx, sid, new_treasury=step.get("new_treasury"))
        return {"proceeds": r.proceeds, "fee": r.fee, "swept_output": r.swept_output}
    if op == "cancel":
        return swap.cancel(ctx, sid).output_returned
    if op == "cancel_with_threshold":
        return swap.cancel_with_threshold(ctx, sid).output_returned
    if op == "exit_cancelled":
        return swap.exit_cancelled(ctx, sid, owner=owner)
    return swap.update_operator(ctx, sid, step.get("operator")).operator


def run_scenario(scenario: Mapping[str, Any], *, base: Optional[ProtocolConfig] = None) -> Dict[str, Any]:
    """
    Execute `scenario` and return a JSON-safe report:

        {"stream": {...}, "positions": [...], "balances": {...}, "steps": [...]}

    A step failing without a matching `expect_error` stops the run with the
    contract error.
    """
    base = base or get_config().protocol
    cfg = base.updated(**dict(scenario.get("config") or {}))
    swap = StreamSwap.instantiate(cfg)

    st = dict(scenario["stream"])
    creator = str(st.pop("creator", "creator"))
    created_at = int(st.pop("created_at", st.get("start_time", 0)))
    swap.bank.credit(creator, st["output_denom"], int(st["output_total"]))
    sid = swap.create_stream(Context(creator, created_at), **st)

    log: List[Dict[str, Any]] = []
    participants = {creator, str(st["treasury"]), cfg.fee_collector}
    last_at = created_at
    for step in scenario.get("steps") or []:
        participants.add(str(step["sender"]))
        last_at = int(step["at"])
        expected = step.get("expect_error")
        try:
            result = _apply(swap, sid, step)
        except StreamSwapError as e:
            if expected != e.code:
                raise
            log.append({"at": last_at, "op": step["op"], "sender": step["sender"], "error": e.code})
            continue
        if expected is not None:
            raise ScenarioError(f"step at {last_at} ({step['op']}): expected {expected}, got success")
        log.append({"at": last_at, "op": step["op"], "sender": step["sender"], "result": result})

    at = int(scenario.get("report_at", last_at))
    stream = swap.query_stream(sid, at).to_dict()
    positions = []
    for who in sorted(participants):
        try:
            positions.append(swap.query_position(sid, who, at).to_dict())
        except NotFound:
            continue
    balances = {who: swap.bank.balances(who) for who in sorted(participants)}
    return {"stream": stream, "positions": positions, "balances": balances, "steps": log}


# ----------------- rendering -----------------


def render(report: Mapping[str, Any], console: Console) -> None:
    s = report["stream"]
    head = Table(title=f"stream #{s['id']} {s['name']} @ t={s['as_of']}", box=box.SIMPLE)
    for col in ("status", "distributed", "unallocated", "claimed", "total_shares", "in_supply"):
        head.add_column(col, justify="right")
    head.add_row(
        s["status"], str(s["distributed_total"]), str(s["unallocated_total"]),
        str(s["claimed_total"]), str(s["total_shares"]), str(s["in_supply"]),
    )
    console.print(head)

    t = Table(title="positions", box=box.SIMPLE)
    t.add_column("owner")
    for col in ("shares", "spent", "earned", "withdrawn"):
        t.add_column(col, justify="right")
    for p in report["positions"]:
        t.add_row(p["owner"], str(p["shares"]), str(p["spent"]), str(p["pending_earned"]), str(p["withdrawn"]))
    console.print(t)

    b = Table(title="balances", box=box.SIMPLE)
    b.add_column("account")
    b.add_column("holdings", overflow="fold")
    for who, bal in report["balances"].items():
        b.add_row(who, ", ".join(f"{amt} {denom}" for denom, amt in sorted(bal.items())) or "-")
    console.print(b)


def simulate(
    scenario: Path = typer.Argument(..., exists=True, dir_okay=False, help="Scenario file (YAML or JSON)"),
    as_json: bool = typer.Option(False, "--json", help="Print the report as JSON"),
) -> None:
    """
    Run a scenario on a fresh in-memory contract and print positions and balances.
    """
    try:
        report = run_scenario(load_scenario(scenario))
    except ScenarioError as e:
        raise typer.BadParameter(str(e)) from e
    except StreamSwapError as e:
        typer.echo(json.dumps(e.to_dict(), sort_keys=True), err=True)
        raise typer.Exit(1) from e

    if as_json:
        typer.echo(json.dumps(report, indent=2, sort_keys=True))
        return
    render(report, Console())


__all__ = ["load_scenario", "run_scenario", "render", "simulate", "ScenarioError"]
