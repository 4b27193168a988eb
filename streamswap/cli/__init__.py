"""
streamswap.cli
--------------
Command-line entrypoints:

- simulate : replay a YAML/JSON scenario on a fresh in-memory contract
- config   : print the effective protocol configuration

Usage:
  python -m streamswap.cli simulate scenario.yaml
  python -m streamswap.cli --log-level DEBUG simulate scenario.yaml --json
  python -m streamswap.cli config
"""

from __future__ import annotations

import json
import logging
from typing import Optional

import typer

from ..config import get_config, load_config, summary
from ..errors import ConfigError
from ..version import __version__
from .simulate import simulate

__all__ = ["app", "build_app", "__version__"]


def build_app() -> typer.Typer:
    app = typer.Typer(
        name="streamswap",
        help="Stream sale tools: scenario simulation and config inspection",
        no_args_is_help=True,
        add_completion=False,
    )

    @app.callback(invoke_without_command=True)
    def _root(
        ctx: typer.Context,
        version: bool = typer.Option(False, "--version", "-V", help="Print version and exit", is_eager=True),
        log_level: Optional[str] = typer.Option(
            None, "--log-level", help="Logging level (default: STREAMSWAP_LOG_LEVEL or INFO)"
        ),
    ) -> None:
        if version:
            typer.echo(f"streamswap {__version__}")
            raise typer.Exit(0)
        try:
            level = load_config(overrides={"log_level": log_level}).log_level if log_level else get_config().log_level
        except ConfigError as e:
            raise typer.BadParameter(str(e), param_hint="--log-level") from e
        logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
        if ctx.invoked_subcommand is None:
            typer.echo(ctx.get_help())

    app.command("simulate")(simulate)

    @app.command("config")
    def show_config(as_json: bool = typer.Option(False, "--json", help="Print as JSON")) -> None:
        """Print the effective configuration (environment + defaults)."""
        cfg = get_config()
        if as_json:
            typer.echo(json.dumps(cfg.to_dict(), indent=2, sort_keys=True))
        else:
            typer.echo(summary(cfg))

    return app


app = build_app()
