"""Click CLI commands for parkreserve."""

from __future__ import annotations

import asyncio
import logging
import sys

import click
from rich.console import Console

from parkreserve.auth import SessionManager
from parkreserve.config import DEFAULT_CONFIG_PATH, load_run_config
from parkreserve.errors import ParkReserveError
from parkreserve.report import display_outcomes, display_registry
from parkreserve.runner import ReservationRunner

console = Console()

config_argument = click.argument(
    "config_file", default=DEFAULT_CONFIG_PATH, type=click.Path(dir_okay=False)
)


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s.%(msecs)03d [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
def main(verbose: bool) -> None:
    """parkreserve: fire park reservations the moment they open."""
    _setup_logging(verbose)


@main.command()
def configure() -> None:
    """Store the session cookie securely in the OS keyring."""
    cookie = click.prompt("Cookie header value", hide_input=True)
    try:
        SessionManager().store_cookie(cookie)
    except ParkReserveError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)
    console.print("[green]Cookie stored.[/green]")


@main.command()
@config_argument
def info(config_file: str) -> None:
    """List reservation targets and the tickets on this account."""
    try:
        config = load_run_config(config_file)
        registry = asyncio.run(ReservationRunner().fetch_registry(config))
    except ParkReserveError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)
    display_registry(registry)


@main.command()
@config_argument
def clock(config_file: str) -> None:
    """Show the local clock offset against the trusted time sources."""
    try:
        config = load_run_config(config_file)
        offset, ok = asyncio.run(ReservationRunner().measure_clock(config))
    except ParkReserveError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)

    if not ok:
        console.print("[yellow]No time source reachable; local clock will be used as is.[/yellow]")
    elif abs(offset) > 0.5:
        console.print(f"[red]Local clock is off by {offset:+.3f}s (will be compensated).[/red]")
    else:
        console.print(f"Clock offset: {offset * 1000:+.0f}ms (OK)")


@main.command()
@config_argument
def run(config_file: str) -> None:
    """Run every configured reservation job until each one finishes."""
    try:
        config = load_run_config(config_file)
    except ParkReserveError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)

    console.print(f"Loaded [bold]{config_file}[/bold]: {len(config.jobs)} job(s)")

    try:
        outcomes = asyncio.run(ReservationRunner().execute(config))
    except KeyboardInterrupt:
        console.print("\n[yellow]Cancelled.[/yellow]")
        sys.exit(130)
    except ParkReserveError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)

    display_outcomes(outcomes)
