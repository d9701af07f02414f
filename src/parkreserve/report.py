"""Rich console output for run results and snapshot contents."""

from __future__ import annotations

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from parkreserve.models import JobOutcome, JobState
from parkreserve.registry import TargetRegistry

console = Console()

_STATE_STYLE = {
    JobState.SUCCEEDED: "green",
    JobState.PERMANENTLY_FAILED: "red",
    JobState.ABORTED: "yellow",
}


def display_outcomes(outcomes: list[JobOutcome]) -> None:
    """One row per job, border colour from the overall result."""
    table = Table(show_header=True, box=None, padding=(0, 2))
    table.add_column("Target", style="bold")
    table.add_column("Ticket")
    table.add_column("Result")
    table.add_column("Attempts", justify="right")
    table.add_column("Elapsed", justify="right")
    table.add_column("Detail")

    for o in outcomes:
        style = _STATE_STYLE.get(o.state, "white")
        table.add_row(
            o.target.label,
            o.token.label,
            f"[{style}]{o.state.value}[/{style}]",
            str(o.attempts),
            f"{o.elapsed_seconds:.1f}s",
            o.message,
        )

    succeeded = sum(1 for o in outcomes if o.state is JobState.SUCCEEDED)
    border = "green" if outcomes and succeeded == len(outcomes) else "yellow" if succeeded else "red"
    console.print(
        Panel(table, title=f"RESERVATIONS: {succeeded}/{len(outcomes)} succeeded", border_style=border)
    )


def display_registry(registry: TargetRegistry) -> None:
    targets = Table(show_header=True, box=None, padding=(0, 2))
    targets.add_column("ID", justify="right", style="bold")
    targets.add_column("Title")
    targets.add_column("Opens")
    for t in registry.targets:
        targets.add_row(str(t.id), t.label, t.open_time.astimezone().strftime("%Y-%m-%d %H:%M:%S %Z"))
    console.print(Panel(targets, title="Reservation Targets"))

    tickets = Table(show_header=True, box=None, padding=(0, 2))
    tickets.add_column("Ticket", style="bold")
    tickets.add_column("Type")
    tickets.add_column("Day")
    for t in registry.tickets:
        tickets.add_row(t.token, registry.sku_name(t.token), t.label)
    console.print(Panel(tickets, title="Your Tickets"))
