"""taskbulk CLI.

Usage:
    taskbulk simulate [insert|update|move] [OPTIONS]
    taskbulk profile --items 750

Exit codes: 0=completed, 1=completed with failures, 2=stopped early.
"""

# Load .env file before settings are read
from dotenv import load_dotenv

load_dotenv()

import asyncio
import logging
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import BarColumn, MofNCompleteColumn, Progress, TextColumn
from rich.table import Table

from taskbulk.config import EngineProfile, get_settings, legacy_profile_for
from taskbulk.core.types import BulkResult, RunOutcome, ThresholdsSnapshot
from taskbulk.observability import RunObservers, setup_logging
from taskbulk.rate_limit import BulkRunner, classify_zone
from taskbulk.simulation import SimulatedTasksApi, VirtualClock
from taskbulk.tasks import TaskBulkService, TaskUpdate

app = typer.Typer(
    name="taskbulk",
    help="Adaptive rate-limited bulk task operations",
    add_completion=False,
)

console = Console()

OPERATIONS = ("insert", "update", "move")

EXIT_CODES = {
    RunOutcome.COMPLETED: 0,
    RunOutcome.COMPLETED_WITH_FAILURES: 1,
    RunOutcome.STOPPED: 2,
}

ZONE_STYLES = {"red": "red", "yellow": "yellow", "green": "green"}


def _setup_logging(quiet: bool, verbose: bool, json_logs: bool) -> None:
    level = logging.WARNING if quiet else (logging.DEBUG if verbose else logging.INFO)
    if json_logs:
        setup_logging(level=level, json_format=True)
    else:
        setup_logging(level=level, handler=RichHandler(console=console, show_path=False))


@app.command()
def simulate(
    operation: Annotated[str, typer.Argument(help="Operation: insert, update or move")] = "insert",
    items: Annotated[int, typer.Option("--items", "-n", help="Number of tasks", min=0)] = 50,
    rate: Annotated[float, typer.Option("--rate", help="Quota refill, requests/second")] = 2.0,
    burst: Annotated[int, typer.Option("--burst", help="Quota burst size")] = 10,
    transient_rate: Annotated[
        float, typer.Option("--transient-rate", help="Probability of a 503 per request")
    ] = 0.0,
    missing: Annotated[
        int, typer.Option("--missing", help="Update only: ids absent from the list")
    ] = 0,
    seed: Annotated[int, typer.Option("--seed", help="Random seed")] = 0,
    keep_going: Annotated[
        bool, typer.Option("--keep-going", "-k", help="Do not stop on the first failure")
    ] = False,
    legacy_tiers: Annotated[
        bool, typer.Option("--legacy-tiers", help="Size-tiered starting delay and retries")
    ] = False,
    time_scale: Annotated[
        float, typer.Option("--time-scale", help="Fraction of simulated waits to really wait")
    ] = 0.0,
    quiet: Annotated[bool, typer.Option("--quiet", "-q", help="Minimal output")] = False,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Verbose output")] = False,
    json_logs: Annotated[bool, typer.Option("--json-logs", help="Structured JSON logs")] = False,
) -> None:
    """Run a bulk operation against the simulated rate-limited API.

    Examples:
        taskbulk simulate insert -n 200 --burst 5
        taskbulk simulate update -n 20 --missing 1
        taskbulk simulate move -n 30 --transient-rate 0.2 --keep-going
    """
    _setup_logging(quiet=quiet, verbose=verbose, json_logs=json_logs)

    operation = operation.lower()
    if operation not in OPERATIONS:
        console.print(f"[red]Invalid operation: {operation}. Use insert, update or move.[/red]")
        raise typer.Exit(code=1)

    settings = get_settings()
    try:
        profile = settings.to_profile()
    except ValueError as e:
        console.print(f"[red]Invalid settings: {e}[/red]")
        raise typer.Exit(code=1)

    stop_on_failure = settings.stop_on_failure and not keep_going

    if not quiet:
        console.print("=" * 44)
        console.print("[bold]Bulk Simulation[/bold]")
        console.print(f"Operation: {operation}")
        console.print(f"Items: {items}")
        console.print(f"Quota: {rate}/s, burst {burst}")
        console.print(f"Stop on failure: {stop_on_failure}")
        console.print("=" * 44)

    result = asyncio.run(
        _run_simulation(
            operation=operation,
            items=items,
            profile=profile,
            rate=rate,
            burst=burst,
            transient_rate=transient_rate,
            missing=missing,
            seed=seed,
            stop_on_failure=stop_on_failure,
            legacy_tiers=legacy_tiers,
            time_scale=time_scale,
            show_progress=not quiet,
        )
    )

    if not quiet and result.metrics is not None:
        console.print()
        console.print(result.metrics.to_summary())
        for failure in result.failed[:10]:
            console.print(
                f"[red]  #{failure.item.index + 1}: {failure.error} "
                f"({failure.failure_class.value})[/red]"
            )

    outcome = result.outcome
    style = {"completed": "green", "completed_with_failures": "yellow"}.get(outcome.value, "red")
    console.print(f"[{style}]Outcome: {outcome.value}[/{style}]")
    raise typer.Exit(code=EXIT_CODES[outcome])


async def _run_simulation(
    *,
    operation: str,
    items: int,
    profile: EngineProfile,
    rate: float,
    burst: int,
    transient_rate: float,
    missing: int,
    seed: int,
    stop_on_failure: bool,
    legacy_tiers: bool,
    time_scale: float,
    show_progress: bool,
) -> BulkResult:
    clock = VirtualClock(scale=time_scale)
    api = SimulatedTasksApi(
        clock, rate=rate, burst=burst, transient_rate=transient_rate, seed=seed
    )
    api.add_list("inbox")
    api.add_list("archive")

    progress = Progress(
        TextColumn("[bold]{task.description}"),
        BarColumn(),
        MofNCompleteColumn(),
        TextColumn("{task.fields[delay]}"),
        console=console,
        disable=not show_progress,
    )
    bar = progress.add_task(f"Bulk {operation}", total=items, delay="")
    thresholds: list[ThresholdsSnapshot] = []

    def on_thresholds(snapshot: ThresholdsSnapshot | None) -> None:
        if snapshot is not None:
            thresholds[:] = [snapshot]

    def on_delay(delay_ms: int) -> None:
        if delay_ms == 0 or not thresholds:
            progress.update(bar, delay="")
            return
        t = thresholds[0]
        zone = classify_zone(delay_ms, t.average, t.sustainable).value
        progress.update(bar, delay=f"[{ZONE_STYLES[zone]}]delay {delay_ms}ms[/]")

    def on_progress(completed: int, total: int, snapshot: ThresholdsSnapshot) -> None:
        progress.update(bar, completed=completed)

    runner = BulkRunner(
        profile,
        observers=RunObservers(on_delay_change=on_delay, on_thresholds_change=on_thresholds),
        clock=clock.now,
        sleep=clock.sleep,
    )
    service = TaskBulkService(api, runner, legacy_tiers=legacy_tiers)

    with progress:
        if operation == "insert":
            tasks = [{"title": f"Task {n + 1}"} for n in range(items)]
            return await service.bulk_insert(
                "inbox", tasks, on_progress=on_progress, stop_on_failure=stop_on_failure
            )

        ids = api.seed_tasks("inbox", max(items - missing, 0))
        ids += [f"missing-{n + 1}" for n in range(min(missing, items))]

        if operation == "update":
            updates = [TaskUpdate(task_id=i, fields={"notes": "updated"}) for i in ids]
            return await service.bulk_update(
                "inbox", updates, on_progress=on_progress, stop_on_failure=stop_on_failure
            )

        return await service.bulk_move(
            "inbox", "archive", ids, on_progress=on_progress, stop_on_failure=stop_on_failure
        )


@app.command()
def profile(
    items: Annotated[
        int | None, typer.Option("--items", "-n", help="Batch size for legacy tiers")
    ] = None,
) -> None:
    """Show the engine profile from settings, or the legacy tier for a batch size."""
    if items is None:
        selected = get_settings().to_profile()
        title = "Engine profile (settings)"
    else:
        selected = legacy_profile_for(items)
        title = f"Legacy profile for {items} items"

    table = Table(title=title)
    table.add_column("Parameter")
    table.add_column("Value", justify="right")
    table.add_row("floor", f"{selected.floor_ms}ms")
    table.add_row("peak", f"{selected.peak_ms}ms")
    table.add_row("initial delay", f"{selected.initial_delay_ms}ms")
    table.add_row("sustainable", f"{selected.initial_sustainable_ms}ms")
    table.add_row("max retries", str(selected.max_retries))
    table.add_row("transient base delay", f"{selected.transient_base_delay_ms}ms")
    table.add_row(
        "rate limit backoff",
        f"{selected.rate_limit_backoff_base_ms}+{selected.rate_limit_backoff_step_ms}/hit "
        f"(max {selected.rate_limit_backoff_max_ms}ms)",
    )
    table.add_row(
        "circuit breaker",
        f"{selected.circuit_breaker_threshold} failures → "
        f"{selected.circuit_breaker_pause_ms}ms pause",
    )
    console.print(table)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
