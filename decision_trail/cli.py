"""Command-line interface for decision trail."""

import asyncio
import json
import sys
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from decision_trail import __version__
from decision_trail.catalog import JsonFileCatalog, ReferenceItem
from decision_trail.config import configure_logging, get_settings
from decision_trail.pipelines.competitor import (
    CompetitorDetectionError,
    DetectionOutcome,
    ReferenceValidationError,
    SelectionCriteria,
    run_competitor_detection,
)
from decision_trail.storage import create_storage, list_recent_executions
from decision_trail.trace.models import Execution, ExecutionStatus
from decision_trail.trace.recorder import ExecutionRecorder

app = typer.Typer(
    name="decision-trail",
    help="Decision Trail - Record and inspect why pipelines chose what they chose",
    add_completion=False,
)
console = Console()

STATUS_STYLES = {
    ExecutionStatus.SUCCESS: "green",
    ExecutionStatus.FAILURE: "red",
    ExecutionStatus.CANCELLED: "yellow",
    ExecutionStatus.PENDING: "dim",
}


@app.callback()
def main(
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose logging",
    ),
) -> None:
    settings = get_settings()
    configure_logging("DEBUG" if verbose else "WARNING", json_output=settings.log_json)


@app.command()
def detect(
    title: str = typer.Argument(..., help="Title of the reference product"),
    price: float = typer.Option(25.0, "--price", min=0.01, help="Reference price"),
    rating: Optional[float] = typer.Option(None, "--rating", min=0, max=5, help="Reference rating"),
    reviews: Optional[int] = typer.Option(None, "--reviews", min=0, help="Reference review count"),
    category: Optional[str] = typer.Option(None, "--category", help="Restrict the catalog to a category"),
    subcategory: Optional[str] = typer.Option(None, "--subcategory", help="Restrict the catalog to a subcategory"),
    reference_id: Optional[str] = typer.Option(None, "--reference-id", help="Catalog id of the reference product"),
    catalog_path: Optional[Path] = typer.Option(
        None,
        "--catalog",
        "-c",
        help="Catalog JSON file (default: CATALOG_PATH)",
        exists=True,
        file_okay=True,
        dir_okay=False,
        readable=True,
    ),
    auto_save: bool = typer.Option(False, "--auto-save", help="Persist after every step"),
) -> None:
    """Find the best competitor for a product and record the decision trail."""
    settings = get_settings()
    catalog_path = catalog_path or settings.catalog_path
    if catalog_path is None:
        console.print("[red]Error:[/red] no catalog given (use --catalog or set CATALOG_PATH)")
        sys.exit(1)

    reference = ReferenceItem(
        id=reference_id,
        title=title,
        price=price,
        rating=rating,
        review_count=reviews,
        category=category,
        subcategory=subcategory,
    )
    storage = create_storage(settings)

    try:
        outcome = asyncio.run(run_competitor_detection(
            reference,
            JsonFileCatalog(catalog_path),
            storage,
            SelectionCriteria.from_settings(settings),
            auto_save=auto_save or settings.auto_save,
        ))
    except ReferenceValidationError as e:
        console.print(f"[red]Invalid reference:[/red] {escape(str(e))}")
        console.print(f"[dim]Execution:[/dim] {e.execution_id}")
        sys.exit(1)
    except CompetitorDetectionError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        console.print(f"[dim]Execution:[/dim] {e.execution_id}")
        sys.exit(1)

    _display_detection(outcome)
    if outcome.winner is None:
        sys.exit(1)


@app.command()
def executions(
    pipeline: Optional[str] = typer.Option(None, "--pipeline", "-p", help="Only this pipeline"),
    limit: int = typer.Option(20, "--limit", "-n", min=1, max=200, help="Maximum rows"),
) -> None:
    """List recent executions, newest first."""
    storage = create_storage(get_settings())
    recent = asyncio.run(list_recent_executions(storage, pipeline_name=pipeline, limit=limit))

    if not recent:
        console.print("[dim]No executions recorded.[/dim]")
        return

    table = Table(title="Recent executions")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Pipeline", no_wrap=True)
    table.add_column("Status")
    table.add_column("Started")
    table.add_column("Steps", justify="right")
    table.add_column("Duration", justify="right")

    for execution in recent:
        table.add_row(
            escape(execution.id),
            escape(execution.pipeline_name),
            _styled_status(execution),
            execution.started_at.isoformat(timespec="seconds"),
            str(len(execution.steps)),
            f"{execution.total_duration} ms" if execution.total_duration is not None else "-",
        )

    console.print(table)


@app.command()
def show(
    execution_id: str = typer.Argument(..., help="Execution id"),
    as_json: bool = typer.Option(False, "--json", help="Print the raw stored document"),
) -> None:
    """Show one execution's steps, result and rule failure tallies."""
    storage = create_storage(get_settings())
    recorder = asyncio.run(ExecutionRecorder.load(execution_id, storage))
    if recorder is None:
        console.print(f"[red]Execution not found:[/red] {execution_id}")
        sys.exit(1)

    execution = recorder.execution
    if as_json:
        # Plain print so the output stays machine-readable
        print(json.dumps(execution.to_document(), indent=2, ensure_ascii=False))
        return

    console.print(
        Panel.fit(
            f"[bold]{escape(execution.pipeline_name)}[/bold]  {escape(execution.id)}\n"
            f"Status: {_styled_status(execution)}",
            border_style="blue",
        )
    )
    _display_steps(execution)

    if execution.result is not None:
        console.print(f"\n[bold]Result:[/bold] {escape(execution.result.reason or '-')}")
        if execution.result.confidence is not None:
            console.print(f"[dim]Confidence:[/dim] {execution.result.confidence}")

    summary = recorder.get_summary()
    if summary["filter_failures"]:
        console.print("\n[bold]Rule failures[/bold]")
        for rule, count in sorted(summary["filter_failures"].items(), key=lambda kv: -kv[1]):
            console.print(f"  {escape(rule)}: {count}")


@app.command()
def info() -> None:
    """Display version and configuration."""
    settings = get_settings()

    console.print(
        Panel.fit(
            "[bold blue]Decision Trail[/bold blue]",
            border_style="blue",
        )
    )

    table = Table(show_header=False, box=None)
    table.add_column("Setting", style="dim")
    table.add_column("Value")

    table.add_row("Version", __version__)
    table.add_row("Storage", settings.storage_backend)
    if settings.storage_backend == "sql":
        table.add_row("Database", settings.database_url)
    elif settings.storage_backend == "files":
        table.add_row("Executions Dir", str(settings.executions_dir))
    table.add_row("Catalog", str(settings.catalog_path) if settings.catalog_path else "-")
    table.add_row("Auto Save", str(settings.auto_save))
    table.add_row("Price Range", f"{settings.price_min_ratio}x - {settings.price_max_ratio}x")
    table.add_row("Min Rating", str(settings.min_rating))
    table.add_row("Min Reviews", str(settings.min_reviews))

    console.print(table)


def _styled_status(execution: Execution) -> str:
    style = STATUS_STYLES.get(execution.status, "white")
    return f"[{style}]{execution.status.value}[/{style}]"


def _display_steps(execution: Execution) -> None:
    table = Table(title="Steps")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Step", style="cyan", no_wrap=True)
    table.add_column("Candidates", justify="right")
    table.add_column("Passed", justify="right")
    table.add_column("Duration", justify="right")
    table.add_column("Reasoning")

    for index, step in enumerate(execution.steps, 1):
        verdicts = step.candidate_results or []
        table.add_row(
            str(index),
            escape(step.name),
            str(len(verdicts)) if step.candidate_results is not None else "-",
            str(sum(1 for v in verdicts if v.passed)) if step.candidate_results is not None else "-",
            f"{step.duration} ms" if step.duration is not None else "-",
            escape(step.reasoning),
        )

    console.print(table)


def _display_detection(outcome: DetectionOutcome) -> None:
    execution = outcome.execution
    _display_steps(execution)

    d = outcome.diagnostics
    console.print(
        f"\n[dim]Funnel:[/dim] {d['totalProducts']} products → {d['candidatesFound']} candidates "
        f"→ {d['passedFilters']} passed filters → {d['confirmedCompetitors']} competitors"
    )

    if outcome.winner is None:
        console.print("\n[yellow]No competitors found[/yellow]")
    else:
        console.print(f"\n[green]Selected:[/green] {escape(outcome.winner.item.title)}")
        console.print(f"[dim]Reason:[/dim] {escape(execution.result.reason)}")

    console.print(f"[dim]Execution:[/dim] {execution.id} ({_styled_status(execution)})")


if __name__ == "__main__":
    app()
