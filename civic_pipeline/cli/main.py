"""Command-line interface for the civic data pipeline using Typer and Rich."""

import asyncio
import json
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from civic_pipeline.config.settings import settings
from civic_pipeline.config.logging import configure_logging, get_logger
from civic_pipeline.data_management.schemas.run_schema import PipelineRun, RunStatus, RunType

# Initialize CLI app
app = typer.Typer(
    help="Civic data pipeline - council data extraction, citation and verification",
    add_completion=False,
)

console = Console()

logger = get_logger("cli")

STATUS_STYLES = {
    RunStatus.COMPLETED: "green",
    RunStatus.FAILED: "red",
    RunStatus.CANCELLED: "yellow",
    RunStatus.RUNNING: "cyan",
}


@app.callback()
def main(
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Override CIVIC_LOG_LEVEL"),
    log_file: Optional[str] = typer.Option(None, "--log-file", help="Also write JSON logs to this file"),
) -> None:
    """Global logging options, applied before any command runs."""
    if log_level or log_file:
        configure_logging(level=log_level, log_file=log_file)


def _fact_store():
    from civic_pipeline.data_management.fact_store import FactStore

    return FactStore(str(Path(settings.data_dir) / "facts.json"))


def _print_run(run: PipelineRun) -> None:
    style = STATUS_STYLES.get(run.status, "white")
    table = Table(title=f"Run {run.id}", show_header=True, header_style="bold magenta")
    table.add_column("Step", style="cyan")
    table.add_column("Status")
    table.add_column("Records", justify="right")
    table.add_column("Duration (s)", justify="right")

    for name, step in run.steps.items():
        table.add_row(name, step.status.value, str(step.records), f"{step.duration_seconds:.2f}")

    console.print(table)
    console.print(f"Status: [{style}]{run.status.value}[/{style}]")
    console.print(
        f"Quality score: {run.metrics.data_quality_score:.1f} "
        f"({run.metrics.data_quality_delta:+.1f}) | "
        f"Fresh data: {run.metrics.fresh_data_percentage:.1f}% | "
        f"Units: {run.metrics.units_updated}"
    )

    for error in run.errors:
        console.print(f"[red]✗[/red] {error}")
    if run.recommendations:
        console.print(Panel("\n".join(f"• {r}" for r in run.recommendations), title="Recommendations"))


@app.command()
def run(
    run_type: RunType = typer.Argument(RunType.FULL, help="full or incremental"),
) -> None:
    """
    Execute one pipeline run and print its outcome.

    Exits with status 1 when the run does not complete.
    """
    from civic_pipeline.orchestration.pipeline_orchestrator import DataPipelineOrchestrator

    if run_type is RunType.VISUALIZATION_ONLY:
        console.print("[yellow]Use the 'visualize' command for visualization-only runs[/yellow]")
        raise typer.Exit(2)

    async def _run() -> PipelineRun:
        orchestrator = DataPipelineOrchestrator()
        try:
            return await orchestrator.run_full_pipeline(run_type)
        finally:
            await orchestrator.stop()

    logger.info(f"CLI run requested: {run_type.value}")
    result = asyncio.run(_run())
    _print_run(result)
    if result.status is not RunStatus.COMPLETED:
        raise typer.Exit(1)


@app.command()
def visualize() -> None:
    """Regenerate reports and metrics from stored facts."""
    from civic_pipeline.orchestration.pipeline_orchestrator import DataPipelineOrchestrator

    async def _run() -> PipelineRun:
        orchestrator = DataPipelineOrchestrator()
        try:
            return await orchestrator.run_visualization_only()
        finally:
            await orchestrator.stop()

    result = asyncio.run(_run())
    _print_run(result)
    if result.status is not RunStatus.COMPLETED:
        raise typer.Exit(1)


@app.command()
def status() -> None:
    """
    Display pipeline status: health score, last run and recent history.
    """
    from civic_pipeline.orchestration.pipeline_orchestrator import DataPipelineOrchestrator

    async def _collect():
        return await DataPipelineOrchestrator().get_status(), await _fact_store().get_storage_stats()

    pipeline_status, storage = asyncio.run(_collect())

    table = Table(title="Civic Pipeline Status", show_header=True, header_style="bold magenta")
    table.add_column("Component", style="cyan", width=20)
    table.add_column("Details", style="yellow")

    health_style = "green" if pipeline_status.health_score >= 70 else "red"
    table.add_row("Health score", f"[{health_style}]{pipeline_status.health_score:.0f}%[/{health_style}]")
    table.add_row("Runs in history", str(len(pipeline_status.run_history)))

    last = pipeline_status.last_run
    if last is not None:
        style = STATUS_STYLES.get(last.status, "white")
        table.add_row(
            "Last run",
            f"{last.id} [{style}]{last.status.value}[/{style}] at {last.start_time:%Y-%m-%d %H:%M}",
        )
    else:
        table.add_row("Last run", "never")

    table.add_row("Facts stored", f"{storage['total_facts']} ({storage['active_facts']} active)")
    table.add_row("Cited URLs", f"{storage['indexed_urls']} ({storage['verified_urls']} verified)")
    table.add_row("Logging", f"Level: {settings.log_level}, Format: {settings.log_format}")
    table.add_row("Data directory", settings.data_dir)
    console.print(table)


@app.command()
def start() -> None:
    """Run the scheduler until interrupted (Ctrl+C)."""
    from civic_pipeline.orchestration.pipeline_orchestrator import DataPipelineOrchestrator

    async def _serve() -> None:
        orchestrator = DataPipelineOrchestrator()
        await orchestrator.start()
        console.print("[green]✓[/green] Automated pipeline started. Press Ctrl+C to stop.")
        try:
            await asyncio.Event().wait()
        finally:
            await orchestrator.stop()

    try:
        asyncio.run(_serve())
    except KeyboardInterrupt:
        console.print("\n[yellow]Automated pipeline stopped[/yellow]")


@app.command()
def extract(
    file: Path = typer.Argument(..., exists=True, dir_okay=False, help="HTML file to classify"),
    url: Optional[str] = typer.Option(None, help="Source URL recorded on extracted records"),
) -> None:
    """Classify a saved council page and print what was found."""
    from civic_pipeline.sifters.financial_classifier import FinancialClassifier

    source_url = url or file.resolve().as_uri()
    result = FinancialClassifier().classify(file.read_text(errors="replace"), source_url)

    table = Table(title=f"Records in {file.name}", show_header=True, header_style="bold magenta")
    table.add_column("Type", style="cyan")
    table.add_column("Title")
    table.add_column("Department")
    table.add_column("Amount / Value", justify="right")
    table.add_column("Confidence", justify="right")

    for record in result.records():
        fields = record.record_fields()
        quantity = fields.get("amount") if fields.get("amount") is not None else fields.get("value")
        unit = fields.get("unit") or ""
        table.add_row(
            record.data_type,
            str(fields.get("title") or ""),
            str(fields.get("department") or ""),
            f"{quantity:,.2f} {unit}".strip() if quantity is not None else "",
            f"{record.confidence:.2f}",
        )
    console.print(table)

    if result.unclassified_facts:
        facts = Table(title="Unclassified quantities", show_header=True, header_style="bold magenta")
        facts.add_column("Kind", style="cyan")
        facts.add_column("Value", justify="right")
        facts.add_column("Unit")
        facts.add_column("Confidence")
        facts.add_column("Context", style="dim")
        for fact in result.unclassified_facts:
            facts.add_row(fact.kind.value, f"{fact.value:,.2f}", fact.unit, fact.confidence.value, fact.context)
        console.print(facts)

    console.print(f"\n[green]✓[/green] {result.total_records} records, "
                  f"{len(result.unclassified_facts)} unclassified quantities")


@app.command("verify-sources")
def verify_sources(
    limit: int = typer.Option(100, help="Maximum URLs to check"),
) -> None:
    """Check cited URLs that are due for verification."""
    from civic_pipeline.provenance.citation_service import CitationService

    async def _verify() -> dict:
        service = CitationService(_fact_store())
        try:
            return await service.bulk_verify_sources(limit=limit)
        finally:
            await service.close()

    stats = asyncio.run(_verify())
    console.print(
        f"Processed {stats['processed']}: "
        f"[green]{stats['verified']} verified[/green], "
        f"[red]{stats['broken']} broken[/red], "
        f"[yellow]{stats['errors']} errors[/yellow]"
    )


@app.command("citation-report")
def citation_report(
    as_json: bool = typer.Option(False, "--json", help="Print the raw report as JSON"),
) -> None:
    """Summarize citation coverage and health."""
    from civic_pipeline.provenance.citation_service import CitationService

    async def _report() -> dict:
        service = CitationService(_fact_store())
        try:
            return await service.generate_citation_report()
        finally:
            await service.close()

    report = asyncio.run(_report())
    if as_json:
        console.print_json(json.dumps(report, default=str))
        return

    table = Table(title="Citation Report", show_header=True, header_style="bold magenta")
    table.add_column("Metric", style="cyan")
    table.add_column("Count", justify="right")
    for key in ("total_records", "with_citations", "with_files", "with_parent_pages",
                "verified_sources", "broken_sources"):
        table.add_row(key.replace("_", " ").capitalize(), str(report[key]))
    for level, count in report["confidence_breakdown"].items():
        table.add_row(f"Confidence: {level}", str(count))
    console.print(table)

    if report["domain_breakdown"]:
        domains = Table(title="Top domains", show_header=True, header_style="bold magenta")
        domains.add_column("Domain", style="cyan")
        domains.add_column("Records", justify="right")
        for entry in report["domain_breakdown"]:
            domains.add_row(entry["domain"], str(entry["count"]))
        console.print(domains)


@app.command()
def version() -> None:
    """Display version information."""
    console.print("[bold]Civic Data Pipeline[/bold]")
    console.print("Version: 0.1.0")


if __name__ == "__main__":
    app()
