"""CLI command definitions for the earnings report analyzer."""
from __future__ import annotations

import asyncio
import csv
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from finanalyzer.app.engine import AnalysisEngine, EnrichmentOutcome
from finanalyzer.domain.errors import FinAnalyzerError
from finanalyzer.domain.models.report import FinancialReport
from finanalyzer.domain.services.comparison import CURRENCY, PERCENT, ComparisonResult
from finanalyzer.domain.services.metrics import (
    GOOD,
    BAD,
    format_currency,
    sentiment_label,
    summary_cards,
)
from finanalyzer.library.queries import ALL_TYPES
from finanalyzer.settings.config import Config
from finanalyzer.settings.loader import load_settings
from finanalyzer.utils.logging import configure_logging

console = Console()
app = typer.Typer(help="Extract, store and compare earnings reports from the terminal.")

_DIRECTION_STYLE = {GOOD: "green", BAD: "red"}


@dataclass
class AppContext:
    """Holds reusable process-wide objects for CLI commands."""

    config: Config
    engine: AnalysisEngine


def _init_context(debug_override: Optional[bool] = None) -> AppContext:
    """Create a context with configuration, logging, and engine wiring."""
    config = load_settings(debug_override=debug_override)
    configure_logging(debug=config.debug)
    engine = AnalysisEngine.from_config(config)
    return AppContext(config=config, engine=engine)


@app.callback()
def main_callback(
    ctx: typer.Context,
    debug: Optional[bool] = typer.Option(
        None,
        "--debug/--no-debug",
        help="Temporarily toggle verbose logging without touching environment variables.",
    ),
) -> None:
    """Attach the application context to Typer."""
    ctx.obj = _init_context(debug_override=debug)
    ctx.call_on_close(ctx.obj.engine.library.close)


def _context(ctx: typer.Context) -> AppContext:
    if ctx.obj is None:
        raise typer.Exit(code=1)
    return ctx.obj


@app.command()
def ingest(
    ctx: typer.Context,
    pdf_path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Earnings report PDF."),
    market: bool = typer.Option(False, "--market", help="Also fetch grounded market context."),
) -> None:
    """Extract a report from a PDF and add it to the library."""
    context = _context(ctx)
    console.rule(f"Ingesting {pdf_path.name}")

    async def _run():
        try:
            return await context.engine.ingest(
                pdf_path.read_bytes(), filename=pdf_path.name, fetch_market_context=market
            )
        finally:
            await context.engine.aclose()

    with console.status("[bold cyan]Analyzing document..."):
        outcome = asyncio.run(_run())

    for line in outcome.warnings:
        console.print(f"[yellow]- {line}[/yellow]")
    if not outcome.ok:
        console.print(f"[bold red]Ingest failed ({outcome.error.kind}):[/bold red] {outcome.error.message}")
        raise typer.Exit(code=1)

    console.print("[bold green]Report added to the library.[/bold green]")
    _print_report(outcome.report)


@app.command("list")
def list_reports(
    ctx: typer.Context,
    report_type: str = typer.Option(ALL_TYPES, "--type", help="Restrict to one report type, e.g. 10-Q."),
    search: str = typer.Option("", "--search", help="Match company name or ticker."),
) -> None:
    """Show library reports, newest first."""
    context = _context(ctx)
    reports = context.engine.candidates(report_type, search)
    if not reports:
        console.print("[yellow]No reports match.[/yellow]")
        return

    active_id = context.engine.library.active_id
    table = Table(title="Report Library")
    table.add_column("", width=1)
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Company")
    table.add_column("Type")
    table.add_column("Period")
    table.add_column("Revenue", justify="right")
    table.add_column("Sentiment")
    for report in reports:
        table.add_row(
            "*" if report.id == active_id else "",
            report.id,
            report.company_name,
            report.report_type,
            f"{report.report_period} {report.report_year}",
            format_currency(report.revenue, compact=True),
            f"{report.sentiment_score} ({sentiment_label(report.sentiment_score)})",
        )
    console.print(table)


@app.command()
def show(ctx: typer.Context, report_id: str = typer.Argument(..., help="Report id.")) -> None:
    """Print the headline figures of a stored report."""
    context = _context(ctx)
    _print_report(_require(context, report_id))


@app.command()
def activate(ctx: typer.Context, report_id: str = typer.Argument(..., help="Report id.")) -> None:
    """Mark a report as the active selection."""
    context = _context(ctx)
    try:
        context.engine.library.set_active(report_id)
    except FinAnalyzerError as exc:
        _fail(exc)
    console.print(f"Active report: {report_id}")


@app.command()
def delete(ctx: typer.Context, report_id: str = typer.Argument(..., help="Report id.")) -> None:
    """Remove a report from the library."""
    context = _context(ctx)
    try:
        context.engine.library.delete(report_id)
    except FinAnalyzerError as exc:
        _fail(exc)
    console.print(f"Deleted {report_id}; active report is now {context.engine.library.active_id or 'none'}")


@app.command()
def compare(
    ctx: typer.Context,
    baseline_id: str = typer.Argument(..., help="Baseline report id."),
    benchmark_id: str = typer.Argument(..., help="Benchmark report id."),
    csv_path: Optional[Path] = typer.Option(None, "--csv", help="Write the variance table to this CSV file."),
) -> None:
    """Validate and compute the variance between two reports."""
    context = _context(ctx)
    try:
        result = context.engine.compare(baseline_id, benchmark_id)
    except FinAnalyzerError as exc:
        _fail(exc)

    for issue in result.warnings:
        console.print(f"[yellow]{issue.message}[/yellow]")
    if not result.is_valid:
        for issue in result.errors:
            console.print(f"[bold red]{issue.message}[/bold red]")
        raise typer.Exit(code=1)

    _print_variance(result)

    if csv_path is not None:
        table = context.engine.export_table(result)
        target = csv_path
        if not target.is_absolute() and target.parent == Path("."):
            target = context.config.output_dir / target
        target.parent.mkdir(parents=True, exist_ok=True)
        with target.open("w", newline="", encoding="utf-8") as handle:
            csv.writer(handle).writerows(table)
        console.print(f"Variance table saved to {target}")


@app.command()
def enrich(
    ctx: typer.Context,
    report_id: str = typer.Argument(..., help="Report id."),
    market: bool = typer.Option(False, "--market", help="Fetch grounded market context."),
    audio: bool = typer.Option(False, "--audio", help="Synthesize an audio briefing."),
    image: bool = typer.Option(False, "--image", help="Render a guidance visualization."),
    aspect_ratio: str = typer.Option("16:9", "--aspect-ratio", help="Image aspect ratio: 16:9, 1:1 or 9:16."),
) -> None:
    """Attach optional enrichments to a stored report."""
    context = _context(ctx)
    if not (market or audio or image):
        console.print("[yellow]Nothing to do; pass --market, --audio or --image.[/yellow]")
        raise typer.Exit(code=2)
    _require(context, report_id)

    async def _run() -> list:
        outcomes = []
        try:
            if market:
                outcomes.append(("market context", await context.engine.enrich_market_context(report_id)))
            if audio:
                outcomes.append(("audio briefing", await context.engine.enrich_audio_briefing(report_id)))
            if image:
                outcomes.append(
                    (
                        "guidance visual",
                        await context.engine.enrich_visualized_guidance(report_id, aspect_ratio=aspect_ratio),
                    )
                )
        finally:
            await context.engine.aclose()
        return outcomes

    with console.status("[bold cyan]Enriching report..."):
        outcomes = asyncio.run(_run())

    failed = False
    for name, outcome in outcomes:
        failed = _print_enrichment(name, outcome) or failed
    if failed:
        raise typer.Exit(code=1)


@app.command()
def stages(ctx: typer.Context) -> None:
    """Display the ingest workflow path for quick operator reference."""
    context = _context(ctx)
    table = Table(title="Ingest Stages")
    table.add_column("Step", style="cyan")
    table.add_column("Description")

    for idx, step in enumerate(context.engine.describe_stages(), start=1):
        table.add_row(str(idx), step)

    console.print(table)


def _require(context: AppContext, report_id: str) -> FinancialReport:
    try:
        return context.engine.library.require(report_id)
    except FinAnalyzerError as exc:
        _fail(exc)


def _fail(exc: FinAnalyzerError) -> None:
    console.print(f"[bold red]{exc.kind}:[/bold red] {exc.message}")
    raise typer.Exit(code=1)


def _print_enrichment(name: str, outcome: EnrichmentOutcome) -> bool:
    if outcome.ok:
        console.print(f"[green]Attached {name}.[/green]")
        return False
    console.print(f"[red]Could not attach {name}: {outcome.error.message}[/red]")
    return True


def _print_report(report: FinancialReport) -> None:
    """Pretty-print headline figures for operators."""
    table = Table(title=f"{report.company_name} ({report.label})", show_header=True)
    table.add_column("Metric")
    table.add_column("Value", justify="right")
    table.add_column("YoY", justify="right")

    for card in summary_cards(report):
        change = "" if card.change is None else f"{card.change:+.1f}%"
        style = _DIRECTION_STYLE.get(card.direction)
        table.add_row(card.label, card.display, f"[{style}]{change}[/{style}]" if style and change else change)
    table.add_row("Gross Margin", f"{report.gross_margin:.1f}%", "")
    table.add_row("Sentiment", f"{report.sentiment_score} ({sentiment_label(report.sentiment_score)})", "")
    table.add_row(
        "Enrichments",
        ", ".join(
            name
            for name, present in (
                ("market", report.market_context is not None),
                ("audio", report.audio_briefing is not None),
                ("image", report.visualized_guidance is not None),
            )
            if present
        )
        or "none",
        "",
    )
    console.print(table)

    for highlight in report.highlights:
        console.print(f"- {highlight}")
    if report.market_context is not None:
        console.print(report.market_context.summary)


def _format_cell(value: Optional[float], fmt: str) -> str:
    if value is None:
        return "N/A"
    if fmt == CURRENCY:
        return format_currency(value, compact=True)
    if fmt == PERCENT:
        return f"{value:.2f}%"
    return f"{value:.2f}"


def _print_variance(result: ComparisonResult) -> None:
    base, bench = result.baseline, result.benchmark
    table = Table(title="Comparative Variance", header_style="bold magenta")
    table.add_column("Metric")
    table.add_column(f"{base.ticker} {base.report_period} {base.report_year}", justify="right")
    table.add_column(f"{bench.ticker} {bench.report_period} {bench.report_year}", justify="right")
    table.add_column("Delta", justify="right")
    table.add_column("Delta (%)", justify="right")

    for row in result.rows:
        style = _DIRECTION_STYLE.get(row.direction, "white")
        if row.delta is None:
            delta = "N/A"
        elif row.fmt == PERCENT:
            delta = f"{row.delta:+.2f} pts"
        else:
            delta = _format_cell(row.delta, row.fmt)
        pct = "N/A" if row.pct_change is None or row.fmt == PERCENT else f"{row.pct_change:+.2f}%"
        table.add_row(
            row.label,
            _format_cell(row.baseline, row.fmt),
            _format_cell(row.benchmark, row.fmt),
            f"[{style}]{delta}[/{style}]",
            pct,
        )
    console.print(table)
