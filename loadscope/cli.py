"""Typer CLI — analyze, history, show, delete, cleanup, trends commands."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from pathlib import Path
from typing import Annotated, Any, Optional

import orjson
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from loadscope import __version__
from loadscope.config import Settings
from loadscope.models.score import PerformanceScore
from loadscope.models.session import PersistentSession
from loadscope.models.trends import TrendAnalysisResult
from loadscope.storage.session_store import SessionStore

app = typer.Typer(
    name="loadscope",
    help="Page-load performance analysis: timing capture, scoring, third-party attribution.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)
console = Console()

RATING_STYLES = {"good": "green", "needs_improvement": "yellow", "poor": "red"}
SEVERITY_STYLES = {"critical": "red", "warning": "yellow", "minor": "cyan"}
IMPACT_STYLES = {"critical": "red", "high": "yellow", "medium": "cyan", "low": "dim"}


def version_callback(value: bool) -> None:
    if value:
        console.print(f"loadscope v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    config: Annotated[
        Path,
        typer.Option("--config", "-c", help="Path to loadscope.yaml config."),
    ] = Path("loadscope.yaml"),
    verbose: Annotated[bool, typer.Option("--verbose", help="Enable debug logging.")] = False,
    version: Annotated[
        Optional[bool],
        typer.Option("--version", "-v", help="Show version and exit.", callback=version_callback),
    ] = None,
) -> None:
    """loadscope — page-load performance analysis."""
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(message)s",
            handlers=[RichHandler(console=console, rich_tracebacks=True)],
        )
    ctx.obj = Settings.load(config)


def _styled(text: str, rating: str) -> str:
    style = RATING_STYLES.get(rating, "white")
    return f"[{style}]{text}[/{style}]"


def _open_store(settings: Settings) -> SessionStore:
    return SessionStore(settings.storage_dir, retention=settings.retention)


def _local(ts: datetime | None) -> datetime | None:
    """Attach the local timezone to a naive command-line datetime."""
    if ts is None or ts.tzinfo is not None:
        return ts
    return ts.astimezone()


def _read_json(path: Path) -> Any:
    if not path.exists():
        raise typer.BadParameter(f"File not found: {path}")
    try:
        return orjson.loads(path.read_bytes())
    except orjson.JSONDecodeError as e:
        raise typer.BadParameter(f"{path} is not valid JSON: {e}") from e


def _print_score(score: PerformanceScore) -> None:
    table = Table(title=f"Performance Score: {_styled(str(score.overall), score.rating.value)}")
    table.add_column("Category")
    table.add_column("Score", justify="right")
    table.add_column("Value")
    table.add_column("Recommendation")
    for name, category in score.categories().items():
        table.add_row(
            name.replace("_", " ").title(),
            _styled(str(category.score), category.rating.value),
            category.value,
            category.recommendation,
        )
    console.print(table)


@app.command()
def analyze(
    ctx: typer.Context,
    samples_json: Annotated[
        Path, typer.Argument(help="JSON file with a timing sample batch (list or {samples: [...]}).")
    ],
    url: Annotated[
        Optional[str], typer.Option("--url", "-u", help="Page URL the samples were captured from.")
    ] = None,
    vitals: Annotated[
        Optional[Path], typer.Option("--vitals", help="JSON file with {lcp, cls, fid}.")
    ] = None,
    tag: Annotated[
        Optional[list[str]], typer.Option("--tag", "-t", help="Tag for the saved session.")
    ] = None,
    save: Annotated[bool, typer.Option("--save/--no-save", help="Persist the session.")] = True,
    har: Annotated[Optional[Path], typer.Option("--har", help="Export the session as HAR.")] = None,
    budget: Annotated[
        Optional[str],
        typer.Option("--budget", "-b", help="Budget preset: desktop|mobile|pwa (default: config)."),
    ] = None,
) -> None:
    """Score a captured timing batch and break down third-party cost."""
    from loadscope.analysis.attribution import AttributionEngine
    from loadscope.analysis.budget import check_budget, summarize_violations
    from loadscope.analysis.optimization import OptimizationAnalyzer
    from loadscope.analysis.scoring import score as score_session
    from loadscope.capture.aggregator import SessionAggregator
    from loadscope.capture.bridge import CaptureBridge
    from loadscope.capture.har_export import write_har
    from loadscope.models.config import PerformanceBudget

    settings: Settings = ctx.obj
    payload = _read_json(samples_json)
    if isinstance(payload, dict):
        samples = payload.get("samples", [])
        url = url or payload.get("url")
        vitals_payload = payload.get("vitals")
    else:
        samples = payload
        vitals_payload = None
    if not isinstance(samples, list):
        raise typer.BadParameter("Samples must be a JSON list")
    if not url:
        raise typer.BadParameter("--url is required when the file does not name one")
    if vitals is not None:
        vitals_payload = _read_json(vitals)

    if budget:
        try:
            active_budget = PerformanceBudget.preset(budget)
        except ValueError as e:
            raise typer.BadParameter(str(e)) from e
    else:
        active_budget = settings.budget

    aggregator = SessionAggregator()
    bridge = CaptureBridge()
    bridge.register(aggregator)
    try:
        bridge.load_started(url)
        added = bridge.deliver(samples)
        bridge.load_finished(vitals_payload if isinstance(vitals_payload, dict) else None)
    finally:
        bridge.deregister()

    aggregate = aggregator.aggregate
    result = score_session(aggregate)
    report = AttributionEngine(settings.providers, settings.impact).analyze_aggregate(aggregate)
    violations = check_budget(aggregate, result, aggregate.web_vitals, active_budget)

    console.print(
        Panel(
            f"[bold]URL:[/bold] {url}\n"
            f"[bold]Resources:[/bold] {added} of {len(samples)} samples\n"
            f"[bold]Load time:[/bold] {aggregate.total_duration_ms:.0f} ms\n"
            f"[bold]Total size:[/bold] {aggregate.total_bytes:,} bytes",
            title="loadscope analysis",
            border_style="green",
        )
    )
    _print_score(result)

    domains = Table(title=f"Domains ({report.third_party_percentage:.1f}% third-party bytes)")
    domains.add_column("Domain")
    domains.add_column("Party")
    domains.add_column("Provider")
    domains.add_column("Requests", justify="right")
    domains.add_column("Bytes", justify="right")
    domains.add_column("Time (ms)", justify="right")
    domains.add_column("Impact")
    for d in report.domains:
        domains.add_row(
            d.domain,
            "first" if d.is_first_party else "third",
            d.provider.name if d.provider else "-",
            str(d.request_count),
            f"{d.total_bytes:,}",
            f"{d.total_duration_ms:.0f}",
            d.impact.value,
        )
    console.print(domains)

    if active_budget.enabled:
        console.print(f"[bold]Budget:[/bold] {summarize_violations(violations)}")
        for v in violations:
            style = SEVERITY_STYLES[v.severity.value]
            console.print(
                f"  [{style}]{v.severity.value}[/{style}] {v.metric}: {v.actual} (budget {v.budget})"
            )

    suggestions = OptimizationAnalyzer().analyze(aggregate)
    if suggestions:
        console.print(f"[bold]Suggestions:[/bold] {len(suggestions)}")
        for s in suggestions:
            style = IMPACT_STYLES[s.impact.value]
            console.print(f"  [{style}]{s.impact.value}[/{style}] {s.title}: {s.current_state}")

    if har is not None:
        write_har(aggregate, har)
        console.print(f"[green]HAR written to {har}[/green]")

    if save:
        session = PersistentSession.from_aggregate(
            aggregate,
            score=result,
            tags=tag or [],
            third_party_count=len(report.third_party_domains),
        )
        store = _open_store(settings)
        asyncio.run(store.save(session))
        console.print(f"[green]Saved session {session.id}[/green]")


@app.command()
def history(
    ctx: typer.Context,
    query: Annotated[
        str, typer.Option("--query", "-q", help="Filter by URL, domain or tag.")
    ] = "",
    since: Annotated[
        Optional[datetime], typer.Option("--since", help="Only sessions at or after this local time.")
    ] = None,
    until: Annotated[
        Optional[datetime], typer.Option("--until", help="Only sessions at or before this local time.")
    ] = None,
) -> None:
    """List saved sessions, newest first."""
    store = _open_store(ctx.obj)
    asyncio.run(store.load())
    matches = store.search(query, _local(since), _local(until))
    sessions = sorted(matches, key=lambda s: s.timestamp, reverse=True)

    if not sessions:
        console.print("[yellow]No sessions found.[/yellow]")
        return

    table = Table(title=f"Sessions ({len(sessions)})")
    table.add_column("ID")
    table.add_column("Saved")
    table.add_column("URL")
    table.add_column("Score", justify="right")
    table.add_column("Load (ms)", justify="right")
    table.add_column("Requests", justify="right")
    table.add_column("Tags")
    for s in sessions:
        score_text = "-"
        if s.score is not None:
            score_text = _styled(str(s.score.overall), s.score.rating.value)
        table.add_row(
            s.id,
            s.timestamp.strftime("%Y-%m-%d %H:%M:%S"),
            s.url,
            score_text,
            f"{s.total_duration_ms:.0f}",
            str(s.request_count),
            ", ".join(s.tags),
        )
    console.print(table)


@app.command()
def show(
    ctx: typer.Context,
    session_id: Annotated[str, typer.Argument(help="Session ID to display.")],
) -> None:
    """Show one saved session with its score breakdown."""
    store = _open_store(ctx.obj)
    asyncio.run(store.load())
    session = store.get(session_id)
    if session is None:
        console.print(f"[red]Session not found: {session_id}[/red]")
        raise typer.Exit(1)

    console.print(
        Panel(
            f"[bold]URL:[/bold] {session.url}\n"
            f"[bold]Saved:[/bold] {session.timestamp.isoformat()}\n"
            f"[bold]Requests:[/bold] {session.request_count} "
            f"({session.third_party_count} third-party domains)\n"
            f"[bold]Load time:[/bold] {session.total_duration_ms:.0f} ms\n"
            f"[bold]Total size:[/bold] {session.total_bytes:,} bytes\n"
            f"[bold]Tags:[/bold] {', '.join(session.tags) or '-'}",
            title=f"Session {session.id}",
            border_style="blue",
        )
    )
    if session.score is not None:
        _print_score(session.score)


@app.command()
def delete(
    ctx: typer.Context,
    session_id: Annotated[str, typer.Argument(help="Session ID to delete.")],
) -> None:
    """Delete a saved session."""
    store = _open_store(ctx.obj)
    if asyncio.run(store.delete(session_id)):
        console.print(f"[green]Deleted session {session_id}[/green]")
    else:
        console.print(f"[yellow]No session {session_id}[/yellow]")


@app.command()
def cleanup(ctx: typer.Context) -> None:
    """Apply the retention policy to saved sessions."""
    settings: Settings = ctx.obj
    store = _open_store(settings)
    removed = asyncio.run(store.cleanup())
    console.print(
        f"Removed {len(removed)} session(s) "
        f"(keeping at most {settings.retention.max_sessions}, "
        f"{settings.retention.max_age_days} days)"
    )


@app.command()
def trends(
    ctx: typer.Context,
    url: Annotated[str, typer.Argument(help="URL whose saved history to analyze.")],
) -> None:
    """Summarize the performance trend of one URL's saved sessions."""
    from loadscope.trends.client import TrendAnalysisClient

    settings: Settings = ctx.obj

    async def _run() -> tuple[list[PersistentSession], TrendAnalysisResult]:
        store = _open_store(settings)
        await store.load()
        sessions = store.sessions_for_url(url)
        client = TrendAnalysisClient(
            api_key=settings.openrouter_api_key,
            model=settings.trend_model,
            base_url=settings.openrouter_base_url,
        )
        try:
            return sessions, await client.analyze(sessions)
        finally:
            await client.close()

    sessions, result = asyncio.run(_run())
    if not sessions:
        console.print(f"[yellow]No saved sessions for {url}[/yellow]")
        raise typer.Exit(1)

    console.print(Panel(result.summary or "-", title=f"Trends for {url}", border_style="magenta"))
    for p in result.predictions:
        console.print(f"  [bold]{p.metric}[/bold] ({p.trend}, {p.confidence}): {p.forecast}")
    for a in result.anomalies:
        causes = "; ".join(a.possible_causes)
        console.print(f"  [red]Anomaly[/red] {a.date:%Y-%m-%d} {a.metric}: {a.deviation} {causes}")
    for pat in result.patterns:
        console.print(f"  [cyan]Pattern[/cyan] {pat.description} ({pat.frequency}, {pat.impact})")
    if result.recommendation:
        console.print(f"[bold]Recommendation:[/bold] {result.recommendation}")
