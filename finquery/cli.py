"""
FinQuery CLI

Command-line interface for querying spreadsheet data.

Usage:
    finquery ask "Total expenses in Q1"      # Interpret, execute and explain
    finquery history                         # Recent queries for this user
    finquery replay 42                       # Re-run a stored plan on live data
    finquery feedback 42 incorrect -t "..."  # Rate an interpretation
    finquery sheets list                     # Registered sheets
    finquery sheets add SHEET_ID             # Register and sync a sheet
    finquery sheets sync SHEET_ID            # Refresh column metadata
"""

import asyncio
import json
import logging
import os
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any

import click
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table

from finquery import __version__
from finquery.agents import InsightAgent, QueryInterpreterAgent, SuggestionAgent
from finquery.catalog.store import SheetCatalogStore
from finquery.catalog.sync import SheetSyncService
from finquery.config import get_settings
from finquery.feedback.learning import FeedbackLearningWorker
from finquery.feedback.store import FeedbackStore
from finquery.history.store import QueryHistoryStore
from finquery.llm.factory import LLMProviderFactory
from finquery.models.query import ExecutionResult
from finquery.pipeline.orchestrator import PipelineError, QueryFailedError, QueryPipeline
from finquery.sources.base import SourceUnavailable
from finquery.sources.google_sheets import GoogleSheetsSource

console = Console()
logger = logging.getLogger(__name__)
DEFAULT_USER_ID = os.getenv("FINQUERY_USER", "cli")


def configure_cli_logging() -> None:
    logging.basicConfig(level=logging.CRITICAL)
    for logger_name in ("finquery", "httpx", "openai", "anthropic", "asyncio"):
        logging.getLogger(logger_name).setLevel(logging.CRITICAL)


# ============================================================================
# Runtime Wiring
# ============================================================================


@dataclass
class CLIRuntime:
    """Components opened for one command."""

    pipeline: QueryPipeline | None
    history_store: QueryHistoryStore
    catalog: SheetCatalogStore
    sync_service: SheetSyncService


@asynccontextmanager
async def open_runtime(with_pipeline: bool = True) -> AsyncIterator[CLIRuntime]:
    """Open stores, source and (optionally) the LLM-backed pipeline."""
    settings = get_settings()
    if not settings.system_database.url:
        raise click.ClickException("SYSTEM_DATABASE_URL is not set")

    source = GoogleSheetsSource.from_settings(settings.sheets)
    history_store = QueryHistoryStore()
    catalog = SheetCatalogStore()
    feedback_store = FeedbackStore()
    closables: list[Any] = [source, catalog, history_store, feedback_store]
    llm = None
    worker = None
    try:
        await history_store.initialize()
        await catalog.initialize()
        await feedback_store.initialize()
        sync_service = SheetSyncService(catalog=catalog, source=source)

        pipeline = None
        if with_pipeline:
            try:
                llm = LLMProviderFactory.create_default_provider(settings.llm)
            except ValueError as e:
                raise click.ClickException(str(e)) from e
            closables.append(llm)
            if settings.feedback.learning_enabled:
                worker = FeedbackLearningWorker(
                    llm=llm,
                    queue_size=settings.feedback.learning_queue_size,
                    max_attempts=settings.feedback.learning_max_attempts,
                    retry_delay_seconds=settings.feedback.learning_retry_delay_seconds,
                    max_tokens=settings.feedback.learning_max_tokens,
                )
                worker.start()
            pipeline = QueryPipeline(
                history_store=history_store,
                sync_service=sync_service,
                source=source,
                interpreter=QueryInterpreterAgent(
                    llm, max_tokens=settings.pipeline.interpret_max_tokens
                ),
                insight_agent=InsightAgent(
                    llm,
                    max_tokens=settings.pipeline.insight_max_tokens,
                    preview_rows=settings.pipeline.insight_preview_rows,
                ),
                suggestion_agent=SuggestionAgent(
                    llm, max_tokens=settings.pipeline.suggestion_max_tokens
                ),
                feedback_store=feedback_store,
                learning_worker=worker,
                clarification_question=settings.pipeline.default_clarification_question,
                history_limit=settings.pipeline.history_limit,
            )

        yield CLIRuntime(
            pipeline=pipeline,
            history_store=history_store,
            catalog=catalog,
            sync_service=sync_service,
        )
    finally:
        if worker is not None:
            # Let queued feedback go out before the process exits
            await worker.stop(drain=True)
        for component in closables:
            try:
                await component.close()
            except Exception as e:
                logger.warning(f"Error closing {type(component).__name__}: {e}")


def _require_pipeline(runtime: CLIRuntime) -> QueryPipeline:
    if runtime.pipeline is None:
        raise click.ClickException("Query pipeline is not available")
    return runtime.pipeline


def _run(coro) -> None:
    """Run a command coroutine, turning known failures into clean exits."""
    try:
        asyncio.run(coro)
    except click.ClickException:
        raise
    except QueryFailedError as e:
        console.print(f"[red]Query failed ({e.kind}): {e.message}[/red]")
        console.print(f"[dim]History id: {e.history_id}[/dim]")
        sys.exit(1)
    except (PipelineError, SourceUnavailable, ValueError) as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)


# ============================================================================
# Output Formatting
# ============================================================================


def format_result(result: ExecutionResult, max_rows: int = 50) -> None:
    """Render result rows as a table."""
    if not result.rows:
        console.print("[yellow]No rows matched.[/yellow]")
    else:
        columns: list[str] = []
        for row in result.rows:
            for key in row:
                if key not in columns:
                    columns.append(key)

        table = Table(show_header=True, header_style="bold cyan")
        for column in columns:
            table.add_column(column)
        for row in result.rows[:max_rows]:
            table.add_row(*[_cell_text(row.get(column)) for column in columns])
        console.print(table)
        if len(result.rows) > max_rows:
            console.print(f"[dim]... {len(result.rows) - max_rows} more rows[/dim]")

    console.print(
        f"[dim]{result.filtered_count} of {result.total_count} rows matched filters[/dim]"
    )


def _cell_text(value: Any) -> str:
    return "" if value is None else str(value)


def _print_insight(insight: str | None) -> None:
    if insight:
        console.print(Panel(Markdown(insight), title="[bold green]Insight[/bold green]"))


# ============================================================================
# CLI Commands
# ============================================================================


@click.group()
@click.version_option(version=__version__, prog_name="FinQuery")
def cli():
    """FinQuery - Natural-language queries over financial spreadsheets."""
    configure_cli_logging()


@cli.command()
@click.argument("query")
@click.option("--user", "user_id", default=DEFAULT_USER_ID, show_default=True)
@click.option("--json", "as_json", is_flag=True, help="Print the raw response as JSON")
def ask(query: str, user_id: str, as_json: bool):
    """Ask a single question and exit."""

    async def run_query():
        async with open_runtime() as runtime:
            pipeline = _require_pipeline(runtime)
            with console.status("[cyan]Processing query...[/cyan]", spinner="dots"):
                result = await pipeline.submit(user_id, query)

        if as_json:
            click.echo(json.dumps(result.to_payload(), indent=2))
            return

        spec = result.query_spec
        console.print(
            Panel(
                spec.interpretation_text or query,
                title="[bold cyan]Interpretation[/bold cyan]",
                subtitle=f"confidence {spec.confidence_score:.2f}",
            )
        )
        if result.needs_clarification:
            console.print(f"[yellow]{result.clarification_question}[/yellow]")
        elif result.execution_result is not None:
            format_result(result.execution_result)
            _print_insight(result.insight)
        console.print(f"[dim]History id: {result.history_id}[/dim]")

    _run(run_query())


@cli.command()
@click.option("--user", "user_id", default=DEFAULT_USER_ID, show_default=True)
@click.option("--limit", default=20, show_default=True, type=click.IntRange(1, 200))
def history(user_id: str, limit: int):
    """Show recent queries."""

    async def run_history():
        async with open_runtime(with_pipeline=False) as runtime:
            entries = await runtime.history_store.list_by_user(user_id, limit)
        if not entries:
            console.print("[yellow]No queries yet.[/yellow]")
            return

        table = Table(show_header=True, header_style="bold cyan")
        table.add_column("ID", justify="right")
        table.add_column("When")
        table.add_column("Query")
        table.add_column("Status")
        for entry in entries:
            if entry.success is None:
                state = "[dim]pending[/dim]"
            elif entry.success:
                state = "[green]ok[/green]"
            else:
                state = f"[red]failed[/red] {entry.error_message or ''}".rstrip()
            table.add_row(
                str(entry.id),
                entry.created_at.strftime("%Y-%m-%d %H:%M"),
                entry.query_text,
                state,
            )
        console.print(table)

    _run(run_history())


@cli.command()
@click.argument("history_id", type=int)
@click.option("--user", "user_id", default=DEFAULT_USER_ID, show_default=True)
def replay(history_id: int, user_id: str):
    """Re-run a stored query plan against current sheet data."""

    async def run_replay():
        async with open_runtime() as runtime:
            pipeline = _require_pipeline(runtime)
            with console.status("[cyan]Replaying query...[/cyan]", spinner="dots"):
                result = await pipeline.replay(history_id, user_id)

        console.print(f"[bold]{result.query_text}[/bold]")
        format_result(result.execution_result)
        _print_insight(result.insight)

    _run(run_replay())


@cli.command()
@click.argument("history_id", type=int)
@click.argument("feedback_type", type=click.Choice(["helpful", "not_helpful", "incorrect"]))
@click.option("--text", "-t", "feedback_text", default=None, help="Optional comment")
@click.option("--user", "user_id", default=DEFAULT_USER_ID, show_default=True)
def feedback(history_id: int, feedback_type: str, feedback_text: str | None, user_id: str):
    """Rate how a past query was interpreted."""

    async def run_feedback():
        async with open_runtime() as runtime:
            pipeline = _require_pipeline(runtime)
            entry = await pipeline.submit_feedback(
                history_id, user_id, feedback_type, feedback_text
            )
        console.print(f"[green]✓ Feedback {entry.id} recorded[/green]")

    _run(run_feedback())


@cli.group(name="sheets")
def sheets():
    """Manage registered sheets."""
    pass


@sheets.command(name="list")
def list_sheets():
    """List registered sheets."""

    async def run_list():
        async with open_runtime(with_pipeline=False) as runtime:
            registered = await runtime.catalog.list_sheets()
        if not registered:
            console.print("[yellow]No sheets registered.[/yellow]")
            return

        table = Table(show_header=True, header_style="bold cyan")
        table.add_column("Sheet ID")
        table.add_column("Name")
        table.add_column("Description")
        table.add_column("Last synced")
        for sheet in registered:
            table.add_row(
                sheet.sheet_id,
                sheet.name,
                sheet.description,
                sheet.last_synced.strftime("%Y-%m-%d %H:%M") if sheet.last_synced else "never",
            )
        console.print(table)

    _run(run_list())


@sheets.command(name="add")
@click.argument("sheet_id")
@click.option("--name", default=None, help="Display name (defaults to the sheet title)")
@click.option("--description", default="", help="What the sheet contains")
@click.option("--sync/--no-sync", default=True, show_default=True)
def add_sheet(sheet_id: str, name: str | None, description: str, sync: bool):
    """Register a sheet after checking it can be read."""

    async def run_add():
        async with open_runtime(with_pipeline=False) as runtime:
            sheet = await runtime.sync_service.register_sheet(
                sheet_id=sheet_id, name=name, description=description
            )
            console.print(f"[green]✓ Registered {sheet.name}[/green]")
            if sync:
                result = await runtime.sync_service.sync_sheet(sheet_id)
                _print_columns(result.columns)

    _run(run_add())


@sheets.command(name="sync")
@click.argument("sheet_id")
def sync_sheet(sheet_id: str):
    """Refresh column metadata from the sheet's header row."""

    async def run_sync():
        async with open_runtime(with_pipeline=False) as runtime:
            result = await runtime.sync_service.sync_sheet(sheet_id)
        console.print(
            f"[green]✓ Synced {result.name}[/green] "
            f"[dim]({len(result.columns)} columns, {result.row_count} sample rows)[/dim]"
        )
        _print_columns(result.columns)

    _run(run_sync())


def _print_columns(columns) -> None:
    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Column")
    table.add_column("Type")
    table.add_column("Description")
    for column in columns:
        table.add_row(column.label, column.data_type, column.description)
    console.print(table)


if __name__ == "__main__":
    cli()
