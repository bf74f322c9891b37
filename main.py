#!/usr/bin/env python3
"""
MetroFeed - News Ingestion Pipeline
===================================

Main application entry point with CLI interface for operation and testing.

Usage:
    python main.py --help                    # Show all commands
    python main.py check-config              # Validate configuration
    python main.py init-db                   # Create schema and seed defaults
    python main.py refresh                   # One scheduled trigger (run from cron)
    python main.py refresh --force           # Skip the due check, still take the lock
    python main.py status                    # Sources, today's stats, lock and last run
    python main.py check-feed URL            # Fetch and parse one feed without storing
    python main.py list-categories           # Show the category keyword table
"""

import sys
import asyncio
import logging
from datetime import timezone
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

# Add project root to Python path
sys.path.insert(0, str(Path(__file__).parent))

from metrofeed.config.settings import get_settings
from metrofeed.config.catalog import SourceCatalog
from metrofeed.database.schema import DatabaseSchema
from metrofeed.database.connection import get_db_manager
from metrofeed.database.models import Source, CycleResult
from metrofeed.ingestion.feed_fetcher import FeedFetcher
from metrofeed.scheduler.refresh_coordinator import RefreshCoordinator
from metrofeed.scheduler.refresh_lock import RefreshLockStore
from metrofeed.storage.article_repository import ArticleRepository
from metrofeed.storage.refresh_state_repository import RefreshStateRepository
from metrofeed.storage.source_repository import SourceRepository
from metrofeed.utils.http_client import HttpClient
from metrofeed.utils.logging import configure_application_logging
from metrofeed.utils.exceptions import MetroFeedError

console = Console()
logger = logging.getLogger(__name__)


def _setup(ctx):
    """Load settings and configure logging once per command."""
    settings = get_settings()
    configure_application_logging(
        log_level="DEBUG" if ctx.obj.get('debug') else settings.get_effective_log_level(),
        log_file=settings.logging.file_path,
        enable_console=settings.logging.console_logging,
        structured_logging=settings.logging.structured_logging,
        max_file_size_mb=settings.logging.max_file_size_mb,
        backup_count=settings.logging.backup_count
    )
    return settings


def _db(settings):
    DatabaseSchema(settings.database.path).create_tables()
    return get_db_manager(settings.database.path, pool_size=settings.database.pool_size)


@click.group(invoke_without_command=True)
@click.option('--debug', is_flag=True, help='Enable debug mode')
@click.pass_context
def cli(ctx, debug):
    """MetroFeed - news feed ingestion and refresh coordination."""
    ctx.ensure_object(dict)
    ctx.obj['debug'] = debug

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


@cli.command()
@click.pass_context
def check_config(ctx):
    """Validate configuration and environment variables."""
    console.print("[bold blue]🔧 Checking MetroFeed Configuration[/bold blue]")

    try:
        settings = get_settings()
    except MetroFeedError as e:
        console.print(f"[bold red]❌ Configuration error: {e.user_message}[/bold red]")
        sys.exit(1)

    table = Table(title=f"Configuration ({settings.profile.value} profile)")
    table.add_column("Section", style="cyan")
    table.add_column("Details")

    processing = settings.processing
    table.add_row("Database", f"{settings.database.path} (pool {settings.database.pool_size})")
    table.add_row("Refresh", f"every {processing.refresh_interval_minutes} min, lock TTL {processing.lock_ttl_seconds}s")
    table.add_row("Sources", f"{processing.parallel_sources} in parallel, batch {processing.default_batch_size}, quota {processing.default_daily_quota}/day")
    table.add_row("HTTP", f"timeout {settings.http.request_timeout}s, image check {settings.http.image_check_timeout}s")
    table.add_row("Images", "optimizer enabled" if settings.images.is_configured() else "optimizer disabled")
    table.add_row("Logging", f"{settings.get_effective_log_level()} -> {settings.logging.file_path or 'console only'}")

    console.print(table)
    console.print("[bold green]✅ Configuration is valid[/bold green]")


@cli.command()
@click.option('--overwrite', is_flag=True, help='Replace existing default sources and categories')
@click.pass_context
def init_db(ctx, overwrite):
    """Create the database schema and seed default sources and categories."""
    console.print("[bold blue]🗄️ Initializing MetroFeed Database[/bold blue]")

    try:
        settings = _setup(ctx)
        schema = DatabaseSchema(settings.database.path)
        schema.create_tables()

        if not schema.verify_schema():
            console.print("[bold red]❌ Database schema verification failed[/bold red]")
            sys.exit(1)

        db_manager = get_db_manager(settings.database.path, pool_size=settings.database.pool_size)
        seeded = SourceCatalog(db_manager, settings).seed_defaults(overwrite=overwrite)
        info = db_manager.get_database_info()

        info_table = Table(title="Database Information")
        info_table.add_column("Property", style="cyan")
        info_table.add_column("Value", style="green")
        info_table.add_row("Database Path", settings.database.path)
        info_table.add_row("Size", f"{info['database_size_mb']:.2f} MB")
        info_table.add_row("Seeded", f"{seeded['sources']} sources, {seeded['categories']} categories")
        for table_name, count in info['table_counts'].items():
            info_table.add_row(f"Rows in {table_name}", str(count))

        console.print(info_table)
        console.print("[bold green]✅ Database initialized successfully![/bold green]")

    except MetroFeedError as e:
        console.print(f"[bold red]❌ Database initialization error: {e.user_message}[/bold red]")
        sys.exit(1)


@cli.command()
@click.option('--force', is_flag=True, help='Run even if the refresh interval has not elapsed')
@click.pass_context
def refresh(ctx, force):
    """Run one scheduled refresh trigger."""
    settings = _setup(ctx)
    db_manager = _db(settings)

    async def run_refresh() -> CycleResult:
        async with HttpClient(settings.http) as http_client:
            coordinator = RefreshCoordinator(db_manager, http_client, settings)
            return await coordinator.run_scheduled_refresh(force=force)

    result = asyncio.run(run_refresh())

    if result.status == CycleResult.SKIPPED_NOT_DUE:
        console.print("[yellow]⏭️  Refresh not due yet[/yellow]")
        return
    if result.status == CycleResult.SKIPPED_LOCK_HELD:
        console.print("[yellow]🔒 Another refresh in progress[/yellow]")
        return

    table = Table(title=f"Refresh {result.cycle_id}")
    table.add_column("Source", style="cyan")
    table.add_column("Requested", justify="right")
    table.add_column("Fetched", justify="right")
    table.add_column("Stored", justify="right", style="green")
    table.add_column("Duplicates", justify="right")
    table.add_column("Result")

    for source_result in result.sources:
        if source_result.skipped:
            outcome = "[yellow]quota reached[/yellow]"
        elif source_result.error:
            outcome = f"[red]{source_result.error[:60]}[/red]"
        else:
            outcome = "ok"
        table.add_row(
            source_result.source_id,
            str(source_result.requested),
            str(source_result.fetched),
            str(source_result.stored),
            str(source_result.duplicates),
            outcome,
        )

    console.print(table)

    if result.status == CycleResult.FAILED:
        console.print(f"[bold red]❌ Refresh failed: {result.failure_reason}[/bold red]")
        sys.exit(1)

    console.print(
        f"[bold green]✅ Stored {result.total_stored} articles from "
        f"{len(result.sources)} sources[/bold green]"
    )


@cli.command()
@click.pass_context
def status(ctx):
    """Show sources with today's stats, the refresh lock and the last run."""
    settings = _setup(ctx)
    db_manager = _db(settings)

    sources = SourceRepository(db_manager)
    articles = ArticleRepository(db_manager)

    table = Table(title="Sources")
    table.add_column("Source", style="cyan")
    table.add_column("Priority", justify="right")
    table.add_column("Today", justify="right")
    table.add_column("Fetches", justify="right")
    table.add_column("Errors", justify="right")
    table.add_column("Last fetched")
    table.add_column("Last error")

    for source in sources.get_all_sources():
        stats = sources.get_daily_stats(source.id)
        table.add_row(
            source.id if source.enabled else f"[dim]{source.id}[/dim]",
            str(source.priority),
            f"{stats.articles_stored}/{source.daily_quota}",
            str(source.fetch_count),
            str(source.error_count),
            source.last_fetched_at.astimezone(timezone.utc).strftime("%Y-%m-%d %H:%M") if source.last_fetched_at else "never",
            (source.last_error or "")[:50],
        )

    console.print(table)

    lock = RefreshLockStore(db_manager).current()
    state = RefreshStateRepository(db_manager)
    last_run = state.get_last_successful_run()
    last_failure = state.get_last_failure()

    info_table = Table(title="Refresh")
    info_table.add_column("Property", style="cyan")
    info_table.add_column("Value")
    info_table.add_row("Articles stored", str(articles.get_article_count()))
    info_table.add_row("Last successful run", last_run.isoformat() if last_run else "never")
    if last_failure:
        info_table.add_row("Last failure", f"{last_failure['reason']} at {last_failure['failed_at']}")
    if lock:
        info_table.add_row("Lock", f"held until {lock.expires_at.isoformat()}")
    else:
        info_table.add_row("Lock", "free")

    console.print(info_table)


@cli.command()
@click.argument('url')
@click.option('--limit', default=10, help='Maximum items to show (default: 10)')
@click.pass_context
def check_feed(ctx, url, limit):
    """Fetch and parse a single feed without storing anything."""
    console.print(f"[bold blue]📡 Fetching Feed: {url}[/bold blue]")
    settings = _setup(ctx)

    async def run_fetch():
        async with HttpClient(settings.http) as http_client:
            fetcher = FeedFetcher(http_client, settings)
            source = Source(id="check-feed", name=url, url=url)
            return await fetcher.fetch_feed(source, limit)

    try:
        items = asyncio.run(run_fetch())
    except MetroFeedError as e:
        console.print(f"[bold red]❌ {e}[/bold red]")
        sys.exit(1)

    console.print(f"[bold green]✅ Parsed {len(items)} items[/bold green]")
    for i, item in enumerate(items, 1):
        console.print(f"\n{i}. [bold]{item.title}[/bold]")
        console.print(f"   📅 Published: {item.published_at.isoformat()}")
        console.print(f"   🔗 Link: {item.link}")
        if item.media_urls:
            console.print(f"   🖼️  Media: {item.media_urls[0]}")


@cli.command()
@click.pass_context
def list_categories(ctx):
    """Show the category table used for classification."""
    settings = _setup(ctx)
    db_manager = _db(settings)
    snapshot = SourceCatalog(db_manager, settings).load()

    table = Table(title="Categories" + (" (built-in defaults)" if snapshot.from_defaults else ""))
    table.add_column("Order", justify="right")
    table.add_column("Id", style="cyan")
    table.add_column("Name")
    table.add_column("Keywords")

    for category in snapshot.categories.categories:
        name = category.name
        if category.id == snapshot.categories.catch_all_id:
            name += " [dim](catch-all)[/dim]"
        keywords = ", ".join(category.keywords)
        table.add_row(str(category.sort_order), category.id, name,
                      keywords[:80] + ("..." if len(keywords) > 80 else ""))

    console.print(table)


if __name__ == "__main__":
    try:
        cli()
    except KeyboardInterrupt:
        console.print("\n[yellow]👋 MetroFeed interrupted by user[/yellow]")
        sys.exit(130)
    except Exception as e:
        console.print(f"\n[bold red]❌ Unexpected error: {e}[/bold red]")
        sys.exit(1)
