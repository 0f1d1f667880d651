"""
Command-line interface for notes-collector.

Provides commands to run the bot and scheduler, run a single scheduler
tick, initialize the database, and run diagnostic checks.

Usage:
    notes-collector run        # Bot + scheduler
    notes-collector scheduler  # Scheduler only
    notes-collector tick       # One scheduler pass, then exit
    notes-collector init-db    # Initialize database
    notes-collector health     # Check service health
"""

import asyncio
import signal
import sys

import click

from notes_collector.config.settings import get_settings
from notes_collector.observability.logging import setup_logging
from notes_collector.observability.metrics import get_metrics


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
def main(debug: bool) -> None:
    """Notes Collector - multi-platform notes aggregation bot."""
    if debug:
        import os
        os.environ["LOG_LEVEL"] = "DEBUG"
        get_settings.cache_clear()

    setup_logging()


def _serve(mock: bool, memory: bool, metrics: bool, with_bot: bool) -> None:
    from notes_collector.services.collector_service import CollectorService, create_store

    async def run():
        store = await create_store(use_memory=memory)
        service = CollectorService(store, use_mock=mock)

        if metrics:
            get_metrics().start_server()

        # Handle shutdown signals
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, lambda: asyncio.create_task(service.stop()))

        await service.start(with_bot=with_bot)

    asyncio.run(run())


@main.command()
@click.option("--mock", is_flag=True, help="Use mock adapters")
@click.option("--memory", is_flag=True, help="Use the in-memory store instead of PostgreSQL")
@click.option("--metrics/--no-metrics", default=True, help="Enable metrics server")
def run(mock: bool, memory: bool, metrics: bool) -> None:
    """Run the chat bot and the subscription scheduler."""
    _serve(mock, memory, metrics, with_bot=True)


@main.command()
@click.option("--mock", is_flag=True, help="Use mock adapters")
@click.option("--memory", is_flag=True, help="Use the in-memory store instead of PostgreSQL")
@click.option("--metrics/--no-metrics", default=True, help="Enable metrics server")
def scheduler(mock: bool, memory: bool, metrics: bool) -> None:
    """Run the subscription scheduler only."""
    _serve(mock, memory, metrics, with_bot=False)


@main.command()
@click.option("--mock", is_flag=True, help="Use mock adapters")
def tick(mock: bool) -> None:
    """Run one scheduler tick against the database and print the report."""
    from notes_collector.services.collector_service import CollectorService, create_store

    async def run_tick():
        store = await create_store()
        try:
            service = CollectorService(store, use_mock=mock)
            report = await service.tick_once()
        finally:
            await store.close()

        if report.error:
            click.echo(click.style(f"Store unavailable: {report.error}", fg="red"))
            sys.exit(1)

        click.echo("\nTick Report:")
        click.echo("-" * 40)
        click.echo(f"  Due subscriptions: {report.due}")
        for result in report.results:
            outcome = result.outcome
            if outcome.ok:
                line = (
                    f"  ✓ {result.platform}:{result.source_identifier} "
                    f"+{outcome.inserted} ={outcome.duplicates} -{outcome.filtered}"
                )
                click.echo(click.style(line, fg="green"))
            else:
                line = (
                    f"  ✗ {result.platform}:{result.source_identifier} "
                    f"{outcome.failure.kind.value}: {outcome.failure}"
                )
                click.echo(click.style(line, fg="red"))
        click.echo("-" * 40)
        click.echo(
            f"  Inserted: {report.inserted}  Duplicates: {report.duplicates}  "
            f"Filtered: {report.filtered}  Failed: {report.failed}  "
            f"Deactivated: {len(report.deactivated)}"
        )

    asyncio.run(run_tick())


@main.command("init-db")
def init_db() -> None:
    """Initialize the database schema."""
    from notes_collector.storage.database import Database
    from notes_collector.storage.repository import PostgresNoteStore

    async def run_init():
        async with Database() as db:
            await PostgresNoteStore(db).create_tables()
        click.echo("Database initialized successfully")

    asyncio.run(run_init())


@main.command()
def health() -> None:
    """Check health of all dependencies."""
    import structlog
    logger = structlog.get_logger()

    async def check():
        results: dict[str, bool] = {}

        # Check PostgreSQL
        try:
            from notes_collector.storage.database import Database
            async with Database() as db:
                results["postgres"] = await db.health_check()
        except Exception as e:
            results["postgres"] = False
            logger.error("Postgres health check failed", error=str(e))

        settings = get_settings()
        results["telegram_configured"] = settings.telegram_configured
        results["twitter_configured"] = settings.twitter_configured
        results["vk_configured"] = settings.vk_configured

        # Print results
        click.echo("\nHealth Check Results:")
        click.echo("-" * 40)

        all_healthy = True
        for name, status in results.items():
            icon = "✓" if status else "✗"
            color = "green" if status else "red"
            click.echo(click.style(f"  {icon} {name}: {status}", fg=color))
            if name in ("postgres", "telegram_configured") and not status:
                all_healthy = False

        click.echo("-" * 40)

        if all_healthy:
            click.echo(click.style("All core services healthy!", fg="green"))
            sys.exit(0)
        else:
            click.echo(click.style("Some services unhealthy!", fg="red"))
            sys.exit(1)

    asyncio.run(check())


if __name__ == "__main__":
    main()
