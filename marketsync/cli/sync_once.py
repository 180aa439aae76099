# marketsync/cli/sync_once.py
import asyncio
import logging
from datetime import datetime

import click

from marketsync.bootstrap import build_services
from marketsync.core.config import get_settings
from marketsync.core.logging_config import configure_logging
from marketsync.database import async_session, engine

logger = logging.getLogger(__name__)


@click.command()
@click.option('--marketplace', '-m', default=None, help='Only import this marketplace (default: every connected one)')
def sync_once(marketplace):
    """Run one import pass outside the scheduler and print the counters"""
    settings = get_settings()
    configure_logging(settings.LOG_LEVEL)

    start_time = datetime.now()
    logger.info(f"Starting one-off sync at {start_time}")
    try:
        results = asyncio.run(run_sync(settings, marketplace))
    except Exception as e:
        logger.exception("Error during one-off sync")
        raise click.ClickException(str(e))

    if results is None:
        raise click.ClickException(f"{marketplace} is not connected")

    for result in results:
        click.echo(
            f"{result.marketplace}: imported={result.imported} updated={result.updated} "
            f"skipped={result.skipped} failed={result.failed}"
        )
        for error in result.errors:
            click.echo(f"  error: {error}")
    logger.info(f"Completed one-off sync in {datetime.now() - start_time}")


async def run_sync(settings, marketplace=None):
    services = build_services(settings, async_session)
    try:
        return await services.poll_scheduler.trigger_sync(marketplace)
    finally:
        await engine.dispose()


if __name__ == '__main__':
    sync_once()
