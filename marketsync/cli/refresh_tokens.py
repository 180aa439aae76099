# marketsync/cli/refresh_tokens.py
import asyncio
import logging

import click

from marketsync.bootstrap import build_services
from marketsync.core.config import get_settings
from marketsync.core.logging_config import configure_logging
from marketsync.database import async_session, engine

logger = logging.getLogger(__name__)


@click.command()
@click.option('--marketplace', '-m', default=None, help='Force a refresh for this marketplace only')
def refresh_tokens(marketplace):
    """Run the token check once, or force a refresh for one marketplace"""
    settings = get_settings()
    configure_logging(settings.LOG_LEVEL)
    asyncio.run(run_refresh(settings, marketplace))


async def run_refresh(settings, marketplace=None):
    services = build_services(settings, async_session)
    try:
        if marketplace:
            result = await services.token_refresh.force_refresh(marketplace)
            click.echo(f"{marketplace}: {result.message}")
            return result.success

        refreshed = await services.token_refresh.check_and_refresh_tokens()
        click.echo(f"Refreshed: {', '.join(refreshed) if refreshed else 'none'}")
        return True
    finally:
        await engine.dispose()


if __name__ == '__main__':
    refresh_tokens()
