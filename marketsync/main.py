# marketsync/main.py

import logging
import os
import subprocess
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from marketsync.bootstrap import build_services
from marketsync.core.config import get_settings
from marketsync.core.logging_config import configure_logging
from marketsync.core.security import require_auth
from marketsync.routes import connections, health, products, sync, tokens, webhooks
from marketsync.scheduler import start_scheduler, stop_scheduler

logger = logging.getLogger(__name__)


def run_migrations() -> None:
    if os.getenv('RUN_MIGRATIONS', 'false').lower() != 'true':
        return
    logger.info("Running database migrations...")
    result = subprocess.run(['alembic', 'upgrade', 'head'], capture_output=True, text=True)
    if result.returncode == 0:
        logger.info("Migrations completed successfully")
    else:
        logger.error(f"Migration failed: {result.stderr}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = app.state.settings
    configure_logging(settings.LOG_LEVEL)
    run_migrations()

    services = build_services(settings, app.state.session_factory)
    app.state.store_factory = services.store_factory
    app.state.adapter_factory = services.adapter_factory
    app.state.locks = services.locks
    app.state.product_sync = services.product_sync
    app.state.import_resolver = services.import_resolver
    app.state.webhook_reconciler = services.webhook_reconciler
    app.state.poll_scheduler = services.poll_scheduler
    app.state.token_refresh = services.token_refresh

    services.webhook_reconciler.start()
    services.token_refresh.start()
    services.poll_scheduler.start()
    start_scheduler(services.scheduler)
    try:
        yield  # This is where the app runs
    finally:
        services.poll_scheduler.stop()
        services.token_refresh.stop()
        stop_scheduler(services.scheduler)
        await services.webhook_reconciler.stop()


def create_app(settings=None, session_factory=None) -> FastAPI:
    settings = settings or get_settings()
    if session_factory is None:
        from marketsync.database import async_session
        session_factory = async_session

    app = FastAPI(title="Marketplace Sync", lifespan=lifespan)
    app.state.settings = settings
    app.state.session_factory = session_factory

    # Add middleware to handle HTTPS behind proxy
    @app.middleware("http")
    async def proxy_headers_middleware(request: Request, call_next):
        if request.headers.get("x-forwarded-proto") == "https":
            request.scope["scheme"] = "https"
        return await call_next(request)

    app.include_router(products.router, dependencies=[require_auth()])
    app.include_router(connections.router, dependencies=[require_auth()])
    app.include_router(sync.router, dependencies=[require_auth()])
    app.include_router(tokens.router, dependencies=[require_auth()])
    app.include_router(webhooks.router)  # Webhooks need to be accessible without auth
    app.include_router(health.router)  # Health check should be accessible without auth
    return app


app = create_app()
