from typing import AsyncGenerator

from fastapi import Request

from marketsync.services.catalog_store import CatalogStore
from marketsync.services.import_service import ImportMergeResolver
from marketsync.services.product_sync import ProductSyncService
from marketsync.services.sync_scheduler import PollScheduler
from marketsync.services.token_refresh import TokenRefreshService
from marketsync.services.webhook_reconciler import WebhookReconciler


async def get_store(request: Request) -> AsyncGenerator[CatalogStore, None]:
    """Dependency for a request-scoped catalog store."""
    async with request.app.state.store_factory() as store:
        yield store


def get_adapter_factory(request: Request):
    return request.app.state.adapter_factory


def get_product_sync(request: Request) -> ProductSyncService:
    return request.app.state.product_sync


def get_import_resolver(request: Request) -> ImportMergeResolver:
    return request.app.state.import_resolver


def get_webhook_reconciler(request: Request) -> WebhookReconciler:
    return request.app.state.webhook_reconciler


def get_poll_scheduler(request: Request) -> PollScheduler:
    return request.app.state.poll_scheduler


def get_token_refresh(request: Request) -> TokenRefreshService:
    return request.app.state.token_refresh
