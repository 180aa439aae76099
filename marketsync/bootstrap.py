"""
Wires the long-lived service objects together.

Used by the FastAPI lifespan and by the CLI commands so both run the exact
same object graph. Nothing here starts a timer or a worker.
"""

from dataclasses import dataclass

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from marketsync.core.config import Settings
from marketsync.integrations.factory import AdapterFactory
from marketsync.scheduler import create_scheduler
from marketsync.services.catalog_store import make_store_factory
from marketsync.services.import_service import ImportMergeResolver
from marketsync.services.locks import GroupLockRegistry
from marketsync.services.product_sync import ProductSyncService
from marketsync.services.sync_scheduler import PollScheduler
from marketsync.services.token_refresh import TokenRefreshService
from marketsync.services.webhook_reconciler import WebhookReconciler


@dataclass
class Services:
    store_factory: object
    adapter_factory: AdapterFactory
    locks: GroupLockRegistry
    product_sync: ProductSyncService
    import_resolver: ImportMergeResolver
    webhook_reconciler: WebhookReconciler
    scheduler: AsyncIOScheduler
    poll_scheduler: PollScheduler
    token_refresh: TokenRefreshService


def build_services(settings: Settings, session_factory) -> Services:
    store_factory = make_store_factory(session_factory)
    adapter_factory = AdapterFactory(settings)
    locks = GroupLockRegistry(enabled=settings.GROUP_LOCKING_ENABLED)

    product_sync = ProductSyncService(store_factory, adapter_factory, locks)
    import_resolver = ImportMergeResolver(
        store_factory,
        adapter_factory,
        locks,
        page_size=settings.IMPORT_PAGE_SIZE,
        max_pages=settings.IMPORT_MAX_PAGES,
    )
    webhook_reconciler = WebhookReconciler(
        store_factory,
        adapter_factory,
        import_resolver,
        product_sync,
        log_size=settings.WEBHOOK_LOG_SIZE,
    )

    scheduler = create_scheduler()
    poll_scheduler = PollScheduler(
        scheduler,
        import_resolver,
        store_factory,
        interval_minutes=settings.SYNC_INTERVAL_MINUTES,
        warmup_seconds=settings.SYNC_WARMUP_SECONDS,
        history_size=settings.SYNC_HISTORY_SIZE,
        enabled=settings.SYNC_SCHEDULE_ENABLED,
    )
    token_refresh = TokenRefreshService(
        scheduler,
        store_factory,
        adapter_factory,
        check_interval_minutes=settings.TOKEN_CHECK_INTERVAL_MINUTES,
        threshold_minutes=settings.TOKEN_REFRESH_THRESHOLD_MINUTES,
        enabled=settings.TOKEN_REFRESH_ENABLED,
    )

    return Services(
        store_factory=store_factory,
        adapter_factory=adapter_factory,
        locks=locks,
        product_sync=product_sync,
        import_resolver=import_resolver,
        webhook_reconciler=webhook_reconciler,
        scheduler=scheduler,
        poll_scheduler=poll_scheduler,
        token_refresh=token_refresh,
    )
