"""
Purpose: Keeps OAuth access tokens alive for the marketplaces that use them.

Runs on its own interval, independent of the sync cadence. Each check looks
at every connection holding a refresh token on a refresh-capable marketplace
and refreshes it when the access token is within the threshold of expiring
or has already expired. A failed refresh demotes the connection, which makes
every adapter call for that marketplace skip until it is reconfigured.

Product data is never touched here.
"""

import logging
from datetime import datetime, timezone
from typing import Callable, List

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from marketsync.core.enums import Marketplace
from marketsync.core.exceptions import UnsupportedMarketplaceError
from marketsync.models.connection import Connection, as_utc
from marketsync.schemas.sync import RefreshResult, TokenStatus
from marketsync.services.catalog_store import CatalogStore

logger = logging.getLogger(__name__)

JOB_ID = "token_refresh"


class TokenRefreshService:
    def __init__(
        self,
        scheduler: AsyncIOScheduler,
        store_factory: Callable,
        adapter_factory,
        check_interval_minutes: int = 30,
        threshold_minutes: int = 60,
        enabled: bool = True,
    ):
        self.scheduler = scheduler
        self.store_factory = store_factory
        self.adapter_factory = adapter_factory
        self.check_interval_minutes = check_interval_minutes
        self.threshold_seconds = threshold_minutes * 60
        self.enabled = enabled

    def start(self) -> None:
        if not self.enabled:
            logger.info("[TokenRefresh] Automatic token refresh disabled")
            return
        self.scheduler.add_job(
            self.check_and_refresh_tokens,
            IntervalTrigger(minutes=self.check_interval_minutes),
            id=JOB_ID,
            name="Refresh Marketplace Tokens",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            next_run_time=datetime.now(timezone.utc),
        )
        logger.info(f"[TokenRefresh] Running every {self.check_interval_minutes} minutes")

    def stop(self) -> None:
        if self.scheduler.get_job(JOB_ID):
            self.scheduler.remove_job(JOB_ID)
            logger.info("[TokenRefresh] Service stopped")

    async def check_and_refresh_tokens(self) -> List[str]:
        """Check every refreshable connection; returns the marketplaces refreshed successfully"""
        logger.info("[TokenRefresh] Checking tokens...")
        refreshed = []
        try:
            async with self.store_factory() as store:
                for connection in await store.list_connections():
                    if not self._refreshable(connection):
                        continue
                    if await self._check_connection(store, connection):
                        refreshed.append(connection.marketplace)
        except Exception as e:
            logger.error(f"[TokenRefresh] Error checking tokens: {e}", exc_info=True)
        return refreshed

    @staticmethod
    def _refreshable(connection: Connection) -> bool:
        try:
            marketplace = connection.marketplace_enum
        except UnsupportedMarketplaceError:
            return False
        return marketplace.uses_oauth and bool(connection.refresh_token)

    async def _check_connection(self, store: CatalogStore, connection: Connection) -> bool:
        remaining = connection.seconds_until_expiry()
        if remaining is None:
            logger.info(f"[TokenRefresh] {connection.marketplace}: no expiry date set")
            return False

        logger.info(f"[TokenRefresh] {connection.marketplace} token expires in {round(remaining / 3600)} hours")
        if remaining >= self.threshold_seconds:
            return False

        if remaining < 0:
            logger.info(f"[TokenRefresh] {connection.marketplace} token already expired, refreshing")
        else:
            logger.info(f"[TokenRefresh] {connection.marketplace} token expiring soon, refreshing")
        return await self._refresh(store, connection)

    async def _refresh(self, store: CatalogStore, connection: Connection) -> bool:
        try:
            token_data = await self.adapter_factory.refresh_credentials(connection)
        except Exception as e:
            logger.error(f"[TokenRefresh] Failed to refresh {connection.marketplace} token: {e}")
            connection.is_connected = False
            await store.save_connection(connection)
            return False

        connection.access_token = token_data["access_token"]
        connection.refresh_token = token_data.get("refresh_token") or connection.refresh_token
        connection.token_expires_at = token_data["expires_at"]
        connection.is_connected = True
        await store.save_connection(connection)
        logger.info(f"[TokenRefresh] {connection.marketplace} token refreshed, new expiry {connection.token_expires_at}")
        return True

    async def force_refresh(self, marketplace: str) -> RefreshResult:
        marketplace = Marketplace.parse(marketplace)
        if not marketplace.uses_oauth:
            return RefreshResult(success=False, message="Marketplace does not support token refresh")

        async with self.store_factory() as store:
            connection = await store.get_connection(marketplace)
            if not connection:
                return RefreshResult(success=False, message="Connection not found")
            if not connection.refresh_token:
                return RefreshResult(success=False, message="No refresh token stored")

            if await self._refresh(store, connection):
                return RefreshResult(success=True, message="Token refreshed successfully")
            return RefreshResult(success=False, message="Token refresh failed; connection marked disconnected")

    async def get_token_status(self, marketplace: str) -> TokenStatus:
        marketplace = Marketplace.parse(marketplace)
        async with self.store_factory() as store:
            connection = await store.get_connection(marketplace)

        if not connection or not connection.access_token:
            return TokenStatus(has_token=False, is_valid=False)

        remaining = connection.seconds_until_expiry()
        if remaining is None:
            return TokenStatus(has_token=True, is_valid=bool(connection.is_connected))

        return TokenStatus(
            has_token=True,
            is_valid=remaining > 0 and bool(connection.is_connected),
            expires_at=as_utc(connection.token_expires_at),
            hours_until_expiry=max(0, round(remaining / 3600)),
        )
