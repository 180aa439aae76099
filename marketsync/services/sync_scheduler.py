"""
Purpose: Periodic pull of every connected marketplace through the import resolver.

Only one run may be in flight: a run (scheduled or manual) requested while
another is active returns immediately with nothing, it is not queued. Each
run records one SyncResult per marketplace into a bounded, most-recent-first
history. Changing the interval reschedules the timer without touching a run
that is already going.
"""

import logging
from collections import deque
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from marketsync.core.enums import Marketplace
from marketsync.core.exceptions import ValidationError
from marketsync.schemas.sync import SchedulerStatus, SyncResult, utc_now
from marketsync.services.import_service import ImportMergeResolver

logger = logging.getLogger(__name__)

JOB_ID = "poll_sync"


class PollScheduler:
    def __init__(
        self,
        scheduler: AsyncIOScheduler,
        resolver: ImportMergeResolver,
        store_factory: Callable,
        interval_minutes: int = 15,
        warmup_seconds: int = 60,
        history_size: int = 50,
        enabled: bool = True,
    ):
        if interval_minutes < 1:
            raise ValidationError("Sync interval must be at least 1 minute")
        self.scheduler = scheduler
        self.resolver = resolver
        self.store_factory = store_factory
        self.interval_minutes = interval_minutes
        self.warmup_seconds = warmup_seconds
        self.enabled = enabled
        self.history: deque = deque(maxlen=history_size)
        self.last_sync: Optional[datetime] = None
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    def start(self) -> None:
        if not self.enabled:
            logger.info("Scheduled sync is disabled. Set SYNC_SCHEDULE_ENABLED=true to enable")
            return

        first_run = datetime.now(timezone.utc) + timedelta(seconds=self.warmup_seconds)
        self.scheduler.add_job(
            self.run_full_sync,
            IntervalTrigger(minutes=self.interval_minutes),
            id=JOB_ID,
            name="Poll All Marketplaces",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            next_run_time=first_run,
        )
        logger.info(
            f"Poll sync every {self.interval_minutes} minutes, first run in {self.warmup_seconds}s"
        )

    def stop(self) -> None:
        if self.scheduler.get_job(JOB_ID):
            self.scheduler.remove_job(JOB_ID)
            logger.info("Poll sync stopped")

    async def run_full_sync(self) -> List[SyncResult]:
        """Import every connected marketplace; returns [] if a run is already active"""
        if self._running:
            logger.info("Sync already in progress, skipping")
            return []

        self._running = True
        results: List[SyncResult] = []
        try:
            logger.info("=== SCHEDULED SYNC STARTING ===")
            async with self.store_factory() as store:
                connections = await store.list_connections(connected_only=True)
            marketplaces = [c.marketplace for c in connections]

            for name in marketplaces:
                results.append(await self._sync_one(name))
        except Exception as e:
            logger.exception(f"Error in scheduled sync: {str(e)}")
        finally:
            self._running = False
            self.last_sync = utc_now()

        logger.info(f"=== SCHEDULED SYNC FINISHED ({len(results)} marketplaces) ===")
        return results

    async def trigger_sync(self, marketplace: Optional[str] = None) -> Optional[List[SyncResult]]:
        """
        Manual run of all marketplaces or just one.

        Returns None when a run is already active or the marketplace is not connected.
        """
        if marketplace is None:
            if self._running:
                logger.info("Sync already in progress, manual trigger ignored")
                return None
            return await self.run_full_sync()

        marketplace = Marketplace.parse(marketplace)
        if self._running:
            logger.info("Sync already in progress, manual trigger ignored")
            return None

        self._running = True
        try:
            async with self.store_factory() as store:
                connection = await store.get_connection(marketplace)
            if not connection or not connection.is_connected:
                logger.info(f"Manual sync of {marketplace.value} ignored: not connected")
                return None
            return [await self._sync_one(marketplace.value)]
        finally:
            self._running = False
            self.last_sync = utc_now()

    async def _sync_one(self, marketplace: str) -> SyncResult:
        result = SyncResult(marketplace=marketplace)
        try:
            result.absorb(await self.resolver.import_marketplace(marketplace))
        except Exception as e:
            logger.error(f"Sync of {marketplace} failed: {e}")
            result.errors.append(str(e))
        result.completed_at = utc_now()
        self.history.appendleft(result)
        return result

    def set_interval(self, minutes: int) -> None:
        if minutes is None or minutes < 1:
            raise ValidationError("Sync interval must be at least 1 minute")
        self.interval_minutes = minutes
        if self.scheduler.get_job(JOB_ID):
            self.scheduler.reschedule_job(JOB_ID, trigger=IntervalTrigger(minutes=minutes))
        logger.info(f"Sync interval set to {minutes} minutes")

    def get_status(self) -> SchedulerStatus:
        job = self.scheduler.get_job(JOB_ID)
        return SchedulerStatus(
            is_running=self._running,
            last_sync=self.last_sync,
            next_sync=job.next_run_time if job else None,
            interval_minutes=self.interval_minutes,
            last_result=self.history[0] if self.history else None,
        )

    def get_history(self, limit: int = 10) -> List[SyncResult]:
        return list(self.history)[:max(0, limit)]
