"""Control surface for the poll scheduler."""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException

from marketsync.core.exceptions import UnsupportedMarketplaceError, ValidationError
from marketsync.dependencies import get_poll_scheduler
from marketsync.schemas.sync import IntervalUpdate, SchedulerStatus, SyncResult
from marketsync.services.sync_scheduler import PollScheduler

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/sync", tags=["Synchronization Actions"])


@router.get("/status", response_model=SchedulerStatus)
async def get_status(poll_scheduler: PollScheduler = Depends(get_poll_scheduler)):
    return poll_scheduler.get_status()


@router.get("/history", response_model=List[SyncResult])
async def get_history(limit: int = 10, poll_scheduler: PollScheduler = Depends(get_poll_scheduler)):
    return poll_scheduler.get_history(limit)


@router.post("/trigger")
async def trigger_sync(
    marketplace: Optional[str] = None,
    poll_scheduler: PollScheduler = Depends(get_poll_scheduler),
):
    try:
        results = await poll_scheduler.trigger_sync(marketplace)
    except UnsupportedMarketplaceError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if results is None:
        return {"success": False, "message": "Sync already running or marketplace not connected", "results": []}
    return {"success": True, "message": "Sync completed", "results": results}


@router.put("/interval")
async def set_interval(payload: IntervalUpdate, poll_scheduler: PollScheduler = Depends(get_poll_scheduler)):
    try:
        poll_scheduler.set_interval(payload.minutes)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"success": True, "interval_minutes": poll_scheduler.interval_minutes}
