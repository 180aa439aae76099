"""
Result and status shapes for import, scheduler, webhook and token flows.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ImportResult(BaseModel):
    """Counters returned by the import/merge resolver"""
    marketplace: Optional[str] = None
    imported: int = 0
    updated: int = 0
    skipped: int = 0
    failed: int = 0
    total: int = 0
    errors: List[str] = Field(default_factory=list)


class SyncResult(BaseModel):
    """One scheduler run against one marketplace"""
    marketplace: str
    imported: int = 0
    updated: int = 0
    skipped: int = 0
    failed: int = 0
    errors: List[str] = Field(default_factory=list)
    started_at: datetime = Field(default_factory=utc_now)
    completed_at: datetime = Field(default_factory=utc_now)

    def absorb(self, result: ImportResult) -> None:
        self.imported += result.imported
        self.updated += result.updated
        self.skipped += result.skipped
        self.failed += result.failed
        self.errors.extend(result.errors)


class SchedulerStatus(BaseModel):
    is_running: bool
    last_sync: Optional[datetime] = None
    next_sync: Optional[datetime] = None
    interval_minutes: int
    last_result: Optional[SyncResult] = None


class IntervalUpdate(BaseModel):
    minutes: int


class WebhookLogEntry(BaseModel):
    timestamp: datetime = Field(default_factory=utc_now)
    source: str
    topic: str
    resource_id: str = ""
    processed: bool = False
    error: Optional[str] = None


class TokenStatus(BaseModel):
    has_token: bool
    is_valid: bool
    expires_at: Optional[datetime] = None
    hours_until_expiry: Optional[int] = None


class RefreshResult(BaseModel):
    success: bool
    message: str


class ProductSyncReport(BaseModel):
    """What a local edit did remotely"""
    product_id: int
    sku: str
    changes: Dict[str, bool] = Field(default_factory=dict)
    sync_results: Dict[str, str] = Field(default_factory=dict)
    group_propagation: Dict[str, Dict[str, str]] = Field(default_factory=dict)
    product: Optional[Any] = None


class WebhookEvent(BaseModel):
    """One inbound notification waiting for the background worker"""
    source: str
    topic: str
    resource_id: str = ""
    payload: Dict[str, Any] = Field(default_factory=dict)
    received_at: datetime = Field(default_factory=utc_now)
