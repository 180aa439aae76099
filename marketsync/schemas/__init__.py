from .base import BaseSchema, TimestampedSchema
from .product import (
    Dimensions,
    RemoteProduct,
    RemoteOrder,
    RemoteOrderLine,
    ProductCreate,
    ProductUpdate,
    ProductRead,
    GroupSummary,
    GroupListing,
    GroupStockUpdate,
)
from .sync import (
    ImportResult,
    SyncResult,
    SchedulerStatus,
    IntervalUpdate,
    WebhookLogEntry,
    TokenStatus,
    RefreshResult,
    ProductSyncReport,
    WebhookEvent,
)
from .connection import ConnectionCredentials, ConnectionRead
