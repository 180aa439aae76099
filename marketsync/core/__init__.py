"""
Core module exports.
"""
from .enums import (
    Marketplace,
    ProductStatus,
    ProductCondition,
    SyncOutcome,
)

from .exceptions import (
    BaseServiceError,
    CatalogError,
    ProductNotFoundError,
    ConnectionNotFoundError,
    DuplicateSkuError,
    MarketplaceError,
    MarketplaceNotConnectedError,
    UnsupportedMarketplaceError,
    MarketplaceAPIError,
    MarketplaceAuthError,
    TokenRefreshError,
    ValidationError,
)
