class BaseServiceError(Exception):
    """Base exception for all service-related errors."""
    pass

class CatalogError(BaseServiceError):
    """Base exception for catalog store errors."""
    pass

class ProductNotFoundError(CatalogError):
    """Raised when product is not found."""
    pass

class ConnectionNotFoundError(CatalogError):
    """Raised when no connection row exists for a marketplace."""
    pass

class DuplicateSkuError(CatalogError):
    """Raised when creating a product whose SKU is already taken."""
    pass

class MarketplaceError(BaseServiceError):
    """Base exception for marketplace errors."""
    pass

class MarketplaceNotConnectedError(MarketplaceError):
    """Raised when a marketplace has no usable connection."""
    pass

class UnsupportedMarketplaceError(MarketplaceError):
    """Raised for marketplace names outside the supported set."""
    pass

class MarketplaceAPIError(MarketplaceError):
    """Raised when a marketplace API call fails."""

    def __init__(self, message: str, marketplace: str = None, status_code: int = None):
        super().__init__(message)
        self.marketplace = marketplace
        self.status_code = status_code

class MarketplaceAuthError(MarketplaceAPIError):
    """Raised when a marketplace rejects our credentials (401/403)."""
    pass

class TokenRefreshError(MarketplaceAPIError):
    """Raised when the token endpoint refuses a refresh grant."""
    pass

class ValidationError(BaseServiceError):
    """Raised when data validation fails."""
    pass
