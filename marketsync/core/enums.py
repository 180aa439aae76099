"""
Shared enums and constants used across the application.
"""

from enum import Enum

from marketsync.core.exceptions import UnsupportedMarketplaceError


class Marketplace(str, Enum):
    WOOCOMMERCE = "woocommerce"
    MERCADOLIBRE = "mercadolibre"
    AMAZON = "amazon"

    @property
    def external_id_field(self) -> str:
        # Column on Product holding this marketplace's listing id
        return f"{self.value}_id"

    @property
    def uses_oauth(self) -> bool:
        return self in (Marketplace.MERCADOLIBRE, Marketplace.AMAZON)

    @classmethod
    def parse(cls, value: str) -> "Marketplace":
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise UnsupportedMarketplaceError(f"Unknown marketplace: {value}")


class ProductStatus(str, Enum):
    """Product status values used in both models and schemas"""
    ACTIVE = "active"
    PAUSED = "paused"


class ProductCondition(str, Enum):
    NEW = "new"
    USED = "used"


class SyncOutcome(str, Enum):
    """Per-marketplace result of a push"""
    SYNCED = "synced"
    ERROR = "error"
    SKIPPED = "skipped"

    def describe(self, detail: str = None) -> str:
        if detail:
            return f"{self.value}: {detail}"
        return self.value
