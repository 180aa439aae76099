"""
Builds marketplace adapters from stored connections.

The set of marketplaces is closed: anything outside it raises
UnsupportedMarketplaceError. The factory is created once per process and
owns state that outlives a single adapter instance (the Amazon seller id).
"""

import logging
from typing import Any, Dict

from marketsync.core.config import get_settings
from marketsync.core.enums import Marketplace
from marketsync.core.exceptions import TokenRefreshError, UnsupportedMarketplaceError
from marketsync.integrations.base import MarketplaceAdapter
from marketsync.integrations.platforms.amazon import AmazonAdapter, SellerIdCache
from marketsync.integrations.platforms.mercadolibre import MercadoLibreAdapter
from marketsync.integrations.platforms.woocommerce import WooCommerceAdapter
from marketsync.schemas.connection import ConnectionCredentials

logger = logging.getLogger(__name__)


class AdapterFactory:
    def __init__(self, settings=None):
        self.settings = settings or get_settings()
        self.seller_id_cache = SellerIdCache()

    def build(self, connection) -> MarketplaceAdapter:
        marketplace = Marketplace.parse(connection.marketplace)
        credentials = ConnectionCredentials.from_connection(connection)
        timeout = self.settings.MARKETPLACE_TIMEOUT_SECONDS

        if marketplace == Marketplace.WOOCOMMERCE:
            return WooCommerceAdapter(credentials, timeout=timeout)
        if marketplace == Marketplace.MERCADOLIBRE:
            return MercadoLibreAdapter(
                credentials,
                timeout=timeout,
                api_url=self.settings.MERCADOLIBRE_API_URL,
                currency=self.settings.MERCADOLIBRE_CURRENCY,
                default_category=self.settings.MERCADOLIBRE_DEFAULT_CATEGORY,
            )
        if marketplace == Marketplace.AMAZON:
            return AmazonAdapter(
                credentials,
                timeout=timeout,
                seller_id_cache=self.seller_id_cache,
                endpoint=self.settings.AMAZON_SP_API_URL,
                currency=self.settings.AMAZON_CURRENCY,
            )
        raise UnsupportedMarketplaceError(f"No adapter for marketplace: {connection.marketplace}")

    async def refresh_credentials(self, connection) -> Dict[str, Any]:
        """Run the refresh-token grant for a connection's marketplace"""
        marketplace = Marketplace.parse(connection.marketplace)
        if not marketplace.uses_oauth:
            raise UnsupportedMarketplaceError(f"{marketplace.value} does not support token refresh")
        if not connection.refresh_token or not connection.api_key or not connection.api_secret:
            raise TokenRefreshError(
                "Missing refresh token or client credentials",
                marketplace=marketplace.value,
            )

        timeout = self.settings.MARKETPLACE_TIMEOUT_SECONDS
        if marketplace == Marketplace.MERCADOLIBRE:
            return await MercadoLibreAdapter.refresh_access_token(
                connection.refresh_token,
                connection.api_key,
                connection.api_secret,
                api_url=self.settings.MERCADOLIBRE_API_URL,
                timeout=timeout,
            )
        return await AmazonAdapter.refresh_access_token(
            connection.refresh_token,
            connection.api_key,
            connection.api_secret,
            token_url=self.settings.AMAZON_LWA_TOKEN_URL,
            timeout=timeout,
        )
