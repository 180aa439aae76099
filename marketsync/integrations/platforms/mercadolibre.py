"""
Mercado Libre items API adapter.

Authenticates with the connection's OAuth bearer token. The seller's user id
(connection.user_id) scopes the listing search. Items without a
seller_custom_field use the item id as their SKU, so each such listing
becomes its own product locally.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import httpx

from marketsync.core.enums import Marketplace, ProductCondition, ProductStatus
from marketsync.core.exceptions import MarketplaceAPIError, TokenRefreshError
from marketsync.integrations.base import MarketplaceAdapter, to_float, to_int
from marketsync.schemas.product import RemoteOrder, RemoteOrderLine, RemoteProduct

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.mercadolibre.com"
CLASSIC_LISTING_TYPES = ("bronze", "silver")
PREMIUM_LISTING_TYPES = ("platinum",)


def classify_listing_type(listing_type_id: Optional[str]) -> str:
    listing_type_id = listing_type_id or ""
    if "free" in listing_type_id or listing_type_id in CLASSIC_LISTING_TYPES:
        return "classic"
    if "gold" in listing_type_id or listing_type_id in PREMIUM_LISTING_TYPES:
        return "premium"
    return "other"


class MercadoLibreAdapter(MarketplaceAdapter):
    name = Marketplace.MERCADOLIBRE

    def __init__(
        self,
        credentials,
        timeout: float = 30.0,
        api_url: str = DEFAULT_API_URL,
        currency: str = "BRL",
        default_category: str = "MLB1648",
    ):
        super().__init__(credentials, timeout)
        self.base_url = (api_url or DEFAULT_API_URL).rstrip("/")
        self.user_id = credentials.user_id or ""
        self.currency = currency
        self.default_category = default_category

    def _get_headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.credentials.access_token or ''}",
            "Content-Type": "application/json",
        }

    async def _request(self, method: str, endpoint: str, **kwargs) -> Any:
        url = f"{self.base_url}/{endpoint.lstrip('/')}"
        return await self._make_request(method, url, headers=self._get_headers(), **kwargs)

    async def test_connection(self) -> bool:
        try:
            await self._request("GET", "/users/me")
            return True
        except MarketplaceAPIError as e:
            logger.warning(f"Mercado Libre connection test failed: {e}")
            return False

    async def list_products(self, limit: int = 50, offset: int = 0) -> List[RemoteProduct]:
        search = await self._request(
            "GET",
            f"/users/{self.user_id}/items/search",
            params={"limit": limit, "offset": offset},
        )
        item_ids = (search or {}).get("results") or []
        if not item_ids:
            return []

        entries = await self._request("GET", "/items", params={"ids": ",".join(item_ids)})
        products = []
        for entry in entries or []:
            if entry.get("code") != 200:
                logger.warning(f"Mercado Libre multiget entry failed with code {entry.get('code')}")
                continue
            products.append(self.to_remote(entry.get("body") or {}))
        return products

    async def get_product(self, external_id: str) -> Optional[RemoteProduct]:
        data = await self._request("GET", f"/items/{external_id}", allow_not_found=True)
        if not data:
            return None
        return self.to_remote(data)

    async def create_product(self, product: RemoteProduct) -> RemoteProduct:
        data = await self._request("POST", "/items", json_data=self.to_native(product))
        return self.to_remote(data)

    async def update_product(self, external_id: str, product: Dict[str, Any]) -> RemoteProduct:
        # Items only accept a handful of fields on PUT once they have sales
        payload = {}
        if product.get("title"):
            payload["title"] = product["title"]
        if product.get("price"):
            payload["price"] = product["price"]
        if product.get("stock") is not None:
            payload["available_quantity"] = product["stock"]

        data = await self._request("PUT", f"/items/{external_id}", json_data=payload)
        return self.to_remote(data)

    async def update_stock(self, external_id: str, quantity: int) -> bool:
        await self._request("PUT", f"/items/{external_id}", json_data={"available_quantity": quantity})
        return True

    async def update_price(self, external_id: str, price: float, sale_price: Optional[float] = None) -> bool:
        # Promotions are managed separately on Mercado Libre; sale_price is not sent
        await self._request("PUT", f"/items/{external_id}", json_data={"price": price})
        return True

    async def pause_product(self, external_id: str) -> bool:
        await self._request("PUT", f"/items/{external_id}", json_data={"status": "paused"})
        return True

    async def activate_product(self, external_id: str) -> bool:
        await self._request("PUT", f"/items/{external_id}", json_data={"status": "active"})
        return True

    async def delete_product(self, external_id: str) -> bool:
        await self._request("PUT", f"/items/{external_id}", json_data={"status": "closed"})
        return True

    async def get_order(self, order_id: str) -> Optional[RemoteOrder]:
        data = await self._request("GET", f"/orders/{order_id}", allow_not_found=True)
        if not data:
            return None

        lines = []
        for line in data.get("order_items") or []:
            item = line.get("item") or {}
            if not item.get("id"):
                continue
            lines.append(RemoteOrderLine(
                external_id=str(item["id"]),
                quantity=to_int(line.get("quantity"), default=1),
                sku=item.get("seller_custom_field") or item.get("seller_sku"),
            ))
        return RemoteOrder(order_id=str(data.get("id", order_id)), status=data.get("status"), lines=lines)

    # Field mapping

    @staticmethod
    def to_remote(item: Dict[str, Any]) -> RemoteProduct:
        item = item or {}
        brand = None
        for attribute in item.get("attributes") or []:
            if attribute.get("id") == "BRAND":
                brand = attribute.get("value_name")
                break

        pictures = item.get("pictures") or []
        item_id = item.get("id")

        return RemoteProduct(
            external_id=str(item_id) if item_id else None,
            sku=item.get("seller_custom_field") or item_id or "",
            title=item.get("title") or "",
            description="",
            price=to_float(item.get("price")),
            stock=to_int(item.get("available_quantity")),
            images=[pic.get("url") or pic.get("secure_url") for pic in pictures if pic.get("url") or pic.get("secure_url")],
            category=item.get("category_id"),
            brand=brand,
            condition=ProductCondition.NEW if item.get("condition") == "new" else ProductCondition.USED,
            status=ProductStatus.ACTIVE if item.get("status") == "active" else ProductStatus.PAUSED,
            listing_type=classify_listing_type(item.get("listing_type_id")),
            source_marketplace=Marketplace.MERCADOLIBRE.value,
        )

    def to_native(self, product: RemoteProduct) -> Dict[str, Any]:
        attributes = []
        if product.brand:
            attributes.append({"id": "BRAND", "value_name": product.brand})

        condition = getattr(product.condition, "value", product.condition) or ProductCondition.NEW.value
        return {
            "title": product.title,
            "category_id": product.category or self.default_category,
            "price": product.price,
            "currency_id": self.currency,
            "available_quantity": product.stock,
            "buying_mode": "buy_it_now",
            "condition": condition,
            "listing_type_id": "gold_special",
            "pictures": [{"source": url} for url in product.images],
            "seller_custom_field": product.sku,
            "attributes": attributes,
        }

    # OAuth

    @classmethod
    async def refresh_access_token(
        cls,
        refresh_token: str,
        client_id: str,
        client_secret: str,
        api_url: str = DEFAULT_API_URL,
        timeout: float = 30.0,
    ) -> Dict[str, Any]:
        """
        Exchange a refresh token for a new access token.

        Returns:
            Dict with access_token, refresh_token and expires_at
        """
        url = f"{(api_url or DEFAULT_API_URL).rstrip('/')}/oauth/token"
        payload = {
            "grant_type": "refresh_token",
            "client_id": client_id,
            "client_secret": client_secret,
            "refresh_token": refresh_token,
        }
        try:
            async with httpx.AsyncClient(timeout=timeout) as client:
                response = await client.post(url, json=payload)
        except httpx.HTTPError as e:
            raise TokenRefreshError(
                f"Network error refreshing Mercado Libre token: {str(e)}",
                marketplace=Marketplace.MERCADOLIBRE.value,
            )

        if response.status_code != 200:
            raise TokenRefreshError(
                f"Mercado Libre token refresh failed ({response.status_code}): {response.text[:300]}",
                marketplace=Marketplace.MERCADOLIBRE.value,
                status_code=response.status_code,
            )

        token_data = response.json()
        expires_in = to_int(token_data.get("expires_in"), default=21600)
        return {
            "access_token": token_data["access_token"],
            # Mercado Libre rotates refresh tokens; keep the old one if none came back
            "refresh_token": token_data.get("refresh_token") or refresh_token,
            "expires_at": datetime.now(timezone.utc) + timedelta(seconds=expires_in),
        }
