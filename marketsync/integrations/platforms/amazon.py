"""
Amazon Selling Partner API adapter (Listings Items 2021-08-01).

The connection stores the AWS region in api_url (mapped to a marketplace id
and regional endpoint), the LWA client id/secret in api_key/api_secret and
the LWA access/refresh tokens. Listings are keyed by seller SKU, so the
external id of an Amazon listing is its SKU.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import httpx

from marketsync.core.enums import Marketplace, ProductCondition, ProductStatus
from marketsync.core.exceptions import MarketplaceAPIError, TokenRefreshError
from marketsync.integrations.base import MarketplaceAdapter, to_float, to_int
from marketsync.schemas.product import RemoteProduct

logger = logging.getLogger(__name__)

LISTINGS_PATH = "/listings/2021-08-01/items"
DEFAULT_REGION = "us-east-1"
DEFAULT_LWA_TOKEN_URL = "https://api.amazon.com/auth/o2/token"
PRODUCT_TYPE = "PRODUCT"

MARKETPLACE_IDS = {
    "us-east-1": "ATVPDKIKX0DER",       # US
    "us-west-2": "ATVPDKIKX0DER",       # US
    "eu-west-1": "A1F83G8C2ARO7P",      # UK
    "eu-central-1": "A1PA6795UKMFR9",   # DE
}

REGION_ENDPOINTS = {
    "us-east-1": "https://sellingpartnerapi-na.amazon.com",
    "us-west-2": "https://sellingpartnerapi-fe.amazon.com",
    "eu-west-1": "https://sellingpartnerapi-eu.amazon.com",
    "eu-central-1": "https://sellingpartnerapi-eu.amazon.com",
}


class SellerIdCache:
    """Single-slot holder for the resolved seller id, shared across adapter instances"""

    def __init__(self):
        self._seller_id: Optional[str] = None

    def get(self) -> Optional[str]:
        return self._seller_id

    def set(self, seller_id: str) -> None:
        self._seller_id = seller_id


class AmazonAdapter(MarketplaceAdapter):
    name = Marketplace.AMAZON

    def __init__(
        self,
        credentials,
        timeout: float = 30.0,
        seller_id_cache: Optional[SellerIdCache] = None,
        endpoint: str = "",
        currency: str = "USD",
    ):
        super().__init__(credentials, timeout)
        self.region = credentials.api_url or DEFAULT_REGION
        self.marketplace_id = MARKETPLACE_IDS.get(self.region, MARKETPLACE_IDS[DEFAULT_REGION])
        self.base_url = (endpoint or REGION_ENDPOINTS.get(self.region, REGION_ENDPOINTS[DEFAULT_REGION])).rstrip("/")
        self.seller_id_cache = seller_id_cache or SellerIdCache()
        self.currency = currency

    def _get_headers(self) -> Dict[str, str]:
        return {
            "x-amz-access-token": self.credentials.access_token or "",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    async def _request(self, method: str, endpoint: str, **kwargs) -> Any:
        url = f"{self.base_url}/{endpoint.lstrip('/')}"
        return await self._make_request(method, url, headers=self._get_headers(), **kwargs)

    async def get_seller_id(self) -> str:
        cached = self.seller_id_cache.get()
        if cached:
            return cached

        # An explicitly configured seller id wins over the participations lookup
        if self.credentials.user_id:
            self.seller_id_cache.set(self.credentials.user_id)
            return self.credentials.user_id

        data = await self._request(
            "GET",
            "/sellers/v1/marketplaceParticipations",
            params={"marketplaceIds": self.marketplace_id},
        )
        payload = (data or {}).get("payload") or []
        seller_id = payload[0].get("sellerId") if payload else None
        if not seller_id:
            raise MarketplaceAPIError("Unable to retrieve seller ID", marketplace=self.name.value)

        self.seller_id_cache.set(seller_id)
        return seller_id

    async def test_connection(self) -> bool:
        try:
            await self._request(
                "GET",
                "/sellers/v1/marketplaceParticipations",
                params={"marketplaceIds": self.marketplace_id},
            )
            return True
        except MarketplaceAPIError as e:
            logger.warning(f"Amazon connection test failed: {e}")
            return False

    async def list_products(self, limit: int = 20, offset: int = 0) -> List[RemoteProduct]:
        seller_id = await self.get_seller_id()
        params = {
            "marketplaceIds": self.marketplace_id,
            "pageSize": limit,
            "includedData": "summaries,attributes,offers,fulfillmentAvailability",
        }
        if offset > 0:
            params["pageToken"] = str(offset)

        data = await self._request("GET", f"{LISTINGS_PATH}/{seller_id}", params=params)
        return [self.to_remote(item) for item in (data or {}).get("items") or []]

    async def get_product(self, external_id: str) -> Optional[RemoteProduct]:
        seller_id = await self.get_seller_id()
        data = await self._request(
            "GET",
            f"{LISTINGS_PATH}/{seller_id}/{external_id}",
            params={
                "marketplaceIds": self.marketplace_id,
                "includedData": "summaries,attributes,offers,fulfillmentAvailability",
            },
            allow_not_found=True,
        )
        if not data:
            return None
        return self.to_remote(data)

    async def create_product(self, product: RemoteProduct) -> RemoteProduct:
        seller_id = await self.get_seller_id()
        await self._request(
            "PUT",
            f"{LISTINGS_PATH}/{seller_id}/{product.sku}",
            params={"marketplaceIds": self.marketplace_id},
            json_data={
                "productType": PRODUCT_TYPE,
                "requirements": "LISTING",
                "attributes": self.to_native(product),
            },
        )
        return product.model_copy(update={"external_id": product.sku, "source_marketplace": self.name.value})

    async def update_product(self, external_id: str, product: Dict[str, Any]) -> RemoteProduct:
        remote = RemoteProduct(**{**product, "sku": product.get("sku") or external_id})
        attributes = self.to_native(remote)
        patches = [
            {"op": "replace", "path": f"/attributes/{key}", "value": value}
            for key, value in attributes.items()
            if value
        ]
        await self._patch(external_id, patches)
        return remote.model_copy(update={"external_id": external_id})

    async def update_stock(self, external_id: str, quantity: int) -> bool:
        await self._patch(external_id, [{
            "op": "replace",
            "path": "/attributes/fulfillment_availability",
            "value": [{"fulfillment_channel_code": "DEFAULT", "quantity": quantity}],
        }])
        return True

    async def update_price(self, external_id: str, price: float, sale_price: Optional[float] = None) -> bool:
        await self._patch(external_id, [{
            "op": "replace",
            "path": "/attributes/purchasable_offer",
            "value": [self._offer(sale_price or price)],
        }])
        return True

    async def pause_product(self, external_id: str) -> bool:
        return await self._set_availability(external_id, "Inactive")

    async def activate_product(self, external_id: str) -> bool:
        return await self._set_availability(external_id, "NewItem")

    async def delete_product(self, external_id: str) -> bool:
        seller_id = await self.get_seller_id()
        await self._request(
            "DELETE",
            f"{LISTINGS_PATH}/{seller_id}/{external_id}",
            params={"marketplaceIds": self.marketplace_id},
        )
        return True

    async def _set_availability(self, external_id: str, value: str) -> bool:
        await self._patch(external_id, [{
            "op": "replace",
            "path": "/attributes/condition_type",
            "value": [{"value": value}],
        }])
        return True

    async def _patch(self, sku: str, patches: List[Dict[str, Any]]) -> Any:
        seller_id = await self.get_seller_id()
        return await self._request(
            "PATCH",
            f"{LISTINGS_PATH}/{seller_id}/{sku}",
            params={"marketplaceIds": self.marketplace_id},
            json_data={"productType": PRODUCT_TYPE, "patches": patches},
        )

    def _offer(self, amount: float) -> Dict[str, Any]:
        return {
            "marketplace_id": self.marketplace_id,
            "currency": self.currency,
            "our_price": [{"schedule": [{"value_with_tax": amount}]}],
        }

    # Field mapping

    @staticmethod
    def to_remote(item: Dict[str, Any]) -> RemoteProduct:
        item = item or {}
        summaries = (item.get("summaries") or [{}])[0] or {}
        attributes = item.get("attributes") or {}
        offers = (item.get("offers") or [{}])[0] or {}
        availability = (item.get("fulfillmentAvailability") or [{}])[0] or {}

        def first_value(key):
            values = attributes.get(key) or []
            return values[0].get("value") if values else None

        sku = summaries.get("sku") or item.get("sku") or ""
        price = offers.get("price") or {}
        description = "\n".join(
            bp.get("value", "") for bp in attributes.get("bullet_point") or [] if bp.get("value")
        )
        main_image = summaries.get("mainImage") or {}

        return RemoteProduct(
            external_id=sku or None,
            sku=sku,
            title=summaries.get("itemName") or first_value("item_name") or "",
            description=description,
            price=to_float(price.get("amount")),
            stock=to_int(availability.get("quantity")),
            images=[main_image["link"]] if main_image.get("link") else [],
            category=summaries.get("productType") or None,
            brand=first_value("brand"),
            condition=ProductCondition.NEW if summaries.get("conditionType", "new_new") == "new_new" else ProductCondition.USED,
            status=ProductStatus.ACTIVE if "BUYABLE" in (summaries.get("status") or []) else ProductStatus.PAUSED,
            source_marketplace=Marketplace.AMAZON.value,
        )

    def to_native(self, product: RemoteProduct) -> Dict[str, Any]:
        condition = getattr(product.condition, "value", product.condition)
        return {
            "item_name": [{"value": product.title, "language_tag": "en_US"}],
            "bullet_point": [{"value": product.description, "language_tag": "en_US"}] if product.description else [],
            "brand": [{"value": product.brand}] if product.brand else [],
            "condition_type": [{"value": "NewItem" if condition == ProductCondition.NEW.value else "UsedLikeNew"}],
            "fulfillment_availability": [{"fulfillment_channel_code": "DEFAULT", "quantity": product.stock}],
            "purchasable_offer": [self._offer(product.sale_price or product.price)],
        }

    # Login with Amazon

    @classmethod
    async def refresh_access_token(
        cls,
        refresh_token: str,
        client_id: str,
        client_secret: str,
        token_url: str = DEFAULT_LWA_TOKEN_URL,
        timeout: float = 30.0,
    ) -> Dict[str, Any]:
        """
        Exchange an LWA refresh token for a new access token.

        Returns:
            Dict with access_token, refresh_token and expires_at
        """
        form = {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            "client_id": client_id,
            "client_secret": client_secret,
        }
        try:
            async with httpx.AsyncClient(timeout=timeout) as client:
                response = await client.post(
                    token_url or DEFAULT_LWA_TOKEN_URL,
                    data=form,
                    headers={"Content-Type": "application/x-www-form-urlencoded"},
                )
        except httpx.HTTPError as e:
            raise TokenRefreshError(
                f"Network error refreshing Amazon token: {str(e)}",
                marketplace=Marketplace.AMAZON.value,
            )

        if response.status_code != 200:
            raise TokenRefreshError(
                f"Amazon token refresh failed ({response.status_code}): {response.text[:300]}",
                marketplace=Marketplace.AMAZON.value,
                status_code=response.status_code,
            )

        token_data = response.json()
        expires_in = to_int(token_data.get("expires_in"), default=3600)
        return {
            "access_token": token_data["access_token"],
            "refresh_token": token_data.get("refresh_token") or refresh_token,
            "expires_at": datetime.now(timezone.utc) + timedelta(seconds=expires_in),
        }
