"""
WooCommerce REST API (v3) adapter.

The store URL lives in the connection's api_url; consumer key and secret are
sent as basic auth. Listing status maps publish <-> active and draft <-> paused.

Documentation: https://woocommerce.github.io/woocommerce-rest-api-docs/
"""

import logging
from typing import Any, Dict, List, Optional

import httpx

from marketsync.core.enums import Marketplace, ProductCondition, ProductStatus
from marketsync.core.exceptions import MarketplaceAPIError
from marketsync.integrations.base import MarketplaceAdapter, to_float, to_int
from marketsync.schemas.product import Dimensions, RemoteOrder, RemoteOrderLine, RemoteProduct

logger = logging.getLogger(__name__)

BRAND_ATTRIBUTE = "Marca"


class WooCommerceAdapter(MarketplaceAdapter):
    name = Marketplace.WOOCOMMERCE

    def __init__(self, credentials, timeout: float = 30.0):
        super().__init__(credentials, timeout)
        self.base_url = f"{(credentials.api_url or '').rstrip('/')}/wp-json/wc/v3"
        self.auth = httpx.BasicAuth(credentials.api_key or "", credentials.api_secret or "")

    async def _request(self, method: str, endpoint: str, **kwargs) -> Any:
        url = f"{self.base_url}/{endpoint.lstrip('/')}"
        return await self._make_request(method, url, auth=self.auth, **kwargs)

    async def test_connection(self) -> bool:
        try:
            await self._request("GET", "/system_status")
            return True
        except MarketplaceAPIError as e:
            logger.warning(f"WooCommerce connection test failed: {e}")
            return False

    async def list_products(self, limit: int = 100, offset: int = 0) -> List[RemoteProduct]:
        data = await self._request("GET", "/products", params={"per_page": limit, "offset": offset})
        return [self.to_remote(item) for item in (data or [])]

    async def get_product(self, external_id: str) -> Optional[RemoteProduct]:
        data = await self._request("GET", f"/products/{external_id}", allow_not_found=True)
        if not data:
            return None
        return self.to_remote(data)

    async def create_product(self, product: RemoteProduct) -> RemoteProduct:
        data = await self._request("POST", "/products", json_data=self.to_native(product))
        return self.to_remote(data)

    async def update_product(self, external_id: str, product: Dict[str, Any]) -> RemoteProduct:
        payload = self.to_native(product)
        data = await self._request("PUT", f"/products/{external_id}", json_data=payload)
        return self.to_remote(data)

    async def update_stock(self, external_id: str, quantity: int) -> bool:
        await self._request(
            "PUT",
            f"/products/{external_id}",
            json_data={"stock_quantity": quantity, "manage_stock": True},
        )
        return True

    async def update_price(self, external_id: str, price: float, sale_price: Optional[float] = None) -> bool:
        # Empty sale_price clears a previous sale on WooCommerce
        payload = {
            "regular_price": str(price),
            "sale_price": str(sale_price) if sale_price else "",
        }
        await self._request("PUT", f"/products/{external_id}", json_data=payload)
        return True

    async def pause_product(self, external_id: str) -> bool:
        await self._request("PUT", f"/products/{external_id}", json_data={"status": "draft"})
        return True

    async def activate_product(self, external_id: str) -> bool:
        await self._request("PUT", f"/products/{external_id}", json_data={"status": "publish"})
        return True

    async def delete_product(self, external_id: str) -> bool:
        await self._request("DELETE", f"/products/{external_id}", params={"force": "true"})
        return True

    async def get_order(self, order_id: str) -> Optional[RemoteOrder]:
        data = await self._request("GET", f"/orders/{order_id}", allow_not_found=True)
        if not data:
            return None
        return self.order_from_payload(data)

    # Field mapping

    @staticmethod
    def to_remote(item: Dict[str, Any]) -> RemoteProduct:
        item = item or {}
        attributes = item.get("attributes") or []
        brand = None
        for attribute in attributes:
            if attribute.get("name") == BRAND_ATTRIBUTE and attribute.get("options"):
                brand = attribute["options"][0]
                break

        raw_dimensions = item.get("dimensions") or None
        dimensions = None
        if raw_dimensions:
            dimensions = Dimensions(
                height=to_float(raw_dimensions.get("height")),
                width=to_float(raw_dimensions.get("width")),
                length=to_float(raw_dimensions.get("length")),
            )

        categories = item.get("categories") or []
        sale_price = to_float(item.get("sale_price"), default=None)

        return RemoteProduct(
            external_id=str(item["id"]) if item.get("id") is not None else None,
            sku=item.get("sku") or "",
            title=item.get("name") or "",
            description=item.get("description") or "",
            price=to_float(item.get("regular_price")),
            sale_price=sale_price or None,
            stock=to_int(item.get("stock_quantity")),
            images=[img.get("src") for img in (item.get("images") or []) if img.get("src")],
            category=categories[0].get("name") if categories else None,
            brand=brand,
            condition=ProductCondition.NEW,
            weight=to_float(item.get("weight"), default=None),
            dimensions=dimensions,
            status=ProductStatus.ACTIVE if item.get("status") == "publish" else ProductStatus.PAUSED,
            source_marketplace=Marketplace.WOOCOMMERCE.value,
        )

    @staticmethod
    def to_native(product) -> Dict[str, Any]:
        """Map a RemoteProduct (or a partial dict of its fields) to a WooCommerce body"""
        if isinstance(product, RemoteProduct):
            fields = product.model_dump(exclude_none=True)
        else:
            fields = {k: v for k, v in dict(product).items() if v is not None}

        payload: Dict[str, Any] = {}
        if "title" in fields:
            payload["name"] = fields["title"]
        if "sku" in fields:
            payload["sku"] = fields["sku"]
        if "description" in fields:
            payload["description"] = fields["description"]
        if "price" in fields:
            payload["regular_price"] = str(fields["price"])
        if "sale_price" in fields:
            payload["sale_price"] = str(fields["sale_price"])
        if "stock" in fields:
            payload["stock_quantity"] = int(fields["stock"])
            payload["manage_stock"] = True
        if "images" in fields:
            payload["images"] = [{"src": src} for src in fields["images"]]
        if "weight" in fields:
            payload["weight"] = str(fields["weight"])
        if "dimensions" in fields:
            dims = fields["dimensions"]
            if isinstance(dims, Dimensions):
                dims = dims.model_dump()
            payload["dimensions"] = {key: str(dims.get(key, 0)) for key in ("height", "width", "length")}
        if "status" in fields:
            status = getattr(fields["status"], "value", fields["status"])
            payload["status"] = "publish" if status == ProductStatus.ACTIVE.value else "draft"
        return payload

    @staticmethod
    def order_from_payload(order: Dict[str, Any]) -> RemoteOrder:
        lines = []
        for line in order.get("line_items") or []:
            product_id = line.get("variation_id") or line.get("product_id")
            if not product_id:
                continue
            lines.append(RemoteOrderLine(
                external_id=str(line.get("product_id") or product_id),
                quantity=to_int(line.get("quantity"), default=1),
                sku=line.get("sku") or None,
            ))
        return RemoteOrder(order_id=str(order.get("id", "")), status=order.get("status"), lines=lines)
