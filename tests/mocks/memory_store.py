from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence

from marketsync.core.enums import Marketplace, ProductCondition, ProductStatus
from marketsync.core.exceptions import ConnectionNotFoundError, DuplicateSkuError, ProductNotFoundError
from marketsync.models.connection import Connection
from marketsync.models.product import Product

PRODUCT_DEFAULTS = {
    "price": 0.0,
    "stock": 0,
    "images": list,
    "condition": ProductCondition.NEW.value,
    "status": ProductStatus.ACTIVE.value,
}


class MemoryCatalogStore:
    """
    Dict-backed stand-in for CatalogStore.

    Rows are plain transient ORM instances shared by every scope, so a test
    can hold a Product and see what the services did to it.
    """

    def __init__(self):
        self.products: Dict[int, Product] = {}
        self.connections: Dict[str, Connection] = {}
        self.fail_on_save: Dict[str, Exception] = {}  # sku -> exception raised by save
        self.commits = 0
        self.scopes_opened = 0
        self._next_product_id = 1
        self._next_connection_id = 1

    @asynccontextmanager
    async def scope(self):
        self.scopes_opened += 1
        yield self

    def store_factory(self):
        return self.scope()

    # Seeding helpers

    def add_product(self, **fields) -> Product:
        product = Product(**fields)
        self._stamp(product)
        self.products[product.id] = product
        return product

    def add_connection(self, marketplace, is_connected=True, **fields) -> Connection:
        marketplace = Marketplace(marketplace)
        fields.setdefault("access_token", "token" if marketplace.uses_oauth else None)
        connection = Connection(marketplace=marketplace.value, is_connected=is_connected, **fields)
        connection.id = self._next_connection_id
        self._next_connection_id += 1
        self.connections[marketplace.value] = connection
        return connection

    def _stamp(self, product: Product) -> None:
        for key, default in PRODUCT_DEFAULTS.items():
            if getattr(product, key) is None:
                setattr(product, key, default() if callable(default) else default)
        if product.id is None:
            product.id = self._next_product_id
            self._next_product_id += 1
            product.created_at = datetime.now(timezone.utc)
        product.updated_at = datetime.now(timezone.utc)

    # Products

    async def get_product(self, product_id: int) -> Optional[Product]:
        return self.products.get(product_id)

    async def require_product(self, product_id: int) -> Product:
        product = await self.get_product(product_id)
        if not product:
            raise ProductNotFoundError(f"Product with ID {product_id} not found")
        return product

    async def reload_product(self, product: Product) -> Optional[Product]:
        return self.products.get(product.id)

    async def find_by_external_id(self, marketplace, external_id: str) -> Optional[Product]:
        if not external_id:
            return None
        for product in self.products.values():
            if product.get_external_id(marketplace) == str(external_id):
                return product
        return None

    async def find_by_sku(self, sku: str) -> Optional[Product]:
        if not sku:
            return None
        return next((p for p in self.products.values() if p.sku == sku), None)

    async def find_group(self, group_id: str) -> List[Product]:
        if not group_id:
            return []
        return sorted((p for p in self.products.values() if p.group_id == group_id), key=lambda p: p.id)

    async def list_products(self, search=None, group_id=None, limit=None, offset=0) -> List[Product]:
        products = sorted(self.products.values(), key=lambda p: p.id)
        if search:
            needle = search.lower()
            products = [p for p in products if needle in p.sku.lower() or needle in (p.title or "").lower()]
        if group_id:
            products = [p for p in products if p.group_id == group_id]
        products = products[offset:]
        if limit:
            products = products[:limit]
        return products

    async def save_product(self, product: Product) -> Product:
        await self.save_products([product])
        return product

    async def save_products(self, products: Sequence[Product]) -> None:
        for product in products:
            error = self.fail_on_save.get(product.sku)
            if error:
                raise error
            clash = await self.find_by_sku(product.sku)
            if clash is not None and clash is not product:
                raise DuplicateSkuError(f"SKU already exists: {product.sku}")
        for product in products:
            self._stamp(product)
            self.products[product.id] = product
        self.commits += 1

    async def delete_product(self, product: Product) -> None:
        self.products.pop(product.id, None)
        self.commits += 1

    # Connections

    async def get_connection(self, marketplace) -> Optional[Connection]:
        return self.connections.get(Marketplace(marketplace).value)

    async def require_connection(self, marketplace) -> Connection:
        connection = await self.get_connection(marketplace)
        if not connection:
            raise ConnectionNotFoundError(f"No connection configured for {Marketplace(marketplace).value}")
        return connection

    async def list_connections(self, connected_only: bool = False) -> List[Connection]:
        connections = sorted(self.connections.values(), key=lambda c: c.id)
        if connected_only:
            connections = [c for c in connections if c.is_connected]
        return connections

    async def save_connection(self, connection: Connection) -> Connection:
        if connection.id is None:
            connection.id = self._next_connection_id
            self._next_connection_id += 1
        connection.updated_at = datetime.now(timezone.utc)
        self.connections[connection.marketplace] = connection
        self.commits += 1
        return connection

    async def delete_connection(self, connection: Connection) -> None:
        self.connections.pop(connection.marketplace, None)
        self.commits += 1
