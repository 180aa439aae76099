"""
Purpose: Repository over the canonical catalog (products) and connection rows.

Every other service reads and writes persistent state only through a
CatalogStore. One store wraps one AsyncSession; long-lived services open a
fresh store per unit of work through store_scope(), so a failed unit never
leaves a poisoned session behind for the next one.

Product reads always go back to the database and overwrite whatever the
session already holds for the row: a product read before its group lock
is read again under the lock and must see what other sessions committed
in between.

Store errors propagate to the caller, with unique-SKU violations surfacing
as DuplicateSkuError.
"""

import logging
from contextlib import asynccontextmanager
from functools import partial
from typing import List, Optional, Sequence

from sqlalchemy import select, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from marketsync.core.enums import Marketplace
from marketsync.core.exceptions import (
    CatalogError,
    ConnectionNotFoundError,
    DuplicateSkuError,
    ProductNotFoundError,
)
from marketsync.models.connection import Connection
from marketsync.models.product import Product

logger = logging.getLogger(__name__)


def _fresh(query):
    return query.execution_options(populate_existing=True)


def _is_duplicate_sku(error: IntegrityError) -> bool:
    # SQLite: "UNIQUE constraint failed: products.sku"
    # Postgres: duplicate key value violates unique constraint "ix_products_sku"
    message = str(error.orig).lower()
    return "sku" in message and ("unique" in message or "duplicate" in message)


class CatalogStore:
    def __init__(self, session: AsyncSession):
        self.session = session

    # Products

    async def get_product(self, product_id: int) -> Optional[Product]:
        return await self.session.get(Product, product_id, populate_existing=True)

    async def reload_product(self, product: Product) -> Optional[Product]:
        """Re-read a product from the database; None once another session deleted it"""
        return await self.get_product(product.id)

    async def require_product(self, product_id: int) -> Product:
        product = await self.get_product(product_id)
        if not product:
            raise ProductNotFoundError(f"Product with ID {product_id} not found")
        return product

    async def find_by_external_id(self, marketplace: Marketplace, external_id: str) -> Optional[Product]:
        if not external_id:
            return None
        column = getattr(Product, Marketplace(marketplace).external_id_field)
        result = await self.session.execute(_fresh(select(Product).where(column == str(external_id))))
        return result.scalars().first()

    async def find_by_sku(self, sku: str) -> Optional[Product]:
        if not sku:
            return None
        result = await self.session.execute(_fresh(select(Product).where(Product.sku == sku)))
        return result.scalars().first()

    async def find_group(self, group_id: str) -> List[Product]:
        if not group_id:
            return []
        result = await self.session.execute(
            _fresh(select(Product).where(Product.group_id == group_id).order_by(Product.id))
        )
        return list(result.scalars().all())

    async def list_products(
        self,
        search: Optional[str] = None,
        group_id: Optional[str] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[Product]:
        query = _fresh(select(Product).order_by(Product.id))
        if search:
            pattern = f"%{search}%"
            query = query.where(or_(Product.sku.ilike(pattern), Product.title.ilike(pattern)))
        if group_id:
            query = query.where(Product.group_id == group_id)
        if offset:
            query = query.offset(offset)
        if limit:
            query = query.limit(limit)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def save_product(self, product: Product) -> Product:
        await self.save_products([product])
        return product

    async def save_products(self, products: Sequence[Product]) -> None:
        """Persist one or more products in a single commit"""
        for product in products:
            self.session.add(product)
        try:
            await self.session.commit()
        except IntegrityError as e:
            await self.session.rollback()
            skus = ", ".join(str(p.sku) for p in products)
            if _is_duplicate_sku(e):
                raise DuplicateSkuError(f"SKU already exists: {skus}") from e
            raise CatalogError(f"Could not save {skus}: {e.orig}") from e
        except Exception:
            await self.session.rollback()
            raise
        for product in products:
            await self.session.refresh(product)

    async def delete_product(self, product: Product) -> None:
        await self.session.delete(product)
        await self.session.commit()

    # Connections

    async def get_connection(self, marketplace: Marketplace) -> Optional[Connection]:
        result = await self.session.execute(
            select(Connection).where(Connection.marketplace == Marketplace(marketplace).value)
        )
        return result.scalars().first()

    async def require_connection(self, marketplace: Marketplace) -> Connection:
        connection = await self.get_connection(marketplace)
        if not connection:
            raise ConnectionNotFoundError(f"No connection configured for {Marketplace(marketplace).value}")
        return connection

    async def list_connections(self, connected_only: bool = False) -> List[Connection]:
        query = select(Connection).order_by(Connection.id)
        if connected_only:
            query = query.where(Connection.is_connected.is_(True))
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def save_connection(self, connection: Connection) -> Connection:
        self.session.add(connection)
        try:
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise
        await self.session.refresh(connection)
        return connection

    async def delete_connection(self, connection: Connection) -> None:
        await self.session.delete(connection)
        await self.session.commit()


@asynccontextmanager
async def store_scope(session_factory):
    """Open a session, hand out a CatalogStore over it and close it afterwards"""
    session = session_factory()
    try:
        yield CatalogStore(session)
    finally:
        await session.close()


def make_store_factory(session_factory):
    """Zero-argument callable returning a fresh store_scope, as services expect"""
    return partial(store_scope, session_factory)
