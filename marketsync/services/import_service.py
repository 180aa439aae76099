"""
Purpose: Turns remote listings into canonical catalog mutations.

For each remote item, in delivery order and independently of the others:
  1. look the product up by this marketplace's external id,
  2. failing that, by SKU,
  3. a SKU match already published on another marketplace (and not on this
     one) is skipped so cross-marketplace ownership is never reassigned,
  4. otherwise the product is updated, or created when nothing matched.

A batch is deliberately not atomic: each item commits on its own, so a
failure mid-batch keeps everything merged before it.
"""

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Iterable, Optional

from marketsync.core.enums import Marketplace, ProductCondition, ProductStatus
from marketsync.core.exceptions import (
    MarketplaceAPIError,
    MarketplaceAuthError,
    MarketplaceNotConnectedError,
)
from marketsync.models.product import Product
from marketsync.schemas.product import RemoteProduct
from marketsync.schemas.sync import ImportResult
from marketsync.services.catalog_store import CatalogStore
from marketsync.services.locks import GroupLockRegistry, sku_key

logger = logging.getLogger(__name__)

IMPORTED = "imported"
UPDATED = "updated"
SKIPPED = "skipped"


@dataclass
class MergeOutcome:
    action: str
    product: Optional[Product]
    stock_changed: bool = False


class ImportMergeResolver:
    def __init__(
        self,
        store_factory: Callable,
        adapter_factory,
        locks: GroupLockRegistry,
        page_size: int = 50,
        max_pages: int = 20,
    ):
        self.store_factory = store_factory
        self.adapter_factory = adapter_factory
        self.locks = locks
        self.page_size = page_size
        self.max_pages = max_pages

    async def locate(self, store: CatalogStore, marketplace: Marketplace, remote: RemoteProduct) -> Optional[Product]:
        product = None
        if remote.external_id:
            product = await store.find_by_external_id(marketplace, remote.external_id)
        if not product and remote.sku:
            product = await store.find_by_sku(remote.sku)
        return product

    async def apply_merge(self, store: CatalogStore, marketplace: Marketplace, remote: RemoteProduct) -> MergeOutcome:
        """Merge one item; the caller must already hold the item's group lock"""
        marketplace = Marketplace(marketplace)
        now = datetime.now(timezone.utc)
        product = await self.locate(store, marketplace, remote)

        if product:
            if product.owned_by_other_marketplace(marketplace):
                logger.info(
                    f"[Import] Skipping {remote.sku} from {marketplace.value}: "
                    f"already linked to {', '.join(m.value for m in product.linked_marketplaces())}"
                )
                return MergeOutcome(SKIPPED, product)

            previous_stock = product.stock
            product.title = remote.title
            product.description = remote.description
            product.price = remote.price
            product.sale_price = remote.sale_price
            product.stock = remote.stock
            product.images = list(remote.images)
            product.set_external_id(marketplace, remote.external_id)
            product.last_synced_at = now
            await store.save_product(product)
            return MergeOutcome(UPDATED, product, stock_changed=(previous_stock != product.stock))

        product = Product(
            sku=remote.sku or remote.external_id,
            title=remote.title,
            description=remote.description,
            price=remote.price,
            sale_price=remote.sale_price,
            stock=remote.stock,
            images=list(remote.images),
            category=remote.category,
            brand=remote.brand,
            condition=(remote.condition or ProductCondition.NEW).value,
            listing_type=remote.listing_type,
            weight=remote.weight,
            dimensions=remote.dimensions.model_dump() if remote.dimensions else None,
            attributes=remote.attributes,
            status=(remote.status or ProductStatus.ACTIVE).value,
            source_marketplace=marketplace.value,
            last_synced_at=now,
        )
        product.set_external_id(marketplace, remote.external_id)
        await store.save_product(product)
        return MergeOutcome(IMPORTED, product)

    @staticmethod
    def _item_key(existing: Optional[Product], remote: RemoteProduct) -> str:
        return existing.lock_key if existing else sku_key(remote.sku or remote.external_id)

    @asynccontextmanager
    async def hold_item(self, store: CatalogStore, marketplace: Marketplace, remote: RemoteProduct):
        """
        Hold the group lock of whatever product a remote item resolves to.

        The item is located again under the lock; if it now resolves to a
        different key (regrouped, or created by another writer) the lock is
        swapped for the new one.
        """
        key = self._item_key(await self.locate(store, marketplace, remote), remote)
        while True:
            async with self.locks.hold(key):
                current = self._item_key(await self.locate(store, marketplace, remote), remote)
                if current == key:
                    yield
                    return
            logger.info(f"[Import] {remote.sku} moved from {key} to {current} while waiting, retrying")
            key = current

    async def merge_item(self, store: CatalogStore, marketplace: Marketplace, remote: RemoteProduct) -> MergeOutcome:
        async with self.hold_item(store, marketplace, remote):
            return await self.apply_merge(store, marketplace, remote)

    async def merge_batch(
        self,
        store: CatalogStore,
        marketplace: Marketplace,
        items: Iterable[RemoteProduct],
        result: Optional[ImportResult] = None,
    ) -> ImportResult:
        marketplace = Marketplace(marketplace)
        result = result or ImportResult(marketplace=marketplace.value)

        for remote in items:
            result.total += 1
            try:
                outcome = await self.merge_item(store, marketplace, remote)
            except Exception as e:
                logger.error(f"[Import] {marketplace.value} product {remote.sku} failed: {e}", exc_info=True)
                result.failed += 1
                result.errors.append(f"Product {remote.sku}: {str(e)}")
                continue

            if outcome.action == IMPORTED:
                result.imported += 1
            elif outcome.action == UPDATED:
                result.updated += 1
            else:
                result.skipped += 1

        return result

    async def import_marketplace(self, marketplace: Marketplace) -> ImportResult:
        """
        Pull every listing from a connected marketplace and merge it.

        Raises:
            MarketplaceNotConnectedError: no usable connection for the marketplace
        """
        marketplace = Marketplace.parse(marketplace)
        result = ImportResult(marketplace=marketplace.value)

        async with self.store_factory() as store:
            connection = await store.get_connection(marketplace)
            if not connection or not connection.is_usable():
                raise MarketplaceNotConnectedError(f"{marketplace.value} not connected")

            adapter = self.adapter_factory.build(connection)
            logger.info(f"[Import] Starting import from {marketplace.value}")

            for page in range(self.max_pages):
                try:
                    items = await adapter.list_products(limit=self.page_size, offset=page * self.page_size)
                except MarketplaceAuthError as e:
                    logger.error(f"[Import] {marketplace.value} rejected credentials: {e}")
                    connection.is_connected = False
                    await store.save_connection(connection)
                    result.errors.append(f"Authentication failed: {str(e)}")
                    break
                except MarketplaceAPIError as e:
                    logger.error(f"[Import] Listing {marketplace.value} page {page} failed: {e}")
                    result.errors.append(f"Listing page {page}: {str(e)}")
                    break

                await self.merge_batch(store, marketplace, items, result)
                if len(items) < self.page_size:
                    break
            else:
                logger.warning(f"[Import] {marketplace.value} stopped after {self.max_pages} pages")

        logger.info(
            f"[Import] {marketplace.value}: imported={result.imported} updated={result.updated} "
            f"skipped={result.skipped} failed={result.failed} total={result.total}"
        )
        return result
