"""
Purpose: Change detection and fan-out for canonical product edits.

An edit is compared field by field (numerically) against the persisted row
before it is applied. Local state is written first and is the source of
truth; remote pushes happen afterwards, one independent attempt per linked
marketplace, and their outcomes are reported rather than raised:

    "synced" | "error: <message>" | "skipped: not connected"

Stock and cost are shared inside a group, so a stock or cost change is
copied to every sibling and siblings whose stock moved are pushed to their
own listings. Propagation is a single level: siblings never propagate again.

The helpers push_to_marketplaces() and propagate_to_group() expect the
caller to hold the product's group lock; every public entry point here takes
that lock itself.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from marketsync.core.enums import Marketplace, ProductStatus, SyncOutcome
from marketsync.core.exceptions import (
    MarketplaceAPIError,
    MarketplaceAuthError,
    MarketplaceNotConnectedError,
    ProductNotFoundError,
    UnsupportedMarketplaceError,
)
from marketsync.models.connection import Connection
from marketsync.models.product import Product
from marketsync.schemas.product import (
    GroupListing,
    GroupSummary,
    ProductCreate,
    ProductRead,
    ProductUpdate,
    RemoteProduct,
)
from marketsync.schemas.sync import ProductSyncReport
from marketsync.services.catalog_store import CatalogStore
from marketsync.services.locks import GroupLockRegistry, group_key

logger = logging.getLogger(__name__)

NOT_CONNECTED = SyncOutcome.SKIPPED.describe("not connected")


def values_differ(old, new) -> bool:
    """Numeric comparison; None only equals None"""
    if old is None and new is None:
        return False
    if old is None or new is None:
        return True
    return float(old) != float(new)


class ProductSyncService:
    def __init__(self, store_factory: Callable, adapter_factory, locks: GroupLockRegistry):
        self.store_factory = store_factory
        self.adapter_factory = adapter_factory
        self.locks = locks

    @asynccontextmanager
    async def locked_product(self, store: CatalogStore, product_id: int, also_group: Optional[str] = None):
        """
        Yield a product re-read under its group lock (plus also_group's lock, if given).

        The lock key comes from a first read. When the product moved to
        another group while we waited, the lock is dropped and taken again
        under the new key.

        Raises:
            ProductNotFoundError: unknown product id, or deleted while waiting
        """
        while True:
            product = await store.require_product(product_id)
            key = product.lock_key
            async with self.locks.hold(key, group_key(also_group) if also_group else None):
                product = await store.reload_product(product)
                if product is None:
                    raise ProductNotFoundError(f"Product with ID {product_id} not found")
                if product.lock_key == key:
                    yield product
                    return
            logger.info(f"[Sync] {product.sku} moved from {key} to {product.lock_key} while waiting, retrying")

    # Remote pushes

    async def _connections(self, store: CatalogStore) -> Dict[Marketplace, Connection]:
        connections = {}
        for connection in await store.list_connections():
            try:
                connections[connection.marketplace_enum] = connection
            except UnsupportedMarketplaceError:
                logger.warning(f"Ignoring connection for unknown marketplace {connection.marketplace}")
        return connections

    async def _demote(self, store: CatalogStore, connection: Connection, error: Exception) -> None:
        logger.warning(f"Marking {connection.marketplace} disconnected after auth failure: {error}")
        connection.is_connected = False
        await store.save_connection(connection)

    async def _push_one(
        self,
        store: CatalogStore,
        product: Product,
        marketplace: Marketplace,
        connection: Optional[Connection],
        stock: bool,
        price: bool,
    ) -> str:
        if not connection or not connection.is_usable():
            logger.info(f"[Sync] {product.sku} not pushed to {marketplace.value}: not connected")
            return NOT_CONNECTED

        external_id = product.get_external_id(marketplace)
        try:
            adapter = self.adapter_factory.build(connection)
            if stock:
                if not await adapter.update_stock(external_id, product.stock):
                    raise MarketplaceAPIError("stock update was not accepted", marketplace=marketplace.value)
            if price:
                if not await adapter.update_price(external_id, product.price, product.sale_price):
                    raise MarketplaceAPIError("price update was not accepted", marketplace=marketplace.value)
        except MarketplaceAuthError as e:
            logger.error(f"[Sync] {marketplace.value} rejected credentials while pushing {product.sku}: {e}")
            await self._demote(store, connection, e)
            return SyncOutcome.ERROR.describe(str(e))
        except Exception as e:
            logger.error(f"[Sync] Failed to push {product.sku} to {marketplace.value}: {e}")
            return SyncOutcome.ERROR.describe(str(e))

        logger.info(f"[Sync] {product.sku} synced to {marketplace.value} (stock={stock}, price={price})")
        return SyncOutcome.SYNCED.value

    async def push_to_marketplaces(
        self,
        store: CatalogStore,
        product: Product,
        stock: bool = False,
        price: bool = False,
        exclude: Iterable[Marketplace] = (),
    ) -> Dict[str, str]:
        """Push stock and/or price to every linked marketplace except the excluded ones"""
        if not (stock or price):
            return {}

        excluded = {Marketplace(m) for m in exclude}
        connections = await self._connections(store)
        results: Dict[str, str] = {}
        for marketplace in product.linked_marketplaces():
            if marketplace in excluded:
                continue
            results[marketplace.value] = await self._push_one(
                store, product, marketplace, connections.get(marketplace), stock, price
            )
        return results

    async def propagate_to_group(
        self,
        store: CatalogStore,
        product: Product,
        stock_changed: bool = True,
        cost_changed: bool = False,
    ) -> Dict[str, Dict[str, str]]:
        """Copy shared stock/cost to siblings; one level, siblings do not propagate further"""
        if not product.group_id or not (stock_changed or cost_changed):
            return {}

        siblings = [p for p in await store.find_group(product.group_id) if p.id != product.id]
        changed: List[Product] = []
        stock_moved: List[Product] = []
        for sibling in siblings:
            dirty = False
            if stock_changed and values_differ(sibling.stock, product.stock):
                sibling.stock = product.stock
                stock_moved.append(sibling)
                dirty = True
            if cost_changed and values_differ(sibling.cost_price, product.cost_price):
                sibling.cost_price = product.cost_price
                dirty = True
            if dirty:
                changed.append(sibling)

        if not changed:
            return {}

        await store.save_products(changed)
        logger.info(f"[Sync] Updated stock/cost for {len(changed)} products in group {product.group_id}")

        results: Dict[str, Dict[str, str]] = {}
        for sibling in stock_moved:
            results[sibling.sku] = await self.push_to_marketplaces(store, sibling, stock=True)
        return results

    # Edits

    async def update_product(
        self,
        product_id: int,
        changes: Union[ProductUpdate, Dict[str, Any]],
    ) -> ProductSyncReport:
        """
        Apply an operator edit and fan the numeric deltas out.

        Raises:
            ProductNotFoundError: unknown product id
        """
        if isinstance(changes, ProductUpdate):
            updates = changes.model_dump(exclude_unset=True)
        else:
            updates = dict(changes)
        if "dimensions" in updates and hasattr(updates["dimensions"], "model_dump"):
            updates["dimensions"] = updates["dimensions"].model_dump()
        for key in ("condition", "status"):
            if key in updates and hasattr(updates[key], "value"):
                updates[key] = updates[key].value
        # Required columns cannot be cleared by an explicit null
        for key in ("title", "price", "stock", "condition"):
            if key in updates and updates[key] is None:
                del updates[key]

        async with self.store_factory() as store:
            async with self.locked_product(store, product_id, also_group=updates.get("group_id")) as product:
                deltas = {
                    "price": "price" in updates and values_differ(product.price, updates["price"]),
                    "sale_price": "sale_price" in updates and values_differ(product.sale_price, updates["sale_price"]),
                    "stock": "stock" in updates and values_differ(product.stock, updates["stock"]),
                    "cost_price": "cost_price" in updates and values_differ(product.cost_price, updates["cost_price"]),
                }

                for key, value in updates.items():
                    setattr(product, key, value)
                product.last_synced_at = datetime.now(timezone.utc)
                await store.save_product(product)

                report = ProductSyncReport(product_id=product.id, sku=product.sku, changes=deltas)
                if not any(deltas.values()):
                    report.product = ProductRead.model_validate(product)
                    return report

                price_changed = deltas["price"] or deltas["sale_price"]
                if price_changed or deltas["stock"]:
                    logger.info(
                        f"[Sync] Changes detected on {product.sku} - price: {deltas['price']}, "
                        f"sale_price: {deltas['sale_price']}, stock: {deltas['stock']}"
                    )
                    report.sync_results = await self.push_to_marketplaces(
                        store, product, stock=deltas["stock"], price=price_changed
                    )

                report.group_propagation = await self.propagate_to_group(
                    store, product, stock_changed=deltas["stock"], cost_changed=deltas["cost_price"]
                )
                report.product = ProductRead.model_validate(product)
                return report

    async def update_group_stock(self, group_id: str, stock: int) -> Dict[str, Any]:
        """Set one stock value on every member of a group and push it to their listings"""
        async with self.store_factory() as store:
            async with self.locks.hold(group_key(group_id)):
                members = await store.find_group(group_id)
                if not members:
                    raise ProductNotFoundError(f"Group {group_id} not found")

                for member in members:
                    member.stock = stock
                await store.save_products(members)

                results = {}
                for member in members:
                    results[member.sku] = await self.push_to_marketplaces(store, member, stock=True)

        logger.info(f"[Sync] Group {group_id} stock set to {stock} across {len(members)} products")
        return {
            "group_id": group_id,
            "stock": stock,
            "products_updated": len(members),
            "results": results,
        }

    async def create_product(self, data: ProductCreate) -> Product:
        """
        Raises:
            DuplicateSkuError: the SKU is already in the catalog
        """
        fields = data.model_dump()
        if fields.get("dimensions") is not None:
            fields["dimensions"] = dict(fields["dimensions"])
        fields["condition"] = data.condition.value
        fields["status"] = data.status.value

        async with self.store_factory() as store:
            product = Product(**fields)
            async with self.locks.hold(product.lock_key):
                return await store.save_product(product)

    async def delete_product(self, product_id: int, remote: bool = False) -> Dict[str, str]:
        """Delete locally; with remote=True also delete (or close) every linked listing first"""
        async with self.store_factory() as store:
            async with self.locked_product(store, product_id) as product:
                results: Dict[str, str] = {}
                if remote:
                    results = await self._for_each_link(
                        store, product, "delete_product")
                await store.delete_product(product)

        logger.info(f"[Sync] Deleted product {product_id} (remote={remote})")
        return results

    async def set_status(self, product_id: int, status: ProductStatus) -> Dict[str, Any]:
        """Pause or activate a product locally and on every linked marketplace"""
        status = ProductStatus(status)
        async with self.store_factory() as store:
            async with self.locked_product(store, product_id) as product:
                action = "pause_product" if status == ProductStatus.PAUSED else "activate_product"
                results = await self._for_each_link(store, product, action)

                product.status = status.value
                await store.save_product(product)

        return {"product": ProductRead.model_validate(product), "sync_results": results}

    async def _for_each_link(self, store: CatalogStore, product: Product, action: str) -> Dict[str, str]:
        connections = await self._connections(store)
        results: Dict[str, str] = {}
        for marketplace in product.linked_marketplaces():
            connection = connections.get(marketplace)
            if not connection or not connection.is_usable():
                results[marketplace.value] = NOT_CONNECTED
                continue
            try:
                adapter = self.adapter_factory.build(connection)
                if not await getattr(adapter, action)(product.get_external_id(marketplace)):
                    raise MarketplaceAPIError("request was not accepted", marketplace=marketplace.value)
                results[marketplace.value] = SyncOutcome.SYNCED.value
            except MarketplaceAuthError as e:
                await self._demote(store, connection, e)
                results[marketplace.value] = SyncOutcome.ERROR.describe(str(e))
            except Exception as e:
                logger.error(f"[Sync] {marketplace.value} call failed for {product.sku}: {e}")
                results[marketplace.value] = SyncOutcome.ERROR.describe(str(e))
        return results

    async def publish_product(self, product_id: int, marketplace: Marketplace) -> Product:
        """
        Push the full listing to one marketplace: update when linked, create otherwise.

        Errors propagate; a first-time publish has no partial state to reconcile.

        Raises:
            ProductNotFoundError: unknown product id
            MarketplaceNotConnectedError: no usable connection
            MarketplaceAPIError: the marketplace refused the listing
        """
        marketplace = Marketplace.parse(marketplace)
        async with self.store_factory() as store:
            async with self.locked_product(store, product_id) as product:
                connection = await store.get_connection(marketplace)
                if not connection or not connection.is_usable():
                    raise MarketplaceNotConnectedError(f"{marketplace.value} not connected")

                adapter = self.adapter_factory.build(connection)
                remote = RemoteProduct.from_product(product)
                external_id = product.get_external_id(marketplace)
                try:
                    if external_id:
                        await adapter.update_product(external_id, remote.model_dump(exclude={"external_id"}))
                    else:
                        created = await adapter.create_product(remote)
                        if not created.external_id:
                            raise MarketplaceAPIError(
                                "Marketplace did not return a listing id", marketplace=marketplace.value
                            )
                        product.set_external_id(marketplace, created.external_id)
                except MarketplaceAuthError as e:
                    await self._demote(store, connection, e)
                    raise

                product.last_synced_at = datetime.now(timezone.utc)
                await store.save_product(product)

        logger.info(f"[Sync] Published {product.sku} to {marketplace.value} as {product.get_external_id(marketplace)}")
        return product

    # Views

    async def list_groups(self) -> GroupListing:
        async with self.store_factory() as store:
            products = await store.list_products()

        groups: Dict[str, List[Product]] = {}
        ungrouped: List[Product] = []
        for product in products:
            if product.group_id:
                groups.setdefault(product.group_id, []).append(product)
            else:
                ungrouped.append(product)

        summaries = []
        for group_id, members in groups.items():
            # Stock is shared, so max equals the shared value whenever the invariant holds
            total_stock = max(m.stock or 0 for m in members)
            cost_price = next((m.cost_price for m in members if m.cost_price), None)
            summaries.append(GroupSummary(
                group_id=group_id,
                products=[ProductRead.model_validate(m) for m in members],
                total_stock=total_stock,
                cost_price=cost_price,
                total_value=total_stock * cost_price if cost_price else 0.0,
            ))

        return GroupListing(
            groups=summaries,
            ungrouped=[ProductRead.model_validate(p) for p in ungrouped],
            total_groups=len(summaries),
            total_ungrouped=len(ungrouped),
        )
