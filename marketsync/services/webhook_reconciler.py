"""
Purpose: Inbound marketplace notifications, acknowledged first and processed later.

Routes call handle_mercadolibre()/handle_woocommerce(), which only turn the
request into a WebhookEvent and put it on update_queue; the HTTP response
never waits for processing. A background worker drains the queue:

- item changes fetch the authoritative listing, merge it like a single
  import item, propagate stock to the group and push the result to the
  product's other marketplaces;
- orders decrement stock per line (never below zero) and fan out the same way.

Processing failures end up in the bounded diagnostic log only. Repeated
deliveries of one order decrement twice; de-duplication is left to the
marketplaces.
"""

import asyncio
import base64
import hashlib
import hmac
import logging
import re
from collections import deque
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from marketsync.core.enums import Marketplace
from marketsync.core.exceptions import MarketplaceAuthError, MarketplaceNotConnectedError, ProductNotFoundError
from marketsync.integrations.platforms.woocommerce import WooCommerceAdapter
from marketsync.schemas.product import RemoteOrder, RemoteProduct
from marketsync.schemas.sync import WebhookEvent, WebhookLogEntry
from marketsync.services.catalog_store import CatalogStore
from marketsync.services.import_service import ImportMergeResolver, IMPORTED, SKIPPED
from marketsync.services.product_sync import ProductSyncService

logger = logging.getLogger(__name__)

ITEM_RESOURCE = re.compile(r"/items/([^/?]+)")
ORDER_RESOURCE = re.compile(r"/orders/([^/?]+)")

ML_ITEM_TOPICS = ("items",)
ML_ORDER_TOPICS = ("orders_v2",)
ML_STOCK_TOPICS = ("stock-locations", "stock")
WC_PRODUCT_TOPICS = ("product.created", "product.updated")
WC_ORDER_TOPICS = ("order.created",)


def verify_woocommerce_signature(body: bytes, signature: Optional[str], secret: str) -> bool:
    """X-WC-Webhook-Signature is base64(HMAC-SHA256(secret, raw body))"""
    if not signature:
        return False
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).digest()
    expected = base64.b64encode(digest).decode("ascii")
    return hmac.compare_digest(expected, signature)


def is_woocommerce_ping(topic: Optional[str], payload: Optional[Dict[str, Any]]) -> bool:
    return not payload or topic == "ping" or (len(payload) == 1 and "webhook_id" in payload)


class WebhookReconciler:
    def __init__(
        self,
        store_factory: Callable,
        adapter_factory,
        resolver: ImportMergeResolver,
        product_sync: ProductSyncService,
        log_size: int = 100,
    ):
        self.store_factory = store_factory
        self.adapter_factory = adapter_factory
        self.resolver = resolver
        self.product_sync = product_sync
        self.update_queue: asyncio.Queue = asyncio.Queue()
        self.logs: deque = deque(maxlen=log_size)
        self._worker: Optional[asyncio.Task] = None

    # Intake

    async def handle_mercadolibre(self, body: Dict[str, Any]) -> WebhookEvent:
        body = body or {}
        event = WebhookEvent(
            source=Marketplace.MERCADOLIBRE.value,
            topic=str(body.get("topic") or "unknown"),
            resource_id=str(body.get("resource") or ""),
            payload=body,
        )
        await self.enqueue(event)
        return event

    async def handle_woocommerce(self, topic: Optional[str], body: Dict[str, Any]) -> WebhookEvent:
        body = body or {}
        event = WebhookEvent(
            source=Marketplace.WOOCOMMERCE.value,
            topic=topic or "unknown",
            resource_id=str(body.get("id") or ""),
            payload=body,
        )
        await self.enqueue(event)
        return event

    async def enqueue(self, event: WebhookEvent) -> None:
        logger.info(f"[Webhook] Queued {event.source} {event.topic} {event.resource_id}")
        await self.update_queue.put(event)

    # Worker

    def start(self) -> None:
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self.run_worker())
            logger.info("[Webhook] Worker started")

    async def stop(self) -> None:
        if self._worker:
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            self._worker = None
            logger.info("[Webhook] Worker stopped")

    async def run_worker(self) -> None:
        """Monitor and process the update queue"""
        while True:
            try:
                event = await self.update_queue.get()
            except asyncio.CancelledError:
                break
            try:
                await self.process(event)
            except asyncio.CancelledError:
                self.update_queue.task_done()
                break
            self.update_queue.task_done()

    async def process(self, event: WebhookEvent) -> WebhookLogEntry:
        """Process one event and record the outcome; never raises"""
        entry = WebhookLogEntry(
            source=event.source,
            topic=event.topic,
            resource_id=event.resource_id,
        )
        try:
            if event.source == Marketplace.MERCADOLIBRE.value:
                entry.processed = await self._process_mercadolibre(event)
            elif event.source == Marketplace.WOOCOMMERCE.value:
                entry.processed = await self._process_woocommerce(event)
            else:
                logger.info(f"[Webhook] Unknown source {event.source}")
        except Exception as e:
            logger.error(f"[Webhook] {event.source} {event.topic} {event.resource_id} failed: {e}", exc_info=True)
            entry.error = str(e)

        self.logs.append(entry)
        return entry

    def get_logs(self, limit: int = 20) -> List[WebhookLogEntry]:
        """Most recent first"""
        return list(reversed(self.logs))[:max(0, limit)]

    # Routing

    async def _process_mercadolibre(self, event: WebhookEvent) -> bool:
        marketplace = Marketplace.MERCADOLIBRE
        resource = event.resource_id

        if event.topic in ML_ITEM_TOPICS:
            item_id = self._resource_id(ITEM_RESOURCE, resource)
            await self.process_item_change(marketplace, item_id)
            return True

        if event.topic in ML_ORDER_TOPICS:
            order_id = self._resource_id(ORDER_RESOURCE, resource)
            async with self.store_factory() as store:
                adapter, connection = await self._adapter(store, marketplace)
                try:
                    order = await adapter.get_order(order_id)
                except MarketplaceAuthError:
                    connection.is_connected = False
                    await store.save_connection(connection)
                    raise
            if not order:
                logger.info(f"[Webhook] Mercado Libre order {order_id} not found")
                return True
            await self.process_order(marketplace, order)
            return True

        if event.topic in ML_STOCK_TOPICS:
            match = ITEM_RESOURCE.search(resource)
            if match:
                await self.process_item_change(marketplace, match.group(1))
            else:
                logger.info(f"[Webhook] Stock location change {resource} names no item, nothing to do")
            return True

        logger.info(f"[Webhook] Unhandled Mercado Libre topic: {event.topic}")
        return False

    async def _process_woocommerce(self, event: WebhookEvent) -> bool:
        marketplace = Marketplace.WOOCOMMERCE

        if event.topic in WC_PRODUCT_TOPICS:
            delivered = WooCommerceAdapter.to_remote(event.payload)
            await self.process_item_change(marketplace, event.resource_id, fallback=delivered)
            return True

        if event.topic in WC_ORDER_TOPICS:
            await self.process_order(marketplace, WooCommerceAdapter.order_from_payload(event.payload))
            return True

        logger.info(f"[Webhook] Unhandled WooCommerce topic: {event.topic}")
        return False

    @staticmethod
    def _resource_id(pattern, resource: str) -> str:
        match = pattern.search(resource or "")
        if match:
            return match.group(1)
        return (resource or "").rstrip("/").split("/")[-1]

    async def _adapter(self, store: CatalogStore, marketplace: Marketplace):
        connection = await store.get_connection(marketplace)
        if not connection or not connection.is_usable():
            raise MarketplaceNotConnectedError(f"{marketplace.value} not connected")
        return self.adapter_factory.build(connection), connection

    # Reconciliation

    async def process_item_change(
        self,
        marketplace: Marketplace,
        external_id: str,
        fallback: Optional[RemoteProduct] = None,
    ) -> Optional[str]:
        """Fetch, merge and fan out one listing; returns the merge action"""
        async with self.store_factory() as store:
            remote = None
            connection = await store.get_connection(marketplace)
            if connection and connection.is_usable():
                adapter = self.adapter_factory.build(connection)
                try:
                    remote = await adapter.get_product(external_id)
                except MarketplaceAuthError:
                    connection.is_connected = False
                    await store.save_connection(connection)
                    if not fallback:
                        raise
            elif not fallback:
                raise MarketplaceNotConnectedError(f"{marketplace.value} not connected")

            remote = remote or fallback
            if not remote:
                logger.info(f"[Webhook] {marketplace.value} item {external_id} not found")
                return None
            if not remote.external_id:
                remote.external_id = str(external_id)

            async with self.resolver.hold_item(store, marketplace, remote):
                outcome = await self.resolver.apply_merge(store, marketplace, remote)
                if outcome.action == SKIPPED:
                    return outcome.action

                product = outcome.product
                logger.info(f"[Webhook] {outcome.action} {product.sku} from {marketplace.value}")
                if outcome.action == IMPORTED:
                    return outcome.action

                if outcome.stock_changed:
                    await self.product_sync.propagate_to_group(store, product, stock_changed=True)
                await self.product_sync.push_to_marketplaces(
                    store, product, stock=True, price=True, exclude=[marketplace]
                )
                return outcome.action

    async def process_order(self, marketplace: Marketplace, order: RemoteOrder) -> int:
        """Decrement stock for every order line; returns the number of products touched"""
        touched = 0
        async with self.store_factory() as store:
            for line in order.lines:
                product = await store.find_by_external_id(marketplace, line.external_id)
                if not product and line.sku:
                    product = await store.find_by_sku(line.sku)
                if not product:
                    logger.info(f"[Webhook] {marketplace.value} item {line.external_id} not found locally, skipping")
                    continue

                try:
                    await self._decrement(store, marketplace, order, product.id, line.quantity)
                except ProductNotFoundError:
                    logger.info(f"[Webhook] {marketplace.value} item {line.external_id} deleted before its order, skipping")
                    continue
                touched += 1
        return touched

    async def _decrement(
        self,
        store: CatalogStore,
        marketplace: Marketplace,
        order: RemoteOrder,
        product_id: int,
        quantity: int,
    ) -> None:
        async with self.product_sync.locked_product(store, product_id) as product:
            before = product.stock or 0
            product.stock = max(0, before - quantity)
            product.last_synced_at = datetime.now(timezone.utc)
            await store.save_product(product)
            logger.info(f"[Webhook] Order {order.order_id}: {product.sku} stock {before} -> {product.stock}")

            await self.product_sync.push_to_marketplaces(store, product, stock=True, exclude=[marketplace])
            await self.product_sync.propagate_to_group(store, product, stock_changed=True)
