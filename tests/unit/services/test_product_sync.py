# tests/unit/services/test_product_sync.py
import pytest

from marketsync.core.enums import Marketplace, ProductStatus
from marketsync.core.exceptions import (
    DuplicateSkuError,
    MarketplaceAPIError,
    MarketplaceAuthError,
    MarketplaceNotConnectedError,
    ProductNotFoundError,
)
from marketsync.schemas.product import ProductCreate, ProductUpdate
from marketsync.services.product_sync import values_differ

WC = Marketplace.WOOCOMMERCE
ML = Marketplace.MERCADOLIBRE
AMZ = Marketplace.AMAZON


@pytest.fixture
def group_pair(connect_all):
    """Two listings of one physical unit: A on WooCommerce and Mercado Libre, B on Amazon"""
    a = connect_all.add_product(
        sku="A", title="Amp A", price=100.0, stock=5, cost_price=40.0, group_id="G1",
        woocommerce_id="11", mercadolibre_id="MLB11",
    )
    b = connect_all.add_product(
        sku="B", title="Amp B", price=110.0, stock=5, cost_price=40.0, group_id="G1",
        amazon_id="B",
    )
    return a, b


def test_values_differ_is_numeric():
    assert values_differ(10, 10.0) is False
    assert values_differ(None, None) is False
    assert values_differ(None, 0) is True
    assert values_differ("5", 5) is False
    assert values_differ(5, 6) is True


@pytest.mark.asyncio
async def test_stock_change_propagates_to_group(product_sync, adapters, group_pair):
    """Editing A's stock pushes A to its listings and copies the stock to B"""
    a, b = group_pair

    report = await product_sync.update_product(a.id, ProductUpdate(stock=3))

    assert report.changes["stock"] is True
    assert report.sync_results == {"woocommerce": "synced", "mercadolibre": "synced"}
    assert b.stock == 3
    assert report.group_propagation == {"B": {"amazon": "synced"}}
    assert adapters[WC].calls_to("update_stock") == [("update_stock", "11", 3)]
    assert adapters[ML].calls_to("update_stock") == [("update_stock", "MLB11", 3)]
    assert adapters[AMZ].calls_to("update_stock") == [("update_stock", "B", 3)]
    # Stock only: nobody gets a price push
    assert not adapters[WC].calls_to("update_price")


@pytest.mark.asyncio
async def test_price_change_does_not_touch_group(product_sync, adapters, group_pair):
    a, b = group_pair

    report = await product_sync.update_product(a.id, {"price": 95.0})

    assert report.changes == {"price": True, "sale_price": False, "stock": False, "cost_price": False}
    assert report.sync_results == {"woocommerce": "synced", "mercadolibre": "synced"}
    assert report.group_propagation == {}
    assert b.price == 110.0
    assert adapters[WC].calls_to("update_price") == [("update_price", "11", 95.0, None)]
    assert not adapters[AMZ].calls


@pytest.mark.asyncio
async def test_cost_only_change_still_propagates(product_sync, adapters, group_pair):
    """Cost is shared inside a group even when nothing needs pushing"""
    a, b = group_pair

    report = await product_sync.update_product(a.id, {"cost_price": 55.0})

    assert report.changes["cost_price"] is True
    assert report.sync_results == {}
    assert b.cost_price == 55.0
    assert all(not adapter.calls for adapter in adapters.adapters.values())


@pytest.mark.asyncio
async def test_no_delta_makes_no_remote_calls(product_sync, adapters, group_pair):
    a, _ = group_pair

    report = await product_sync.update_product(a.id, {"stock": 5, "price": 100, "title": "Renamed"})

    assert not any(report.changes.values())
    assert report.sync_results == {}
    assert a.title == "Renamed"
    assert all(not adapter.calls for adapter in adapters.adapters.values())


@pytest.mark.asyncio
async def test_failure_on_one_marketplace_is_isolated(product_sync, adapters, connect_all):
    product = connect_all.add_product(
        sku="X", title="Everywhere", stock=2, woocommerce_id="1", mercadolibre_id="MLB1", amazon_id="X",
    )
    adapters[ML].fail_on["update_stock"] = MarketplaceAPIError("item under review")

    report = await product_sync.update_product(product.id, {"stock": 1})

    assert report.sync_results == {
        "woocommerce": "synced",
        "mercadolibre": "error: item under review",
        "amazon": "synced",
    }
    # Local state is the source of truth regardless of remote outcome
    assert product.stock == 1


@pytest.mark.asyncio
async def test_unconnected_marketplace_is_skipped(product_sync, adapters, memory_store):
    memory_store.add_connection(WC)
    memory_store.add_connection(AMZ, is_connected=False)
    product = memory_store.add_product(sku="Y", title="Y", stock=4, woocommerce_id="2", amazon_id="Y")

    report = await product_sync.update_product(product.id, {"stock": 2})

    assert report.sync_results == {"woocommerce": "synced", "amazon": "skipped: not connected"}
    assert not adapters[AMZ].calls


@pytest.mark.asyncio
async def test_auth_error_demotes_connection(product_sync, adapters, connect_all):
    product = connect_all.add_product(sku="Z", title="Z", price=10.0, mercadolibre_id="MLB5")
    adapters[ML].fail_on["update_price"] = MarketplaceAuthError("invalid token")

    report = await product_sync.update_product(product.id, {"price": 12.0})

    assert report.sync_results["mercadolibre"].startswith("error:")
    assert connect_all.connections["mercadolibre"].is_connected is False


@pytest.mark.asyncio
async def test_update_missing_product(product_sync):
    with pytest.raises(ProductNotFoundError):
        await product_sync.update_product(404, {"stock": 1})


@pytest.mark.asyncio
async def test_explicit_null_does_not_clear_required_fields(product_sync, connect_all):
    product = connect_all.add_product(sku="N", title="Keep me", price=5.0, stock=1)

    await product_sync.update_product(product.id, {"title": None, "stock": None, "sale_price": None})

    assert product.title == "Keep me"
    assert product.stock == 1


@pytest.mark.asyncio
async def test_update_group_stock_pushes_every_member(product_sync, adapters, group_pair):
    a, b = group_pair

    result = await product_sync.update_group_stock("G1", 0)

    assert result["products_updated"] == 2
    assert a.stock == b.stock == 0
    assert result["results"]["A"] == {"woocommerce": "synced", "mercadolibre": "synced"}
    assert result["results"]["B"] == {"amazon": "synced"}


@pytest.mark.asyncio
async def test_update_group_stock_unknown_group(product_sync):
    with pytest.raises(ProductNotFoundError):
        await product_sync.update_group_stock("missing", 1)


@pytest.mark.asyncio
async def test_create_product_and_duplicate(product_sync, memory_store):
    created = await product_sync.create_product(ProductCreate(sku="NEW", title="New", price="19.90", stock=3))

    assert created.id is not None
    assert created.price == 19.9
    with pytest.raises(DuplicateSkuError):
        await product_sync.create_product(ProductCreate(sku="NEW", title="Again"))


@pytest.mark.asyncio
async def test_delete_product_remote(product_sync, adapters, connect_all):
    product = connect_all.add_product(sku="D", title="D", woocommerce_id="9", mercadolibre_id="MLB9")

    results = await product_sync.delete_product(product.id, remote=True)

    assert results == {"woocommerce": "synced", "mercadolibre": "synced"}
    assert adapters[ML].calls_to("delete_product") == [("delete_product", "MLB9")]
    assert product.id not in connect_all.products


@pytest.mark.asyncio
async def test_delete_product_local_only(product_sync, adapters, connect_all):
    product = connect_all.add_product(sku="D", title="D", woocommerce_id="9")

    assert await product_sync.delete_product(product.id) == {}
    assert not adapters[WC].calls


@pytest.mark.asyncio
async def test_pause_product(product_sync, adapters, connect_all):
    product = connect_all.add_product(sku="P", title="P", woocommerce_id="3", amazon_id="P")

    result = await product_sync.set_status(product.id, ProductStatus.PAUSED)

    assert product.status == "paused"
    assert result["sync_results"] == {"woocommerce": "synced", "amazon": "synced"}
    assert adapters[WC].calls_to("pause_product") == [("pause_product", "3")]


@pytest.mark.asyncio
async def test_publish_creates_listing_and_stores_id(product_sync, adapters, connect_all):
    product = connect_all.add_product(sku="PUB", title="Publish me", price=50.0, stock=1)

    await product_sync.publish_product(product.id, "woocommerce")

    assert product.woocommerce_id == "1001"
    assert adapters[WC].calls_to("create_product") == [("create_product", "PUB")]


@pytest.mark.asyncio
async def test_publish_updates_existing_listing(product_sync, adapters, connect_all):
    product = connect_all.add_product(sku="PUB", title="Publish me", woocommerce_id="44")

    await product_sync.publish_product(product.id, WC)

    assert len(adapters[WC].calls_to("update_product")) == 1
    assert not adapters[WC].calls_to("create_product")


@pytest.mark.asyncio
async def test_publish_requires_connection(product_sync, memory_store):
    product = memory_store.add_product(sku="PUB", title="Publish me")

    with pytest.raises(MarketplaceNotConnectedError):
        await product_sync.publish_product(product.id, AMZ)


@pytest.mark.asyncio
async def test_publish_auth_error_demotes_and_raises(product_sync, adapters, connect_all):
    product = connect_all.add_product(sku="PUB", title="Publish me")
    adapters[AMZ].fail_on["create_product"] = MarketplaceAuthError("expired")

    with pytest.raises(MarketplaceAuthError):
        await product_sync.publish_product(product.id, AMZ)
    assert connect_all.connections["amazon"].is_connected is False
    assert product.amazon_id is None


@pytest.mark.asyncio
async def test_list_groups(product_sync, group_pair, memory_store):
    memory_store.add_product(sku="SOLO", title="Solo", stock=1)

    listing = await product_sync.list_groups()

    assert listing.total_groups == 1
    assert listing.total_ungrouped == 1
    group = listing.groups[0]
    assert group.group_id == "G1"
    assert group.total_stock == 5
    assert group.total_value == 200.0
