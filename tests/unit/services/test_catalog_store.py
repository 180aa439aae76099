# tests/unit/services/test_catalog_store.py
import pytest

from marketsync.core.enums import Marketplace
from marketsync.core.exceptions import (
    CatalogError,
    ConnectionNotFoundError,
    DuplicateSkuError,
    ProductNotFoundError,
)
from marketsync.models.connection import Connection
from marketsync.models.product import Product
from marketsync.services.catalog_store import make_store_factory


@pytest.mark.asyncio
async def test_save_and_lookup_product(db_store):
    product = Product(sku="GTR-1", title="Guitarra", price=1200, stock=2, mercadolibre_id="MLB1")
    await db_store.save_product(product)

    assert product.id is not None
    assert (await db_store.find_by_sku("GTR-1")).id == product.id
    assert (await db_store.find_by_external_id(Marketplace.MERCADOLIBRE, "MLB1")).id == product.id
    assert await db_store.find_by_external_id(Marketplace.WOOCOMMERCE, "MLB1") is None
    assert await db_store.find_by_external_id(Marketplace.MERCADOLIBRE, None) is None


@pytest.mark.asyncio
async def test_duplicate_sku_raises(db_store):
    await db_store.save_product(Product(sku="DUP", title="one"))

    with pytest.raises(DuplicateSkuError):
        await db_store.save_product(Product(sku="DUP", title="two"))

    # The session is still usable after the rollback
    assert len(await db_store.list_products()) == 1


@pytest.mark.asyncio
async def test_not_null_violation_is_not_reported_as_duplicate(db_store):
    with pytest.raises(CatalogError) as excinfo:
        await db_store.save_product(Product(sku="NO-TITLE", title=None))

    assert not isinstance(excinfo.value, DuplicateSkuError)
    assert "NO-TITLE" in str(excinfo.value)
    assert await db_store.list_products() == []


@pytest.mark.asyncio
async def test_require_product_missing(db_store):
    with pytest.raises(ProductNotFoundError):
        await db_store.require_product(999)


@pytest.mark.asyncio
async def test_find_group_ordered_by_id(db_store):
    await db_store.save_products([
        Product(sku="A", title="a", group_id="G1", stock=3),
        Product(sku="B", title="b", group_id="G1", stock=3),
        Product(sku="C", title="c", stock=1),
    ])

    members = await db_store.find_group("G1")
    assert [p.sku for p in members] == ["A", "B"]
    assert await db_store.find_group(None) == []


@pytest.mark.asyncio
async def test_list_products_search_and_paging(db_store):
    await db_store.save_products([
        Product(sku="PED-1", title="Pedal Fuzz"),
        Product(sku="PED-2", title="Pedal Delay"),
        Product(sku="CAB-1", title="Cabo"),
    ])

    assert [p.sku for p in await db_store.list_products(search="pedal")] == ["PED-1", "PED-2"]
    assert [p.sku for p in await db_store.list_products(limit=1, offset=1)] == ["PED-2"]


@pytest.mark.asyncio
async def test_connections_roundtrip(db_store):
    await db_store.save_connection(Connection(marketplace="woocommerce", is_connected=True))
    await db_store.save_connection(Connection(marketplace="amazon", is_connected=False))

    assert (await db_store.get_connection(Marketplace.WOOCOMMERCE)).is_connected is True
    connected = await db_store.list_connections(connected_only=True)
    assert [c.marketplace for c in connected] == ["woocommerce"]

    await db_store.delete_connection(await db_store.require_connection(Marketplace.AMAZON))
    with pytest.raises(ConnectionNotFoundError):
        await db_store.require_connection(Marketplace.AMAZON)


@pytest.mark.asyncio
async def test_store_factory_opens_fresh_sessions(session_factory):
    store_factory = make_store_factory(session_factory)

    async with store_factory() as store:
        await store.save_product(Product(sku="S1", title="first"))
    async with store_factory() as store:
        assert (await store.find_by_sku("S1")).title == "first"


@pytest.mark.asyncio
async def test_reads_overwrite_what_the_session_already_holds(session_factory, db_store):
    product = await db_store.save_product(Product(sku="R1", title="Pedal", stock=10, group_id="G1"))

    async with session_factory() as other:
        row = await other.get(Product, product.id)
        row.stock = 4
        await other.commit()

    # Same session, same identity-map object: every read sees the commit
    assert (await db_store.reload_product(product)).stock == 4
    assert product.stock == 4

    async with session_factory() as other:
        row = await other.get(Product, product.id)
        row.stock = 2
        await other.commit()

    assert (await db_store.find_by_sku("R1")).stock == 2
    assert (await db_store.find_group("G1"))[0] is product
    assert product.stock == 2


@pytest.mark.asyncio
async def test_reload_deleted_product_returns_none(session_factory, db_store):
    product = await db_store.save_product(Product(sku="R2", title="Pedal"))

    async with session_factory() as other:
        await other.delete(await other.get(Product, product.id))
        await other.commit()

    assert await db_store.reload_product(product) is None
