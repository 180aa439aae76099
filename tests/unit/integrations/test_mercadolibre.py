# tests/unit/integrations/test_mercadolibre.py
from datetime import datetime, timezone

import pytest

from marketsync.core.enums import ProductCondition, ProductStatus
from marketsync.core.exceptions import MarketplaceAuthError, TokenRefreshError
from marketsync.integrations.platforms.mercadolibre import MercadoLibreAdapter, classify_listing_type
from marketsync.schemas.connection import ConnectionCredentials
from marketsync.schemas.product import RemoteProduct
from tests.mocks import MockData
from tests.unit.integrations.conftest import make_response


@pytest.fixture
def adapter():
    return MercadoLibreAdapter(
        ConnectionCredentials(access_token="APP_USR-1", user_id="123456"),
        api_url="https://api.mercadolibre.test",
    )


@pytest.mark.parametrize("listing_type_id, expected", [
    ("free", "classic"),
    ("bronze", "classic"),
    ("gold_special", "premium"),
    ("gold_pro", "premium"),
    ("platinum", "premium"),
    ("something_else", "other"),
    (None, "other"),
])
def test_classify_listing_type(listing_type_id, expected):
    assert classify_listing_type(listing_type_id) == expected


def test_to_remote_maps_fields():
    remote = MercadoLibreAdapter.to_remote(MockData.mercadolibre_item())

    assert remote.external_id == "MLB123"
    assert remote.sku == "ML-001"
    assert remote.stock == 3
    assert remote.price == 150.0
    assert remote.brand == "Santo Angelo"
    assert remote.listing_type == "premium"
    assert remote.condition == ProductCondition.NEW
    assert remote.status == ProductStatus.ACTIVE
    assert remote.images == ["https://example.com/cabo.jpg"]


def test_item_without_custom_field_uses_item_id_as_sku():
    item = MockData.mercadolibre_item()
    item["seller_custom_field"] = None
    assert MercadoLibreAdapter.to_remote(item).sku == "MLB123"


def test_to_native_uses_defaults(adapter):
    native = adapter.to_native(RemoteProduct(sku="S1", title="Cabo", price=10.0, stock=2))

    assert native["category_id"] == "MLB1648"
    assert native["currency_id"] == "BRL"
    assert native["available_quantity"] == 2
    assert native["seller_custom_field"] == "S1"
    assert native["condition"] == "new"


@pytest.mark.asyncio
async def test_list_products_search_then_multiget(adapter, mock_http):
    """Multiget entries that did not come back with code 200 are dropped"""
    mock_http.request.side_effect = [
        make_response(200, {"results": ["MLB1", "MLB2"]}),
        make_response(200, [
            {"code": 200, "body": MockData.mercadolibre_item(item_id="MLB1", sku="A")},
            {"code": 404, "body": {"error": "not_found"}},
        ]),
    ]

    products = await adapter.list_products(limit=50, offset=0)

    assert [p.external_id for p in products] == ["MLB1"]
    first_call, second_call = mock_http.request.call_args_list
    assert first_call.kwargs["url"] == "https://api.mercadolibre.test/users/123456/items/search"
    assert second_call.kwargs["params"] == {"ids": "MLB1,MLB2"}
    assert first_call.kwargs["headers"]["Authorization"] == "Bearer APP_USR-1"


@pytest.mark.asyncio
async def test_list_products_empty_search(adapter, mock_http):
    mock_http.request.return_value = make_response(200, {"results": []})

    assert await adapter.list_products() == []
    assert mock_http.request.await_count == 1


@pytest.mark.asyncio
async def test_update_stock_and_price_payloads(adapter, mock_http):
    await adapter.update_stock("MLB1", 4)
    assert mock_http.request.call_args.kwargs["json"] == {"available_quantity": 4}

    await adapter.update_price("MLB1", 99.0, sale_price=80.0)
    assert mock_http.request.call_args.kwargs["json"] == {"price": 99.0}


@pytest.mark.asyncio
async def test_delete_closes_listing(adapter, mock_http):
    await adapter.delete_product("MLB1")

    kwargs = mock_http.request.call_args.kwargs
    assert kwargs["method"] == "PUT"
    assert kwargs["json"] == {"status": "closed"}


@pytest.mark.asyncio
async def test_get_order_lines(adapter, mock_http):
    mock_http.request.return_value = make_response(200, {
        "id": 2000,
        "status": "paid",
        "order_items": [
            {"item": {"id": "MLB1", "seller_custom_field": "A"}, "quantity": 2},
            {"item": {}, "quantity": 1},
        ],
    })

    order = await adapter.get_order("2000")

    assert order.order_id == "2000"
    assert [(l.external_id, l.quantity, l.sku) for l in order.lines] == [("MLB1", 2, "A")]


@pytest.mark.asyncio
async def test_forbidden_raises_auth_error(adapter, mock_http):
    mock_http.request.return_value = make_response(403, {"message": "forbidden"})

    with pytest.raises(MarketplaceAuthError):
        await adapter.pause_product("MLB1")


@pytest.mark.asyncio
async def test_refresh_access_token(mock_http):
    mock_http.post.return_value = make_response(200, {
        "access_token": "new-token",
        "refresh_token": "new-refresh",
        "expires_in": 21600,
    })

    tokens = await MercadoLibreAdapter.refresh_access_token("old-refresh", "client", "secret")

    assert tokens["access_token"] == "new-token"
    assert tokens["refresh_token"] == "new-refresh"
    assert tokens["expires_at"] > datetime.now(timezone.utc)
    _, kwargs = mock_http.post.call_args
    assert kwargs["json"]["grant_type"] == "refresh_token"


@pytest.mark.asyncio
async def test_refresh_keeps_old_refresh_token(mock_http):
    mock_http.post.return_value = make_response(200, {"access_token": "new-token"})

    tokens = await MercadoLibreAdapter.refresh_access_token("old-refresh", "client", "secret")

    assert tokens["refresh_token"] == "old-refresh"


@pytest.mark.asyncio
async def test_refresh_failure_raises(mock_http):
    mock_http.post.return_value = make_response(400, {"error": "invalid_grant"})

    with pytest.raises(TokenRefreshError):
        await MercadoLibreAdapter.refresh_access_token("bad", "client", "secret")
