# tests/unit/integrations/test_factory.py
import pytest

from marketsync.core.exceptions import TokenRefreshError, UnsupportedMarketplaceError
from marketsync.integrations.factory import AdapterFactory
from marketsync.integrations.platforms.amazon import AmazonAdapter
from marketsync.integrations.platforms.mercadolibre import MercadoLibreAdapter
from marketsync.integrations.platforms.woocommerce import WooCommerceAdapter
from marketsync.models.connection import Connection


@pytest.fixture
def factory(settings):
    return AdapterFactory(settings)


@pytest.mark.parametrize("marketplace, adapter_cls", [
    ("woocommerce", WooCommerceAdapter),
    ("mercadolibre", MercadoLibreAdapter),
    ("Amazon", AmazonAdapter),
])
def test_build_returns_matching_adapter(factory, marketplace, adapter_cls):
    adapter = factory.build(Connection(marketplace=marketplace, api_url="https://x.example.com"))
    assert isinstance(adapter, adapter_cls)


def test_amazon_adapters_share_seller_cache(factory):
    first = factory.build(Connection(marketplace="amazon"))
    second = factory.build(Connection(marketplace="amazon"))
    assert first.seller_id_cache is second.seller_id_cache is factory.seller_id_cache


def test_unknown_marketplace_rejected(factory):
    with pytest.raises(UnsupportedMarketplaceError):
        factory.build(Connection(marketplace="shopee"))


@pytest.mark.asyncio
async def test_refresh_requires_oauth_marketplace(factory):
    with pytest.raises(UnsupportedMarketplaceError):
        await factory.refresh_credentials(Connection(marketplace="woocommerce", refresh_token="x"))


@pytest.mark.asyncio
async def test_refresh_requires_client_credentials(factory):
    with pytest.raises(TokenRefreshError):
        await factory.refresh_credentials(Connection(marketplace="mercadolibre", refresh_token="r"))


@pytest.mark.asyncio
async def test_refresh_dispatches_to_adapter(factory, mocker):
    refresh = mocker.patch.object(
        MercadoLibreAdapter, "refresh_access_token", return_value={"access_token": "new"}
    )
    connection = Connection(marketplace="mercadolibre", refresh_token="r", api_key="id", api_secret="secret")

    assert await factory.refresh_credentials(connection) == {"access_token": "new"}
    refresh.assert_awaited_once()
