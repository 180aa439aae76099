from .mock_marketplace import MockMarketplace, MockAdapterFactory
from .memory_store import MemoryCatalogStore


class MockData:
    """Mock data for testing"""
    @staticmethod
    def woocommerce_product(product_id=101, sku="WC-001", stock=5, price="99.90"):
        return {
            "id": product_id,
            "sku": sku,
            "name": "Pedal de Overdrive",
            "description": "Pedal usado em bom estado",
            "regular_price": price,
            "sale_price": "",
            "stock_quantity": stock,
            "status": "publish",
            "images": [{"src": "https://example.com/pedal.jpg"}],
            "categories": [{"name": "Pedais"}],
            "attributes": [{"name": "Marca", "options": ["Boss"]}],
        }

    @staticmethod
    def mercadolibre_item(item_id="MLB123", sku="ML-001", stock=3, price=150.0):
        return {
            "id": item_id,
            "seller_custom_field": sku,
            "title": "Cabo P10",
            "price": price,
            "available_quantity": stock,
            "status": "active",
            "condition": "new",
            "listing_type_id": "gold_special",
            "category_id": "MLB1648",
            "pictures": [{"url": "https://example.com/cabo.jpg"}],
            "attributes": [{"id": "BRAND", "value_name": "Santo Angelo"}],
        }
