from .base import MarketplaceAdapter
from .factory import AdapterFactory
from .platforms.amazon import AmazonAdapter, SellerIdCache
from .platforms.mercadolibre import MercadoLibreAdapter
from .platforms.woocommerce import WooCommerceAdapter
