from .product import Product
from .connection import Connection
