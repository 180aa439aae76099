"""
Schemas for product-related payloads.

RemoteProduct is the canonical wire shape exchanged with marketplace
adapters; ProductCreate/ProductUpdate/ProductRead are the shapes the
operator API accepts and returns.
"""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from marketsync.core.enums import ProductCondition, ProductStatus
from marketsync.schemas.base import BaseSchema, TimestampedSchema


def _coerce_price(v):
    if v is None or v == '':
        return None
    try:
        return float(v)
    except (ValueError, TypeError):
        raise ValueError(f'Price must be a valid number, got: {v}')


class Dimensions(BaseModel):
    height: float = 0.0
    width: float = 0.0
    length: float = 0.0


class RemoteProduct(BaseModel):
    """Marketplace-neutral product shape produced and consumed by adapters"""
    external_id: Optional[str] = None
    sku: str = ""
    title: str = ""
    description: str = ""
    price: float = 0.0
    sale_price: Optional[float] = None
    stock: int = 0
    images: List[str] = Field(default_factory=list)
    category: Optional[str] = None
    brand: Optional[str] = None
    condition: ProductCondition = ProductCondition.NEW
    weight: Optional[float] = None
    dimensions: Optional[Dimensions] = None
    attributes: Optional[Dict[str, str]] = None
    status: ProductStatus = ProductStatus.ACTIVE
    listing_type: Optional[str] = None
    source_marketplace: Optional[str] = None

    @field_validator('stock', mode='before')
    @classmethod
    def validate_stock(cls, v):
        if v is None or v == '':
            return 0
        try:
            return max(0, int(float(v)))
        except (ValueError, TypeError):
            return 0

    @classmethod
    def from_product(cls, product) -> "RemoteProduct":
        """Build the outbound shape from a canonical Product row."""
        return cls(
            external_id=None,
            sku=product.sku,
            title=product.title,
            description=product.description or "",
            price=float(product.price or 0),
            sale_price=float(product.sale_price) if product.sale_price else None,
            stock=product.stock or 0,
            images=list(product.images or []),
            category=product.category,
            brand=product.brand,
            condition=product.condition or ProductCondition.NEW.value,
            weight=float(product.weight) if product.weight else None,
            dimensions=product.dimensions,
            attributes=product.attributes,
            status=product.status or ProductStatus.ACTIVE.value,
            listing_type=product.listing_type,
        )


class RemoteOrderLine(BaseModel):
    external_id: str
    quantity: int = 1
    sku: Optional[str] = None


class RemoteOrder(BaseModel):
    order_id: str
    status: Optional[str] = None
    lines: List[RemoteOrderLine] = Field(default_factory=list)


class ProductBase(BaseSchema):
    title: str
    description: Optional[str] = None
    price: float = 0.0
    sale_price: Optional[float] = None
    cost_price: Optional[float] = None
    stock: int = Field(default=0, ge=0)
    group_id: Optional[str] = None
    listing_type: Optional[str] = None
    images: List[str] = Field(default_factory=list)
    category: Optional[str] = None
    brand: Optional[str] = None
    condition: ProductCondition = ProductCondition.NEW
    weight: Optional[float] = None
    dimensions: Optional[Dimensions] = None
    attributes: Optional[Dict[str, str]] = None
    status: ProductStatus = ProductStatus.ACTIVE

    @field_validator('price', 'sale_price', 'cost_price', mode='before')
    @classmethod
    def validate_price(cls, v):
        return _coerce_price(v)

    @field_validator('images', mode='before')
    @classmethod
    def validate_images(cls, v):
        if v is None:
            return []
        if isinstance(v, str):
            return [v]
        return v


class ProductCreate(ProductBase):
    sku: str


class ProductUpdate(BaseSchema):
    """Partial edit; only fields explicitly sent are applied"""
    title: Optional[str] = None
    description: Optional[str] = None
    price: Optional[float] = None
    sale_price: Optional[float] = None
    cost_price: Optional[float] = None
    stock: Optional[int] = Field(default=None, ge=0)
    group_id: Optional[str] = None
    listing_type: Optional[str] = None
    images: Optional[List[str]] = None
    category: Optional[str] = None
    brand: Optional[str] = None
    condition: Optional[ProductCondition] = None
    weight: Optional[float] = None
    dimensions: Optional[Dimensions] = None
    attributes: Optional[Dict[str, str]] = None

    @field_validator('price', 'sale_price', 'cost_price', mode='before')
    @classmethod
    def validate_price(cls, v):
        return _coerce_price(v)


class ProductRead(ProductBase, TimestampedSchema):
    id: int
    sku: str
    source_marketplace: Optional[str] = None
    woocommerce_id: Optional[str] = None
    mercadolibre_id: Optional[str] = None
    amazon_id: Optional[str] = None
    last_synced_at: Optional[datetime] = None


class GroupSummary(BaseSchema):
    group_id: str
    products: List[ProductRead]
    total_stock: int = 0
    cost_price: Optional[float] = None
    total_value: float = 0.0


class GroupListing(BaseSchema):
    groups: List[GroupSummary]
    ungrouped: List[ProductRead]
    total_groups: int
    total_ungrouped: int


class GroupStockUpdate(BaseModel):
    stock: int = Field(ge=0)
