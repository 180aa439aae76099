"""
Canonical catalog model.

A Product is the seller's single source of truth for one listing's content.
Each supported marketplace has one nullable external-id column; a null slot
means the product has not been published there yet. Products sharing a
non-null group_id form a Group, which models one physical inventory unit
sold through several listings, so stock (and by convention cost) is shared
across its members.
"""

from sqlalchemy import Column, Integer, String, Float, Text, DateTime, JSON
from sqlalchemy.sql import func

from marketsync.database import Base
from marketsync.core.enums import Marketplace, ProductStatus, ProductCondition


class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True)

    # Core Product Information
    sku = Column(String, unique=True, nullable=False, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String, nullable=True)
    brand = Column(String, nullable=True)
    condition = Column(String, nullable=False, default=ProductCondition.NEW.value)
    listing_type = Column(String, nullable=True)  # 'classic', 'premium', 'other'

    # Pricing Fields
    price = Column(Float, nullable=False, default=0.0)
    sale_price = Column(Float, nullable=True)
    cost_price = Column(Float, nullable=True)

    # Inventory
    stock = Column(Integer, nullable=False, default=0)
    group_id = Column(String, nullable=True, index=True)

    # Media and shipping
    images = Column(JSON, default=list)
    weight = Column(Float, nullable=True)
    dimensions = Column(JSON, nullable=True)  # {"height", "width", "length"}
    attributes = Column(JSON, nullable=True)

    status = Column(String, nullable=False, default=ProductStatus.ACTIVE.value, index=True)
    source_marketplace = Column(String, nullable=True)

    # Marketplace External IDs
    woocommerce_id = Column(String, nullable=True, index=True)
    mercadolibre_id = Column(String, nullable=True, index=True)
    amazon_id = Column(String, nullable=True, index=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    last_synced_at = Column(DateTime(timezone=True), nullable=True)

    def get_external_id(self, marketplace: Marketplace):
        return getattr(self, Marketplace(marketplace).external_id_field)

    def set_external_id(self, marketplace: Marketplace, external_id):
        setattr(self, Marketplace(marketplace).external_id_field, external_id)

    def linked_marketplaces(self):
        """Marketplaces this product is published on, in declaration order."""
        return [m for m in Marketplace if self.get_external_id(m)]

    def owned_by_other_marketplace(self, marketplace: Marketplace) -> bool:
        """True when another marketplace already owns this row and this one does not."""
        marketplace = Marketplace(marketplace)
        if self.get_external_id(marketplace):
            return False
        return any(self.get_external_id(m) for m in Marketplace if m != marketplace)

    @property
    def lock_key(self) -> str:
        if self.group_id:
            return f"group:{self.group_id}"
        return f"sku:{self.sku}"

    def __repr__(self):
        return f"<Product(id={self.id}, sku='{self.sku}', stock={self.stock}, group='{self.group_id}')>"
