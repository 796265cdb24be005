"""
SQLAlchemy Models for the Storefront Catalog

The database is the source of truth for everything the cache layer
serves. Only the tables the catalog reads are modeled here:
- Categories and vendors
- Products (bilingual names and descriptions, pricing, media)
- Orders and order items (for best-seller ranking)
"""

from datetime import datetime
from uuid import uuid4

from sqlalchemy import (
    Column, String, Integer, Float, Boolean, DateTime, Text,
    ForeignKey, Index, JSON,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def _uuid() -> str:
    return str(uuid4())


# =============================================================================
# CATALOG
# =============================================================================

class Category(Base):
    """Product categories"""
    __tablename__ = "categories"

    id = Column(String(36), primary_key=True, default=_uuid)

    # Bilingual display name
    name_en = Column(String(255), nullable=False)
    name_ar = Column(String(255))

    slug = Column(String(255), nullable=False, unique=True)
    image = Column(String(1024))
    color = Column(String(32))

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    products = relationship("Product", back_populates="category")

    def to_dict(self) -> dict:
        return {
            "_id": self.id,
            "name": {"en": self.name_en, "ar": self.name_ar},
            "slug": self.slug,
            "image": self.image,
            "color": self.color,
        }


class Vendor(Base):
    """Sellers listing products"""
    __tablename__ = "vendors"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(255), nullable=False)
    store_name = Column(String(255))
    avatar = Column(String(1024))

    created_at = Column(DateTime, default=datetime.utcnow)

    products = relationship("Product", back_populates="vendor")

    def to_dict(self) -> dict:
        return {
            "_id": self.id,
            "name": self.name,
            "storeName": self.store_name,
            "avatar": self.avatar,
        }


class Product(Base):
    """Catalog products"""
    __tablename__ = "products"

    id = Column(String(36), primary_key=True, default=_uuid)
    category_id = Column(String(36), ForeignKey("categories.id"), nullable=True)
    vendor_id = Column(String(36), ForeignKey("vendors.id"), nullable=True)

    name_en = Column(String(255), nullable=False)
    name_ar = Column(String(255))
    description_en = Column(Text)
    description_ar = Column(Text)
    slug = Column(String(255), nullable=False, unique=True)

    # Pricing
    price = Column(Float, nullable=False, default=0.0)
    sale_price = Column(Float, default=0.0)
    is_on_sale = Column(Boolean, default=False)

    # Merchandising
    is_featured = Column(Boolean, default=False)
    is_active = Column(Boolean, default=True)
    stock = Column(Integer, default=0)
    unit = Column(String(32))
    rating = Column(Float, default=0.0)
    review_count = Column(Integer, default=0)

    # Media
    image = Column(String(1024))
    images = Column(JSON, default=list)
    tags = Column(JSON, default=list)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    category = relationship("Category", back_populates="products")
    vendor = relationship("Vendor", back_populates="products")

    __table_args__ = (
        Index("idx_product_category", "category_id"),
        Index("idx_product_active_created", "is_active", "created_at"),
    )


# =============================================================================
# ORDERS
# =============================================================================

class Order(Base):
    """Customer orders"""
    __tablename__ = "orders"

    id = Column(String(36), primary_key=True, default=_uuid)
    status = Column(String(32), default="pending")
    total = Column(Float, default=0.0)
    created_at = Column(DateTime, default=datetime.utcnow)

    items = relationship("OrderItem", back_populates="order", cascade="all, delete-orphan")


class OrderItem(Base):
    """Line items, used to rank best sellers"""
    __tablename__ = "order_items"

    id = Column(String(36), primary_key=True, default=_uuid)
    order_id = Column(String(36), ForeignKey("orders.id"), nullable=False)
    product_id = Column(String(36), ForeignKey("products.id", ondelete="SET NULL"), nullable=True)
    quantity = Column(Integer, nullable=False, default=1)
    price = Column(Float, default=0.0)

    order = relationship("Order", back_populates="items")

    __table_args__ = (
        Index("idx_order_item_product", "product_id"),
    )
