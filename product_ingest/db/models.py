"""SQLAlchemy database models."""

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    SmallInteger,
    String,
    Text,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# Prices come back as floats rather than Decimal
Money = Numeric(10, 2, asdecimal=False)


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class Product(Base):
    """Denormalized product row served to search queries."""

    __tablename__ = "products"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)

    # Basic info
    name: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    short_description: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    sku: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    brand: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    # Pricing
    sales_price: Mapped[Optional[float]] = mapped_column(Money, nullable=True)
    list_price: Mapped[Optional[float]] = mapped_column(Money, nullable=True)
    shipping_cost: Mapped[float] = mapped_column(Money, default=0, nullable=False)
    percentage_discount: Mapped[float] = mapped_column(Float, default=0, nullable=False)

    # Stock and availability
    stock: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    status: Mapped[int] = mapped_column(SmallInteger, default=1, nullable=False)
    visible: Mapped[int] = mapped_column(SmallInteger, default=1, nullable=False)

    # Categories (lowercased " > " joined prefixes)
    category_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    category_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    category_lvl0: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    category_lvl1: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    category_lvl2: Mapped[Optional[str]] = mapped_column(String(750), nullable=True)
    category_path: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Seller
    store_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    store_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    store_logo: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    store_rating: Mapped[Optional[float]] = mapped_column(Numeric(3, 2, asdecimal=False), nullable=True)
    store_authorized: Mapped[int] = mapped_column(SmallInteger, default=1, nullable=False)

    # Feature flags
    digital: Mapped[int] = mapped_column(SmallInteger, default=0, nullable=False)
    big_ticket: Mapped[int] = mapped_column(SmallInteger, default=0, nullable=False)
    back_order: Mapped[int] = mapped_column(SmallInteger, default=0, nullable=False)
    is_store_pickup: Mapped[int] = mapped_column(SmallInteger, default=0, nullable=False)
    super_express: Mapped[int] = mapped_column(SmallInteger, default=0, nullable=False)
    is_store_only: Mapped[int] = mapped_column(SmallInteger, default=0, nullable=False)
    shipping_days: Mapped[int] = mapped_column(SmallInteger, default=5, nullable=False)

    # Reviews
    review_rating: Mapped[Optional[float]] = mapped_column(Numeric(3, 2, asdecimal=False), nullable=True)
    total_reviews: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Images
    main_image: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    thumbnail: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    fulfillment_type: Mapped[str] = mapped_column(String(16), default="seller", nullable=False)  # seller, fulfillment

    relevance_score: Mapped[float] = mapped_column(Numeric(5, 2, asdecimal=False), default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), nullable=False
    )

    __table_args__ = (
        Index("idx_status_visible", "status", "visible"),
        Index("idx_store", "store_id", "store_authorized"),
        Index("idx_category", "category_id"),
        Index("idx_brand", "brand"),
        Index("idx_updated_at", "updated_at"),
        Index("idx_relevance", "relevance_score"),
    )


class ProductImage(Base):
    """Additional product picture."""

    __tablename__ = "product_images"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    product_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True
    )
    image_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    thumbnail_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    image_order: Mapped[int] = mapped_column(SmallInteger, default=1, nullable=False)


class ProductAttribute(Base):
    """Product specification, one value per attribute name."""

    __tablename__ = "product_attributes"

    product_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("products.id", ondelete="CASCADE"), primary_key=True
    )
    attribute_name: Mapped[str] = mapped_column(String(100), primary_key=True)
    attribute_value: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)


class ProductVariation(Base):
    """Size/color variation. Read-only for the ingest pipeline."""

    __tablename__ = "product_variations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    product_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=True, index=True
    )
    sku: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    size_name: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    color_name: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    stock: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    price_modifier: Mapped[float] = mapped_column(Money, default=0, nullable=False)


class FacetCount(Base):
    """Pre-computed facet counts, maintained by the ``UpdateAllFacets`` procedure."""

    __tablename__ = "facet_counts"

    facet_type: Mapped[str] = mapped_column(String(50), primary_key=True)
    facet_value: Mapped[str] = mapped_column(String(255), primary_key=True)
    category_key: Mapped[int] = mapped_column(Integer, primary_key=True, default=0)  # COALESCE(category_id, 0)
    category_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    facet_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_updated: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), nullable=False
    )


# Tables rebuilt by the optimize maintenance step, in order
OPTIMIZABLE_TABLES = (
    Product.__tablename__,
    ProductImage.__tablename__,
    ProductVariation.__tablename__,
    ProductAttribute.__tablename__,
    FacetCount.__tablename__,
)
