"""
Product Catalog Models

Every entity that exists on remote stores carries JSON maps keyed by the
string form of the store id (see app.services.store_map).
"""
from sqlalchemy import Column, String, Numeric, Boolean, Integer, ForeignKey, Text, DateTime, Uuid, UniqueConstraint
from sqlalchemy.orm import relationship
from app.core import Base
from .base import UUIDMixin, TimestampMixin, JSONType


class ProductStatus:
    DRAFT = "draft"
    PUBLISHED = "published"


class ProductSyncStatus:
    PENDING = "pending"
    SYNCED = "synced"
    FAILED = "failed"
    NOT_SYNCED = "not_synced"


class Product(Base, UUIDMixin, TimestampMixin):
    """Canonical local product"""
    __tablename__ = "product"

    unique_reference_code = Column(String(64), unique=True, index=True)
    title = Column(String(300), nullable=False)
    description = Column(Text)
    product_type = Column(String(100))
    vendor = Column(String(200))
    tags = Column(JSONType, default=list)
    status = Column(String(20), default=ProductStatus.DRAFT)  # draft, published

    # Per-store maps
    shopify_product_ids = Column(JSONType, default=dict)
    shopify_handles = Column(JSONType, default=dict)
    shopify_statuses = Column(JSONType, default=dict)
    sync_statuses = Column(JSONType, default=dict)
    sync_errors = Column(JSONType, default=dict)  # {store_id: {"message": ..., "attemptedAt": ...}}

    # Aggregate sync state
    sync_status = Column(String(20), default=ProductSyncStatus.NOT_SYNCED)
    sync_attempted_at = Column(DateTime(timezone=True))
    sync_completed_at = Column(DateTime(timezone=True))
    sync_error = Column(Text)

    store_id = Column(Uuid(as_uuid=True), ForeignKey("store.id", ondelete="SET NULL"))
    store_ids = Column(JSONType, default=list)
    all_image_urls = Column(JSONType, default=list)

    # Relationships
    options = relationship("ProductOption", back_populates="product", cascade="all, delete-orphan", order_by="ProductOption.position")
    variants = relationship("ProductVariant", back_populates="product", cascade="all, delete-orphan", order_by="ProductVariant.position")
    images = relationship("ProductImage", back_populates="product", cascade="all, delete-orphan", order_by="ProductImage.display_order")
    store = relationship("Store")


class ProductOption(Base, UUIDMixin, TimestampMixin):
    """Option axis such as Size or Color; position defines remote ordering"""
    __tablename__ = "product_option"

    product_id = Column(Uuid(as_uuid=True), ForeignKey("product.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    position = Column(Integer, nullable=False, default=1)
    shopify_option_ids = Column(JSONType, default=dict)

    product = relationship("Product", back_populates="options")
    values = relationship("ProductOptionValue", back_populates="option", cascade="all, delete-orphan", order_by="ProductOptionValue.position")


class ProductOptionValue(Base, UUIDMixin, TimestampMixin):
    __tablename__ = "product_option_value"

    option_id = Column(Uuid(as_uuid=True), ForeignKey("product_option.id", ondelete="CASCADE"), nullable=False, index=True)
    value = Column(String(200), nullable=False)
    position = Column(Integer, nullable=False, default=1)
    price = Column(Numeric(12, 2))
    compare_at_price = Column(Numeric(12, 2))
    stock_quantity = Column(Integer)
    shopify_option_value_ids = Column(JSONType, default=dict)

    option = relationship("ProductOption", back_populates="values")
    variant_links = relationship("ProductVariantOption", back_populates="option_value", cascade="all, delete-orphan")


class ProductVariant(Base, UUIDMixin, TimestampMixin):
    """Sellable unit; position is the ordinal used in store-specific SKUs"""
    __tablename__ = "product_variant"

    product_id = Column(Uuid(as_uuid=True), ForeignKey("product.id", ondelete="CASCADE"), nullable=False, index=True)
    sku = Column(String(100), index=True)
    position = Column(Integer, nullable=False, default=1)
    price = Column(Numeric(12, 2))
    compare_at_price = Column(Numeric(12, 2))
    stock_quantity = Column(Integer, default=0)
    image_url = Column(String(1000))
    is_default = Column(Boolean, default=False)

    # Per-store maps
    shopify_variant_ids = Column(JSONType, default=dict)
    inventory_item_ids = Column(JSONType, default=dict)
    shopify_media_ids = Column(JSONType, default=dict)
    store_specific_skus = Column(JSONType, default=dict)
    sync_statuses = Column(JSONType, default=dict)

    product = relationship("Product", back_populates="variants")
    variant_options = relationship("ProductVariantOption", back_populates="variant", cascade="all, delete-orphan")
    locations = relationship("ProductLocation", back_populates="variant", cascade="all, delete-orphan")


class ProductVariantOption(Base, UUIDMixin):
    """Join row: the value a variant holds for one option"""
    __tablename__ = "product_variant_option"

    variant_id = Column(Uuid(as_uuid=True), ForeignKey("product_variant.id", ondelete="CASCADE"), nullable=False, index=True)
    option_value_id = Column(Uuid(as_uuid=True), ForeignKey("product_option_value.id", ondelete="CASCADE"), nullable=False, index=True)

    variant = relationship("ProductVariant", back_populates="variant_options")
    option_value = relationship("ProductOptionValue", back_populates="variant_links")

    __table_args__ = (
        UniqueConstraint('variant_id', 'option_value_id', name='uq_variant_option_value'),
    )


class ProductImage(Base, UUIDMixin, TimestampMixin):
    """Product-level image when variant_id is null, variant-specific otherwise"""
    __tablename__ = "product_image"

    product_id = Column(Uuid(as_uuid=True), ForeignKey("product.id", ondelete="CASCADE"), nullable=False, index=True)
    variant_id = Column(Uuid(as_uuid=True), ForeignKey("product_variant.id", ondelete="SET NULL"))
    original_url = Column(String(1000))
    enhanced_url = Column(String(1000))
    alt_text = Column(String(300))
    display_order = Column(Integer, default=0)
    is_primary = Column(Boolean, default=False)
    shopify_media_ids = Column(JSONType, default=dict)

    product = relationship("Product", back_populates="images")

    @property
    def url(self):
        return self.original_url or self.enhanced_url
