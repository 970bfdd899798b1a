"""
Product Location - per (variant, store, location) stock read model
"""
from sqlalchemy import Column, String, Integer, ForeignKey, Uuid, UniqueConstraint
from sqlalchemy.orm import relationship
from app.core import Base
from .base import UUIDMixin, TimestampMixin


class ProductLocation(Base, UUIDMixin, TimestampMixin):
    """Audit row written after each successful inventory push"""
    __tablename__ = "product_location"

    product_id = Column(Uuid(as_uuid=True), ForeignKey("product.id", ondelete="CASCADE"), nullable=False, index=True)
    variant_id = Column(Uuid(as_uuid=True), ForeignKey("product_variant.id", ondelete="CASCADE"), nullable=False, index=True)
    variant_sku = Column(String(100))
    store_id = Column(String(36), nullable=False, index=True)
    location_id = Column(String(100), nullable=False)
    location_name = Column(String(200))
    stock_quantity = Column(Integer, default=0)

    variant = relationship("ProductVariant", back_populates="locations")

    __table_args__ = (
        UniqueConstraint('variant_id', 'store_id', 'location_id', name='uq_variant_store_location'),
    )
