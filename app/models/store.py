"""
Store Model - Remote storefront credentials per shop
"""
from sqlalchemy import Column, String, Text, Boolean
from app.core.database import Base
from .base import UUIDMixin, TimestampMixin


class Store(Base, UUIDMixin, TimestampMixin):
    """
    A Shopify storefront products can be synced to
    """
    __tablename__ = "store"

    store_name = Column(String(200), nullable=False)
    shopify_domain = Column(String(255))  # my-shop.myshopify.com
    shopify_access_token = Column(Text)  # should be encrypted in production
    store_code = Column(String(10))  # US, EU, IN - suffix of store-specific SKUs
    default_location_id = Column(String(100))  # gid://shopify/Location/...
    is_active = Column(Boolean, default=True)

    @property
    def has_credentials(self) -> bool:
        return bool(self.shopify_domain and self.shopify_access_token)
