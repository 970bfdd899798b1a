from .base import TimestampMixin, UUIDMixin, JSONType
from .store import Store
from .product import (
    Product, ProductOption, ProductOptionValue, ProductVariant, ProductVariantOption,
    ProductImage, ProductStatus, ProductSyncStatus,
)
from .location import ProductLocation
from .sync_log import SyncLog, SyncStatus

__all__ = [
    # Base
    "TimestampMixin", "UUIDMixin", "JSONType",
    # Store
    "Store",
    # Product
    "Product", "ProductOption", "ProductOptionValue", "ProductVariant", "ProductVariantOption",
    "ProductImage", "ProductStatus", "ProductSyncStatus",
    # Inventory
    "ProductLocation",
    # Sync
    "SyncLog", "SyncStatus",
]
