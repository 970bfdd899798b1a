# Services Package
from .product_service import ProductService
from .sync_service import ProductSyncService
from .variant_service import VariantService, VariantDeletionService
from . import integration_service
from . import sync_service

__all__ = [
    "ProductService",
    "ProductSyncService",
    "VariantService",
    "VariantDeletionService",
    "integration_service",
    "sync_service",
]
