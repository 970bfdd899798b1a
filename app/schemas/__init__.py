# Pydantic Schemas Package
from .product import ProductCreate, ProductUpdate, ProductResponse, StockUpdate
from .store import StoreCreate, StoreUpdate, StoreResponse
from .sync import SyncRequest, BulkSyncRequest, SyncLogResponse

__all__ = [
    "ProductCreate", "ProductUpdate", "ProductResponse", "StockUpdate",
    "StoreCreate", "StoreUpdate", "StoreResponse",
    "SyncRequest", "BulkSyncRequest", "SyncLogResponse",
]
