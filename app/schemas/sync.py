"""
Sync Schemas
"""
from pydantic import BaseModel
from typing import Any, Dict, List, Optional
from uuid import UUID


class StoreTargetInput(BaseModel):
    store_id: UUID
    location_id: Optional[str] = None


class SyncRequest(BaseModel):
    location_id: Optional[str] = None
    store_id: Optional[UUID] = None
    store_ids: List[UUID] = []
    stores: List[StoreTargetInput] = []

    def store_targets(self) -> List[Dict[str, Any]]:
        return [{"store_id": str(s.store_id), "location_id": s.location_id} for s in self.stores]


class BulkSyncRequest(SyncRequest):
    product_ids: List[UUID]


class SyncLogResponse(BaseModel):
    id: UUID
    status: str
    product_ids: Optional[List[str]]
    store_ids: Optional[List[str]]
    stats: Optional[Dict[str, Any]]
    error_message: Optional[str]

    class Config:
        from_attributes = True
