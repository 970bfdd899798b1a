"""
Store Schemas
"""
from pydantic import BaseModel
from typing import Optional
from uuid import UUID


class StoreCreate(BaseModel):
    store_name: str
    shopify_domain: str
    shopify_access_token: str
    store_code: Optional[str] = None
    default_location_id: Optional[str] = None


class StoreUpdate(BaseModel):
    store_name: Optional[str] = None
    shopify_access_token: Optional[str] = None
    store_code: Optional[str] = None
    default_location_id: Optional[str] = None
    is_active: Optional[bool] = None


class StoreResponse(BaseModel):
    id: UUID
    store_name: str
    shopify_domain: Optional[str]
    store_code: Optional[str]
    default_location_id: Optional[str]
    is_active: bool

    class Config:
        from_attributes = True
