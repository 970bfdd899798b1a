"""
Product Schemas
"""
from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional, Union
from uuid import UUID
from decimal import Decimal
from datetime import datetime


class OptionValueInput(BaseModel):
    value: str
    price: Optional[Decimal] = None
    compare_at_price: Optional[Decimal] = None
    stock_quantity: Optional[int] = None


class OptionInput(BaseModel):
    name: str
    values: List[Union[str, OptionValueInput]] = []


class VariantOptionValue(BaseModel):
    option_name: str
    value: str


class VariantInput(BaseModel):
    sku: Optional[str] = None
    price: Optional[Decimal] = None
    compare_at_price: Optional[Decimal] = None
    stock_quantity: Optional[int] = None
    image_url: Optional[str] = None
    option_values: List[VariantOptionValue] = []


class ImageInput(BaseModel):
    url: str
    enhanced_url: Optional[str] = None
    alt_text: Optional[str] = None
    display_order: Optional[int] = None
    is_primary: bool = False


class ProductCreate(BaseModel):
    title: str
    description: Optional[str] = None
    product_type: Optional[str] = None
    vendor: Optional[str] = None
    tags: List[str] = []
    status: str = "draft"
    store_id: Optional[UUID] = None
    sku: Optional[str] = None
    price: Optional[Decimal] = None
    compare_at_price: Optional[Decimal] = None
    stock_quantity: Optional[int] = None
    image_url: Optional[str] = None
    options: List[OptionInput] = []
    variants: List[VariantInput] = []
    images: List[Union[str, ImageInput]] = []


class VariantUpdate(BaseModel):
    id: Optional[UUID] = None
    sku: Optional[str] = None
    price: Optional[Decimal] = None
    compare_at_price: Optional[Decimal] = None
    stock_quantity: Optional[int] = None
    image_url: Optional[str] = None


class RemoteConfig(BaseModel):
    store_ids: List[UUID] = []
    location_id: Optional[str] = None


class ProductUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    product_type: Optional[str] = None
    vendor: Optional[str] = None
    tags: Optional[List[str]] = None
    status: Optional[str] = None
    options: Optional[List[OptionInput]] = None
    variants: Optional[List[VariantUpdate]] = None
    images: Optional[List[Union[str, ImageInput]]] = None
    remote_config: Optional[RemoteConfig] = None


class StockUpdate(BaseModel):
    stock_quantity: int = Field(ge=0)


class OptionValueResponse(BaseModel):
    id: UUID
    value: str
    position: int
    shopify_option_value_ids: Optional[Dict[str, str]] = None

    class Config:
        from_attributes = True


class OptionResponse(BaseModel):
    id: UUID
    name: str
    position: int
    values: List[OptionValueResponse] = []
    shopify_option_ids: Optional[Dict[str, str]] = None

    class Config:
        from_attributes = True


class VariantResponse(BaseModel):
    id: UUID
    sku: Optional[str]
    position: int
    price: Optional[Decimal]
    compare_at_price: Optional[Decimal]
    stock_quantity: Optional[int]
    image_url: Optional[str]
    is_default: Optional[bool]
    shopify_variant_ids: Optional[Dict[str, str]] = None
    inventory_item_ids: Optional[Dict[str, str]] = None
    shopify_media_ids: Optional[Dict[str, str]] = None
    store_specific_skus: Optional[Dict[str, str]] = None
    sync_statuses: Optional[Dict[str, str]] = None

    class Config:
        from_attributes = True


class ImageResponse(BaseModel):
    id: UUID
    variant_id: Optional[UUID]
    original_url: Optional[str]
    enhanced_url: Optional[str]
    alt_text: Optional[str]
    display_order: Optional[int]
    is_primary: Optional[bool]

    class Config:
        from_attributes = True


class ProductResponse(BaseModel):
    id: UUID
    unique_reference_code: Optional[str]
    title: str
    description: Optional[str]
    product_type: Optional[str]
    vendor: Optional[str]
    tags: Optional[List[str]]
    status: Optional[str]
    store_id: Optional[UUID]
    store_ids: Optional[List[str]]
    all_image_urls: Optional[List[str]]
    shopify_product_ids: Optional[Dict[str, str]]
    shopify_handles: Optional[Dict[str, str]]
    shopify_statuses: Optional[Dict[str, str]]
    sync_statuses: Optional[Dict[str, str]]
    sync_errors: Optional[Dict[str, Any]]
    sync_status: Optional[str]
    sync_error: Optional[str]
    sync_attempted_at: Optional[datetime]
    sync_completed_at: Optional[datetime]
    options: List[OptionResponse] = []
    variants: List[VariantResponse] = []
    images: List[ImageResponse] = []

    class Config:
        from_attributes = True
