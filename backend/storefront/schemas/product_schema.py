# backend/storefront/schemas/product_schema.py
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


# --- rows as they come out of the owner -> products -> images/variants join ---

class ProductImageRow(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: str
    image_url: str
    position: int
    created_at: datetime


class ProductVariantRow(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: str
    name: str
    sku: str
    price_modifier: float
    stock_quantity: int
    is_available: bool
    created_at: datetime
    updated_at: datetime


class ProductRow(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: str
    name: str
    description: Optional[str] = None
    main_sku: str
    base_price: float
    stock_quantity: int
    is_available: bool
    category: Optional[str] = None
    position: Optional[int] = None
    display_price: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    images: List[ProductImageRow] = Field(default_factory=list)
    variants: List[ProductVariantRow] = Field(default_factory=list)


class StoreRow(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: str
    store_name: Optional[str] = None
    whatsapp_number: Optional[str] = None


# --- API models, serialized in camelCase for the storefront ---

class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ProductImageOut(CamelModel):
    id: str
    product_id: str
    image_url: str
    position: int
    created_at: datetime


class ProductVariantOut(CamelModel):
    id: str
    product_id: str
    name: str
    sku: str
    price_modifier: float
    stock_quantity: int
    is_available: bool
    created_at: datetime
    updated_at: datetime


class ProductOut(CamelModel):
    id: str
    name: str
    description: Optional[str] = None
    main_sku: str
    base_price: float
    stock_quantity: int
    is_available: bool
    category: Optional[str] = None
    position: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    images: List[ProductImageOut] = Field(default_factory=list)
    variants: List[ProductVariantOut] = Field(default_factory=list)
    display_price: Optional[str] = None
    image_url: Optional[str] = None


class StoreOwnerOut(CamelModel):
    store_name: str
    whatsapp_number: str


class CatalogPage(CamelModel):
    store_owner: StoreOwnerOut
    products: List[ProductOut]
    page: int
    page_size: int
