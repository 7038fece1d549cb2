from typing import List, Optional

from pydantic import Field

from storefront.schemas.product_schema import CamelModel, ProductImageOut, ProductVariantOut


class ProductCardOut(CamelModel):
    product_id: str
    name: str
    category: Optional[str] = None
    price_label: str
    description: Optional[str] = None
    is_available: bool
    images: List[ProductImageOut] = Field(default_factory=list)
    variants: List[ProductVariantOut] = Field(default_factory=list)
    selected_variant_id: Optional[str] = None
    whatsapp_url: str
    whatsapp_label: str


class SelectionItemIn(CamelModel):
    product_id: str
    variant_id: Optional[str] = None
    quantity: int = Field(default=1, ge=1)


class CheckoutIn(CamelModel):
    items: List[SelectionItemIn] = Field(default_factory=list)


class SelectedProductOut(CamelModel):
    id: str
    name: str
    price: str
    image_url: Optional[str] = None
    category: Optional[str] = None
    selected_variant_id: Optional[str] = None
    selected_variant_name: Optional[str] = None
    quantity: int


class CheckoutOut(CamelModel):
    items: List[SelectedProductOut]
    total_count: int
    total_items: int
    message: str
    whatsapp_url: str
