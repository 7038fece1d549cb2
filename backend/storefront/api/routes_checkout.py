from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from storefront.api.routes_catalogue import get_catalog_service
from storefront.schemas.card_schema import CheckoutIn, CheckoutOut, SelectedProductOut
from storefront.services.catalog_service import CatalogService, CatalogTimeout
from storefront.services.selection_service import ProductSelection, build_product_card, find_variant

router = APIRouter(prefix="/api/stores/{store_slug}", tags=["checkout"])


def _owner_or_404(svc: CatalogService, store_slug: str):
    owner = svc.get_store_owner(store_slug)
    if owner is None:
        raise HTTPException(status_code=404, detail="Tienda no encontrada")
    return owner


def _product_or_404(svc: CatalogService, store_slug: str, product_id: str):
    try:
        product = svc.fetch_store_product(store_slug, product_id)
    except CatalogTimeout as e:
        raise HTTPException(status_code=504, detail=str(e))
    if product is None:
        raise HTTPException(status_code=404, detail="Product not found")
    return product


@router.get("/products/{product_id}/card", summary="Product card with WhatsApp link")
def product_card(
    store_slug: str,
    product_id: str,
    variant_id: Optional[str] = Query(None, description="ignored unless the variant is purchasable"),
    svc: CatalogService = Depends(get_catalog_service),
):
    owner = _owner_or_404(svc, store_slug)
    product = _product_or_404(svc, store_slug, product_id)
    return build_product_card(owner, product, variant_id).model_dump(by_alias=True, mode="json")


@router.post("/whatsapp-checkout", summary="WhatsApp message for a product selection")
def whatsapp_checkout(store_slug: str, payload: CheckoutIn, svc: CatalogService = Depends(get_catalog_service)):
    owner = _owner_or_404(svc, store_slug)

    selection = ProductSelection()
    for item in payload.items:
        product = _product_or_404(svc, store_slug, item.product_id)
        if item.variant_id and find_variant(product, item.variant_id) is None:
            raise HTTPException(status_code=404, detail="Variant not available")
        selection.add(product, item.variant_id, item.quantity)

    out = CheckoutOut(
        items=[SelectedProductOut(**asdict(it)) for it in selection.items],
        total_count=selection.total_count,
        total_items=selection.total_items,
        message=selection.whatsapp_message(owner),
        whatsapp_url=selection.whatsapp_url(owner),
    )
    return out.model_dump(by_alias=True, mode="json")
