from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from storefront.config import Settings
from storefront.db import BackendClient, get_backend, get_db, get_settings
from storefront.repositories.product_repo import ProductRepository
from storefront.services.catalog_service import CatalogService, CatalogTimeout, StoreNotFound

router = APIRouter(tags=["catalogue"])


def get_catalog_service(
    backend: BackendClient = Depends(get_backend), cfg: Settings = Depends(get_settings)
) -> CatalogService:
    return CatalogService(backend, timeout_seconds=cfg.CATALOG_QUERY_TIMEOUT_SECONDS)


@router.get("/api/stores/{store_slug}/catalog", summary="Public catalog page of a store")
def store_catalog(
    store_slug: str,
    page: int = Query(1, ge=1),
    page_size: Optional[int] = Query(None, ge=1, le=100, description="defaults to CATALOG_PAGE_SIZE"),
    category: Optional[str] = Query(None, description="only this category"),
    svc: CatalogService = Depends(get_catalog_service),
    cfg: Settings = Depends(get_settings),
):
    page_size = page_size or cfg.CATALOG_PAGE_SIZE
    try:
        result = svc.fetch_public_catalog(store_slug, page=page, page_size=page_size, category=category)
    except StoreNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except CatalogTimeout as e:
        raise HTTPException(status_code=504, detail=str(e))
    return result.model_dump(by_alias=True, mode="json")


@router.get("/api/products/{product_id}", summary="Get product with images and variants")
def get_product(product_id: str, svc: CatalogService = Depends(get_catalog_service)):
    try:
        product = svc.fetch_product_with_images(product_id)
    except CatalogTimeout as e:
        raise HTTPException(status_code=504, detail=str(e))
    if product is None:
        raise HTTPException(status_code=404, detail="Product not found")
    return product.model_dump(by_alias=True, mode="json")


@router.get("/api/owners/{user_id}/products", summary="All products of an owner")
def owner_products(user_id: str, svc: CatalogService = Depends(get_catalog_service)):
    try:
        products = svc.fetch_products_with_images(user_id)
    except CatalogTimeout as e:
        raise HTTPException(status_code=504, detail=str(e))
    return {"items": [p.model_dump(by_alias=True, mode="json") for p in products], "total": len(products)}


@router.get("/api/skus/suggest", summary="Suggest an unused SKU for a product name")
def suggest_sku(name: str = Query(..., min_length=1), db: Session = Depends(get_db)):
    return {"sku": ProductRepository(db).generate_unique_sku(name)}


@router.get("/api/skus/{sku}/available", summary="Check whether a SKU is free")
def sku_available(sku: str, exclude_product_id: Optional[str] = None, db: Session = Depends(get_db)):
    return {"sku": sku, "available": ProductRepository(db).validate_sku(sku, exclude_product_id)}
