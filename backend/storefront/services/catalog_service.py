import logging
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from storefront.db import BackendClient
from storefront.models.product import Product
from storefront.models.user import User
from storefront.repositories.product_repo import ProductRepository
from storefront.schemas.product_schema import (
    CatalogPage,
    ProductImageOut,
    ProductOut,
    ProductRow,
    ProductVariantOut,
    StoreOwnerOut,
    StoreRow,
)

log = logging.getLogger(__name__)

DEFAULT_STORE_NAME = "Mi Tienda"
UNNAMED_PRODUCT = "Producto sin nombre"
DEFAULT_QUERY_TIMEOUT = 10.0


class CatalogException(Exception):
    pass


class StoreNotFound(CatalogException):
    pass


class CatalogTimeout(CatalogException):
    pass


def product_to_row(p: Product) -> Dict[str, Any]:
    """Flatten an ORM product and its children into a plain join row."""
    row = {c.name: getattr(p, c.name) for c in Product.__table__.columns}
    row["images"] = [
        {"id": i.id, "image_url": i.image_url, "position": i.position, "created_at": i.created_at}
        for i in p.images
    ]
    row["variants"] = [
        {
            "id": v.id,
            "name": v.name,
            "sku": v.sku,
            "price_modifier": v.price_modifier,
            "stock_quantity": v.stock_quantity,
            "is_available": v.is_available,
            "created_at": v.created_at,
            "updated_at": v.updated_at,
        }
        for v in p.variants
    ]
    return row


def reshape_product(row: Dict[str, Any], in_stock_only: bool = True) -> ProductOut:
    """
    Validate one join row and turn it into the storefront shape: images by
    position, variants oldest first (only purchasable ones unless
    ``in_stock_only`` is off), ``imageUrl`` taken from the first image.
    """
    product = ProductRow.model_validate(row)
    images = sorted(product.images, key=lambda i: i.position)
    variants = product.variants
    if in_stock_only:
        variants = [v for v in variants if v.is_available and v.stock_quantity > 0]
    variants = sorted(variants, key=lambda v: v.created_at)

    return ProductOut(
        id=product.id,
        name=product.name,
        description=product.description,
        main_sku=product.main_sku,
        base_price=product.base_price,
        stock_quantity=product.stock_quantity,
        is_available=product.is_available,
        category=product.category,
        position=product.position,
        created_at=product.created_at,
        updated_at=product.updated_at,
        images=[
            ProductImageOut(product_id=product.id, **i.model_dump()) for i in images
        ],
        variants=[
            ProductVariantOut(product_id=product.id, **v.model_dump()) for v in variants
        ],
        display_price=product.display_price,
        image_url=images[0].image_url if images else None,
    )


def degraded_product(row: Dict[str, Any]) -> ProductOut:
    """Minimal stand-in for a row that could not be reshaped."""

    def _num(key, cast):
        try:
            return cast(row.get(key) or 0)
        except (TypeError, ValueError):
            return cast(0)

    def _when(key):
        value = row.get(key)
        return value if isinstance(value, datetime) else None

    def _opt(key, cast):
        try:
            value = row.get(key)
            return cast(value) if value is not None else None
        except (TypeError, ValueError):
            return None

    return ProductOut(
        id=str(row.get("id") or ""),
        name=row.get("name") or UNNAMED_PRODUCT,
        description=_opt("description", str),
        main_sku=row.get("main_sku") or "",
        base_price=_num("base_price", float),
        stock_quantity=_num("stock_quantity", int),
        is_available=bool(row.get("is_available")),
        category=_opt("category", str),
        position=_opt("position", int),
        created_at=_when("created_at"),
        updated_at=_when("updated_at"),
        images=[],
        variants=[],
        display_price=_opt("display_price", str),
        image_url=None,
    )


def reshape_rows(rows: List[Dict[str, Any]], in_stock_only: bool = True) -> List[ProductOut]:
    products = []
    for row in rows:
        try:
            products.append(reshape_product(row, in_stock_only=in_stock_only))
        except (ValidationError, TypeError, ValueError, KeyError) as e:
            log.error("Error transforming catalog product %s: %s", row.get("id"), e)
            products.append(degraded_product(row))
    return products


class CatalogService:
    def __init__(self, client: BackendClient, timeout_seconds: float = DEFAULT_QUERY_TIMEOUT):
        self.client = client
        self.timeout_seconds = timeout_seconds

    def _load_store_rows(
        self, store_slug: str, offset: int, limit: int, category: Optional[str]
    ) -> Tuple[Optional[Dict[str, Any]], List[Dict[str, Any]]]:
        db = self.client.session()
        try:
            repo = ProductRepository(db)
            owner: Optional[User] = repo.get_store_by_slug(store_slug)
            if owner is None:
                return None, []
            products = repo.list_store_products(owner.id, offset=offset, limit=limit, category=category)
            owner_row = StoreRow.model_validate(owner).model_dump()
            return owner_row, [product_to_row(p) for p in products]
        finally:
            db.close()

    def _race(self, fn, *args):
        """
        Run ``fn`` on a worker and wait at most ``timeout_seconds``. A read
        that loses the race is left to finish on its own; its result is dropped.
        """
        ex = ThreadPoolExecutor(max_workers=1)
        try:
            future = ex.submit(fn, *args)
            return future.result(timeout=self.timeout_seconds)
        except FutureTimeout:
            raise CatalogTimeout("Query timeout")
        finally:
            ex.shutdown(wait=False)

    def fetch_public_catalog(
        self,
        store_slug: str,
        page: int = 1,
        page_size: int = 20,
        category: Optional[str] = None,
    ) -> CatalogPage:
        """
        One page of a store's public catalog.

        Raises StoreNotFound for an unknown store on page 1; later pages come
        back empty instead so that pagination can run off the end quietly.
        """
        if page < 1 or page_size < 1:
            raise ValueError("page and page_size must be positive")
        offset = (page - 1) * page_size
        log.info("Fetching public catalog for %s page=%d category=%s", store_slug, page, category or "all")

        try:
            owner_row, rows = self._race(self._load_store_rows, store_slug, offset, page_size, category)
        except SQLAlchemyError as e:
            log.error("Store lookup for %s failed: %s", store_slug, e)
            owner_row, rows = None, []

        if owner_row is None:
            if page == 1:
                log.warning("Store not found: %s", store_slug)
                raise StoreNotFound("Tienda no encontrada")
            return CatalogPage(
                store_owner=StoreOwnerOut(store_name="", whatsapp_number=""),
                products=[],
                page=page,
                page_size=page_size,
            )

        products = reshape_rows(rows)
        log.info("Public catalog for %s page %d: %d products", store_slug, page, len(products))
        return CatalogPage(
            store_owner=StoreOwnerOut(
                store_name=owner_row.get("store_name") or DEFAULT_STORE_NAME,
                whatsapp_number=owner_row.get("whatsapp_number") or "",
            ),
            products=products,
            page=page,
            page_size=page_size,
        )

    def fetch_product_with_images(self, product_id: str) -> Optional[ProductOut]:
        def _load():
            db = self.client.session()
            try:
                p = ProductRepository(db).get_with_relations(product_id)
                return product_to_row(p) if p is not None else None
            finally:
                db.close()

        row = self._race(_load)
        if row is None:
            return None
        return reshape_product(row, in_stock_only=False)

    def fetch_store_product(self, store_slug: str, product_id: str) -> Optional[ProductOut]:
        """
        One product as the public catalog shows it: hidden products and
        products of other stores are None, variants are the purchasable ones.
        """

        def _load():
            db = self.client.session()
            try:
                p = ProductRepository(db).get_store_product(store_slug, product_id)
                return product_to_row(p) if p is not None else None
            finally:
                db.close()

        row = self._race(_load)
        if row is None:
            return None
        return reshape_product(row)

    def fetch_products_with_images(self, user_id: str) -> List[ProductOut]:
        def _load():
            db = self.client.session()
            try:
                products = ProductRepository(db).list_store_products(user_id, only_available=False)
                return [product_to_row(p) for p in products]
            finally:
                db.close()

        rows = self._race(_load)
        log.info("Loaded %d products for owner %s", len(rows), user_id)
        return reshape_rows(rows, in_stock_only=False)

    def get_store_owner(self, store_slug: str) -> Optional[StoreOwnerOut]:
        db = self.client.session()
        try:
            owner = ProductRepository(db).get_store_by_slug(store_slug)
        finally:
            db.close()
        if owner is None:
            return None
        return StoreOwnerOut(
            store_name=owner.store_name or DEFAULT_STORE_NAME,
            whatsapp_number=owner.whatsapp_number or "",
        )
