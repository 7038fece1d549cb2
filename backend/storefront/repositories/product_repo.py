import logging
import re
import time
from typing import List, Optional

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from storefront.models.product import Product, ProductImage, ProductVariant
from storefront.models.user import User
from storefront.utils.transactions import smart_transaction

log = logging.getLogger(__name__)

SKU_BASE_LENGTH = 10
SKU_MAX_SUFFIX = 999


def _timestamp_sku() -> str:
    return f"SKU{str(int(time.time() * 1000))[-8:]}"


class ProductRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_store_by_slug(self, store_slug: str) -> Optional[User]:
        return self.db.query(User).filter(User.store_slug == store_slug).first()

    def _with_relations(self):
        return self.db.query(Product).options(
            selectinload(Product.images), selectinload(Product.variants)
        )

    def list_store_products(
        self,
        user_id: str,
        offset: int = 0,
        limit: Optional[int] = None,
        category: Optional[str] = None,
        only_available: bool = True,
    ) -> List[Product]:
        """
        Products of one owner with images and variants loaded, ordered by
        position (nulls last) then newest first.
        """
        query = self._with_relations().filter(Product.user_id == user_id)
        if only_available:
            query = query.filter(Product.is_available == True)
        if category:
            query = query.filter(Product.category == category)
        query = query.order_by(
            Product.position.is_(None),
            Product.position.asc(),
            Product.created_at.desc(),
        )
        if offset:
            query = query.offset(offset)
        if limit is not None:
            query = query.limit(limit)
        return query.all()

    def get_with_relations(self, product_id: str) -> Optional[Product]:
        return self._with_relations().filter(Product.id == product_id).first()

    def get_store_product(self, store_slug: str, product_id: str) -> Optional[Product]:
        """An available product, only if it belongs to the store with ``store_slug``."""
        return (
            self._with_relations()
            .join(User, Product.user_id == User.id)
            .filter(
                User.store_slug == store_slug,
                Product.id == product_id,
                Product.is_available == True,
            )
            .first()
        )

    def increment_product_views(self, product_id: str) -> int:
        """
        Atomically bump ``view_count``. Returns the number of rows touched;
        an unknown id touches none and is not an error.
        """
        stmt = (
            update(Product)
            .where(Product.id == product_id)
            .values(view_count=Product.view_count + 1)
            .execution_options(synchronize_session=False)
        )
        with smart_transaction(self.db):
            result = self.db.execute(stmt)
        return result.rowcount or 0

    def validate_sku(self, sku: str, exclude_product_id: Optional[str] = None) -> bool:
        """True when neither a product nor a variant already uses ``sku``."""
        try:
            qry = self.db.query(Product.id).filter(Product.main_sku == sku)
            if exclude_product_id:
                qry = qry.filter(Product.id != exclude_product_id)
            if qry.first() is not None:
                return False
            variant = self.db.query(ProductVariant.id).filter(ProductVariant.sku == sku).first()
            return variant is None
        except SQLAlchemyError:
            # reported as taken
            log.exception("Error validating SKU %s", sku)
            return False

    def generate_unique_sku(self, base_name: str) -> str:
        base = re.sub(r"[^A-Z0-9]", "", (base_name or "").upper())[:SKU_BASE_LENGTH]
        if not base:
            return _timestamp_sku()
        candidate = base
        for counter in range(1, SKU_MAX_SUFFIX + 1):
            if self.validate_sku(candidate):
                return candidate
            candidate = f"{base}{counter:03d}"
        return _timestamp_sku()

    def upsert_store_owner(
        self, email: str, store_slug: str, store_name: Optional[str] = None, whatsapp_number: Optional[str] = None
    ) -> User:
        owner = self.db.query(User).filter(User.store_slug == store_slug).first()
        if owner:
            owner.email = email
            owner.store_name = store_name
            owner.whatsapp_number = whatsapp_number
        else:
            owner = User(
                email=email,
                store_slug=store_slug,
                store_name=store_name,
                whatsapp_number=whatsapp_number,
                onboarding_completed=True,
            )
            self.db.add(owner)
        self.db.flush()
        return owner

    def create_or_update(
        self,
        owner: User,
        main_sku: str,
        name: str,
        base_price: float,
        stock_quantity: int = 0,
        description: str = None,
        category: str = None,
        position: int = None,
        is_available: bool = True,
        image_urls: List[str] = (),
        variants: List[dict] = (),
    ) -> Product:
        """Insert or replace a product (and its images/variants) by main SKU."""
        p = self.db.query(Product).filter(Product.main_sku == main_sku).first()
        if p is None:
            p = Product(main_sku=main_sku, user_id=owner.id)
            self.db.add(p)
        p.user_id = owner.id
        p.name = name
        p.base_price = base_price
        p.stock_quantity = stock_quantity
        p.description = description
        p.category = category
        p.position = position
        p.is_available = is_available
        # orphans go first so re-seeded variant SKUs do not collide
        p.images.clear()
        p.variants.clear()
        self.db.flush()
        p.images = [ProductImage(image_url=url, position=i) for i, url in enumerate(image_urls)]
        p.variants = [
            ProductVariant(
                name=v["name"],
                sku=v["sku"],
                price_modifier=v.get("price_modifier", 0),
                stock_quantity=v.get("stock_quantity", 0),
                is_available=v.get("is_available", True),
            )
            for v in variants
        ]
        self.db.flush()
        return p
