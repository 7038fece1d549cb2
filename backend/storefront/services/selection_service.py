from dataclasses import dataclass
from typing import List, Optional
from urllib.parse import quote

from storefront.schemas.card_schema import ProductCardOut
from storefront.schemas.product_schema import ProductOut, ProductVariantOut, StoreOwnerOut

WHATSAPP_BASE = "https://wa.me"


def format_price(value: float) -> str:
    """``$`` + grouped amount, up to two decimals, trailing zeros dropped."""
    text = f"{value:,.2f}"
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return f"${text}"


def find_variant(product: ProductOut, variant_id: Optional[str]) -> Optional[ProductVariantOut]:
    if not variant_id:
        return None
    return next((v for v in product.variants if v.id == variant_id), None)


def product_price_label(product: ProductOut, variant_id: Optional[str] = None) -> str:
    variant = find_variant(product, variant_id)
    if variant is not None:
        return format_price(product.base_price + variant.price_modifier)
    if product.display_price:
        return product.display_price
    return format_price(product.base_price)


def whatsapp_url(number: str, message: str) -> str:
    if not number:
        return "#"
    text = quote(message, safe="!~*'()")
    return f"{WHATSAPP_BASE}/{number}?text={text}"


def whatsapp_product_url(owner: StoreOwnerOut, product: ProductOut, variant_id: Optional[str] = None) -> str:
    message = f"Hola! Te escribo por el producto '{product.name}'"
    variant = find_variant(product, variant_id)
    if variant is not None:
        message += f" - {variant.name}"
    message += " que vi en tu catálogo."
    return whatsapp_url(owner.whatsapp_number, message)


def build_product_card(owner: StoreOwnerOut, product: ProductOut, variant_id: Optional[str] = None) -> ProductCardOut:
    variant = find_variant(product, variant_id)
    label = f"Contactar por WhatsApp sobre {product.name}"
    if variant is not None:
        label += f" - {variant.name}"
    return ProductCardOut(
        product_id=product.id,
        name=product.name,
        category=product.category,
        price_label=product_price_label(product, variant_id),
        description=product.description,
        is_available=product.is_available,
        images=product.images,
        variants=product.variants,
        selected_variant_id=variant.id if variant is not None else None,
        whatsapp_url=whatsapp_product_url(owner, product, variant_id),
        whatsapp_label=label,
    )


@dataclass
class SelectedProduct:
    id: str
    name: str
    price: str
    quantity: int
    image_url: Optional[str] = None
    category: Optional[str] = None
    selected_variant_id: Optional[str] = None
    selected_variant_name: Optional[str] = None

    @property
    def key(self) -> str:
        return selection_key(self.id, self.selected_variant_id)


def selection_key(product_id: str, variant_id: Optional[str] = None) -> str:
    return f"{product_id}-{variant_id}" if variant_id else product_id


class ProductSelection:
    """A shopper's pick list, turned into one WhatsApp message for the vendor."""

    def __init__(self):
        self.items: List[SelectedProduct] = []

    def get(self, product_id: str, variant_id: Optional[str] = None) -> Optional[SelectedProduct]:
        key = selection_key(product_id, variant_id)
        return next((it for it in self.items if it.key == key), None)

    def is_selected(self, product_id: str, variant_id: Optional[str] = None) -> bool:
        return self.get(product_id, variant_id) is not None

    def add(self, product: ProductOut, variant_id: Optional[str] = None, quantity: int = 1) -> SelectedProduct:
        existing = self.get(product.id, variant_id)
        if existing:
            existing.quantity += quantity
            return existing

        variant = find_variant(product, variant_id)
        item = SelectedProduct(
            id=product.id,
            name=product.name,
            price=product_price_label(product, variant_id),
            quantity=quantity,
            image_url=product.images[0].image_url if product.images else None,
            category=product.category or None,
            selected_variant_id=variant_id,
            selected_variant_name=variant.name if variant is not None else None,
        )
        self.items.append(item)
        return item

    def remove(self, product_id: str, variant_id: Optional[str] = None):
        key = selection_key(product_id, variant_id)
        self.items = [it for it in self.items if it.key != key]

    def update_quantity(self, product_id: str, variant_id: Optional[str], quantity: int):
        if quantity <= 0:
            self.remove(product_id, variant_id)
            return
        item = self.get(product_id, variant_id)
        if item:
            item.quantity = quantity

    def clear(self):
        self.items = []

    @property
    def total_count(self) -> int:
        return len(self.items)

    @property
    def total_items(self) -> int:
        return sum(it.quantity for it in self.items)

    def whatsapp_message(self, owner: StoreOwnerOut) -> str:
        if not self.items:
            return f"Hola! Me interesa conocer más sobre los productos de {owner.store_name}."

        lines = [f"Hola! Me interesan los siguientes productos de {owner.store_name}:", ""]
        for n, it in enumerate(self.items, start=1):
            line = f"{n}. {it.name}"
            if it.selected_variant_name:
                line += f" - {it.selected_variant_name}"
            line += f" ({it.price})"
            if it.quantity > 1:
                line += f" x{it.quantity}"
            lines.append(line)
        lines.append("")
        lines.append("¿Podrías darme más información sobre disponibilidad y formas de pago?")
        return "\n".join(lines)

    def whatsapp_url(self, owner: StoreOwnerOut) -> str:
        return whatsapp_url(owner.whatsapp_number, self.whatsapp_message(owner))
