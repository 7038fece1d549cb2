import io
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from PIL import Image

from storefront.adapters.storage import LocalStorageBucket
from storefront.config import Settings
from storefront.db import BackendClient
from storefront.main import create_app
from storefront.models.product import Product, ProductImage, ProductVariant
from storefront.models.user import User
from storefront.services.image_service import ImageFile

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


def at(minutes: int) -> datetime:
    return T0 + timedelta(minutes=minutes)


def png_file(width: int, height: int, mode: str = "RGB", name: str = "photo.png") -> ImageFile:
    color = (200, 30, 30, 128) if mode == "RGBA" else (200, 30, 30)
    buf = io.BytesIO()
    Image.new(mode, (width, height), color).save(buf, format="PNG")
    return ImageFile(name=name, content=buf.getvalue(), content_type="image/png")


@pytest.fixture
def bucket(tmp_path):
    return LocalStorageBucket(str(tmp_path / "storage"), "http://testserver/storage")


@pytest.fixture
def backend(tmp_path, bucket):
    client = BackendClient(f"sqlite:///{tmp_path / 'test.db'}", bucket)
    client.init_db(reset=True)
    yield client
    client.dispose()


@pytest.fixture
def client(backend):
    app = create_app(Settings(FRONTEND_ORIGINS=["http://localhost:5173"]), backend=backend)
    return TestClient(app)


@pytest.fixture
def store(backend):
    """
    Store "demo" with four products:
      p-pos1   position 1, images out of order, mixed variants
      p-pos2   position 2, category Ropa
      p-null   no position, newest
      p-hidden not available (never in the public catalog)
    """
    db = backend.session()
    try:
        owner = User(
            id="owner-1",
            email="demo@example.com",
            store_slug="demo",
            store_name="Tienda Demo",
            whatsapp_number="5215512345678",
        )
        db.add(owner)
        db.add_all(
            [
                Product(
                    id="p-pos1", user_id="owner-1", name="Playera", main_sku="PLAY-1",
                    base_price=350, stock_quantity=5, is_available=True, category="Ropa",
                    position=1, created_at=at(1), updated_at=at(1),
                    images=[
                        ProductImage(id="img-3", image_url="http://cdn/3.webp", position=3, created_at=at(1)),
                        ProductImage(id="img-1", image_url="http://cdn/1.webp", position=1, created_at=at(2)),
                        ProductImage(id="img-2", image_url="http://cdn/2.webp", position=2, created_at=at(3)),
                    ],
                    variants=[
                        ProductVariant(id="v-late", name="Grande", sku="PLAY-1-G", price_modifier=30,
                                       stock_quantity=3, is_available=True, created_at=at(9), updated_at=at(9)),
                        ProductVariant(id="v-early", name="Chica", sku="PLAY-1-CH", price_modifier=0,
                                       stock_quantity=2, is_available=True, created_at=at(5), updated_at=at(5)),
                        ProductVariant(id="v-empty", name="Mediana", sku="PLAY-1-M", price_modifier=10,
                                       stock_quantity=0, is_available=True, created_at=at(6), updated_at=at(6)),
                        ProductVariant(id="v-off", name="XL", sku="PLAY-1-XL", price_modifier=50,
                                       stock_quantity=4, is_available=False, created_at=at(7), updated_at=at(7)),
                    ],
                ),
                Product(
                    id="p-pos2", user_id="owner-1", name="Sudadera", main_sku="SUD-1",
                    base_price=1200.5, stock_quantity=2, is_available=True, category="Ropa",
                    position=2, created_at=at(2), updated_at=at(2),
                ),
                Product(
                    id="p-null", user_id="owner-1", name="Café", main_sku="CAFE-1",
                    base_price=120, stock_quantity=10, is_available=True, category="Bebidas",
                    position=None, display_price="$120 MXN", created_at=at(10), updated_at=at(10),
                ),
                Product(
                    id="p-hidden", user_id="owner-1", name="Oculto", main_sku="HID-1",
                    base_price=10, stock_quantity=1, is_available=False, position=0,
                    created_at=at(3), updated_at=at(3),
                ),
            ]
        )
        db.commit()
    finally:
        db.close()
    return "demo"
