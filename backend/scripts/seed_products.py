#!/usr/bin/env python3
"""
Seed a demo store from a JSON file.

The file is either a single store object or a list of them:

    {"store_slug": "demo", "store_name": "Demo", "whatsapp_number": "5215512345678",
     "email": "demo@example.com",
     "products": [{"sku": "TEE-1", "name": "Tee", "price": 199, "stock": 5,
                   "images": ["https://..."], "variants": [{"sku": "TEE-1-M", "name": "M", "stock": 2}]}]}

Usage:
    python scripts/seed_products.py --file demo_store.json
"""
import argparse
import json
import logging
import os
import sys

# allow running from repo/scripts
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from storefront.config import settings
from storefront.db import BackendClient
from storefront.logging_config import configure_logging
from storefront.repositories.product_repo import ProductRepository

log = logging.getLogger("seed")

DEMO_STORE = {
    "store_slug": "demo",
    "store_name": "Tienda Demo",
    "whatsapp_number": "5215512345678",
    "email": "demo@example.com",
    "products": [
        {"sku": "CAFE-250", "name": "Café de olla 250g", "price": 120, "stock": 10, "category": "Bebidas", "position": 1},
        {
            "sku": "PLAYERA-1",
            "name": "Playera bordada",
            "price": 350,
            "stock": 6,
            "category": "Ropa",
            "variants": [
                {"sku": "PLAYERA-1-CH", "name": "Chica", "stock": 2},
                {"sku": "PLAYERA-1-G", "name": "Grande", "price_modifier": 30, "stock": 0},
            ],
        },
    ],
}


def _to_float(value, default=0.0):
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _to_int(value, default=0):
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _normalize_product(entry):
    """Return kwargs for ProductRepository.create_or_update from a loosely shaped entry."""
    images = entry.get("images") or entry.get("image_urls") or []
    if not images and entry.get("image"):
        images = [entry["image"]]
    return {
        "main_sku": entry.get("sku") or entry.get("main_sku"),
        "name": entry.get("name") or entry.get("title") or "",
        "base_price": _to_float(entry.get("price", entry.get("base_price"))),
        "stock_quantity": _to_int(entry.get("stock", entry.get("stock_quantity"))),
        "description": entry.get("description"),
        "category": entry.get("category"),
        "position": entry.get("position"),
        "is_available": bool(entry.get("is_available", True)),
        "image_urls": list(images),
        "variants": [
            {
                "sku": v["sku"],
                "name": v.get("name") or v["sku"],
                "price_modifier": _to_float(v.get("price_modifier")),
                "stock_quantity": _to_int(v.get("stock", v.get("stock_quantity"))),
                "is_available": bool(v.get("is_available", True)),
            }
            for v in entry.get("variants") or []
            if v.get("sku")
        ],
    }


def seed_stores(backend: BackendClient, stores):
    db = backend.session()
    repo = ProductRepository(db)
    created = 0
    try:
        for store in stores:
            owner = repo.upsert_store_owner(
                email=store.get("email") or f"{store['store_slug']}@example.com",
                store_slug=store["store_slug"],
                store_name=store.get("store_name"),
                whatsapp_number=store.get("whatsapp_number"),
            )
            for entry in store.get("products") or []:
                kwargs = _normalize_product(entry)
                if not kwargs["main_sku"]:
                    log.warning("skipping product without sku: %s", entry)
                    continue
                repo.create_or_update(owner, **kwargs)
                created += 1
        db.commit()
        log.info("Seeded %d products", created)
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
    return created


if __name__ == "__main__":
    parser = argparse.ArgumentParser()
    parser.add_argument("--file", "-f", default=None, help="Path to a store JSON file (defaults to a built-in demo store)")
    parser.add_argument("--reset", action="store_true", help="drop and recreate tables first")
    args = parser.parse_args()

    configure_logging(settings.LOG_LEVEL)
    if args.file:
        if not os.path.exists(args.file):
            print("File not found:", args.file)
            sys.exit(1)
        with open(args.file, "r", encoding="utf-8") as f:
            data = json.load(f)
    else:
        data = DEMO_STORE
    stores = data if isinstance(data, list) else [data]

    backend = BackendClient.from_settings(settings)
    backend.init_db(reset=args.reset)
    seed_stores(backend, stores)
