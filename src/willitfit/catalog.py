"""
Product catalog.

A small built-in set of common products, optionally replaced by a JSON
file shaped like {"products": [{"id": ..., "width_cm": ..., ...}]}.
"""

import json
import logging
from pathlib import Path
from typing import Dict, List, Optional

from willitfit.contracts import Product

logger = logging.getLogger(__name__)


DEFAULT_PRODUCTS: Dict[str, Product] = {
    "washer-1": Product(
        id="washer-1",
        name="Front Load Washer",
        category="Appliance",
        width_cm=60.0,
        height_cm=85.0,
        depth_cm=60.0,
    ),
    "fridge-1": Product(
        id="fridge-1",
        name="French Door Refrigerator",
        category="Appliance",
        width_cm=91.0,
        height_cm=178.0,
        depth_cm=74.0,
    ),
    "sofa-1": Product(
        id="sofa-1",
        name="3-Seater Sofa",
        category="Furniture",
        width_cm=220.0,
        height_cm=85.0,
        depth_cm=95.0,
    ),
    "tv-65": Product(
        id="tv-65",
        name='65" OLED TV',
        category="TV",
        width_cm=145.0,
        height_cm=83.0,
        depth_cm=5.0,
        allow_rotate=True,
    ),
    "desk-1": Product(
        id="desk-1",
        name="Standing Desk",
        category="Furniture",
        width_cm=160.0,
        height_cm=72.0,
        depth_cm=80.0,
    ),
    "bookshelf-1": Product(
        id="bookshelf-1",
        name="Tall Bookshelf",
        category="Furniture",
        width_cm=80.0,
        height_cm=200.0,
        depth_cm=30.0,
    ),
}


def parse_products(payload: Dict) -> List[Product]:
    if not isinstance(payload, dict):
        raise ValueError("Catalog JSON must be an object")
    entries = payload.get("products")
    if not isinstance(entries, list):
        raise ValueError("Catalog JSON must contain a 'products' list")
    return [Product.from_dict(entry) for entry in entries]


def load_products(path: Optional[str] = None) -> List[Product]:
    """Load the catalog, falling back to the built-in products on any error."""
    if path is None:
        return list(DEFAULT_PRODUCTS.values())

    try:
        with Path(path).open("r", encoding="utf-8") as f:
            products = parse_products(json.load(f))
    except (OSError, ValueError) as exc:
        logger.warning("Could not load catalog %s (%s); using built-in products", path, exc)
        return list(DEFAULT_PRODUCTS.values())

    logger.info("Loaded %d products from %s", len(products), path)
    return products


def get_product(product_id: str, products: Optional[List[Product]] = None) -> Product:
    catalog = products if products is not None else list(DEFAULT_PRODUCTS.values())
    for product in catalog:
        if product.id == product_id:
            return product
    known = ", ".join(sorted(p.id for p in catalog))
    raise KeyError(f"Unknown product '{product_id}' (known: {known})")


def products_by_category(products: Optional[List[Product]] = None) -> Dict[str, List[Product]]:
    """Group products by category, keeping first-seen category and product order."""
    catalog = products if products is not None else list(DEFAULT_PRODUCTS.values())
    grouped: Dict[str, List[Product]] = {}
    for product in catalog:
        grouped.setdefault(product.category, []).append(product)
    return grouped
