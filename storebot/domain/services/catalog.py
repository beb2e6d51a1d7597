# storebot/domain/services/catalog.py
"""
Product catalog backed by the products directory.

Sources, merged in this order:
  1. ``products.json`` metadata (id -> name/price/description/category)
  2. ``<id>.txt`` credential files without metadata (auto-discovered)
  3. the built-in default catalog when both of the above are empty

The catalog never stores stock; callers ask the inventory store.
``refresh()`` swaps the whole product list at once.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from storebot.domain.models.catalog import Product, ProductCategory

logger = logging.getLogger("catalog")

METADATA_FILE = "products.json"

DEFAULT_PRODUCTS = [
    Product(id="netflix", name="Netflix Premium Account (1 Month)", price=1,
            description="Full HD streaming, 4 screens"),
    Product(id="spotify", name="Spotify Premium Account (1 Month)", price=1,
            description="Ad-free music, offline download"),
    Product(id="youtube", name="YouTube Premium Account (1 Month)", price=1,
            description="Ad-free videos, background play"),
    Product(id="disney", name="Disney+ Premium Account (1 Month)", price=1,
            description="HD streaming, all content"),
    Product(id="vcc-basic", name="Virtual Credit Card - Basic", price=1,
            description="Pre-loaded $10 balance", category=ProductCategory.VCC),
    Product(id="vcc-standard", name="Virtual Credit Card - Standard", price=1,
            description="Pre-loaded $25 balance", category=ProductCategory.VCC),
]

_CATEGORY_DESCRIPTIONS = {
    ProductCategory.PREMIUM: "Premium account access",
    ProductCategory.VCC: "Virtual credit card",
    ProductCategory.GAME: "Game credits/items",
    ProductCategory.VPN: "VPN subscription",
}


def generate_metadata(product_id: str) -> Product:
    """Build a product record from a bare credential file name."""
    if product_id.startswith("vcc"):
        category = ProductCategory.VCC
    elif "game" in product_id:
        category = ProductCategory.GAME
    elif "vpn" in product_id:
        category = ProductCategory.VPN
    else:
        category = ProductCategory.PREMIUM
    name = " ".join(word.capitalize() for word in product_id.split("-"))
    return Product(
        id=product_id,
        name=f"{name} Premium",
        price=1,
        description=_CATEGORY_DESCRIPTIONS[category],
        category=category,
        auto_discovered=True,
    )


class ProductCatalog:
    def __init__(self, products_dir: str | Path):
        self._dir = Path(products_dir)
        self._products: list[Product] = []
        self.refresh()

    def refresh(self) -> int:
        """Reload from disk; returns the number of products."""
        products = self._load()
        if not products:
            products = [p.model_copy() for p in DEFAULT_PRODUCTS]
        # premium-style groups first, virtual cards last, name order inside
        products.sort(key=lambda p: (p.category == ProductCategory.VCC, p.name.lower()))
        self._products = products
        logger.info("Catalog loaded: %d products", len(products))
        return len(products)

    def _load(self) -> list[Product]:
        if not self._dir.is_dir():
            logger.warning("Products directory not found: %s", self._dir)
            return []

        metadata: dict = {}
        meta_path = self._dir / METADATA_FILE
        if meta_path.exists():
            try:
                metadata = json.loads(meta_path.read_text(encoding="utf-8"))
            except (OSError, ValueError) as exc:
                logger.warning("Unreadable %s, using auto-detection: %s", meta_path, exc)

        by_id: dict[str, Product] = {}
        for pid, data in metadata.items():
            try:
                by_id[pid.lower()] = Product.model_validate({**data, "id": pid.lower()})
            except ValueError as exc:
                logger.warning("Skipping invalid product metadata %s: %s", pid, exc)

        for path in self._dir.glob("*.txt"):
            pid = path.stem.lower()
            if path.name.startswith("_") or path.name == "README.txt" or pid in by_id:
                continue
            by_id[pid] = generate_metadata(pid)

        return list(by_id.values())

    def all(self) -> list[Product]:
        return list(self._products)

    def get(self, product_id: str) -> Product | None:
        pid = (product_id or "").strip().lower()
        for product in self._products:
            if product.id == pid:
                return product
        return None

    def by_index(self, number: int) -> Product | None:
        """1-based position in the listing order."""
        if 1 <= number <= len(self._products):
            return self._products[number - 1]
        return None
