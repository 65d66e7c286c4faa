"""
Catalog lookup used by the order engine to validate and price cart lines.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from moaawen.db.catalog import CatalogDB
from moaawen.utils.ids import normalize_id


class CatalogLookup(ABC):
    """
    Read-only view of a business catalog.

    `get_variant` returns None when the product or the variant does not exist
    (or the variant belongs to another product). Otherwise:
        {
            "title": str,
            "variant_label": str,
            "discounted_price": Any,   # raw, validated by the engine
            "original_price": Any,
            "in_stock": bool,
            "sku": str | None,
            "image": str | None,
            "options": {"option1": str | None, "option2": ..., "option3": ...},
        }
    """

    @abstractmethod
    def get_variant(self, business_id: str, product_id: str, variant_id: str) -> Optional[Dict[str, Any]]:
        pass


def variant_label(variant: Dict[str, Any], options: Dict[str, Any]) -> str:
    name = variant.get("variant_name") or variant.get("variant_title")
    if name:
        return str(name)
    joined = " / ".join(str(v) for v in options.values() if v)
    return joined or "Standard"


def _options(variant: Dict[str, Any]) -> Dict[str, Any]:
    opts = {k: variant.get(k) for k in ("option1", "option2", "option3")}
    if not any(opts.values()) and isinstance(variant.get("options"), dict):
        values = list(variant["options"].values())[:3]
        for i, value in enumerate(values, start=1):
            opts[f"option{i}"] = value
    return opts


def _in_stock(variant: Dict[str, Any]) -> bool:
    if "in_stock" in variant and variant["in_stock"] is not None:
        return bool(variant["in_stock"])
    if variant.get("available_qty") is not None:
        try:
            return float(variant["available_qty"]) > 0
        except (TypeError, ValueError):
            return False
    return True


def _prices(variant: Dict[str, Any]):
    if "discounted_price" in variant or "original_price" in variant:
        return variant.get("discounted_price"), variant.get("original_price")
    # Shopify-synced variants: price_num is what the customer pays,
    # compare_at_num the crossed-out price.
    if variant.get("compare_at_num") is not None:
        return variant.get("price_num"), variant.get("compare_at_num")
    return None, variant.get("price_num")


def _product_image(product: Dict[str, Any]) -> Optional[str]:
    if product.get("default_image"):
        return product["default_image"]
    images = product.get("images") or []
    if images and isinstance(images[0], dict):
        return images[0].get("src")
    return None


class CatalogService(CatalogLookup):
    """DynamoDB-backed catalog lookup."""

    def __init__(self, db: Optional[CatalogDB] = None):
        self.db = db or CatalogDB()

    def get_variant(self, business_id: str, product_id: str, variant_id: str) -> Optional[Dict[str, Any]]:
        business_id = normalize_id(business_id)
        product_id = normalize_id(product_id)
        variant_id = normalize_id(variant_id)
        if not product_id or not variant_id:
            return None

        variant = self.db.get_variant(business_id, variant_id)
        if not variant or normalize_id(variant.get("catalog_id")) != product_id:
            return None
        product = self.db.get_catalog_item(business_id, product_id)
        if not product:
            return None

        options = _options(variant)
        discounted, original = _prices(variant)
        return {
            "title": product.get("title") or "",
            "variant_label": variant_label(variant, options),
            "discounted_price": discounted,
            "original_price": original,
            "in_stock": _in_stock(variant),
            "sku": variant.get("sku"),
            "image": variant.get("image") or _product_image(product),
            "options": options,
        }
