"""
Order documents and the pure rules that act on them.

Nothing in here touches the store or the cache: the service calls these
after every mutation so totals and stage are derived in one place.
"""

import math
import secrets
import time
import uuid
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from moaawen.utils.coreutil import to_decimal_or_none
from moaawen.utils.ids import normalize_id

STATUS_PENDING = "pending"
STATUS_CONFIRMED = "confirmed"
STATUS_CANCELLED = "cancelled"

STAGE_COLLECTING_ITEMS = "collecting_items"
STAGE_COLLECTING_INFO = "collecting_info"
STAGE_REVIEWING = "reviewing"
STAGE_COMPLETED = "completed"
STAGE_CANCELLED = "cancelled"

ACTIVE_STAGES = (STAGE_COLLECTING_ITEMS, STAGE_COLLECTING_INFO, STAGE_REVIEWING)
TERMINAL_STAGES = (STAGE_COMPLETED, STAGE_CANCELLED)

REQUIRED_INFO = (("has_name", "name"), ("has_phone", "phone"), ("has_address", "address"))
CUSTOMER_FIELDS = ("name", "phone", "address", "email", "notes")

ZERO = Decimal("0")
_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def _base36(n: int) -> str:
    out = ""
    while True:
        n, r = divmod(n, 36)
        out = _BASE36[r] + out
        if n == 0:
            return out


def generate_order_number() -> str:
    """Human-facing reference, e.g. ORD-LZ3K9QX2-4F7AB."""
    stamp = _base36(int(time.time() * 1000))
    suffix = "".join(secrets.choice(_BASE36) for _ in range(5))
    return f"ORD-{stamp}-{suffix}".upper()


def create_order(business_id: str, customer_id: str, channel: str, timestamp: str,
                 currency: str = "USD") -> Dict[str, Any]:
    return {
        "order_id": str(uuid.uuid4()),
        "order_number": generate_order_number(),
        "business_id": business_id,
        "customer_id": customer_id,
        "channel": channel,
        "currency": currency,
        "customer": {field: "" for field in CUSTOMER_FIELDS},
        "items": [],
        "subtotal": ZERO,
        "tax": ZERO,
        "shipping": ZERO,
        "discount": ZERO,
        "total": ZERO,
        "status": STATUS_PENDING,
        "payment_status": "pending",
        "created_at": timestamp,
        "updated_at": timestamp,
        "confirmed_at": None,
        "order_flow": {
            "stage": STAGE_COLLECTING_ITEMS,
            "collected_info": {"has_name": False, "has_phone": False, "has_address": False},
            "last_updated": timestamp,
        },
        "version": 1,
    }


def create_order_item(product_id: Any, variant_id: Any, product_title: str, variant_name: str,
                      price: Decimal, quantity: int,
                      attributes: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    attributes = attributes or {}
    return {
        "product_id": normalize_id(product_id),
        "variant_id": normalize_id(variant_id),
        "product_title": product_title,
        "variant_name": variant_name,
        "price": price,
        "quantity": quantity,
        "total_price": price * quantity,
        "attributes": {
            "option1": attributes.get("option1") or "",
            "option2": attributes.get("option2") or "",
            "option3": attributes.get("option3") or "",
            "sku": attributes.get("sku") or "",
            "image": attributes.get("image") or "",
        },
    }


def clamp_quantity(value: Any, max_quantity: int = 10) -> int:
    """Per-call quantity: non-numeric input becomes 1, the rest is clamped to [1, max]."""
    if isinstance(value, bool) or value is None:
        return 1
    try:
        number = float(str(value).strip())
    except ValueError:
        return 1
    if not math.isfinite(number):
        return 1
    return max(1, min(int(number), max_quantity))


def resolve_unit_price(variant: Dict[str, Any]) -> Optional[Decimal]:
    """Discounted price when it is a finite positive number, else the original price."""
    for key in ("discounted_price", "original_price"):
        price = to_decimal_or_none(variant.get(key))
        if price is not None and price > 0:
            return price
    return None


def find_line(items: List[Dict[str, Any]], product_id: Any, variant_id: Any) -> int:
    pid, vid = normalize_id(product_id), normalize_id(variant_id)
    for index, item in enumerate(items):
        if normalize_id(item.get("product_id")) == pid and normalize_id(item.get("variant_id")) == vid:
            return index
    return -1


def calculate_totals(order: Dict[str, Any]) -> Decimal:
    subtotal = sum((Decimal(str(item["total_price"])) for item in order.get("items", [])), ZERO)
    tax = Decimal(str(order.get("tax") or 0))
    shipping = Decimal(str(order.get("shipping") or 0))
    discount = Decimal(str(order.get("discount") or 0))
    order["subtotal"] = subtotal
    order["total"] = subtotal + tax + shipping - discount
    return order["total"]


def is_terminal(order: Dict[str, Any]) -> bool:
    return (order.get("status") != STATUS_PENDING
            or (order.get("order_flow") or {}).get("stage") in TERMINAL_STAGES)


def info_complete(collected_info: Dict[str, Any]) -> bool:
    return all(bool(collected_info.get(flag)) for flag, _ in REQUIRED_INFO)


def derive_stage(items: List[Dict[str, Any]], collected_info: Dict[str, Any],
                 status: str = STATUS_PENDING, current_stage: Optional[str] = None) -> str:
    """
    The only place the workflow stage is decided.

    Terminal orders keep their stage; otherwise the stage follows from the
    items and the collected customer info.
    """
    if status != STATUS_PENDING or current_stage in TERMINAL_STAGES:
        return current_stage
    if not items:
        return STAGE_COLLECTING_ITEMS
    if not info_complete(collected_info):
        return STAGE_COLLECTING_INFO
    return STAGE_REVIEWING


def apply_stage(order: Dict[str, Any]) -> str:
    flow = order.setdefault("order_flow", {})
    flow["stage"] = derive_stage(
        order.get("items", []),
        flow.get("collected_info", {}),
        order.get("status", STATUS_PENDING),
        flow.get("stage"),
    )
    return flow["stage"]


def is_order_flow_complete(order: Dict[str, Any]) -> bool:
    collected = (order.get("order_flow") or {}).get("collected_info", {})
    return info_complete(collected) and len(order.get("items", [])) > 0


def get_missing_info(order: Dict[str, Any]) -> List[str]:
    collected = (order.get("order_flow") or {}).get("collected_info", {})
    missing = [label for flag, label in REQUIRED_INFO if not collected.get(flag)]
    if not order.get("items"):
        missing.append("items")
    return missing


def line_summary(item: Dict[str, Any], quantity: Optional[int] = None) -> Dict[str, Any]:
    """What a caller needs to acknowledge an add: the line as touched by this call."""
    qty = int(item["quantity"]) if quantity is None else quantity
    price = Decimal(str(item["price"]))
    return {
        "product_id": item["product_id"],
        "variant_id": item["variant_id"],
        "product_title": item["product_title"],
        "variant_name": item["variant_name"],
        "quantity": qty,
        "price": price,
        "total_price": price * qty,
    }


def validate_order(order: Dict[str, Any]) -> Tuple[bool, List[str]]:
    errors = []
    if not order.get("business_id"):
        errors.append("Business ID is required")
    if not order.get("customer_id"):
        errors.append("Customer ID is required")
    if not order.get("channel"):
        errors.append("Channel is required")

    items = order.get("items") or []
    if not items:
        errors.append("Order must have at least one item")

    for index, item in enumerate(items, start=1):
        if not item.get("product_id"):
            errors.append(f"Item {index}: Product ID is required")
        if not item.get("variant_id"):
            errors.append(f"Item {index}: Variant ID is required")
        if not item.get("product_title"):
            errors.append(f"Item {index}: Product title is required")
        price = to_decimal_or_none(item.get("price"))
        if price is None or price <= 0:
            errors.append(f"Item {index}: Valid price is required")
        try:
            if int(item.get("quantity") or 0) <= 0:
                errors.append(f"Item {index}: Valid quantity is required")
        except (TypeError, ValueError):
            errors.append(f"Item {index}: Valid quantity is required")

    return len(errors) == 0, errors
