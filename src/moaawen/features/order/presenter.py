"""
Order presenter layer for presentation logic and data formatting.
"""

from decimal import Decimal
from typing import Any, Dict, List, Optional

EMPTY_ORDER_TEXT = "Your cart is empty."

_CURRENCY_SYMBOLS = {"USD": "$", "EUR": "€", "GBP": "£"}


def format_money(value: Any, currency: str = "USD") -> str:
    amount = Decimal(str(value or 0)).quantize(Decimal("0.01"))
    symbol = _CURRENCY_SYMBOLS.get((currency or "").upper())
    if symbol:
        return f"{symbol}{amount}"
    return f"{amount} {currency}"


class OrderPresenter:
    """Presenter class for order data formatting and presentation."""

    def format_order_line(self, index: int, item: Dict[str, Any], currency: str = "USD") -> List[str]:
        return [
            f"{index}. **{item.get('product_title') or 'Unknown Product'}**",
            f"   {item.get('variant_name') or 'Standard'}",
            f"   Quantity: {item.get('quantity', 0)}",
            f"   Price: {format_money(item.get('price'), currency)} each",
            f"   Total: {format_money(item.get('total_price'), currency)}",
            "",
        ]

    def render_summary(self, order: Optional[Dict[str, Any]]) -> str:
        """Chat-ready order summary; the empty-cart sentence when there is nothing to show."""
        if not order or not order.get("items"):
            return EMPTY_ORDER_TEXT

        currency = order.get("currency") or "USD"
        lines = ["🛒 **Order Summary**", ""]
        for index, item in enumerate(order["items"], start=1):
            lines.extend(self.format_order_line(index, item, currency))

        lines.append(f"💰 **Subtotal: {format_money(order.get('subtotal'), currency)}**")
        if Decimal(str(order.get("tax") or 0)) > 0:
            lines.append(f"📊 Tax: {format_money(order['tax'], currency)}")
        if Decimal(str(order.get("shipping") or 0)) > 0:
            lines.append(f"🚚 Shipping: {format_money(order['shipping'], currency)}")
        if Decimal(str(order.get("discount") or 0)) > 0:
            lines.append(f"🏷️ Discount: -{format_money(order['discount'], currency)}")
        lines.append(f"💳 **Total: {format_money(order.get('total'), currency)}**")

        customer = order.get("customer") or {}
        if customer.get("name"):
            lines.extend(["", "👤 **Customer Details**", f"Name: {customer['name']}"])
            if customer.get("phone"):
                lines.append(f"Phone: {customer['phone']}")
            if customer.get("address"):
                lines.append(f"Address: {customer['address']}")
            if customer.get("email"):
                lines.append(f"Email: {customer['email']}")

        return "\n".join(lines)

