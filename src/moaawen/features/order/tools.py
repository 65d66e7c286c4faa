from typing import Any, Dict, Optional

from langchain_core.tools import tool

from moaawen.errors import OrderError
from moaawen.utils.response import is_rejection

from .actions import clean_phone
from .events import OrderEvents, UsageMeter
from .service import OrderSessionService

# Created on first use so importing the tools does not open a DynamoDB session.
order_service: Optional[OrderSessionService] = None


def get_order_service() -> OrderSessionService:
    global order_service
    if order_service is None:
        events = OrderEvents()
        events.subscribe(UsageMeter())
        order_service = OrderSessionService(events=events)
    return order_service


@tool
def view_order(customer_id: str, business_id: str, channel: str) -> str:
    """
    Show the customer's current order.

    MANDATORY: Call this when the user asks to see their order, cart or basket.
    Returns pre-formatted text; do not reformat it.
    """
    result = get_order_service().get_order_summary(customer_id, business_id, channel)
    if result["success"]:
        return result["data"]["text"]
    if is_rejection(result, OrderError.NO_ACTIVE_SESSION):
        return "Your cart is empty."
    return f"Error: {result['error']}"


@tool
def add_to_order(customer_id: str, business_id: str, channel: str,
                 product_id: str, variant_id: str, quantity: int = 1) -> Dict[str, Any]:
    """
    Add a product variant to the customer's order.

    Use this when the user says things like:
    - "I want 2 of the red shirt in medium"
    - "add the black hoodie"

    product_id is the parent product id and variant_id the id of the chosen
    variant; they are never the same value.
    """
    return get_order_service().add_item(customer_id, business_id, channel, product_id, variant_id, quantity)


@tool
def remove_from_order(customer_id: str, business_id: str, channel: str,
                      product_id: str, variant_id: str) -> Dict[str, Any]:
    """Remove a product variant from the customer's order."""
    return get_order_service().remove_item(customer_id, business_id, channel, product_id, variant_id)


@tool
def update_order_customer_info(customer_id: str, business_id: str, channel: str,
                               name: Optional[str] = None, phone: Optional[str] = None,
                               address: Optional[str] = None, email: Optional[str] = None,
                               notes: Optional[str] = None) -> Dict[str, Any]:
    """
    Save delivery details the customer gave (name, phone, address, email, notes).
    Only pass the fields the customer actually provided.
    The response says which details are still missing.
    """
    data = {"name": name, "phone": clean_phone(phone) if phone else None,
            "address": address, "email": email, "notes": notes}
    return get_order_service().update_customer_info(customer_id, business_id, channel, data)


@tool
def confirm_order(customer_id: str, business_id: str, channel: str) -> Dict[str, Any]:
    """
    Place the order. Only call this after the customer explicitly confirmed
    and name, phone and address were collected.
    """
    return get_order_service().confirm_order(customer_id, business_id, channel)


@tool
def cancel_order(customer_id: str, business_id: str, channel: str) -> Dict[str, Any]:
    """Cancel the customer's current order when they ask to cancel it."""
    return get_order_service().cancel_order(customer_id, business_id, channel)


ORDER_TOOLS = [view_order, add_to_order, remove_from_order, update_order_customer_info,
               confirm_order, cancel_order]
