"""
Identifier normalization.

Product, variant, customer and business ids reach the engine as database
object ids, numeric Shopify ids (sometimes as floats after a JSON round trip),
DynamoDB Decimals, or ad-hoc strings with stray quotes. Everything is turned
into one canonical string before it is compared or used in a key.
"""

import math
from decimal import Decimal, InvalidOperation
from typing import Any


def normalize_id(value: Any) -> str:
    """
    Return the canonical string form of an identifier.

    >>> normalize_id(8057183568061)
    '8057183568061'
    >>> normalize_id(8057183568061.0)
    '8057183568061'
    >>> normalize_id(' "45292206129341" ')
    '45292206129341'
    >>> normalize_id(None)
    ''
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if math.isfinite(value) and value.is_integer():
            return str(int(value))
        return repr(value)
    if isinstance(value, Decimal):
        try:
            if value == value.to_integral_value():
                return str(int(value))
        except (InvalidOperation, ValueError, OverflowError):
            pass
        return str(value)

    text = str(value).strip()
    if len(text) >= 2 and text[0] == '"' and text[-1] == '"':
        text = text[1:-1].strip()
    return text


def normalize_channel(channel: Any) -> str:
    return normalize_id(channel).lower()


def session_key(customer_id: Any, business_id: Any, channel: Any) -> str:
    """Composite cache / lock key for one conversation session."""
    return f"{normalize_id(customer_id)}|{normalize_id(business_id)}|{normalize_channel(channel)}"
