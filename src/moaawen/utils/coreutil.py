"""
Shared helpers for timestamps and DynamoDB-safe values.
"""

import math
from datetime import datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

ISO_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


def now_iso(now: Optional[datetime] = None) -> str:
    """
    UTC timestamp with a fixed width, so timestamps sort lexically.

    `datetime.isoformat()` drops the microseconds when they are zero, which
    breaks string ordering in index sort keys.
    """
    now = now or datetime.now(timezone.utc)
    return now.astimezone(timezone.utc).strftime(ISO_FORMAT)


def minutes_ago_iso(minutes: int, now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    return now_iso(now - timedelta(minutes=minutes))


def to_decimal_or_none(value: Any) -> Optional[Decimal]:
    """Parse a price-like value; returns None for blanks, garbage and non-finite numbers."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str) and not value.strip():
        return None
    if isinstance(value, float) and not math.isfinite(value):
        return None
    try:
        d = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    if not d.is_finite():
        return None
    return d


def convert_floats_for_dynamodb(obj):
    """
    Recursively convert float values to Decimal for DynamoDB.

    >>> convert_floats_for_dynamodb({"price": 9.99, "qty": 2})
    {'price': Decimal('9.99'), 'qty': 2}
    """
    if isinstance(obj, dict):
        return {k: convert_floats_for_dynamodb(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [convert_floats_for_dynamodb(item) for item in obj]
    elif isinstance(obj, float):
        return Decimal(str(obj))
    else:
        return obj
