"""
Result envelopes returned by every engine operation.

    {"success": bool, "data": Any, "error": str | None}

`data` is made JSON-safe on the way out: DynamoDB hands numbers back as
Decimal, which neither FastAPI nor the LLM tool layer can serialize.
"""

import decimal
from enum import Enum
from typing import Any, Dict, Optional, Union


def json_safe(obj):
    if isinstance(obj, dict):
        return {k: json_safe(v) for k, v in obj.items()}
    elif isinstance(obj, (list, tuple)):
        return [json_safe(v) for v in obj]
    elif isinstance(obj, decimal.Decimal):
        if obj == obj.to_integral_value():
            return int(obj)
        return float(obj)
    else:
        return obj


def standard_response(
    success: bool,
    data: Any = None,
    error: Optional[str] = None
) -> Dict[str, Any]:
    return {
        "success": success,
        "data": json_safe(data),
        "error": error
    }


def failure(error: Union[Enum, str], data: Any = None) -> Dict[str, Any]:
    """Rejected-operation envelope; `error` may be an error-code enum member."""
    code = error.value if isinstance(error, Enum) else error
    return standard_response(False, data=data, error=code)


def is_rejection(result: Dict[str, Any], error: Union[Enum, str]) -> bool:
    code = error.value if isinstance(error, Enum) else error
    return not result.get("success") and result.get("error") == code
