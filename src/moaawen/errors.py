"""
Order engine errors.

Expected, recoverable outcomes are not exceptions: they come back as
`standard_response(False, error=OrderError.X.value)` so the caller can turn
them into a chat message. Only infrastructure failures are raised.
"""

from enum import Enum


class OrderError(Enum):
    NOT_FOUND = "not_found"
    OUT_OF_STOCK = "out_of_stock"
    INVALID_PRICE = "invalid_price"
    ITEM_NOT_FOUND = "item_not_found"
    NO_ACTIVE_SESSION = "no_active_session"
    EMPTY_ORDER = "empty_order"
    INCOMPLETE_INFO = "incomplete_info"
    ORDER_TERMINAL = "order_terminal"
    INVALID_ARGUMENT = "invalid_argument"


class StoreUnavailable(Exception):
    """Raised when DynamoDB cannot be reached or rejects a request."""
    pass


class VersionConflict(Exception):
    """Raised by the store when a conditional write loses to a concurrent writer."""

    def __init__(self, order_id: str, expected_version: int):
        super().__init__(f"order {order_id} is no longer at version {expected_version}")
        self.order_id = order_id
        self.expected_version = expected_version


class ConcurrentUpdateError(Exception):
    """Raised when a mutation keeps conflicting after all retries."""
    pass
