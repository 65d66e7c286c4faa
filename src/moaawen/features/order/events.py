"""
Post-commit notifications.

The service emits an event only after the store accepted a write. Listeners
run synchronously in subscription order; a failing listener is logged and
the remaining listeners still run, because the order change is already
committed and must not be reported as failed.
"""

import logging
from typing import Any, Callable, Dict, List, Optional

from moaawen.db.usage import UsageDB

logger = logging.getLogger(__name__)

SESSION_CREATED = "session_created"
ITEM_ADDED = "item_added"
ITEM_REMOVED = "item_removed"
CUSTOMER_UPDATED = "customer_updated"
ORDER_CONFIRMED = "order_confirmed"
ORDER_CANCELLED = "order_cancelled"

Listener = Callable[[str, Dict[str, Any], Dict[str, Any]], None]


class OrderEvents:
    def __init__(self):
        self._listeners: List[Listener] = []

    def subscribe(self, listener: Listener) -> Listener:
        self._listeners.append(listener)
        return listener

    def unsubscribe(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def emit(self, event: str, order: Dict[str, Any], **details) -> None:
        for listener in list(self._listeners):
            try:
                listener(event, order, details)
            except Exception:
                logger.exception(
                    "Order event listener failed",
                    extra={"event": event, "order_id": order.get("order_id"),
                           "listener": getattr(listener, "__name__", type(listener).__name__)},
                )


class UsageMeter:
    """
    Counts order activity per business and month.

    Every committed mutation counts as one `order_actions`; confirmations
    also bump `orders_confirmed`.
    """

    def __init__(self, db: Optional[UsageDB] = None):
        self.db = db or UsageDB()

    def __call__(self, event: str, order: Dict[str, Any], details: Dict[str, Any]) -> None:
        business_id = order.get("business_id")
        if not business_id:
            return
        self.db.increment(business_id, "order_actions")
        if event == ORDER_CONFIRMED:
            self.db.increment(business_id, "orders_confirmed")
