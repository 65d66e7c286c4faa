"""
Order repository layer for data access operations.
"""

from typing import Any, Dict, Iterable, Optional

from moaawen.db.order import OrderDB, gsi1_sk

_KEY_ATTRS = ("PK", "SK", "GSI1PK", "GSI1SK", "entity")


def hydrate(item: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Strip table keys and turn DynamoDB Decimals back into ints where the model expects ints."""
    if item is None:
        return None
    order = {k: v for k, v in item.items() if k not in _KEY_ATTRS}
    order["version"] = int(order.get("version", 0))
    items = []
    for line in order.get("items") or []:
        line = dict(line)
        line["quantity"] = int(line.get("quantity", 0))
        items.append(line)
    order["items"] = items
    return order


class OrderRepo:
    """
    Thin data-access adapter around OrderDB.
    """

    def __init__(self, db: Optional[OrderDB] = None):
        self.db = db or OrderDB()

    def find_active(self, customer_id: str, business_id: str, channel: str,
                    since_iso: str) -> Optional[Dict[str, Any]]:
        """Newest active session for the key, re-read consistently (the index lags writes)."""
        hit = self.db.find_active_order(customer_id, business_id, channel, since_iso)
        if not hit:
            return None
        order = hydrate(self.db.get_order(business_id, hit["order_id"]))
        if not order or order.get("status") != "pending":
            return None
        return order

    def insert(self, order: Dict[str, Any]) -> str:
        self.db.put_new_order(order)
        return order["order_id"]

    def find_by_id(self, business_id: str, order_id: str) -> Optional[Dict[str, Any]]:
        return hydrate(self.db.get_order(business_id, order_id))

    def update_fields(self, order: Dict[str, Any], fields: Dict[str, Any],
                      remove: Iterable[str] = ()) -> Dict[str, Any]:
        """
        Conditionally write `fields` against `order["version"]`.

        Keeps the active-session sort key in step with `updated_at` while the
        order stays in the index. Raises VersionConflict on a lost race.
        """
        fields = dict(fields)
        remove = tuple(remove)
        if "updated_at" in fields and "GSI1PK" not in remove and order.get("status") == "pending":
            fields["GSI1SK"] = gsi1_sk(fields["updated_at"], order["created_at"], order["order_id"])
        new_item = self.db.update_order(
            order["business_id"], order["order_id"], fields, int(order["version"]), remove
        )
        return hydrate(new_item)
