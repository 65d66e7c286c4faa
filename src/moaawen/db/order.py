"""
DynamoDB Table: orders (multi-tenant SaaS)

Primary Key (composite):
    - PK = TENANT#{business_id}
    - SK = ORDER#{order_id}

Attributes:
    - entity = "ORDER"
    - order_id, order_number, business_id, customer_id, channel
    - status                  # "pending" | "confirmed" | "cancelled"
    - payment_status
    - items (list<map>)       # [{product_id, variant_id, product_title, variant_name,
                              #   price, quantity, total_price, attributes}]
    - customer (map)          # {name, phone, address, email, notes}
    - subtotal, tax, shipping, discount, total (Decimal)
    - order_flow (map)        # {stage, collected_info{has_name,has_phone,has_address}, last_updated}
    - version (int)           # bumped on every write, guards concurrent updates
    - created_at, updated_at, confirmed_at (ISO8601)

GSIs:
    - GSI1_ActiveSessions (sparse; only pending orders carry the keys):
        PK = BUSINESS#{business_id}#CUSTOMER#{customer_id}#CHANNEL#{channel}
        SK = UPDATED#{updated_at}#CREATED#{created_at}#ORDER#{order_id}
      Querying it newest-first gives updated_at DESC, created_at DESC, order_id DESC,
      a stable order for picking the single active session.
"""

import logging
from typing import Any, Dict, Iterable, Optional, Tuple

import boto3
from boto3.dynamodb.conditions import Attr, Key
from botocore.exceptions import BotoCoreError, ClientError

from moaawen.config import config
from moaawen.errors import StoreUnavailable, VersionConflict
from moaawen.utils.coreutil import convert_floats_for_dynamodb

logger = logging.getLogger(__name__)

ACTIVE_SESSION_INDEX = "GSI1_ActiveSessions"
ACTIVE_STAGES = ("collecting_items", "collecting_info", "reviewing")


def pk_order(business_id: str) -> str:
    return f"TENANT#{business_id}"


def sk_order(order_id: str) -> str:
    return f"ORDER#{order_id}"


def gsi1_pk(customer_id: str, business_id: str, channel: str) -> str:
    return f"BUSINESS#{business_id}#CUSTOMER#{customer_id}#CHANNEL#{channel}"


def gsi1_sk(updated_at: str, created_at: str, order_id: str) -> str:
    return f"UPDATED#{updated_at}#CREATED#{created_at}#ORDER#{order_id}"


def _placeholder_path(path: str, prefix: str, names: Dict[str, str]) -> str:
    parts = []
    for i, segment in enumerate(path.split(".")):
        token = f"#{prefix}_{i}"
        names[token] = segment
        parts.append(token)
    return ".".join(parts)


def build_update(
    fields: Dict[str, Any],
    expected_version: int,
    remove: Iterable[str] = (),
) -> Tuple[str, Dict[str, str], Dict[str, Any]]:
    """
    Compose an UpdateExpression that sets `fields` (dotted paths allowed),
    removes `remove` and bumps `version`.
    """
    names: Dict[str, str] = {"#version": "version"}
    values: Dict[str, Any] = {
        ":expected_version": expected_version,
        ":next_version": expected_version + 1,
    }
    set_parts = ["#version = :next_version"]
    for i, (path, value) in enumerate(fields.items()):
        token = _placeholder_path(path, f"f{i}", names)
        values[f":v{i}"] = convert_floats_for_dynamodb(value)
        set_parts.append(f"{token} = :v{i}")

    expr = "SET " + ", ".join(set_parts)
    remove_parts = [_placeholder_path(path, f"r{i}", names) for i, path in enumerate(remove)]
    if remove_parts:
        expr += " REMOVE " + ", ".join(remove_parts)
    return expr, names, values


class OrderDB:
    def __init__(self, table_name: Optional[str] = None, region_name: Optional[str] = None,
                 endpoint_url: Optional[str] = None):
        resource = boto3.resource(
            "dynamodb",
            region_name=region_name or config.AWS_REGION,
            endpoint_url=endpoint_url or config.DYNAMODB_ENDPOINT_URL,
        )
        self.table = resource.Table(table_name or config.ORDERS_TABLE)

    # -------------------- Create --------------------

    def put_new_order(self, order: Dict[str, Any]) -> Dict[str, Any]:
        """Insert a freshly built order. Fails if the key already exists."""
        item = dict(order)
        item["PK"] = pk_order(order["business_id"])
        item["SK"] = sk_order(order["order_id"])
        item["entity"] = "ORDER"
        if order.get("status") == "pending":
            item["GSI1PK"] = gsi1_pk(order["customer_id"], order["business_id"], order["channel"])
            item["GSI1SK"] = gsi1_sk(order["updated_at"], order["created_at"], order["order_id"])
        item = convert_floats_for_dynamodb(item)
        try:
            self.table.put_item(
                Item=item,
                ConditionExpression="attribute_not_exists(PK) AND attribute_not_exists(SK)",
            )
        except ClientError as e:
            raise StoreUnavailable(f"put_item failed for order {order['order_id']}: {e}") from e
        except BotoCoreError as e:
            raise StoreUnavailable(f"orders table unreachable: {e}") from e
        return item

    # -------------------- Get --------------------

    def get_order(self, business_id: str, order_id: str) -> Optional[Dict[str, Any]]:
        try:
            resp = self.table.get_item(
                Key={"PK": pk_order(business_id), "SK": sk_order(order_id)},
                ConsistentRead=True,
            )
        except (ClientError, BotoCoreError) as e:
            raise StoreUnavailable(f"get_item failed for order {order_id}: {e}") from e
        return resp.get("Item")

    def find_active_order(
        self, customer_id: str, business_id: str, channel: str, since_iso: str
    ) -> Optional[Dict[str, Any]]:
        """
        Newest pending order in an active stage touched at or after `since_iso`.

        The filter runs after DynamoDB's page limit, so pages are walked until
        a match shows up or the partition is exhausted.
        """
        kwargs: Dict[str, Any] = {
            "IndexName": ACTIVE_SESSION_INDEX,
            "KeyConditionExpression": Key("GSI1PK").eq(gsi1_pk(customer_id, business_id, channel))
            & Key("GSI1SK").gte(f"UPDATED#{since_iso}"),
            "FilterExpression": Attr("status").eq("pending") & Attr("order_flow.stage").is_in(list(ACTIVE_STAGES)),
            "ScanIndexForward": False,
        }
        while True:
            try:
                resp = self.table.query(**kwargs)
            except (ClientError, BotoCoreError) as e:
                raise StoreUnavailable(f"active session query failed: {e}") from e
            items = resp.get("Items", [])
            if items:
                return items[0]
            last_key = resp.get("LastEvaluatedKey")
            if not last_key:
                return None
            kwargs["ExclusiveStartKey"] = last_key

    # -------------------- Update --------------------

    def update_order(
        self,
        business_id: str,
        order_id: str,
        fields: Dict[str, Any],
        expected_version: int,
        remove: Iterable[str] = (),
    ) -> Dict[str, Any]:
        """
        Conditionally update an order; returns the full new document.

        Raises VersionConflict when the stored version moved on.
        """
        expr, names, values = build_update(fields, expected_version, remove)
        try:
            resp = self.table.update_item(
                Key={"PK": pk_order(business_id), "SK": sk_order(order_id)},
                UpdateExpression=expr,
                ConditionExpression="#version = :expected_version",
                ExpressionAttributeNames=names,
                ExpressionAttributeValues=values,
                ReturnValues="ALL_NEW",
            )
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") == "ConditionalCheckFailedException":
                logger.warning(
                    "Conditional update lost to a concurrent writer",
                    extra={"order_id": order_id, "expected_version": expected_version},
                )
                raise VersionConflict(order_id, expected_version) from e
            raise StoreUnavailable(f"update_item failed for order {order_id}: {e}") from e
        except BotoCoreError as e:
            raise StoreUnavailable(f"orders table unreachable: {e}") from e
        return resp.get("Attributes", {})
