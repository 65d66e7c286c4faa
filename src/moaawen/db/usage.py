"""
DynamoDB Table: usage (per-business monthly counters)

Primary Key (composite):
    - PK = TENANT#{business_id}
    - SK = USAGE#{YYYY-MM}

Attributes:
    - counters are plain numeric attributes (e.g. orders_confirmed, order_actions)
      incremented atomically with ADD
    - updated_at (ISO8601)
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from moaawen.config import config
from moaawen.errors import StoreUnavailable
from moaawen.utils.coreutil import now_iso


def usage_period(now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    return now.strftime("%Y-%m")


class UsageDB:
    def __init__(self, table_name: Optional[str] = None, region_name: Optional[str] = None,
                 endpoint_url: Optional[str] = None):
        resource = boto3.resource(
            "dynamodb",
            region_name=region_name or config.AWS_REGION,
            endpoint_url=endpoint_url or config.DYNAMODB_ENDPOINT_URL,
        )
        self.table = resource.Table(table_name or config.USAGE_TABLE)

    def increment(self, business_id: str, counter: str, amount: int = 1,
                  period: Optional[str] = None) -> Dict[str, Any]:
        try:
            resp = self.table.update_item(
                Key={"PK": f"TENANT#{business_id}", "SK": f"USAGE#{period or usage_period()}"},
                UpdateExpression="ADD #c :amt SET updated_at = :u",
                ExpressionAttributeNames={"#c": counter},
                ExpressionAttributeValues={":amt": amount, ":u": now_iso()},
                ReturnValues="UPDATED_NEW",
            )
        except (ClientError, BotoCoreError) as e:
            raise StoreUnavailable(f"usage increment failed for {business_id}: {e}") from e
        return resp.get("Attributes", {})
