"""
DynamoDB Table: catalog (multi-tenant, read side only)

The catalog is owned by the Shopify / native sync jobs; the order engine only
reads it to validate and price cart lines.

Primary Key (composite):
    - PK (string) → TENANT#{business_id}
    - SK (string) → CATALOG#{product_id} | VARIANT#{variant_id}

CATALOG items:
    - catalog_id, title, default_image / images (list<map{src}>), status

VARIANT items:
    - variant_id, catalog_id (parent product)
    - variant_title / variant_name
    - option1, option2, option3, options (map), sku, image
    - discounted_price, original_price (Decimal, optional)
    - price_num, compare_at_num (Decimal, Shopify-synced variants)
    - in_stock (bool), available_qty (number)
"""

from typing import Any, Dict, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from moaawen.config import config
from moaawen.errors import StoreUnavailable


def pk_tenant(business_id: str) -> str:
    return f"TENANT#{business_id}"


def sk_catalog(catalog_id: str) -> str:
    return f"CATALOG#{catalog_id}"


def sk_variant(variant_id: str) -> str:
    return f"VARIANT#{variant_id}"


class CatalogDB:
    def __init__(self, table_name: Optional[str] = None, region_name: Optional[str] = None,
                 endpoint_url: Optional[str] = None):
        resource = boto3.resource(
            "dynamodb",
            region_name=region_name or config.AWS_REGION,
            endpoint_url=endpoint_url or config.DYNAMODB_ENDPOINT_URL,
        )
        self.table = resource.Table(table_name or config.CATALOG_TABLE)

    def _get(self, key: Dict[str, str]) -> Optional[Dict[str, Any]]:
        try:
            resp = self.table.get_item(Key=key)
        except (ClientError, BotoCoreError) as e:
            raise StoreUnavailable(f"catalog lookup failed for {key['SK']}: {e}") from e
        return resp.get("Item")

    def get_catalog_item(self, business_id: str, catalog_id: str) -> Optional[Dict[str, Any]]:
        return self._get({"PK": pk_tenant(business_id), "SK": sk_catalog(catalog_id)})

    def get_variant(self, business_id: str, variant_id: str) -> Optional[Dict[str, Any]]:
        return self._get({"PK": pk_tenant(business_id), "SK": sk_variant(variant_id)})
