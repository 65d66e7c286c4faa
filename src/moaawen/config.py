"""
Order Engine Configuration

Centralized configuration for the order session engine.
All settings can be overridden via environment variables; `.env` and
`.env.local` in the project root are loaded first (`.env.local` wins).
"""
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

_project_root = Path(__file__).resolve().parent.parent.parent
load_dotenv(_project_root / ".env", override=False)
load_dotenv(_project_root / ".env.local", override=True)


class OrderConfig:
    """
    Central configuration for the order engine.

    Example:
        >>> from moaawen.config import config
        >>> config.SESSION_CACHE_TTL_SECONDS
        60

    Values are read once at import time.
    """

    # ========================================================================
    # DynamoDB
    # ========================================================================

    AWS_REGION: str = os.getenv("AWS_REGION", "eu-west-2")
    """Region for all DynamoDB tables"""

    DYNAMODB_ENDPOINT_URL: Optional[str] = os.getenv("DYNAMODB_ENDPOINT_URL")
    """Optional endpoint override (DynamoDB Local)"""

    ORDERS_TABLE: str = os.getenv("ORDERS_TABLE", "orders")
    CATALOG_TABLE: str = os.getenv("CATALOG_TABLE", "catalog")
    USAGE_TABLE: str = os.getenv("USAGE_TABLE", "usage")

    # ========================================================================
    # Session Settings
    # ========================================================================

    SESSION_CACHE_TTL_SECONDS: int = int(os.getenv("SESSION_CACHE_TTL_SECONDS", "60"))
    """Freshness window of the in-process session cache"""

    SESSION_MAX_IDLE_MINUTES: int = int(os.getenv("SESSION_MAX_IDLE_MINUTES", "1440"))
    """Pending orders idle longer than this are no longer resolved as active"""

    ORDER_MAX_QUANTITY_PER_CALL: int = int(os.getenv("ORDER_MAX_QUANTITY_PER_CALL", "10"))
    """Upper clamp for the quantity of a single add call"""

    ORDER_WRITE_MAX_RETRIES: int = int(os.getenv("ORDER_WRITE_MAX_RETRIES", "3"))
    """Attempts for a conditional write before giving up on a conflict"""

    DEFAULT_CURRENCY: str = os.getenv("DEFAULT_CURRENCY", "USD")

    # ========================================================================
    # Logging Settings
    # ========================================================================

    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    """Logging level: DEBUG, INFO, WARNING, ERROR, CRITICAL"""

    LOG_FORMAT: str = os.getenv("LOG_FORMAT", "json")
    """Log format: 'json' (structured) or 'pretty' (readable)"""

    LOG_FILE: Optional[str] = os.getenv("LOG_FILE")

    def summary(self) -> str:
        lines = [
            "=" * 60,
            "Order Engine Configuration",
            "=" * 60,
            "",
            "DynamoDB:",
            f"  Region:             {self.AWS_REGION}",
            f"  Endpoint:           {self.DYNAMODB_ENDPOINT_URL or 'AWS default'}",
            f"  Orders table:       {self.ORDERS_TABLE}",
            f"  Catalog table:      {self.CATALOG_TABLE}",
            f"  Usage table:        {self.USAGE_TABLE}",
            "",
            "Sessions:",
            f"  Cache TTL:          {self.SESSION_CACHE_TTL_SECONDS}s",
            f"  Max idle:           {self.SESSION_MAX_IDLE_MINUTES}min",
            f"  Max qty per call:   {self.ORDER_MAX_QUANTITY_PER_CALL}",
            f"  Write retries:      {self.ORDER_WRITE_MAX_RETRIES}",
            "",
            "Logging:",
            f"  Level:              {self.LOG_LEVEL}",
            f"  Format:             {self.LOG_FORMAT}",
            f"  File:               {self.LOG_FILE or 'None'}",
            "=" * 60,
        ]
        return "\n".join(lines)


config = OrderConfig()
