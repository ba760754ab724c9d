"""
Configuration management for the ordering service.
Loads settings from environment variables and AWS Secrets Manager.
"""
import os
import json
import logging
from decimal import Decimal
from typing import List, Optional

import boto3

logger = logging.getLogger(__name__)


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Config:
    """Application configuration"""

    # Application settings
    APP_PORT: int = int(os.getenv("APP_PORT", "8000"))
    PROJECT_NAME: str = os.getenv("PROJECT_NAME", "pizzeria-ordering")
    REGION: str = os.getenv("REGION", "sa-east-1")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Redis settings
    REDIS_HOST: str = os.getenv("REDIS_HOST", "localhost")
    REDIS_PORT: int = int(os.getenv("REDIS_PORT", "6379"))
    REDIS_AUTH_TOKEN: Optional[str] = os.getenv("REDIS_AUTH_TOKEN")
    REDIS_DB: int = int(os.getenv("REDIS_DB", "0"))
    REDIS_SSL: bool = _env_bool("REDIS_SSL", "false")

    # Cart settings
    CART_TTL_SECONDS: int = int(os.getenv("CART_TTL_SECONDS", str(7 * 24 * 60 * 60)))  # 7 days default
    GUEST_CART_TTL_SECONDS: int = int(os.getenv("GUEST_CART_TTL_SECONDS", str(1 * 24 * 60 * 60)))  # 1 day for guests
    MAX_LINES_PER_CART: int = int(os.getenv("MAX_LINES_PER_CART", "50"))
    MAX_QUANTITY_PER_LINE: int = int(os.getenv("MAX_QUANTITY_PER_LINE", "99"))

    # Catalog / combination settings
    LARGE_SIZE_KEYWORDS: List[str] = [
        k.strip().lower()
        for k in os.getenv("LARGE_SIZE_KEYWORDS", "large,grande").split(",")
        if k.strip()
    ]
    HALF_PIZZA_SIZE_LABEL: str = os.getenv("HALF_PIZZA_SIZE_LABEL", "Large")
    CATALOG_SEED_PATH: Optional[str] = os.getenv("CATALOG_SEED_PATH")

    # Checkout settings
    FLAT_FREIGHT_AMOUNT: Decimal = Decimal(os.getenv("FLAT_FREIGHT_AMOUNT", "0.00"))

    # Redis connection settings
    REDIS_SOCKET_CONNECT_TIMEOUT: int = 5
    REDIS_SOCKET_TIMEOUT: int = 5
    REDIS_RETRY_ON_TIMEOUT: bool = True
    REDIS_MAX_CONNECTIONS: int = 50

    @classmethod
    def redis_url(cls) -> str:
        """Build the connection URL (rediss:// when encryption in transit is on)"""
        scheme = "rediss" if cls.REDIS_SSL else "redis"
        auth = f":{cls.REDIS_AUTH_TOKEN}@" if cls.REDIS_AUTH_TOKEN else ""
        return f"{scheme}://{auth}{cls.REDIS_HOST}:{cls.REDIS_PORT}/{cls.REDIS_DB}"

    @classmethod
    def load_redis_secrets(cls) -> None:
        """Load Redis authentication token from AWS Secrets Manager"""
        if cls.REDIS_AUTH_TOKEN:
            return  # Already loaded from environment

        secret_name = os.getenv("REDIS_SECRET_NAME")
        if not secret_name:
            return  # No secret name provided, use no auth

        try:
            client = boto3.client("secretsmanager", region_name=cls.REGION)
            response = client.get_secret_value(SecretId=secret_name)
            secret_data = json.loads(response["SecretString"])

            cls.REDIS_AUTH_TOKEN = secret_data.get("auth_token")
            if "endpoint" in secret_data:
                cls.REDIS_HOST = secret_data["endpoint"]
        except Exception as e:
            logger.warning(f"Could not load Redis secrets from Secrets Manager: {e}")
            # Continue without auth token (may fail on connection)

# Load secrets at module import
Config.load_redis_secrets()
