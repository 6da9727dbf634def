"""Settings - runtime configuration read from the environment.

Construct with Settings.from_env() at the composition root, or pass values
explicitly in tests. Integrations left unconfigured are not startup errors;
the calls that need them fail with a user-facing message.
"""

import json
import logging
import os
from dataclasses import dataclass, field
from typing import Any

from ..core.tenancy import DEFAULT_PLATFORM_DOMAINS


logger = logging.getLogger(__name__)


def _split_list(raw: str | None, default: tuple[str, ...]) -> tuple[str, ...]:
    if not raw:
        return default
    return tuple(item.strip() for item in raw.split(",") if item.strip())


def parse_service_account_key(raw: str) -> dict[str, Any]:
    """Parse a service-account JSON string from the environment.

    Hosting dashboards often store the key double-encoded or with escaped
    newlines in the private key; both are repaired.

    Raises:
        ValueError: If the value is not valid JSON
    """
    try:
        info = json.loads(raw)
        if isinstance(info, str):
            info = json.loads(info)
    except json.JSONDecodeError as e:
        raise ValueError("FIREBASE_SERVICE_ACCOUNT_KEY is not valid JSON") from e

    if not isinstance(info, dict):
        raise ValueError("FIREBASE_SERVICE_ACCOUNT_KEY must be a JSON object")
    if "private_key" in info:
        info["private_key"] = info["private_key"].replace("\\n", "\n")
    return info


@dataclass(frozen=True)
class Settings:
    """Configuration for the NutriSmart service.

    Attributes:
        environment: 'development' or 'production'
        project_id: GCP project ID (None for the ambient project)
        database: Firestore database name (None for default database)
        webhook_url: Nutrition/AI workflow endpoint
        payment_api_key: PIX payment provider API key
        payment_base_url: PIX payment provider base URL
        service_account_key: Raw service-account JSON for privileged operations
        platform_domains: Hostname markers that never carry a tenant subdomain
        cors_origins: Origins allowed by the HTTP surface
    """

    environment: str = "production"
    project_id: str | None = None
    database: str | None = None
    webhook_url: str | None = None
    payment_api_key: str | None = None
    payment_base_url: str = "https://api.abacatepay.com/v1"
    service_account_key: str | None = None
    platform_domains: tuple[str, ...] = DEFAULT_PLATFORM_DOMAINS
    cors_origins: tuple[str, ...] = field(default=("http://localhost:3000",))

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    def service_account_info(self) -> dict[str, Any] | None:
        """Parsed service-account credentials, or None if not configured."""
        if not self.service_account_key:
            return None
        return parse_service_account_key(self.service_account_key)

    @classmethod
    def from_env(cls) -> "Settings":
        settings = cls(
            environment=os.environ.get("NUTRISMART_ENV", "production"),
            project_id=os.environ.get("FIRESTORE_PROJECT"),
            database=os.environ.get("FIRESTORE_DATABASE"),
            webhook_url=os.environ.get("N8N_WEBHOOK_URL"),
            payment_api_key=os.environ.get("ABACATE_PAY_API_KEY"),
            payment_base_url=os.environ.get(
                "ABACATE_PAY_BASE_URL", "https://api.abacatepay.com/v1"
            ),
            service_account_key=os.environ.get("FIREBASE_SERVICE_ACCOUNT_KEY"),
            platform_domains=_split_list(
                os.environ.get("PLATFORM_DOMAINS"), DEFAULT_PLATFORM_DOMAINS
            ),
            cors_origins=_split_list(
                os.environ.get("CORS_ORIGINS"), ("http://localhost:3000",)
            ),
        )
        if not settings.project_id:
            logger.warning("FIRESTORE_PROJECT not set; ID tokens will be rejected")
        if not settings.webhook_url:
            logger.warning("N8N_WEBHOOK_URL not set; nutrition workflow disabled")
        if not settings.payment_api_key:
            logger.warning("ABACATE_PAY_API_KEY not set; payments disabled")
        return settings
