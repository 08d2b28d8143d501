"""Honeybridge configuration."""

from __future__ import annotations

from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Environment-driven settings for the bridge.

    Field names map to the environment variables of the same name in upper
    case (e.g. ``hp_account`` <- ``HP_ACCOUNT``).
    """

    # Shopify
    shopify_webhook_secret: str = ""
    shopify_store_domain: str = ""
    shopify_admin_token: str = ""
    shopify_api_version: str = "2024-10"

    # Honey's Place
    hp_account: str = ""
    hp_token: str = ""
    hp_default_ship: str | None = None
    hp_endpoint: str = "https://www.honeysplace.com/ws/"
    # PEM bundle trusted for the partner endpoint only
    hp_ca_bundle: str | None = None
    # Skips certificate checks on the partner client only; other traffic is unaffected
    hp_tls_insecure: bool = False

    # Reconciliation
    poll_interval_minutes: int = 15
    initial_poll_delay_seconds: float = 30.0

    http_timeout_seconds: float = 30.0
    port: int = 3000
    log_level: str = "INFO"

    model_config = {"env_file": ".env", "extra": "ignore"}

    @field_validator("poll_interval_minutes")
    @classmethod
    def _at_least_one_minute(cls, value: int) -> int:
        return max(1, value)

    @field_validator("hp_default_ship", "hp_ca_bundle")
    @classmethod
    def _blank_is_unset(cls, value: str | None) -> str | None:
        if value is not None and not value.strip():
            return None
        return value


def get_settings() -> Settings:
    """Load settings from the environment (and ``.env`` if present)."""
    return Settings()
