"""Aqueduct configuration."""

from __future__ import annotations

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings

from aqueduct.errors import ConfigurationError

_DEFAULT_NOTION_RPS = 3
_DEFAULT_EXTERNAL_RPM = 60


class Settings(BaseSettings):
    """Environment-driven settings for the webhook receiver and worker."""

    # Notion
    notion_api_key: str = ""
    notion_version: str = "2025-09-03"
    notion_api_base_url: str = "https://api.notion.com/v1"
    notion_events_queue_db_id: str = ""
    notion_webhook_verification_token: str = Field(
        default="",
        validation_alias=AliasChoices(
            "NOTION_WEBHOOK_VERIFICATION_TOKEN", "NOTION_WEBHOOK_SECRET"
        ),
    )

    # Admin token retrieval
    aqueduct_admin_secret: str = ""
    aqueduct_admin_rate_limit: str = "10/minute"

    # Counter / token store (optional; absence disables throttling)
    redis_url: str = ""
    redis_token: str = ""

    # Outbound quotas
    aqueduct_notion_rps: int = _DEFAULT_NOTION_RPS
    aqueduct_external_rpm: int = _DEFAULT_EXTERNAL_RPM

    # Upstream HTTP
    aqueduct_upstream_max_retries: int = 2
    aqueduct_upstream_timeout: float = 30.0

    # Worker
    aqueduct_worker_batch_size: int = 25
    aqueduct_worker_interval: float = 60.0
    aqueduct_stale_after_minutes: int = 30

    # Logging
    aqueduct_log_level: str = "INFO"
    aqueduct_log_json: bool = True

    model_config = {"env_file": ".env", "extra": "ignore", "populate_by_name": True}

    @field_validator("aqueduct_notion_rps", "aqueduct_external_rpm", mode="before")
    @classmethod
    def _positive_quota(cls, value, info):
        fallback = (
            _DEFAULT_NOTION_RPS
            if info.field_name == "aqueduct_notion_rps"
            else _DEFAULT_EXTERNAL_RPM
        )
        try:
            n = int(float(value))
        except (TypeError, ValueError):
            return fallback
        return n if n > 0 else fallback


def require(value: str, env_name: str) -> str:
    """Return ``value`` or raise ConfigurationError naming the missing variable."""
    if not value:
        raise ConfigurationError(f"Missing {env_name}")
    return value


settings = Settings()
