"""Centralized configuration for taproom workers.

All fields can be set via ``TAPROOM_*`` environment variables (e.g.
``TAPROOM_ENRICHMENT_ENABLED=false``) or a ``.env`` file in the working
directory. Unknown variables are ignored so the same environment can carry
settings for other services.

Examples:
    >>> from taproom.core.settings import get_settings
    >>> settings = get_settings()
    >>> settings.enrichment_daily_limit
    500

Tags:
    settings, configuration, pydantic, environment, taproom
"""

from __future__ import annotations

from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class TaproomSettings(BaseSettings):
    """Taproom worker configuration.

    Fields
    ──────
    database_path     : SQLite file backing the beer, quota and DLQ tables
    enrichment_*      : ABV lookup pipeline limits and kill switch
    cleanup_*         : description cleanup pipeline limits and tuning
    *_max_attempts    : delivery attempts before a message is dead-lettered
    alert_*           : failure alert routing and deduplication window
    perplexity_*      : ABV lookup service
    cleanup_llm_*     : description cleanup inference service
    """

    model_config = SettingsConfigDict(
        env_prefix="TAPROOM_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Storage ──────────────────────────────────────────────────
    database_path: Path = Field(default=Path("data/taproom.db"))

    # ── Observability ────────────────────────────────────────────
    log_level: str = "INFO"
    json_logs: bool | None = None

    # ── Enrichment pipeline ──────────────────────────────────────
    enrichment_enabled: bool = Field(default=True, description="Kill switch for ABV lookups")
    enrichment_daily_limit: int = Field(default=500, ge=0)
    enrichment_monthly_limit: int = Field(default=2000, ge=0)
    enrichment_max_attempts: int = Field(default=3, ge=1)
    scheduled_batch_limit: int = Field(default=100, ge=1)

    # ── Cleanup pipeline ─────────────────────────────────────────
    cleanup_daily_limit: int = Field(default=1000, ge=0)
    cleanup_monthly_limit: int = Field(default=30000, ge=0)
    cleanup_batch_size: int = Field(default=25, ge=1)
    cleanup_max_attempts: int = Field(default=2, ge=1)
    max_cleanup_concurrency: int = Field(default=10, ge=1)

    # ── Dead letters ─────────────────────────────────────────────
    dlq_max_attempts: int = Field(default=3, ge=1)
    dlq_retention_days: int = Field(default=30, ge=1)
    quota_retention_days: int = Field(default=90, ge=1)

    # ── Retry / timing ───────────────────────────────────────────
    default_max_concurrency: int = Field(default=10, ge=1)
    default_retry_delay_seconds: int = 60
    rate_limit_retry_delay_seconds: int = 120
    quota_retry_delay_seconds: int = 300
    lookup_timeout_seconds: float = 15.0
    cleanup_timeout_seconds: float = 10.0

    # ── Circuit breaker ──────────────────────────────────────────
    breaker_slow_call_seconds: float = 5.0
    breaker_slow_call_limit: int = 3
    breaker_reset_seconds: float = 60.0

    # ── Alerts ───────────────────────────────────────────────────
    alert_cooldown_seconds: float = 300.0
    alert_from: str = "alerts@taproom.local"
    alert_to: list[str] = Field(default_factory=list)
    smtp_host: str = "localhost"
    smtp_port: int = 25
    smtp_username: str | None = None
    smtp_password: str | None = None
    smtp_use_tls: bool = False

    # ── External services ────────────────────────────────────────
    perplexity_api_key: str | None = None
    perplexity_base_url: str = "https://api.perplexity.ai"
    perplexity_model: str = "sonar"
    cleanup_llm_base_url: str = "http://localhost:8787"
    cleanup_llm_api_key: str | None = None
    cleanup_llm_model: str = "@cf/meta/llama-3.2-3b-instruct"

    @field_validator("log_level")
    @classmethod
    def _upper_log_level(cls, v: str) -> str:
        return v.upper()


_settings_cache: dict[str, TaproomSettings] = {}


def get_settings(*, _force_reload: bool = False) -> TaproomSettings:
    """Load, validate, and cache the process-wide settings."""
    if not _force_reload and "default" in _settings_cache:
        return _settings_cache["default"]
    settings = TaproomSettings()
    _settings_cache["default"] = settings
    return settings


def clear_settings_cache() -> None:
    """Clear the settings cache (primarily for testing)."""
    _settings_cache.clear()
