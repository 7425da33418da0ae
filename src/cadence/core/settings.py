"""
Centralized settings for the cadence engine.

All fields can be set through ``CADENCE_*`` environment variables (for
example ``CADENCE_DUE_BATCH_SIZE=25``) or a ``.env`` file. The scanner
batch cap and the worker-pool cap live here together because together
they bound the engine's external call rate.

Tags:
    configuration, settings, pydantic, environment
"""

from __future__ import annotations

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class CadenceSettings(BaseSettings):
    """Engine configuration.

    Fields
    ──────
    database_url                      : ``memory``, a file path or ``sqlite:///path``
    tick_interval_seconds             : Scheduler polling granularity
    due_batch_size                    : Max registrations picked per tick
    max_concurrent_syncs              : Worker-pool cap for one tick
    max_concurrent_syncs_per_tenant   : Keyed cap so one tenant cannot fill the pool
    dedup_window_seconds              : How long a (rule, event) record blocks re-dispatch
    execution_lease_seconds           : Age after which a pending/running record is reclaimable
    """

    model_config = SettingsConfigDict(
        env_prefix="CADENCE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Storage ──────────────────────────────────────────────────
    database_url: str = Field(default="memory")

    # ── Observability ────────────────────────────────────────────
    debug: bool = Field(default=False)
    log_level: str = Field(default="INFO")
    log_json: bool | None = Field(default=None, description="None auto-detects from the TTY")

    # ── Scheduler ────────────────────────────────────────────────
    tick_interval_seconds: int = Field(default=300, ge=1)
    due_batch_size: int = Field(default=50, ge=1)
    max_concurrent_syncs: int = Field(default=5, ge=1)
    max_concurrent_syncs_per_tenant: int = Field(default=2, ge=1)
    credential_refresh_skew_seconds: int = Field(default=300, ge=0)

    # ── Automations ──────────────────────────────────────────────
    dedup_window_seconds: int = Field(default=86400, ge=0)
    execution_lease_seconds: int = Field(default=300, ge=1)
    redelivery_max_attempts: int = Field(default=3, ge=1)
    redelivery_initial_delay_seconds: float = Field(default=2.0, ge=0)
    redelivery_max_delay_seconds: float = Field(default=60.0, ge=0)
    document_folder: str = Field(default="/Cadence")

    # ── Outbound HTTP ────────────────────────────────────────────
    http_timeout_seconds: float = Field(default=30.0, gt=0)
    slack_api_url: str = Field(default="https://slack.com/api")
    slack_bot_token: str | None = Field(default=None)
    document_api_url: str | None = Field(default=None)
    document_api_token: str | None = Field(default=None)
    hubspot_api_url: str = Field(default="https://api.hubapi.com")
    hubspot_client_id: str | None = Field(default=None)
    hubspot_client_secret: str | None = Field(default=None)

    # ── API ──────────────────────────────────────────────────────
    api_prefix: str = Field(default="/api/v1")

    @model_validator(mode="after")
    def _check_caps(self) -> CadenceSettings:
        if self.max_concurrent_syncs_per_tenant > self.max_concurrent_syncs:
            raise ValueError(
                "max_concurrent_syncs_per_tenant cannot exceed max_concurrent_syncs"
            )
        return self


_settings_cache: dict[str, CadenceSettings] = {}


def get_settings(*, _force_reload: bool = False) -> CadenceSettings:
    """Load, validate, and cache a :class:`CadenceSettings` instance."""
    if not _force_reload and "default" in _settings_cache:
        return _settings_cache["default"]
    settings = CadenceSettings()
    _settings_cache["default"] = settings
    return settings


def clear_settings_cache() -> None:
    """Drop the cached settings (used by tests that patch the environment)."""
    _settings_cache.clear()
