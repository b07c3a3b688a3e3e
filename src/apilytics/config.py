"""Reporter configuration models and access helpers."""
from __future__ import annotations

from functools import lru_cache

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ApilyticsSettings(BaseSettings):
    """Runtime configuration sourced from environment variables.

    Instances are frozen: settings are read once at startup and shared
    read-only by every request observed afterwards.
    """

    api_key: str | None = None
    environment: str = Field(
        default="development",
        validation_alias=AliasChoices("APILYTICS_ENVIRONMENT", "ENVIRONMENT", "environment"),
    )
    timeout_seconds: float = 5.0
    log_level: str = "DEBUG"

    model_config = SettingsConfigDict(env_prefix="APILYTICS_", case_sensitive=False, frozen=True)

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    @property
    def is_production(self) -> bool:
        """Whether diagnostics for failed deliveries should be suppressed."""

        return self.environment.strip().lower() == "production"


@lru_cache
def get_settings() -> ApilyticsSettings:
    """Return a cached instance of the reporter settings."""

    return ApilyticsSettings()
