from __future__ import annotations

from functools import lru_cache
from typing import List

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Central application configuration."""

    app_name: str = Field(default="District 25 Lead Intake")
    debug: bool = Field(default=False)
    log_level: str = Field(default="INFO")

    # Remote lead / submitted-contacts store
    api_base_url: str = Field(
        default="http://localhost:3001",
        validation_alias=AliasChoices("API_URL", "API_BASE_URL"),
    )
    api_timeout_seconds: float = Field(
        default=30.0,
        validation_alias=AliasChoices("API_TIMEOUT", "API_TIMEOUT_SECONDS"),
    )

    # Geolocation
    ip_api_url: str = Field(default="https://ipapi.co/json/")
    ip_api_fallback_url: str = Field(default="http://ip-api.com/json/")
    geolocation_timeout_seconds: float = Field(
        default=10.0,
        validation_alias=AliasChoices("GEOLOCATION_TIMEOUT", "GEOLOCATION_TIMEOUT_SECONDS"),
    )
    tracking_cache_minutes: float = Field(default=60.0)

    # Submission rules
    cooldown_minutes: float = Field(default=5.0)
    default_country_code: str = Field(default="91")
    default_timezone: str = Field(default="Asia/Kolkata")

    # Client-side caches
    storage_prefix: str = Field(default="d25_")
    durable_store_path: str = Field(default=".lead_intake/durable_store.json")
    max_sessions: int = Field(default=1000)
    max_client_locks: int = Field(default=1000)

    allowed_origins: List[str] = Field(
        default_factory=list,
        validation_alias="ALLOWED_ORIGINS",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
