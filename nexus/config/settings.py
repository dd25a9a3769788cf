"""Nexus settings, read from the environment and an optional .env file."""

import os
from functools import lru_cache
from typing import List, Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _split_csv(raw: str) -> List[str]:
    return [item.strip() for item in (raw or "").split(",") if item.strip()]


def _get_default_db_path() -> str:
    """SQLite file under the package data directory."""
    # nexus/config/ -> nexus/
    config_dir = os.path.dirname(os.path.abspath(__file__))
    package_dir = os.path.dirname(config_dir)
    db_path = os.path.join(package_dir, "data", "nexus.db")
    return f"sqlite:///{db_path}"


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Server
    environment: str = Field(default="development")
    host: str = Field(default="127.0.0.1")
    port: int = Field(default=8000)
    debug: bool = Field(default=False)
    log_level: str = Field(default="INFO")
    log_file: Optional[str] = Field(default=None)
    cors_origins: str = Field(default="http://localhost:5173")

    # Database
    database_url: str = Field(default_factory=_get_default_db_path)
    # Creates missing tables at startup. Schema migrations are managed outside this service.
    database_auto_create: bool = Field(default=True)

    # Authentication (bearer tokens)
    auth_token_ttl_seconds: int = Field(default=604800)

    # Providers
    # "mock" swaps every provider for the deterministic echo provider (CI/E2E)
    provider_mode: str = Field(default="")
    provider_default: str = Field(default="openai_compat")
    providers_enabled: str = Field(default="openai_compat")
    provider_timeout_seconds: int = Field(default=60)
    openai_compat_base_url: str = Field(default="")
    openai_compat_api_key: str = Field(default="")
    # e.g. "Token {api_key}"; empty means "Bearer {api_key}"
    openai_compat_auth_header_format: str = Field(default="")
    default_model: str = Field(default="deepseek-chat")
    generation_temperature: float = Field(default=0.7)
    generation_max_tokens: int = Field(default=2000)

    # SSE transport self-test
    sse_selftest_enabled: bool = Field(default=True)
    sse_selftest_max_count: int = Field(default=200)
    sse_selftest_min_interval_ms: int = Field(default=10)

    # Health
    readiness_check_providers: bool = Field(default=False)

    @property
    def cors_origins_list(self) -> List[str]:
        return _split_csv(self.cors_origins)

    @property
    def providers_enabled_list(self) -> List[str]:
        return _split_csv(self.providers_enabled)

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def docs_url(self) -> str | None:
        """Return docs URL outside production, else None."""
        return None if self.is_production else "/docs"

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        upper = v.upper()
        if upper not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return upper

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        vv = (v or "").strip().lower()
        if vv not in {"development", "staging", "production", "test"}:
            raise ValueError("ENVIRONMENT must be one of: development, staging, production, test")
        return vv

    @field_validator("provider_mode")
    @classmethod
    def validate_provider_mode(cls, v: str) -> str:
        vv = (v or "").strip().lower()
        if vv not in {"", "mock"}:
            raise ValueError("PROVIDER_MODE must be empty or 'mock'")
        return vv

    @model_validator(mode="after")
    def validate_cross_field_constraints(self) -> "Settings":
        if self.sse_selftest_max_count < 1:
            raise ValueError("SSE_SELFTEST_MAX_COUNT must be at least 1")
        if self.sse_selftest_min_interval_ms < 1:
            raise ValueError("SSE_SELFTEST_MIN_INTERVAL_MS must be at least 1")
        if self.openai_compat_auth_header_format and "{api_key}" not in self.openai_compat_auth_header_format:
            raise ValueError("OPENAI_COMPAT_AUTH_HEADER_FORMAT must contain '{api_key}'")
        return self


@lru_cache
def get_settings() -> Settings:
    """Process-wide settings. Tests call ``get_settings.cache_clear()`` after changing the environment."""
    return Settings()
