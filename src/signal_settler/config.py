"""Application configuration via pydantic-settings."""

from __future__ import annotations

from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from signal_settler.errors import ConfigError

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
    )

    # PostgreSQL DSN; empty means use the SQLite database at db_path
    database_url: str = ""

    # SQLite database path for signals and users
    db_path: Path = Path.home() / ".signal-settler" / "signals.db"

    # Finnhub quote API
    finnhub_api_key: str = ""
    finnhub_api_url: str = "https://finnhub.io/api/v1"

    # Expo push service
    push_api_url: str = "https://exp.host"
    push_access_token: str = ""
    push_enabled: bool = True

    # Seconds between settlement cycles
    settle_interval_seconds: float = 300.0

    # Max signals settled concurrently within one cycle
    max_concurrency: int = 5

    # HTTP request timeout seconds
    http_timeout: float = 15.0

    log_level: str = "INFO"

    @field_validator("settle_interval_seconds", "http_timeout")
    @classmethod
    def _positive_seconds(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"must be > 0, got {v}")
        return v

    @field_validator("max_concurrency")
    @classmethod
    def _concurrency_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"max_concurrency must be >= 1, got {v}")
        return v

    @field_validator("database_url")
    @classmethod
    def _postgres_dsn(cls, v: str) -> str:
        if v and not v.startswith(("postgres://", "postgresql://")):
            scheme = v.split("://", 1)[0] if "://" in v else v[:12]
            raise ValueError(
                f"database_url must be a postgres:// or postgresql:// DSN, got scheme {scheme!r}"
            )
        return v

    @field_validator("finnhub_api_key", "push_access_token", "database_url")
    @classmethod
    def _no_wrapped_secret(cls, v: str) -> str:
        # Secrets pasted with surrounding quotes or whitespace are rejected, not repaired
        if v != v.strip():
            raise ValueError("value has leading or trailing whitespace")
        if len(v) >= 2 and v[0] == v[-1] and v[0] in ("'", '"'):
            raise ValueError("value is wrapped in quotes")
        return v

    @field_validator("log_level")
    @classmethod
    def _known_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in _LOG_LEVELS:
            raise ValueError(f"unknown log level {v!r}")
        return level

    def validate_for_worker(self) -> None:
        """Fail fast when the settlement worker is missing credentials."""
        if not self.finnhub_api_key:
            raise ConfigError("FINNHUB_API_KEY is not set; quotes cannot be fetched")


def get_settings() -> Settings:
    """Build settings from the environment and .env on each call."""
    return Settings()
