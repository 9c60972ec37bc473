"""Application-wide configuration loading and validation."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Centralized environment configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    environment: Literal["local", "dev", "prod"] = Field(default="local")
    log_level: str = Field(default="INFO")

    # Database
    database_url: str = Field(
        default="sqlite+aiosqlite:///./data/ahoy.db",
        description="SQLAlchemy connection string.",
    )

    # Migrations / schema
    auto_create_db_schema: bool = Field(
        default=True,
        description="If true, creates tables automatically on startup (useful for local/dev).",
    )

    # Telephony transport
    telephony_provider: Literal["loopback"] = Field(default="loopback")
    loopback_auto_progress: bool = Field(
        default=True,
        description="If true, loopback calls ring, connect and disconnect on their own.",
    )

    # Call-management surface limits
    max_call_groups: int = Field(default=2, ge=1)
    max_calls_per_call_group: int = Field(default=1, ge=1)

    # Push registration keep-alive
    registration_ttl_days: int = Field(
        default=365,
        ge=1,
        description="Validity window of a push registration; re-registration is due after half of it.",
    )

    # Presentation bridge
    call_events_webhook_url: str | None = Field(
        default=None,
        description="Optional endpoint that receives every call snapshot as JSON.",
    )
    call_events_webhook_api_key: str | None = Field(default=None)

    data_dir: Path = Field(default=Path("./data"))

    @field_validator("data_dir")
    @classmethod
    def ensure_data_dir(cls, value: Path) -> Path:
        value.mkdir(parents=True, exist_ok=True)
        return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance."""

    return Settings()
