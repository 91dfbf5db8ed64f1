"""Configuration settings for shiptrack."""

import json
from enum import Enum
from pathlib import Path
from typing import Annotated

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class CatalogSource(str, Enum):
    """Where candidate carriers come from."""

    STATIC = "static"
    REMOTE = "remote"


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    All settings have sensible defaults and can be overridden via
    environment variables or a .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        enable_decoding=False,
        extra="ignore",
    )

    # Provider connection
    tracking_api_url: str = Field(
        default="https://www.visiwise.co/api-graphql/",
        description="GraphQL endpoint of the tracking provider",
    )
    tracking_api_token: SecretStr | None = Field(
        default=None,
        description="API token sent as 'Authorization: Token <token>'",
    )
    http_timeout_seconds: Annotated[float, Field(gt=0)] = Field(
        default=20.0,
        description="Timeout for a single provider HTTP call",
    )

    # Polling policy
    poll_interval_seconds: Annotated[float, Field(gt=0)] = Field(
        default=5.0,
        description="Fixed delay between two polls of the same tracking job",
    )
    max_poll_attempts: Annotated[int, Field(gt=0)] = Field(
        default=15,
        description="Polls per candidate before the job is considered timed out",
    )
    separate_transport_errors: bool = Field(
        default=False,
        description=(
            "If True, transport faults during polling do not consume the "
            "candidate's polling budget"
        ),
    )
    max_transport_errors: Annotated[int, Field(gt=0)] = Field(
        default=3,
        description=(
            "Consecutive transport faults tolerated per job when "
            "separate_transport_errors is enabled"
        ),
    )

    # Resolution policy
    trial_concurrency: Annotated[int, Field(ge=1)] = Field(
        default=1,
        description="Candidates trialled at once in auto-detect mode (1 = sequential)",
    )
    resolution_timeout_seconds: float | None = Field(
        default=None,
        gt=0,
        description="Optional wall-clock budget for a whole resolution request",
    )
    catalog_source: CatalogSource = Field(
        default=CatalogSource.STATIC,
        description="Candidate catalog: 'static' built-in table or 'remote' provider list",
    )
    preferred_carriers: list[str] = Field(
        default_factory=list,
        description=(
            "Carrier keynames tried first in auto-detect mode, in order. "
            "Examples: MSC, MAERSK, ONE"
        ),
    )

    # Storage
    shipments_db_path: Path = Field(
        default=Path("./data/shipments.db"),
        description="Path to the SQLite store of resolved shipments",
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level: DEBUG, INFO, WARNING, ERROR",
    )
    poll_log_level: str | None = Field(
        default=None,
        description="Level for per-poll supervisor logs; unset keeps them at INFO or above",
    )

    @field_validator("catalog_source", mode="before")
    @classmethod
    def validate_catalog_source(cls, v: str | CatalogSource) -> CatalogSource:
        """Convert string catalog source to CatalogSource enum."""
        if isinstance(v, CatalogSource):
            return v
        if isinstance(v, str):
            value = v.lower().strip()
            try:
                return CatalogSource(value)
            except ValueError:
                raise ValueError(
                    f"Invalid catalog_source: {v}. Must be 'static' or 'remote'"
                ) from None
        raise ValueError(f"Invalid catalog_source type: {type(v)}")

    @field_validator("preferred_carriers", mode="before")
    @classmethod
    def parse_preferred_carriers(cls, v: object) -> list[str]:
        """Parse PREFERRED_CARRIERS from env-friendly formats.

        Supports:
        - JSON list: ["MSC", "MAERSK"]
        - Comma-separated: MSC, MAERSK
        - Newline-separated entries
        """
        if v is None:
            return []

        if isinstance(v, list):
            return [str(item).strip().upper() for item in v if str(item).strip()]

        if not isinstance(v, str):
            return [str(v).strip().upper()] if str(v).strip() else []

        raw = v.strip()
        if not raw:
            return []

        if raw.startswith("["):
            try:
                parsed = json.loads(raw)
            except json.JSONDecodeError:
                parsed = None
            else:
                if isinstance(parsed, list):
                    return [
                        str(item).strip().upper()
                        for item in parsed
                        if str(item).strip()
                    ]

        parts: list[str] = []
        for chunk in raw.replace("\n", ",").split(","):
            item = chunk.strip()
            if item:
                parts.append(item.upper())
        return parts

    @field_validator("resolution_timeout_seconds", mode="before")
    @classmethod
    def parse_resolution_timeout(cls, v: object) -> object:
        """Treat an empty env value as 'no aggregate budget'."""
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("log_level", "poll_log_level", mode="before")
    @classmethod
    def validate_log_level(cls, v: str | None) -> str | None:
        """Validate log level is a known level."""
        if v is None or v == "":
            return None
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return v.upper()


# Singleton instance for easy import
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get the application settings singleton."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Reset the settings singleton (useful for testing)."""
    global _settings
    _settings = None
