"""Application configuration via Pydantic Settings.

All configuration is loaded from environment variables following 12-factor principles.
"""

import re

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]{0,62}$")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    database_url: str = Field(
        description="SQLAlchemy async connection string (asyncpg or aiosqlite)",
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level",
    )
    log_dir: str | None = Field(
        default=None,
        description="Directory for log files (enables file logging with 24h rotation when set)",
    )

    # Geocoding jobs: lifecycle
    geocoding_run_timeout: float = Field(
        default=900.0,
        description="Seconds a submitted job may stay unfinished before it is failed",
        gt=0,
    )
    geocoding_poll_interval: float = Field(
        default=5.0,
        description="Seconds between backend status polls",
        gt=0,
    )
    geocoding_cancel_backoff: float = Field(
        default=0.0,
        description="Seconds to wait between backend cancellation attempts",
        ge=0,
        le=10,
    )

    # Geocoding jobs: billing
    geocoding_block_size: int = Field(
        default=1000,
        description="Number of credits covered by one block price",
        gt=0,
    )

    # Geocoding jobs: tenant table layout
    geocoding_row_id_column: str = Field(
        default="cartodb_id",
        description="Primary key column of geocodable tables",
    )
    geocoding_status_column: str = Field(
        default="cartodb_georef_status",
        description="Nullable boolean column marking rows already geocoded",
    )
    geocoding_geometry_column: str = Field(
        default="the_geom",
        description="Column receiving the geocoded geometry as WKT",
    )

    @field_validator("geocoding_row_id_column", "geocoding_status_column", "geocoding_geometry_column")
    @classmethod
    def validate_column_name(cls, v: str) -> str:
        if not _IDENTIFIER_RE.match(v):
            msg = f"Invalid column name {v!r}: must match {_IDENTIFIER_RE.pattern}"
            raise ValueError(msg)
        return v

    # External (paid) backend
    external_geocoder_url: str | None = Field(
        default=None,
        description="Base URL of the batch geocoding service used for high-resolution jobs",
    )
    external_geocoder_api_key: str | None = Field(
        default=None,
        description="API key for the batch geocoding service",
    )
    external_geocoder_timeout: float = Field(
        default=30.0,
        description="External geocoder request timeout in seconds",
        gt=0,
    )

    # Internal (free) backend
    internal_gazetteer_path: str | None = Field(
        default=None,
        description="GeoJSON FeatureCollection with named boundaries for internal geocoding",
    )


def get_settings() -> Settings:
    """Create and return application settings."""
    return Settings()  # type: ignore[call-arg]
