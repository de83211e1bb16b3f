"""Application configuration."""

import logging
import re
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_CLOCK_TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


class Settings(BaseSettings):
    """Application settings from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # API Settings
    API_V1_PREFIX: str = "/api/v1"
    PROJECT_NAME: str = "RailWatch"
    DEBUG: bool = False
    ALLOWED_ORIGINS: str = "http://localhost:5173"

    @field_validator("ALLOWED_ORIGINS", mode="after")
    @classmethod
    def parse_cors(cls, v: str | list[str]) -> list[str]:
        """Parse comma-separated CORS origins or pass through list."""
        return v if isinstance(v, list) else [origin.strip() for origin in v.split(",")]

    # Database Settings
    DATABASE_URL: str = Field(validation_alias="SECRET_DATABASE_URL")
    DATABASE_ECHO: bool = False
    DATABASE_POOL_SIZE: int = 5  # Connection pool size for worker engine
    DATABASE_MAX_OVERFLOW: int = 10  # Max overflow connections for worker engine

    # Redis Settings
    REDIS_URL: str = Field(validation_alias="SECRET_REDIS_URL")

    # Auth Settings (bearer tokens minted by the hub's identity service)
    JWT_SECRET_KEY: str | None = Field(default=None, validation_alias="SECRET_JWT_KEY")
    JWT_ALGORITHM: str = "HS256"
    JWT_AUDIENCE: str | None = None

    # NS API Settings
    NS_API_KEY: str | None = Field(default=None, validation_alias="SECRET_NS_API_KEY")
    NS_API_BASE_URL: str = "https://gateway.apiportal.ns.nl"
    NS_API_TIMEOUT: float = 10.0  # Seconds; a timeout counts as a provider failure
    STATION_SYNC_COUNTRIES: str = "nl,d,b"
    DISRUPTIONS_CACHE_TTL: int = 60  # Seconds the global active-disruption list is reused
    MAX_ROUTE_OPTIONS: int = 5

    # Scheduling Settings
    TRANSIT_TIMEZONE: str = "Europe/Amsterdam"
    MORNING_SWEEP_TIMES: str = "05:00,06:00"
    STATION_SYNC_INTERVAL: float = 604800.0  # 7 days
    FOLLOW_UP_REGISTRY_TTL: int = 86400  # Pending follow-up ids are kept for one day

    @field_validator("TRANSIT_TIMEZONE", mode="after")
    @classmethod
    def validate_transit_timezone(cls, v: str) -> str:
        """Ensure TRANSIT_TIMEZONE names a known IANA timezone."""
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            msg = f"Invalid TRANSIT_TIMEZONE '{v}'. Must be an IANA timezone name such as 'Europe/Amsterdam'"
            raise ValueError(msg) from e
        return v

    @field_validator("MORNING_SWEEP_TIMES", mode="after")
    @classmethod
    def parse_morning_sweep_times(cls, v: str | list[str]) -> list[str]:
        """Parse comma-separated HH:MM sweep times, rejecting malformed entries."""
        times = v if isinstance(v, list) else [t.strip() for t in v.split(",") if t.strip()]
        if not times:
            msg = "MORNING_SWEEP_TIMES must contain at least one HH:MM time"
            raise ValueError(msg)
        for clock in times:
            if not _CLOCK_TIME_PATTERN.match(clock):
                msg = f"Invalid MORNING_SWEEP_TIMES entry '{clock}'. Expected 24h HH:MM"
                raise ValueError(msg)
        return times

    # Celery Settings
    CELERY_BROKER_URL: str = Field(validation_alias="SECRET_CELERY_BROKER_URL")
    CELERY_RESULT_BACKEND: str = Field(validation_alias="SECRET_CELERY_RESULT_BACKEND")

    # Alembic Settings
    ALEMBIC_INI_PATH: str = "alembic.ini"

    # OpenTelemetry Settings (for observability)
    OTEL_ENABLED: bool = True
    OTEL_SERVICE_NAME: str = "railwatch-backend"
    OTEL_ENVIRONMENT: str = "production"

    # OTLP Exporter Endpoints (separate for traces and logs)
    OTEL_EXPORTER_OTLP_TRACES_ENDPOINT: str | None = None
    OTEL_EXPORTER_OTLP_LOGS_ENDPOINT: str | None = None
    OTEL_EXPORTER_OTLP_HEADERS: str | None = Field(default=None, validation_alias="SECRET_OTEL_HEADERS")
    OTEL_EXCLUDED_URLS: str = "/health,/ready"

    # Log level for OTLP log export (NOTSET exports all levels)
    OTEL_LOG_LEVEL: str = "NOTSET"

    @field_validator("OTEL_EXCLUDED_URLS", mode="after")
    @classmethod
    def parse_otel_excluded_urls(cls, v: str | list[str]) -> list[str]:
        """Parse comma-separated excluded URLs or pass through list, filtering out empty strings."""
        if isinstance(v, list):
            return [url for url in v if url]
        return [url.strip() for url in v.split(",") if url.strip()]

    @field_validator("OTEL_LOG_LEVEL", "LOG_LEVEL", mode="after")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate and normalize a stdlib log level name."""
        normalized = v.upper()
        valid_levels = logging.getLevelNamesMapping()
        if normalized not in valid_levels:
            msg = f"Invalid log level '{v}'. Must be one of: {', '.join(sorted(valid_levels.keys()))}"
            raise ValueError(msg)
        return normalized

    # Logging Settings
    LOG_LEVEL: str = "INFO"

    @property
    def transit_tz(self) -> ZoneInfo:
        """Civil timezone in which departure times and weekdays are interpreted."""
        return ZoneInfo(self.TRANSIT_TIMEZONE)


settings = Settings()


def require_config(*field_names: str) -> None:
    """
    Validate that required configuration fields are set.

    This utility should be called by modules on import (or before first use)
    to verify their required configuration is present.

    Args:
        *field_names: Names of required configuration fields

    Raises:
        ValueError: If any required field is missing or None

    Example:
        from railwatch.core.config import require_config, settings
        require_config("NS_API_KEY")
    """
    missing = []
    for field in field_names:
        value = getattr(settings, field, None)
        if value is None or (isinstance(value, str) and not value.strip()):
            missing.append(field)

    if missing:
        msg = f"Required configuration missing: {', '.join(missing)}"
        raise ValueError(msg)
