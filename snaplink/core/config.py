"""Application configuration module.

This module contains settings for the URL shortener and its analytics worker,
loaded from environment variables with appropriate defaults.
"""

from __future__ import annotations

import logging
import string
from enum import Enum
from typing import Any, List, Optional, Union

from pydantic import computed_field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Set up basic logger for config module
logger = logging.getLogger(__name__)

class EnvironmentType(str, Enum):
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TESTING = "testing"


class QueueBackendType(str, Enum):
    REDIS = "redis"
    MEMORY = "memory"


class Settings(BaseSettings):
    """Application settings loaded from environment variables with defaults.

    Settings are loaded from environment variables, with fallback to
    values in .env file if present, and finally to the default values
    specified here.
    """
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Environment setting
    ENVIRONMENT: EnvironmentType = EnvironmentType.DEVELOPMENT

    # App Information
    APP_NAME: str = "snaplink"
    APP_VERSION: str = "0.7.0"
    APP_DESCRIPTION: str = "URL shortener with asynchronous click analytics"

    # API Configuration
    BASE_URL: str = "http://localhost:8000"  # Used for generating short URLs
    API_PREFIX: str = "/api/v1"
    DEBUG: bool = False
    TRUST_PROXY_HEADERS: bool = True  # Take client IP from X-Forwarded-For

    # CORS settings
    CORS_ORIGINS: Union[List[str], str] = ["*"]

    # Short code allocation
    URL_CODE_LENGTH: int = 8  # Length of generated codes
    URL_CODE_ALPHABET: str = string.ascii_letters + string.digits  # Base62
    URL_CODE_MAX_ATTEMPTS: int = 5  # Insert attempts before giving up on random codes
    URL_CUSTOM_ALIAS_MIN_LENGTH: int = 3
    URL_CUSTOM_ALIAS_MAX_LENGTH: int = 20
    URL_MAX_LENGTH: int = 2048

    # Database settings
    POSTGRES_SERVER: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = "postgres"
    POSTGRES_DB: str = "snaplink"
    DATABASE_URL: Optional[str] = None  # Full override, e.g. sqlite+aiosqlite:///./dev.db

    # Database pool settings
    POSTGRES_POOL_SIZE: int = 20
    POSTGRES_POOL_MAX_OVERFLOW: int = 10
    POSTGRES_POOL_TIMEOUT: int = 30
    POSTGRES_POOL_RECYCLE: int = 300
    DB_ECHO: bool = False
    DB_AUTO_CREATE: bool = True  # Create missing tables at startup

    # Redis settings
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_PASSWORD: str = ""
    REDIS_DB: int = 0
    REDIS_URL: Optional[str] = None  # Full override
    REDIS_MAX_CONNECTIONS: int = 20

    # Cache settings
    CACHE_ENABLED: bool = True
    CACHE_TTL_SECONDS: int = 3600
    CACHE_KEY_PREFIX: str = "url:"

    # Analytics queue settings
    QUEUE_BACKEND: QueueBackendType = QueueBackendType.REDIS
    ANALYTICS_QUEUE_NAME: str = "analytics"
    ANALYTICS_QUEUE_KEY_PREFIX: str = "snaplink:queue"
    ANALYTICS_QUEUE_MAX_ATTEMPTS: int = 3
    ANALYTICS_QUEUE_BACKOFF_SECONDS: float = 1.0  # Base delay, doubled per attempt
    ANALYTICS_QUEUE_FAILED_RETENTION: int = 1000  # Failed jobs kept for inspection
    ANALYTICS_QUEUE_STALL_TIMEOUT: float = 300.0  # Seconds before a reserved job is presumed abandoned

    # Analytics worker settings
    ANALYTICS_WORKER_CONCURRENCY: int = 4
    ANALYTICS_WORKER_POLL_TIMEOUT: float = 1.0  # Seconds a consumer blocks waiting for a job
    ANALYTICS_WORKER_PROMOTE_INTERVAL: float = 1.0  # Seconds between delayed-job sweeps
    ANALYTICS_WORKER_IN_PROCESS: bool = False  # Run consumers inside the API process

    # Privacy
    IP_HASH_SALT: Optional[str] = None
    IP_HASH_LENGTH: int = 64

    # GeoIP
    GEOIP_DATABASE_PATH: Optional[str] = None  # MaxMind GeoLite2-Country.mmdb

    # Stats
    STATS_TOP_N: int = 10

    # Logging configuration
    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = "logs"
    LOG_FILENAME: str = "app.log"
    LOG_ROTATION: str = "10 MB"
    LOG_RETENTION: str = "7 days"
    LOG_FORMAT: str = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level} | {name}:{line} | {message}"
    LOG_JSON: bool = True

    # OpenTelemetry configuration
    OTEL_ENABLED: bool = False
    OTEL_SERVICE_NAME: str = "snaplink"
    OTEL_RESOURCE_ATTRIBUTES: str = "service.namespace=snaplink"
    OTEL_EXPORTER_OTLP_ENDPOINT: str = "http://localhost:4317"
    OTEL_EXPORTER_OTLP_METRICS_ENDPOINT: str = "http://localhost:4317"
    OTEL_EXPORTER_OTLP_PROTOCOL: str = "grpc"  # grpc or http/protobuf
    OTEL_TRACES_SAMPLER: str = "parentbased_traceidratio"
    OTEL_TRACES_SAMPLER_ARG: float = 1.0
    OTEL_METRICS_EXPORT_INTERVAL_MILLIS: int = 60000

    # Validators
    @field_validator("DATABASE_URL", "REDIS_URL", "IP_HASH_SALT", "GEOIP_DATABASE_PATH", mode="before")
    def empty_string_to_none(cls, v: Any) -> Optional[str]:
        """Treat empty environment values as unset."""
        if v is None:
            return None
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("CORS_ORIGINS")
    def validate_list_or_string(cls, v: Union[List[str], str]) -> List[str]:
        """Convert comma-separated string to list if needed."""
        if isinstance(v, str):
            if not v.strip():
                return []
            if v == "*":
                return ["*"]
            return [item.strip() for item in v.split(",")]
        return v

    @field_validator("URL_CODE_LENGTH")
    def validate_code_length(cls, v: int) -> int:
        if not 3 <= v <= 20:
            raise ValueError("URL_CODE_LENGTH must be between 3 and 20")
        return v

    @field_validator("IP_HASH_LENGTH")
    def validate_hash_length(cls, v: int) -> int:
        # SHA-256 hex digest has 64 characters
        if not 1 <= v <= 64:
            raise ValueError("IP_HASH_LENGTH must be between 1 and 64")
        return v

    # Computed fields
    @computed_field
    def SQLALCHEMY_DATABASE_URI(self) -> str:
        """Construct the SQLAlchemy database URI from settings or use override."""
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}@{self.POSTGRES_SERVER}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"

    @computed_field
    def REDIS_URI(self) -> str:
        """Construct the Redis URI from settings or use override."""
        if self.REDIS_URL:
            return self.REDIS_URL
        password_part = f":{self.REDIS_PASSWORD}@" if self.REDIS_PASSWORD else ""
        return f"redis://{password_part}{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"


# Create a singleton instance of the settings
settings = Settings()
