"""
Fleet Operations Dashboard
Configuration

Typed settings loaded from the environment (and an optional .env file) with
pydantic-settings. Each subsystem reads its own prefix: POSTGRES_, REDIS_,
METRICS_.
"""

from functools import lru_cache
from typing import List, Optional

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """Record store. DATABASE_URL wins over the POSTGRES_* parts."""

    model_config = SettingsConfigDict(env_prefix="POSTGRES_")

    host: str = "localhost"
    port: int = 5432
    db: str = Field(default="fleetops", alias="database")
    user: str = "fleetops"
    password: SecretStr = SecretStr("fleetops")
    echo: bool = Field(default=False, description="Log every SQL statement")
    url: Optional[str] = Field(
        default=None,
        alias="DATABASE_URL",
        description="Async SQLAlchemy URL, e.g. sqlite+aiosqlite:///fleet.db",
    )
    create_tables: bool = Field(
        default=True,
        alias="DATABASE_CREATE_TABLES",
        description="Create missing tables on startup",
    )

    @property
    def async_url(self) -> str:
        if self.url:
            return self.url
        password = self.password.get_secret_value()
        return f"postgresql+asyncpg://{self.user}:{password}@{self.host}:{self.port}/{self.db}"


class RedisSettings(BaseSettings):
    """Analytics cache. Disabled or unreachable Redis means no caching."""

    model_config = SettingsConfigDict(env_prefix="REDIS_")

    enabled: bool = True
    host: str = "localhost"
    port: int = 6379
    password: Optional[SecretStr] = None
    db: int = 0
    max_connections: int = 20
    socket_timeout: int = Field(default=5, description="Seconds")
    decode_responses: bool = True
    url: Optional[str] = Field(default=None, alias="REDIS_URL")

    def get_url(self) -> str:
        if self.url:
            return self.url
        auth = f":{self.password.get_secret_value()}@" if self.password else ""
        return f"redis://{auth}{self.host}:{self.port}/{self.db}"


class MetricsSettings(BaseSettings):
    """Dashboard windows, acquisition cost policy and aggregate backfill."""

    model_config = SettingsConfigDict(env_prefix="METRICS_")

    window_days: int = Field(default=30, ge=1, description="Length of the current and previous windows")
    amortization_policy: str = Field(default="straight_line", description="straight_line or age_weighted")
    amortization_months: int = Field(default=12, ge=1, description="Straight-line period")
    useful_life_months: int = Field(default=60, ge=1, description="Age-weighted useful life")
    backfill_on_startup: bool = True
    backfill_chunk_size: int = Field(default=1000, ge=1, description="Rows fetched per backfill query")

    @field_validator("amortization_policy")
    @classmethod
    def validate_policy(cls, v: str) -> str:
        allowed = ["straight_line", "age_weighted"]
        if v.lower() not in allowed:
            raise ValueError(f"Amortization policy must be one of: {allowed}")
        return v.lower()


class SecuritySettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="")

    rate_limit_requests: int = Field(default=100, alias="RATE_LIMIT_REQUESTS")
    rate_limit_window_seconds: int = Field(default=60, alias="RATE_LIMIT_WINDOW_SECONDS")
    cors_origins: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:5173"],
        alias="CORS_ORIGINS",
    )


class MonitoringSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_format: str = Field(default="json", alias="LOG_FORMAT", description="json or text")


class Settings(BaseSettings):
    """All configuration sections behind one object."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    app_env: str = Field(default="development", alias="APP_ENV")
    api_host: str = Field(default="0.0.0.0", alias="API_HOST")
    api_port: int = Field(default=8000, alias="API_PORT")
    version: str = "1.0.0"

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    metrics: MetricsSettings = Field(default_factory=MetricsSettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    monitoring: MonitoringSettings = Field(default_factory=MonitoringSettings)

    @field_validator("app_env")
    @classmethod
    def validate_env(cls, v: str) -> str:
        allowed = ["development", "staging", "production", "testing"]
        if v.lower() not in allowed:
            raise ValueError(f"Environment must be one of: {allowed}")
        return v.lower()


@lru_cache()
def get_settings() -> Settings:
    """Settings are read from the environment once per process."""
    return Settings()
