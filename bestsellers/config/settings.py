"""
Best-Sellers Ranking Engine
Centralized Configuration Management

Pydantic settings with environment variable support, one section per
subsystem (database, redis, cache, ranking, monitoring, security).
"""

from datetime import datetime
from functools import lru_cache
from typing import List, Optional

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """PostgreSQL Database Configuration"""

    model_config = SettingsConfigDict(env_prefix="POSTGRES_", populate_by_name=True)

    host: str = Field(default="localhost", description="Database host")
    port: int = Field(default=5432, description="Database port")
    db: str = Field(default="marketplace", alias="database", description="Database name")
    user: str = Field(default="marketplace", description="Database user")
    password: SecretStr = Field(default="secure_password", description="Database password")
    pool_timeout: int = Field(default=30, description="Pool timeout in seconds")
    echo: bool = Field(default=False, description="Echo SQL queries")
    url: Optional[str] = Field(default=None, alias="DATABASE_URL", description="Database URL (overrides host/port)")

    @property
    def async_url(self) -> str:
        """Async database URL for asyncpg"""
        if self.url:
            return self.url
        return f"postgresql+asyncpg://{self.user}:{self.password.get_secret_value()}@{self.host}:{self.port}/{self.db}"


class RedisSettings(BaseSettings):
    """Redis Configuration (used by the redis cache backend)"""

    model_config = SettingsConfigDict(env_prefix="REDIS_", populate_by_name=True)

    host: str = Field(default="localhost", description="Redis host")
    port: int = Field(default=6379, description="Redis port")
    password: Optional[SecretStr] = Field(default=None, description="Redis password")
    db: int = Field(default=0, description="Redis database number")
    max_connections: int = Field(default=50, description="Max connections")
    socket_timeout: int = Field(default=5, description="Socket timeout in seconds")
    url: Optional[str] = Field(default=None, alias="REDIS_URL", description="Redis URL (overrides host/port)")

    def get_url(self) -> str:
        """Redis connection URL - uses REDIS_URL if set, otherwise builds from host/port"""
        if self.url:
            return self.url
        if self.password:
            return f"redis://:{self.password.get_secret_value()}@{self.host}:{self.port}/{self.db}"
        return f"redis://{self.host}:{self.port}/{self.db}"


class CacheSettings(BaseSettings):
    """Result Cache Configuration"""

    model_config = SettingsConfigDict(env_prefix="CACHE_")

    backend: str = Field(default="memory", description="Cache backend: memory or redis")
    ttl_seconds: int = Field(default=600, description="Entry time-to-live in seconds")
    soft_cap: int = Field(default=80, description="Entry count past which a warning is logged")
    namespace: str = Field(default="best-sellers", description="Key namespace for the redis backend")
    sweep_interval_seconds: int = Field(default=60, description="Expired entry sweep interval, 0 disables")

    @field_validator("backend")
    @classmethod
    def validate_backend(cls, v: str) -> str:
        """Validate cache backend"""
        allowed = ["memory", "redis"]
        if v.lower() not in allowed:
            raise ValueError(f"Cache backend must be one of: {allowed}")
        return v.lower()


class RankingSettings(BaseSettings):
    """Aggregation, Ranking and Recompute Configuration"""

    model_config = SettingsConfigDict(env_prefix="RANKING_")

    # Launch date of the marketplace; the "all" window never scans past it
    all_time_epoch: datetime = Field(default=datetime(2020, 1, 1), description="Start of the 'all' window")

    # Query façade
    default_page_size: int = Field(default=10, description="Page size when none is given")
    max_page_size: int = Field(default=100, description="Upper clamp for page size")
    default_min_sales: int = Field(default=1, description="Minimum quantity sold to be ranked")
    query_timeout_seconds: Optional[float] = Field(default=30.0, description="Default query timeout")

    # Best-seller threshold policy
    best_seller_ratio: float = Field(default=0.10, description="Share of the catalog used to locate the threshold")
    best_seller_min_count: int = Field(default=5, description="Lower bound for the threshold position")
    best_seller_cap: int = Field(default=100, description="Highest rank that may be flagged")

    # Recompute
    write_concurrency: int = Field(default=10, description="Parallel per-product writes")
    recompute_enabled: bool = Field(default=True, description="Run the in-process daily recompute")
    recompute_hour_utc: int = Field(default=0, ge=0, le=23, description="Hour of day (UTC) of the daily recompute")
    recompute_timeout_seconds: Optional[float] = Field(default=300.0, description="Recompute deadline")


class SecuritySettings(BaseSettings):
    """Security Configuration"""

    model_config = SettingsConfigDict(env_prefix="")

    cors_origins: List[str] = Field(
        default=["http://localhost:3000"],
        description="Allowed CORS origins"
    )


class MonitoringSettings(BaseSettings):
    """Logging Configuration"""

    model_config = SettingsConfigDict(env_prefix="", populate_by_name=True)

    log_level: str = Field(default="INFO", alias="LOG_LEVEL", description="Logging level")
    log_format: str = Field(default="json", alias="LOG_FORMAT", description="Log format: json or text")


class Settings(BaseSettings):
    """
    Main Application Settings

    Aggregates all configuration sections and provides a single entry point
    for accessing application configuration.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Application
    app_name: str = Field(default="best-sellers-engine", alias="APP_NAME", description="Application name")
    app_env: str = Field(default="development", alias="APP_ENV", description="Environment")
    debug: bool = Field(default=False, alias="DEBUG", description="Debug mode")

    # API Server
    api_host: str = Field(default="0.0.0.0", alias="API_HOST", description="API host")
    api_port: int = Field(default=8000, alias="API_PORT", description="API port")

    # Version
    version: str = Field(default="1.0.0", description="Application version")

    # Subsystem configurations
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    ranking: RankingSettings = Field(default_factory=RankingSettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    monitoring: MonitoringSettings = Field(default_factory=MonitoringSettings)

    @field_validator("app_env")
    @classmethod
    def validate_env(cls, v: str) -> str:
        """Validate environment value"""
        allowed = ["development", "staging", "production", "testing"]
        if v.lower() not in allowed:
            raise ValueError(f"Environment must be one of: {allowed}")
        return v.lower()

    @property
    def is_production(self) -> bool:
        """Check if running in production"""
        return self.app_env == "production"


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached application settings.

    Uses LRU cache to ensure settings are only loaded once.

    Returns:
        Settings: Application settings instance
    """
    return Settings()
