"""
Settings Module for Status Engine

Configuration management using Pydantic Settings.
Supports environment variables, .env files, and runtime configuration.
Includes validation, type checking, and sensible defaults.
"""

from __future__ import annotations

from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Application environment enumeration."""
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TESTING = "testing"


class LogLevel(str, Enum):
    """Logging level enumeration."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class DatabaseType(str, Enum):
    """Supported database types."""
    POSTGRESQL = "postgresql"
    SQLITE = "sqlite"


class BaseSettingsConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        validate_default=True
    )


class DatabaseSettings(BaseSettingsConfig):
    """
    Database Configuration Settings

    Supports PostgreSQL (production) and SQLite (development, tests).
    """

    model_config = SettingsConfigDict(
        env_prefix="DB_",
        env_file=".env",
        extra="ignore"
    )

    type: DatabaseType = Field(
        default=DatabaseType.SQLITE,
        description="Database type: postgresql or sqlite"
    )

    # PostgreSQL settings
    host: str = Field(default="localhost", description="Database host address")
    port: int = Field(default=5432, ge=1, le=65535, description="Database port number")
    name: str = Field(
        default="status_engine",
        min_length=1,
        max_length=64,
        description="Database name"
    )
    user: str = Field(default="postgres", min_length=1, max_length=64, description="Database username")
    password: SecretStr = Field(default=SecretStr(""), description="Database password")

    # SQLite settings
    sqlite_path: Path = Field(
        default=Path("data/status_engine.db"),
        description="Path to SQLite database file"
    )

    # Connection pool settings
    pool_size: int = Field(default=10, ge=1, le=100, description="Connection pool size")
    max_overflow: int = Field(default=20, ge=0, le=100, description="Maximum overflow connections")
    pool_timeout: int = Field(default=30, ge=1, le=300, description="Pool connection timeout in seconds")
    pool_recycle: int = Field(default=1800, ge=60, le=7200, description="Connection recycle time in seconds")

    echo: bool = Field(default=False, description="Echo SQL queries (debug mode)")

    @property
    def url(self) -> str:
        """Generate database URL based on configuration."""
        if self.type == DatabaseType.SQLITE:
            self.sqlite_path.parent.mkdir(parents=True, exist_ok=True)
            return f"sqlite+aiosqlite:///{self.sqlite_path}"

        elif self.type == DatabaseType.POSTGRESQL:
            password = self.password.get_secret_value()
            return (
                f"postgresql+asyncpg://{self.user}:{password}"
                f"@{self.host}:{self.port}/{self.name}"
            )

        raise ValueError(f"Unsupported database type: {self.type}")

    @field_validator("sqlite_path")
    @classmethod
    def validate_sqlite_path(cls, v: Path) -> Path:
        """Validate and normalize SQLite path."""
        if not v.suffix:
            v = v.with_suffix(".db")
        return v


class HttpProbeSettings(BaseSettingsConfig):
    """
    Outbound Probe Settings

    Sizing of the shared connection pool used by every health check,
    plus the request defaults sent to monitored endpoints.
    """

    model_config = SettingsConfigDict(
        env_prefix="PROBE_",
        env_file=".env",
        extra="ignore"
    )

    connect_timeout: float = Field(
        default=10.0,
        gt=0,
        le=120,
        description="Connection timeout in seconds"
    )
    read_timeout: float = Field(
        default=30.0,
        gt=0,
        le=300,
        description="Read timeout in seconds"
    )
    max_connections: int = Field(
        default=200,
        ge=1,
        le=10000,
        description="Maximum open connections across all destinations"
    )
    max_connections_per_host: int = Field(
        default=20,
        ge=1,
        le=1000,
        description="Maximum concurrent requests to a single destination"
    )
    keepalive_expiry: float = Field(
        default=30.0,
        ge=1,
        le=3600,
        description="Idle connections are evicted after this many seconds"
    )
    follow_redirects: bool = Field(
        default=True,
        description="Follow HTTP redirects before evaluating the response"
    )
    verify_ssl: bool = Field(
        default=True,
        description="Verify TLS certificates"
    )
    user_agent: str = Field(
        default="StatusEngine-Monitor/1.0",
        description="User agent string for probe requests"
    )
    log_body_limit: int = Field(
        default=1000,
        ge=0,
        le=100000,
        description="Characters of response body included in failure logs"
    )

    @model_validator(mode="after")
    def validate_pool_limits(self) -> "HttpProbeSettings":
        """A single destination cannot exceed the pool."""
        if self.max_connections_per_host > self.max_connections:
            raise ValueError("max_connections_per_host cannot exceed max_connections")
        return self


class SchedulerSettings(BaseSettingsConfig):
    """
    Scheduler Configuration Settings

    Cadence of the periodic passes and the bound on concurrent checks.
    """

    model_config = SettingsConfigDict(
        env_prefix="SCHEDULER_",
        env_file=".env",
        extra="ignore"
    )

    check_interval: int = Field(
        default=60,
        ge=5,
        le=86400,
        description="Seconds between monitor check passes"
    )
    initial_delay: int = Field(
        default=5,
        ge=0,
        le=3600,
        description="Delay before the first check pass"
    )
    uptime_stats_interval: int = Field(
        default=900,  # 15 minutes
        ge=60,
        le=86400,
        description="Seconds between uptime statistics recalculations"
    )
    cleanup_interval: int = Field(
        default=86400,  # 24 hours
        ge=3600,
        le=604800,
        description="Seconds between retention cleanup runs"
    )
    health_check_interval: int = Field(
        default=30,
        ge=5,
        le=3600,
        description="Seconds between heartbeat log entries"
    )
    retention_days: int = Field(
        default=90,
        ge=1,
        le=3650,
        description="Days of check results and statistics to keep"
    )

    retry_failing_enabled: bool = Field(
        default=False,
        description="Periodically re-check monitors on a failure streak"
    )
    retry_failing_interval: int = Field(
        default=30,
        ge=5,
        le=86400,
        description="Seconds between failure-streak re-check passes"
    )
    retry_failure_threshold: int = Field(
        default=3,
        ge=1,
        le=1000,
        description="Consecutive failures that qualify a monitor for re-checks"
    )

    max_concurrent_checks: int = Field(
        default=50,
        ge=1,
        le=1000,
        description="Maximum checks in flight at once"
    )
    tick_interval: float = Field(
        default=1.0,
        gt=0,
        le=60,
        description="How often the scheduler loop wakes up"
    )


class EmailSettings(BaseSettingsConfig):
    """
    Outbound Mail Settings

    Email alert contacts are only served when ``enabled`` is set and a
    sender address is configured.
    """

    model_config = SettingsConfigDict(
        env_prefix="EMAIL_",
        env_file=".env",
        extra="ignore"
    )

    enabled: bool = Field(default=False, description="Enable email alerts")
    from_address: str = Field(
        default="noreply@status-engine.local",
        description="Sender address for alert emails"
    )
    subject_prefix: str = Field(
        default="[Status Engine]",
        description="Prefix prepended to every alert subject"
    )
    smtp_host: str = Field(default="localhost", description="SMTP server host")
    smtp_port: int = Field(default=587, ge=1, le=65535, description="SMTP server port")
    smtp_username: Optional[str] = Field(default=None, description="SMTP username")
    smtp_password: SecretStr = Field(default=SecretStr(""), description="SMTP password")
    smtp_starttls: bool = Field(default=True, description="Upgrade the SMTP session with STARTTLS")
    smtp_timeout: float = Field(default=30.0, gt=0, le=300, description="SMTP timeout in seconds")

    @property
    def is_configured(self) -> bool:
        """True when email contacts can be served."""
        return self.enabled and bool(self.from_address)


class AlertSettings(BaseSettingsConfig):
    """HTTP alert delivery settings."""

    model_config = SettingsConfigDict(
        env_prefix="ALERT_",
        env_file=".env",
        extra="ignore"
    )

    webhook_timeout: float = Field(
        default=15.0,
        gt=0,
        le=300,
        description="Timeout for HTTP contact requests in seconds"
    )
    response_body_limit: int = Field(
        default=1000,
        ge=0,
        le=100000,
        description="Characters of the probe body exposed as {{RESPONSE_BODY}}"
    )


class LoggingSettings(BaseSettingsConfig):
    """
    Logging Configuration Settings

    Console and rotating file sinks, plus a separate error log.
    """

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        env_file=".env",
        extra="ignore"
    )

    level: LogLevel = Field(default=LogLevel.INFO, description="Minimum logging level")

    console_enabled: bool = Field(default=True, description="Enable console logging")
    console_colored: bool = Field(default=True, description="Enable colored console output")

    file_enabled: bool = Field(default=False, description="Enable file logging")
    file_path: Path = Field(default=Path("logs/status_engine.log"), description="Log file path")
    file_rotation: str = Field(default="10 MB", description="Log rotation size (e.g., '10 MB', '1 day')")
    file_retention: str = Field(default="30 days", description="Log retention period")
    file_compression: str = Field(default="gz", description="Compression format for rotated logs")

    error_file_enabled: bool = Field(default=False, description="Enable separate error log file")
    error_file_path: Path = Field(default=Path("logs/errors.log"), description="Error log file path")

    json_enabled: bool = Field(default=False, description="Serialize file log records as JSON")


class Settings(BaseSettingsConfig):
    """
    Main Settings Class

    Aggregates all settings sections and provides the main
    configuration interface for the application.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    environment: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Application environment"
    )
    debug: bool = Field(default=False, description="Enable debug mode")

    app_name: str = Field(default="Status Engine", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")

    # Nested settings
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    probe: HttpProbeSettings = Field(default_factory=HttpProbeSettings)
    scheduler: SchedulerSettings = Field(default_factory=SchedulerSettings)
    email: EmailSettings = Field(default_factory=EmailSettings)
    alerts: AlertSettings = Field(default_factory=AlertSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == Environment.PRODUCTION

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment == Environment.DEVELOPMENT

    @model_validator(mode="after")
    def configure_for_environment(self) -> "Settings":
        """Apply environment-specific configuration."""
        if self.is_production:
            self.debug = False
            self.database.echo = False

        elif self.is_development and self.debug:
            if self.logging.level == LogLevel.INFO:
                self.logging.level = LogLevel.DEBUG

        return self

    def to_dict(self, *, exclude_secrets: bool = True) -> Dict[str, Any]:
        """Convert settings to dictionary."""
        data = self.model_dump(mode="json")

        if exclude_secrets:
            def remove_secrets(obj: Any) -> Any:
                if isinstance(obj, dict):
                    return {
                        k: remove_secrets(v)
                        for k, v in obj.items()
                        if "password" not in k.lower()
                        and "secret" not in k.lower()
                    }
                elif isinstance(obj, list):
                    return [remove_secrets(item) for item in obj]
                return obj

            data = remove_secrets(data)

        return data


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    This function is cached to ensure a single settings instance
    is used throughout the application lifecycle.

    Returns:
        Settings: Application settings instance
    """
    return Settings()
