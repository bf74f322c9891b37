"""
MetroFeed Configuration System
==============================

Typed configuration built from environment variables and Pydantic models.
Environment variables override Field defaults; the ``preview`` profile
applies a named table of overrides once at load time.
"""

from pathlib import Path
from typing import Dict, Any, Optional
from enum import Enum

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings

from ..utils.exceptions import ConfigurationError, ErrorCode


class LogLevel(str, Enum):
    """Available log levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class Profile(str, Enum):
    """Named configuration profiles."""
    PRODUCTION = "production"
    PREVIEW = "preview"


class ProcessingSettings(BaseModel):
    """Refresh pipeline configuration."""
    refresh_interval_minutes: int = Field(default=60, ge=1, le=1440, description="Minimum minutes between scheduled cycles")
    lock_ttl_seconds: int = Field(default=300, ge=10, le=3600, description="Refresh lock time-to-live in seconds")
    parallel_sources: int = Field(default=4, ge=1, le=20, description="Concurrent source pipelines per cycle")
    default_batch_size: int = Field(default=20, ge=1, le=100, description="Items requested per fetch when a source sets none")
    default_daily_quota: int = Field(default=100, ge=1, le=5000, description="Articles stored per source per day when a source sets none")
    max_items_per_fetch: int = Field(default=50, ge=1, le=200, description="Hard cap on items returned from one feed")
    og_image_max_age_days: int = Field(default=7, ge=0, le=60, description="Only look up og:image for items at most this old")
    max_title_length: int = Field(default=1000, ge=50, le=5000, description="Maximum stored title length")
    max_description_length: int = Field(default=500, ge=50, le=5000, description="Maximum stored description length")
    max_slug_length: int = Field(default=100, ge=10, le=200, description="Maximum base slug length")


class HttpSettings(BaseModel):
    """Outbound HTTP configuration."""
    request_timeout: float = Field(default=30.0, ge=1.0, le=300.0, description="Feed request timeout in seconds")
    image_check_timeout: float = Field(default=3.0, ge=0.5, le=60.0, description="Image HEAD check timeout in seconds")
    og_image_timeout: float = Field(default=5.0, ge=1.0, le=60.0, description="Article page fetch timeout for og:image")
    user_agent: str = Field(default="Harare Metro News Aggregator 2.0", description="User-Agent sent with every request")
    max_connections: int = Field(default=20, ge=1, le=200, description="Connection pool size")


class ImageSettings(BaseModel):
    """Image optimization service configuration."""
    optimizer_enabled: bool = Field(default=False, description="Upload validated images to the delivery service")
    account_id: Optional[str] = Field(default=None, description="Image service account id")
    api_token: Optional[str] = Field(default=None, description="Image service API token")
    delivery_hash: Optional[str] = Field(default=None, description="Account hash used in delivery URLs")
    api_base: str = Field(default="https://api.cloudflare.com/client/v4", description="Image service API base URL")
    delivery_host: str = Field(default="imagedelivery.net", description="Host serving optimized images")
    variant: str = Field(default="public", description="Delivery variant name")
    upload_timeout: float = Field(default=15.0, ge=1.0, le=120.0, description="Upload request timeout in seconds")

    def is_configured(self) -> bool:
        """Check whether uploads can be attempted."""
        return bool(self.optimizer_enabled and self.account_id and self.api_token)


class DatabaseSettings(BaseModel):
    """Database configuration."""
    path: str = Field(default="data/metrofeed.db", description="SQLite database file path")
    pool_size: int = Field(default=5, ge=1, le=20, description="Connection pool size")


class LoggingSettings(BaseModel):
    """Logging configuration."""
    level: LogLevel = Field(default=LogLevel.INFO, description="Global log level")
    file_path: Optional[str] = Field(default="logs/metrofeed.log", description="Log file path")
    max_file_size_mb: int = Field(default=10, ge=1, le=100, description="Max log file size in MB")
    backup_count: int = Field(default=5, ge=1, le=20, description="Number of log backup files")
    structured_logging: bool = Field(default=False, description="Use structured JSON logging")
    console_logging: bool = Field(default=True, description="Enable console logging")

    @field_validator('file_path')
    @classmethod
    def validate_file_path(cls, v):
        """An empty path means console-only logging."""
        return v.strip() or None if v else None


# Overrides applied on top of the loaded values when profile == preview.
PROFILE_OVERRIDES: Dict[Profile, Dict[str, Dict[str, Any]]] = {
    Profile.PRODUCTION: {},
    Profile.PREVIEW: {
        "processing": {
            "refresh_interval_minutes": 15,
            "parallel_sources": 2,
            "default_batch_size": 5,
            "default_daily_quota": 20,
            "max_items_per_fetch": 10,
        },
    },
}


class MetroFeedSettings(BaseSettings):
    """Main application settings."""

    processing: ProcessingSettings = Field(default_factory=ProcessingSettings)
    http: HttpSettings = Field(default_factory=HttpSettings)
    images: ImageSettings = Field(default_factory=ImageSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    profile: Profile = Field(default=Profile.PRODUCTION, description="Named configuration profile")

    # Application metadata
    app_name: str = Field(default="MetroFeed", description="Application name")
    version: str = Field(default="2.0.0", description="Application version")
    debug: bool = Field(default=False, description="Enable debug mode")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "env_nested_delimiter": "__",
        "env_prefix": "METROFEED_"
    }

    def apply_profile(self) -> "MetroFeedSettings":
        """Return a copy with the active profile's overrides applied."""
        overrides = PROFILE_OVERRIDES.get(self.profile, {})
        if not overrides:
            return self

        updates = {}
        for section_name, values in overrides.items():
            section = getattr(self, section_name)
            updates[section_name] = section.model_copy(update=values)
        return self.model_copy(update=updates)

    def validate_configuration(self) -> None:
        """Validate complete configuration."""
        errors = []

        try:
            db_path = Path(self.database.path)
            db_path.parent.mkdir(parents=True, exist_ok=True)
        except Exception as e:
            errors.append(f"Invalid database path: {e}")

        if self.logging.file_path:
            try:
                log_path = Path(self.logging.file_path)
                log_path.parent.mkdir(parents=True, exist_ok=True)
            except Exception as e:
                errors.append(f"Invalid log file path: {e}")

        if self.images.optimizer_enabled and not self.images.is_configured():
            errors.append("Image optimizer enabled without account_id and api_token")

        if errors:
            raise ConfigurationError(
                f"Configuration validation failed: {'; '.join(errors)}",
                error_code=ErrorCode.CONFIG_INVALID
            )

    @property
    def refresh_interval_seconds(self) -> int:
        return self.processing.refresh_interval_minutes * 60

    def is_preview(self) -> bool:
        return self.profile == Profile.PREVIEW

    def get_effective_log_level(self) -> str:
        """Get effective log level considering debug mode."""
        if self.debug:
            return "DEBUG"
        return self.logging.level.value


def load_settings() -> MetroFeedSettings:
    """Load settings from environment variables and defaults.

    Returns:
        Loaded, profile-adjusted and validated settings

    Raises:
        ConfigurationError: If configuration is invalid
    """
    from dotenv import load_dotenv
    load_dotenv()

    try:
        settings = MetroFeedSettings().apply_profile()
        settings.validate_configuration()
        return settings

    except Exception as e:
        if isinstance(e, ConfigurationError):
            raise
        raise ConfigurationError(
            f"Failed to initialize settings: {e}",
            error_code=ErrorCode.CONFIG_INVALID
        )


# Global settings instance
_settings: Optional[MetroFeedSettings] = None


def get_settings(reload: bool = False) -> MetroFeedSettings:
    """Get global settings instance (singleton pattern).

    Args:
        reload: Force reload of settings

    Returns:
        Global settings instance
    """
    global _settings

    if _settings is None or reload:
        _settings = load_settings()

    return _settings
