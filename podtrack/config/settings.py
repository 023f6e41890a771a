"""Configuration management using Pydantic Settings.

This module provides type-safe configuration management with automatic
environment variable loading and validation using Pydantic Settings v2.

The configuration is organized into logical groups:
- DatabaseConfig: Database connection settings
- LoggingConfig: Logging levels, files, and debugging options
- CredentialsConfig: Provider API keys (ScrapingDog, Apify, YouTube)
- ProvidersConfig: Timeouts, polling and platform priority lists
- QueueConfig: Job processing, pacing and the static cost table
- CacheConfig / BudgetConfig / RefreshConfig: TTL, spend caps, refresh priorities
"""

from decimal import Decimal
from pathlib import Path
from typing import Any

from pydantic import BaseModel, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseConfig(BaseModel):
    """Database connection configuration."""

    url: str = "sqlite+aiosqlite:///data/db/podtrack.db"
    echo: bool = False
    pool_timeout: int = 60
    busy_timeout_ms: int = 30000


class LoggingConfig(BaseModel):
    """Logging configuration for console and file output."""

    console_level: str = "INFO"
    file_level: str = "DEBUG"
    log_file: Path = Path("data/logs/podtrack.log")
    real_time_debug: bool = True


class CredentialsConfig(BaseModel):
    """API credentials for enrichment providers and free data sources."""

    scrapingdog_api_key: str = ""
    apify_api_token: str = ""
    youtube_api_key: str = ""


def _default_priorities() -> dict[str, list[str]]:
    return {
        "linkedin": ["scrapingdog", "apify"],
        "twitter": ["scrapingdog", "apify"],
        "instagram": ["scrapingdog", "apify"],
        "facebook": ["scrapingdog", "apify"],
        "youtube": ["scrapingdog"],
        "tiktok": ["apify"],
    }


class ProvidersConfig(BaseModel):
    """Upstream provider timeouts, polling limits and fallback order."""

    request_timeout: float = 60.0
    validate_timeout: float = 15.0
    scrape_timeout: float = 15.0

    # Apify actor runs are asynchronous: 90 polls x 2s is roughly 3 minutes
    apify_poll_interval: float = 2.0
    apify_max_poll_attempts: int = 90
    poll_retry_count: int = 2
    poll_retry_max_delay: float = 10.0

    batch_request_delay: float = 0.2
    platform_priorities: dict[str, list[str]] = _default_priorities()


class QueueConfig(BaseModel):
    """Job queue processing configuration."""

    max_attempts: int = 3
    default_priority: int = 50
    platform_delay: float = 1.0
    tick_interval: float = 60.0
    workers: int = 1
    # Retries when SQLite reports the database as locked during a claim
    claim_retry_count: int = 3
    # Seconds a job may stay in processing before a claim returns it to the queue
    claim_timeout: int = 1800

    # Flat per-platform estimate used at enqueue time
    free_platforms: list[str] = ["youtube", "spotify", "apple_podcasts"]
    paid_platform_estimate: Decimal = Decimal("0.05")


class CacheConfig(BaseModel):
    """Metric record caching."""

    metric_ttl_days: int = 7


class BudgetConfig(BaseModel):
    """Spend caps in USD. Zero or less means unlimited."""

    weekly_budget: Decimal = Decimal("50")
    monthly_budget: Decimal = Decimal("200")


class RefreshConfig(BaseModel):
    """Background and manual refresh scheduling."""

    background_priority: int = 30
    auto_fetch_priority: int = 60
    manual_priority: int = 80
    max_podcasts: int = 50


class Settings(BaseSettings):
    """Main application settings with environment variable support.

    Environment variables can be set using flat naming or nested naming:
    - Flat: DATABASE_URL, CONSOLE_LOG_LEVEL, SCRAPINGDOG_API_KEY
    - Nested: DATABASE__URL, LOGGING__CONSOLE_LEVEL, CREDENTIALS__APIFY_API_TOKEN

    The .env file is automatically loaded for development convenience.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    database: DatabaseConfig = DatabaseConfig()
    logging: LoggingConfig = LoggingConfig()
    credentials: CredentialsConfig = CredentialsConfig()
    providers: ProvidersConfig = ProvidersConfig()
    queue: QueueConfig = QueueConfig()
    cache: CacheConfig = CacheConfig()
    budget: BudgetConfig = BudgetConfig()
    refresh: RefreshConfig = RefreshConfig()

    data_dir: Path = Path("data")

    @model_validator(mode="before")
    @classmethod
    def transform_flat_env_vars(cls, data: Any) -> Any:
        """Transform flat environment variables to nested structure.

        Maps flat env vars (SCRAPINGDOG_API_KEY) onto the nested structure
        expected by the models (credentials.scrapingdog_api_key).
        """
        if not isinstance(data, dict):
            return data

        flat_mappings = {
            "database": {
                "database_url": "url",
                "database_echo": "echo",
            },
            "logging": {
                "console_log_level": "console_level",
                "file_log_level": "file_level",
                "log_file": "log_file",
                "log_real_time_debug": "real_time_debug",
            },
            "credentials": {
                "scrapingdog_api_key": "scrapingdog_api_key",
                "apify_api_token": "apify_api_token",
                "youtube_api_key": "youtube_api_key",
            },
            "budget": {
                "weekly_budget": "weekly_budget",
                "monthly_budget": "monthly_budget",
            },
        }

        transformed: dict[str, dict[str, Any]] = {}
        for group, mapping in flat_mappings.items():
            for env_key, field_key in mapping.items():
                if env_key in data:
                    transformed.setdefault(group, {})[field_key] = data.pop(env_key)

        for group, values in transformed.items():
            existing = data.get(group)
            if isinstance(existing, dict):
                existing.update(values)
            else:
                data[group] = values

        return data


# Singleton instance for application use
settings = Settings()


# =============================================================================
# KEY-BASED ACCESS
# =============================================================================

# Setting keys readable through the settings store collaborator
_SETTING_KEY_MAP = {
    "database_url": lambda: settings.database.url,
    "log_file": lambda: settings.logging.log_file,
    "data_dir": lambda: settings.data_dir,
    # Credentials are read lazily by providers on every call
    "scrapingdog_api_key": lambda: settings.credentials.scrapingdog_api_key,
    "apify_api_token": lambda: settings.credentials.apify_api_token,
    "youtube_api_key": lambda: settings.credentials.youtube_api_key,
    "weekly_budget": lambda: settings.budget.weekly_budget,
    "monthly_budget": lambda: settings.budget.monthly_budget,
    "metric_ttl_days": lambda: settings.cache.metric_ttl_days,
}


def get_config(key: str, default=None):
    """Get configuration value by key with optional default.

    Args:
        key: Configuration key to retrieve (case-insensitive)
        default: Default value if key not found

    Returns:
        Configuration value or default

    Example:
        >>> api_key = get_config("scrapingdog_api_key", "")
    """
    getter = _SETTING_KEY_MAP.get(key.lower())
    if getter is None:
        return default
    return getter()
