"""Configuration module for podtrack.

This module provides a type-safe configuration system using Pydantic Settings
and Loguru-based logging helpers.

Public API:
----------
settings: Settings instance
    Pydantic settings object with nested configuration groups

get_config(key: str, default=None) -> Any
    Key-based configuration access (backs the settings store)

get_logger(name: str) -> Logger
    Get a context-aware logger for your module

setup_loguru_logger(verbose: bool = False) -> None
    Configure Loguru logger for the application

resilient_operation(operation_name: str)
    Decorator for logging and re-raising errors at service boundaries

log_startup_info() -> None
    Log configuration at startup

Usage:
------
```python
from podtrack.config import settings
ttl_days = settings.cache.metric_ttl_days

from podtrack.config import get_config
api_key = get_config("apify_api_token", "")

from podtrack.config import get_logger
logger = get_logger(__name__)
logger.info("Starting worker")
```
"""

from .logging import (
    get_logger,
    log_startup_info,
    resilient_operation,
    setup_loguru_logger,
)
from .settings import Settings, get_config, settings

__all__ = [
    "Settings",
    "get_config",
    "get_logger",
    "log_startup_info",
    "resilient_operation",
    "settings",
    "setup_loguru_logger",
]
