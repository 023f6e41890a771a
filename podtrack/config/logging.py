"""Logging configuration and utilities using Loguru.

This module provides centralized logging setup for podtrack, including
structured logging with Loguru and an error handling decorator for
service boundary calls.

Key Components:
--------------
- Structured logging with Loguru
- Error handling decorator for external API calls
- Startup information logging

Public API:
----------
setup_loguru_logger(verbose: bool = False) -> None
    Configure Loguru logger for the application

get_logger(name: str) -> Logger
    Get a context-aware logger for your module
    Usage: logger = get_logger(__name__)

log_startup_info() -> None
    Log system configuration at startup (credentials masked)

@resilient_operation(operation_name: str)
    Decorator for logging and re-raising errors at service boundaries
    Usage: @resilient_operation("validate_credentials")
"""

import functools
from pathlib import Path
import sys
from typing import Any

from loguru import logger

from .settings import settings

_SECRET_MARKERS = ("key", "token", "secret", "password")


def setup_loguru_logger(verbose: bool = False) -> None:
    """Configure Loguru logger for the application.

    Args:
        verbose: Enable verbose logging with debug level and detailed tracebacks

    Note:
        - Removes default logger and sets up console and file handlers
        - File format is serialized JSON with rotation and retention
    """
    logger.remove()

    log_file_path = Path(settings.logging.log_file)
    log_file_path.parent.mkdir(parents=True, exist_ok=True)

    # Add contextual info to all log records
    logger.configure(extra={"service": "podtrack", "module": "root"})

    console_level = "DEBUG" if verbose else settings.logging.console_level
    logger.add(
        sink=sys.stdout,
        level=console_level,
        format=(
            "<green>{time:HH:mm:ss}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{name}</cyan>:<cyan>{function}</cyan>:"
            "<cyan>{line}</cyan> - "
            "<level>{message}</level>"
        ),
        colorize=True,
        backtrace=verbose,
        diagnose=verbose,
    )

    enqueue_logs = not settings.logging.real_time_debug
    logger.add(
        sink=str(log_file_path),
        level=settings.logging.file_level,
        format="{time:YYYY-MM-DD HH:mm:ss.SSS} | {level} | {extra[service]} | {extra[module]} | {name}:{function}:{line} | {message}",
        rotation="10 MB",
        retention="1 week",
        compression="zip",
        backtrace=True,
        diagnose=False,  # tracebacks may carry provider credentials
        enqueue=enqueue_logs,
        catch=True,
        serialize=True,
    )


def get_logger(name: str) -> Any:  # Use Any for Loguru logger type
    """Get a pre-configured logger instance for the given module.

    Args:
        name: Module name (typically __name__)

    Returns:
        Loguru logger bound with module and service context

    Example:
        ```python
        logger = get_logger(__name__)
        logger.info("Job completed", job_id=12)
        ```
    """
    return logger.bind(
        module=name,
        service="podtrack",
    )


def _mask(key: str, value: Any) -> Any:
    if any(marker in key.lower() for marker in _SECRET_MARKERS) and value:
        return "***"
    if isinstance(value, Path):
        return str(value)
    return value


def log_startup_info() -> None:
    """Log application configuration on startup.

    Credentials are masked; everything else is logged at debug level.
    """
    local_logger = get_logger(__name__)
    separator = "=" * 50

    local_logger.info(separator)
    local_logger.info("podtrack social metrics enrichment")
    local_logger.info(separator)

    local_logger.debug("Configuration:")
    for section_name, section_values in settings.model_dump().items():
        if isinstance(section_values, dict):
            local_logger.debug("  {}:", section_name.upper())
            for key, value in section_values.items():
                local_logger.debug("    {}: {}", key.upper(), _mask(key, value))
        else:
            local_logger.debug("  {}: {}", section_name.upper(), _mask(section_name, section_values))


def resilient_operation(operation_name=None):
    """Decorator for service boundary operations with standardized error logging.

    Logs the exception with full traceback and re-raises it unchanged, so
    callers keep full control over recovery.

    Args:
        operation_name: Optional name for the operation (defaults to function name)

    Example:
        >>> @resilient_operation("apify_validate")
        >>> async def validate_credentials(self):
        >>>     ...
    """

    def decorator(func):
        op_name = operation_name or func.__name__

        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            try:
                return await func(*args, **kwargs)
            except Exception as e:
                logger.exception(f"Error in {op_name}: {e!s}")
                raise

        return wrapper

    return decorator
