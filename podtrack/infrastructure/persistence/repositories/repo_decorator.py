"""Repository decorator for standardizing DB operations.

Wraps async repository methods with timing, trace logging and error-class
specific log levels. Errors are always re-raised unchanged.
"""

import asyncio
from collections.abc import Callable, Coroutine
import functools
import time
from typing import Any, ParamSpec, TypeVar

from sqlalchemy.exc import (
    DatabaseError,
    IntegrityError,
    NoResultFound,
    OperationalError,
    SQLAlchemyError,
)

from podtrack.config import get_logger

P = ParamSpec("P")
T = TypeVar("T")

logger = get_logger(__name__)

# Checked in order; first match decides the level
_ERROR_LEVELS: tuple[tuple[type[Exception], str, str], ...] = (
    (NoResultFound, "DEBUG", "DB record not found"),
    (IntegrityError, "WARNING", "DB integrity error"),
    (OperationalError, "ERROR", "DB operational error"),
    (DatabaseError, "ERROR", "DB error"),
    (SQLAlchemyError, "ERROR", "SQLAlchemy error"),
)


def db_operation(operation_name: str | None = None):
    """Decorate repository methods with consistent logging and error handling.

    Example:
        @db_operation("claim_next_job")
        async def claim_next(self) -> Job | None:
            ...
    """

    def decorator(
        func: Callable[P, Coroutine[Any, Any, T]],
    ) -> Callable[P, Coroutine[Any, Any, T]]:
        func_name = operation_name or func.__name__

        if not asyncio.iscoroutinefunction(func):
            raise TypeError(
                f"db_operation can only be used with async functions, but {func_name} is not async",
            )

        @functools.wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            start_time = time.perf_counter()
            repo_name = args[0].__class__.__name__ if args else "Repository"
            context = _build_log_context(kwargs)

            try:
                result = await func(*args, **kwargs)
            except SQLAlchemyError as e:
                exec_time = (time.perf_counter() - start_time) * 1000
                level, label = next(
                    (level, label)
                    for error_type, level, label in _ERROR_LEVELS
                    if isinstance(e, error_type)
                )
                logger.log(
                    level,
                    f"{label}: {repo_name}.{func_name}",
                    operation=func_name,
                    error=str(e),
                    exec_time_ms=exec_time,
                    **context,
                )
                raise

            logger.trace(
                f"DB operation completed: {repo_name}.{func_name}",
                operation=func_name,
                exec_time_ms=(time.perf_counter() - start_time) * 1000,
                **context,
            )
            return result

        return wrapper

    return decorator


def _build_log_context(kwargs: dict[str, Any]) -> dict[str, Any]:
    """Loggable scalar keyword arguments."""
    return {
        key: value
        for key, value in kwargs.items()
        if not key.startswith("_") and isinstance(value, int | str | float | bool)
    }
