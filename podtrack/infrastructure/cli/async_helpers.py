"""Async helpers for CLI commands to eliminate duplication."""

import asyncio
from collections.abc import Awaitable, Callable
from functools import wraps
import inspect
from typing import Any

from podtrack.infrastructure.bootstrap import open_services
from podtrack.infrastructure.cli.ui import command_error_handler


def with_services(func: Callable[..., Awaitable[Any]]) -> Callable[..., Any]:
    """Run an async command body with wired services as its first argument.

    The wrapped function is synchronous, as Typer expects, gets the standard
    CLI error handling, and exposes every parameter except ``services`` to
    Typer.
    """
    signature = inspect.signature(func)
    cli_signature = signature.replace(parameters=list(signature.parameters.values())[1:])

    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        async def run() -> Any:
            async with open_services() as services:
                return await func(services, *args, **kwargs)

        return asyncio.run(run())

    command = command_error_handler(wrapper)
    command.__signature__ = cli_signature  # type: ignore[attr-defined]
    return command
