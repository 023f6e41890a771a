"""UI helpers for CLI interaction.

This module provides reusable UI components and helpers for the CLI,
keeping the presentation logic separate from business logic.
"""

from collections.abc import Callable
from decimal import Decimal
import functools
from typing import ParamSpec, TypeVar

from rich.console import Console
from rich.table import Table
import typer

from podtrack.config import get_logger
from podtrack.domain.entities import Job, JobStatus, MetricRecord, Platform

# Initialize console and logger
console = Console()
logger = get_logger(__name__)

# Type variables for command handler decorator
P = ParamSpec("P")
R = TypeVar("R")

_STATUS_STYLES = {
    JobStatus.QUEUED: "yellow",
    JobStatus.PROCESSING: "cyan",
    JobStatus.COMPLETED: "green",
    JobStatus.FAILED: "red",
}


def command_error_handler(func: Callable[P, R]) -> Callable[P, R]:
    """Decorator to standardize error handling for CLI commands.

    Logs the exception with Loguru, prints a short message with Rich and
    converts it into ``typer.Exit(1)``.
    """

    @functools.wraps(func)
    def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
        operation = func.__name__.replace("_", " ")

        with logger.contextualize(operation=operation):
            try:
                logger.debug(f"Executing {operation}")
                return func(*args, **kwargs)

            except typer.Exit:
                raise

            except typer.Abort:
                logger.info(f"Operation {operation} aborted by user")
                raise

            except Exception as e:
                logger.exception(f"Error during {operation}")
                console.print(f"\n[bold red]✗ Error during {operation}:[/bold red] {e}")
                raise typer.Exit(code=1) from e

    return wrapper


def format_money(amount: Decimal | float | str) -> str:
    return f"${Decimal(str(amount)):,.4f}"


def format_count(value: int) -> str:
    return f"{value:,}"


def display_jobs(jobs: list[Job], title: str = "Jobs") -> None:
    """Render jobs as a table, newest first."""
    if not jobs:
        console.print("[dim]No jobs found[/dim]")
        return

    table = Table(title=title)
    table.add_column("ID", style="dim", justify="right")
    table.add_column("Podcast", justify="right")
    table.add_column("Type", style="cyan")
    table.add_column("Status")
    table.add_column("Platforms")
    table.add_column("Attempts", justify="right")
    table.add_column("Progress", justify="right")
    table.add_column("Cost", justify="right")
    table.add_column("Error", style="red", overflow="fold")

    for job in jobs:
        style = _STATUS_STYLES.get(job.status, "white")
        cost = job.actual_cost if job.status == JobStatus.COMPLETED else job.estimated_cost
        table.add_row(
            str(job.id),
            str(job.podcast_id),
            str(job.job_type),
            f"[{style}]{job.status}[/{style}]",
            ", ".join(str(p) for p in job.platforms_to_fetch),
            f"{job.attempts}/{job.max_attempts}",
            f"{job.progress_percent}%",
            format_money(cost),
            job.error_message or "",
        )

    console.print(table)


def display_metrics(records: dict[Platform, MetricRecord], title: str = "Latest metrics") -> None:
    """Render the latest record per platform."""
    if not records:
        console.print("[dim]No metrics stored yet[/dim]")
        return

    table = Table(title=title)
    table.add_column("Platform", style="cyan")
    table.add_column("Name")
    table.add_column("Followers", justify="right", style="green bold")
    table.add_column("Posts", justify="right")
    table.add_column("Engagement", justify="right")
    table.add_column("Views", justify="right")
    table.add_column("Fetched")
    table.add_column("Fresh")

    for platform, record in sorted(records.items()):
        table.add_row(
            str(platform),
            record.name,
            format_count(record.followers),
            format_count(record.posts),
            f"{record.engagement_rate:.2f}%",
            format_count(record.total_views),
            record.fetched_at.strftime("%Y-%m-%d %H:%M"),
            "✅" if record.is_fresh() else "⚠️ stale",
        )

    console.print(table)


def display_key_values(rows: list[tuple[str, str]], title: str | None = None) -> None:
    """Two-column summary table."""
    if title:
        console.print(f"\n[bold blue]{title}[/bold blue]")

    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(style="cyan")
    table.add_column(style="green bold")
    for key, value in rows:
        table.add_row(key, value)
    console.print(table)
