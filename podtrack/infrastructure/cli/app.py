"""podtrack CLI - Main application entry point and app structure."""

from importlib.metadata import PackageNotFoundError, version
from typing import Annotated

from rich.console import Console
import typer

from podtrack.config import get_logger, log_startup_info, settings, setup_loguru_logger
from podtrack.infrastructure.cli import (
    costs_commands,
    jobs_commands,
    podcast_commands,
    providers_commands,
    refresh_commands,
)
from podtrack.infrastructure.cli.jobs_commands import register_worker_command

try:
    VERSION = version("podtrack")
except PackageNotFoundError:
    VERSION = "0.0.0"

console = Console(width=100)
logger = get_logger(__name__)

app = typer.Typer(
    help=f"🎙️ podtrack v{VERSION} - Social metrics enrichment for podcasts",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
    pretty_exceptions_enable=True,
    pretty_exceptions_short=True,
    pretty_exceptions_show_locals=False,
)

app.add_typer(
    podcast_commands.app,
    name="podcast",
    help="Seed podcasts and their social profiles",
    rich_help_panel="🎙️ Podcasts",
)
app.add_typer(
    jobs_commands.app,
    name="jobs",
    help="Enqueue and process enrichment jobs",
    rich_help_panel="⚙️ Queue",
)
register_worker_command(app)
app.add_typer(
    refresh_commands.app,
    name="refresh",
    help="Keep stored metrics fresh",
    rich_help_panel="⚙️ Queue",
)
app.add_typer(
    providers_commands.app,
    name="providers",
    help="Inspect enrichment providers",
    rich_help_panel="💰 Providers & Costs",
)
app.add_typer(
    costs_commands.app,
    name="costs",
    help="Track enrichment spend",
    rich_help_panel="💰 Providers & Costs",
)


@app.command(name="version", rich_help_panel="⚙️ System")
def version_command() -> None:
    """Show version information."""
    console.print(f"[bold bright_blue]🎙️ podtrack[/bold bright_blue] [dim]v{VERSION}[/dim]")


@app.callback()
def init_cli(
    ctx: typer.Context,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable verbose output"),
    ] = False,
) -> None:
    """Initialize podtrack CLI."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose

    setup_loguru_logger(verbose)
    log_startup_info()

    settings.data_dir.mkdir(parents=True, exist_ok=True)


def main() -> int:
    """Application entry point."""
    try:
        return app() or 0
    except Exception:
        logger.exception("Unhandled exception")
        return 1
