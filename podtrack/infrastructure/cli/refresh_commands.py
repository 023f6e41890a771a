"""Metric refresh commands."""

from typing import Annotated

import typer

from podtrack.domain.entities import Platform
from podtrack.infrastructure.bootstrap import Services
from podtrack.infrastructure.cli.async_helpers import with_services
from podtrack.infrastructure.cli.ui import console, display_key_values, format_money

app = typer.Typer(help="Keep stored metrics fresh")


@app.command("run")
@with_services
async def run_refresh(services: Services) -> None:
    """Queue background refreshes for tracked podcasts within the weekly budget."""
    result = await services.refresh.run_refresh()
    display_key_values(
        [
            ("Podcasts checked", str(result.podcasts_checked)),
            ("Jobs queued", str(len(result.jobs_queued))),
            ("Skipped (budget)", str(len(result.skipped_over_budget))),
            ("Estimated cost", format_money(result.estimated_cost)),
        ],
        title="Background refresh",
    )
    if result.budget_exhausted:
        console.print("[yellow]Weekly budget reached; remaining podcasts were not checked[/yellow]")


@app.command("podcast")
@with_services
async def refresh_podcast(
    services: Services,
    podcast_id: Annotated[int, typer.Argument(help="Podcast ID")],
    platforms: Annotated[
        list[Platform] | None,
        typer.Option("--platform", "-p", help="Platform to refresh (repeatable, default: all)"),
    ] = None,
) -> None:
    """Expire cached metrics and queue a high-priority refresh."""
    job = await services.refresh.manual_refresh(podcast_id, platforms or None)
    if job is None:
        console.print(f"[yellow]Nothing queued for podcast {podcast_id}[/yellow]")
        raise typer.Exit(code=1)
    console.print(f"[green]✓[/green] Queued manual refresh job {job.id}")
