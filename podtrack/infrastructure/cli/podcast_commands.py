"""Podcast seeding and inspection commands."""

from typing import Annotated

from rich.table import Table
import typer

from podtrack.domain.entities import Platform, SocialLink
from podtrack.infrastructure.bootstrap import Services
from podtrack.infrastructure.cli.async_helpers import with_services
from podtrack.infrastructure.cli.ui import console, display_metrics
from podtrack.infrastructure.providers import extract_handle_from_url

app = typer.Typer(help="Seed podcasts and their social profiles")


@app.command("add")
@with_services
async def add_podcast(
    services: Services,
    name: Annotated[str, typer.Argument(help="Podcast name")],
) -> None:
    """Create a podcast."""
    async with services.uow_factory() as uow:
        podcast = await uow.get_podcast_repository().create_podcast(name)
    console.print(f"[green]✓[/green] Created podcast [bold]{podcast.name}[/bold] (id {podcast.id})")


@app.command("link")
@with_services
async def link_profile(
    services: Services,
    podcast_id: Annotated[int, typer.Argument(help="Podcast ID")],
    platform: Annotated[Platform, typer.Argument(help="Platform of the profile")],
    url: Annotated[str, typer.Argument(help="Profile URL")],
    handle: Annotated[
        str | None, typer.Option("--handle", help="Handle, derived from the URL if omitted")
    ] = None,
) -> None:
    """Store (or replace) a podcast's profile on one platform."""
    async with services.uow_factory() as uow:
        repo = uow.get_podcast_repository()
        if await repo.get_podcast(podcast_id) is None:
            console.print(f"[red]Podcast {podcast_id} not found[/red]")
            raise typer.Exit(code=1)
        link = await repo.add_social_link(
            SocialLink(
                podcast_id=podcast_id,
                platform=platform,
                profile_url=url,
                profile_handle=handle or extract_handle_from_url(url, platform),
            )
        )
    console.print(f"[green]✓[/green] Linked {link.platform} profile {link.profile_url}")


@app.command("list")
@with_services
async def list_podcasts(services: Services) -> None:
    """List podcasts with their tracking status and linked platforms."""
    async with services.uow_factory() as uow:
        repo = uow.get_podcast_repository()
        podcasts = await repo.list_podcasts()
        links = {podcast.id: await repo.get_social_links(podcast.id) for podcast in podcasts}

    if not podcasts:
        console.print("[dim]No podcasts yet. Add one with 'podtrack podcast add'[/dim]")
        return

    table = Table(title="Podcasts")
    table.add_column("ID", justify="right", style="dim")
    table.add_column("Name", style="cyan")
    table.add_column("Status")
    table.add_column("Platforms")
    for podcast in podcasts:
        table.add_row(
            str(podcast.id),
            podcast.name,
            str(podcast.tracking_status),
            ", ".join(str(link.platform) for link in links[podcast.id]) or "—",
        )
    console.print(table)


@app.command("metrics")
@with_services
async def show_metrics(
    services: Services,
    podcast_id: Annotated[int, typer.Argument(help="Podcast ID")],
) -> None:
    """Show the latest stored metrics per platform."""
    records = await services.fetcher.get_latest_for_podcast(podcast_id)
    display_metrics(records, title=f"Latest metrics for podcast {podcast_id}")
