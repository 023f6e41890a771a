"""Provider status, pricing and cost estimate commands."""

from typing import Annotated

from rich.table import Table
import typer

from podtrack.domain.entities import SOCIAL_PLATFORMS, Platform
from podtrack.infrastructure.bootstrap import Services
from podtrack.infrastructure.cli.async_helpers import with_services
from podtrack.infrastructure.cli.ui import console, format_money

app = typer.Typer(help="Inspect enrichment providers")

_CREDENTIAL_STYLES = {"valid": "green", "invalid": "red", "not_configured": "yellow"}


@app.command("status")
@with_services
async def provider_status(
    services: Services,
    check: Annotated[
        bool, typer.Option("--check/--no-check", help="Validate credentials against each API")
    ] = False,
) -> None:
    """Show which providers are configured, optionally checking credentials live."""
    support = services.manager.get_platform_support()
    validation = await services.manager.validate_all_credentials() if check else {}

    table = Table(title="Enrichment providers")
    table.add_column("Provider", style="cyan")
    table.add_column("Configured")
    table.add_column("Platforms")
    if check:
        table.add_column("Credentials")

    for provider in services.registry.all():
        platforms = [p for p, names in support.items() if provider.name in names]
        row = [
            provider.name,
            "✅" if provider.is_configured() else "❌",
            ", ".join(platforms),
        ]
        if check:
            result = validation[provider.name]
            style = _CREDENTIAL_STYLES.get(result.status, "white")
            row.append(f"[{style}]{result.status}[/{style}] {result.message}")
        table.add_row(*row)

    console.print(table)
    youtube = services.fetcher.youtube_client
    if youtube is not None:
        state = "configured" if youtube.is_configured() else "not configured"
        console.print(f"[dim]YouTube Data API (free): {state}[/dim]")


@app.command("estimate")
@with_services
async def estimate(
    services: Services,
    platform: Annotated[Platform, typer.Argument(help="Platform to price")],
    count: Annotated[int, typer.Option("--count", "-n", min=1, help="Number of profiles")] = 1,
) -> None:
    """Estimate the cost of fetching N profiles on a platform."""
    result = services.manager.estimate_cost(platform, count)
    if not result.estimates:
        console.print(f"[yellow]No provider supports {platform}[/yellow]")
        return

    table = Table(title=f"{count} x {platform}")
    table.add_column("Provider", style="cyan")
    table.add_column("Per profile", justify="right")
    table.add_column("Total", justify="right", style="green bold")
    table.add_column("Configured")
    for name, est in result.estimates.items():
        marker = " ★" if name == result.recommended else ""
        table.add_row(
            f"{name}{marker}",
            format_money(est.cost_per_profile),
            format_money(est.total_cost),
            "✅" if est.configured else "❌",
        )
    console.print(table)

    if result.recommended is None:
        console.print("[yellow]No configured provider supports this platform[/yellow]")


@app.command("pricing")
@with_services
async def pricing(services: Services) -> None:
    """Compare per-profile pricing across providers."""
    comparison = services.manager.get_pricing_comparison()
    names = services.registry.names()

    table = Table(title="Cost per profile (USD)")
    table.add_column("Platform", style="cyan")
    for name in names:
        table.add_column(name, justify="right")
    for platform, prices in comparison.items():
        table.add_row(
            platform,
            *(format_money(prices[name]) if name in prices else "—" for name in names),
        )
    console.print(table)


@app.command("priority")
@with_services
async def priority(services: Services) -> None:
    """Show the provider fallback order per platform."""
    table = Table(title="Provider priority")
    table.add_column("Platform", style="cyan")
    table.add_column("Order")
    for platform in SOCIAL_PLATFORMS:
        table.add_row(str(platform), " → ".join(services.manager.get_platform_priority(platform)))
    console.print(table)
