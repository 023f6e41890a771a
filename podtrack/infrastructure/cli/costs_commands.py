"""Spend reporting commands."""

from pathlib import Path
from typing import Annotated

from rich.table import Table
import typer

from podtrack.domain.entities import BudgetHealth, CostPeriod
from podtrack.infrastructure.bootstrap import Services
from podtrack.infrastructure.cli.async_helpers import with_services
from podtrack.infrastructure.cli.ui import console, display_key_values, format_money

app = typer.Typer(help="Track enrichment spend")

_HEALTH_STYLES = {
    BudgetHealth.UNLIMITED: "dim",
    BudgetHealth.HEALTHY: "green",
    BudgetHealth.WARNING: "yellow",
    BudgetHealth.CRITICAL: "red",
    BudgetHealth.EXCEEDED: "bold red",
}


def _bucket_table(title: str, buckets) -> Table:
    table = Table(title=title)
    table.add_column("Key", style="cyan")
    table.add_column("Calls", justify="right")
    table.add_column("Cost", justify="right", style="green")
    for bucket in buckets:
        table.add_row(str(bucket.key), str(bucket.api_calls), format_money(bucket.total_cost))
    return table


@app.command("summary")
@with_services
async def summary(
    services: Services,
    period: Annotated[CostPeriod, typer.Option("--period", help="Reporting window")] = CostPeriod.MONTH,
    top: Annotated[int, typer.Option("--top", min=1, help="Top spending podcasts to show")] = 5,
) -> None:
    """Spend breakdown by platform, provider and action."""
    breakdown = await services.cost_tracker.get_breakdown(period)
    forecast = await services.cost_tracker.get_forecast()
    spenders = await services.cost_tracker.get_top_spenders(top)

    display_key_values(
        [
            ("Total", format_money(breakdown.total)),
            ("Daily average (30d)", format_money(forecast.daily_average)),
            ("Week forecast", format_money(forecast.week_forecast)),
            ("Month forecast", format_money(forecast.month_forecast)),
        ],
        title=f"Spend ({period})",
    )
    console.print(_bucket_table("By platform", breakdown.by_platform))
    console.print(_bucket_table("By provider", breakdown.by_provider))
    console.print(_bucket_table("By action", breakdown.by_action))

    if spenders:
        table = Table(title="Top podcasts")
        table.add_column("Podcast", style="cyan")
        table.add_column("Calls", justify="right")
        table.add_column("Cost", justify="right", style="green")
        for spender in spenders:
            table.add_row(spender.podcast_name, str(spender.api_calls), format_money(spender.total_cost))
        console.print(table)


@app.command("budget")
@with_services
async def budget(services: Services) -> None:
    """Show spend against the weekly and monthly budgets."""
    for period in (CostPeriod.WEEK, CostPeriod.MONTH):
        status = await services.cost_tracker.get_budget_status(period)
        style = _HEALTH_STYLES[status.health]
        limit = "unlimited" if status.health == BudgetHealth.UNLIMITED else format_money(status.budget)
        display_key_values(
            [
                ("Spent", format_money(status.spent)),
                ("Budget", limit),
                ("Used", f"{status.percent_used}%"),
                ("Status", f"[{style}]{status.health}[/{style}]"),
            ],
            title=f"{period.value.title()}ly budget",
        )


@app.command("export")
@with_services
async def export(
    services: Services,
    period: Annotated[CostPeriod, typer.Option("--period", help="Reporting window")] = CostPeriod.MONTH,
    output: Annotated[
        Path | None, typer.Option("--output", "-o", help="Write to file instead of stdout")
    ] = None,
) -> None:
    """Export ledger entries as CSV."""
    content = await services.cost_tracker.export_csv(period)
    if output is None:
        console.print(content, end="", markup=False, highlight=False)
        return
    output.write_text(content, encoding="utf-8")
    console.print(f"[green]✓[/green] Wrote {output}")
