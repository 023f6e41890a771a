"""Job queue commands and the worker loop."""

from typing import Annotated

import typer

from podtrack.config import settings
from podtrack.domain.entities import JobStatus, JobType, Platform
from podtrack.infrastructure.bootstrap import Services
from podtrack.infrastructure.cli.async_helpers import with_services
from podtrack.infrastructure.cli.ui import (
    console,
    display_jobs,
    display_key_values,
    format_money,
)

app = typer.Typer(help="Enqueue and process enrichment jobs")


@app.command("enqueue")
@with_services
async def enqueue_job(
    services: Services,
    podcast_id: Annotated[int, typer.Argument(help="Podcast ID")],
    platforms: Annotated[
        list[Platform] | None,
        typer.Option("--platform", "-p", help="Platform to fetch (repeatable, default: all linked)"),
    ] = None,
    job_type: Annotated[JobType, typer.Option("--type", help="Job type")] = JobType.INITIAL_TRACKING,
    priority: Annotated[
        int | None, typer.Option("--priority", min=0, max=100, help="Higher runs first")
    ] = None,
) -> None:
    """Queue an enrichment job for a podcast."""
    job = await services.job_queue.enqueue(podcast_id, job_type, platforms or None, priority)
    if job is None:
        console.print("[yellow]Nothing to fetch: the podcast has no linked platforms[/yellow]")
        return
    console.print(
        f"[green]✓[/green] Queued job {job.id} "
        f"({', '.join(str(p) for p in job.platforms_to_fetch)}), "
        f"estimated {format_money(job.estimated_cost)}"
    )


@app.command("process")
@with_services
async def process_jobs(
    services: Services,
    count: Annotated[int, typer.Option("--count", "-n", min=1, help="Jobs to process")] = 1,
) -> None:
    """Process up to N queued jobs now."""
    processed = []
    for _ in range(count):
        job = await services.job_queue.process_next()
        if job is None:
            break
        processed.append(job)

    if not processed:
        console.print("[dim]Queue is empty[/dim]")
        return
    display_jobs(processed, title="Processed jobs")


@app.command("cancel")
@with_services
async def cancel_job(
    services: Services,
    job_id: Annotated[int, typer.Argument(help="Job ID")],
) -> None:
    """Cancel a job that is still queued."""
    if not await services.job_queue.cancel(job_id):
        console.print(f"[red]Job {job_id} is not queued and cannot be cancelled[/red]")
        raise typer.Exit(code=1)
    console.print(f"[green]✓[/green] Cancelled job {job_id}")


@app.command("retry")
@with_services
async def retry_job(
    services: Services,
    job_id: Annotated[int, typer.Argument(help="Job ID")],
) -> None:
    """Requeue a failed job with a fresh set of attempts."""
    if not await services.job_queue.retry(job_id):
        console.print(f"[red]Job {job_id} is not failed and cannot be retried[/red]")
        raise typer.Exit(code=1)
    console.print(f"[green]✓[/green] Requeued job {job_id}")


@app.command("stats")
@with_services
async def job_stats(services: Services) -> None:
    """Show queue counts and completed spend."""
    stats = await services.job_queue.get_statistics()
    display_key_values(
        [
            ("Queued", str(stats.queued)),
            ("Processing", str(stats.processing)),
            ("Completed", str(stats.completed)),
            ("Failed", str(stats.failed)),
            ("Total", str(stats.total)),
            ("Completed cost", format_money(stats.total_cost)),
        ],
        title="Job queue",
    )


@app.command("list")
@with_services
async def list_jobs(
    services: Services,
    podcast_id: Annotated[
        int | None, typer.Option("--podcast", help="Only jobs for this podcast")
    ] = None,
    status: Annotated[JobStatus | None, typer.Option("--status", help="Filter by status")] = None,
    limit: Annotated[int, typer.Option("--limit", "-l", min=1)] = 20,
) -> None:
    """List recent jobs."""
    if podcast_id is not None:
        jobs = await services.job_queue.get_podcast_jobs(podcast_id, limit)
        if status is not None:
            jobs = [job for job in jobs if job.status == status]
    else:
        jobs = await services.job_queue.list_jobs(status, limit)
    display_jobs(jobs)


@with_services
async def worker(
    services: Services,
    interval: Annotated[
        float | None, typer.Option("--interval", help="Seconds to sleep when idle")
    ] = None,
    workers: Annotated[
        int | None, typer.Option("--workers", "-w", min=1, help="Concurrent workers")
    ] = None,
    max_ticks: Annotated[
        int | None, typer.Option("--max-ticks", min=1, help="Stop after N ticks per worker")
    ] = None,
) -> None:
    """Run queue workers until interrupted."""
    interval = settings.queue.tick_interval if interval is None else interval
    console.print(f"[bold]Starting worker[/bold] [dim](idle interval {interval}s)[/dim]")
    processed = await services.worker.run(interval=interval, max_ticks=max_ticks, workers=workers)
    console.print(f"[green]✓[/green] Processed {processed} jobs")


def register_worker_command(app: typer.Typer) -> None:
    """Register the worker loop as a top-level command."""
    app.command(
        name="worker",
        help="Run the job queue worker loop",
        rich_help_panel="⚙️ Queue",
    )(worker)
