"""
Sync CLI Commands
=================

CLI commands for running shelter syncs, the worker and its maintenance tasks.
"""

from __future__ import annotations

import asyncio
from typing import Optional

import typer
from rich import print as rprint
from rich.console import Console
from rich.table import Table

from dogpile_sync.core.errors import SyncError
from dogpile_sync.db.engine import get_session
from dogpile_sync.db.repositories import (
    ApiCostRepository,
    ListingRepository,
    ShelterRepository,
    SyncRunRepository,
)
from dogpile_sync.ingestion.adapters import get_adapter_info, list_adapters
from dogpile_sync.ingestion.registry import get_default_registry, seed_shelters
from dogpile_sync.sync.queue import IMAGE_QUEUE, REINDEX_QUEUE

console = Console()
sync_app = typer.Typer(help="Shelter sync commands")
shelters_app = typer.Typer(help="Shelter management commands")
runs_app = typer.Typer(help="Sync run history")
jobs_app = typer.Typer(help="Job management commands")

sync_app.add_typer(runs_app, name="runs")
sync_app.add_typer(jobs_app, name="jobs")


@sync_app.command("run")
def run_sync(
    shelter: str = typer.Option(..., "--shelter", "-s", help="Shelter slug to sync"),
    sync: bool = typer.Option(False, "--sync", help="Run synchronously (blocking)"),
    no_enrich: bool = typer.Option(False, "--no-enrich", help="Skip AI enrichment (with --sync)"),
) -> None:
    """
    Sync one shelter.

    Examples:
        dogpile-sync sync run --shelter=demo-shelter --sync
        dogpile-sync sync run -s demo-shelter
    """
    from dogpile_sync.sync.jobs import create_enricher, enqueue_scrape, run_scrape_sync

    rprint(f"\n[bold]Starting sync for shelter:[/bold] {shelter}")

    if sync:
        rprint("\n[dim]Running synchronously...[/dim]\n")
        enricher = None if no_enrich else create_enricher()

        try:
            with console.status("[bold blue]Syncing...[/bold blue]"):
                result, queue = asyncio.run(run_scrape_sync(shelter, enricher=enricher))
        except ValueError as e:
            rprint(f"[red]Error:[/red] {e}")
            raise typer.Exit(1)
        except SyncError as e:
            rprint(f"[red]Sync failed:[/red] {e}")
            raise typer.Exit(1)

        _display_run_result(result.to_dict())
        rprint(
            f"\n[dim]Collected {len(queue.payloads(REINDEX_QUEUE))} reindex and "
            f"{len(queue.payloads(IMAGE_QUEUE))} image job(s) (not sent in --sync mode)[/dim]"
        )
    else:
        rprint("\n[dim]Enqueueing job for async processing...[/dim]")

        try:
            job_id = asyncio.run(enqueue_scrape(shelter))
        except ValueError as e:
            rprint(f"[red]Error:[/red] {e}")
            raise typer.Exit(1)
        except Exception as e:
            rprint(f"\n[red]Error:[/red] Failed to enqueue job: {e}")
            rprint("\nMake sure Redis is running:")
            rprint("  docker-compose up -d redis")
            raise typer.Exit(1)

        rprint("\n[green]Job enqueued successfully![/green]")
        rprint(f"Job ID: [bold]{job_id}[/bold]")
        rprint("\nCheck status with:")
        rprint(f"  dogpile-sync sync jobs status {job_id}")


@sync_app.command("worker")
def start_worker(
    burst: bool = typer.Option(False, "--burst", help="Run in burst mode (exit when queue empty)"),
) -> None:
    """
    Start the sync worker.

    The worker consumes scrape requests and reindex batches from Redis, and
    runs the scheduler and stale-run collector on cron.

    Examples:
        dogpile-sync sync worker
        dogpile-sync sync worker --burst
    """
    from arq import run_worker

    from dogpile_sync.sync.jobs import WorkerSettings

    rprint("[bold]Starting sync worker...[/bold]")
    rprint("Press Ctrl+C to stop\n")

    try:
        run_worker(WorkerSettings, burst=burst)
    except Exception as e:
        rprint(f"[red]Error:[/red] Worker failed: {e}")
        rprint("\nMake sure Redis is running:")
        rprint("  docker-compose up -d redis")
        raise typer.Exit(1)


@sync_app.command("gc")
def collect_stale(
    timeout_minutes: int = typer.Option(120, "--timeout", "-t", help="Minutes after which an open run is stale"),
) -> None:
    """
    Force-finish sync runs abandoned by crashed workers.

    Examples:
        dogpile-sync sync gc
        dogpile-sync sync gc --timeout 30
    """
    from datetime import timedelta

    from dogpile_sync.sync.gc import collect_stale_runs

    with get_session() as session:
        finished = collect_stale_runs(session, timeout=timedelta(minutes=timeout_minutes))

    if finished:
        rprint(f"[yellow]Force-finished {len(finished)} stale run(s)[/yellow]")
        for run_id in finished:
            rprint(f"  • {run_id}")
    else:
        rprint("[green]No stale runs[/green]")


@sync_app.command("schedule")
def schedule(
    interval_minutes: int = typer.Option(60, "--interval", "-i", help="Minimum minutes between syncs"),
) -> None:
    """
    Enqueue scrapes for every active shelter that is due.

    Examples:
        dogpile-sync sync schedule
    """
    from arq import create_pool

    from dogpile_sync.sync.jobs import enqueue_due_shelters
    from dogpile_sync.sync.queue import get_redis_settings

    async def _schedule() -> list[str]:
        redis = await create_pool(get_redis_settings())
        try:
            return await enqueue_due_shelters(redis, interval_minutes)
        finally:
            await redis.close()

    try:
        enqueued = asyncio.run(_schedule())
    except Exception as e:
        rprint(f"[red]Error:[/red] Failed to schedule: {e}")
        raise typer.Exit(1)

    if enqueued:
        rprint(f"[green]Enqueued {len(enqueued)} shelter(s):[/green] {', '.join(enqueued)}")
    else:
        rprint("[dim]No shelters due[/dim]")


@sync_app.command("status")
def status() -> None:
    """
    Show shelters with their last sync and listing counts.

    Examples:
        dogpile-sync sync status
    """
    with get_session() as session:
        shelters = ShelterRepository(session).list_all()
        listings = ListingRepository(session)
        runs = SyncRunRepository(session)
        rows = []
        for shelter in shelters:
            counts = listings.count_by_status(shelter.id)
            latest = runs.latest_for_shelter(shelter.id)
            rows.append((shelter, counts, latest))
        ai_cost = ApiCostRepository(session).total_cost()

    if not rows:
        rprint("[yellow]No shelters in the store[/yellow]")
        rprint("\nSeed them with: dogpile-sync shelters seed")
        return

    table = Table(title="Shelters")
    table.add_column("Slug", style="bold")
    table.add_column("Status")
    table.add_column("Last Sync")
    table.add_column("Available", justify="right")
    table.add_column("Pending", justify="right")
    table.add_column("Removed", justify="right")
    table.add_column("Last Run")

    for shelter, counts, latest in rows:
        status_color = {"active": "green", "error": "red"}.get(shelter.status.value, "yellow")
        table.add_row(
            shelter.slug,
            f"[{status_color}]{shelter.status.value}[/{status_color}]",
            shelter.last_sync.strftime("%Y-%m-%d %H:%M") if shelter.last_sync else "never",
            str(counts.get("available", 0)),
            str(counts.get("pending", 0)),
            str(counts.get("removed", 0)),
            latest.status.value if latest else "-",
        )

    console.print(table)
    rprint(f"\nAI spend to date: ${ai_cost:.4f}")


# Shelters subcommands


@shelters_app.command("list")
def list_shelters(
    all_shelters: bool = typer.Option(False, "--all", "-a", help="Show inactive shelters too"),
) -> None:
    """
    List configured shelters.

    Examples:
        dogpile-sync shelters list
        dogpile-sync shelters list --all
    """
    registry = get_default_registry()
    shelters = registry.list_shelters() if all_shelters else registry.list_active_shelters()

    if not shelters:
        rprint("[yellow]No shelters configured[/yellow]")
        rprint("\nAdd shelters to config/shelters.yaml")
        return

    table = Table(title="Shelters")
    table.add_column("Slug", style="bold")
    table.add_column("Name")
    table.add_column("City")
    table.add_column("Adapter")
    table.add_column("Status")

    for shelter in shelters:
        status_label = "[green]active[/green]" if shelter.active else "[yellow]inactive[/yellow]"
        table.add_row(shelter.slug, shelter.name, shelter.city, shelter.adapter, status_label)

    console.print(table)


@shelters_app.command("seed")
def seed() -> None:
    """
    Upsert configured shelters into the store.

    Examples:
        dogpile-sync shelters seed
    """
    with get_session() as session:
        stored = seed_shelters(session)

    rprint(f"[green]Seeded {len(stored)} shelter(s)[/green]")
    for shelter in stored:
        rprint(f"  • {shelter.slug} ({shelter.id})")


@shelters_app.command("adapters")
def list_shelter_adapters() -> None:
    """
    List available adapters.

    Examples:
        dogpile-sync shelters adapters
    """
    adapters = list_adapters()

    if not adapters:
        rprint("[yellow]No adapters registered[/yellow]")
        return

    table = Table(title="Available Adapters")
    table.add_column("Name", style="bold")
    table.add_column("Version")
    table.add_column("Class")

    for adapter_name in adapters:
        info = get_adapter_info(adapter_name)
        if info:
            table.add_row(info["name"], info["version"], info["class"])

    console.print(table)


# Runs subcommands


@runs_app.command("list")
def list_runs(
    shelter: Optional[str] = typer.Option(None, "--shelter", "-s", help="Only runs of this shelter"),
    limit: int = typer.Option(20, "--limit", "-n", help="Number of runs to show"),
) -> None:
    """
    List recent sync runs.

    Examples:
        dogpile-sync sync runs list
        dogpile-sync sync runs list -s demo-shelter -n 5
    """
    with get_session() as session:
        shelter_id = None
        if shelter:
            found = ShelterRepository(session).get_by_slug(shelter)
            if found is None:
                rprint(f"[red]Error:[/red] Shelter '{shelter}' not found")
                raise typer.Exit(1)
            shelter_id = found.id
        runs = SyncRunRepository(session).list_recent(shelter_id=shelter_id, limit=limit)

    if not runs:
        rprint("[dim]No sync runs yet[/dim]")
        return

    table = Table(title="Sync Runs")
    table.add_column("ID", style="bold")
    table.add_column("Started")
    table.add_column("Status")
    table.add_column("Added", justify="right")
    table.add_column("Updated", justify="right")
    table.add_column("Removed", justify="right")
    table.add_column("Errors", justify="right")

    for run in runs:
        table.add_row(
            run.id,
            run.started_at.strftime("%Y-%m-%d %H:%M"),
            run.status.value,
            str(run.dogs_added),
            str(run.dogs_updated),
            str(run.dogs_removed),
            str(len(run.errors)),
        )

    console.print(table)


@runs_app.command("show")
def show_run(
    run_id: str = typer.Argument(..., help="Sync run ID"),
) -> None:
    """
    Show one sync run with its errors.

    Examples:
        dogpile-sync sync runs show 3f2a...
    """
    with get_session() as session:
        run = SyncRunRepository(session).get_by_id(run_id)

    if run is None:
        rprint(f"[red]Error:[/red] Sync run '{run_id}' not found")
        raise typer.Exit(1)

    rprint(f"\n[bold]Sync run: {run.id}[/bold]")
    rprint(f"  Shelter: {run.shelter_id}")
    rprint(f"  Status: {run.status.value}")
    rprint(f"  Started: {run.started_at.isoformat()}")
    rprint(f"  Finished: {run.finished_at.isoformat() if run.finished_at else '-'}")
    _display_run_result(run.model_dump())


# Jobs subcommands


@jobs_app.command("status")
def job_status(
    job_id: str = typer.Argument(..., help="Job ID to check"),
) -> None:
    """
    Check the status of a queued sync job.

    Examples:
        dogpile-sync sync jobs status abc123
    """
    from dogpile_sync.sync.jobs import get_job_status

    try:
        result = asyncio.run(get_job_status(job_id))
    except Exception as e:
        rprint(f"[red]Error:[/red] Failed to get job status: {e}")
        rprint("\nMake sure Redis is running")
        raise typer.Exit(1)

    if result is None:
        rprint(f"[yellow]Job '{job_id}' not found[/yellow]")
        raise typer.Exit(1)

    rprint(f"\n[bold]Job: {job_id}[/bold]")
    rprint(f"  Status: {result.get('status', 'unknown')}")

    if isinstance(result.get("result"), dict):
        _display_run_result(result["result"])


def _display_run_result(result: dict) -> None:
    """Display a run result in a formatted block."""
    rprint("\n[bold]Statistics:[/bold]")
    rprint(f"  Dogs added: {result.get('dogs_added', 0)}")
    rprint(f"  Dogs updated: {result.get('dogs_updated', 0)}")
    rprint(f"  Dogs removed: {result.get('dogs_removed', 0)}")
    if "resurrected" in result:
        rprint(f"  Resurrected: {result['resurrected']}")
    if result.get("partially_enriched"):
        rprint(f"  Partially enriched: {result['partially_enriched']}")
    if result.get("breaker_tripped"):
        rprint("  [bold red]Circuit breaker tripped: stale sweep skipped[/bold red]")
    if result.get("error_message"):
        rprint(f"  [red]{result['error_message']}[/red]")

    errors = result.get("errors", [])
    if errors:
        rprint(f"\n[bold red]Errors ({len(errors)}):[/bold red]")
        for error in errors[:10]:  # Show first 10
            rprint(f"  • {error}")
        if len(errors) > 10:
            rprint(f"  ... and {len(errors) - 10} more")
