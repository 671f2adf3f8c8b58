"""
Background Jobs Module
======================

arq tasks for the sync worker. Uses Redis as the job queue backend.

Acknowledgement discipline: a task that returns has its message acked.
Retryable failures raise ``arq.Retry`` so the request is redelivered, up to
``WorkerSettings.max_tries``; requests classified as non-retryable (unknown
shelter or adapter, malformed payload) return a rejection instead.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any

from arq import Retry, create_pool, cron
from arq.connections import ArqRedis
from arq.jobs import Job
from pydantic import ValidationError

from dogpile_sync.core.enums import ReindexOp
from dogpile_sync.core.errors import SyncError
from dogpile_sync.core.schema import ReindexJob, ScrapeRequest, utc_now
from dogpile_sync.db.engine import get_session
from dogpile_sync.db.repositories import ListingRepository, ShelterRepository
from dogpile_sync.ingestion.registry import get_default_registry
from dogpile_sync.services.ai.costs import ApiCostTracker
from dogpile_sync.services.ai.enrichment import EnrichmentService
from dogpile_sync.services.meilisearch_service import get_meilisearch_service
from dogpile_sync.services.search import SearchIndex, build_search_document, document_from_job
from dogpile_sync.sync.config import SyncSettings
from dogpile_sync.sync.engine import ReconciliationEngine, RunResult
from dogpile_sync.sync.enrichment import Enricher
from dogpile_sync.sync.gc import collect_stale_runs
from dogpile_sync.sync.queue import ArqJobQueue, InMemoryJobQueue, JobQueue, get_redis_settings

logger = logging.getLogger(__name__)

# Seconds; multiplied by the attempt number
RETRY_BASE_DELAY = 60


def _retry_delay(ctx: dict[str, Any]) -> int:
    return RETRY_BASE_DELAY * int(ctx.get("job_try", 1))


def create_enricher() -> Enricher | None:
    """Enrichment service from the environment, or None when AI is not configured."""
    try:
        return EnrichmentService.from_env(cost_tracker=ApiCostTracker())
    except ValueError as e:
        logger.warning(f"AI enrichment disabled: {e}")
        return None


async def startup(ctx: dict[str, Any]) -> None:
    """Worker startup: build shared collaborators once."""
    ctx["settings"] = SyncSettings.from_env()
    ctx["queue"] = ArqJobQueue(ctx["redis"])
    ctx["enricher"] = create_enricher()
    logger.info(f"Sync worker started (AI concurrency {ctx['settings'].ai_concurrency})")


async def run_scrape(
    request: ScrapeRequest,
    queue: JobQueue,
    enricher: Enricher | None = None,
    settings: SyncSettings | None = None,
) -> RunResult:
    """Run the reconciliation engine for one request in its own session."""
    registry = get_default_registry()
    with get_session() as session:
        engine = ReconciliationEngine(
            session,
            queue=queue,
            enricher=enricher,
            settings=settings,
            global_config=registry.global_config,
        )
        return await engine.run(request)


async def scrape_shelter(ctx: dict[str, Any], request: dict[str, Any]) -> dict[str, Any]:
    """
    Consume one ScrapeRequest.

    Args:
        ctx: arq context
        request: ScrapeRequest payload (camelCase or snake_case keys)

    Returns:
        RunResult as dictionary, or a rejection for non-retryable requests
    """
    try:
        scrape_request = ScrapeRequest.model_validate(request)
    except ValidationError as e:
        logger.error(f"Rejecting malformed scrape request {request!r}: {e}")
        return {"status": "rejected", "error": str(e)}

    try:
        result = await run_scrape(
            scrape_request,
            queue=ctx["queue"],
            enricher=ctx.get("enricher"),
            settings=ctx.get("settings"),
        )
    except SyncError as e:
        if e.retryable:
            logger.warning(
                f"Scrape of '{scrape_request.shelter_slug}' failed (attempt {ctx.get('job_try', 1)}), retrying: {e}"
            )
            raise Retry(defer=_retry_delay(ctx)) from e
        logger.error(f"Rejecting scrape request for '{scrape_request.shelter_slug}': {e}")
        return {"status": "rejected", "error": str(e)}
    except Exception as e:
        logger.exception(f"Unexpected failure scraping '{scrape_request.shelter_slug}'")
        raise Retry(defer=_retry_delay(ctx)) from e

    return {"status": "completed", **result.to_dict()}


def apply_reindex_jobs(index: SearchIndex, jobs: list[ReindexJob]) -> dict[str, int]:
    """
    Apply reindex jobs to a search index.

    Upserts are built from the stored listing when it exists, so the
    indexed text carries every enriched field; otherwise the job's own
    description and metadata are used.
    """
    delete_ids = [job.dog_id for job in jobs if job.type == ReindexOp.DELETE]
    upserts = [job for job in jobs if job.type == ReindexOp.UPSERT]

    documents = []
    if upserts:
        with get_session() as session:
            repo = ListingRepository(session)
            for job in upserts:
                listing = repo.get_by_id(job.dog_id)
                documents.append(build_search_document(listing) if listing else document_from_job(job))

    index.delete_documents(delete_ids)
    index.upsert_documents(documents)
    return {"upserted": len(documents), "deleted": len(delete_ids)}


async def process_reindex_batch(ctx: dict[str, Any], jobs: list[dict[str, Any]]) -> dict[str, int]:
    """Consume one batch of reindex jobs."""
    parsed = []
    for payload in jobs:
        try:
            parsed.append(ReindexJob.model_validate(payload))
        except ValidationError as e:
            logger.error(f"Dropping malformed reindex job {payload!r}: {e}")

    index = ctx.get("search_index") or get_meilisearch_service()
    try:
        return apply_reindex_jobs(index, parsed)
    except Exception as e:
        logger.exception(f"Failed to apply {len(parsed)} reindex job(s)")
        raise Retry(defer=_retry_delay(ctx)) from e


async def collect_stale_runs_task(ctx: dict[str, Any]) -> list[str]:
    """Cron: force-finish runs abandoned by crashed workers."""
    settings: SyncSettings = ctx.get("settings") or SyncSettings.from_env()
    with get_session() as session:
        return collect_stale_runs(
            session,
            timeout=timedelta(minutes=settings.stale_run_timeout_minutes),
        )


async def enqueue_due_shelters(redis: ArqRedis, sync_interval_minutes: int) -> list[str]:
    """
    Enqueue a scrape for every active shelter not synced within the interval.

    Job ids are bucketed per interval, so a shelter is enqueued at most once
    per interval even when the scheduler runs more often.

    Returns:
        Slugs of the shelters enqueued.
    """
    now = utc_now()
    threshold = now - timedelta(minutes=sync_interval_minutes)
    bucket = int(now.timestamp() // (sync_interval_minutes * 60))

    with get_session() as session:
        due = ShelterRepository(session).list_due(threshold)

    enqueued = []
    for shelter in due:
        request = ScrapeRequest(shelter_id=shelter.id, shelter_slug=shelter.slug, base_url=shelter.base_url)
        job = await redis.enqueue_job(
            "scrape_shelter",
            request.to_payload(),
            _job_id=f"scrape:{shelter.id}:{bucket}",
        )
        if job is not None:
            enqueued.append(shelter.slug)

    if enqueued:
        logger.info(f"Scheduled {len(enqueued)} shelter(s): {', '.join(enqueued)}")
    return enqueued


async def schedule_due_shelters(ctx: dict[str, Any]) -> list[str]:
    """Cron: the scheduler."""
    settings: SyncSettings = ctx.get("settings") or SyncSettings.from_env()
    return await enqueue_due_shelters(ctx["redis"], settings.sync_interval_minutes)


async def enqueue_scrape(shelter_slug: str) -> str:
    """
    Enqueue a scrape of one shelter for async processing.

    Returns:
        Job ID

    Raises:
        ValueError: If the shelter is not in the store
    """
    with get_session() as session:
        shelter = ShelterRepository(session).get_by_slug(shelter_slug)
    if shelter is None:
        raise ValueError(f"Shelter '{shelter_slug}' not found; run 'shelters seed' first")

    request = ScrapeRequest(shelter_id=shelter.id, shelter_slug=shelter.slug, base_url=shelter.base_url)
    redis = await create_pool(get_redis_settings())
    try:
        job = await redis.enqueue_job("scrape_shelter", request.to_payload())
    finally:
        await redis.close()
    if job is None:
        raise RuntimeError(f"Scrape of '{shelter_slug}' is already queued")
    return job.job_id


async def run_scrape_sync(shelter_slug: str, enricher: Enricher | None = None) -> tuple[RunResult, InMemoryJobQueue]:
    """
    Run one scrape in-process (without arq).

    Useful for CLI commands with --sync flag. Downstream jobs are collected
    in memory instead of being sent.
    """
    with get_session() as session:
        shelter = ShelterRepository(session).get_by_slug(shelter_slug)
    if shelter is None:
        raise ValueError(f"Shelter '{shelter_slug}' not found; run 'shelters seed' first")

    queue = InMemoryJobQueue()
    request = ScrapeRequest(shelter_id=shelter.id, shelter_slug=shelter.slug, base_url=shelter.base_url)
    result = await run_scrape(request, queue=queue, enricher=enricher, settings=SyncSettings.from_env())
    return result, queue


async def get_job_status(job_id: str) -> dict[str, Any] | None:
    """
    Get the status of a queued job.

    Returns:
        Job info dict, or None if not found
    """
    redis = await create_pool(get_redis_settings())
    try:
        job = Job(job_id, redis)
        status = await job.status()
        if status.value == "not_found":
            return None
        info = await job.result_info()
    finally:
        await redis.close()

    return {
        "job_id": job_id,
        "status": status.value,
        "success": info.success if info else None,
        "result": info.result if info else None,
    }


class WorkerSettings:
    """arq worker settings."""

    functions = [scrape_shelter, process_reindex_batch]
    cron_jobs = [
        cron(collect_stale_runs_task, minute={0, 15, 30, 45}, run_at_startup=True),
        cron(schedule_due_shelters, minute=set(range(0, 60, 5))),
    ]
    on_startup = startup
    redis_settings = get_redis_settings()
    max_jobs = 5
    max_tries = 5
    job_timeout = 3600  # 1 hour
    keep_result = 86400  # 24 hours
