"""
Reconciliation Engine
=====================

One run per ScrapeRequest:

1. Open (or reuse) the SyncRun
2. Fetch, parse and transform via the shelter's adapter
3. Diff against stored listings by fingerprint
4. Evaluate the circuit breaker
5. Enrich and insert new listings with bounded concurrency
6. Heartbeat matched listings, resurrecting removed ones
7. Sweep listings unseen for the staleness window (unless tripped)
8. Send reindex and image jobs in batches
9. Finalize the SyncRun and record the shelter's sync

Each write commits on its own; there is no run-wide transaction, so a crash
leaves a partial state the next run reconciles.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any
from uuid import uuid4

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from dogpile_sync.core.enums import ShelterStatus
from dogpile_sync.core.errors import ParseError, PersistenceError, ScrapeError, SyncError
from dogpile_sync.core.schema import ScrapeRequest, Shelter, SyncRun, utc_now
from dogpile_sync.db.repositories import ListingRepository, ShelterRepository, SyncRunRepository
from dogpile_sync.ingestion.adapters import BaseAdapter, get_adapter
from dogpile_sync.ingestion.adapters.base import NormalizedListing, ScraperConfig
from dogpile_sync.ingestion.registry import GlobalConfig
from dogpile_sync.sync.circuit_breaker import BreakerDecision, count_active, evaluate_breaker
from dogpile_sync.sync.config import SyncSettings
from dogpile_sync.sync.diff import diff_listings
from dogpile_sync.sync.enrichment import Enricher, EnrichmentOrchestrator, build_listing
from dogpile_sync.sync.fanout import delete_job, image_job, send_in_batches, upsert_job
from dogpile_sync.sync.queue import IMAGE_QUEUE, REINDEX_QUEUE, JobQueue

logger = logging.getLogger(__name__)


@dataclass
class RunResult:
    """Outcome of one engine run."""

    sync_run_id: str
    shelter_id: str
    dogs_added: int = 0
    dogs_updated: int = 0
    dogs_removed: int = 0
    resurrected: int = 0
    failed: int = 0
    partially_enriched: int = 0
    breaker_tripped: bool = False
    reindex_jobs: int = 0
    image_jobs: int = 0
    errors: list[str] = field(default_factory=list)
    error_message: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "sync_run_id": self.sync_run_id,
            "shelter_id": self.shelter_id,
            "dogs_added": self.dogs_added,
            "dogs_updated": self.dogs_updated,
            "dogs_removed": self.dogs_removed,
            "resurrected": self.resurrected,
            "failed": self.failed,
            "partially_enriched": self.partially_enriched,
            "breaker_tripped": self.breaker_tripped,
            "reindex_jobs": self.reindex_jobs,
            "image_jobs": self.image_jobs,
            "errors": self.errors,
            "error_message": self.error_message,
        }


class ReconciliationEngine:
    """Reconciles one shelter's scrape against the store."""

    def __init__(
        self,
        session: Session,
        queue: JobQueue,
        enricher: Enricher | None = None,
        settings: SyncSettings | None = None,
        global_config: GlobalConfig | None = None,
        clock: Callable[[], datetime] = utc_now,
        adapter_factory: Callable[[str, dict], BaseAdapter] = get_adapter,
    ):
        self.session = session
        self.queue = queue
        self.settings = settings or SyncSettings()
        self.global_config = global_config or GlobalConfig()
        self.clock = clock
        self.adapter_factory = adapter_factory
        self.orchestrator = EnrichmentOrchestrator(enricher, self.settings.enrichment_timeout_seconds)

        self.listings = ListingRepository(session)
        self.runs = SyncRunRepository(session)
        self.shelters = ShelterRepository(session)

    async def run(self, request: ScrapeRequest) -> RunResult:
        """
        Execute one reconciliation run.

        Raises:
            SyncError: Non-retryable; the shelter is unknown.
            UnknownAdapterError: Non-retryable; no run is created.
            ScrapeError, ParseError: Retryable; the run is finalized as failed.
        """
        shelter = self.shelters.get_by_id(request.shelter_id)
        if shelter is None:
            raise SyncError(
                f"Shelter {request.shelter_id} ({request.shelter_slug}) not found",
                shelter_id=request.shelter_id,
                operation="load shelter",
            )

        adapter = self.adapter_factory(shelter.adapter, shelter.options)
        now = self.clock()
        run = self._open_run(request, now)
        result = RunResult(sync_run_id=run.id, shelter_id=shelter.id)
        logger.info(f"Sync run {run.id} started for shelter '{shelter.slug}'")

        config = ScraperConfig(
            shelter_id=shelter.id,
            base_url=request.base_url or shelter.base_url,
            options=shelter.options,
            user_agent=self.global_config.user_agent,
            request_timeout=self.global_config.request_timeout,
        )
        try:
            raw_listings = adapter.parse(await adapter.fetch(config), config)
        except (ScrapeError, ParseError) as e:
            self._fail_run(run, shelter, e)
            raise
        except Exception as e:
            error = ScrapeError(
                f"Adapter '{shelter.adapter}' failed",
                shelter_id=shelter.id,
                operation="scrape",
                cause=e,
            )
            self._fail_run(run, shelter, error)
            raise error from e

        scraped = self._transform_all(adapter, raw_listings, config, result)
        existing = self.listings.list_by_shelter(shelter.id)
        diff = diff_listings(scraped, existing)
        for duplicate in diff.duplicates:
            logger.info(f"Skipping duplicate fingerprint {duplicate.fingerprint} in scrape of '{shelter.slug}'")

        breaker = evaluate_breaker(
            existing_active=count_active(existing),
            scraped=diff.scraped_count,
            ratio=self.settings.circuit_breaker_ratio,
            warn_ratio=self.settings.circuit_breaker_warn_ratio,
        )
        if breaker.tripped:
            result.breaker_tripped = True
            self._record_error(result, breaker.diagnostic)

        logger.info(
            f"Shelter '{shelter.slug}': {len(diff.new)} new, {len(diff.matched)} matched, "
            f"{len(diff.missing)} missing"
        )

        reindex_payloads: list[dict[str, Any]] = []
        image_payloads: list[dict[str, Any]] = []

        await self._process_new(run, diff.new, now, result, reindex_payloads, image_payloads)
        if self._heartbeat([m.existing.id for m in diff.matched], now, result):
            self._sweep(shelter, breaker, now, result, reindex_payloads)
        else:
            # Matched rows still carry their old last_seen_at and would look stale
            logger.warning(f"Skipping stale sweep for '{shelter.slug}': heartbeat failed")
            self._record_error(result, "stale sweep skipped: heartbeat of matched listings failed")

        await self._fan_out(shelter, reindex_payloads, image_payloads, result)
        self._finish_run(run, shelter, result)
        return result

    # =========================================================================
    # Run bookkeeping
    # =========================================================================

    def _open_run(self, request: ScrapeRequest, now: datetime) -> SyncRun:
        run_id = request.sync_run_id or str(uuid4())
        existing = self.runs.get_by_id(run_id)
        if existing is not None and existing.finished_at is not None:
            # Redelivery of an already finalized run gets a run of its own
            logger.info(f"Sync run {run_id} already finished, starting a new run")
            run_id = str(uuid4())

        run = self.runs.create_if_missing(SyncRun(id=run_id, shelter_id=request.shelter_id, started_at=now))
        self.session.commit()
        return run

    def _fail_run(self, run: SyncRun, shelter: Shelter, error: SyncError) -> None:
        message = str(error)
        logger.error(f"Sync run {run.id} for '{shelter.slug}' failed: {message}")
        finished = self.runs.finish(
            run.id,
            finished_at=self.clock(),
            errors=[message],
            error_message=message,
        )
        if not finished:
            logger.warning(f"Sync run {run.id} was already finalized")
        self.shelters.record_sync(shelter.id, last_sync=shelter.last_sync, status=ShelterStatus.ERROR)
        self.session.commit()

    def _finish_run(self, run: SyncRun, shelter: Shelter, result: RunResult) -> None:
        if result.failed:
            result.error_message = f"{result.failed} dog(s) failed processing"

        finished_at = self.clock()
        finished = self.runs.finish(
            run.id,
            finished_at=finished_at,
            dogs_added=result.dogs_added,
            dogs_updated=result.dogs_updated,
            dogs_removed=result.dogs_removed,
            errors=result.errors,
            error_message=result.error_message,
        )
        if not finished:
            logger.warning(f"Sync run {run.id} was finalized elsewhere (stale-run collector?)")
        self.shelters.record_sync(shelter.id, last_sync=finished_at, status=ShelterStatus.ACTIVE)
        self.session.commit()

        logger.info(
            f"Sync run {run.id} for '{shelter.slug}' finished: +{result.dogs_added} "
            f"~{result.dogs_updated} -{result.dogs_removed}, {len(result.errors)} error(s)"
        )

    def _record_error(self, result: RunResult, message: str) -> None:
        """Collect a run error; past the cap it is only logged."""
        if len(result.errors) >= self.settings.max_collected_errors:
            logger.debug(f"Error not stored on run (cap {self.settings.max_collected_errors}): {message}")
            return
        result.errors.append(message)

    def _flush_progress(self, run: SyncRun, result: RunResult) -> None:
        try:
            self.runs.update_progress(run.id, result.dogs_added, result.dogs_updated)
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.warning(f"Failed to update progress of sync run {run.id}: {e}")

    # =========================================================================
    # Stages
    # =========================================================================

    def _transform_all(
        self,
        adapter: BaseAdapter,
        raw_listings: list,
        config: ScraperConfig,
        result: RunResult,
    ) -> list[NormalizedListing]:
        scraped = []
        for raw in raw_listings:
            try:
                scraped.append(adapter.transform(raw, config))
            except ParseError as e:
                result.failed += 1
                self._record_error(result, f"{raw.fingerprint}: {e}")
        return scraped

    async def _process_new(
        self,
        run: SyncRun,
        new: list[NormalizedListing],
        now: datetime,
        result: RunResult,
        reindex_payloads: list[dict[str, Any]],
        image_payloads: list[dict[str, Any]],
    ) -> None:
        semaphore = asyncio.Semaphore(self.settings.ai_concurrency)
        processed = 0

        async def process(item: NormalizedListing) -> None:
            nonlocal processed
            async with semaphore:
                outcome = await self.orchestrator.enrich(item)

            # No awaits below: store writes for one listing run without interleaving
            listing = build_listing(item, outcome, now)
            try:
                stored, created = self.listings.upsert_by_fingerprint(listing)
                self.session.commit()
            except SQLAlchemyError as e:
                self.session.rollback()
                error = PersistenceError(
                    "Failed to insert listing",
                    shelter_id=item.shelter_id,
                    operation="insert listing",
                    cause=e,
                )
                logger.error(f"{item.fingerprint}: {error}")
                result.failed += 1
                self._record_error(result, f"{item.fingerprint}: {error}")
                return

            if created:
                result.dogs_added += 1
                if outcome.partial:
                    result.partially_enriched += 1
                reindex_payloads.append(upsert_job(stored).to_payload())
                job = image_job(stored)
                if job is not None:
                    image_payloads.append(job.to_payload())
            else:
                # Inserted by a concurrent delivery since the diff was taken
                result.dogs_updated += 1

            processed += 1
            if processed % self.settings.progress_update_interval == 0:
                self._flush_progress(run, result)

        await asyncio.gather(*(process(item) for item in new))

    def _heartbeat(self, listing_ids: list[str], now: datetime, result: RunResult) -> bool:
        """Refresh matched listings. Returns False if the write failed."""
        if not listing_ids:
            return True
        try:
            resurrected = self.listings.heartbeat(listing_ids, now)
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            error = PersistenceError("Failed to refresh matched listings", operation="heartbeat", cause=e)
            logger.error(str(error))
            self._record_error(result, str(error))
            return False
        result.resurrected = resurrected
        result.dogs_updated += len(listing_ids)
        if result.resurrected:
            logger.info(f"{result.resurrected} removed listing(s) reappeared and are available again")
        return True

    def _sweep(
        self,
        shelter: Shelter,
        breaker: BreakerDecision,
        now: datetime,
        result: RunResult,
        reindex_payloads: list[dict[str, Any]],
    ) -> None:
        if breaker.tripped:
            logger.warning(f"Skipping stale sweep for '{shelter.slug}': circuit breaker tripped")
            return

        cutoff = now - timedelta(hours=self.settings.stale_listing_hours)
        try:
            stale_ids = self.listings.find_stale(shelter.id, cutoff)
            if not stale_ids:
                return
            result.dogs_removed = self.listings.mark_removed(stale_ids, now)
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            error = PersistenceError(
                "Failed to remove stale listings", shelter_id=shelter.id, operation="sweep", cause=e
            )
            logger.error(str(error))
            self._record_error(result, str(error))
            return

        reindex_payloads.extend(delete_job(listing_id).to_payload() for listing_id in stale_ids)
        logger.info(f"Removed {result.dogs_removed} listing(s) unseen since {cutoff.isoformat()}")

    async def _fan_out(
        self,
        shelter: Shelter,
        reindex_payloads: list[dict[str, Any]],
        image_payloads: list[dict[str, Any]],
        result: RunResult,
    ) -> None:
        batch_size = self.settings.reindex_batch_size
        for queue_name, payloads in ((IMAGE_QUEUE, image_payloads), (REINDEX_QUEUE, reindex_payloads)):
            if not payloads:
                continue
            fanout = await send_in_batches(
                self.queue, queue_name, payloads, batch_size=batch_size, shelter_id=shelter.id
            )
            for error in fanout.errors:
                self._record_error(result, str(error))
        result.reindex_jobs = len(reindex_payloads)
        result.image_jobs = len(image_payloads)
