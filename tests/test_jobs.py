"""Tests for the arq worker tasks."""

import tempfile
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from arq import Retry

from dogpile_sync.core.errors import ScrapeError, SyncError
from dogpile_sync.core.schema import Listing, Shelter, utc_now
from dogpile_sync.db.engine import get_session, init_db, reset_engine
from dogpile_sync.db.repositories import ListingRepository, ShelterRepository
from dogpile_sync.services.search import SearchDocument, SearchIndex
from dogpile_sync.sync.engine import RunResult
from dogpile_sync.sync.jobs import (
    WorkerSettings,
    enqueue_due_shelters,
    process_reindex_batch,
    scrape_shelter,
)
from dogpile_sync.sync.queue import InMemoryJobQueue

REQUEST = {"shelterId": "s1", "shelterSlug": "happy-paws", "baseUrl": "https://happy-paws.example"}


class FakeIndex(SearchIndex):
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.upserted: list[SearchDocument] = []
        self.deleted: list[str] = []

    def upsert_documents(self, documents: list[SearchDocument]) -> None:
        if self.fail:
            raise ConnectionError("index unavailable")
        self.upserted.extend(documents)

    def delete_documents(self, ids: list[str]) -> None:
        self.deleted.extend(ids)


@pytest.fixture
def database(monkeypatch):
    """Point the global engine at a temporary database."""
    with tempfile.TemporaryDirectory() as tmpdir:
        monkeypatch.setenv("DATABASE_URL", f"sqlite:///{Path(tmpdir) / 'test.db'}")
        reset_engine()
        init_db()
        yield
        reset_engine()


def make_ctx(**kwargs) -> dict:
    ctx = {"queue": InMemoryJobQueue(), "enricher": None, "settings": None, "job_try": 1}
    ctx.update(kwargs)
    return ctx


class TestScrapeShelter:
    """Tests for the scrape_shelter task."""

    @pytest.mark.asyncio
    async def test_completed(self) -> None:
        result = RunResult(sync_run_id="run-1", shelter_id="s1", dogs_added=3)

        with patch("dogpile_sync.sync.jobs.run_scrape", AsyncMock(return_value=result)) as mock_run:
            outcome = await scrape_shelter(make_ctx(), REQUEST)

        assert outcome["status"] == "completed"
        assert outcome["sync_run_id"] == "run-1"
        assert outcome["dogs_added"] == 3
        request = mock_run.call_args.args[0]
        assert request.shelter_slug == "happy-paws"

    @pytest.mark.asyncio
    async def test_malformed_request_is_rejected(self) -> None:
        with patch("dogpile_sync.sync.jobs.run_scrape", AsyncMock()) as mock_run:
            outcome = await scrape_shelter(make_ctx(), {"shelterSlug": "happy-paws"})

        assert outcome["status"] == "rejected"
        mock_run.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_retryable_failure_is_retried(self) -> None:
        error = ScrapeError("HTTP 503", shelter_id="s1")

        with patch("dogpile_sync.sync.jobs.run_scrape", AsyncMock(side_effect=error)):
            with pytest.raises(Retry) as exc_info:
                await scrape_shelter(make_ctx(job_try=2), REQUEST)

        assert exc_info.value.defer_score == 120_000

    @pytest.mark.asyncio
    async def test_non_retryable_failure_is_rejected(self) -> None:
        error = SyncError("Shelter not found: s1", shelter_id="s1")

        with patch("dogpile_sync.sync.jobs.run_scrape", AsyncMock(side_effect=error)):
            outcome = await scrape_shelter(make_ctx(), REQUEST)

        assert outcome == {"status": "rejected", "error": "Shelter not found: s1"}

    @pytest.mark.asyncio
    async def test_unexpected_failure_is_retried(self) -> None:
        with patch("dogpile_sync.sync.jobs.run_scrape", AsyncMock(side_effect=RuntimeError("boom"))):
            with pytest.raises(Retry):
                await scrape_shelter(make_ctx(), REQUEST)


class TestProcessReindexBatch:
    """Tests for the reindex consumer."""

    @pytest.mark.asyncio
    async def test_applies_upserts_and_deletes(self, database) -> None:
        with get_session() as session:
            shelter = ShelterRepository(session).upsert(Shelter(slug="a", base_url="https://a.example"))
            ListingRepository(session).upsert_by_fingerprint(
                Listing(id="d1", shelter_id=shelter.id, external_id="1", fingerprint="fp-1", name="Burek")
            )
            session.commit()

        index = FakeIndex()
        jobs = [
            {"type": "upsert", "dogId": "d1", "metadata": {"shelterId": "x"}},
            {"type": "upsert", "dogId": "ghost", "description": "Mela", "metadata": {"shelterId": "s9"}},
            {"type": "delete", "dogId": "d2"},
            {"type": "explode"},
        ]

        outcome = await process_reindex_batch(make_ctx(search_index=index), jobs)

        assert outcome == {"upserted": 2, "deleted": 1}
        assert index.deleted == ["d2"]
        stored, fallback = index.upserted
        assert stored.text == "Pies Burek"
        assert stored.metadata["shelter_id"] == shelter.id
        assert fallback.text == "Mela"

    @pytest.mark.asyncio
    async def test_index_failure_is_retried(self, database) -> None:
        jobs = [{"type": "upsert", "dogId": "ghost"}]

        with pytest.raises(Retry):
            await process_reindex_batch(make_ctx(search_index=FakeIndex(fail=True)), jobs)


class TestScheduler:
    """Tests for due-shelter scheduling."""

    @pytest.mark.asyncio
    async def test_enqueues_due_active_shelters(self, database) -> None:
        with get_session() as session:
            repo = ShelterRepository(session)
            due = repo.upsert(Shelter(slug="due", base_url="https://due.example"))
            repo.upsert(Shelter(slug="fresh", base_url="https://fresh.example", last_sync=utc_now()))
            repo.upsert(Shelter(slug="inactive", base_url="https://inactive.example", active=False))
            session.commit()

        redis = MagicMock()
        redis.enqueue_job = AsyncMock(return_value=MagicMock(job_id="job-1"))

        enqueued = await enqueue_due_shelters(redis, sync_interval_minutes=60)

        assert enqueued == ["due"]
        args = redis.enqueue_job.call_args
        assert args.args[0] == "scrape_shelter"
        assert args.args[1]["shelterId"] == due.id
        assert args.kwargs["_job_id"].startswith(f"scrape:{due.id}:")

    @pytest.mark.asyncio
    async def test_duplicate_job_is_not_reported(self, database) -> None:
        with get_session() as session:
            ShelterRepository(session).upsert(Shelter(slug="due", base_url="https://due.example"))
            session.commit()

        redis = MagicMock()
        redis.enqueue_job = AsyncMock(return_value=None)

        assert await enqueue_due_shelters(redis, sync_interval_minutes=60) == []


class TestWorkerSettings:
    """Tests for the worker configuration."""

    def test_registered_functions(self) -> None:
        names = {f.__name__ for f in WorkerSettings.functions}
        assert names == {"scrape_shelter", "process_reindex_batch"}

    def test_cron_jobs(self) -> None:
        names = {job.name for job in WorkerSettings.cron_jobs}
        assert names == {"cron:collect_stale_runs_task", "cron:schedule_due_shelters"}
