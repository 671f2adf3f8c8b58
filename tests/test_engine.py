"""Tests for the reconciliation engine."""

import asyncio
import math
import tempfile
from datetime import datetime, timedelta
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker

from dogpile_sync.core.enums import FurLength, ListingStatus, ShelterStatus, SyncRunStatus
from dogpile_sync.core.errors import (
    EnrichmentError,
    ScrapeError,
    SyncError,
    UnknownAdapterError,
)
from dogpile_sync.core.schema import (
    AgeEstimate,
    BioRequest,
    BreedEstimate,
    GeneratedBio,
    Listing,
    LocationHints,
    PhotoAttributes,
    ScrapeRequest,
    Shelter,
    SyncRun,
    TextAttributes,
)
from dogpile_sync.db.models import Base
from dogpile_sync.db.repositories import ListingRepository, ShelterRepository, SyncRunRepository
from dogpile_sync.ingestion.adapters import FixtureAdapter
from dogpile_sync.sync.config import SyncSettings
from dogpile_sync.sync.engine import ReconciliationEngine
from dogpile_sync.sync.queue import IMAGE_QUEUE, REINDEX_QUEUE, InMemoryJobQueue

NOW = datetime(2026, 10, 19, 12, 0, 0)
LONG_AGO = NOW - timedelta(hours=48)


@pytest.fixture
def temp_db_path():
    """Create a temporary database file."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir) / "test.db"


@pytest.fixture
def engine(temp_db_path):
    """Create a test database engine."""
    engine = create_engine(f"sqlite:///{temp_db_path}", echo=False)
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    """Create a database session for testing."""
    SessionLocal = sessionmaker(bind=engine)
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture
def queue() -> InMemoryJobQueue:
    return InMemoryJobQueue()


class FakeEnricher:
    """Records calls; stages can be made to fail."""

    def __init__(self, fail_text: bool = False, fail_photos: bool = False, delay: float = 0.0):
        self.fail_text = fail_text
        self.fail_photos = fail_photos
        self.delay = delay
        self.calls: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def extract(self, text: str) -> TextAttributes:
        self.calls.append("extract")
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
        finally:
            self.in_flight -= 1
        if self.fail_text:
            raise EnrichmentError("model returned garbage", operation="text_extraction")
        return TextAttributes(
            age_estimate=AgeEstimate(months=36, confidence=0.8, range_min=24, range_max=48),
            breed_estimates=[BreedEstimate(breed="mixed", confidence=0.6)],
            personality_tags=["friendly", "calm"],
            vaccinated=True,
            location_hints=LocationHints(city_mention="Kraków"),
        )

    async def analyze_multiple(self, urls: list[str]) -> PhotoAttributes:
        self.calls.append("analyze")
        if self.fail_photos:
            raise EnrichmentError("image fetch failed", operation="photo_analysis")
        return PhotoAttributes(
            breed_estimates=[BreedEstimate(breed="husky", confidence=0.7)],
            fur_length=FurLength.LONG,
            color_primary="black",
        )

    async def generate(self, attributes: BioRequest) -> GeneratedBio:
        self.calls.append("generate")
        return GeneratedBio(bio=f"{attributes.name} czeka na dom.")


def dog(i: int, photos: bool = True, **extra) -> dict:
    entry = {
        "external_id": str(i),
        "name": f"Dog {i}",
        "fingerprint": f"fp-{i}",
        "description": f"Dog number {i} looking for a home.",
        "photos": [f"https://shelter.example/photos/{i}.jpg"] if photos else [],
    }
    entry.update(extra)
    return entry


def add_shelter(session: Session, listings: list[dict], slug: str = "happy-paws") -> Shelter:
    shelter = ShelterRepository(session).upsert(
        Shelter(
            slug=slug,
            name="Happy Paws",
            base_url="https://happy-paws.example/adopt",
            adapter="fixture",
            options={"listings": listings},
        )
    )
    session.commit()
    return shelter


def set_listings(session: Session, shelter: Shelter, listings: list[dict]) -> None:
    ShelterRepository(session).upsert(shelter.model_copy(update={"options": {"listings": listings}}))
    session.commit()


def add_stored(
    session: Session,
    shelter: Shelter,
    indices,
    status: ListingStatus = ListingStatus.AVAILABLE,
    last_seen_at: datetime = LONG_AGO,
) -> None:
    repo = ListingRepository(session)
    for i in indices:
        repo.upsert_by_fingerprint(
            Listing(
                shelter_id=shelter.id,
                external_id=str(i),
                fingerprint=f"fp-{i}",
                name=f"Dog {i}",
                status=status,
                last_seen_at=last_seen_at,
                created_at=last_seen_at,
                updated_at=last_seen_at,
            )
        )
    session.commit()


def request_for(shelter: Shelter, sync_run_id: str | None = None) -> ScrapeRequest:
    return ScrapeRequest(
        shelter_id=shelter.id,
        shelter_slug=shelter.slug,
        base_url=shelter.base_url,
        sync_run_id=sync_run_id,
    )


def make_engine(session, queue, enricher=None, now: datetime = NOW, **kwargs) -> ReconciliationEngine:
    return ReconciliationEngine(
        session,
        queue=queue,
        enricher=enricher,
        clock=lambda: now,
        **kwargs,
    )


def statuses(session: Session, shelter: Shelter) -> dict[str, ListingStatus]:
    return {l.fingerprint: l.status for l in ListingRepository(session).list_by_shelter(shelter.id)}


class TestFirstRun:
    """Tests for a run against an empty store."""

    @pytest.mark.asyncio
    async def test_inserts_new_listings_as_pending(self, session, queue) -> None:
        """Every scraped dog is stored once with pending status."""
        shelter = add_shelter(session, [dog(1), dog(2), dog(3, photos=False)])

        result = await make_engine(session, queue).run(request_for(shelter))

        assert result.dogs_added == 3
        assert result.dogs_updated == 0
        assert result.dogs_removed == 0
        assert set(statuses(session, shelter).values()) == {ListingStatus.PENDING}

    @pytest.mark.asyncio
    async def test_finalizes_run_and_records_shelter_sync(self, session, queue) -> None:
        """The run is closed and the shelter's last sync is stamped."""
        shelter = add_shelter(session, [dog(1)])

        result = await make_engine(session, queue).run(request_for(shelter))

        run = SyncRunRepository(session).get_by_id(result.sync_run_id)
        assert run.finished_at == NOW
        assert run.dogs_added == 1
        assert run.status == SyncRunStatus.SUCCESS

        stored = ShelterRepository(session).get_by_id(shelter.id)
        assert stored.last_sync == NOW
        assert stored.status == ShelterStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_emits_upsert_and_image_jobs(self, session, queue) -> None:
        """Each inserted dog gets an upsert job; only dogs with photos get an image job."""
        shelter = add_shelter(session, [dog(1), dog(2, photos=False)])

        result = await make_engine(session, queue).run(request_for(shelter))

        reindex = queue.payloads(REINDEX_QUEUE)
        assert [p["type"] for p in reindex] == ["upsert", "upsert"]
        assert all(p["metadata"]["shelterId"] == shelter.id for p in reindex)

        images = queue.payloads(IMAGE_QUEUE)
        assert len(images) == 1
        assert images[0]["urls"] == ["https://shelter.example/photos/1.jpg"]
        assert result.reindex_jobs == 2
        assert result.image_jobs == 1

    @pytest.mark.asyncio
    async def test_empty_scrape_of_empty_shelter(self, session, queue) -> None:
        """Nothing scraped and nothing stored is a clean, empty run."""
        shelter = add_shelter(session, [])

        result = await make_engine(session, queue).run(request_for(shelter))

        assert (result.dogs_added, result.dogs_updated, result.dogs_removed) == (0, 0, 0)
        assert result.breaker_tripped is False
        assert queue.sends == []


class TestIdempotence:
    """Tests for repeated runs over unchanged content."""

    @pytest.mark.asyncio
    async def test_second_identical_run_changes_nothing(self, session, queue) -> None:
        """A second run only refreshes the matched dogs."""
        shelter = add_shelter(session, [dog(1), dog(2), dog(3)])
        enricher = FakeEnricher()
        await make_engine(session, queue, enricher).run(request_for(shelter))
        calls_after_first = len(enricher.calls)
        sends_after_first = len(queue.sends)

        later = NOW + timedelta(hours=1)
        result = await make_engine(session, queue, enricher, now=later).run(request_for(shelter))

        assert result.dogs_added == 0
        assert result.dogs_updated == 3
        assert result.dogs_removed == 0
        assert len(enricher.calls) == calls_after_first
        assert len(queue.sends) == sends_after_first
        assert len(ListingRepository(session).list_by_shelter(shelter.id)) == 3

    @pytest.mark.asyncio
    async def test_heartbeat_refreshes_last_seen(self, session, queue) -> None:
        """Matched dogs get the run's time as last_seen_at."""
        shelter = add_shelter(session, [dog(1)])
        add_stored(session, shelter, [1], last_seen_at=NOW - timedelta(hours=5))

        await make_engine(session, queue).run(request_for(shelter))

        listing = ListingRepository(session).get_by_fingerprint("fp-1")
        assert listing.last_seen_at == NOW
        assert listing.status == ListingStatus.AVAILABLE

    @pytest.mark.asyncio
    async def test_duplicate_fingerprints_in_one_scrape(self, session, queue) -> None:
        """Repeated fingerprints within a scrape are stored once."""
        shelter = add_shelter(session, [dog(1), dog(1, name="Dog 1 again"), dog(2)])

        result = await make_engine(session, queue).run(request_for(shelter))

        assert result.dogs_added == 2
        assert ListingRepository(session).get_by_fingerprint("fp-1").name == "Dog 1"


class TestStaleSweep:
    """Tests for removal of listings that disappeared from the shelter."""

    @pytest.mark.asyncio
    async def test_removes_active_listings_past_window(self, session, queue) -> None:
        """Unseen dogs older than the window are removed with a delete job each."""
        shelter = add_shelter(session, [dog(1)])
        add_stored(session, shelter, [1, 2, 3])

        result = await make_engine(session, queue).run(request_for(shelter))

        assert result.dogs_removed == 2
        current = statuses(session, shelter)
        assert current["fp-1"] == ListingStatus.AVAILABLE
        assert current["fp-2"] == ListingStatus.REMOVED
        assert current["fp-3"] == ListingStatus.REMOVED

        deletes = [p for p in queue.payloads(REINDEX_QUEUE) if p["type"] == "delete"]
        assert len(deletes) == 2

    @pytest.mark.asyncio
    async def test_keeps_recently_seen_missing_listings(self, session, queue) -> None:
        """A dog missing from one scrape survives until the window passes."""
        shelter = add_shelter(session, [dog(1), dog(2)])
        add_stored(session, shelter, [1, 2])
        add_stored(session, shelter, [3], last_seen_at=NOW - timedelta(hours=2))

        result = await make_engine(session, queue).run(request_for(shelter))

        assert result.dogs_removed == 0
        assert statuses(session, shelter)["fp-3"] == ListingStatus.AVAILABLE

    @pytest.mark.asyncio
    async def test_leaves_curated_statuses_alone(self, session, queue) -> None:
        """Adopted and reserved dogs are never swept."""
        shelter = add_shelter(session, [dog(1)])
        add_stored(session, shelter, [1])
        add_stored(session, shelter, [2], status=ListingStatus.ADOPTED)
        add_stored(session, shelter, [3], status=ListingStatus.RESERVED)

        result = await make_engine(session, queue).run(request_for(shelter))

        assert result.dogs_removed == 0
        current = statuses(session, shelter)
        assert current["fp-2"] == ListingStatus.ADOPTED
        assert current["fp-3"] == ListingStatus.RESERVED

    @pytest.mark.asyncio
    async def test_failed_heartbeat_skips_sweep(self, session, queue, monkeypatch) -> None:
        """Dogs present in the scrape are never removed because their refresh failed."""
        shelter = add_shelter(session, [dog(1), dog(2), dog(3)])
        add_stored(session, shelter, [1, 2, 3])

        def locked(self, listing_ids, now):
            raise OperationalError("UPDATE listings", {}, Exception("database is locked"))

        monkeypatch.setattr(ListingRepository, "heartbeat", locked)

        result = await make_engine(session, queue).run(request_for(shelter))

        assert result.dogs_removed == 0
        assert result.dogs_updated == 0
        assert set(statuses(session, shelter).values()) == {ListingStatus.AVAILABLE}
        assert not [p for p in queue.payloads(REINDEX_QUEUE) if p["type"] == "delete"]
        assert "stale sweep skipped: heartbeat of matched listings failed" in result.errors

        run = SyncRunRepository(session).get_by_id(result.sync_run_id)
        assert run.status == SyncRunStatus.ERROR


class TestCircuitBreaker:
    """Tests for the mass-removal guard."""

    @pytest.mark.asyncio
    async def test_trips_on_collapsed_scrape(self, session, queue) -> None:
        """20 of 100 scraped trips the breaker and removes nothing."""
        shelter = add_shelter(session, [dog(i) for i in range(20)])
        add_stored(session, shelter, range(100))

        result = await make_engine(session, queue).run(request_for(shelter))

        assert result.breaker_tripped is True
        assert result.dogs_removed == 0
        assert "circuit breaker: scraped 20 of 100 expected (<30%)" in result.errors
        assert ListingStatus.REMOVED not in statuses(session, shelter).values()

        run = SyncRunRepository(session).get_by_id(result.sync_run_id)
        assert "circuit breaker: scraped 20 of 100 expected (<30%)" in run.errors
        assert run.dogs_updated == 20

    @pytest.mark.asyncio
    async def test_half_scrape_still_removes(self, session, queue) -> None:
        """50 of 100 scraped is below the warning level but above the trip ratio."""
        shelter = add_shelter(session, [dog(i) for i in range(50)])
        add_stored(session, shelter, range(100))

        result = await make_engine(session, queue).run(request_for(shelter))

        assert result.breaker_tripped is False
        assert result.dogs_removed == 50
        assert result.errors == []

    @pytest.mark.asyncio
    async def test_not_sticky(self, session, queue) -> None:
        """A full scrape after a tripped run sweeps normally."""
        shelter = add_shelter(session, [])
        add_stored(session, shelter, range(10))

        tripped = await make_engine(session, queue).run(request_for(shelter))
        assert tripped.breaker_tripped is True

        set_listings(session, shelter, [dog(i) for i in range(5)])
        result = await make_engine(session, queue).run(request_for(shelter))

        assert result.breaker_tripped is False
        assert result.dogs_removed == 5


class TestResurrection:
    """Tests for removed dogs that reappear."""

    @pytest.mark.asyncio
    async def test_removed_listing_becomes_available(self, session, queue) -> None:
        """A fingerprint match flips removed back to available without enrichment."""
        shelter = add_shelter(session, [dog(1)])
        add_stored(session, shelter, [1], status=ListingStatus.REMOVED)
        enricher = FakeEnricher()

        result = await make_engine(session, queue, enricher).run(request_for(shelter))

        assert result.resurrected == 1
        assert result.dogs_added == 0
        assert result.dogs_updated == 1
        assert enricher.calls == []
        assert statuses(session, shelter)["fp-1"] == ListingStatus.AVAILABLE

    @pytest.mark.asyncio
    async def test_resurrection_sends_no_reindex_job(self, session, queue) -> None:
        """Reappearing dogs are not re-sent for indexing."""
        shelter = add_shelter(session, [dog(1)])
        add_stored(session, shelter, [1], status=ListingStatus.REMOVED)

        result = await make_engine(session, queue).run(request_for(shelter))

        assert result.reindex_jobs == 0
        assert queue.payloads(REINDEX_QUEUE) == []


class TestEnrichment:
    """Tests for enrichment of new listings during a run."""

    @pytest.mark.asyncio
    async def test_full_enrichment_merges_all_stages(self, session, queue) -> None:
        """Text, photo and bio results all land on the stored listing."""
        shelter = add_shelter(session, [dog(1)])

        result = await make_engine(session, queue, FakeEnricher()).run(request_for(shelter))

        listing = ListingRepository(session).get_by_fingerprint("fp-1")
        assert result.partially_enriched == 0
        assert listing.personality_tags == ["friendly", "calm"]
        assert listing.breed_estimates[0].breed == "husky"
        assert listing.fur_length == FurLength.LONG
        assert listing.location_city == "Kraków"
        assert listing.generated_bio == "Dog 1 czeka na dom."

    @pytest.mark.asyncio
    async def test_photo_failure_keeps_text_and_bio(self, session, queue) -> None:
        """A failed photo stage leaves visual fields null and the rest intact."""
        shelter = add_shelter(session, [dog(1)])

        result = await make_engine(session, queue, FakeEnricher(fail_photos=True)).run(request_for(shelter))

        listing = ListingRepository(session).get_by_fingerprint("fp-1")
        assert result.dogs_added == 1
        assert result.partially_enriched == 1
        assert listing.fur_length is None
        assert listing.color_primary is None
        assert listing.breed_estimates[0].breed == "mixed"
        assert listing.generated_bio is not None

    @pytest.mark.asyncio
    async def test_text_failure_skips_bio_and_uses_fallbacks(self, session, queue) -> None:
        """Without text attributes the bio is not generated and adapter fields are kept."""
        shelter = add_shelter(session, [dog(1, size="large", location_city="Gdańsk", urgent=True)])
        enricher = FakeEnricher(fail_text=True)

        result = await make_engine(session, queue, enricher).run(request_for(shelter))

        listing = ListingRepository(session).get_by_fingerprint("fp-1")
        assert result.dogs_added == 1
        assert "generate" not in enricher.calls
        assert listing.generated_bio is None
        assert listing.location_city == "Gdańsk"
        assert listing.size_estimate.value.value == "large"
        assert listing.urgent is True

    @pytest.mark.asyncio
    async def test_enrichment_failures_are_not_run_errors(self, session, queue) -> None:
        """Partially enriched dogs count as added, not failed."""
        shelter = add_shelter(session, [dog(1), dog(2)])
        enricher = FakeEnricher(fail_text=True, fail_photos=True)

        result = await make_engine(session, queue, enricher).run(request_for(shelter))

        assert result.dogs_added == 2
        assert result.failed == 0
        assert result.error_message is None

    @pytest.mark.asyncio
    async def test_concurrency_is_bounded(self, session, queue) -> None:
        """No more than ai_concurrency dogs are enriched at once."""
        shelter = add_shelter(session, [dog(i, photos=False) for i in range(8)])
        enricher = FakeEnricher(delay=0.01)

        await make_engine(
            session, queue, enricher, settings=SyncSettings(ai_concurrency=2)
        ).run(request_for(shelter))

        assert enricher.calls.count("extract") == 8
        assert enricher.max_in_flight <= 2


class TestFanOut:
    """Tests for batched job fan-out."""

    @pytest.mark.asyncio
    async def test_reindex_sends_are_batched(self, session, queue) -> None:
        """150 inserts and 70 removals go out in ceil(220 / 100) sends."""
        shelter = add_shelter(session, [dog(i, photos=False) for i in range(1000, 1150)])
        add_stored(session, shelter, range(70))

        result = await make_engine(session, queue).run(request_for(shelter))

        assert result.dogs_added == 150
        assert result.dogs_removed == 70
        batches = queue.batches(REINDEX_QUEUE)
        assert len(batches) == math.ceil((150 + 70) / 100)
        assert all(len(batch) <= 100 for batch in batches)
        assert sum(len(batch) for batch in batches) == 220

    @pytest.mark.asyncio
    async def test_failed_send_is_recorded_and_rest_still_sent(self, session) -> None:
        """A failed batch becomes a run error; persisted dogs stay."""
        queue = InMemoryJobQueue(fail_on={1})
        shelter = add_shelter(session, [dog(i, photos=False) for i in range(150)])

        result = await make_engine(session, queue).run(request_for(shelter))

        assert result.dogs_added == 150
        assert len(queue.batches(REINDEX_QUEUE)) == 1
        assert any("reindex" in error for error in result.errors)
        assert len(ListingRepository(session).list_by_shelter(shelter.id)) == 150


class TestFailures:
    """Tests for aborted and partially failed runs."""

    @pytest.mark.asyncio
    async def test_transform_failure_skips_only_that_listing(self, session, queue) -> None:
        """A listing that cannot be normalized is counted and reported."""
        shelter = add_shelter(session, [dog(1), dog(2, sex="robot")])

        result = await make_engine(session, queue).run(request_for(shelter))

        assert result.dogs_added == 1
        assert result.failed == 1
        assert result.errors[0].startswith("fp-2: ")
        assert result.error_message == "1 dog(s) failed processing"

        run = SyncRunRepository(session).get_by_id(result.sync_run_id)
        assert run.status == SyncRunStatus.ERROR

    @pytest.mark.asyncio
    async def test_collected_errors_are_capped(self, session, queue) -> None:
        """Only the first 20 errors are stored on the run."""
        shelter = add_shelter(session, [dog(i, sex="robot") for i in range(25)])

        result = await make_engine(session, queue).run(request_for(shelter))

        run = SyncRunRepository(session).get_by_id(result.sync_run_id)
        assert result.failed == 25
        assert len(result.errors) == 20
        assert len(run.errors) == 20
        assert run.errors[0].startswith("fp-0: ")
        assert run.error_message == "25 dog(s) failed processing"

    @pytest.mark.asyncio
    async def test_insert_failure_skips_only_that_listing(self, session, queue, monkeypatch) -> None:
        """A failed write drops one dog; the rest persist and the run completes."""
        shelter = add_shelter(session, [dog(1), dog(2), dog(3)])
        upsert = ListingRepository.upsert_by_fingerprint

        def failing_upsert(self, listing):
            if listing.fingerprint == "fp-2":
                raise OperationalError("INSERT INTO listings", {}, Exception("database is locked"))
            return upsert(self, listing)

        monkeypatch.setattr(ListingRepository, "upsert_by_fingerprint", failing_upsert)

        result = await make_engine(session, queue).run(request_for(shelter))

        assert set(statuses(session, shelter)) == {"fp-1", "fp-3"}
        assert result.dogs_added == 2
        assert result.failed == 1
        assert result.error_message == "1 dog(s) failed processing"
        assert result.errors[0].startswith("fp-2: ")

        run = SyncRunRepository(session).get_by_id(result.sync_run_id)
        assert run.finished_at == NOW
        assert run.dogs_added == 2
        assert run.error_message == "1 dog(s) failed processing"

        stored_ids = {l.id for l in ListingRepository(session).list_by_shelter(shelter.id)}
        upserted = {p["dogId"] for p in queue.payloads(REINDEX_QUEUE) if p["type"] == "upsert"}
        assert upserted == stored_ids
        assert len(queue.payloads(IMAGE_QUEUE)) == 2

    @pytest.mark.asyncio
    async def test_scrape_failure_finalizes_run_and_reraises(self, session, queue) -> None:
        """A fetch failure closes the run, marks the shelter and propagates."""

        class BrokenAdapter(FixtureAdapter):
            async def fetch(self, config):
                raise ScrapeError("HTTP 503", shelter_id=config.shelter_id, operation="fetch")

        shelter = add_shelter(session, [dog(1)])
        add_stored(session, shelter, [1, 2])
        engine = make_engine(session, queue, adapter_factory=lambda name, options: BrokenAdapter(options))

        with pytest.raises(ScrapeError):
            await engine.run(request_for(shelter))

        runs = SyncRunRepository(session).list_recent(shelter.id)
        assert len(runs) == 1
        assert runs[0].finished_at is not None
        assert "HTTP 503" in runs[0].error_message

        stored = ShelterRepository(session).get_by_id(shelter.id)
        assert stored.status == ShelterStatus.ERROR
        assert stored.last_sync is None
        assert set(statuses(session, shelter).values()) == {ListingStatus.AVAILABLE}
        assert queue.sends == []

    @pytest.mark.asyncio
    async def test_unexpected_adapter_error_becomes_scrape_error(self, session, queue) -> None:
        """Unclassified adapter exceptions are wrapped as retryable scrape errors."""

        class CrashingAdapter(FixtureAdapter):
            def parse(self, raw, config):
                raise KeyError("listings")

        shelter = add_shelter(session, [dog(1)])
        engine = make_engine(session, queue, adapter_factory=lambda name, options: CrashingAdapter(options))

        with pytest.raises(ScrapeError) as exc_info:
            await engine.run(request_for(shelter))

        assert exc_info.value.retryable is True
        assert isinstance(exc_info.value.cause, KeyError)

    @pytest.mark.asyncio
    async def test_unknown_shelter_is_not_retryable(self, session, queue) -> None:
        """A request for a shelter not in the store fails without a run."""
        request = ScrapeRequest(shelter_id="missing", shelter_slug="nowhere", base_url="https://x.example")

        with pytest.raises(SyncError) as exc_info:
            await make_engine(session, queue).run(request)

        assert exc_info.value.retryable is False
        assert SyncRunRepository(session).list_recent() == []

    @pytest.mark.asyncio
    async def test_unknown_adapter_creates_no_run(self, session, queue) -> None:
        """An unregistered adapter is rejected before any run is opened."""
        shelter = ShelterRepository(session).upsert(
            Shelter(slug="odd", base_url="https://odd.example", adapter="carrier-pigeon")
        )
        session.commit()

        with pytest.raises(UnknownAdapterError):
            await make_engine(session, queue).run(request_for(shelter))

        assert SyncRunRepository(session).list_recent() == []


class TestRunIdentity:
    """Tests for sync run reuse across deliveries."""

    @pytest.mark.asyncio
    async def test_reuses_open_run(self, session, queue) -> None:
        """A pre-created open run is the one the engine finalizes."""
        shelter = add_shelter(session, [dog(1)])
        SyncRunRepository(session).create_if_missing(SyncRun(id="run-1", shelter_id=shelter.id, started_at=NOW))
        session.commit()

        result = await make_engine(session, queue).run(request_for(shelter, sync_run_id="run-1"))

        assert result.sync_run_id == "run-1"
        assert SyncRunRepository(session).get_by_id("run-1").finished_at == NOW

    @pytest.mark.asyncio
    async def test_redelivery_of_finished_run_opens_new_run(self, session, queue) -> None:
        """A finished run is never reopened or overwritten."""
        shelter = add_shelter(session, [dog(1)])
        first = await make_engine(session, queue).run(request_for(shelter, sync_run_id="run-1"))
        assert first.sync_run_id == "run-1"

        later = NOW + timedelta(minutes=5)
        second = await make_engine(session, queue, now=later).run(request_for(shelter, sync_run_id="run-1"))

        assert second.sync_run_id != "run-1"
        original = SyncRunRepository(session).get_by_id("run-1")
        assert original.finished_at == NOW
        assert original.dogs_added == 1
        assert SyncRunRepository(session).get_by_id(second.sync_run_id).dogs_added == 0
