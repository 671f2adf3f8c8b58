"""Repository classes for shelter, listing and sync run persistence."""

import json
from datetime import datetime
from typing import Iterable

from sqlalchemy import func, or_, select, update
from sqlalchemy.orm import Session

from dogpile_sync.core.enums import ACTIVE_STATUSES, ListingStatus, ShelterStatus
from dogpile_sync.core.schema import (
    AgeEstimate,
    BreedEstimate,
    Listing,
    Shelter,
    SizeEstimate,
    SyncRun,
    WeightEstimate,
    utc_now,
)
from dogpile_sync.db.models import ApiCostDB, ListingDB, ShelterDB, SyncRunDB

# Keeps IN (...) clauses under SQLite's bound-variable limit.
ID_CHUNK_SIZE = 500

_ACTIVE_STATUS_VALUES = [s.value for s in ACTIVE_STATUSES]


def _chunks(items: list[str], size: int = ID_CHUNK_SIZE) -> Iterable[list[str]]:
    for i in range(0, len(items), size):
        yield items[i : i + size]


def _dump_model(value) -> str | None:
    return value.model_dump_json() if value is not None else None


# ============================================================================
# Shelters
# ============================================================================


class ShelterRepository:
    """Repository for Shelter operations."""

    def __init__(self, session: Session):
        self.session = session

    def get_by_id(self, shelter_id: str) -> Shelter | None:
        db_item = self.session.get(ShelterDB, shelter_id)
        return self._to_domain(db_item) if db_item else None

    def get_by_slug(self, slug: str) -> Shelter | None:
        stmt = select(ShelterDB).where(ShelterDB.slug == slug)
        db_item = self.session.execute(stmt).scalar_one_or_none()
        return self._to_domain(db_item) if db_item else None

    def list_all(self, active_only: bool = False) -> list[Shelter]:
        stmt = select(ShelterDB).order_by(ShelterDB.slug)
        if active_only:
            stmt = stmt.where(ShelterDB.active.is_(True))
        return [self._to_domain(s) for s in self.session.execute(stmt).scalars().all()]

    def list_due(self, threshold: datetime) -> list[Shelter]:
        """Active shelters never synced or last synced before ``threshold``."""
        stmt = (
            select(ShelterDB)
            .where(ShelterDB.active.is_(True))
            .where(or_(ShelterDB.last_sync.is_(None), ShelterDB.last_sync < threshold))
            .order_by(ShelterDB.slug)
        )
        return [self._to_domain(s) for s in self.session.execute(stmt).scalars().all()]

    def upsert(self, shelter: Shelter) -> Shelter:
        """Create a shelter or update the registration fields of an existing slug."""
        stmt = select(ShelterDB).where(ShelterDB.slug == shelter.slug)
        db_item = self.session.execute(stmt).scalar_one_or_none()
        if db_item is None:
            db_item = ShelterDB(
                id=shelter.id,
                slug=shelter.slug,
                status=shelter.status.value,
                last_sync=shelter.last_sync,
            )
            self.session.add(db_item)

        db_item.name = shelter.name
        db_item.base_url = shelter.base_url
        db_item.city = shelter.city
        db_item.adapter = shelter.adapter
        db_item.options_json = json.dumps(shelter.options)
        db_item.active = shelter.active
        self.session.flush()
        return self._to_domain(db_item)

    def record_sync(self, shelter_id: str, last_sync: datetime, status: ShelterStatus) -> None:
        """Record the outcome of a run; the only shelter fields the engine writes."""
        self.session.execute(
            update(ShelterDB)
            .where(ShelterDB.id == shelter_id)
            .values(last_sync=last_sync, status=status.value)
        )

    def _to_domain(self, db_item: ShelterDB) -> Shelter:
        return Shelter(
            id=db_item.id,
            slug=db_item.slug,
            name=db_item.name,
            base_url=db_item.base_url,
            city=db_item.city,
            adapter=db_item.adapter,
            options=json.loads(db_item.options_json or "{}"),
            active=db_item.active,
            status=ShelterStatus(db_item.status),
            last_sync=db_item.last_sync,
        )


# ============================================================================
# Listings
# ============================================================================


class ListingRepository:
    """Repository for Listing operations."""

    # Fields an upsert may overwrite on a fingerprint conflict. Lifecycle
    # fields (status, last_seen_at, created_at) are owned by the engine.
    _CONTENT_FIELDS = (
        "external_id", "name", "raw_description", "source_url", "sex",
        "photos_json", "location_name", "location_city", "is_foster",
        "breed_estimates_json", "size_estimate_json", "age_estimate_json",
        "weight_estimate_json", "personality_tags_json", "vaccinated",
        "sterilized", "chipped", "good_with_kids", "good_with_dogs",
        "good_with_cats", "fur_length", "fur_type", "color_primary",
        "color_secondary", "color_pattern", "ear_type", "tail_type",
        "generated_bio", "urgent",
    )

    def __init__(self, session: Session):
        self.session = session

    def get_by_id(self, listing_id: str) -> Listing | None:
        db_item = self.session.get(ListingDB, listing_id)
        return self._to_domain(db_item) if db_item else None

    def get_by_fingerprint(self, fingerprint: str) -> Listing | None:
        stmt = select(ListingDB).where(ListingDB.fingerprint == fingerprint)
        db_item = self.session.execute(stmt).scalar_one_or_none()
        return self._to_domain(db_item) if db_item else None

    def list_by_shelter(self, shelter_id: str) -> list[Listing]:
        """All listings of a shelter, whatever their status."""
        stmt = select(ListingDB).where(ListingDB.shelter_id == shelter_id)
        return [self._to_domain(d) for d in self.session.execute(stmt).scalars().all()]

    def count_by_status(self, shelter_id: str | None = None) -> dict[str, int]:
        stmt = select(ListingDB.status, func.count()).group_by(ListingDB.status)
        if shelter_id is not None:
            stmt = stmt.where(ListingDB.shelter_id == shelter_id)
        return {status: count for status, count in self.session.execute(stmt).all()}

    def upsert_by_fingerprint(self, listing: Listing) -> tuple[Listing, bool]:
        """
        Insert a listing, or update content of the row holding its fingerprint.

        Safe under redelivery: a second call with the same fingerprint never
        creates a duplicate and never touches the stored status.

        Returns:
            Tuple of (stored listing, True if a new row was created).
        """
        stmt = select(ListingDB).where(ListingDB.fingerprint == listing.fingerprint)
        db_item = self.session.execute(stmt).scalar_one_or_none()
        incoming = self._to_db(listing)

        if db_item is None:
            self.session.add(incoming)
            self.session.flush()
            return self._to_domain(incoming), True

        for field_name in self._CONTENT_FIELDS:
            setattr(db_item, field_name, getattr(incoming, field_name))
        db_item.updated_at = listing.updated_at
        self.session.flush()
        return self._to_domain(db_item), False

    def heartbeat(self, listing_ids: list[str], now: datetime) -> int:
        """
        Refresh ``last_seen_at`` and resurrect removed listings.

        Returns:
            Number of listings moved from removed back to available.
        """
        resurrected = 0
        for chunk in _chunks(listing_ids):
            result = self.session.execute(
                update(ListingDB)
                .where(ListingDB.id.in_(chunk))
                .where(ListingDB.status == ListingStatus.REMOVED.value)
                .values(status=ListingStatus.AVAILABLE.value, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            resurrected += result.rowcount or 0
            self.session.execute(
                update(ListingDB)
                .where(ListingDB.id.in_(chunk))
                .values(last_seen_at=now)
                .execution_options(synchronize_session=False)
            )
        return resurrected

    def find_stale(self, shelter_id: str, cutoff: datetime) -> list[str]:
        """Ids of active listings not seen since ``cutoff``."""
        stmt = (
            select(ListingDB.id)
            .where(ListingDB.shelter_id == shelter_id)
            .where(ListingDB.status.in_(_ACTIVE_STATUS_VALUES))
            .where(ListingDB.last_seen_at < cutoff)
            .order_by(ListingDB.last_seen_at)
        )
        return list(self.session.execute(stmt).scalars().all())

    def mark_removed(self, listing_ids: list[str], now: datetime) -> int:
        removed = 0
        for chunk in _chunks(listing_ids):
            result = self.session.execute(
                update(ListingDB)
                .where(ListingDB.id.in_(chunk))
                .where(ListingDB.status.in_(_ACTIVE_STATUS_VALUES))
                .values(status=ListingStatus.REMOVED.value, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            removed += result.rowcount or 0
        return removed

    def set_status(self, listing_id: str, status: ListingStatus, now: datetime | None = None) -> Listing:
        """Explicit curation of a listing's status."""
        db_item = self.session.get(ListingDB, listing_id)
        if db_item is None:
            raise ValueError(f"Listing with id {listing_id} not found")
        db_item.status = status.value
        db_item.updated_at = now or utc_now()
        self.session.flush()
        return self._to_domain(db_item)

    def update_photos(self, listing_id: str, photos: list[str]) -> None:
        db_item = self.session.get(ListingDB, listing_id)
        if db_item is None:
            raise ValueError(f"Listing with id {listing_id} not found")
        db_item.photos_json = json.dumps(photos)
        db_item.updated_at = utc_now()
        self.session.flush()

    def _to_db(self, listing: Listing) -> ListingDB:
        return ListingDB(
            id=listing.id,
            shelter_id=listing.shelter_id,
            external_id=listing.external_id,
            fingerprint=listing.fingerprint,
            status=listing.status.value,
            last_seen_at=listing.last_seen_at,
            created_at=listing.created_at,
            updated_at=listing.updated_at,
            name=listing.name,
            raw_description=listing.raw_description,
            source_url=listing.source_url,
            sex=listing.sex.value if listing.sex else None,
            photos_json=json.dumps(listing.photos),
            location_name=listing.location_name,
            location_city=listing.location_city,
            is_foster=listing.is_foster,
            breed_estimates_json=json.dumps([b.model_dump() for b in listing.breed_estimates]),
            size_estimate_json=_dump_model(listing.size_estimate),
            age_estimate_json=_dump_model(listing.age_estimate),
            weight_estimate_json=_dump_model(listing.weight_estimate),
            personality_tags_json=json.dumps(listing.personality_tags),
            vaccinated=listing.vaccinated,
            sterilized=listing.sterilized,
            chipped=listing.chipped,
            good_with_kids=listing.good_with_kids,
            good_with_dogs=listing.good_with_dogs,
            good_with_cats=listing.good_with_cats,
            fur_length=listing.fur_length.value if listing.fur_length else None,
            fur_type=listing.fur_type.value if listing.fur_type else None,
            color_primary=listing.color_primary,
            color_secondary=listing.color_secondary,
            color_pattern=listing.color_pattern.value if listing.color_pattern else None,
            ear_type=listing.ear_type.value if listing.ear_type else None,
            tail_type=listing.tail_type.value if listing.tail_type else None,
            generated_bio=listing.generated_bio,
            urgent=listing.urgent,
        )

    def _to_domain(self, db_item: ListingDB) -> Listing:
        return Listing(
            id=db_item.id,
            shelter_id=db_item.shelter_id,
            external_id=db_item.external_id,
            fingerprint=db_item.fingerprint,
            status=ListingStatus(db_item.status),
            last_seen_at=db_item.last_seen_at,
            created_at=db_item.created_at,
            updated_at=db_item.updated_at,
            name=db_item.name,
            raw_description=db_item.raw_description or "",
            source_url=db_item.source_url,
            sex=db_item.sex,
            photos=json.loads(db_item.photos_json or "[]"),
            location_name=db_item.location_name,
            location_city=db_item.location_city,
            is_foster=db_item.is_foster,
            breed_estimates=[
                BreedEstimate.model_validate(b) for b in json.loads(db_item.breed_estimates_json or "[]")
            ],
            size_estimate=(
                SizeEstimate.model_validate_json(db_item.size_estimate_json)
                if db_item.size_estimate_json
                else None
            ),
            age_estimate=(
                AgeEstimate.model_validate_json(db_item.age_estimate_json)
                if db_item.age_estimate_json
                else None
            ),
            weight_estimate=(
                WeightEstimate.model_validate_json(db_item.weight_estimate_json)
                if db_item.weight_estimate_json
                else None
            ),
            personality_tags=json.loads(db_item.personality_tags_json or "[]"),
            vaccinated=db_item.vaccinated,
            sterilized=db_item.sterilized,
            chipped=db_item.chipped,
            good_with_kids=db_item.good_with_kids,
            good_with_dogs=db_item.good_with_dogs,
            good_with_cats=db_item.good_with_cats,
            fur_length=db_item.fur_length,
            fur_type=db_item.fur_type,
            color_primary=db_item.color_primary,
            color_secondary=db_item.color_secondary,
            color_pattern=db_item.color_pattern,
            ear_type=db_item.ear_type,
            tail_type=db_item.tail_type,
            generated_bio=db_item.generated_bio,
            urgent=bool(db_item.urgent),
        )


# ============================================================================
# Sync Runs
# ============================================================================


class SyncRunRepository:
    """Repository for SyncRun bookkeeping."""

    def __init__(self, session: Session):
        self.session = session

    def get_by_id(self, run_id: str) -> SyncRun | None:
        db_item = self.session.get(SyncRunDB, run_id)
        return self._to_domain(db_item) if db_item else None

    def create_if_missing(self, run: SyncRun) -> SyncRun:
        """Insert an open run; an existing row with the same id is left as is."""
        db_item = self.session.get(SyncRunDB, run.id)
        if db_item is None:
            db_item = SyncRunDB(
                id=run.id,
                shelter_id=run.shelter_id,
                started_at=run.started_at,
                finished_at=None,
                dogs_added=0,
                dogs_updated=0,
                dogs_removed=0,
                errors_json="[]",
                error_message=None,
            )
            self.session.add(db_item)
            self.session.flush()
        return self._to_domain(db_item)

    def update_progress(self, run_id: str, dogs_added: int, dogs_updated: int) -> None:
        self.session.execute(
            update(SyncRunDB)
            .where(SyncRunDB.id == run_id)
            .where(SyncRunDB.finished_at.is_(None))
            .values(dogs_added=dogs_added, dogs_updated=dogs_updated)
        )

    def finish(
        self,
        run_id: str,
        finished_at: datetime,
        dogs_added: int = 0,
        dogs_updated: int = 0,
        dogs_removed: int = 0,
        errors: list[str] | None = None,
        error_message: str | None = None,
    ) -> bool:
        """
        Finalize a run.

        The update only applies while ``finished_at`` is null, so a run is
        finalized exactly once whoever gets there first.

        Returns:
            True if this call finalized the run.
        """
        result = self.session.execute(
            update(SyncRunDB)
            .where(SyncRunDB.id == run_id)
            .where(SyncRunDB.finished_at.is_(None))
            .values(
                finished_at=finished_at,
                dogs_added=dogs_added,
                dogs_updated=dogs_updated,
                dogs_removed=dogs_removed,
                errors_json=json.dumps(errors or []),
                error_message=error_message,
            )
        )
        return (result.rowcount or 0) == 1

    def finish_stale(self, cutoff: datetime, message: str, now: datetime) -> list[str]:
        """
        Force-finish open runs started before ``cutoff``.

        Returns:
            Ids of the runs finalized by this call.
        """
        stmt = (
            select(SyncRunDB)
            .where(SyncRunDB.finished_at.is_(None))
            .where(SyncRunDB.started_at < cutoff)
        )
        finished: list[str] = []
        for db_item in self.session.execute(stmt).scalars().all():
            errors = json.loads(db_item.errors_json or "[]")
            errors.append(message)
            result = self.session.execute(
                update(SyncRunDB)
                .where(SyncRunDB.id == db_item.id)
                .where(SyncRunDB.finished_at.is_(None))
                .values(finished_at=now, errors_json=json.dumps(errors), error_message=message)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount:
                finished.append(db_item.id)
        return finished

    def list_recent(self, shelter_id: str | None = None, limit: int = 20) -> list[SyncRun]:
        stmt = select(SyncRunDB).order_by(SyncRunDB.started_at.desc()).limit(limit)
        if shelter_id is not None:
            stmt = stmt.where(SyncRunDB.shelter_id == shelter_id)
        return [self._to_domain(r) for r in self.session.execute(stmt).scalars().all()]

    def latest_for_shelter(self, shelter_id: str) -> SyncRun | None:
        runs = self.list_recent(shelter_id=shelter_id, limit=1)
        return runs[0] if runs else None

    def _to_domain(self, db_item: SyncRunDB) -> SyncRun:
        return SyncRun(
            id=db_item.id,
            shelter_id=db_item.shelter_id,
            started_at=db_item.started_at,
            finished_at=db_item.finished_at,
            dogs_added=db_item.dogs_added or 0,
            dogs_updated=db_item.dogs_updated or 0,
            dogs_removed=db_item.dogs_removed or 0,
            errors=json.loads(db_item.errors_json or "[]"),
            error_message=db_item.error_message,
        )


# ============================================================================
# API Costs
# ============================================================================


class ApiCostRepository:
    """Repository for AI usage accounting."""

    def __init__(self, session: Session):
        self.session = session

    def log(
        self,
        operation: str,
        model: str,
        input_tokens: int,
        output_tokens: int,
        cost_usd: float,
        created_at: datetime | None = None,
    ) -> None:
        self.session.add(
            ApiCostDB(
                operation=operation,
                model=model,
                input_tokens=input_tokens,
                output_tokens=output_tokens,
                cost_usd=cost_usd,
                created_at=created_at or utc_now(),
            )
        )
        self.session.flush()

    def total_cost(self, since: datetime | None = None) -> float:
        stmt = select(func.coalesce(func.sum(ApiCostDB.cost_usd), 0.0))
        if since is not None:
            stmt = stmt.where(ApiCostDB.created_at >= since)
        return float(self.session.execute(stmt).scalar() or 0.0)
