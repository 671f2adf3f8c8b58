"""SQLAlchemy ORM models for the dogpile sync store.

Tables:
- shelters (listing sources)
- listings (adoptable dogs, keyed for reconciliation by fingerprint)
- sync_runs (one row per engine run)
- api_costs (token usage of enrichment calls)
"""

from datetime import datetime
from uuid import uuid4

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from dogpile_sync.core.schema import utc_now


def _generate_uuid() -> str:
    """Generate a UUID string."""
    return str(uuid4())


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class ShelterDB(Base):
    """Database model for shelters (listing sources)."""

    __tablename__ = "shelters"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_generate_uuid)
    slug: Mapped[str] = mapped_column(String(100), nullable=False, unique=True, index=True)
    name: Mapped[str] = mapped_column(String(255), default="")
    base_url: Mapped[str] = mapped_column(String(500), nullable=False)
    city: Mapped[str] = mapped_column(String(100), default="")
    adapter: Mapped[str] = mapped_column(String(100), default="fixture")
    options_json: Mapped[str] = mapped_column(Text, default="{}")  # JSON object
    active: Mapped[bool] = mapped_column(Boolean, default=True)
    status: Mapped[str] = mapped_column(String(20), default="active", index=True)
    last_sync: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    def __repr__(self) -> str:
        return f"<ShelterDB(id={self.id}, slug='{self.slug}')>"


class ListingDB(Base):
    """
    Database model for adoptable-dog listings.

    ``fingerprint`` is globally unique and is the only key used for diffing;
    ``(shelter_id, external_id)`` is indexed but deliberately not unique.
    """

    __tablename__ = "listings"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_generate_uuid)
    shelter_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("shelters.id", ondelete="CASCADE"), nullable=False, index=True
    )
    external_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    fingerprint: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    status: Mapped[str] = mapped_column(String(20), default="pending", index=True)
    last_seen_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now)

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    raw_description: Mapped[str] = mapped_column(Text, default="")
    source_url: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    sex: Mapped[str | None] = mapped_column(String(10), nullable=True)
    photos_json: Mapped[str] = mapped_column(Text, default="[]")  # JSON array
    location_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    location_city: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)
    is_foster: Mapped[bool | None] = mapped_column(Boolean, nullable=True)

    # Enrichment
    breed_estimates_json: Mapped[str] = mapped_column(Text, default="[]")  # JSON array
    size_estimate_json: Mapped[str | None] = mapped_column(Text, nullable=True)
    age_estimate_json: Mapped[str | None] = mapped_column(Text, nullable=True)
    weight_estimate_json: Mapped[str | None] = mapped_column(Text, nullable=True)
    personality_tags_json: Mapped[str] = mapped_column(Text, default="[]")  # JSON array
    vaccinated: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    sterilized: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    chipped: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    good_with_kids: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    good_with_dogs: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    good_with_cats: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    fur_length: Mapped[str | None] = mapped_column(String(20), nullable=True)
    fur_type: Mapped[str | None] = mapped_column(String(20), nullable=True)
    color_primary: Mapped[str | None] = mapped_column(String(50), nullable=True)
    color_secondary: Mapped[str | None] = mapped_column(String(50), nullable=True)
    color_pattern: Mapped[str | None] = mapped_column(String(20), nullable=True)
    ear_type: Mapped[str | None] = mapped_column(String(20), nullable=True)
    tail_type: Mapped[str | None] = mapped_column(String(20), nullable=True)
    generated_bio: Mapped[str | None] = mapped_column(Text, nullable=True)
    urgent: Mapped[bool] = mapped_column(Boolean, default=False, index=True)

    def __repr__(self) -> str:
        return f"<ListingDB(id={self.id}, name='{self.name}', status={self.status})>"


class SyncRunDB(Base):
    """Database model for sync runs. ``finished_at`` is null while in flight."""

    __tablename__ = "sync_runs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_generate_uuid)
    shelter_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("shelters.id", ondelete="CASCADE"), nullable=False, index=True
    )
    started_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, index=True)
    finished_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    dogs_added: Mapped[int] = mapped_column(Integer, default=0)
    dogs_updated: Mapped[int] = mapped_column(Integer, default=0)
    dogs_removed: Mapped[int] = mapped_column(Integer, default=0)
    errors_json: Mapped[str] = mapped_column(Text, default="[]")  # JSON array
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<SyncRunDB(id={self.id}, shelter_id={self.shelter_id}, finished={self.finished_at is not None})>"


class ApiCostDB(Base):
    """Token usage and estimated cost of one AI call."""

    __tablename__ = "api_costs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_generate_uuid)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, index=True)
    operation: Mapped[str] = mapped_column(String(50), nullable=False)
    model: Mapped[str] = mapped_column(String(100), nullable=False)
    input_tokens: Mapped[int] = mapped_column(Integer, default=0)
    output_tokens: Mapped[int] = mapped_column(Integer, default=0)
    cost_usd: Mapped[float] = mapped_column(Float, default=0.0)

    def __repr__(self) -> str:
        return f"<ApiCostDB(operation={self.operation}, model={self.model}, cost={self.cost_usd})>"
