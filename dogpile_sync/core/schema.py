"""Pydantic v2 models for the dogpile sync domain.

These models define:
- Shelter, Listing, SyncRun (stored entities)
- BreedEstimate, SizeEstimate, AgeEstimate, WeightEstimate (estimations)
- TextAttributes, PhotoAttributes, GeneratedBio (enrichment results)
- ScrapeRequest, ImageProcessingJob, ReindexJob (queue messages)
"""

from datetime import UTC, datetime
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from dogpile_sync.core.enums import (
    AgeCategory,
    BioTone,
    ColorPattern,
    EarType,
    FurLength,
    FurType,
    ListingStatus,
    ReindexOp,
    Sex,
    ShelterStatus,
    SizeValue,
    SyncRunStatus,
    TailType,
)


def utc_now() -> datetime:
    """Return the current UTC time as a naive datetime.

    SQLite drops tzinfo on round-trip, so every timestamp the engine stores or
    compares is naive UTC.
    """
    return datetime.now(UTC).replace(tzinfo=None)


def _generate_id() -> str:
    return str(uuid4())


# ============================================================================
# Estimations
# ============================================================================


class BreedEstimate(BaseModel):
    breed: str
    confidence: float = Field(ge=0.0, le=1.0)


class SizeEstimate(BaseModel):
    value: SizeValue
    confidence: float = Field(ge=0.0, le=1.0)


class AgeEstimate(BaseModel):
    months: int
    confidence: float = Field(ge=0.0, le=1.0)
    range_min: int
    range_max: int


class WeightEstimate(BaseModel):
    kg: float
    confidence: float = Field(ge=0.0, le=1.0)
    range_min: float
    range_max: float


# ============================================================================
# Stored Entities
# ============================================================================


class Shelter(BaseModel):
    """A registered listing source."""

    id: str = Field(default_factory=_generate_id)
    slug: str
    name: str = ""
    base_url: str
    city: str = ""
    adapter: str = "fixture"
    options: dict = Field(default_factory=dict)
    active: bool = True
    status: ShelterStatus = ShelterStatus.ACTIVE
    last_sync: datetime | None = None


class Listing(BaseModel):
    """
    One adoptable dog as known to the system.

    Every enrichment field is independently nullable; a listing with partial
    enrichment is a valid end state.
    """

    id: str = Field(default_factory=_generate_id)
    shelter_id: str
    external_id: str
    fingerprint: str
    status: ListingStatus = ListingStatus.PENDING
    last_seen_at: datetime = Field(default_factory=utc_now)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    name: str
    raw_description: str = ""
    source_url: str | None = None
    sex: Sex | None = None
    photos: list[str] = Field(default_factory=list)
    location_name: str | None = None
    location_city: str | None = None
    is_foster: bool | None = None

    breed_estimates: list[BreedEstimate] = Field(default_factory=list)
    size_estimate: SizeEstimate | None = None
    age_estimate: AgeEstimate | None = None
    weight_estimate: WeightEstimate | None = None
    personality_tags: list[str] = Field(default_factory=list)
    vaccinated: bool | None = None
    sterilized: bool | None = None
    chipped: bool | None = None
    good_with_kids: bool | None = None
    good_with_dogs: bool | None = None
    good_with_cats: bool | None = None

    fur_length: FurLength | None = None
    fur_type: FurType | None = None
    color_primary: str | None = None
    color_secondary: str | None = None
    color_pattern: ColorPattern | None = None
    ear_type: EarType | None = None
    tail_type: TailType | None = None

    generated_bio: str | None = None
    urgent: bool = False

    @property
    def external_photo_urls(self) -> list[str]:
        """Photos still pointing at the source site rather than our storage."""
        return [p for p in self.photos if p.startswith(("http://", "https://"))]


class SyncRun(BaseModel):
    """One execution of the reconciliation engine for one shelter."""

    id: str = Field(default_factory=_generate_id)
    shelter_id: str
    started_at: datetime = Field(default_factory=utc_now)
    finished_at: datetime | None = None
    dogs_added: int = 0
    dogs_updated: int = 0
    dogs_removed: int = 0
    errors: list[str] = Field(default_factory=list)
    error_message: str | None = None

    @property
    def status(self) -> SyncRunStatus:
        if self.finished_at is None:
            return SyncRunStatus.RUNNING
        if self.errors or self.error_message:
            return SyncRunStatus.ERROR
        return SyncRunStatus.SUCCESS


# ============================================================================
# Enrichment Results
# ============================================================================


class LocationHints(BaseModel):
    is_foster: bool | None = None
    city_mention: str | None = None


class TextAttributes(BaseModel):
    """Structured attributes extracted from a listing description."""

    name: str | None = None
    sex: Sex | None = None
    age_estimate: AgeEstimate | None = None
    breed_estimates: list[BreedEstimate] = Field(default_factory=list)
    size_estimate: SizeEstimate | None = None
    weight_estimate: WeightEstimate | None = None
    personality_tags: list[str] = Field(default_factory=list)
    vaccinated: bool | None = None
    sterilized: bool | None = None
    chipped: bool | None = None
    good_with_kids: bool | None = None
    good_with_dogs: bool | None = None
    good_with_cats: bool | None = None
    location_hints: LocationHints = Field(default_factory=LocationHints)
    urgent: bool = False


class PhotoAttributes(BaseModel):
    """Visual attributes estimated from listing photos."""

    breed_estimates: list[BreedEstimate] = Field(default_factory=list)
    size_estimate: SizeEstimate | None = None
    age_category: AgeCategory | None = None
    fur_length: FurLength | None = None
    fur_type: FurType | None = None
    color_primary: str | None = None
    color_secondary: str | None = None
    color_pattern: ColorPattern | None = None
    ear_type: EarType | None = None
    tail_type: TailType | None = None


class BioRequest(BaseModel):
    """Combined attributes handed to the bio generator."""

    name: str
    sex: Sex | None = None
    breed_estimates: list[BreedEstimate] = Field(default_factory=list)
    age_months: int | None = None
    size: SizeValue | None = None
    personality_tags: list[str] = Field(default_factory=list)
    good_with_kids: bool | None = None
    good_with_dogs: bool | None = None
    good_with_cats: bool | None = None
    vaccinated: bool | None = None
    sterilized: bool | None = None
    fur_length: FurLength | None = None
    color_primary: str | None = None


class GeneratedBio(BaseModel):
    bio: str
    tone: BioTone = BioTone.HOPEFUL


# ============================================================================
# Queue Messages
# ============================================================================


class _Message(BaseModel):
    """Base for queue payloads; camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_payload(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ScrapeRequest(_Message):
    shelter_id: str
    shelter_slug: str
    base_url: str
    sync_run_id: str | None = None


class ImageProcessingJob(_Message):
    dog_id: str
    urls: list[str]


class ReindexMetadata(_Message):
    shelter_id: str
    city: str | None = None
    size: str | None = None
    age_months: int | None = None
    sex: str | None = None


class ReindexJob(_Message):
    type: ReindexOp
    dog_id: str
    description: str | None = None
    metadata: ReindexMetadata | None = None
