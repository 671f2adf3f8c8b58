"""Best-effort enrichment of new listings and merging into stored rows.

Three stages run per listing, each allowed to fail on its own:

1. text extraction from the raw description
2. photo analysis, only when the listing has photos
3. bio generation, only when text extraction succeeded

A failed or timed-out stage leaves its fields null. The listing is always
built from whatever succeeded plus the adapter's fallback fields.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol, TypeVar

from dogpile_sync.core.enums import ListingStatus
from dogpile_sync.core.errors import EnrichmentError
from dogpile_sync.core.schema import (
    AgeEstimate,
    BioRequest,
    BreedEstimate,
    GeneratedBio,
    Listing,
    PhotoAttributes,
    SizeEstimate,
    TextAttributes,
)
from dogpile_sync.ingestion.adapters.base import NormalizedListing

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Confidence given to attributes the shelter states explicitly
ADAPTER_CONFIDENCE = 1.0


class Enricher(Protocol):
    """The three capabilities the orchestrator needs."""

    async def extract(self, text: str) -> TextAttributes: ...

    async def analyze_multiple(self, urls: list[str]) -> PhotoAttributes: ...

    async def generate(self, attributes: BioRequest) -> GeneratedBio: ...


@dataclass
class EnrichmentOutcome:
    text: TextAttributes | None = None
    photos: PhotoAttributes | None = None
    bio: GeneratedBio | None = None
    failed_stages: list[str] = field(default_factory=list)

    @property
    def partial(self) -> bool:
        return bool(self.failed_stages)


class EnrichmentOrchestrator:
    """Runs the enrichment stages for one listing with per-call timeouts."""

    def __init__(self, enricher: Enricher | None, timeout_seconds: float = 60.0):
        self.enricher = enricher
        self.timeout_seconds = timeout_seconds

    async def enrich(self, listing: NormalizedListing) -> EnrichmentOutcome:
        outcome = EnrichmentOutcome()
        if self.enricher is None:
            return outcome

        text_call = self._stage(
            "text_extraction", listing, self.enricher.extract(listing.raw_description), outcome
        )
        if listing.photos:
            photo_call = self._stage(
                "photo_analysis", listing, self.enricher.analyze_multiple(list(listing.photos)), outcome
            )
            outcome.text, outcome.photos = await asyncio.gather(text_call, photo_call)
        else:
            outcome.text = await text_call

        if outcome.text is not None:
            request = build_bio_request(listing, outcome.text, outcome.photos)
            outcome.bio = await self._stage(
                "description_generation", listing, self.enricher.generate(request), outcome
            )

        return outcome

    async def _stage(
        self,
        stage: str,
        listing: NormalizedListing,
        call: Awaitable[T],
        outcome: EnrichmentOutcome,
    ) -> T | None:
        try:
            return await asyncio.wait_for(call, timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning(
                f"{stage} timed out after {self.timeout_seconds}s for {listing.fingerprint}"
            )
        except EnrichmentError as e:
            logger.warning(f"{stage} failed for {listing.fingerprint}: {e}")
        except Exception:
            logger.exception(f"Unexpected {stage} failure for {listing.fingerprint}")
        outcome.failed_stages.append(stage)
        return None


def build_bio_request(
    listing: NormalizedListing,
    text: TextAttributes,
    photos: PhotoAttributes | None,
) -> BioRequest:
    return BioRequest(
        name=listing.name,
        sex=text.sex or listing.sex,
        breed_estimates=(photos.breed_estimates if photos and photos.breed_estimates else text.breed_estimates),
        age_months=text.age_estimate.months if text.age_estimate else listing.age_months,
        size=text.size_estimate.value if text.size_estimate else listing.size,
        personality_tags=text.personality_tags,
        good_with_kids=text.good_with_kids,
        good_with_dogs=text.good_with_dogs,
        good_with_cats=text.good_with_cats,
        vaccinated=text.vaccinated,
        sterilized=text.sterilized,
        fur_length=photos.fur_length if photos else None,
        color_primary=photos.color_primary if photos else None,
    )


def _first(*values):
    for value in values:
        if value is not None:
            return value
    return None


def build_listing(
    item: NormalizedListing,
    outcome: EnrichmentOutcome,
    now: datetime,
) -> Listing:
    """
    Merge adapter fields and enrichment results into a new pending listing.

    Text attributes override adapter fallbacks, photo breed estimates win
    over text ones, and visual attributes come only from photos.
    """
    text = outcome.text
    photos = outcome.photos
    hints = text.location_hints if text else None

    fallback_breeds = (
        [BreedEstimate(breed=item.breed, confidence=ADAPTER_CONFIDENCE)] if item.breed else []
    )
    if photos and photos.breed_estimates:
        breed_estimates = photos.breed_estimates
    elif text and text.breed_estimates:
        breed_estimates = text.breed_estimates
    else:
        breed_estimates = fallback_breeds

    fallback_size = SizeEstimate(value=item.size, confidence=ADAPTER_CONFIDENCE) if item.size else None
    fallback_age = (
        AgeEstimate(
            months=item.age_months,
            confidence=ADAPTER_CONFIDENCE,
            range_min=item.age_months,
            range_max=item.age_months,
        )
        if item.age_months is not None
        else None
    )

    return Listing(
        shelter_id=item.shelter_id,
        external_id=item.external_id,
        fingerprint=item.fingerprint,
        status=ListingStatus.PENDING,
        last_seen_at=now,
        created_at=now,
        updated_at=now,
        name=item.name,
        raw_description=item.raw_description,
        source_url=item.source_url,
        sex=_first(text.sex if text else None, item.sex),
        photos=list(item.photos),
        location_name=_first(hints.city_mention if hints else None, item.location_name),
        location_city=_first(hints.city_mention if hints else None, item.location_city),
        is_foster=_first(hints.is_foster if hints else None, item.is_foster),
        breed_estimates=breed_estimates,
        size_estimate=_first(
            text.size_estimate if text else None,
            fallback_size,
            photos.size_estimate if photos else None,
        ),
        age_estimate=_first(text.age_estimate if text else None, fallback_age),
        weight_estimate=text.weight_estimate if text else None,
        personality_tags=text.personality_tags if text else [],
        vaccinated=_first(text.vaccinated if text else None, item.vaccinated),
        sterilized=_first(text.sterilized if text else None, item.sterilized),
        chipped=_first(text.chipped if text else None, item.chipped),
        good_with_kids=_first(text.good_with_kids if text else None, item.good_with_kids),
        good_with_dogs=_first(text.good_with_dogs if text else None, item.good_with_dogs),
        good_with_cats=_first(text.good_with_cats if text else None, item.good_with_cats),
        fur_length=photos.fur_length if photos else None,
        fur_type=photos.fur_type if photos else None,
        color_primary=photos.color_primary if photos else None,
        color_secondary=photos.color_secondary if photos else None,
        color_pattern=photos.color_pattern if photos else None,
        ear_type=photos.ear_type if photos else None,
        tail_type=photos.tail_type if photos else None,
        generated_bio=outcome.bio.bio if outcome.bio else None,
        urgent=text.urgent if text else item.urgent,
    )
