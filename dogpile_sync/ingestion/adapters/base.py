"""
Adapter Base Module
===================

Defines the abstract base class for shelter-specific adapters.
Adapters are responsible for:
1. Fetching the raw listing page(s) of a shelter
2. Parsing raw content into fingerprinted RawListings
3. Transforming each RawListing into a NormalizedListing
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

import httpx

from dogpile_sync.core.enums import Sex, SizeValue
from dogpile_sync.core.errors import ParseError, ScrapeError

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "DogpileBot/0.1 (+https://dogpile.example/bot)"


@dataclass
class ScraperConfig:
    """Per-run configuration handed to every adapter call."""

    shelter_id: str
    base_url: str
    options: dict[str, Any] = field(default_factory=dict)
    user_agent: str = DEFAULT_USER_AGENT
    request_timeout: float = 30.0


@dataclass
class RawListing:
    """
    One listing as parsed from a shelter page.

    ``fingerprint`` is the content hash used as the reconciliation key;
    ``extra`` keeps adapter-specific fields for ``transform``.
    """

    external_id: str
    fingerprint: str
    name: str
    raw_description: str = ""
    photos: list[str] = field(default_factory=list)
    sex: str | None = None
    source_url: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass
class NormalizedListing:
    """
    A RawListing bound to its shelter, with the fallback attributes the
    adapter could read directly from the page.

    Fallbacks are used when text enrichment is unavailable and are
    overridden by it when it succeeds.
    """

    shelter_id: str
    external_id: str
    fingerprint: str
    name: str
    raw_description: str = ""
    photos: list[str] = field(default_factory=list)
    sex: Sex | None = None
    source_url: str | None = None

    # Adapter fallbacks
    location_name: str | None = None
    location_city: str | None = None
    is_foster: bool | None = None
    size: SizeValue | None = None
    age_months: int | None = None
    breed: str | None = None
    vaccinated: bool | None = None
    sterilized: bool | None = None
    chipped: bool | None = None
    good_with_kids: bool | None = None
    good_with_dogs: bool | None = None
    good_with_cats: bool | None = None
    urgent: bool = False


def coerce_sex(value: Any) -> Sex | None:
    """Map loosely formatted sex strings onto Sex, or None."""
    if value is None or value == "":
        return None
    text = str(value).strip().lower()
    if text in ("m", "male", "samiec", "pies"):
        return Sex.MALE
    if text in ("f", "female", "samica", "suka"):
        return Sex.FEMALE
    if text == "unknown":
        return Sex.UNKNOWN
    raise ValueError(f"Unrecognized sex value: {value!r}")


class BaseAdapter(ABC):
    """
    Abstract base class for shelter-specific adapters.

    Subclasses must implement:
    - parse: Turn fetched content into RawListings

    and may override:
    - fetch: Defaults to an HTTP GET of the shelter's base URL
    - transform: Defaults to a field-for-field copy
    """

    # Adapter identification (override in subclasses)
    ADAPTER_NAME: str = "base"
    ADAPTER_VERSION: str = "1.0.0"

    def __init__(self, options: dict[str, Any] | None = None) -> None:
        """
        Initialize the adapter.

        Args:
            options: Optional adapter options from shelters.yaml
        """
        self.options = options or {}

    async def fetch(self, config: ScraperConfig) -> str:
        """
        Fetch the raw listing content for a shelter.

        Raises:
            ScrapeError: On any transport failure or non-2xx response.
        """
        try:
            async with httpx.AsyncClient(timeout=config.request_timeout) as client:
                response = await client.get(
                    config.base_url,
                    headers={"User-Agent": config.user_agent},
                    follow_redirects=True,
                )
                response.raise_for_status()
                return response.text
        except httpx.TimeoutException as e:
            raise ScrapeError(
                f"Timeout after {config.request_timeout}s fetching {config.base_url}",
                shelter_id=config.shelter_id,
                operation="fetch",
                cause=e,
            ) from e
        except httpx.HTTPError as e:
            raise ScrapeError(
                f"Failed to fetch {config.base_url}",
                shelter_id=config.shelter_id,
                operation="fetch",
                cause=e,
            ) from e

    @abstractmethod
    def parse(self, raw: str, config: ScraperConfig) -> list[RawListing]:
        """
        Parse fetched content into listings.

        Raises:
            ParseError: If the content cannot be understood at all.
        """
        pass

    def transform(self, raw: RawListing, config: ScraperConfig) -> NormalizedListing:
        """
        Normalize one parsed listing.

        Raises:
            ParseError: If this listing cannot be normalized. Only the
                listing is skipped.
        """
        try:
            sex = coerce_sex(raw.sex)
        except ValueError as e:
            raise ParseError(
                str(e), shelter_id=config.shelter_id, operation="transform", cause=e
            ) from e

        return NormalizedListing(
            shelter_id=config.shelter_id,
            external_id=raw.external_id,
            fingerprint=raw.fingerprint,
            name=raw.name,
            raw_description=raw.raw_description,
            photos=list(raw.photos),
            sex=sex,
            source_url=raw.source_url,
        )
