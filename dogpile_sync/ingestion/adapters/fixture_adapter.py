"""
Fixture Adapter Module
======================

Adapter that reads listings from a JSON/YAML document instead of scraping
HTML. The document comes from, in order of precedence:

1. ``options["listings"]``: an inline list of listing dicts
2. ``options["path"]``: a local JSON or YAML file
3. the shelter's ``base_url``: a JSON feed fetched over HTTP

Used for local runs, demos and tests.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import yaml

from dogpile_sync.core.enums import SizeValue
from dogpile_sync.core.errors import ParseError, ScrapeError
from dogpile_sync.core.fingerprint import compute_fingerprint
from dogpile_sync.ingestion.adapters.base import (
    BaseAdapter,
    NormalizedListing,
    RawListing,
    ScraperConfig,
)

_FALLBACK_FIELDS = (
    "location_name",
    "location_city",
    "is_foster",
    "age_months",
    "breed",
    "vaccinated",
    "sterilized",
    "chipped",
    "good_with_kids",
    "good_with_dogs",
    "good_with_cats",
)


class FixtureAdapter(BaseAdapter):
    """
    Adapter over a structured listing document.

    Each entry needs ``name`` and ``external_id`` (or ``id``). A
    ``fingerprint`` may be supplied; otherwise one is computed from the
    listing content.
    """

    ADAPTER_NAME = "fixture"
    ADAPTER_VERSION = "1.0.0"

    async def fetch(self, config: ScraperConfig) -> str:
        options = {**self.options, **config.options}

        if "listings" in options:
            return json.dumps({"listings": options["listings"]})

        if "path" in options:
            path = Path(options["path"]).expanduser()
            try:
                return path.read_text(encoding="utf-8")
            except OSError as e:
                raise ScrapeError(
                    f"Cannot read fixture file {path}",
                    shelter_id=config.shelter_id,
                    operation="fetch",
                    cause=e,
                ) from e

        return await super().fetch(config)

    def parse(self, raw: str, config: ScraperConfig) -> list[RawListing]:
        try:
            # YAML is a superset of JSON
            document = yaml.safe_load(raw) if raw.strip() else []
        except yaml.YAMLError as e:
            raise ParseError(
                "Fixture content is not valid JSON or YAML",
                shelter_id=config.shelter_id,
                operation="parse",
                cause=e,
            ) from e

        if isinstance(document, dict):
            document = document.get("listings", [])
        if not isinstance(document, list):
            raise ParseError(
                f"Expected a list of listings, got {type(document).__name__}",
                shelter_id=config.shelter_id,
                operation="parse",
            )

        listings = []
        for index, item in enumerate(document):
            if not isinstance(item, dict):
                raise ParseError(
                    f"Listing #{index} is not a mapping",
                    shelter_id=config.shelter_id,
                    operation="parse",
                )
            listings.append(self._to_raw_listing(item, index, config))
        return listings

    def transform(self, raw: RawListing, config: ScraperConfig) -> NormalizedListing:
        normalized = super().transform(raw, config)

        for field_name in _FALLBACK_FIELDS:
            if field_name in raw.extra:
                setattr(normalized, field_name, raw.extra[field_name])

        size = raw.extra.get("size")
        if size:
            try:
                normalized.size = SizeValue(str(size).lower())
            except ValueError as e:
                raise ParseError(
                    f"Unknown size {size!r} for listing {raw.external_id}",
                    shelter_id=config.shelter_id,
                    operation="transform",
                    cause=e,
                ) from e

        normalized.urgent = bool(raw.extra.get("urgent", False))
        return normalized

    def _to_raw_listing(self, item: dict[str, Any], index: int, config: ScraperConfig) -> RawListing:
        external_id = item.get("external_id", item.get("id"))
        name = item.get("name")
        if external_id is None or not name:
            raise ParseError(
                f"Listing #{index} is missing external_id or name",
                shelter_id=config.shelter_id,
                operation="parse",
            )

        fields = {
            "external_id": str(external_id),
            "name": str(name),
            "raw_description": str(item.get("raw_description", item.get("description", ""))),
            "photos": [str(p) for p in item.get("photos", [])],
            "sex": item.get("sex"),
        }
        fingerprint = item.get("fingerprint") or compute_fingerprint(config.shelter_id, fields)

        extra = {
            key: value
            for key, value in item.items()
            if key not in fields and key not in ("id", "description", "fingerprint", "source_url")
        }

        return RawListing(
            external_id=fields["external_id"],
            fingerprint=fingerprint,
            name=fields["name"],
            raw_description=fields["raw_description"],
            photos=fields["photos"],
            sex=fields["sex"],
            source_url=item.get("source_url"),
            extra=extra,
        )
