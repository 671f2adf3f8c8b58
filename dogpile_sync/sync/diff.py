"""Partition a scrape against stored listings by fingerprint."""

from dataclasses import dataclass, field

from dogpile_sync.core.schema import Listing
from dogpile_sync.ingestion.adapters.base import NormalizedListing


@dataclass
class MatchedListing:
    scraped: NormalizedListing
    existing: Listing


@dataclass
class DiffResult:
    """
    Disjoint partitions of one run.

    new: scraped, fingerprint unseen
    matched: scraped, fingerprint already stored
    missing: stored, fingerprint absent from this scrape
    duplicates: scraped entries dropped because an earlier one had the same fingerprint
    """

    new: list[NormalizedListing] = field(default_factory=list)
    matched: list[MatchedListing] = field(default_factory=list)
    missing: list[Listing] = field(default_factory=list)
    duplicates: list[NormalizedListing] = field(default_factory=list)

    @property
    def scraped_count(self) -> int:
        return len(self.new) + len(self.matched)


def diff_listings(scraped: list[NormalizedListing], existing: list[Listing]) -> DiffResult:
    """
    Classify scraped listings as new or matched and stored ones as missing.

    Linear in the total number of listings. The first occurrence of a
    fingerprint within ``scraped`` wins.
    """
    by_fingerprint = {listing.fingerprint: listing for listing in existing}
    seen: set[str] = set()
    result = DiffResult()

    for item in scraped:
        if item.fingerprint in seen:
            result.duplicates.append(item)
            continue
        seen.add(item.fingerprint)

        stored = by_fingerprint.get(item.fingerprint)
        if stored is None:
            result.new.append(item)
        else:
            result.matched.append(MatchedListing(scraped=item, existing=stored))

    result.missing = [listing for fp, listing in by_fingerprint.items() if fp not in seen]
    return result
