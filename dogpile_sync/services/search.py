"""Search documents for adoptable dogs and the index interface they feed."""

from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel, Field

from dogpile_sync.core.schema import Listing, ReindexJob

_SIZE_PHRASES = {
    "small": "mały pies",
    "medium": "średni pies",
    "large": "duży pies",
}


class SearchDocument(BaseModel):
    """One dog as stored in the search index."""

    id: str
    text: str
    metadata: dict[str, Any] = Field(default_factory=dict)

    def to_index_document(self) -> dict[str, Any]:
        """Flatten metadata next to id and text, dropping nulls."""
        document = {"id": self.id, "text": self.text}
        document.update({k: v for k, v in self.metadata.items() if v is not None})
        return document


def _polish_years(years: int) -> str:
    if years == 1:
        return "rok"
    if 12 <= years % 100 <= 14:
        return "lat"
    if 2 <= years % 10 <= 4:
        return "lata"
    return "lat"


def _age_phrase(months: int) -> str:
    if months < 12:
        return f"szczeniak {months} miesięcy"
    years = months // 12
    return f"{years} {_polish_years(years)}"


def build_search_document(listing: Listing) -> SearchDocument:
    """
    Build the searchable text and filter metadata for a listing.

    The text is a sentence-per-fact summary (name, age, size, primary
    breed, city, sex, personality, bio) in Polish, the language of the
    listings.
    """
    parts = [f"Pies {listing.name}"]

    if listing.age_estimate:
        parts.append(_age_phrase(listing.age_estimate.months))

    if listing.size_estimate:
        size = listing.size_estimate.value.value
        parts.append(_SIZE_PHRASES.get(size, size))

    if listing.breed_estimates:
        parts.append(f"rasa {listing.breed_estimates[0].breed.replace('_', ' ')}")

    if listing.location_city:
        parts.append(f"z miasta {listing.location_city}")

    if listing.sex and listing.sex.value == "male":
        parts.append("samiec")
    elif listing.sex and listing.sex.value == "female":
        parts.append("samica")

    if listing.personality_tags:
        parts.append(", ".join(listing.personality_tags))

    if listing.generated_bio:
        parts.append(listing.generated_bio)

    return SearchDocument(
        id=listing.id,
        text=". ".join(parts),
        metadata={
            "shelter_id": listing.shelter_id,
            "city": listing.location_city,
            "size": listing.size_estimate.value.value if listing.size_estimate else None,
            "age_months": listing.age_estimate.months if listing.age_estimate else None,
            "sex": listing.sex.value if listing.sex else None,
            "status": listing.status.value,
            "urgent": listing.urgent,
        },
    )


def document_from_job(job: ReindexJob) -> SearchDocument:
    """Fallback document for an upsert job whose listing is not in the store."""
    metadata = job.metadata.model_dump(exclude_none=True) if job.metadata else {}
    return SearchDocument(id=job.dog_id, text=job.description or "", metadata=metadata)


class SearchIndex(ABC):
    """Downstream index consuming reindex jobs."""

    @abstractmethod
    def upsert_documents(self, documents: list[SearchDocument]) -> None:
        pass

    @abstractmethod
    def delete_documents(self, ids: list[str]) -> None:
        pass
