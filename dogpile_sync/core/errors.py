"""Error taxonomy for the sync engine.

Every error carries enough context (shelter, listing, operation, cause) for
logging, and a ``retryable`` flag the queue worker uses to decide between
redelivery and acknowledgement.
"""

from __future__ import annotations


class SyncError(Exception):
    """Base class for all sync engine errors."""

    retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        shelter_id: str | None = None,
        listing_id: str | None = None,
        operation: str | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.shelter_id = shelter_id
        self.listing_id = listing_id
        self.operation = operation
        self.cause = cause

    def __str__(self) -> str:
        parts = [self.message]
        if self.operation:
            parts.insert(0, f"[{self.operation}]")
        if self.cause is not None and str(self.cause) not in self.message:
            parts.append(f"({self.cause})")
        return " ".join(parts)


class ScrapeError(SyncError):
    """The adapter could not fetch the source. Aborts the run."""

    retryable = True


class ParseError(SyncError):
    """The adapter could not parse or transform fetched content."""

    retryable = True


class UnknownAdapterError(SyncError):
    """No adapter is registered for the requested shelter."""


class EnrichmentError(SyncError):
    """One enrichment stage failed for one listing. Never fatal."""


class PersistenceError(SyncError):
    """A store write failed."""


class QueueSendError(SyncError):
    """Sending downstream jobs failed. Persisted listings are kept."""

    retryable = True
