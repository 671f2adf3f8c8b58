"""Batched fan-out of downstream jobs."""

import logging
from dataclasses import dataclass, field
from typing import Any

from dogpile_sync.core.enums import ReindexOp
from dogpile_sync.core.errors import QueueSendError
from dogpile_sync.core.schema import ImageProcessingJob, Listing, ReindexJob, ReindexMetadata
from dogpile_sync.sync.queue import JobQueue

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 100


@dataclass
class FanoutResult:
    jobs: int = 0
    sends: int = 0
    errors: list[QueueSendError] = field(default_factory=list)


def upsert_job(listing: Listing) -> ReindexJob:
    return ReindexJob(
        type=ReindexOp.UPSERT,
        dog_id=listing.id,
        description=listing.generated_bio,
        metadata=ReindexMetadata(
            shelter_id=listing.shelter_id,
            city=listing.location_city,
            size=listing.size_estimate.value.value if listing.size_estimate else None,
            age_months=listing.age_estimate.months if listing.age_estimate else None,
            sex=listing.sex.value if listing.sex else None,
        ),
    )


def delete_job(listing_id: str) -> ReindexJob:
    return ReindexJob(type=ReindexOp.DELETE, dog_id=listing_id)


def image_job(listing: Listing) -> ImageProcessingJob | None:
    """Image job for the listing's externally hosted photos, if any."""
    urls = listing.external_photo_urls
    if not urls:
        return None
    return ImageProcessingJob(dog_id=listing.id, urls=urls)


async def send_in_batches(
    queue: JobQueue,
    queue_name: str,
    payloads: list[dict[str, Any]],
    batch_size: int = DEFAULT_BATCH_SIZE,
    shelter_id: str | None = None,
) -> FanoutResult:
    """
    Send payloads in chunks of at most ``batch_size``.

    A failed chunk is recorded as a QueueSendError and the remaining chunks
    are still attempted. Retrying a failed chunk is left to the queue.
    """
    result = FanoutResult(jobs=len(payloads))
    for start in range(0, len(payloads), batch_size):
        chunk = payloads[start : start + batch_size]
        try:
            await queue.send_batch(queue_name, chunk)
        except Exception as e:
            error = QueueSendError(
                f"Failed to send {len(chunk)} {queue_name} job(s)",
                shelter_id=shelter_id,
                operation=f"enqueue {queue_name}",
                cause=e,
            )
            logger.error(str(error))
            result.errors.append(error)
            continue
        result.sends += 1
    return result
