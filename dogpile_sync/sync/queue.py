"""Outbound job queues.

Reindex and image jobs are produced in batches. ``ArqJobQueue`` enqueues one
arq job per batch on Redis; ``InMemoryJobQueue`` keeps sends in memory for
local ``--sync`` runs and tests.
"""

from __future__ import annotations

import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from arq.connections import ArqRedis, RedisSettings

logger = logging.getLogger(__name__)

REINDEX_QUEUE = "reindex"
IMAGE_QUEUE = "image-processing"

# arq function consuming each queue's batches
QUEUE_FUNCTIONS = {
    REINDEX_QUEUE: "process_reindex_batch",
    IMAGE_QUEUE: "process_image_batch",
}


def get_redis_settings() -> RedisSettings:
    """Get Redis connection settings from environment."""
    return RedisSettings(
        host=os.environ.get("REDIS_HOST", "localhost"),
        port=int(os.environ.get("REDIS_PORT", "6379")),
        database=int(os.environ.get("REDIS_DB", "0")),
    )


class JobQueue(ABC):
    """At-least-once sink for outbound job batches."""

    @abstractmethod
    async def send_batch(self, queue_name: str, payloads: list[dict[str, Any]]) -> None:
        """
        Send one batch of job payloads.

        Raises:
            Exception: Any failure; callers wrap it in QueueSendError.
        """
        pass


class ArqJobQueue(JobQueue):
    """Enqueue each batch as a single arq job on the queue's consumer function."""

    def __init__(self, redis: ArqRedis):
        self.redis = redis

    async def send_batch(self, queue_name: str, payloads: list[dict[str, Any]]) -> None:
        function = QUEUE_FUNCTIONS.get(queue_name)
        if function is None:
            raise ValueError(f"Unknown queue: {queue_name}")
        job = await self.redis.enqueue_job(function, payloads)
        logger.debug(f"Enqueued {len(payloads)} {queue_name} payload(s) as {job.job_id if job else 'duplicate'}")


@dataclass
class InMemoryJobQueue(JobQueue):
    """Records every batch; optionally fails chosen sends (1-based send numbers)."""

    sends: list[tuple[str, list[dict[str, Any]]]] = field(default_factory=list)
    fail_on: set[int] = field(default_factory=set)
    _attempts: int = 0

    async def send_batch(self, queue_name: str, payloads: list[dict[str, Any]]) -> None:
        self._attempts += 1
        if self._attempts in self.fail_on:
            raise ConnectionError(f"Simulated failure of send #{self._attempts}")
        self.sends.append((queue_name, list(payloads)))

    def payloads(self, queue_name: str) -> list[dict[str, Any]]:
        return [p for name, batch in self.sends if name == queue_name for p in batch]

    def batches(self, queue_name: str) -> list[list[dict[str, Any]]]:
        return [batch for name, batch in self.sends if name == queue_name]
