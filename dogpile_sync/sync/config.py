"""Runtime settings for the sync engine and worker."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass

logger = logging.getLogger(__name__)

MIN_AI_CONCURRENCY = 1
MAX_AI_CONCURRENCY = 10


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning(f"Ignoring invalid {name}={value!r}, using {default}")
        return default


def _env_float(name: str, default: float) -> float:
    value = os.environ.get(name)
    if value is None or value == "":
        return default
    try:
        return float(value)
    except ValueError:
        logger.warning(f"Ignoring invalid {name}={value!r}, using {default}")
        return default


def clamp_ai_concurrency(value: int) -> int:
    return max(MIN_AI_CONCURRENCY, min(MAX_AI_CONCURRENCY, value))


@dataclass
class SyncSettings:
    """Tunables of one reconciliation run."""

    ai_concurrency: int = 5
    enrichment_timeout_seconds: float = 60.0
    stale_listing_hours: int = 36
    circuit_breaker_ratio: float = 0.30
    circuit_breaker_warn_ratio: float = 0.70
    reindex_batch_size: int = 100
    stale_run_timeout_minutes: int = 120
    sync_interval_minutes: int = 60
    max_collected_errors: int = 20
    progress_update_interval: int = 10

    def __post_init__(self) -> None:
        self.ai_concurrency = clamp_ai_concurrency(self.ai_concurrency)
        if self.reindex_batch_size < 1:
            raise ValueError(f"reindex_batch_size must be positive, got {self.reindex_batch_size}")

    @classmethod
    def from_env(cls) -> SyncSettings:
        """Read settings from environment variables, with defaults."""
        return cls(
            ai_concurrency=_env_int("SCRAPER_AI_CONCURRENCY", 5),
            enrichment_timeout_seconds=_env_float("ENRICHMENT_TIMEOUT_SECONDS", 60.0),
            stale_listing_hours=_env_int("STALE_LISTING_HOURS", 36),
            circuit_breaker_ratio=_env_float("CIRCUIT_BREAKER_RATIO", 0.30),
            circuit_breaker_warn_ratio=_env_float("CIRCUIT_BREAKER_WARN_RATIO", 0.70),
            reindex_batch_size=_env_int("REINDEX_BATCH_SIZE", 100),
            stale_run_timeout_minutes=_env_int("STALE_RUN_TIMEOUT_MINUTES", 120),
            sync_interval_minutes=_env_int("SYNC_INTERVAL_MINUTES", 60),
            max_collected_errors=_env_int("MAX_COLLECTED_ERRORS", 20),
        )
