"""Force-finish sync runs whose worker never completed them."""

import logging
from datetime import datetime, timedelta

from sqlalchemy.orm import Session

from dogpile_sync.core.schema import utc_now
from dogpile_sync.db.repositories import SyncRunRepository

logger = logging.getLogger(__name__)

STALE_RUN_MESSAGE = "Stale job timeout (no worker completion)"
DEFAULT_STALE_RUN_TIMEOUT = timedelta(hours=2)


def collect_stale_runs(
    session: Session,
    now: datetime | None = None,
    timeout: timedelta = DEFAULT_STALE_RUN_TIMEOUT,
) -> list[str]:
    """
    Finish every open run started more than ``timeout`` ago.

    The queue gives no signal when a worker dies mid-run, so age is the only
    evidence. Safe to run repeatedly and concurrently with the engine: each
    run is finalized at most once.

    Returns:
        Ids of the runs this call finalized.
    """
    now = now or utc_now()
    cutoff = now - timeout
    finished = SyncRunRepository(session).finish_stale(cutoff, STALE_RUN_MESSAGE, now)
    session.commit()

    if finished:
        logger.warning(f"Force-finished {len(finished)} stale sync run(s): {', '.join(finished)}")
    return finished
