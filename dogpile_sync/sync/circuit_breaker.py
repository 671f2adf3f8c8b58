"""Guard against treating a broken scrape as a mass removal."""

import logging
from dataclasses import dataclass

from dogpile_sync.core.enums import ACTIVE_STATUSES
from dogpile_sync.core.schema import Listing

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BreakerDecision:
    existing_active: int
    scraped: int
    tripped: bool
    warning: bool
    ratio: float

    @property
    def diagnostic(self) -> str:
        """Message recorded on the sync run when the breaker trips."""
        return (
            f"circuit breaker: scraped {self.scraped} of {self.existing_active} "
            f"expected (<{round(self.ratio * 100)}%)"
        )


def count_active(listings: list[Listing]) -> int:
    return sum(1 for listing in listings if listing.status in ACTIVE_STATUSES)


def evaluate_breaker(
    existing_active: int,
    scraped: int,
    ratio: float = 0.30,
    warn_ratio: float = 0.70,
) -> BreakerDecision:
    """
    Decide whether this run may remove listings.

    Trips when ``scraped < ratio * existing_active``; warns without tripping
    below ``warn_ratio``. Evaluated afresh each run, never sticky.
    """
    if existing_active <= 0:
        return BreakerDecision(existing_active, scraped, tripped=False, warning=False, ratio=ratio)

    observed = scraped / existing_active
    tripped = observed < ratio
    warning = not tripped and observed < warn_ratio
    decision = BreakerDecision(existing_active, scraped, tripped=tripped, warning=warning, ratio=ratio)

    if tripped:
        logger.warning(decision.diagnostic)
    elif warning:
        logger.warning(
            f"Scrape returned {scraped} of {existing_active} active listings "
            f"(<{round(warn_ratio * 100)}%), removals still enabled"
        )
    return decision
