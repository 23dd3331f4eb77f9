"""Read path for the published threshold table with fallbacks."""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone, timedelta
from decimal import Decimal
from enum import Enum
from typing import List, Optional
from tierscan.constants.tiers import TIERS, DEFAULT_MINIMUM_BALANCES, DEFAULT_TOTAL_ACCOUNTS
from tierscan.services.snapshot_store import SnapshotStore, TierThreshold
from tierscan.services.threshold_cache import ThresholdCache


logger = logging.getLogger(__name__)

# With daily scans, durable data older than this means a scan was missed
STORE_MAX_AGE = timedelta(days=2)

# Median reported when no 50th percentile threshold exists
DEFAULT_MEDIAN_BALANCE = Decimal(500)


class ThresholdSource(str, Enum):
    STORE = "store"
    CACHE = "cache"
    STALE_CACHE = "stale_cache"
    DEFAULT = "default"


@dataclass
class ThresholdTable:
    """The threshold table served to lookups, with where it came from."""
    thresholds: List[TierThreshold]
    total_accounts: int
    timestamp: datetime
    source: ThresholdSource

    def to_dict(self) -> dict:
        return {
            "thresholds": [t.to_dict() for t in self.thresholds],
            "total_accounts": self.total_accounts,
            "last_updated": self.timestamp.isoformat(),
            "source": self.source.value,
        }


def default_thresholds() -> List[TierThreshold]:
    """Static estimates used when no scan data is available."""
    return [TierThreshold.for_tier(tier, DEFAULT_MINIMUM_BALANCES[tier.id]) for tier in TIERS]


async def _from_store(store: SnapshotStore, max_age: timedelta, now: datetime) -> Optional[ThresholdTable]:
    try:
        thresholds = await store.get_thresholds()
        if not thresholds:
            return None

        oldest_update = min(t.updated_at for t in thresholds if t.updated_at is not None)
        if now - oldest_update > max_age:
            logger.info("Stored thresholds are stale, falling back to cache")
            return None

        total_accounts = await store.get_published_total()
    except Exception as e:
        logger.warning(f"Failed to read thresholds from store: {e}", exc_info=True)
        return None

    return ThresholdTable(thresholds, total_accounts, oldest_update, ThresholdSource.STORE)


async def get_distribution_data(
    store: SnapshotStore,
    cache: ThresholdCache,
    store_max_age: timedelta = STORE_MAX_AGE,
    now: Optional[datetime] = None
) -> ThresholdTable:
    """
    Return the best available threshold table.

    Preference order:
    1. Durable store, if updated within ``store_max_age``
    2. Fresh cache entry
    3. Stale cache entry
    4. Static defaults

    Never raises; every source failure falls through to the next.
    """
    now = now or datetime.now(timezone.utc)

    stored = await _from_store(store, store_max_age, now)
    if stored:
        return stored

    cached = await cache.get()
    if cached and not cached.is_stale(cache.max_age, now):
        return ThresholdTable(cached.thresholds, cached.total_accounts, cached.timestamp, ThresholdSource.CACHE)

    if cached:
        logger.info("Serving stale cached thresholds")
        return ThresholdTable(cached.thresholds, cached.total_accounts, cached.timestamp, ThresholdSource.STALE_CACHE)

    logger.warning("No distribution data available, using defaults")
    return ThresholdTable(default_thresholds(), DEFAULT_TOTAL_ACCOUNTS, now, ThresholdSource.DEFAULT)


async def get_distribution_stats(
    store: SnapshotStore,
    cache: ThresholdCache,
    store_max_age: timedelta = STORE_MAX_AGE
) -> dict:
    """Total accounts, median balance and last update of the served table."""
    data = await get_distribution_data(store, cache, store_max_age)
    median = next((t.minimum_balance for t in data.thresholds if t.percentile == 50), None)

    return {
        "total_accounts": data.total_accounts,
        "median_balance": median if median else DEFAULT_MEDIAN_BALANCE,
        "last_updated": data.timestamp,
        "source": data.source,
    }
