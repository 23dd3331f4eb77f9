"""Unit tests for the distribution read path and its fallbacks."""
import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

from tierscan.constants.tiers import DEFAULT_TOTAL_ACCOUNTS
from tierscan.services.distribution import (
    ThresholdSource,
    get_distribution_data,
    get_distribution_stats,
)
from tierscan.services.threshold_cache import ThresholdCache, CachedThresholds

from tests.conftest import create_entry


@pytest.fixture
def cache(fake_redis):
    return ThresholdCache(fake_redis)


@pytest.mark.unit
@pytest.mark.asyncio
class TestGetDistributionData:
    """Test source preference: store, cache, stale cache, defaults."""

    async def test_defaults_when_nothing_available(self, snapshot_store, cache):
        """✅ Empty store and cache give the static table."""
        data = await get_distribution_data(snapshot_store, cache)

        assert data.source == ThresholdSource.DEFAULT
        assert data.total_accounts == DEFAULT_TOTAL_ACCOUNTS
        assert data.thresholds[0].minimum_balance == Decimal(10_000_000)

    async def test_fresh_store_preferred(self, snapshot_store, cache, default_thresholds):
        """✅ Recently saved store thresholds win over the cache."""
        await snapshot_store.insert_batch([create_entry(i) for i in range(3)])
        await snapshot_store.save_thresholds(default_thresholds, 3)
        await cache.set(default_thresholds, 999)

        data = await get_distribution_data(snapshot_store, cache)

        assert data.source == ThresholdSource.STORE
        assert data.total_accounts == 3

    async def test_stale_store_falls_back_to_cache(self, snapshot_store, cache, default_thresholds):
        """✅ Store data older than two days is skipped."""
        await snapshot_store.save_thresholds(default_thresholds, 10)
        await cache.set(default_thresholds, 999)
        cached = await cache.get()

        later = datetime.now(timezone.utc) + timedelta(days=3)
        data = await get_distribution_data(snapshot_store, cache, now=cached.timestamp + timedelta(minutes=5))
        assert data.source == ThresholdSource.STORE

        data = await get_distribution_data(snapshot_store, cache, now=later)
        assert data.source == ThresholdSource.STALE_CACHE
        assert data.total_accounts == 999

    async def test_fresh_cache(self, snapshot_store, cache, default_thresholds):
        """✅ Fresh cache is used when the store is empty."""
        await cache.set(default_thresholds, 1234)

        data = await get_distribution_data(snapshot_store, cache)

        assert data.source == ThresholdSource.CACHE
        assert data.total_accounts == 1234

    async def test_running_scan_does_not_change_published_total(self, snapshot_store, cache, default_thresholds):
        """✅ Clearing and refilling accounts during a scan leaves the served total alone."""
        await snapshot_store.insert_batch([create_entry(i) for i in range(5)])
        await snapshot_store.save_thresholds(default_thresholds, 5)

        await snapshot_store.clear()
        during_clear = await get_distribution_data(snapshot_store, cache)
        await snapshot_store.insert_batch([create_entry(i) for i in range(2)])
        during_refill = await get_distribution_data(snapshot_store, cache)

        assert during_clear.source == ThresholdSource.STORE
        assert during_clear.total_accounts == 5
        assert during_refill.total_accounts == 5

    async def test_store_max_age_configurable(self, snapshot_store, cache, default_thresholds):
        """✅ A shorter max age skips store data sooner."""
        await snapshot_store.save_thresholds(default_thresholds, 5)
        await cache.set(default_thresholds, 999)
        later = datetime.now(timezone.utc) + timedelta(hours=2)

        default_age = await get_distribution_data(snapshot_store, cache, now=later)
        short_age = await get_distribution_data(snapshot_store, cache, store_max_age=timedelta(hours=1), now=later)

        assert default_age.source == ThresholdSource.STORE
        assert short_age.source == ThresholdSource.STALE_CACHE

    async def test_store_errors_skipped(self, default_thresholds):
        """✅ A failing store falls through to the cache."""
        store = MagicMock()
        store.get_thresholds = AsyncMock(side_effect=RuntimeError("db down"))
        cache = MagicMock()
        cache.max_age = timedelta(hours=1)
        cache.get = AsyncMock(return_value=CachedThresholds(
            default_thresholds, 10, datetime.now(timezone.utc)
        ))

        data = await get_distribution_data(store, cache)

        assert data.source == ThresholdSource.CACHE


@pytest.mark.unit
@pytest.mark.asyncio
class TestGetDistributionStats:
    """Test summary statistics."""

    async def test_median_from_crab_threshold(self, snapshot_store, cache):
        """✅ Median is the 50th percentile threshold."""
        stats = await get_distribution_stats(snapshot_store, cache)

        assert stats["median_balance"] == Decimal(500)
        assert stats["total_accounts"] == DEFAULT_TOTAL_ACCOUNTS
        assert stats["source"] == ThresholdSource.DEFAULT

    async def test_median_default_when_zero(self, snapshot_store, cache, default_thresholds):
        """✅ A zero median falls back to 500 XRP."""
        for t in default_thresholds:
            t.minimum_balance = Decimal(0)
        await cache.set(default_thresholds, 10)

        stats = await get_distribution_stats(snapshot_store, cache)

        assert stats["median_balance"] == Decimal(500)
