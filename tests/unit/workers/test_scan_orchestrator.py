"""Unit tests for ScanOrchestrator.

This module drives full scans against a scripted ledger client, an
in-memory snapshot store and FakeRedis, covering fresh scans, resume,
endpoint rotation, pause and failure.
"""
import pytest
import random
from decimal import Decimal
from unittest.mock import AsyncMock

from tierscan.providers import LedgerError, ErrorKind
from tierscan.providers.models import AccountEntry
from tierscan.services.endpoint_pool import EndpointPool
from tierscan.services.pacer import AdaptivePacer
from tierscan.services.retry import RetryController
from tierscan.services.scan_progress import ScanProgress, ScanProgressStore, ScanStatus
from tierscan.services.threshold_cache import ThresholdCache
from tierscan.workers.scan_orchestrator import ScanOrchestrator, ScanConfig

from tests.conftest import FakeLedgerClient, create_pages, transient_error


ENDPOINTS = ["wss://a.example", "wss://b.example", "wss://c.example"]

# Three pages; the middle one contains an unfunded account
PAGE_BALANCES = [
    [5, 10, 15],
    [20, 0, 30],
    [40, 50],
]
FUNDED_COUNT = 7


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def progress_store(fake_redis):
    return ScanProgressStore(fake_redis)


@pytest.fixture
def threshold_cache(fake_redis):
    return ThresholdCache(fake_redis)


@pytest.fixture
def make_orchestrator(snapshot_store, progress_store, threshold_cache, fake_sleep):
    """Factory building an orchestrator around a scripted client."""
    def _make(client, lease=None, batch_size=100, endpoints=ENDPOINTS):
        pool = EndpointPool(endpoints, failure_threshold=3, cooldown_seconds=60)
        return ScanOrchestrator(
            client=client,
            store=snapshot_store,
            progress=progress_store,
            threshold_cache=threshold_cache,
            pool=pool,
            pacer=AdaptivePacer(),
            retry=RetryController(pool, sleep=fake_sleep, rng=random.Random(7)),
            config=ScanConfig(page_limit=2048, batch_size=batch_size, log_interval=4),
            lease=lease,
            sleep=fake_sleep,
        )
    return _make


# ============================================================================
# Tests for fresh scans
# ============================================================================

@pytest.mark.unit
@pytest.mark.critical
@pytest.mark.asyncio
class TestFreshScan:
    """Test a scan from the first page to completion."""

    async def test_completes_and_publishes(self, make_orchestrator, snapshot_store, progress_store, threshold_cache):
        """✅ All funded accounts stored, thresholds saved and cached, progress completed."""
        client = FakeLedgerClient(create_pages(PAGE_BALANCES), ledger_index=1000)

        result = await make_orchestrator(client).run()

        assert result.success
        assert not result.paused
        assert result.error is None
        assert result.total_accounts == FUNDED_COUNT
        assert await snapshot_store.count() == FUNDED_COUNT
        assert len(result.thresholds) == 8

        progress = await progress_store.get()
        assert progress.status == ScanStatus.COMPLETED
        assert progress.cursor is None
        assert progress.processed_count == FUNDED_COUNT
        assert progress.completed_at is not None
        assert progress.ledger_index == 1000

        cached = await threshold_cache.get()
        assert cached.total_accounts == FUNDED_COUNT
        assert len(await snapshot_store.get_thresholds()) == 8

    async def test_pins_ledger_and_follows_markers(self, make_orchestrator):
        """✅ Every request uses the captured ledger index and the previous page's marker."""
        client = FakeLedgerClient(create_pages(PAGE_BALANCES), ledger_index=4242)

        await make_orchestrator(client).run()

        assert [(r[1], r[2]) for r in client.requests] == [(4242, None), (4242, "m1"), (4242, "m2")]
        assert all(r[3] == 2048 for r in client.requests)
        assert client.ledger_index_calls == 1

    async def test_fresh_scan_clears_store(self, make_orchestrator, snapshot_store):
        """✅ Rows from a previous scan are removed before crawling."""
        await snapshot_store.insert_batch([AccountEntry("rLeftover", 1_000_000)])
        client = FakeLedgerClient(create_pages(PAGE_BALANCES))

        result = await make_orchestrator(client).run()

        assert result.total_accounts == FUNDED_COUNT
        assert await snapshot_store.count() == FUNDED_COUNT

    async def test_small_batches_flush(self, make_orchestrator, snapshot_store):
        """✅ Batches smaller than a page still store every account."""
        client = FakeLedgerClient(create_pages(PAGE_BALANCES))

        result = await make_orchestrator(client, batch_size=2).run()

        assert result.success
        assert await snapshot_store.count() == FUNDED_COUNT

    async def test_no_sleep_after_last_page(self, make_orchestrator, fake_sleep):
        """✅ Pacer delay is applied between pages only."""
        client = FakeLedgerClient(create_pages(PAGE_BALANCES))

        await make_orchestrator(client).run()

        assert fake_sleep.await_count == len(PAGE_BALANCES) - 1
        assert fake_sleep.await_args_list[0].args[0] == pytest.approx(0.1)

    async def test_duplicate_entries_tolerated(self, make_orchestrator, snapshot_store):
        """✅ An account seen on two pages is stored once."""
        pages = create_pages(PAGE_BALANCES)
        pages["m2"].entries.append(pages[None].entries[0])
        client = FakeLedgerClient(pages)

        result = await make_orchestrator(client).run()

        assert result.success
        assert await snapshot_store.count() == FUNDED_COUNT

    async def test_transparent_reconnect(self, make_orchestrator, progress_store):
        """✅ A dropped connection is re-established without counting a failure."""
        client = FakeLedgerClient(create_pages(PAGE_BALANCES), disconnect_after=[None])

        result = await make_orchestrator(client).run()

        assert result.success
        assert len(client.connects) == 2
        assert (await progress_store.get()).consecutive_failures == 0


# ============================================================================
# Tests for resume
# ============================================================================

@pytest.mark.unit
@pytest.mark.critical
@pytest.mark.asyncio
class TestResume:
    """Test resuming a paused scan."""

    async def test_resume_uses_checkpoint(self, make_orchestrator, progress_store, snapshot_store):
        """✅ Resume reuses cursor, ledger and count and keeps stored rows."""
        await snapshot_store.insert_batch([AccountEntry("rFromFirstRun", 2_000_000)])
        await progress_store.set(ScanProgress(
            status=ScanStatus.PAUSED,
            cursor="m2",
            ledger_index=777,
            processed_count=6,
        ))
        client = FakeLedgerClient(create_pages(PAGE_BALANCES), ledger_index=9999)

        result = await make_orchestrator(client).run(resume=True)

        assert result.success
        assert client.requests[0][1:3] == (777, "m2")
        assert len(client.requests) == 1
        assert client.ledger_index_calls == 0
        # Row from before the pause plus the two accounts on the last page
        assert await snapshot_store.count() == 3
        assert (await progress_store.get()).ledger_index == 777

    async def test_resume_without_checkpoint_starts_fresh(self, make_orchestrator, progress_store, snapshot_store):
        """✅ Resume with nothing paused behaves like a fresh scan."""
        await snapshot_store.insert_batch([AccountEntry("rLeftover", 1_000_000)])
        await progress_store.set(ScanProgress(status=ScanStatus.COMPLETED))
        client = FakeLedgerClient(create_pages(PAGE_BALANCES))

        result = await make_orchestrator(client).run(resume=True)

        assert result.success
        assert client.requests[0][2] is None
        assert await snapshot_store.count() == FUNDED_COUNT

    async def test_stale_running_not_resumed(self, make_orchestrator, progress_store):
        """✅ A running record left by a crashed worker is not resumed."""
        await progress_store.set(ScanProgress(status=ScanStatus.RUNNING, cursor="m2", ledger_index=777))
        client = FakeLedgerClient(create_pages(PAGE_BALANCES), ledger_index=1000)

        await make_orchestrator(client).run(resume=True)

        assert client.requests[0][1:3] == (1000, None)

    async def test_resumed_scan_pauses_with_cumulative_count(self, make_orchestrator, progress_store, snapshot_store):
        """✅ Pausing again after a resume keeps counting from the first run's total."""
        await progress_store.set(ScanProgress(
            status=ScanStatus.PAUSED,
            cursor="m1",
            ledger_index=777,
            processed_count=100,
        ))
        failures = {"m2": [transient_error()] * 25}
        client = FakeLedgerClient(create_pages(PAGE_BALANCES), failures=failures)

        result = await make_orchestrator(client).run(resume=True)

        assert result.paused
        # Page m1 holds three entries, one of them unfunded
        assert result.total_accounts == 100 + len(PAGE_BALANCES[1])
        progress = await progress_store.get()
        assert progress.status == ScanStatus.PAUSED
        assert progress.cursor == "m2"
        assert progress.ledger_index == 777
        assert progress.processed_count == 103
        assert await snapshot_store.count() == 2

    async def test_pause_then_resume_covers_every_account(self, make_orchestrator, snapshot_store):
        """✅ A paused scan resumed later ends with the full account set."""
        failures = {"m1": [transient_error()] * 25}
        client = FakeLedgerClient(create_pages(PAGE_BALANCES), failures=failures)
        paused = await make_orchestrator(client).run()
        assert paused.paused

        client = FakeLedgerClient(create_pages(PAGE_BALANCES), ledger_index=5000)
        result = await make_orchestrator(client).run(resume=True)

        assert result.success
        assert result.total_accounts == FUNDED_COUNT
        assert client.requests[0][1:3] == (1000, "m1")


# ============================================================================
# Tests for rotation, pause and failure
# ============================================================================

@pytest.mark.unit
@pytest.mark.critical
@pytest.mark.asyncio
class TestRotationAndFailure:
    """Test endpoint rotation, pause after repeated failures, and fatal errors."""

    async def test_rotation_keeps_cursor(self, make_orchestrator, progress_store):
        """✅ Exhausted retries rotate to another endpoint and continue at the same marker."""
        failures = {"m1": [transient_error()] * 7}
        client = FakeLedgerClient(create_pages(PAGE_BALANCES), failures=failures)

        result = await make_orchestrator(client).run()

        assert result.success
        assert len(client.connects) == 2
        assert client.connects[0] != client.connects[1]
        assert [r[2] for r in client.requests].count("m1") == 8

    async def test_pause_after_five_rotations(self, make_orchestrator, progress_store, snapshot_store):
        """✅ Five consecutive rotations pause the scan with the checkpoint intact."""
        failures = {"m1": [transient_error()] * 25}
        client = FakeLedgerClient(create_pages(PAGE_BALANCES), ledger_index=1000, failures=failures)

        result = await make_orchestrator(client).run()

        assert not result.success
        assert result.paused
        assert "paused" in result.error.lower()
        assert result.total_accounts == 3

        progress = await progress_store.get()
        assert progress.status == ScanStatus.PAUSED
        assert progress.cursor == "m1"
        assert progress.ledger_index == 1000
        assert progress.processed_count == 3
        assert progress.consecutive_failures == 5
        assert progress.is_resumable
        # Rows from the first page were flushed before pausing
        assert await snapshot_store.count() == 3

    async def test_fatal_error_fails_scan(self, make_orchestrator, progress_store):
        """✅ A fatal ledger error marks the scan failed without raising."""
        failures = {"m1": [LedgerError(ErrorKind.FATAL, "lgrNotFound: ledgerNotFound", code="lgrNotFound")]}
        client = FakeLedgerClient(create_pages(PAGE_BALANCES), failures=failures)

        result = await make_orchestrator(client).run()

        assert not result.success
        assert not result.paused
        assert "lgrNotFound" in result.error

        progress = await progress_store.get()
        assert progress.status == ScanStatus.FAILED
        assert "lgrNotFound" in progress.last_error
        assert not client.is_connected()

    async def test_no_reachable_endpoint(self, make_orchestrator, progress_store, fake_sleep):
        """✅ Two full passes without a connection fail the scan."""
        client = FakeLedgerClient(create_pages(PAGE_BALANCES), unreachable=ENDPOINTS)

        result = await make_orchestrator(client).run()

        assert not result.success
        assert "connect" in result.error.lower()
        assert len(client.connects) == len(ENDPOINTS) * 2
        assert (await progress_store.get()).status == ScanStatus.FAILED

    async def test_connect_skips_unreachable_endpoint(self, make_orchestrator):
        """✅ A failed connect moves on to the next endpoint."""
        client = FakeLedgerClient(create_pages(PAGE_BALANCES), unreachable=[ENDPOINTS[0]])

        result = await make_orchestrator(client).run()

        assert result.success
        assert client.connects[:2] == ENDPOINTS[:2]
        assert all(r[0] == ENDPOINTS[1] for r in client.requests)

    async def test_lost_lease_touches_nothing(self, make_orchestrator, progress_store, snapshot_store):
        """✅ Without the lease the scan stops before writing progress or clearing rows."""
        await snapshot_store.insert_batch([AccountEntry("rOtherWorker", 1_000_000)])
        await progress_store.set(ScanProgress(status=ScanStatus.RUNNING, cursor="theirs", ledger_index=55))
        lease = AsyncMock()
        lease.refresh.return_value = False
        client = FakeLedgerClient(create_pages(PAGE_BALANCES))

        result = await make_orchestrator(client, lease=lease).run()

        assert not result.success
        assert "lease" in result.error.lower()
        assert client.requests == []
        assert await snapshot_store.count() == 1
        progress = await progress_store.get()
        assert progress.status == ScanStatus.RUNNING
        assert progress.cursor == "theirs"

    async def test_lease_lost_mid_scan(self, make_orchestrator, progress_store, snapshot_store):
        """✅ A lease lost between pages stops before the next checkpoint."""
        lease = AsyncMock()
        # Running update, clear, first checkpoint; then another worker takes over
        lease.refresh.side_effect = [True, True, True, False, False]
        client = FakeLedgerClient(create_pages(PAGE_BALANCES))

        result = await make_orchestrator(client, lease=lease).run()

        assert not result.success
        assert len(client.requests) == 2
        progress = await progress_store.get()
        assert progress.status == ScanStatus.RUNNING
        assert progress.cursor == "m1"
        assert progress.processed_count == 3

    async def test_lease_checked_before_every_write(self, make_orchestrator):
        """✅ The lease is refreshed at least once per page plus start and finish."""
        lease = AsyncMock()
        lease.refresh.return_value = True
        client = FakeLedgerClient(create_pages(PAGE_BALANCES))

        result = await make_orchestrator(client, lease=lease).run()

        assert result.success
        assert lease.refresh.await_count >= len(PAGE_BALANCES) + 2

    async def test_unexpected_exception_contained(self, make_orchestrator, progress_store):
        """✅ Non-ledger exceptions are reported as failures too."""
        client = FakeLedgerClient(create_pages(PAGE_BALANCES))
        client.get_validated_ledger_index = AsyncMock(side_effect=RuntimeError("boom"))

        result = await make_orchestrator(client).run()

        assert not result.success
        assert result.error == "boom"
        assert (await progress_store.get()).status == ScanStatus.FAILED

    async def test_result_to_dict(self, make_orchestrator):
        """✅ Result serializes thresholds as strings."""
        client = FakeLedgerClient(create_pages(PAGE_BALANCES))

        data = (await make_orchestrator(client).run()).to_dict()

        assert data["success"] is True
        assert data["total_accounts"] == FUNDED_COUNT
        assert Decimal(data["thresholds"][0]["minimum_balance"]) == Decimal(50)
