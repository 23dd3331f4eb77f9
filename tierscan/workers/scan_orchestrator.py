"""Distribution scan orchestrator: crawl, checkpoint, pause/resume, publish thresholds."""
import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, List, Optional
from tierscan.providers import LedgerClient, LedgerError, LedgerConnectionError
from tierscan.providers.models import AccountEntry
from tierscan.services.endpoint_pool import EndpointPool
from tierscan.services.pacer import AdaptivePacer
from tierscan.services.retry import RetryController
from tierscan.services.scan_lock import ScanLease, ScanLeaseLostError
from tierscan.services.scan_progress import ScanProgress, ScanProgressStore, ScanStatus
from tierscan.services.snapshot_store import SnapshotStore, TierThreshold
from tierscan.services.threshold_cache import ThresholdCache


logger = logging.getLogger(__name__)

PAUSED_ERROR = "Scan paused - can be resumed"


@dataclass
class ScanConfig:
    """Crawl limits."""
    page_limit: int = 2048
    batch_size: int = 10000
    max_consecutive_failures: int = 5
    log_interval: int = 100000
    connect_passes: int = 2  # Full passes over the pool before giving up on connecting
    connect_retry_delay: float = 1.0  # Seconds between passes


@dataclass
class ScanResult:
    """Outcome of one orchestrator run."""
    success: bool
    total_accounts: int
    thresholds: List[TierThreshold] = field(default_factory=list)
    duration_seconds: float = 0.0
    error: Optional[str] = None
    paused: bool = False
    already_running: bool = False

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "total_accounts": self.total_accounts,
            "thresholds": [t.to_dict() for t in self.thresholds],
            "duration_seconds": round(self.duration_seconds, 3),
            "error": self.error,
            "paused": self.paused,
            "already_running": self.already_running,
        }


class ScanOrchestrator:
    """
    Pages through every account in a pinned ledger and rebuilds the snapshot.

    Owns the endpoint pool, pacer and retry controller for one scan attempt.
    ``run`` never raises: it returns a ScanResult and leaves the progress
    record in a terminal state (completed, paused or failed).
    """

    def __init__(
        self,
        client: LedgerClient,
        store: SnapshotStore,
        progress: ScanProgressStore,
        threshold_cache: ThresholdCache,
        pool: EndpointPool,
        pacer: Optional[AdaptivePacer] = None,
        retry: Optional[RetryController] = None,
        config: Optional[ScanConfig] = None,
        lease: Optional[ScanLease] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep
    ):
        self.client = client
        self.store = store
        self.progress = progress
        self.threshold_cache = threshold_cache
        self.pool = pool
        self.pacer = pacer or AdaptivePacer()
        self.retry = retry or RetryController(pool, sleep=sleep)
        self.config = config or ScanConfig()
        self.lease = lease
        self._sleep = sleep

        self._batch: List[AccountEntry] = []

    async def run(self, resume: bool = False, previous: Optional[ScanProgress] = None) -> ScanResult:
        """
        Execute one scan attempt.

        Args:
            resume: Continue a paused scan from its checkpoint if one exists
            previous: Progress record as it was before this attempt was
                claimed; read from the progress store when omitted

        Returns:
            ScanResult describing completion, pause or failure
        """
        start = time.monotonic()
        if previous is None:
            previous = await self.progress.get()

        can_resume = resume and previous.is_resumable
        if resume and not can_resume:
            logger.info(f"No resumable checkpoint (status={previous.status.value}), starting fresh scan")

        try:
            await self._connect()

            if can_resume:
                ledger_index = previous.ledger_index
                cursor = previous.cursor
                processed = previous.processed_count
                logger.info(f"Resuming scan at ledger {ledger_index} from {processed:,} entries")
            else:
                ledger_index = await self.client.get_validated_ledger_index()
                cursor = None
                processed = 0
                logger.info(f"Starting scan at ledger {ledger_index}")

            await self._update_progress(
                status=ScanStatus.RUNNING,
                ledger_index=ledger_index,
                cursor=cursor,
                processed_count=processed,
                started_at=previous.started_at if can_resume and previous.started_at else datetime.now(timezone.utc),
                completed_at=None,
                last_error=None,
                consecutive_failures=0,
                active_endpoint=self.client.url,
            )

            if not can_resume:
                await self._ensure_lease()
                await self.store.clear()

            completed = await self._crawl(ledger_index, cursor, processed)
            if not completed:
                return ScanResult(
                    success=False,
                    total_accounts=(await self.progress.get()).processed_count,
                    duration_seconds=time.monotonic() - start,
                    error=PAUSED_ERROR,
                    paused=True,
                )

            return await self._finish(start)

        except ScanLeaseLostError as e:
            # Progress and snapshot now belong to the new lease holder
            logger.error(f"Scan abandoned: {e}")
            return ScanResult(
                success=False,
                total_accounts=0,
                duration_seconds=time.monotonic() - start,
                error=str(e),
            )
        except Exception as e:
            message = str(e) or type(e).__name__
            if isinstance(e, LedgerError):
                logger.error(f"Scan failed: {message}")
            else:
                logger.error(f"Scan failed: {message}", exc_info=True)
            if await self._holds_lease():
                await self.progress.update(status=ScanStatus.FAILED, last_error=message)
            else:
                logger.warning("Not recording failure: scan lease is held by another worker")
            return ScanResult(
                success=False,
                total_accounts=0,
                duration_seconds=time.monotonic() - start,
                error=message,
            )
        finally:
            await self.client.close()

    async def _crawl(self, ledger_index: int, cursor: Optional[Any], processed: int) -> bool:
        """
        Run the pagination loop.

        Returns:
            True when the last page was reached, False if the scan paused
        """
        consecutive_failures = 0
        self._batch = []

        while True:
            await self._ensure_connected()

            endpoint = self.client.url
            request_start = time.monotonic()
            outcome = await self.retry.call(
                lambda: self.client.fetch_account_page(ledger_index, cursor, self.config.page_limit),
                endpoint,
            )
            response_ms = (time.monotonic() - request_start) * 1000

            if outcome.rotate_endpoint:
                consecutive_failures += 1
                self.pacer.adjust(response_ms, was_error=True)

                if consecutive_failures >= self.config.max_consecutive_failures:
                    await self._pause(consecutive_failures, outcome.last_error)
                    return False

                logger.warning(
                    f"Rotating endpoint after repeated throttling "
                    f"({consecutive_failures}/{self.config.max_consecutive_failures})"
                )
                await self._connect()
                await self._update_progress(
                    active_endpoint=self.client.url,
                    consecutive_failures=consecutive_failures,
                )
                continue

            consecutive_failures = 0
            page = outcome.value

            for entry in page.funded_entries():
                self._batch.append(entry)
                if len(self._batch) >= self.config.batch_size:
                    await self._flush()

            previous_processed = processed
            processed += len(page.entries)
            cursor = page.marker

            await self._ensure_lease()
            await self.progress.checkpoint(cursor, processed)

            if processed // self.config.log_interval > previous_processed // self.config.log_interval:
                logger.info(f"Processed {processed:,} entries...")
            logger.debug(f"Page of {len(page.entries)} entries in {response_ms:.0f}ms from {endpoint}")

            delay_ms = self.pacer.adjust(response_ms, was_error=False)
            if cursor is None:
                return True
            await self._sleep(delay_ms / 1000.0)

    async def _flush(self) -> None:
        if not self._batch:
            return
        await self._ensure_lease()
        batch, self._batch = self._batch, []
        await self.store.insert_batch(batch)

    async def _pause(self, consecutive_failures: int, last_error: Optional[LedgerError]) -> None:
        """Save pending rows and leave a resumable checkpoint."""
        logger.warning(
            f"Pausing scan after {consecutive_failures} consecutive endpoint failures; can resume later"
        )
        await self._flush()
        detail = f": {last_error.detail}" if last_error else ""
        await self._update_progress(
            status=ScanStatus.PAUSED,
            consecutive_failures=consecutive_failures,
            last_error=f"Paused after {consecutive_failures} consecutive errors{detail}",
            last_checkpoint_at=datetime.now(timezone.utc),
        )

    async def _finish(self, start: float) -> ScanResult:
        """Flush, recompute thresholds and publish them."""
        await self._flush()

        account_count = await self.store.count()
        logger.info(f"Scan complete. {account_count:,} funded accounts found.")

        logger.info("Calculating percentile thresholds...")
        thresholds = await self.store.compute_thresholds()
        await self._ensure_lease()
        await self.store.save_thresholds(thresholds, account_count)
        await self.threshold_cache.set(thresholds, account_count)

        await self._update_progress(
            status=ScanStatus.COMPLETED,
            cursor=None,
            processed_count=account_count,
            completed_at=datetime.now(timezone.utc),
            consecutive_failures=0,
            last_error=None,
        )

        duration = time.monotonic() - start
        logger.info(f"Completed in {duration:.1f}s")
        return ScanResult(
            success=True,
            total_accounts=account_count,
            thresholds=thresholds,
            duration_seconds=duration,
        )

    async def _connect(self) -> None:
        """
        Connect to the next healthy endpoint from the pool.

        Raises:
            LedgerConnectionError: If no endpoint accepts a connection
        """
        await self.client.close()

        attempts = len(self.pool) * self.config.connect_passes
        for attempt in range(attempts):
            if attempt and attempt % len(self.pool) == 0:
                await self._sleep(self.config.connect_retry_delay)

            url = self.pool.next()
            try:
                await self.client.connect(url)
            except LedgerError as e:
                logger.warning(f"Failed to connect to {url}: {e}")
                self.pool.report_failure(url)
                continue

            self.pool.report_success(url)
            return

        raise LedgerConnectionError("Failed to connect to any XRPL endpoint")

    async def _ensure_connected(self) -> None:
        """Reconnect transparently if the connection dropped; not counted as a failure."""
        if self.client.is_connected():
            return
        logger.info("Connection lost, reconnecting...")
        await self._connect()
        await self._update_progress(active_endpoint=self.client.url)

    async def _holds_lease(self) -> bool:
        """Extend the lease; False only if another worker has taken it."""
        if self.lease is None:
            return True
        try:
            return await self.lease.refresh()
        except Exception as e:
            # Redis unreachable: ownership is rechecked on the next write
            logger.warning(f"Failed to refresh scan lease: {e}", exc_info=True)
            return True

    async def _ensure_lease(self) -> None:
        """
        Confirm ownership before writing progress or snapshot rows.

        Raises:
            ScanLeaseLostError: If another worker now holds the scan lock
        """
        if not await self._holds_lease():
            raise ScanLeaseLostError("Scan lease lost to another worker")

    async def _update_progress(self, **fields) -> None:
        await self._ensure_lease()
        await self.progress.update(**fields)
