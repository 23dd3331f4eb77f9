"""Scan entry points: start, resume and status."""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, List, Optional
import redis.asyncio as redis
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from tierscan.core.config import Settings, settings as default_settings
from tierscan.providers import LedgerClient
from tierscan.providers.xrpl_ws import XrplLedgerClient
from tierscan.services.endpoint_pool import EndpointPool
from tierscan.services.pacer import AdaptivePacer, PacerConfig
from tierscan.services.retry import RetryConfig, RetryController
from tierscan.services.scan_lock import ScanLease, ScanLock
from tierscan.services.scan_progress import ScanProgress, ScanProgressStore, ScanStatus
from tierscan.services.snapshot_store import SnapshotStore, TierThreshold
from tierscan.services.threshold_cache import ThresholdCache
from tierscan.workers.scan_orchestrator import ScanConfig, ScanOrchestrator, ScanResult


logger = logging.getLogger(__name__)

ALREADY_RUNNING_ERROR = "Scan already in progress"


@dataclass
class ScanTicket:
    """A claimed scan attempt: the held lease and the progress it started from."""
    lease: ScanLease
    previous: ScanProgress
    resume: bool


@dataclass
class ScanStatusReport:
    progress: ScanProgress
    total_accounts: int = 0
    thresholds: List[TierThreshold] = field(default_factory=list)
    lock_held: bool = False

    def to_dict(self) -> dict:
        data = self.progress.model_dump(mode="json")
        data.update({
            "total_accounts": self.total_accounts,
            "thresholds": [t.to_dict() for t in self.thresholds],
            "lock_held": self.lock_held,
        })
        return data


class ScanService:
    """
    Wires the scan components from settings and guards runs with the lease lock.

    One service instance can serve many scans; every run gets a fresh
    endpoint pool, pacer, retry controller and ledger connection.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        redis_client: redis.Redis,
        config: Optional[Settings] = None,
        client_factory: Optional[Callable[[], LedgerClient]] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep
    ):
        self.settings = config or default_settings
        self.store = SnapshotStore(session_factory)
        self.progress = ScanProgressStore(redis_client, ttl_seconds=self.settings.scan_progress_ttl_seconds)
        self.threshold_cache = ThresholdCache(redis_client, ttl_seconds=self.settings.thresholds_cache_ttl_seconds)
        self.lock = ScanLock(redis_client, ttl_seconds=self.settings.scan_lock_ttl_seconds)
        self._client_factory = client_factory or (
            lambda: XrplLedgerClient(request_timeout=self.settings.xrpl_connection_timeout)
        )
        self._sleep = sleep

    def build_orchestrator(self, lease: Optional[ScanLease] = None) -> ScanOrchestrator:
        s = self.settings
        pool = EndpointPool(
            s.endpoint_list,
            failure_threshold=s.endpoint_failure_threshold,
            cooldown_seconds=s.endpoint_cooldown_seconds,
        )
        pacer = AdaptivePacer(PacerConfig(
            min_delay_ms=s.pacer_min_delay_ms,
            max_delay_ms=s.pacer_max_delay_ms,
            initial_delay_ms=s.pacer_initial_delay_ms,
            target_response_ms=s.pacer_target_response_ms,
            fast_streak=s.pacer_fast_streak,
        ))
        retry = RetryController(
            pool,
            RetryConfig(
                max_attempts=s.retry_max_attempts,
                base_delay_ms=s.retry_base_delay_ms,
                max_delay_ms=s.retry_max_delay_ms,
            ),
            sleep=self._sleep,
        )
        return ScanOrchestrator(
            client=self._client_factory(),
            store=self.store,
            progress=self.progress,
            threshold_cache=self.threshold_cache,
            pool=pool,
            pacer=pacer,
            retry=retry,
            config=ScanConfig(
                page_limit=s.scan_page_limit,
                batch_size=s.scan_batch_size,
                max_consecutive_failures=s.scan_max_consecutive_failures,
                log_interval=s.scan_log_interval,
            ),
            lease=lease,
            sleep=self._sleep,
        )

    async def begin(self, resume: bool = False) -> Optional[ScanTicket]:
        """
        Claim the scan lease and mark the scan as running.

        Returns:
            A ticket for ``run``, or None if another scan holds the lease
        """
        lease = await self.lock.acquire()
        if lease is None:
            return None

        previous = await self.progress.get()
        await self.progress.update(status=ScanStatus.RUNNING, last_error=None)
        logger.info(f"Scan claimed (resume={resume}, previous status={previous.status.value})")
        return ScanTicket(lease=lease, previous=previous, resume=resume)

    async def run(self, ticket: ScanTicket) -> ScanResult:
        """Run a claimed scan to completion, pause or failure, then release the lease."""
        try:
            orchestrator = self.build_orchestrator(ticket.lease)
            return await orchestrator.run(resume=ticket.resume, previous=ticket.previous)
        finally:
            released = await ticket.lease.release()
            if not released:
                logger.warning("Scan lease was already lost when releasing")

    async def start_scan(self, resume: bool = False) -> ScanResult:
        """
        Start a new scan, or resume a paused one when ``resume`` is set.

        Returns immediately with ``already_running=True`` if another scan
        holds the lease.
        """
        ticket = await self.begin(resume)
        if ticket is None:
            logger.info("Scan already in progress, not starting another")
            return ScanResult(
                success=False,
                total_accounts=0,
                error=ALREADY_RUNNING_ERROR,
                already_running=True,
            )
        return await self.run(ticket)

    async def get_scan_status(self) -> ScanStatusReport:
        progress = await self.progress.get()
        report = ScanStatusReport(progress=progress)

        try:
            report.lock_held = await self.lock.is_locked()
        except Exception as e:
            logger.warning(f"Failed to read scan lock state: {e}")

        if progress.status == ScanStatus.COMPLETED:
            try:
                report.total_accounts = await self.store.get_published_total()
                report.thresholds = await self.store.get_thresholds()
            except Exception as e:
                logger.warning(f"Failed to read snapshot for scan status: {e}", exc_info=True)
                report.total_accounts = 0
                report.thresholds = []

        return report
