"""Shared scan progress record stored in Redis."""
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from pydantic import BaseModel, ValidationError
import redis.asyncio as redis


logger = logging.getLogger(__name__)

SCAN_PROGRESS_KEY = "xrp:scan:progress"
SCAN_PROGRESS_TTL = 24 * 60 * 60  # 24 hours


class ScanStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    FAILED = "failed"


class ScanProgress(BaseModel):
    """Checkpoint and status of the current (or last) scan attempt."""
    status: ScanStatus = ScanStatus.IDLE
    cursor: Optional[Any] = None  # Opaque ledger_data marker
    processed_count: int = 0
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    ledger_index: Optional[int] = None
    last_error: Optional[str] = None
    consecutive_failures: int = 0
    active_endpoint: Optional[str] = None
    last_checkpoint_at: Optional[datetime] = None

    @property
    def is_resumable(self) -> bool:
        """Paused with a checkpoint to continue from."""
        return (
            self.status == ScanStatus.PAUSED
            and self.cursor is not None
            and self.ledger_index is not None
        )


class ScanProgressStore:
    """
    Reads and writes the ScanProgress record.

    Redis failures are logged and swallowed: reads fall back to an idle
    record and writes are dropped, so a cache outage never aborts a scan.
    """

    def __init__(
        self,
        redis_client: redis.Redis,
        key: str = SCAN_PROGRESS_KEY,
        ttl_seconds: int = SCAN_PROGRESS_TTL
    ):
        self.redis = redis_client
        self.key = key
        self.ttl_seconds = ttl_seconds

    async def get(self) -> ScanProgress:
        try:
            data = await self.redis.get(self.key)
        except Exception as e:
            logger.warning(f"Failed to read scan progress from Redis: {e}", exc_info=True)
            return ScanProgress()

        if not data:
            return ScanProgress()

        try:
            return ScanProgress.model_validate_json(data)
        except ValidationError as e:
            logger.warning(f"Discarding unreadable scan progress: {e}")
            return ScanProgress()

    async def set(self, progress: ScanProgress) -> None:
        try:
            await self.redis.setex(self.key, self.ttl_seconds, progress.model_dump_json())
        except Exception as e:
            logger.error(f"Failed to write scan progress to Redis: {e}", exc_info=True)

    async def update(self, **changes) -> ScanProgress:
        """Merge ``changes`` into the stored record and write it back."""
        current = await self.get()
        updated = current.model_copy(update=changes)
        await self.set(updated)
        return updated

    async def checkpoint(self, cursor: Optional[Any], processed_count: int) -> ScanProgress:
        """Persist the position reached after a successful page."""
        return await self.update(
            cursor=cursor,
            processed_count=processed_count,
            consecutive_failures=0,
            last_checkpoint_at=datetime.now(timezone.utc),
        )
