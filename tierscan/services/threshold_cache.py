"""Fast-read threshold cache in Redis."""
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone, timedelta
from typing import List, Optional
import redis.asyncio as redis
from tierscan.services.snapshot_store import TierThreshold


logger = logging.getLogger(__name__)

THRESHOLDS_CACHE_KEY = "xrp:thresholds"
THRESHOLDS_TTL_SECONDS = 3600  # 1 hour


@dataclass
class CachedThresholds:
    thresholds: List[TierThreshold]
    total_accounts: int
    timestamp: datetime

    def is_stale(self, max_age: timedelta, now: Optional[datetime] = None) -> bool:
        now = now or datetime.now(timezone.utc)
        return now - self.timestamp > max_age


class ThresholdCache:
    """Caches the latest threshold table with a TTL.

    Read and write errors are logged and swallowed; the durable store is
    authoritative.
    """

    def __init__(
        self,
        redis_client: redis.Redis,
        key: str = THRESHOLDS_CACHE_KEY,
        ttl_seconds: int = THRESHOLDS_TTL_SECONDS
    ):
        self.redis = redis_client
        self.key = key
        self.ttl_seconds = ttl_seconds

    @property
    def max_age(self) -> timedelta:
        return timedelta(seconds=self.ttl_seconds)

    async def get(self) -> Optional[CachedThresholds]:
        try:
            data = await self.redis.get(self.key)
        except Exception as e:
            logger.warning(f"Failed to read thresholds from Redis: {e}", exc_info=True)
            return None

        if not data:
            return None

        try:
            payload = json.loads(data)
            timestamp = datetime.fromisoformat(payload["timestamp"])
            if timestamp.tzinfo is None:
                timestamp = timestamp.replace(tzinfo=timezone.utc)
            return CachedThresholds(
                thresholds=[TierThreshold.from_dict(item) for item in payload["thresholds"]],
                total_accounts=int(payload["total_accounts"]),
                timestamp=timestamp,
            )
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(f"Discarding unreadable threshold cache entry: {e}")
            return None

    async def set(self, thresholds: List[TierThreshold], total_accounts: int) -> None:
        payload = {
            "thresholds": [t.to_dict() for t in thresholds],
            "total_accounts": total_accounts,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        try:
            await self.redis.setex(self.key, self.ttl_seconds, json.dumps(payload))
        except Exception as e:
            logger.warning(f"Failed to update threshold cache: {e}", exc_info=True)
