"""Redis lease lock guaranteeing at most one active scan."""
import logging
import secrets
from typing import Optional
import redis.asyncio as redis
from redis.exceptions import WatchError


logger = logging.getLogger(__name__)

SCAN_LOCK_KEY = "xrp:scan:lock"
SCAN_LOCK_TTL = 15 * 60  # Refreshed on every checkpoint


class ScanLeaseLostError(Exception):
    """The scan lease expired or was taken by another holder."""
    pass


class ScanLease:
    """A held lease on the scan lock, identified by a random token."""

    def __init__(self, lock: "ScanLock", token: str):
        self._lock = lock
        self.token = token
        self.released = False

    async def refresh(self) -> bool:
        """Extend the lease. Returns False if it is no longer ours."""
        return await self._lock._compare_and_act(self.token, extend=True)

    async def release(self) -> bool:
        """Release the lease if still held. Returns False if it was lost."""
        if self.released:
            return False
        self.released = True
        return await self._lock._compare_and_act(self.token, extend=False)


class ScanLock:
    """
    Lease lock built on ``SET NX EX``.

    Acquisition is atomic. Refresh and release only act while the stored
    token still matches, inside a WATCH/MULTI transaction, so a holder whose
    lease expired can never extend or delete a newer holder's lease.
    """

    def __init__(
        self,
        redis_client: redis.Redis,
        key: str = SCAN_LOCK_KEY,
        ttl_seconds: int = SCAN_LOCK_TTL
    ):
        self.redis = redis_client
        self.key = key
        self.ttl_seconds = ttl_seconds

    async def acquire(self) -> Optional[ScanLease]:
        """Try to take the lock without waiting."""
        token = secrets.token_hex(16)
        acquired = await self.redis.set(self.key, token, nx=True, ex=self.ttl_seconds)
        if not acquired:
            logger.info("Scan lock is held by another worker")
            return None
        logger.debug(f"Acquired scan lock {token[:8]}")
        return ScanLease(self, token)

    async def is_locked(self) -> bool:
        return bool(await self.redis.exists(self.key))

    async def _compare_and_act(self, token: str, extend: bool) -> bool:
        async with self.redis.pipeline(transaction=True) as pipe:
            try:
                await pipe.watch(self.key)
                current = await pipe.get(self.key)
                if current != token:
                    await pipe.unwatch()
                    return False
                pipe.multi()
                if extend:
                    pipe.expire(self.key, self.ttl_seconds)
                else:
                    pipe.delete(self.key)
                await pipe.execute()
                return True
            except WatchError:
                logger.warning("Scan lock changed while updating lease")
                return False
