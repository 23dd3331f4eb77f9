"""Endpoint health tracking with failure cooldowns."""
import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence


logger = logging.getLogger(__name__)

DEFAULT_FAILURE_THRESHOLD = 3
DEFAULT_COOLDOWN_SECONDS = 60.0


@dataclass
class EndpointHealth:
    """Health state of one endpoint."""
    url: str
    failure_count: int = 0
    last_failure: Optional[float] = None
    cooldown_until: float = 0.0

    def in_cooldown(self, now: float) -> bool:
        return self.cooldown_until > now


class EndpointPool:
    """
    Round-robin selection over a fixed set of endpoints, skipping unhealthy ones.

    An endpoint that accumulates ``failure_threshold`` failures without an
    intervening success is put in cooldown for ``cooldown_seconds``. State is
    local to one scan attempt.
    """

    def __init__(
        self,
        urls: Sequence[str],
        failure_threshold: int = DEFAULT_FAILURE_THRESHOLD,
        cooldown_seconds: float = DEFAULT_COOLDOWN_SECONDS,
        clock: Callable[[], float] = time.monotonic
    ):
        if not urls:
            raise ValueError("EndpointPool requires at least one endpoint")
        self.failure_threshold = failure_threshold
        self.cooldown_seconds = cooldown_seconds
        self._clock = clock
        self._order: List[str] = list(dict.fromkeys(urls))
        self._health: Dict[str, EndpointHealth] = {url: EndpointHealth(url) for url in self._order}
        self._index = 0

    @property
    def urls(self) -> List[str]:
        return list(self._order)

    def __len__(self) -> int:
        return len(self._order)

    def next(self) -> str:
        """
        Return the next endpoint not in cooldown, in round-robin order.

        If every endpoint is cooling down, returns the one whose cooldown
        ends first instead of blocking.
        """
        now = self._clock()
        count = len(self._order)

        for offset in range(count):
            index = (self._index + offset) % count
            health = self._health[self._order[index]]
            if health.in_cooldown(now):
                continue
            self._index = (index + 1) % count
            return health.url

        earliest = min(self._order, key=lambda url: self._health[url].cooldown_until)
        logger.warning(f"All endpoints in cooldown, using {earliest} (soonest to recover)")
        return earliest

    def report_failure(self, url: str) -> None:
        """Record a failure; enough of them in a row trigger a cooldown."""
        health = self._health.get(url)
        if health is None:
            return

        now = self._clock()
        health.failure_count += 1
        health.last_failure = now

        if health.failure_count >= self.failure_threshold:
            health.cooldown_until = now + self.cooldown_seconds
            health.failure_count = 0
            logger.warning(f"Endpoint {url} in cooldown for {self.cooldown_seconds:.0f}s")

    def report_success(self, url: str) -> None:
        """Reset the failure count after a successful call."""
        health = self._health.get(url)
        if health is None:
            return
        health.failure_count = 0

    def is_available(self, url: str) -> bool:
        health = self._health.get(url)
        return health is not None and not health.in_cooldown(self._clock())

    def snapshot(self) -> List[dict]:
        """Per-endpoint health for logging and status reporting."""
        now = self._clock()
        return [
            {
                "url": url,
                "failure_count": self._health[url].failure_count,
                "cooldown_remaining": max(0.0, self._health[url].cooldown_until - now),
            }
            for url in self._order
        ]
