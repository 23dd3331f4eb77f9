"""Bounded exponential-backoff retry for remote ledger calls."""
import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    RetryError,
    retry_if_exception,
    stop_after_attempt,
)
from tenacity.wait import wait_base
from tierscan.providers import LedgerError
from tierscan.services.endpoint_pool import EndpointPool


logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetryConfig:
    """Retry configuration; delays in milliseconds."""
    max_attempts: int = 5
    base_delay_ms: float = 100.0
    max_delay_ms: float = 30000.0


class wait_capped_exponential_jitter(wait_base):
    """Wait ``min(base * 2**attempt, max)`` plus uniform jitter in ``[0, 0.5 * capped)``.

    ``attempt`` counts from 0 for the wait after the first failure.
    """

    def __init__(self, base: float, maximum: float, rng: Optional[random.Random] = None):
        self.base = base
        self.maximum = maximum
        self.rng = rng or random.Random()

    def capped(self, attempt: int) -> float:
        return min(self.base * (2 ** attempt), self.maximum)

    def __call__(self, retry_state: RetryCallState) -> float:
        capped = self.capped(retry_state.attempt_number - 1)
        return capped + self.rng.random() * capped * 0.5


def is_transient(exc: BaseException) -> bool:
    """Only transient ledger errors are retried."""
    return isinstance(exc, LedgerError) and exc.is_transient


@dataclass
class RetryOutcome(Generic[T]):
    """Result of a retried call."""
    value: Optional[T] = None
    rotate_endpoint: bool = False
    attempts: int = 0
    last_error: Optional[LedgerError] = None


class RetryController:
    """
    Wraps one remote call with retry on transient errors.

    Fatal errors propagate immediately. When transient errors exhaust the
    attempt budget the controller returns an outcome asking the caller to
    rotate endpoints rather than raising.
    """

    def __init__(
        self,
        pool: EndpointPool,
        config: Optional[RetryConfig] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        rng: Optional[random.Random] = None
    ):
        self.pool = pool
        self.config = config or RetryConfig()
        self._sleep = sleep
        # Delays are configured in ms; tenacity waits in seconds
        self._wait = wait_capped_exponential_jitter(
            base=self.config.base_delay_ms / 1000.0,
            maximum=self.config.max_delay_ms / 1000.0,
            rng=rng,
        )

    def _log_retry(self, endpoint: str) -> Callable[[RetryCallState], None]:
        def before_sleep(retry_state: RetryCallState) -> None:
            delay = retry_state.next_action.sleep if retry_state.next_action else 0
            logger.warning(
                f"Rate limited on {endpoint}, retry {retry_state.attempt_number}/"
                f"{self.config.max_attempts} in {delay * 1000:.0f}ms: "
                f"{retry_state.outcome.exception()}"
            )
        return before_sleep

    async def call(self, fn: Callable[[], Awaitable[T]], endpoint: str) -> RetryOutcome[T]:
        """
        Invoke ``fn`` against ``endpoint`` with retry.

        Returns:
            RetryOutcome with the value, or ``rotate_endpoint=True`` after
            the attempts are exhausted

        Raises:
            LedgerError: Fatal errors, unchanged
        """
        attempts = 0
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.config.max_attempts),
                wait=self._wait,
                retry=retry_if_exception(is_transient),
                before_sleep=self._log_retry(endpoint),
                sleep=self._sleep,
            ):
                with attempt:
                    attempts = attempt.retry_state.attempt_number
                    try:
                        value = await fn()
                    except LedgerError as e:
                        if e.is_transient:
                            self.pool.report_failure(endpoint)
                        raise
                    self.pool.report_success(endpoint)
                    return RetryOutcome(value=value, attempts=attempts)
        except RetryError as e:
            last_error = e.last_attempt.exception()
            logger.warning(f"Max retries exceeded on {endpoint}, rotating to next endpoint")
            return RetryOutcome(rotate_endpoint=True, attempts=attempts, last_error=last_error)

        # AsyncRetrying always returns or raises inside the loop
        raise RuntimeError("Retry loop exited without a result")
