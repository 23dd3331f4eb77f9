"""Adaptive inter-request delay driven by response latency and errors."""
from dataclasses import dataclass
from typing import Optional


@dataclass
class PacerConfig:
    """Bounds and targets for the adaptive pacer (milliseconds)."""
    min_delay_ms: float = 20.0
    max_delay_ms: float = 5000.0
    initial_delay_ms: float = 100.0
    target_response_ms: float = 1000.0
    fast_streak: int = 10  # Successes needed before speeding up


class AdaptivePacer:
    """
    Proposes the delay between page requests.

    Slows down immediately on errors or slow responses, and only speeds up
    after a sustained streak of fast responses so a single quick sample does
    not cause oscillation.
    """

    def __init__(self, config: Optional[PacerConfig] = None):
        self.config = config or PacerConfig()
        self._delay_ms = self.config.initial_delay_ms
        self._success_streak = 0

    @property
    def delay_ms(self) -> float:
        return self._delay_ms

    @property
    def delay_seconds(self) -> float:
        return self._delay_ms / 1000.0

    @property
    def success_streak(self) -> int:
        return self._success_streak

    def adjust(self, response_time_ms: float, was_error: bool) -> float:
        """
        Update the delay from one request's outcome.

        Args:
            response_time_ms: Observed latency of the request
            was_error: Whether the request failed

        Returns:
            New delay in milliseconds
        """
        cfg = self.config

        if was_error:
            self._delay_ms = min(self._delay_ms * 2, cfg.max_delay_ms)
            self._success_streak = 0
            return self._delay_ms

        self._success_streak += 1

        if response_time_ms > cfg.target_response_ms * 2:
            self._delay_ms = min(self._delay_ms * 1.5, cfg.max_delay_ms)
            self._success_streak = 0
        elif response_time_ms < cfg.target_response_ms * 0.5 and self._success_streak >= cfg.fast_streak:
            self._delay_ms = max(self._delay_ms * 0.9, cfg.min_delay_ms)

        return self._delay_ms

    def reset(self) -> None:
        self._delay_ms = self.config.initial_delay_ms
        self._success_streak = 0
