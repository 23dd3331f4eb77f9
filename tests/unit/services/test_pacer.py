"""Unit tests for AdaptivePacer."""
import pytest

from tierscan.services.pacer import AdaptivePacer, PacerConfig


@pytest.mark.unit
@pytest.mark.critical
class TestAdaptivePacer:
    """Test delay adjustments."""

    def test_initial_delay(self):
        """✅ Starts at the initial delay."""
        pacer = AdaptivePacer()
        assert pacer.delay_ms == 100
        assert pacer.delay_seconds == pytest.approx(0.1)

    def test_slow_then_error_sequence(self):
        """✅ 100 → 150 → 225 on two slow responses, then 450 on an error."""
        pacer = AdaptivePacer()

        assert pacer.adjust(2500, was_error=False) == pytest.approx(150)
        assert pacer.adjust(2500, was_error=False) == pytest.approx(225)
        assert pacer.adjust(100, was_error=True) == pytest.approx(450)
        assert pacer.success_streak == 0

    def test_speeds_up_only_after_streak(self):
        """✅ Fast responses reduce the delay only from the 10th in a row."""
        pacer = AdaptivePacer()

        for _ in range(9):
            assert pacer.adjust(100, was_error=False) == pytest.approx(100)

        assert pacer.adjust(100, was_error=False) == pytest.approx(90)
        assert pacer.adjust(100, was_error=False) == pytest.approx(81)

    def test_normal_response_keeps_delay(self):
        """✅ Responses between 0.5x and 2x target leave the delay unchanged."""
        pacer = AdaptivePacer()
        for _ in range(20):
            pacer.adjust(1000, was_error=False)
        assert pacer.delay_ms == pytest.approx(100)

    def test_bounds(self):
        """✅ Delay stays within [min, max]."""
        pacer = AdaptivePacer(PacerConfig(min_delay_ms=20, max_delay_ms=5000, fast_streak=1))

        for _ in range(20):
            pacer.adjust(0, was_error=True)
        assert pacer.delay_ms == 5000

        for _ in range(200):
            pacer.adjust(10, was_error=False)
        assert pacer.delay_ms == 20

    def test_reset(self):
        """✅ Reset restores the initial delay and clears the streak."""
        pacer = AdaptivePacer()
        pacer.adjust(0, was_error=True)
        pacer.adjust(100, was_error=False)
        pacer.reset()
        assert pacer.delay_ms == 100
        assert pacer.success_streak == 0
