"""
Rate Limiter Tests
==================
"""

import math

import pytest

from minicap_stream.capture.rate_limiter import RateLimiter, frame_period_ms


class TestFramePeriod:
    """Frame rate to period conversion."""

    def test_ten_fps(self):
        assert frame_period_ms(10) == 100.0

    def test_unbounded(self):
        assert frame_period_ms(None) == 0.0
        assert frame_period_ms(math.inf) == 0.0

    @pytest.mark.parametrize("rate", [0, -1.0])
    def test_non_positive_rejected(self, rate):
        with pytest.raises(ValueError):
            frame_period_ms(rate)


class TestRateLimiter:
    """Minimum-interval gating."""

    def test_ten_fps_sequence(self):
        """t=0 accepted, t=50 dropped, t=150 accepted."""
        limiter = RateLimiter()
        period = frame_period_ms(10)

        assert limiter.should_process(0, period) is True
        assert limiter.should_process(50, period) is False
        assert limiter.should_process(150, period) is True
        assert limiter.accepted_count == 2
        assert limiter.rejected_count == 1

    def test_rejection_leaves_state(self):
        """A rejected event does not move the last accepted timestamp."""
        limiter = RateLimiter()
        limiter.should_process(0, 100)
        limiter.should_process(90, 100)

        assert limiter.last_accepted_timestamp == 0
        assert limiter.should_process(101, 100) is True

    def test_exact_period_rejected(self):
        """Elapsed time must strictly exceed the period."""
        limiter = RateLimiter()
        limiter.should_process(0, 100)

        assert limiter.should_process(100, 100) is False

    def test_unbounded_accepts_everything(self):
        limiter = RateLimiter()

        assert all(limiter.should_process(5, 0) for _ in range(10))

    def test_reset(self):
        limiter = RateLimiter()
        limiter.should_process(0, 100)
        limiter.reset()

        assert limiter.last_accepted_timestamp is None
        assert limiter.should_process(10, 100) is True
