"""
Rate Limiter
============

Minimum-interval gate for capture events.

An event is processed when strictly more than one frame period has
elapsed since the last processed event. Rejections leave the state
untouched, so a burst of events never pushes the next accept further out.
"""

import math
from typing import Optional


def frame_period_ms(frame_rate: Optional[float]) -> float:
    """
    Convert a frame rate to the minimum interval between frames.

    Args:
        frame_rate: Frames per second. None or inf means unbounded.

    Returns:
        Period in milliseconds (0.0 when unbounded)
    """
    if frame_rate is None or math.isinf(frame_rate):
        return 0.0
    if frame_rate <= 0:
        raise ValueError(f"frame_rate must be positive, got {frame_rate}")
    return 1000.0 / frame_rate


class RateLimiter:
    """
    Decides whether a frame-available event should be processed.

    Example:
        limiter = RateLimiter()
        limiter.should_process(0, 100)    # True
        limiter.should_process(50, 100)   # False
        limiter.should_process(150, 100)  # True
    """

    def __init__(self) -> None:
        self._last_accepted: Optional[float] = None
        self._accepted: int = 0
        self._rejected: int = 0

    @property
    def last_accepted_timestamp(self) -> Optional[float]:
        """Timestamp of the last accepted event, None before the first."""
        return self._last_accepted

    @property
    def accepted_count(self) -> int:
        return self._accepted

    @property
    def rejected_count(self) -> int:
        return self._rejected

    def should_process(self, now: float, frame_period: float) -> bool:
        """
        Check an event against the frame period.

        Args:
            now: Event time in milliseconds
            frame_period: Minimum interval in milliseconds (<= 0 accepts all)

        Returns:
            True if the event should be processed. The accept time is
            recorded only in that case.
        """
        if (
            frame_period <= 0
            or self._last_accepted is None
            or now - self._last_accepted > frame_period
        ):
            self._last_accepted = now
            self._accepted += 1
            return True

        self._rejected += 1
        return False

    def reset(self) -> None:
        """Forget the last accepted timestamp."""
        self._last_accepted = None
