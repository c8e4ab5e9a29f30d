"""
Frame Cache
===========

Single-slot, thread-safe holder of the most recently encoded frame.

This is the ONLY state shared between the capture context (writer)
and the serving context (reader).

Design Rules:
    - Holds at most one frame; store() replaces, never queues
    - EncodedFrame is immutable, so snapshot() can hand out the stored object
    - The lock covers the reference swap only, never network I/O
"""

import logging
import threading
from typing import Optional

from minicap_stream.models.frame import EncodedFrame


logger = logging.getLogger(__name__)


class FrameCache:
    """
    Latest-frame cache.

    Attributes:
        store_count: Number of frames ever stored

    Example:
        cache = FrameCache()

        # Capture context
        cache.store(encoded)

        # Serving context
        frame = cache.snapshot()
        if frame is None:
            frame = cache.wait_for_frame()
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._available = threading.Condition(self._lock)
        self._frame: Optional[EncodedFrame] = None
        self._store_count: int = 0

    @property
    def store_count(self) -> int:
        """Number of frames ever stored."""
        return self._store_count

    @property
    def has_frame(self) -> bool:
        with self._lock:
            return self._frame is not None

    def store(self, frame: EncodedFrame) -> None:
        """
        Replace the cached frame.

        Args:
            frame: Newly encoded frame
        """
        with self._available:
            first = self._frame is None
            self._frame = frame
            self._store_count += 1
            self._available.notify_all()

        if first:
            logger.info(f"First frame cached: {frame!r}")

    def snapshot(self) -> Optional[EncodedFrame]:
        """
        Get the cached frame.

        Returns:
            The most recently stored frame, or None if nothing was stored yet.
        """
        with self._lock:
            return self._frame

    def wait_for_frame(self, timeout: Optional[float] = None) -> Optional[EncodedFrame]:
        """
        Get the cached frame, blocking until one exists.

        Args:
            timeout: Maximum seconds to wait. None = wait forever.

        Returns:
            The cached frame, or None if timeout expired first.
        """
        with self._available:
            self._available.wait_for(lambda: self._frame is not None, timeout=timeout)
            return self._frame

    def clear(self) -> None:
        """Drop the cached frame."""
        with self._lock:
            self._frame = None

    def metrics(self) -> dict:
        """
        Get cache metrics for observability.

        Returns:
            Dict with has_frame, store_count, sequence, bytes
        """
        with self._lock:
            frame = self._frame
            store_count = self._store_count

        return {
            "has_frame": frame is not None,
            "store_count": store_count,
            "sequence": frame.sequence if frame else None,
            "bytes": len(frame.data) if frame else 0,
            "width": frame.width if frame else None,
            "height": frame.height if frame else None,
        }
