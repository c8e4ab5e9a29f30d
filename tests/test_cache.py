"""
Frame Cache Tests
=================

Single-slot semantics, waiting for the first frame and torn-read safety.
"""

import threading
import time

from minicap_stream.capture import FrameCache
from minicap_stream.models import EncodedFrame


def _frame(seq: int, size: int = 64) -> EncodedFrame:
    return EncodedFrame(
        data=bytes([seq % 256]) * size,
        width=size,
        height=1,
        quality=80,
        sequence=seq,
    )


class TestFrameCache:
    """Store/snapshot behaviour."""

    def test_empty_snapshot_is_none(self, frame_cache):
        assert frame_cache.snapshot() is None
        assert frame_cache.has_frame is False

    def test_store_replaces(self, frame_cache):
        for seq in range(1, 6):
            frame_cache.store(_frame(seq))

        snapshot = frame_cache.snapshot()
        assert snapshot.sequence == 5
        assert frame_cache.store_count == 5

    def test_clear(self, frame_cache):
        frame_cache.store(_frame(1))
        frame_cache.clear()

        assert frame_cache.snapshot() is None

    def test_metrics(self, frame_cache):
        assert frame_cache.metrics()["has_frame"] is False

        frame_cache.store(_frame(3, size=10))
        metrics = frame_cache.metrics()

        assert metrics["has_frame"] is True
        assert metrics["sequence"] == 3
        assert metrics["bytes"] == 10


class TestWaitForFrame:
    """Blocking until the first frame."""

    def test_timeout_returns_none(self, frame_cache):
        started = time.monotonic()
        assert frame_cache.wait_for_frame(timeout=0.1) is None
        assert time.monotonic() - started >= 0.09

    def test_returns_immediately_when_cached(self, frame_cache):
        frame_cache.store(_frame(1))
        assert frame_cache.wait_for_frame(timeout=0).sequence == 1

    def test_wakes_on_store(self, frame_cache):
        timer = threading.Timer(0.1, frame_cache.store, args=(_frame(9),))
        timer.start()
        try:
            frame = frame_cache.wait_for_frame(timeout=5)
        finally:
            timer.cancel()

        assert frame is not None
        assert frame.sequence == 9


class TestConcurrency:
    """Concurrent store and snapshot never yield a mixed value."""

    def test_no_torn_reads(self, frame_cache):
        stored = {}
        errors = []
        stop = threading.Event()

        def writer(offset: int) -> None:
            seq = offset
            while not stop.is_set():
                frame = _frame(seq, size=4096)
                stored[seq] = frame.data
                frame_cache.store(frame)
                seq += 2

        def reader() -> None:
            while not stop.is_set():
                frame = frame_cache.snapshot()
                if frame is None:
                    continue
                if frame.data != stored.get(frame.sequence):
                    errors.append(frame.sequence)
                if len(set(frame.data)) != 1:
                    errors.append(frame.sequence)

        threads = [threading.Thread(target=writer, args=(i,)) for i in (1, 2)]
        threads += [threading.Thread(target=reader) for _ in range(3)]
        for thread in threads:
            thread.start()

        time.sleep(0.3)
        stop.set()
        for thread in threads:
            thread.join(timeout=5)

        assert errors == []
        assert frame_cache.store_count > 0
