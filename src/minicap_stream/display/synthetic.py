"""
Synthetic Display Source
========================

Deterministic in-process display for development and testing.

The synthetic display renders an RGBA gradient with a moving bar into
a padded row buffer, the same layout a real capture surface produces.
Frames are rendered at the size of the bound capture target, so a
rotation that happens before the pipeline rebinds yields frames with
the old orientation, just like a real device.

Usage:
    display = SyntheticDisplaySource(width=720, height=1280)

    # Manual delivery (tests)
    display.emit(timestamp=0.0)

    # Timed delivery (service)
    display.start(fps=30)
    ...
    display.stop()
"""

import logging
import threading
import time
from typing import List, Optional, Tuple

import numpy as np

from minicap_stream.display.source import FrameListener
from minicap_stream.errors import DisplayInitError
from minicap_stream.models.frame import (
    BYTES_PER_PIXEL_RGBA,
    PIXEL_FORMAT_RGBA_8888,
    RawFrame,
    Rect,
    TargetSize,
    validate_rotation,
)


logger = logging.getLogger(__name__)


class SyntheticCaptureHandle:
    """
    Capture target of the synthetic display.

    Holds at most one pending frame; delivering a new one releases the
    previous frame if nobody acquired it.
    """

    def __init__(self, source: "SyntheticDisplaySource", width: int, height: int) -> None:
        self.source = source
        self.width = width
        self.height = height

        self.closed: bool = False
        self.source_rect: Optional[Rect] = None
        self.dest_rect: Optional[Rect] = None
        self.layer: Optional[int] = None
        self.listener: Optional[FrameListener] = None

        self._pending: Optional[RawFrame] = None

    @property
    def bound(self) -> bool:
        return self.dest_rect is not None

    def deliver(self, frame: RawFrame) -> None:
        if self._pending is not None:
            self._discard()
        self._pending = frame

    def acquire_latest_frame(self) -> Optional[RawFrame]:
        frame, self._pending = self._pending, None
        if frame is not None:
            self.source.acquired_count += 1
        return frame

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self.listener = None
        if self._pending is not None:
            self._discard()

    def _discard(self) -> None:
        self.source.discarded_count += 1
        self._pending.close()
        self._pending = None

    def __repr__(self) -> str:
        return f"SyntheticCaptureHandle({self.width}x{self.height}, closed={self.closed})"


class SyntheticDisplaySource:
    """
    Display source that renders test patterns.

    Attributes:
        natural_size: Display size at rotation 0
        row_padding: Extra bytes appended to every buffer row
        fail_next_create: Make the next create_capture_target() raise
        acquired_count: Frames handed out through acquire_latest_frame()
        released_count: Frames returned through RawFrame.close()
        discarded_count: Pending frames dropped without being acquired
        created_targets: Every capture target created so far
    """

    def __init__(
        self,
        width: int = 720,
        height: int = 1280,
        rotation: int = 0,
        row_padding: int = 0,
        layer_stack: int = 0,
    ) -> None:
        if row_padding < 0:
            raise ValueError("row_padding must be >= 0")

        self.natural_size = TargetSize(width, height)
        self.row_padding = row_padding
        self.layer_stack = layer_stack
        self.fail_next_create: bool = False

        self.acquired_count: int = 0
        self.released_count: int = 0
        self.discarded_count: int = 0
        self.emitted_count: int = 0
        self.created_targets: List[SyntheticCaptureHandle] = []

        self._rotation = validate_rotation(rotation)
        self._handle: Optional[SyntheticCaptureHandle] = None

        # Reentrant: listeners rebuild their capture target from inside emit()
        self._delivery_lock = threading.RLock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

        logger.info(
            f"SyntheticDisplaySource initialized: size={self.natural_size}, "
            f"rotation={rotation}, row_padding={row_padding}"
        )

    # -------------------------------------------------------------------------
    # DisplaySource protocol
    # -------------------------------------------------------------------------

    def current_size(self) -> Tuple[int, int]:
        size = self.natural_size.for_rotation(self._rotation)
        return size.width, size.height

    def current_rotation(self) -> int:
        return self._rotation

    def create_capture_target(
        self,
        width: int,
        height: int,
        pixel_format: int,
    ) -> SyntheticCaptureHandle:
        if self.fail_next_create:
            self.fail_next_create = False
            raise DisplayInitError("Synthetic display refused to create a capture target")
        if pixel_format != PIXEL_FORMAT_RGBA_8888:
            raise DisplayInitError(f"Unsupported pixel format: {pixel_format}")
        if width <= 0 or height <= 0:
            raise DisplayInitError(f"Invalid capture target size: {width}x{height}")

        handle = SyntheticCaptureHandle(self, width, height)
        self.created_targets.append(handle)
        logger.debug(f"Created capture target {width}x{height}")
        return handle

    def bind_capture_to_display(
        self,
        handle: SyntheticCaptureHandle,
        source_rect: Rect,
        dest_rect: Rect,
        layer: int,
    ) -> None:
        if handle.closed:
            raise DisplayInitError("Cannot bind a closed capture target")

        with self._delivery_lock:
            handle.source_rect = source_rect
            handle.dest_rect = dest_rect
            handle.layer = layer
            self._handle = handle

        logger.debug(
            f"Bound capture target: source={source_rect}, dest={dest_rect}, layer={layer}"
        )

    def set_frame_listener(
        self,
        handle: SyntheticCaptureHandle,
        listener: Optional[FrameListener],
    ) -> None:
        with self._delivery_lock:
            handle.listener = listener

    # -------------------------------------------------------------------------
    # Simulation controls
    # -------------------------------------------------------------------------

    def set_rotation(self, rotation: int) -> None:
        """Rotate the simulated display."""
        self._rotation = validate_rotation(rotation)
        logger.info(f"Synthetic display rotated to {rotation}")

    @property
    def outstanding_frames(self) -> int:
        """Frames acquired by a consumer but not yet closed."""
        return self.acquired_count - (self.released_count - self.discarded_count)

    def emit(self, timestamp: Optional[float] = None, with_frame: bool = True) -> bool:
        """
        Deliver one capture event to the bound listener.

        Args:
            timestamp: Frame time in ms. Defaults to the monotonic clock.
            with_frame: If False, fire the listener without a pending frame.

        Returns:
            True if a listener was called.
        """
        with self._delivery_lock:
            handle = self._handle
            if handle is None or handle.closed or handle.listener is None:
                return False

            if timestamp is None:
                timestamp = time.monotonic() * 1000.0

            if with_frame:
                handle.deliver(self._render(handle, timestamp))

            self.emitted_count += 1
            handle.listener()
            return True

    def start(self, fps: float = 30.0) -> None:
        """Deliver frames from a background thread at the given rate."""
        if self._thread is not None and self._thread.is_alive():
            return
        if fps <= 0:
            raise ValueError("fps must be positive")

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run,
            args=(1.0 / fps,),
            name="synthetic_display",
            daemon=True,
        )
        self._thread.start()
        logger.info(f"Synthetic display delivering at {fps} fps")

    def stop(self) -> None:
        """Stop background delivery."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=2.0)
            self._thread = None

    def _run(self, interval: float) -> None:
        while not self._stop_event.wait(interval):
            try:
                self.emit()
            except Exception as e:
                # Listener errors must not kill delivery
                logger.error(f"Frame listener failed: {e}")

    # -------------------------------------------------------------------------
    # Rendering
    # -------------------------------------------------------------------------

    def _release(self, frame: RawFrame) -> None:
        self.released_count += 1

    def _render(self, handle: SyntheticCaptureHandle, timestamp: float) -> RawFrame:
        width, height = handle.width, handle.height
        seq = self.emitted_count

        xs = np.linspace(0, 255, num=width, dtype=np.float32)
        ys = np.linspace(0, 255, num=height, dtype=np.float32)

        rgba = np.empty((height, width, BYTES_PER_PIXEL_RGBA), dtype=np.uint8)
        rgba[:, :, 0] = xs[np.newaxis, :].astype(np.uint8)
        rgba[:, :, 1] = ys[:, np.newaxis].astype(np.uint8)
        rgba[:, :, 2] = (seq * 8) % 256
        rgba[:, :, 3] = 255

        bar_top = (seq * 4) % height
        rgba[bar_top : bar_top + 8, :, :3] = 255

        row_bytes = width * BYTES_PER_PIXEL_RGBA
        rows = np.zeros((height, row_bytes + self.row_padding), dtype=np.uint8)
        rows[:, :row_bytes] = rgba.reshape(height, row_bytes)

        return RawFrame(
            buffer=rows.tobytes(),
            width=width,
            height=height,
            pixel_stride=BYTES_PER_PIXEL_RGBA,
            row_stride=row_bytes + self.row_padding,
            pixel_format=PIXEL_FORMAT_RGBA_8888,
            timestamp=timestamp,
            release=self._release,
        )
