"""
Capture Pipeline
================

Orchestrates rotation check -> rate limit -> encode -> cache store for
every capture event delivered by a DisplaySource.

State machine:
    UNINITIALIZED --init()--> INITIALIZED --first stored frame--> SERVING
    Any rotation change re-runs init() and falls back to INITIALIZED.

Threading:
    init() is called before delivery starts, afterwards only from inside
    on_frame_available(). The display source serializes its listener, so
    the pipeline needs no lock of its own. close() may be called from any
    thread; detaching the listener waits for an in-flight callback.

Example:
    cache = FrameCache()
    pipeline = CapturePipeline(display, cache, quality=80, frame_rate=10)
    pipeline.init()
    display.start(fps=30)
"""

import logging
import math
import threading
from enum import Enum
from typing import TYPE_CHECKING, BinaryIO, Dict, Optional

from minicap_stream.capture.cache import FrameCache
from minicap_stream.capture.encoder import FrameEncoder, validate_quality
from minicap_stream.capture.rate_limiter import RateLimiter, frame_period_ms
from minicap_stream.capture.rotation import RotationWatch
from minicap_stream.display.source import CaptureHandle, DisplaySource, FrameListener
from minicap_stream.errors import FrameEncodeError, PipelineStateError
from minicap_stream.models.frame import (
    PIXEL_FORMAT_RGBA_8888,
    EncodedFrame,
    Rect,
    TargetSize,
    validate_rotation,
)

if TYPE_CHECKING:
    from minicap_stream.server.handler import ConnectionHandler


logger = logging.getLogger(__name__)


class PipelineState(str, Enum):
    """Lifecycle states of a capture pipeline."""

    UNINITIALIZED = "UNINITIALIZED"
    INITIALIZED = "INITIALIZED"
    SERVING = "SERVING"


class PipelineMetrics:
    """Metrics for CapturePipeline observability."""

    __slots__ = (
        "events",
        "frames_encoded",
        "dropped_no_frame",
        "dropped_rate_limited",
        "dropped_rotation",
        "rotation_changes",
        "encode_errors",
        "last_encode_ms",
    )

    def __init__(self) -> None:
        self.events: int = 0
        self.frames_encoded: int = 0
        self.dropped_no_frame: int = 0
        self.dropped_rate_limited: int = 0
        self.dropped_rotation: int = 0
        self.rotation_changes: int = 0
        self.encode_errors: int = 0
        self.last_encode_ms: float = 0.0

    def to_dict(self) -> dict:
        """Export metrics as dict."""
        return {
            "events": self.events,
            "frames_encoded": self.frames_encoded,
            "dropped_no_frame": self.dropped_no_frame,
            "dropped_rate_limited": self.dropped_rate_limited,
            "dropped_rotation": self.dropped_rotation,
            "rotation_changes": self.rotation_changes,
            "encode_errors": self.encode_errors,
            "last_encode_ms": round(self.last_encode_ms, 3),
        }


class CapturePipeline:
    """
    Capture-to-cache orchestrator.

    Attributes:
        display: Display source frames come from
        cache: Single-slot cache frames are stored into
        base_size: Output size at rotation 0
        layer: Layer stack passed to the display binding
        encoder: Frame encoder
        rate_limiter: Minimum-interval gate
        rotation_watch: Orientation change detector
        connection_handler: Started on the first stored frame, retried
            until start() succeeds
        metrics: Operational metrics
    """

    def __init__(
        self,
        display: DisplaySource,
        cache: FrameCache,
        base_size: Optional[TargetSize] = None,
        rotation: Optional[int] = None,
        quality: int = 100,
        frame_rate: Optional[float] = None,
        layer: int = 0,
        encoder: Optional[FrameEncoder] = None,
        connection_handler: Optional["ConnectionHandler"] = None,
    ) -> None:
        """
        Initialize capture pipeline.

        Args:
            display: Display source to capture from
            cache: Cache receiving encoded frames
            base_size: Output size at rotation 0. Defaults to the display size.
            rotation: Initial rotation. Defaults to the display rotation.
            quality: JPEG quality in [1, 100]
            frame_rate: Max frames per second (None = unbounded)
            layer: Display layer stack to capture
            encoder: Encoder instance (a new one by default)
            connection_handler: Serving loop to start on the first frame
        """
        self.display = display
        self.cache = cache

        self._rotation = validate_rotation(
            display.current_rotation() if rotation is None else rotation
        )

        if base_size is None:
            # Live size is reported in the display's own orientation
            live = TargetSize(*display.current_size())
            base_size = live.for_rotation(validate_rotation(display.current_rotation()))
        self.base_size = base_size

        self._quality = validate_quality(quality)
        self._frame_rate: Optional[float] = None
        self._frame_period_ms: float = 0.0
        self.frame_rate = frame_rate

        self.layer = layer
        self.encoder = encoder or FrameEncoder()
        self.rate_limiter = RateLimiter()
        self.rotation_watch = RotationWatch(display)
        self.connection_handler = connection_handler
        self.metrics = PipelineMetrics()

        self._state = PipelineState.UNINITIALIZED
        self._handle: Optional[CaptureHandle] = None
        self._listener: Optional[FrameListener] = None
        self._sequence: int = 0
        self._handler_started: bool = False

        logger.info(
            f"CapturePipeline initialized: base_size={self.base_size}, "
            f"rotation={self._rotation}, quality={quality}, frame_rate={frame_rate}"
        )

    # -------------------------------------------------------------------------
    # Runtime configuration
    # -------------------------------------------------------------------------

    @property
    def state(self) -> PipelineState:
        return self._state

    @property
    def rotation(self) -> int:
        return self._rotation

    @property
    def target_size(self) -> TargetSize:
        """Output size for the current rotation."""
        return self.base_size.for_rotation(self._rotation)

    @property
    def quality(self) -> int:
        return self._quality

    @quality.setter
    def quality(self, value: int) -> None:
        self._quality = validate_quality(value)
        logger.info(f"quality: {value}")

    @property
    def frame_rate(self) -> Optional[float]:
        return self._frame_rate

    @frame_rate.setter
    def frame_rate(self, value: Optional[float]) -> None:
        if value is not None and math.isinf(value):
            value = None
        self._frame_period_ms = frame_period_ms(value)
        self._frame_rate = value
        logger.info(f"framePeriodMs: {self._frame_period_ms:.1f}")

    @property
    def frame_period_ms(self) -> float:
        return self._frame_period_ms

    @property
    def capture_handle(self) -> Optional[CaptureHandle]:
        return self._handle

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def init(self, listener: Optional[FrameListener] = None) -> None:
        """
        (Re)create the capture target for the current target size.

        Any previous capture target is detached and closed first. On
        failure the pipeline is left UNINITIALIZED with no capture target.

        Args:
            listener: Frame callback. Defaults to on_frame_available, or to
                the listener of the previous init().

        Raises:
            DisplayInitError: If the display source cannot create or bind
                the capture target (other backend errors propagate as-is)
        """
        if listener is not None:
            self._listener = listener
        elif self._listener is None:
            self._listener = self.on_frame_available

        self._release_target()

        target = self.target_size
        screen_width, screen_height = self.display.current_size()
        logger.info(
            f"Initialising capture target: target={target}, "
            f"screen={screen_width}x{screen_height}, rotation={self._rotation}"
        )

        handle: Optional[CaptureHandle] = None
        try:
            handle = self.display.create_capture_target(
                target.width, target.height, PIXEL_FORMAT_RGBA_8888
            )
            self.display.bind_capture_to_display(
                handle,
                Rect.of_size(screen_width, screen_height),
                Rect.of_size(target.width, target.height),
                self.layer,
            )
            # Listener may fire as soon as it is registered
            self._handle = handle
            self._state = PipelineState.INITIALIZED
            self.display.set_frame_listener(handle, self._listener)
        except Exception as e:
            logger.error(f"Capture target initialisation failed: {e}")
            self._handle = None
            self._state = PipelineState.UNINITIALIZED
            if handle is not None:
                handle.close()
            raise

        logger.info("Initialised capture target")

    def close(self) -> None:
        """Detach from the display and return to UNINITIALIZED."""
        self._release_target()
        self._listener = None

    def _release_target(self) -> None:
        handle = self._handle
        self._handle = None
        self._state = PipelineState.UNINITIALIZED
        if handle is not None:
            self.display.set_frame_listener(handle, None)
            handle.close()

    # -------------------------------------------------------------------------
    # Capture events
    # -------------------------------------------------------------------------

    def on_frame_available(self) -> None:
        """
        Handle one capture event from the display source.

        Raises:
            PipelineStateError: If called before init()
        """
        if self._state is PipelineState.UNINITIALIZED:
            raise PipelineStateError("on_frame_available() called before init()")

        self.metrics.events += 1

        live_rotation = self.rotation_watch.check(self._rotation)
        if live_rotation is not None:
            # In-flight frames have the old shape; skip this one
            self.metrics.rotation_changes += 1
            self.metrics.dropped_rotation += 1
            self._rotation = live_rotation
            self.init()
            logger.info(f"Current rotation: {self._rotation}, target={self.target_size}")
            return

        try:
            encoded = self._capture_cycle()
        except FrameEncodeError as e:
            logger.error(f"Encode failed, dropping frame: {e}")
            return

        if encoded is None:
            return

        self._state = PipelineState.SERVING
        self._start_connection_handler()

    def _capture_cycle(self) -> Optional[EncodedFrame]:
        """
        Acquire, rate-limit, encode and cache one frame.

        Returns:
            The stored frame, or None if the event was dropped.

        Raises:
            FrameEncodeError: If encoding fails. The raw frame is released.
        """
        if self._handle is None:
            raise PipelineStateError("No capture target")

        raw = self._handle.acquire_latest_frame()
        if raw is None:
            self.metrics.dropped_no_frame += 1
            logger.debug("No image available")
            return None

        try:
            if not self.rate_limiter.should_process(raw.timestamp, self._frame_period_ms):
                self.metrics.dropped_rate_limited += 1
                logger.debug(f"Frame at {raw.timestamp:.1f}ms dropped by rate limiter")
                return None

            try:
                encoded = self.encoder.encode(
                    raw,
                    self._quality,
                    self.target_size,
                    sequence=self._sequence + 1,
                )
            except FrameEncodeError:
                self.metrics.encode_errors += 1
                raise
        finally:
            raw.close()

        self._sequence = encoded.sequence
        self.cache.store(encoded)
        self.metrics.frames_encoded += 1
        self.metrics.last_encode_ms = self.encoder.last_encode_ms
        return encoded

    def _start_connection_handler(self) -> None:
        if self._handler_started or self.connection_handler is None:
            return
        logger.info("First frame stored, starting connection handler")
        try:
            self.connection_handler.start()
        except OSError as e:
            # Retried on the next stored frame
            logger.error(f"Connection handler failed to start: {e}")
            return
        self._handler_started = True

    # -------------------------------------------------------------------------
    # One-shot capture
    # -------------------------------------------------------------------------

    def screenshot(self, sink: BinaryIO, timeout: Optional[float] = None) -> EncodedFrame:
        """
        Capture a single frame and write it to sink.

        Runs init(), waits for the next capture event that yields a frame,
        writes the JPEG bytes to sink and detaches from the display. The
        pipeline never enters SERVING.

        Args:
            sink: Binary file-like object
            timeout: Maximum seconds to wait for a frame. None = forever.

        Returns:
            The captured frame

        Raises:
            TimeoutError: If no frame arrived in time
            FrameEncodeError: If the captured frame could not be encoded
        """
        done = threading.Event()
        result: Dict[str, object] = {}

        def capture_once() -> None:
            if done.is_set():
                return
            try:
                encoded = self._capture_cycle()
            except FrameEncodeError as e:
                result["error"] = e
                done.set()
                return
            if encoded is not None:
                result["frame"] = encoded
                done.set()

        self.rate_limiter.reset()
        self.init(listener=capture_once)
        try:
            if not done.wait(timeout):
                raise TimeoutError(f"No frame captured within {timeout}s")
        finally:
            self.close()

        if "error" in result:
            raise result["error"]  # type: ignore[misc]

        encoded: EncodedFrame = result["frame"]  # type: ignore[assignment]
        sink.write(encoded.data)
        sink.flush()
        logger.info(f"Screenshot written: {encoded!r}")
        return encoded
