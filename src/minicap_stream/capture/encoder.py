"""
Frame Encoder
=============

Turns a borrowed RGBA pixel buffer into a JPEG of the requested size.

Steps:
    1. Rebuild an (H, W, 4) raster, skipping row padding
    2. Rotate 90° clockwise if the buffer orientation does not match the target
    3. Crop to the target size from the origin
    4. Convert RGBA -> BGR and compress with OpenCV

Design Rules:
    - This is the ONLY place in the codebase that encodes images
    - Never truncates silently: a target larger than the raster is an error
    - Allocates fresh arrays per call, so it holds no state between frames
"""

import logging
import time

import cv2
import numpy as np

from minicap_stream.errors import FrameEncodeError, InvalidDimensions
from minicap_stream.models.frame import (
    BYTES_PER_PIXEL_RGBA,
    PIXEL_FORMAT_RGBA_8888,
    EncodedFrame,
    RawFrame,
    TargetSize,
)


logger = logging.getLogger(__name__)


MIN_QUALITY = 1
MAX_QUALITY = 100


def validate_quality(quality: int) -> int:
    """Return quality if it is inside [1, 100], raise ValueError otherwise."""
    if not MIN_QUALITY <= quality <= MAX_QUALITY:
        raise ValueError(
            f"quality must be in [{MIN_QUALITY}, {MAX_QUALITY}], got {quality}"
        )
    return quality


def raster_from_raw(raw: RawFrame) -> np.ndarray:
    """
    Rebuild the pixel raster described by a raw frame.

    Args:
        raw: Borrowed frame with row_stride/pixel_stride layout

    Returns:
        RGBA raster as np.ndarray (H, W, 4), dtype=uint8. May be a view
        on raw.buffer, so it must not outlive the frame.

    Raises:
        FrameEncodeError: If the pixel format is not RGBA_8888
        InvalidDimensions: If the buffer is too small for the layout
    """
    if raw.pixel_format != PIXEL_FORMAT_RGBA_8888:
        raise FrameEncodeError(f"Unsupported pixel format: {raw.pixel_format}")

    if raw.width <= 0 or raw.height <= 0:
        raise InvalidDimensions(f"Empty raw frame: {raw.width}x{raw.height}")

    if raw.pixel_stride < BYTES_PER_PIXEL_RGBA:
        raise InvalidDimensions(
            f"pixel_stride {raw.pixel_stride} is smaller than an RGBA pixel"
        )

    if raw.row_padding < 0:
        raise InvalidDimensions(
            f"row_stride {raw.row_stride} is smaller than "
            f"{raw.width} pixels of {raw.pixel_stride} bytes"
        )

    flat = np.frombuffer(raw.buffer, dtype=np.uint8)

    # The last row is allowed to stop right after its final pixel
    row_bytes = raw.pixel_stride * raw.width
    needed = raw.row_stride * (raw.height - 1) + row_bytes
    if flat.size < needed:
        raise InvalidDimensions(
            f"Buffer holds {flat.size} bytes, "
            f"{raw.width}x{raw.height} frame needs {needed}"
        )

    full = raw.row_stride * raw.height
    if flat.size < full:
        padded = np.zeros(full, dtype=np.uint8)
        padded[: flat.size] = flat
        flat = padded

    rows = flat[:full].reshape(raw.height, raw.row_stride)
    pixels = rows[:, :row_bytes].reshape(raw.height, raw.width, raw.pixel_stride)
    return pixels[:, :, :BYTES_PER_PIXEL_RGBA]


class FrameEncoder:
    """
    JPEG encoder for raw display frames.

    Stateless apart from counters, so one instance can be shared by the
    pipeline and one-shot screenshots.

    Example:
        encoder = FrameEncoder()
        frame = encoder.encode(raw, quality=80, target_size=TargetSize(720, 1280))
        assert (frame.width, frame.height) == (720, 1280)
    """

    def __init__(self) -> None:
        self._encoded_count: int = 0
        self._last_encode_ms: float = 0.0

    @property
    def encoded_count(self) -> int:
        """Number of frames successfully encoded."""
        return self._encoded_count

    @property
    def last_encode_ms(self) -> float:
        """Wall time spent in the most recent successful encode."""
        return self._last_encode_ms

    def encode(
        self,
        raw: RawFrame,
        quality: int,
        target_size: TargetSize,
        sequence: int = 0,
    ) -> EncodedFrame:
        """
        Encode a raw frame into a JPEG of exactly target_size.

        Args:
            raw: Borrowed frame. Not retained after the call returns.
            quality: JPEG quality in [1, 100]
            target_size: Output dimensions
            sequence: Sequence number stamped on the result

        Returns:
            EncodedFrame whose data decodes to target_size

        Raises:
            ValueError: If quality is out of range
            InvalidDimensions: If target_size does not fit the raster
            FrameEncodeError: If OpenCV fails to compress the raster
        """
        validate_quality(quality)
        started = time.perf_counter()

        raster = raster_from_raw(raw)

        # Correct orientation before cropping so the crop always fits the target
        if raw.is_landscape != target_size.is_landscape:
            raster = cv2.rotate(np.ascontiguousarray(raster), cv2.ROTATE_90_CLOCKWISE)

        height, width = raster.shape[:2]
        if target_size.width > width or target_size.height > height:
            raise InvalidDimensions(
                f"Target {target_size} exceeds raster {width}x{height}"
            )

        cropped = np.ascontiguousarray(
            raster[: target_size.height, : target_size.width]
        )
        bgr = cv2.cvtColor(cropped, cv2.COLOR_RGBA2BGR)

        ok, jpeg_buf = cv2.imencode(
            ".jpg", bgr, [cv2.IMWRITE_JPEG_QUALITY, int(quality)]
        )
        if not ok:
            raise FrameEncodeError(
                f"cv2.imencode failed for {target_size} frame at quality {quality}"
            )

        self._encoded_count += 1
        self._last_encode_ms = (time.perf_counter() - started) * 1000.0

        return EncodedFrame(
            data=jpeg_buf.tobytes(),
            width=target_size.width,
            height=target_size.height,
            quality=quality,
            sequence=sequence,
            timestamp=raw.timestamp,
        )
