"""
Frame Data Models
=================

Typed values that flow through the capture pipeline.

    - TargetSize: Requested output dimensions (orientation-adjusted)
    - Rect: Source/destination rectangle for display binding
    - RawFrame: Borrowed pixel buffer, valid for one capture callback
    - EncodedFrame: Immutable JPEG bytes stored in the frame cache

Design Rules:
    - RawFrame is borrowed, never owned. Call close() once done with it.
    - EncodedFrame is frozen so readers can share it without copying
"""

from dataclasses import dataclass, field
from typing import Callable, Optional, Union


# Android PixelFormat.RGBA_8888
PIXEL_FORMAT_RGBA_8888 = 1

BYTES_PER_PIXEL_RGBA = 4

Buffer = Union[bytes, bytearray, memoryview]


def validate_rotation(rotation: int) -> int:
    """Return rotation if it is a valid quarter-turn count (0-3)."""
    if rotation not in (0, 1, 2, 3):
        raise ValueError(f"rotation must be in 0..3, got {rotation}")
    return rotation


@dataclass(frozen=True, slots=True)
class TargetSize:
    """
    Output raster dimensions in pixels.

    Attributes:
        width: Output width
        height: Output height
    """

    width: int
    height: int

    def __post_init__(self) -> None:
        if self.width <= 0 or self.height <= 0:
            raise ValueError(
                f"TargetSize dimensions must be positive, got {self.width}x{self.height}"
            )

    @property
    def is_landscape(self) -> bool:
        return self.width > self.height

    def swapped(self) -> "TargetSize":
        return TargetSize(width=self.height, height=self.width)

    def for_rotation(self, rotation: int) -> "TargetSize":
        """
        Orientation-adjusted size for a display rotation.

        Odd rotations (90° and 270°) swap width and height.
        """
        if validate_rotation(rotation) % 2 != 0:
            return self.swapped()
        return self

    def __str__(self) -> str:
        return f"{self.width}x{self.height}"


@dataclass(frozen=True, slots=True)
class Rect:
    """Axis-aligned rectangle, right/bottom exclusive."""

    left: int
    top: int
    right: int
    bottom: int

    @classmethod
    def of_size(cls, width: int, height: int) -> "Rect":
        return cls(0, 0, width, height)

    @property
    def width(self) -> int:
        return self.right - self.left

    @property
    def height(self) -> int:
        return self.bottom - self.top


@dataclass(slots=True)
class RawFrame:
    """
    Borrowed pixel buffer delivered by a display source.

    The buffer belongs to the display source. It is only valid until
    close() is called, which must happen before the capture callback
    that acquired the frame returns.

    Attributes:
        buffer: Pixel bytes, row_stride bytes per row
        width: Frame width in pixels
        height: Frame height in pixels
        pixel_stride: Bytes between horizontally adjacent pixels
        row_stride: Bytes between vertically adjacent rows (includes padding)
        pixel_format: Pixel layout identifier (RGBA_8888 only)
        timestamp: Capture time in milliseconds
    """

    buffer: Buffer
    width: int
    height: int
    pixel_stride: int = BYTES_PER_PIXEL_RGBA
    row_stride: int = 0
    pixel_format: int = PIXEL_FORMAT_RGBA_8888
    timestamp: float = 0.0
    release: Optional[Callable[["RawFrame"], None]] = field(default=None, repr=False)
    closed: bool = field(default=False, repr=False)

    def __post_init__(self) -> None:
        if self.row_stride == 0:
            self.row_stride = self.width * self.pixel_stride

    @property
    def row_padding(self) -> int:
        """Padding bytes at the end of each row."""
        return self.row_stride - self.pixel_stride * self.width

    @property
    def is_landscape(self) -> bool:
        return self.width > self.height

    def close(self) -> None:
        """Return the buffer to its owner. Safe to call more than once."""
        if self.closed:
            return
        self.closed = True
        if self.release is not None:
            self.release(self)


@dataclass(frozen=True, slots=True)
class EncodedFrame:
    """
    Immutable compressed still image.

    Attributes:
        data: JPEG bytes, decodes to width x height
        width: Decoded width in pixels
        height: Decoded height in pixels
        quality: JPEG quality the frame was encoded with
        sequence: Monotonic encode counter assigned by the pipeline
        timestamp: Capture time in milliseconds
    """

    data: bytes
    width: int
    height: int
    quality: int
    sequence: int = 0
    timestamp: float = 0.0

    @property
    def size(self) -> TargetSize:
        return TargetSize(self.width, self.height)

    def __len__(self) -> int:
        return len(self.data)

    def __repr__(self) -> str:
        """Compact repr that doesn't dump the image bytes."""
        return (
            f"EncodedFrame(sequence={self.sequence}, "
            f"size={self.width}x{self.height}, "
            f"quality={self.quality}, bytes={len(self.data)})"
        )
