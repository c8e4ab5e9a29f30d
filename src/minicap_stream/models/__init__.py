"""
Models Module
=============

Value types shared by the capture pipeline and the connection handler.

Example:
    from minicap_stream.models import TargetSize

    base = TargetSize(1080, 1920)
    print(base.for_rotation(1))  # 1920x1080
"""

from minicap_stream.models.frame import (
    BYTES_PER_PIXEL_RGBA,
    PIXEL_FORMAT_RGBA_8888,
    EncodedFrame,
    RawFrame,
    Rect,
    TargetSize,
    validate_rotation,
)

__all__ = [
    "BYTES_PER_PIXEL_RGBA",
    "PIXEL_FORMAT_RGBA_8888",
    "EncodedFrame",
    "RawFrame",
    "Rect",
    "TargetSize",
    "validate_rotation",
]
