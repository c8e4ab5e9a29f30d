"""
Display Module
==============

Seam between the capture pipeline and the display system.

Components:
    - DisplaySource: Protocol for display backends
    - CaptureHandle: Protocol for capture targets created by a backend
    - SyntheticDisplaySource: Deterministic in-process backend

Design Philosophy:
    The pipeline only sees sizes, rotations and borrowed RawFrames.
    How pixels reach the capture target is the backend's business.
"""

from minicap_stream.display.source import (
    CaptureHandle,
    DisplaySource,
    FrameListener,
)
from minicap_stream.display.synthetic import (
    SyntheticCaptureHandle,
    SyntheticDisplaySource,
)

__all__ = [
    "CaptureHandle",
    "DisplaySource",
    "FrameListener",
    "SyntheticCaptureHandle",
    "SyntheticDisplaySource",
]
