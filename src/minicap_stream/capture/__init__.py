"""
Capture Module
==============

Capture-to-cache pipeline.

Components:
    - FrameEncoder: Raw RGBA buffer -> JPEG of the target size
    - RateLimiter: Minimum-interval gate between processed frames
    - FrameCache: Thread-safe single-slot latest-frame holder
    - RotationWatch: Display orientation change detector
    - CapturePipeline: Orchestrator invoked once per capture event

Example:
    from minicap_stream.capture import CapturePipeline, FrameCache

    cache = FrameCache()
    pipeline = CapturePipeline(display, cache, quality=80, frame_rate=15)
    pipeline.init()
"""

from minicap_stream.capture.cache import FrameCache
from minicap_stream.capture.encoder import FrameEncoder, raster_from_raw, validate_quality
from minicap_stream.capture.pipeline import (
    CapturePipeline,
    PipelineMetrics,
    PipelineState,
)
from minicap_stream.capture.rate_limiter import RateLimiter, frame_period_ms
from minicap_stream.capture.rotation import RotationWatch


__all__ = [
    "CapturePipeline",
    "FrameCache",
    "FrameEncoder",
    "PipelineMetrics",
    "PipelineState",
    "RateLimiter",
    "RotationWatch",
    "frame_period_ms",
    "raster_from_raw",
    "validate_quality",
]
