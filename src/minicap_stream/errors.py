"""
Error Types
===========

Exception hierarchy for the capture-to-serve pipeline.

    MinicapError
    ├── FrameEncodeError
    │   └── InvalidDimensions
    ├── PipelineStateError
    └── DisplayInitError

Client I/O failures are plain ``OSError`` and never leave the serving loop.
"""


class MinicapError(Exception):
    """Base class for all minicap_stream errors."""
    pass


class FrameEncodeError(MinicapError):
    """Raised when a raw frame cannot be turned into an encoded image."""
    pass


class InvalidDimensions(FrameEncodeError):
    """Raised when the target size does not fit inside the raw buffer."""
    pass


class PipelineStateError(MinicapError):
    """Raised when a pipeline operation is called in the wrong state."""
    pass


class DisplayInitError(MinicapError):
    """Raised when the display source cannot create or bind a capture target."""
    pass
