"""
Display Source Interface
========================

Capability protocols for the platform display binding.

The capture pipeline never talks to the display system directly. It
asks a DisplaySource for a capture target, binds it to the display and
registers a listener that is called once per available frame.

This interface is implemented by:
    - SyntheticDisplaySource (in-process, deterministic)
"""

from typing import Callable, Optional, Protocol, Tuple

from minicap_stream.models.frame import RawFrame, Rect


FrameListener = Callable[[], None]


class CaptureHandle(Protocol):
    """
    Capture target created by a display source.

    Frames are delivered into the handle; the listener registered for it
    pulls them with acquire_latest_frame().
    """

    width: int
    height: int

    def acquire_latest_frame(self) -> Optional[RawFrame]:
        """
        Take the newest pending frame.

        Returns:
            Borrowed RawFrame (caller must close it), or None if no frame
            is pending.
        """
        ...

    def close(self) -> None:
        """Release the capture target. Pending frames are discarded."""
        ...


class DisplaySource(Protocol):
    """
    Protocol for display backends.

    Frame listeners are invoked serially, never concurrently with
    themselves.
    """

    def current_size(self) -> Tuple[int, int]:
        """Live display size (width, height) in the current orientation."""
        ...

    def current_rotation(self) -> int:
        """Live display rotation in quarter turns (0-3)."""
        ...

    def create_capture_target(
        self,
        width: int,
        height: int,
        pixel_format: int,
    ) -> CaptureHandle:
        """
        Create a capture target delivering frames of the given size.

        Raises:
            DisplayInitError: If the target cannot be created
        """
        ...

    def bind_capture_to_display(
        self,
        handle: CaptureHandle,
        source_rect: Rect,
        dest_rect: Rect,
        layer: int,
    ) -> None:
        """
        Project source_rect of the display onto dest_rect of the target.

        Raises:
            DisplayInitError: If the binding fails
        """
        ...

    def set_frame_listener(
        self,
        handle: CaptureHandle,
        listener: Optional[FrameListener],
    ) -> None:
        """Register (or with None, remove) the per-frame callback."""
        ...
