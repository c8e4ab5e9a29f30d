"""
Rotation Watch
==============

Detects display orientation changes between capture events.

The capture target is sized for one orientation. When the live display
rotation moves away from it, frames already in flight have the wrong
shape, so the pipeline drops them and rebuilds the capture target.
"""

import logging
from typing import Optional

from minicap_stream.display.source import DisplaySource
from minicap_stream.models.frame import validate_rotation


logger = logging.getLogger(__name__)


class RotationWatch:
    """
    Compares a configured rotation to the display's live rotation.

    Attributes:
        display: Source queried for the live rotation
        change_count: Number of rotation changes detected
    """

    def __init__(self, display: DisplaySource) -> None:
        self.display = display
        self._change_count: int = 0

    @property
    def change_count(self) -> int:
        return self._change_count

    def check(self, rotation: int) -> Optional[int]:
        """
        Check the configured rotation against the display.

        Args:
            rotation: Rotation the capture target was built for

        Returns:
            The live rotation if it differs, None if they match.
        """
        live = validate_rotation(self.display.current_rotation())
        if live == rotation:
            return None

        self._change_count += 1
        logger.info(f"Rotation change detected: {rotation} -> {live}")
        return live
