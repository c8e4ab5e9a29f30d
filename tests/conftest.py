"""
Test Configuration
==================

Pytest fixtures and test configuration for minicap-stream.
"""

import socket
from typing import Callable, Optional

import cv2
import numpy as np
import pytest

from minicap_stream.models.frame import RawFrame


def make_raw_frame(
    width: int,
    height: int,
    color=(255, 0, 0, 255),
    row_padding: int = 0,
    timestamp: float = 0.0,
    pixels: Optional[np.ndarray] = None,
) -> RawFrame:
    """Build a RawFrame filled with one RGBA color (or the given pixels)."""
    if pixels is None:
        pixels = np.empty((height, width, 4), dtype=np.uint8)
        pixels[:, :] = color

    row_bytes = width * 4
    rows = np.zeros((height, row_bytes + row_padding), dtype=np.uint8)
    rows[:, :row_bytes] = pixels.reshape(height, row_bytes)

    return RawFrame(
        buffer=rows.tobytes(),
        width=width,
        height=height,
        pixel_stride=4,
        row_stride=row_bytes + row_padding,
        timestamp=timestamp,
    )


def decode_jpeg(data: bytes) -> np.ndarray:
    """Decode JPEG bytes to a BGR array."""
    image = cv2.imdecode(np.frombuffer(data, np.uint8), cv2.IMREAD_COLOR)
    assert image is not None, "JPEG failed to decode"
    return image


def recv_exact(sock: socket.socket, size: int) -> bytes:
    """Read exactly size bytes or fail the test."""
    data = bytearray()
    while len(data) < size:
        chunk = sock.recv(size - len(data))
        assert chunk, f"Connection closed after {len(data)} of {size} bytes"
        data.extend(chunk)
    return bytes(data)


@pytest.fixture
def raw_frame_factory() -> Callable[..., RawFrame]:
    """Provide the RawFrame builder."""
    return make_raw_frame


@pytest.fixture
def frame_cache():
    """Provide an empty FrameCache."""
    from minicap_stream.capture import FrameCache

    return FrameCache()


@pytest.fixture
def synthetic_display():
    """Provide a small portrait synthetic display with padded rows."""
    from minicap_stream.display import SyntheticDisplaySource

    display = SyntheticDisplaySource(width=48, height=64, rotation=0, row_padding=16)
    yield display
    display.stop()


@pytest.fixture
def frame_server():
    """Provide a SimpleServer on an ephemeral loopback port."""
    from minicap_stream.server import SimpleServer

    server = SimpleServer(host="127.0.0.1", port=0)
    yield server
    server.close()


@pytest.fixture
def connect():
    """Provide a client connector that closes its sockets afterwards."""
    sockets = []

    def _connect(port: int) -> socket.socket:
        sock = socket.create_connection(("127.0.0.1", port), timeout=5)
        sockets.append(sock)
        return sock

    yield _connect

    for sock in sockets:
        sock.close()
