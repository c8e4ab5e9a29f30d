"""
Connection Handler Tests
========================

Poke/respond protocol over real loopback sockets.
"""

import socket
import struct
import threading
import time

import pytest

from minicap_stream.models import EncodedFrame
from minicap_stream.server import ConnectionHandler

from conftest import recv_exact


def _frame(payload: bytes, seq: int = 1) -> EncodedFrame:
    return EncodedFrame(data=payload, width=1, height=1, quality=80, sequence=seq)


def _wait_until(predicate, timeout: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return False


@pytest.fixture
def handler(frame_server, frame_cache):
    handler = ConnectionHandler(frame_server, frame_cache, wait_poll_seconds=0.05)
    yield handler
    handler.stop()


@pytest.fixture
def single_shot_handler(frame_server, frame_cache):
    handler = ConnectionHandler(
        frame_server, frame_cache, single_shot=True, wait_poll_seconds=0.05
    )
    yield handler
    handler.stop()


class TestProtocol:
    """One byte in, exact cached bytes out."""

    def test_round_trip(self, handler, frame_cache, frame_server, connect):
        payload = bytes(range(256)) * 40
        frame_cache.store(_frame(payload))
        handler.start()

        client = connect(frame_server.bound_port)
        client.sendall(b"\x7f")

        assert recv_exact(client, len(payload)) == payload

        # No framing bytes follow the image
        client.settimeout(0.2)
        with pytest.raises(socket.timeout):
            client.recv(1)

    def test_poke_value_ignored(self, handler, frame_cache, frame_server, connect):
        frame_cache.store(_frame(b"frame"))
        handler.start()
        client = connect(frame_server.bound_port)

        for poke in (b"\x00", b"a", b"\xff"):
            client.sendall(poke)
            assert recv_exact(client, 5) == b"frame"

    def test_each_poke_gets_latest(self, handler, frame_cache, frame_server, connect):
        frame_cache.store(_frame(b"first", seq=1))
        handler.start()
        client = connect(frame_server.bound_port)

        client.sendall(b"x")
        assert recv_exact(client, 5) == b"first"

        frame_cache.store(_frame(b"second", seq=2))
        client.sendall(b"x")
        assert recv_exact(client, 6) == b"second"

        assert _wait_until(lambda: handler.metrics.responses_sent == 2)
        assert handler.metrics.bytes_sent == 11

    def test_poke_before_first_frame_waits(self, handler, frame_cache, frame_server, connect):
        handler.start()
        client = connect(frame_server.bound_port)
        client.sendall(b"x")

        timer = threading.Timer(0.2, frame_cache.store, args=(_frame(b"late"),))
        timer.start()
        try:
            assert recv_exact(client, 4) == b"late"
        finally:
            timer.cancel()


class TestReconnect:
    """Sessions end, the server keeps serving."""

    def test_new_session_after_close(self, handler, frame_cache, frame_server, connect):
        frame_cache.store(_frame(b"cached"))
        handler.start()

        first = connect(frame_server.bound_port)
        first.sendall(b"x")
        assert recv_exact(first, 6) == b"cached"
        first.close()

        second = connect(frame_server.bound_port)
        second.sendall(b"x")
        assert recv_exact(second, 6) == b"cached"

        assert _wait_until(lambda: handler.metrics.sessions_accepted == 2)

    def test_abrupt_reset(self, handler, frame_cache, frame_server, connect):
        frame_cache.store(_frame(b"cached"))
        handler.start()

        first = connect(frame_server.bound_port)
        first.setsockopt(socket.SOL_SOCKET, socket.SO_LINGER, struct.pack("ii", 1, 0))
        first.sendall(b"x")
        recv_exact(first, 6)
        first.close()

        second = connect(frame_server.bound_port)
        second.sendall(b"x")
        assert recv_exact(second, 6) == b"cached"

    def test_single_shot_closes_after_response(
        self, single_shot_handler, frame_cache, frame_server, connect
    ):
        frame_cache.store(_frame(b"once"))
        single_shot_handler.start()

        client = connect(frame_server.bound_port)
        client.sendall(b"x")
        assert recv_exact(client, 4) == b"once"
        assert client.recv(1) == b""

        again = connect(frame_server.bound_port)
        again.sendall(b"x")
        assert recv_exact(again, 4) == b"once"


class TestLifecycle:
    """start/stop behaviour."""

    def test_start_is_idempotent(self, handler):
        handler.start()
        thread = handler._thread
        handler.start()

        assert handler._thread is thread
        assert handler.running is True

    def test_stop_unblocks_session(self, handler, frame_server, connect):
        handler.start()
        thread = handler._thread
        client = connect(frame_server.bound_port)
        assert _wait_until(lambda: handler.connected)

        handler.stop(timeout=5)

        assert handler.running is False
        assert not thread.is_alive()
        assert client.recv(1) == b""

    def test_session_after_stop_is_refused(self, handler):
        handler._running = False
        server, client = socket.socketpair()
        try:
            handler.serve_session(server)

            assert handler.connected is False
            assert client.recv(1) == b""
        finally:
            client.close()

    def test_restart_after_stop(self, handler, frame_cache, frame_server, connect):
        frame_cache.store(_frame(b"again"))
        handler.start()
        handler.stop(timeout=5)

        handler.start()
        client = connect(frame_server.bound_port)
        client.sendall(b"x")

        assert handler.running is True
        assert recv_exact(client, 5) == b"again"


class TestListener:
    """SimpleServer accept path."""

    def test_accept_closes_conn_when_setup_fails(self, frame_server, monkeypatch):
        closed = []

        class BrokenConn:
            def setsockopt(self, *args):
                raise OSError("connection reset")

            def close(self):
                closed.append(True)

        class FakeListener:
            def accept(self):
                return BrokenConn(), ("127.0.0.1", 1)

        monkeypatch.setattr(frame_server, "_sock", FakeListener())

        with pytest.raises(OSError):
            frame_server.accept()

        assert closed == [True]
