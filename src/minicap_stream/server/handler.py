"""
Connection Handler
==================

Serves the frame cache over the poke/respond protocol.

Protocol:
    Client -> Server: 1 byte, value ignored ("poke")
    Server -> Client: the complete cached JPEG, no length prefix

One session is served at a time. When a session ends (peer close, I/O
error, or single-shot mode) the handler goes straight back to accept()
and the cached frame is kept for the next client.

Design Rules:
    - Runs in its own thread, never in the capture context
    - Holds no cache lock while reading or writing the socket
    - A poke that arrives before the first frame waits for it
"""

import logging
import socket
import threading
from typing import Optional

from minicap_stream.capture.cache import FrameCache
from minicap_stream.models.frame import EncodedFrame
from minicap_stream.server.listener import SimpleServer


logger = logging.getLogger(__name__)


POKE_SIZE = 1


class ConnectionMetrics:
    """Metrics for ConnectionHandler observability."""

    __slots__ = (
        "sessions_accepted",
        "responses_sent",
        "bytes_sent",
        "io_errors",
        "accept_errors",
    )

    def __init__(self) -> None:
        self.sessions_accepted: int = 0
        self.responses_sent: int = 0
        self.bytes_sent: int = 0
        self.io_errors: int = 0
        self.accept_errors: int = 0

    def to_dict(self) -> dict:
        """Export metrics as dict."""
        return {
            "sessions_accepted": self.sessions_accepted,
            "responses_sent": self.responses_sent,
            "bytes_sent": self.bytes_sent,
            "io_errors": self.io_errors,
            "accept_errors": self.accept_errors,
        }


class ConnectionHandler:
    """
    Single-client serving loop.

    Attributes:
        server: Listener sessions are accepted from
        cache: Cache responses are read from
        single_shot: Close each session after one response ("debug" mode)
        connected: Whether a session is currently being served
        metrics: Operational metrics

    Example:
        handler = ConnectionHandler(SimpleServer(port=1313), cache)
        handler.start()
        ...
        handler.stop()
    """

    def __init__(
        self,
        server: SimpleServer,
        cache: FrameCache,
        single_shot: bool = False,
        wait_poll_seconds: float = 0.5,
        accept_backoff_seconds: float = 0.5,
    ) -> None:
        """
        Initialize connection handler.

        Args:
            server: Listener to accept sessions from
            cache: Frame cache to serve
            single_shot: Close each session after one response
            wait_poll_seconds: Shutdown check interval while waiting
                for the first frame
            accept_backoff_seconds: Delay after a failed accept()
        """
        self.server = server
        self.cache = cache
        self.single_shot = single_shot
        self.wait_poll_seconds = wait_poll_seconds
        self.accept_backoff_seconds = accept_backoff_seconds

        self.metrics = ConnectionMetrics()

        self._running: bool = False
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._session: Optional[socket.socket] = None
        self._session_lock = threading.Lock()

    @property
    def connected(self) -> bool:
        """Whether a client session is active."""
        with self._session_lock:
            return self._session is not None

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        """
        Start the serving thread. A no-op while running; after stop() the
        listener is bound again.

        Raises:
            OSError: If the listener cannot be bound
        """
        if self._thread is not None:
            return

        self.server.start()
        self._running = True
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self.serve_forever,
            name="connection_handler",
            daemon=True,
        )
        self._thread.start()

    def stop(self, timeout: float = 5.0) -> None:
        """
        Stop serving.

        Closes the listener and the active session so blocked accept()
        and recv() calls return.
        """
        logger.info("ConnectionHandler stopping...")
        # A session registered after this block sees _running False
        with self._session_lock:
            self._running = False
            session = self._session
        self._stop_event.set()
        self.server.close()

        if session is not None:
            try:
                session.shutdown(socket.SHUT_RDWR)
            except OSError:
                # Peer already gone
                pass

        thread, self._thread = self._thread, None
        if thread is not None:
            thread.join(timeout=timeout)
            if thread.is_alive():
                logger.warning(f"ConnectionHandler thread still running after {timeout}s")

    def serve_forever(self) -> None:
        """Accept and serve sessions until stop() is called."""
        logger.info("ConnectionHandler started, waiting for a client")

        while self._running:
            try:
                conn, addr = self.server.accept()
            except OSError as e:
                if not self._running:
                    break
                self.metrics.accept_errors += 1
                logger.error(f"Accept failed: {e}")
                if self._stop_event.wait(self.accept_backoff_seconds):
                    break
                continue

            self.metrics.sessions_accepted += 1
            logger.info(f"New connection from {addr[0]}:{addr[1]}")
            self.serve_session(conn)

            if self._running:
                logger.info("Waiting on new connection")

        logger.info("ConnectionHandler stopped")

    def serve_session(self, conn: socket.socket) -> None:
        """
        Run the poke/respond loop for one session, then close it.

        Args:
            conn: Connected client socket. Always closed on return.
        """
        with self._session_lock:
            if not self._running:
                conn.close()
                return
            self._session = conn

        try:
            while self._running:
                try:
                    poke = conn.recv(POKE_SIZE)
                except OSError as e:
                    self.metrics.io_errors += 1
                    logger.warning(f"Read from client failed: {e}")
                    return

                if not poke:
                    logger.info("Client closed connection")
                    return

                frame = self._wait_for_frame()
                if frame is None:
                    return

                try:
                    conn.sendall(frame.data)
                except OSError as e:
                    self.metrics.io_errors += 1
                    logger.warning(f"Write to client failed: {e}")
                    return

                self.metrics.responses_sent += 1
                self.metrics.bytes_sent += len(frame.data)
                logger.debug(f"Sent image to client ({len(frame.data)} bytes)")

                if self.single_shot:
                    logger.info("Single-shot mode, closing session")
                    return
        finally:
            with self._session_lock:
                self._session = None
            conn.close()

    def _wait_for_frame(self) -> Optional[EncodedFrame]:
        """Block until the cache holds a frame, or None when stopping."""
        while self._running:
            frame = self.cache.wait_for_frame(timeout=self.wait_poll_seconds)
            if frame is not None:
                return frame
            logger.debug("Client poked before the first frame, waiting")
        return None
