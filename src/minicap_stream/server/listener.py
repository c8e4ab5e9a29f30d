"""
Simple Server
=============

Minimal blocking TCP listener.

Binds with address reuse and a backlog of one, since only one client
is served at a time. close() shuts the socket down first, which wakes a
thread blocked in accept().
"""

import logging
import socket
from typing import Optional, Tuple


logger = logging.getLogger(__name__)


class SimpleServer:
    """
    Single-client TCP listener.

    Attributes:
        host: Bind address
        port: Requested port (0 = ephemeral)

    Example:
        server = SimpleServer(port=1313)
        server.start()
        conn, addr = server.accept()
    """

    def __init__(self, host: str = "0.0.0.0", port: int = 1313, backlog: int = 1) -> None:
        self.host = host
        self.port = port
        self.backlog = backlog
        self._sock: Optional[socket.socket] = None

    @property
    def listening(self) -> bool:
        return self._sock is not None

    @property
    def bound_port(self) -> Optional[int]:
        """Actual listening port, None before start()."""
        if self._sock is None:
            return None
        return self._sock.getsockname()[1]

    def start(self) -> int:
        """
        Bind and listen.

        Returns:
            The bound port

        Raises:
            OSError: If the address cannot be bound
        """
        if self._sock is not None:
            return self.bound_port  # type: ignore[return-value]

        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind((self.host, self.port))
            sock.listen(self.backlog)
        except OSError:
            sock.close()
            raise

        self._sock = sock
        logger.info(f"Listening on {self.host}:{self.bound_port}")
        return self.bound_port  # type: ignore[return-value]

    def accept(self) -> Tuple[socket.socket, Tuple[str, int]]:
        """
        Block until a client connects.

        Raises:
            OSError: If the server is not listening or was closed
        """
        if self._sock is None:
            raise OSError("SimpleServer is not listening")
        conn, addr = self._sock.accept()
        try:
            conn.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        except OSError:
            conn.close()
            raise
        return conn, addr

    def close(self) -> None:
        """Stop listening."""
        sock, self._sock = self._sock, None
        if sock is None:
            return
        try:
            sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            # Not connected; close() below still releases the port
            pass
        sock.close()
        logger.info("Listener closed")
