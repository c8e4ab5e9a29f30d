"""
Server Module
=============

TCP serving side of the frame stream.

Components:
    - SimpleServer: Single-client blocking TCP listener
    - ConnectionHandler: Poke/respond loop with reconnect-on-close

Example:
    from minicap_stream.server import ConnectionHandler, SimpleServer

    handler = ConnectionHandler(SimpleServer(port=1313), cache)
    handler.start()
"""

from minicap_stream.server.handler import (
    POKE_SIZE,
    ConnectionHandler,
    ConnectionMetrics,
)
from minicap_stream.server.listener import SimpleServer

__all__ = [
    "POKE_SIZE",
    "ConnectionHandler",
    "ConnectionMetrics",
    "SimpleServer",
]
