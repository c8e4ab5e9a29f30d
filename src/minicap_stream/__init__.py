"""
minicap-stream
==============

On-demand display snapshot streaming for device-farm tooling.

A capture pipeline turns raw display frames into JPEGs of a fixed,
orientation-adjusted size and keeps only the latest one. A single TCP
client pokes the server with one byte and receives that latest frame.

Components:
    - capture: Encoder, rate limiter, rotation watch, frame cache, pipeline
    - display: DisplaySource protocol and a synthetic implementation
    - server: TCP listener and poke/respond connection handler
    - main: FastAPI status service

Example:
    from minicap_stream.capture import CapturePipeline, FrameCache
    from minicap_stream.display import SyntheticDisplaySource
    from minicap_stream.server import ConnectionHandler, SimpleServer

    cache = FrameCache()
    handler = ConnectionHandler(SimpleServer(port=1313), cache)
    display = SyntheticDisplaySource()
    pipeline = CapturePipeline(display, cache, connection_handler=handler)
    pipeline.init()
    display.start(fps=30)
"""

__version__ = "0.1.0"

__all__ = [
    "__version__",
]
