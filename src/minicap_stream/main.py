"""
minicap-stream Main Application
===============================

FastAPI status service wrapping the capture-to-serve pipeline.

The lifespan binds the frame socket, builds the display source and
capture pipeline and starts frame delivery. The connection handler
starts serving the frame socket once the first frame is cached.

Endpoints:
    GET  /          - Service information
    GET  /health    - Liveness probe (is process alive?)
    GET  /ready     - Readiness probe (is a frame cached?)
    GET  /metrics   - Pipeline, cache and connection metrics
    GET  /frame     - Latest cached JPEG
    POST /settings  - Update quality / frame rate at runtime
"""

import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, Field

from minicap_stream.config import settings
from minicap_stream.capture import CapturePipeline, FrameCache
from minicap_stream.display import SyntheticDisplaySource
from minicap_stream.models import TargetSize
from minicap_stream.server import ConnectionHandler, SimpleServer


logger = logging.getLogger(__name__)


# =============================================================================
# Global State
# =============================================================================

_display: Optional[SyntheticDisplaySource] = None
_frame_cache: Optional[FrameCache] = None
_pipeline: Optional[CapturePipeline] = None
_connection_handler: Optional[ConnectionHandler] = None
_startup_time: float = 0.0


def get_pipeline() -> Optional[CapturePipeline]:
    return _pipeline

def get_frame_cache() -> Optional[FrameCache]:
    return _frame_cache

def get_connection_handler() -> Optional[ConnectionHandler]:
    return _connection_handler


# =============================================================================
# Component Factories
# =============================================================================

def create_display_source() -> SyntheticDisplaySource:
    """
    Create display source based on config.

    Fails fast on unknown backends.
    """
    backend = settings.display.backend

    if backend == "synthetic":
        logger.info("Using SyntheticDisplaySource")
        return SyntheticDisplaySource(
            width=settings.display.synthetic_width,
            height=settings.display.synthetic_height,
            rotation=settings.display.rotation or 0,
            row_padding=settings.display.row_padding,
            layer_stack=settings.display.layer_stack,
        )

    raise ValueError(f"Unknown display backend: {backend}")


def configured_base_size() -> Optional[TargetSize]:
    """Output size at rotation 0 from config, None to follow the display."""
    width, height = settings.display.width, settings.display.height
    if width is None and height is None:
        return None
    if width is None or height is None:
        raise ValueError("display.width and display.height must be set together")
    return TargetSize(width, height)


def create_pipeline(
    display: SyntheticDisplaySource,
    cache: FrameCache,
    connection_handler: Optional[ConnectionHandler] = None,
) -> CapturePipeline:
    """Create a capture pipeline from config."""
    return CapturePipeline(
        display,
        cache,
        base_size=configured_base_size(),
        rotation=settings.display.rotation,
        quality=settings.capture.quality,
        frame_rate=settings.capture.frame_rate,
        layer=settings.display.layer_stack,
        connection_handler=connection_handler,
    )


# =============================================================================
# Lifespan Management
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan manager with graceful shutdown."""
    global _display, _frame_cache, _pipeline, _connection_handler, _startup_time

    _startup_time = time.time()
    logger.info(f"Starting {settings.service.name} {settings.service.version}")

    # Bind early so a busy port fails startup instead of the first frame
    server = SimpleServer(host=settings.server.host, port=settings.server.port)
    server.start()

    _frame_cache = FrameCache()
    _connection_handler = ConnectionHandler(
        server,
        _frame_cache,
        single_shot=settings.server.debug,
        wait_poll_seconds=settings.server.wait_poll_seconds,
    )

    _display = create_display_source()
    _pipeline = create_pipeline(_display, _frame_cache, _connection_handler)
    _pipeline.init()
    _display.start(fps=settings.display.synthetic_fps)

    logger.info("All components started")

    yield

    logger.info("Shutting down gracefully...")

    _display.stop()
    _pipeline.close()
    _connection_handler.stop()

    logger.info("Shutdown complete")


# =============================================================================
# FastAPI Application
# =============================================================================

app = FastAPI(
    title="minicap-stream",
    description="On-demand display snapshot streaming",
    version=settings.service.version,
    lifespan=lifespan,
)


class SettingsUpdate(BaseModel):
    """Runtime configuration update. Omitted fields are left unchanged."""

    quality: Optional[int] = Field(default=None, ge=1, le=100, description="JPEG quality")
    frame_rate: Optional[float] = Field(
        default=None,
        ge=0,
        description="Maximum frames per second (0 = unbounded)",
    )


# =============================================================================
# HTTP Endpoints
# =============================================================================

@app.get("/")
async def root() -> JSONResponse:
    """Service information endpoint."""
    return JSONResponse({
        "service": settings.service.name,
        "version": settings.service.version,
        "status": "running",
        "display_backend": settings.display.backend,
        "frame_port": settings.server.port,
        "single_shot": settings.server.debug,
    })


@app.get("/health")
async def health() -> JSONResponse:
    """
    Liveness probe - is the process alive?

    Always returns 200 if the service is running.
    """
    return JSONResponse({
        "status": "healthy",
        "uptime_seconds": round(time.time() - _startup_time, 1),
    })


@app.get("/ready")
async def ready() -> JSONResponse:
    """
    Readiness probe - can a poke be answered right away?

    Returns 200 once a frame is cached, 503 before.
    """
    pipeline = get_pipeline()
    cache = get_frame_cache()
    has_frame = cache.has_frame if cache else False

    body = {
        "pipeline_state": pipeline.state.value if pipeline else None,
        "frame_cached": has_frame,
    }

    if has_frame:
        return JSONResponse({"status": "ready", **body})
    return JSONResponse({"status": "not_ready", **body}, status_code=503)


@app.get("/metrics")
async def metrics() -> JSONResponse:
    """Detailed metrics for observability."""
    pipeline = get_pipeline()
    cache = get_frame_cache()
    handler = get_connection_handler()

    pipeline_metrics = {}
    if pipeline:
        pipeline_metrics = {
            "state": pipeline.state.value,
            "rotation": pipeline.rotation,
            "target_size": str(pipeline.target_size),
            "quality": pipeline.quality,
            "frame_rate": pipeline.frame_rate,
            **pipeline.metrics.to_dict(),
        }

    connection_metrics = {}
    if handler:
        connection_metrics = {
            "client_connected": handler.connected,
            **handler.metrics.to_dict(),
        }

    return JSONResponse({
        "uptime_seconds": round(time.time() - _startup_time, 1),
        "pipeline": pipeline_metrics,
        "cache": cache.metrics() if cache else {},
        "connection": connection_metrics,
    })


@app.get("/frame")
async def frame() -> Response:
    """Latest cached frame as JPEG."""
    cache = get_frame_cache()
    encoded = cache.snapshot() if cache else None

    if encoded is None:
        return JSONResponse(
            {"error": "No frame available yet"},
            status_code=503,
        )

    return Response(
        content=encoded.data,
        media_type="image/jpeg",
        headers={"X-Frame-Sequence": str(encoded.sequence)},
    )


@app.post("/settings")
async def update_settings(update: SettingsUpdate) -> JSONResponse:
    """Update quality and frame rate. Applies to future encodes only."""
    pipeline = get_pipeline()
    if pipeline is None:
        return JSONResponse({"error": "Pipeline not initialized"}, status_code=503)

    if update.quality is not None:
        pipeline.quality = update.quality
    if update.frame_rate is not None:
        pipeline.frame_rate = update.frame_rate or None

    return JSONResponse({
        "quality": pipeline.quality,
        "frame_rate": pipeline.frame_rate,
        "frame_period_ms": pipeline.frame_period_ms,
    })


# =============================================================================
# Main Entry Point
# =============================================================================

def run() -> None:
    """Serve the status API with uvicorn."""
    import uvicorn

    uvicorn.run(
        app,
        host=settings.http.host,
        port=settings.http.port,
        reload=False,
    )


if __name__ == "__main__":
    run()
