"""
minicap-stream Configuration
============================

This module handles configuration loading for the frame streaming service.

Configuration Sources (in order of precedence):
    1. Environment variables (highest priority)
    2. config.yaml file
    3. Default values (lowest priority)

Environment Variable Mapping:
    MINICAP_QUALITY        -> capture.quality
    MINICAP_FRAME_RATE     -> capture.frame_rate
    MINICAP_ROTATION       -> display.rotation
    MINICAP_PORT           -> server.port
    MINICAP_DEBUG          -> server.debug
    MINICAP_HTTP_PORT      -> http.port
    MINICAP_LOG_LEVEL      -> logging.level
    PORT                   -> http.port (container platforms)

Example:
    from minicap_stream.config import settings

    print(settings.capture.quality)
    print(settings.server.port)
"""

import os
import logging
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field


logger = logging.getLogger(__name__)


_TRUE_VALUES = {"1", "true", "yes", "on"}


# =============================================================================
# Configuration Models
# =============================================================================

class ServiceConfig(BaseModel):
    """Service identification configuration."""

    name: str = Field(default="minicap-stream", description="Service name")
    version: str = Field(default="v0.1.0", description="Service version")


class DisplayConfig(BaseModel):
    """Display source configuration."""

    backend: str = Field(
        default="synthetic",
        description="Display backend: 'synthetic'",
    )
    width: Optional[int] = Field(
        default=None,
        gt=0,
        description="Output width at rotation 0 (None = display width)",
    )
    height: Optional[int] = Field(
        default=None,
        gt=0,
        description="Output height at rotation 0 (None = display height)",
    )
    rotation: Optional[int] = Field(
        default=None,
        ge=0,
        le=3,
        description="Initial rotation in quarter turns (None = display rotation)",
    )
    layer_stack: int = Field(default=0, ge=0, description="Display layer stack")
    synthetic_width: int = Field(default=720, gt=0, description="Synthetic display width")
    synthetic_height: int = Field(default=1280, gt=0, description="Synthetic display height")
    synthetic_fps: float = Field(
        default=30.0,
        gt=0,
        description="Frame delivery rate of the synthetic display",
    )
    row_padding: int = Field(
        default=0,
        ge=0,
        description="Row padding bytes of synthetic frames",
    )


class CaptureConfig(BaseModel):
    """Encoding and rate limiting configuration."""

    quality: int = Field(default=100, ge=1, le=100, description="JPEG quality")
    frame_rate: Optional[float] = Field(
        default=None,
        gt=0,
        description="Maximum frames per second (None = unbounded)",
    )


class ServerConfig(BaseModel):
    """Frame socket configuration."""

    host: str = Field(default="0.0.0.0", description="Bind host")
    port: int = Field(default=1313, ge=0, le=65535, description="Bind port")
    debug: bool = Field(
        default=False,
        description="Single-shot mode: close each session after one response",
    )
    wait_poll_seconds: float = Field(
        default=0.5,
        gt=0,
        description="Shutdown check interval while waiting for the first frame",
    )


class HttpConfig(BaseModel):
    """Status API configuration."""

    host: str = Field(default="0.0.0.0", description="Bind host")
    port: int = Field(default=8001, ge=1, le=65535, description="Bind port")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="INFO", description="Log level")
    format: str = Field(default="text", description="Log format: json or text")


class Settings(BaseModel):
    """
    Main settings class for minicap-stream.

    Loads configuration from YAML file and environment variables.
    Environment variables take precedence over file values.
    """

    service: ServiceConfig = Field(default_factory=ServiceConfig)
    display: DisplayConfig = Field(default_factory=DisplayConfig)
    capture: CaptureConfig = Field(default_factory=CaptureConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    http: HttpConfig = Field(default_factory=HttpConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


# =============================================================================
# Configuration Loading
# =============================================================================

def load_config(config_path: Optional[str] = None) -> Settings:
    """
    Load configuration from YAML file and environment variables.

    Priority (highest to lowest):
        1. Environment variables
        2. YAML config file
        3. Default values

    Args:
        config_path: Path to config.yaml. If None, searches common locations.

    Returns:
        Settings: Loaded configuration
    """
    if config_path is None:
        if env_path := os.environ.get("MINICAP_CONFIG"):
            config_path = env_path
        else:
            search_paths = [
                Path("config.yaml"),
                Path("config.yml"),
                Path(__file__).parent.parent.parent / "config.yaml",
            ]
            for path in search_paths:
                if path.exists():
                    config_path = str(path)
                    break

    config_data = {}
    if config_path and Path(config_path).exists():
        logger.info(f"Loading config from: {config_path}")
        with open(config_path, "r") as f:
            config_data = yaml.safe_load(f) or {}
    else:
        logger.warning("No config file found, using defaults and environment variables")

    _apply_env_overrides(config_data)

    return Settings.model_validate(config_data)


def _apply_env_overrides(config_data: dict) -> None:
    """Apply environment variable overrides to config data."""

    # Capture settings
    if env_quality := os.environ.get("MINICAP_QUALITY"):
        config_data.setdefault("capture", {})["quality"] = int(env_quality)
    if env_rate := os.environ.get("MINICAP_FRAME_RATE"):
        config_data.setdefault("capture", {})["frame_rate"] = float(env_rate)

    # Display settings
    if env_rotation := os.environ.get("MINICAP_ROTATION"):
        config_data.setdefault("display", {})["rotation"] = int(env_rotation)

    # Frame socket settings
    if env_port := os.environ.get("MINICAP_PORT"):
        config_data.setdefault("server", {})["port"] = int(env_port)
    if env_debug := os.environ.get("MINICAP_DEBUG"):
        config_data.setdefault("server", {})["debug"] = env_debug.lower() in _TRUE_VALUES

    # Status API (container platforms use PORT)
    if env_http := os.environ.get("PORT"):
        config_data.setdefault("http", {})["port"] = int(env_http)
    elif env_http := os.environ.get("MINICAP_HTTP_PORT"):
        config_data.setdefault("http", {})["port"] = int(env_http)

    # Logging settings
    if env_log := os.environ.get("MINICAP_LOG_LEVEL"):
        config_data.setdefault("logging", {})["level"] = env_log


def setup_logging(settings: Settings) -> None:
    """Configure logging based on settings."""
    log_level = getattr(logging, settings.logging.level.upper(), logging.INFO)

    if settings.logging.format == "json":
        log_format = '{"time": "%(asctime)s", "level": "%(levelname)s", "module": "%(name)s", "message": "%(message)s"}'
    else:
        log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    logging.basicConfig(
        level=log_level,
        format=log_format,
        datefmt="%Y-%m-%dT%H:%M:%S",
    )


# =============================================================================
# Global Settings Instance
# =============================================================================

# Global settings instance - loaded on import
settings = load_config()
setup_logging(settings)
