"""
Command Line Entry Point
========================

Usage:
    python -m minicap_stream serve --port 1313 --frame-rate 15
    python -m minicap_stream screenshot -o screen.jpg
    python -m minicap_stream screenshot > screen.jpg
"""

import argparse
import logging
import sys
from typing import List, Optional, Tuple

from minicap_stream.config import settings


logger = logging.getLogger(__name__)


def parse_size(value: str) -> Tuple[int, int]:
    """Parse a WIDTHxHEIGHT string."""
    try:
        width, height = (int(part) for part in value.lower().split("x"))
    except ValueError:
        raise argparse.ArgumentTypeError(f"Expected WIDTHxHEIGHT, got {value!r}")
    if width <= 0 or height <= 0:
        raise argparse.ArgumentTypeError(f"Size must be positive, got {value!r}")
    return width, height


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="minicap_stream",
        description="Stream display snapshots to a single client on demand",
    )
    parser.add_argument("-Q", "--quality", type=int, help="JPEG quality (1-100)")
    parser.add_argument("-r", "--frame-rate", type=float, help="Max frames per second")
    parser.add_argument("-O", "--rotation", type=int, choices=range(4), help="Initial rotation")
    parser.add_argument("-s", "--size", type=parse_size, help="Output size WIDTHxHEIGHT at rotation 0")

    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the frame socket and status API")
    serve.add_argument("-p", "--port", type=int, help="Frame socket port")
    serve.add_argument("--http-port", type=int, help="Status API port")
    serve.add_argument(
        "-d", "--debug",
        action="store_true",
        help="Close each session after one response",
    )

    shot = sub.add_parser("screenshot", help="Capture one frame and exit")
    shot.add_argument("-o", "--output", help="Output file (default: stdout)")
    shot.add_argument("-t", "--timeout", type=float, default=5.0, help="Seconds to wait for a frame")

    return parser


def apply_overrides(args: argparse.Namespace) -> None:
    """Apply command line flags on top of the loaded settings."""
    if args.quality is not None:
        settings.capture.quality = args.quality
    if args.frame_rate is not None:
        settings.capture.frame_rate = args.frame_rate
    if args.rotation is not None:
        settings.display.rotation = args.rotation
    if args.size is not None:
        settings.display.width, settings.display.height = args.size

    if args.command == "serve":
        if args.port is not None:
            settings.server.port = args.port
        if args.http_port is not None:
            settings.http.port = args.http_port
        if args.debug:
            settings.server.debug = True


def screenshot(output: Optional[str], timeout: float) -> int:
    """Capture one frame into output (or stdout)."""
    from minicap_stream.capture import FrameCache
    from minicap_stream.main import create_display_source, create_pipeline

    display = create_display_source()
    pipeline = create_pipeline(display, FrameCache())
    display.start(fps=settings.display.synthetic_fps)

    try:
        if output:
            with open(output, "wb") as sink:
                pipeline.screenshot(sink, timeout=timeout)
            logger.info(f"Screenshot saved to {output}")
        else:
            pipeline.screenshot(sys.stdout.buffer, timeout=timeout)
    except TimeoutError as e:
        logger.error(str(e))
        return 1
    finally:
        display.stop()

    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    apply_overrides(args)

    if args.command == "screenshot":
        return screenshot(args.output, args.timeout)

    from minicap_stream.main import run

    run()
    return 0


if __name__ == "__main__":
    sys.exit(main())
