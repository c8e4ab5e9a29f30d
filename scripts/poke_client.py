#!/usr/bin/env python3
"""
Poke Client Smoke Test
======================

Standalone script to exercise a running frame socket.

This script:
    1. Connects to the frame socket
    2. Pokes for frames for a configurable duration
    3. Logs stats every few seconds, reconnecting when the server closes
    4. Reports a final summary

The protocol has no length prefix, so a response is read until the
JPEG end-of-image marker.

Usage:
    python scripts/poke_client.py --duration 30
    python scripts/poke_client.py --host 127.0.0.1 --port 1313 --save last.jpg
"""

import argparse
import logging
import os
import socket
import sys
import time
from typing import Optional

import cv2
import numpy as np


logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%S",
)
logger = logging.getLogger(__name__)


JPEG_EOI = b"\xff\xd9"


def read_frame(sock: socket.socket) -> Optional[bytes]:
    """Read one JPEG response, None if the server closed the connection."""
    chunks = bytearray()
    while not chunks.endswith(JPEG_EOI):
        chunk = sock.recv(65536)
        if not chunk:
            return None
        chunks.extend(chunk)
    return bytes(chunks)


def run_test(host: str, port: int, duration: int, report_interval: int) -> dict:
    logger.info("=" * 60)
    logger.info(f"Poking {host}:{port} for {duration} seconds")
    logger.info("=" * 60)

    frames = 0
    reconnects = 0
    last_frame: Optional[bytes] = None
    sock: Optional[socket.socket] = None

    start_time = time.time()
    last_report_time = start_time
    last_frame_count = 0

    try:
        while time.time() - start_time < duration:
            if sock is None:
                sock = socket.create_connection((host, port), timeout=10)
                logger.info("Connected")

            sock.sendall(b"x")
            data = read_frame(sock)
            if data is None:
                logger.warning("Server closed connection, reconnecting")
                sock.close()
                sock = None
                reconnects += 1
                continue

            frames += 1
            last_frame = data

            time_since_report = time.time() - last_report_time
            if time_since_report >= report_interval:
                fps = (frames - last_frame_count) / time_since_report
                logger.info(f"Frames: {frames}  FPS: {fps:.1f}  Last size: {len(data)} bytes")
                last_report_time = time.time()
                last_frame_count = frames

    except KeyboardInterrupt:
        logger.info("Test interrupted by user")
    finally:
        if sock is not None:
            sock.close()

    total_time = time.time() - start_time
    size = None
    if last_frame is not None:
        image = cv2.imdecode(np.frombuffer(last_frame, np.uint8), cv2.IMREAD_COLOR)
        if image is not None:
            size = f"{image.shape[1]}x{image.shape[0]}"

    logger.info("=" * 60)
    logger.info("FINAL SUMMARY")
    logger.info("=" * 60)
    logger.info(f"Total runtime: {total_time:.1f} seconds")
    logger.info(f"Frames received: {frames}")
    logger.info(f"Average FPS: {frames / total_time if total_time > 0 else 0:.1f}")
    logger.info(f"Reconnections: {reconnects}")
    logger.info(f"Last frame size: {size}")
    logger.info("=" * 60)

    return {
        "frames_received": frames,
        "reconnections": reconnects,
        "last_frame": last_frame,
    }


def main():
    parser = argparse.ArgumentParser(description="Poke a minicap-stream frame socket")
    parser.add_argument("--host", default="127.0.0.1", help="Server host")
    parser.add_argument(
        "--port",
        type=int,
        default=int(os.environ.get("MINICAP_PORT", 1313)),
        help="Frame socket port (default: 1313)",
    )
    parser.add_argument("--duration", type=int, default=30, help="Test duration in seconds")
    parser.add_argument("--report-interval", type=int, default=5, help="Seconds between reports")
    parser.add_argument("--save", help="Write the last received frame to this file")

    args = parser.parse_args()

    result = run_test(args.host, args.port, args.duration, args.report_interval)

    if args.save and result["last_frame"]:
        with open(args.save, "wb") as f:
            f.write(result["last_frame"])
        logger.info(f"Saved last frame to {args.save}")

    sys.exit(0 if result["frames_received"] > 0 else 1)


if __name__ == "__main__":
    main()
