"""Multipart MJPEG streaming over HTTP."""

import logging
import math
import time
from collections.abc import Callable, Iterable, Iterator
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

logger = logging.getLogger(__name__)

PART_BOUNDARY = "123456789000000000000987654321"
STREAM_CONTENT_TYPE = "multipart/x-mixed-replace;boundary=" + PART_BOUNDARY
STREAM_BOUNDARY = ("\r\n--" + PART_BOUNDARY + "\r\n").encode("ascii")
STREAM_PART = "Content-Type: image/jpeg\r\nContent-Length: {}\r\n\r\n"

DEFAULT_PORT = 80


class FrameTimer:
    """Measures the time between consecutive frames of a stream."""

    def __init__(self, clock: Callable[[], int] = time.monotonic_ns):
        self._clock = clock
        self._last = clock()

    def tick(self, size: int) -> tuple[int, int, float]:
        """Record a frame of ``size`` bytes; return (kilobytes, milliseconds, fps)."""
        now = self._clock()
        frame_ms = (now - self._last) // 1_000_000
        self._last = now
        fps = 1000.0 / frame_ms if frame_ms else math.inf
        size_kb = size // 1024
        logger.info("MJPG: %uKB %ums (%.1ffps)", size_kb, frame_ms, fps)
        return size_kb, frame_ms, fps


def _part_header(length: int) -> bytes:
    return STREAM_PART.format(length).encode("ascii")


def frame_part(jpeg: bytes) -> bytes:
    """Return one complete multipart section carrying ``jpeg``."""
    data = bytes(jpeg)
    return STREAM_BOUNDARY + _part_header(len(data)) + data


def mjpeg_chunks(frames: Iterable[bytes | None]) -> Iterator[bytes]:
    """Yield the boundary, part header and image data for each frame.

    A ``None`` frame stands for a failed capture and ends the stream.
    """
    timer = FrameTimer()
    for jpeg in frames:
        if jpeg is None:
            logger.error("Camera capture failed")
            return
        data = bytes(jpeg)
        yield STREAM_BOUNDARY
        yield _part_header(len(data))
        yield data
        timer.tick(len(data))


def make_handler(
    frame_source: Callable[[], Iterable[bytes | None]],
) -> type[BaseHTTPRequestHandler]:
    """Build a request handler that streams frames from ``frame_source`` at ``/``."""

    class MjpegHandler(BaseHTTPRequestHandler):
        protocol_version = "HTTP/1.1"

        def do_GET(self) -> None:
            if self.path != "/":
                self.send_error(404)
                return
            self.send_response(200)
            self.send_header("Content-Type", STREAM_CONTENT_TYPE)
            self.send_header("Transfer-Encoding", "chunked")
            self.end_headers()
            try:
                for chunk in mjpeg_chunks(frame_source()):
                    self._send_chunk(chunk)
                self.wfile.write(b"0\r\n\r\n")
                self.wfile.flush()
            except (BrokenPipeError, ConnectionResetError):
                logger.info("Client disconnected")
            self.close_connection = True

        def _send_chunk(self, data: bytes) -> None:
            if not data:
                return
            self.wfile.write(f"{len(data):X}\r\n".encode("ascii"))
            self.wfile.write(data)
            self.wfile.write(b"\r\n")
            self.wfile.flush()

        def log_message(self, format: str, *args: object) -> None:
            logger.debug("%s - " + format, self.address_string(), *args)

    return MjpegHandler


def serve(
    frame_source: Callable[[], Iterable[bytes | None]],
    host: str = "0.0.0.0",
    port: int = DEFAULT_PORT,
) -> None:
    """Run an MJPEG streaming server until interrupted."""
    with ThreadingHTTPServer((host, port), make_handler(frame_source)) as server:
        logger.info("MJPEG web server is up and running on %s:%d", host, port)
        server.serve_forever()