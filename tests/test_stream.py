import http.client
import math
import threading
from http.server import ThreadingHTTPServer

import pytest

from camstream.stream import (
    STREAM_CONTENT_TYPE,
    FrameTimer,
    frame_part,
    make_handler,
    mjpeg_chunks,
)


def test_frame_part_wire_bytes():
    expected = (
        b"\r\n--123456789000000000000987654321\r\n"
        b"Content-Type: image/jpeg\r\nContent-Length: 3\r\n\r\nabc"
    )
    assert frame_part(b"abc") == expected


def test_frame_part_ends_with_payload():
    payload = bytes(range(256)) * 4
    part = frame_part(payload)
    assert part.endswith(payload)
    assert f"Content-Length: {len(payload)}".encode() in part


def test_chunks_join_to_frame_parts():
    frames = [b"\xff\xd8one\xff\xd9", b"\xff\xd8two\xff\xd9"]
    assert b"".join(mjpeg_chunks(frames)) == frame_part(frames[0]) + frame_part(frames[1])


def test_chunks_three_per_frame():
    assert len(list(mjpeg_chunks([b"a", b"bb"]))) == 6


def test_chunks_stop_at_failed_capture():
    frames = [b"first", None, b"never"]
    assert b"".join(mjpeg_chunks(frames)) == frame_part(b"first")


def _fake_clock(values):
    it = iter(values)
    return lambda: next(it)


def test_timer_reports_interval():
    timer = FrameTimer(clock=_fake_clock([0, 50_000_000]))
    size_kb, frame_ms, fps = timer.tick(4096)
    assert size_kb == 4
    assert frame_ms == 50
    assert fps * frame_ms == pytest.approx(1000.0)


def test_timer_measures_from_previous_tick():
    timer = FrameTimer(clock=_fake_clock([0, 10_000_000, 35_000_000]))
    _, first_ms, _ = timer.tick(0)
    _, second_ms, _ = timer.tick(0)
    assert second_ms - first_ms == 15


def test_timer_zero_interval_gives_infinite_rate():
    timer = FrameTimer(clock=_fake_clock([5, 5]))
    _, frame_ms, fps = timer.tick(100)
    assert frame_ms == 0
    assert math.isinf(fps)


@pytest.fixture
def server():
    frames = [b"\xff\xd8alpha\xff\xd9", b"\xff\xd8beta\xff\xd9"]
    httpd = ThreadingHTTPServer(("127.0.0.1", 0), make_handler(lambda: iter(frames)))
    thread = threading.Thread(target=httpd.serve_forever, daemon=True)
    thread.start()
    try:
        yield httpd, frames
    finally:
        httpd.shutdown()
        httpd.server_close()
        thread.join(timeout=5)


def test_handler_streams_frames(server):
    httpd, frames = server
    conn = http.client.HTTPConnection("127.0.0.1", httpd.server_address[1], timeout=5)
    try:
        conn.request("GET", "/")
        response = conn.getresponse()
        body = response.read()
        assert response.status == 200
        assert response.getheader("Content-Type") == STREAM_CONTENT_TYPE
        assert body == frame_part(frames[0]) + frame_part(frames[1])
    finally:
        conn.close()


def test_handler_unknown_path_is_not_found(server):
    httpd, _ = server
    conn = http.client.HTTPConnection("127.0.0.1", httpd.server_address[1], timeout=5)
    try:
        conn.request("GET", "/missing")
        response = conn.getresponse()
        response.read()
        assert response.status == 404
    finally:
        conn.close()