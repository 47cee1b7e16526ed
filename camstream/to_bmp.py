"""Conversion of raw camera frames to RGB888 buffers and BMP files."""

import logging
import struct

from camstream.to_jpg import ConversionError, Frame, PixelFormat
from camstream.yuv import yuv_to_rgb

logger = logging.getLogger(__name__)

BMP_HEADER_LEN = 54
DIB_HEADER_LEN = 40
PIXELS_PER_METER = 0x0B13  # 2835, 72 DPI
GRAYSCALE_PALETTE_SIZE = 4 * 256

# filesize, reserved, pixel offset, DIB size, width, height, planes,
# bits per pixel, compression, image size, y ppm, x ppm, colours, important
_HEADER = struct.Struct("<IIIIiiHHIIIIII")

_MAX_DIMENSION = 0xFFFF


def _rgb565_to_bgr(data: bytes) -> bytes:
    out = bytearray()
    for high, low in zip(data[0::2], data[1::2]):
        out += bytes((
            (low & 0x1F) << 3,
            ((high & 0x07) << 5) | ((low & 0xE0) >> 3),
            high & 0xF8,
        ))
    return bytes(out)


def _grayscale_to_bgr(data: bytes) -> bytes:
    out = bytearray()
    for value in data:
        out += bytes((value, value, value))
    return bytes(out)


def _yuv422_to_bgr(data: bytes, pairs: int) -> bytes:
    out = bytearray()
    quads = zip(data[0::4], data[1::4], data[2::4], data[3::4])
    for _, (y0, u, y1, v) in zip(range(pairs), quads):
        for y in (y0, y1):
            r, g, b = yuv_to_rgb(y, u, v)
            out += bytes((b, g, r))
    return bytes(out)


def _unsupported(pixel_format: PixelFormat) -> ConversionError:
    if pixel_format is PixelFormat.JPEG:
        return ConversionError("decoding JPEG frames is not supported")
    return ConversionError(f"cannot convert {pixel_format}")


def to_rgb888(src: bytes, pixel_format: PixelFormat) -> bytes:
    """Convert a whole raw buffer to packed 24-bit pixels in B, G, R order.

    RGB888 input is returned unchanged.
    """
    data = bytes(src)
    if pixel_format is PixelFormat.RGB888:
        return data
    if pixel_format is PixelFormat.RGB565:
        return _rgb565_to_bgr(data[: len(data) // 2 * 2])
    if pixel_format is PixelFormat.GRAYSCALE:
        return _grayscale_to_bgr(data)
    if pixel_format is PixelFormat.YUV422:
        return _yuv422_to_bgr(data, len(data) // 2 // 2)
    raise _unsupported(pixel_format)


def _require(data: bytes, needed: int, pixel_format: PixelFormat) -> None:
    if len(data) < needed:
        raise ConversionError(
            f"{pixel_format.value} source too short: need {needed} bytes, have {len(data)}"
        )


def _pixel_data(data: bytes, pix_count: int, pixel_format: PixelFormat) -> bytes:
    if pixel_format is PixelFormat.RGB888:
        _require(data, pix_count * 3, pixel_format)
        return data[: pix_count * 3]
    if pixel_format is PixelFormat.RGB565:
        _require(data, pix_count * 2, pixel_format)
        return _rgb565_to_bgr(data[: pix_count * 2])
    if pixel_format is PixelFormat.GRAYSCALE:
        _require(data, pix_count, pixel_format)
        return data[:pix_count]
    if pixel_format is PixelFormat.YUV422:
        pairs = pix_count // 2
        _require(data, pairs * 4, pixel_format)
        converted = _yuv422_to_bgr(data, pairs)
        # An odd trailing pixel has no chroma pair and is left black.
        return converted + bytes(pix_count * 3 - len(converted))
    raise _unsupported(pixel_format)


def convert_to_bmp(
    src: bytes, width: int, height: int, pixel_format: PixelFormat
) -> bytes:
    """Build a top-down BMP file from a raw frame buffer.

    Grayscale frames become 8-bit images with a grey palette; the other
    formats become 24-bit images.
    """
    if not 0 <= width <= _MAX_DIMENSION or not 0 <= height <= _MAX_DIMENSION:
        raise ConversionError(f"invalid image size {width}x{height}")
    grayscale = pixel_format is PixelFormat.GRAYSCALE
    pix_count = width * height
    bpp = 1 if grayscale else 3
    palette_size = GRAYSCALE_PALETTE_SIZE if grayscale else 0

    pixels = _pixel_data(bytes(src), pix_count, pixel_format)
    out_size = pix_count * bpp + BMP_HEADER_LEN + palette_size

    header = b"BM" + _HEADER.pack(
        out_size,
        0,
        BMP_HEADER_LEN + palette_size,
        DIB_HEADER_LEN,
        width,
        -height,  # negative height: rows stored top to bottom
        1,
        bpp * 8,
        0,
        pix_count * bpp,
        PIXELS_PER_METER,
        PIXELS_PER_METER,
        0,
        0,
    )
    palette = b"".join(bytes((i, i, i, 0)) for i in range(256)) if grayscale else b""
    return header + palette + pixels


def frame_to_bmp(frame: Frame) -> bytes:
    """Build a BMP file from a camera frame."""
    return convert_to_bmp(frame.data, frame.width, frame.height, frame.pixel_format)