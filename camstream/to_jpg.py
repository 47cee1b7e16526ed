"""Conversion of raw camera frames to JPEG."""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from camstream.jpeg_encoder import EncoderError, EncoderParams, JpegEncoder, Subsampling
from camstream.yuv import yuv_to_rgb

logger = logging.getLogger(__name__)

DEFAULT_JPEG_BUFFER_SIZE = 128 * 1024


class PixelFormat(Enum):
    """Pixel layouts a camera frame may carry."""

    RGB565 = "rgb565"
    YUV422 = "yuv422"
    GRAYSCALE = "grayscale"
    JPEG = "jpeg"
    RGB888 = "rgb888"


class ConversionError(ValueError):
    """Raised when an image cannot be converted."""


@dataclass(frozen=True)
class Frame:
    """A captured image and its geometry."""

    data: bytes
    width: int
    height: int
    pixel_format: PixelFormat


_BYTES_PER_PIXEL = {
    PixelFormat.GRAYSCALE: 1,
    PixelFormat.RGB888: 3,
    PixelFormat.RGB565: 2,
    PixelFormat.YUV422: 2,
}


def _line_bytes(src: bytes, width: int, line: int, bpp: int) -> bytes:
    stride = width * bpp
    start = line * stride
    chunk = src[start:start + stride]
    if len(chunk) < stride:
        raise ConversionError(
            f"source too short for line {line}: need {start + stride} bytes, have {len(src)}"
        )
    return chunk


def convert_line(src: bytes, pixel_format: PixelFormat, width: int, line: int) -> bytes:
    """Return row ``line`` of ``src`` as encoder input (RGB888 or luminance)."""
    bpp = _BYTES_PER_PIXEL.get(pixel_format)
    if bpp is None:
        raise ConversionError(f"cannot convert {pixel_format} lines")
    if width < 1:
        raise ConversionError(f"invalid width {width}")
    data = _line_bytes(bytes(src), width, line, bpp)

    if pixel_format is PixelFormat.GRAYSCALE:
        return data

    out = bytearray()
    if pixel_format is PixelFormat.RGB888:
        for b, g, r in zip(data[0::3], data[1::3], data[2::3]):
            out += bytes((r, g, b))
    elif pixel_format is PixelFormat.RGB565:
        for high, low in zip(data[0::2], data[1::2]):
            out += bytes((
                high & 0xF8,
                ((high & 0x07) << 5) | ((low & 0xE0) >> 3),
                (low & 0x1F) << 3,
            ))
    else:
        if width % 2:
            raise ConversionError(f"YUV422 rows need an even width, got {width}")
        for y0, u, y1, v in zip(data[0::4], data[1::4], data[2::4], data[3::4]):
            out += bytes(yuv_to_rgb(y0, u, v))
            out += bytes(yuv_to_rgb(y1, u, v))
    return bytes(out)


def _clamp_quality(quality: int) -> int:
    return 1 if quality < 1 else 100 if quality > 100 else quality


def convert_to_jpeg_stream(
    src: bytes,
    width: int,
    height: int,
    pixel_format: PixelFormat,
    quality: int,
    write: Callable[[bytes], object],
) -> int:
    """Encode ``src`` as JPEG, passing output chunks to ``write``.

    Returns the total number of bytes written.
    """
    if pixel_format is PixelFormat.GRAYSCALE:
        channels, subsampling = 1, Subsampling.Y_ONLY
    else:
        channels, subsampling = 3, Subsampling.H2V2
    if pixel_format not in _BYTES_PER_PIXEL:
        raise ConversionError(f"cannot encode {pixel_format} to JPEG")

    params = EncoderParams(quality=_clamp_quality(quality), subsampling=subsampling)
    total = 0

    def _sink(chunk: bytes) -> None:
        nonlocal total
        total += len(chunk)
        write(chunk)

    try:
        encoder = JpegEncoder(_sink, width, height, channels, params)
    except EncoderError as exc:
        logger.error("JPG encoder init failed")
        raise ConversionError(f"JPEG encoder init failed: {exc}") from exc

    data = bytes(src)
    for row in range(height):
        scanline = convert_line(data, pixel_format, width, row)
        try:
            encoder.process_scanline(scanline)
        except EncoderError as exc:
            logger.error("JPG process line %u failed", row)
            raise ConversionError(f"JPEG line {row} failed: {exc}") from exc
    encoder.finish()
    return total


def convert_to_jpeg(
    src: bytes,
    width: int,
    height: int,
    pixel_format: PixelFormat,
    quality: int,
    max_size: int = DEFAULT_JPEG_BUFFER_SIZE,
) -> bytes:
    """Encode ``src`` as JPEG; output beyond ``max_size`` bytes is dropped."""
    if max_size < 0:
        raise ConversionError(f"invalid max_size {max_size}")
    out = bytearray()

    def _write(chunk: bytes) -> None:
        room = max_size - len(out)
        if room > 0:
            out.extend(chunk[:room])

    convert_to_jpeg_stream(src, width, height, pixel_format, quality, _write)
    return bytes(out)


def frame_to_jpeg(frame: Frame, quality: int) -> bytes:
    """Encode a camera frame as JPEG."""
    return convert_to_jpeg(
        frame.data, frame.width, frame.height, frame.pixel_format, quality
    )