import random

import pytest

from camstream.jpeg_encoder import (
    OUT_BUF_SIZE,
    EncoderError,
    EncoderParams,
    JpegEncoder,
    Subsampling,
    encode,
)
from camstream.jpeg_tables import (
    DC_LUM_BITS,
    DC_LUM_VALUES,
    STD_CHROMA_QUANT,
    STD_LUM_QUANT,
    quantization_table,
)


def segments(data):
    """Split a JPEG into header segments up to SOS and the remaining scan bytes."""
    pos = 2
    found = []
    while True:
        assert data[pos] == 0xFF
        marker = data[pos + 1]
        length = int.from_bytes(data[pos + 2:pos + 4], "big")
        found.append((marker, data[pos + 4:pos + 2 + length]))
        pos += 2 + length
        if marker == 0xDA:
            return found, data[pos:]


def noise(size, seed=1):
    rng = random.Random(seed)
    return bytes(rng.randrange(256) for _ in range(size))


def test_starts_with_soi_and_jfif_header():
    data = encode(bytes([100] * 64 * 3), 8, 8, 3)
    assert data[:20] == bytes.fromhex("FFD8FFE000104A46494600010100000100010000")


def test_ends_with_eoi():
    data = encode(noise(16 * 16 * 3), 16, 16, 3)
    assert data[-2:] == b"\xff\xd9"


def test_uniform_mid_grey_block_scan_data():
    params = EncoderParams(quality=50, subsampling=Subsampling.Y_ONLY)
    data = encode(bytes([128] * 64), 8, 8, 1, params)
    _, scan = segments(data)
    assert scan == b"\x2b\xff\xd9"


def test_colour_marker_order():
    found, _ = segments(encode(noise(8 * 8 * 3), 8, 8, 3))
    assert [m for m, _ in found] == [0xE0, 0xDB, 0xDB, 0xC0, 0xC4, 0xC4, 0xC4, 0xC4, 0xDA]


def test_grey_marker_order():
    params = EncoderParams(subsampling=Subsampling.Y_ONLY)
    found, _ = segments(encode(noise(64), 8, 8, 1, params))
    assert [m for m, _ in found] == [0xE0, 0xDB, 0xC0, 0xC4, 0xC4, 0xDA]


def test_quantization_tables_follow_quality():
    params = EncoderParams(quality=30, subsampling=Subsampling.H1V1)
    found, _ = segments(encode(noise(8 * 8 * 3), 8, 8, 3, params))
    dqts = [payload for marker, payload in found if marker == 0xDB]
    assert dqts[0] == bytes([0]) + bytes(quantization_table(STD_LUM_QUANT, 30))
    assert dqts[1] == bytes([1]) + bytes(quantization_table(STD_CHROMA_QUANT, 30))


def test_default_params_use_quality_85_and_h2v2():
    found, _ = segments(encode(noise(16 * 16 * 3), 16, 16, 3))
    dqt = next(payload for marker, payload in found if marker == 0xDB)
    sof = next(payload for marker, payload in found if marker == 0xC0)
    assert dqt[1:] == bytes(quantization_table(STD_LUM_QUANT, 85))
    assert sof[7] == 0x22


def test_first_huffman_table_is_dc_luminance():
    found, _ = segments(encode(noise(8 * 8 * 3), 8, 8, 3))
    dht = next(payload for marker, payload in found if marker == 0xC4)
    assert dht[0] == 0
    assert dht[1:17] == bytes(DC_LUM_BITS[1:])
    assert dht[17:] == bytes(DC_LUM_VALUES)


@pytest.mark.parametrize(
    "subsampling, components, luma_sampling",
    [
        (Subsampling.Y_ONLY, 1, 0x11),
        (Subsampling.H1V1, 3, 0x11),
        (Subsampling.H2V1, 3, 0x21),
        (Subsampling.H2V2, 3, 0x22),
    ],
)
def test_frame_header(subsampling, components, luma_sampling):
    params = EncoderParams(quality=75, subsampling=subsampling)
    data = encode(noise(13 * 11 * 3), 13, 11, 3, params)
    found, scan = segments(data)
    sof = next(payload for marker, payload in found if marker == 0xC0)
    assert sof[0] == 8
    assert int.from_bytes(sof[1:3], "big") == 11
    assert int.from_bytes(sof[3:5], "big") == 13
    assert sof[5] == components
    assert sof[6:9] == bytes([1, luma_sampling, 0])
    for index in range(1, components):
        assert sof[6 + 3 * index:9 + 3 * index] == bytes([index + 1, 0x11, 1])
    assert scan.endswith(b"\xff\xd9")


@pytest.mark.parametrize("subsampling", list(Subsampling))
def test_scan_data_is_byte_stuffed(subsampling):
    params = EncoderParams(quality=95, subsampling=subsampling)
    data = encode(noise(24 * 20 * 3, seed=7), 24, 20, 3, params)
    _, scan = segments(data)
    body = scan[:-2]
    for index, byte in enumerate(body):
        if byte == 0xFF:
            assert body[index + 1] == 0


def test_output_is_deterministic():
    pixels = noise(16 * 16 * 3, seed=3)
    first = encode(pixels, 16, 16, 3)
    second = encode(pixels, 16, 16, 3)
    assert first[:2] == b"\xff\xd8"
    assert first[-2:] == b"\xff\xd9"
    assert len(first) > 20
    assert first == second


def test_streaming_chunks_match_whole_output():
    width, height = 40, 40
    pixels = noise(width * height * 3, seed=5)
    chunks = []
    encoder = JpegEncoder(chunks.append, width, height, 3, EncoderParams(quality=90))
    stride = width * 3
    for row in range(height):
        encoder.process_scanline(pixels[row * stride:(row + 1) * stride])
    encoder.finish()
    assert all(len(chunk) == OUT_BUF_SIZE for chunk in chunks[:-1])
    assert 0 < len(chunks[-1]) <= OUT_BUF_SIZE
    assert b"".join(chunks) == encode(pixels, width, height, 3, EncoderParams(quality=90))


def test_higher_quality_gives_larger_output_for_noise():
    pixels = noise(32 * 32 * 3, seed=9)
    low = encode(pixels, 32, 32, 3, EncoderParams(quality=1))
    high = encode(pixels, 32, 32, 3, EncoderParams(quality=100))
    assert len(high) > len(low)


@pytest.mark.parametrize("subsampling", [Subsampling.H1V1, Subsampling.Y_ONLY])
def test_grey_input_matches_equal_rgb_input(subsampling):
    grey = noise(16 * 16, seed=11)
    rgb = bytes(value for sample in grey for value in (sample, sample, sample))
    params = EncoderParams(quality=70, subsampling=subsampling)
    assert encode(grey, 16, 16, 1, params) == encode(rgb, 16, 16, 3, params)


def test_four_channel_scanlines_use_leading_luminance_bytes():
    width, height = 8, 8
    grey = noise(width * height, seed=13)
    wide = bytearray()
    for row in range(height):
        wide += grey[row * width:(row + 1) * width] + bytes(width * 3)
    params = EncoderParams(subsampling=Subsampling.Y_ONLY)
    assert encode(bytes(wide), width, height, 4, params) == encode(grey, width, height, 1, params)


@pytest.mark.parametrize("quality", [0, 101])
def test_invalid_quality_rejected(quality):
    with pytest.raises(EncoderError):
        EncoderParams(quality=quality).validate()


def test_invalid_subsampling_rejected():
    with pytest.raises(EncoderError):
        EncoderParams(subsampling=7).validate()


@pytest.mark.parametrize("width, height, channels", [(0, 8, 3), (8, 0, 3), (8, 8, 2)])
def test_invalid_geometry_rejected(width, height, channels):
    with pytest.raises(EncoderError):
        JpegEncoder(bytearray().extend, width, height, channels)


def test_short_scanline_rejected():
    encoder = JpegEncoder(bytearray().extend, 8, 8, 3)
    with pytest.raises(EncoderError):
        encoder.process_scanline(bytes(8 * 3 - 1))


def test_use_after_finish_rejected():
    encoder = JpegEncoder(bytearray().extend, 8, 8, 1)
    encoder.process_scanline(bytes(8))
    encoder.finish()
    with pytest.raises(EncoderError):
        encoder.process_scanline(bytes(8))
    with pytest.raises(EncoderError):
        encoder.finish()


def test_encode_rejects_short_pixel_buffer():
    with pytest.raises(EncoderError):
        encode(bytes(8 * 8 * 3 - 1), 8, 8, 3)