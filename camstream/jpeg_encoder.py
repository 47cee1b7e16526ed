"""Baseline JPEG encoder that consumes an image one scanline at a time."""

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from enum import IntEnum

from camstream.jpeg_tables import (
    AC_CHROMA_BITS,
    AC_CHROMA_VALUES,
    AC_LUM_BITS,
    AC_LUM_VALUES,
    DC_CHROMA_BITS,
    DC_CHROMA_VALUES,
    DC_LUM_BITS,
    DC_LUM_VALUES,
    STD_CHROMA_QUANT,
    STD_LUM_QUANT,
    ZIGZAG,
    compute_huffman_table,
    forward_dct,
    quantization_table,
    rgb_to_y,
    rgb_to_ycc,
    y_to_ycc,
)

M_SOF0 = 0xC0
M_DHT = 0xC4
M_SOI = 0xD8
M_EOI = 0xD9
M_SOS = 0xDA
M_DQT = 0xDB
M_APP0 = 0xE0

OUT_BUF_SIZE = 512
_MAX_DIMENSION = 0xFFFF


class EncoderError(ValueError):
    """Raised for invalid encoder parameters, input or usage."""


class Subsampling(IntEnum):
    """Chroma subsampling modes."""

    Y_ONLY = 0
    H1V1 = 1
    H2V1 = 2
    H2V2 = 3


# (luma horizontal factor, luma vertical factor, MCU width, MCU height)
_LAYOUT = {
    Subsampling.Y_ONLY: (1, 1, 8, 8),
    Subsampling.H1V1: (1, 1, 8, 8),
    Subsampling.H2V1: (2, 1, 16, 8),
    Subsampling.H2V2: (2, 2, 16, 16),
}


@dataclass
class EncoderParams:
    """Compression parameters: quality 1..100 and chroma subsampling."""

    quality: int = 85
    subsampling: Subsampling = Subsampling.H2V2

    def validate(self) -> None:
        """Raise EncoderError if the parameters are out of range."""
        if not 1 <= self.quality <= 100:
            raise EncoderError(f"quality must be in 1..100, got {self.quality}")
        try:
            Subsampling(self.subsampling)
        except ValueError:
            raise EncoderError(f"unknown subsampling {self.subsampling!r}") from None


def _huffman(bits: Sequence[int], values: Sequence[int]) -> tuple[list[int], list[int]]:
    return compute_huffman_table(bits, values)


_DC_TABLES = (_huffman(DC_LUM_BITS, DC_LUM_VALUES), _huffman(DC_CHROMA_BITS, DC_CHROMA_VALUES))
_AC_TABLES = (_huffman(AC_LUM_BITS, AC_LUM_VALUES), _huffman(AC_CHROMA_BITS, AC_CHROMA_VALUES))


class JpegEncoder:
    """Encode scanlines into a baseline JPEG, passing output to ``write``.

    Each scanline holds ``width * channels`` bytes.  With three channels the
    data is RGB888; otherwise the first ``width`` bytes are luminance samples.
    """

    def __init__(
        self,
        write: Callable[[bytes], object],
        width: int,
        height: int,
        channels: int,
        params: EncoderParams | None = None,
    ):
        params = params if params is not None else EncoderParams()
        params.validate()
        if not 1 <= width <= _MAX_DIMENSION or not 1 <= height <= _MAX_DIMENSION:
            raise EncoderError(f"invalid image size {width}x{height}")
        if channels not in (1, 3, 4):
            raise EncoderError(f"channels must be 1, 3 or 4, got {channels}")

        subsampling = Subsampling(params.subsampling)
        self._write = write
        self._width = width
        self._height = height
        self._channels = channels
        self._subsampling = subsampling
        self._components = 1 if subsampling is Subsampling.Y_ONLY else 3
        h_samp, v_samp, self._mcu_x, self._mcu_y = _LAYOUT[subsampling]
        self._sampling = [(h_samp, v_samp)] + [(1, 1)] * (self._components - 1)
        self._width_mcu = -(-width // self._mcu_x) * self._mcu_x
        self._mcus_per_row = self._width_mcu // self._mcu_x

        self._quant = (
            quantization_table(STD_LUM_QUANT, params.quality),
            quantization_table(STD_CHROMA_QUANT, params.quality),
        )
        self._lines: list[bytes] = []
        self._out = bytearray()
        self._bit_buffer = 0
        self._bits_in = 0
        self._last_dc = [0, 0, 0]
        self._finished = False

        self._emit_marker(M_SOI)
        self._emit_jfif_app0()
        self._emit_dqt()
        self._emit_sof()
        self._emit_dhts()
        self._emit_sos()

    # Output ------------------------------------------------------------

    def _flush(self) -> None:
        if self._out:
            self._write(bytes(self._out))
            self._out.clear()

    def _emit_byte(self, value: int) -> None:
        self._out.append(value & 0xFF)
        if len(self._out) == OUT_BUF_SIZE:
            self._flush()

    def _emit_word(self, value: int) -> None:
        self._emit_byte(value >> 8)
        self._emit_byte(value)

    def _emit_marker(self, marker: int) -> None:
        self._emit_byte(0xFF)
        self._emit_byte(marker)

    def _put_bits(self, bits: int, length: int) -> None:
        self._bits_in += length
        self._bit_buffer = (self._bit_buffer | (bits << (24 - self._bits_in))) & 0xFFFFFFFF
        while self._bits_in >= 8:
            byte = (self._bit_buffer >> 16) & 0xFF
            self._emit_byte(byte)
            if byte == 0xFF:
                self._emit_byte(0)
            self._bit_buffer = (self._bit_buffer << 8) & 0xFFFFFFFF
            self._bits_in -= 8

    # Headers -----------------------------------------------------------

    def _emit_jfif_app0(self) -> None:
        self._emit_marker(M_APP0)
        self._emit_word(16)
        for byte in b"JFIF\x00":
            self._emit_byte(byte)
        self._emit_byte(1)  # major version
        self._emit_byte(1)  # minor version
        self._emit_byte(0)  # density unit
        self._emit_word(1)
        self._emit_word(1)
        self._emit_byte(0)  # no thumbnail
        self._emit_byte(0)

    def _emit_dqt(self) -> None:
        for index in range(2 if self._components == 3 else 1):
            self._emit_marker(M_DQT)
            self._emit_word(64 + 1 + 2)
            self._emit_byte(index)
            for value in self._quant[index]:
                self._emit_byte(value)

    def _emit_sof(self) -> None:
        self._emit_marker(M_SOF0)
        self._emit_word(3 * self._components + 2 + 5 + 1)
        self._emit_byte(8)
        self._emit_word(self._height)
        self._emit_word(self._width)
        self._emit_byte(self._components)
        for index, (h_samp, v_samp) in enumerate(self._sampling):
            self._emit_byte(index + 1)
            self._emit_byte((h_samp << 4) + v_samp)
            self._emit_byte(1 if index > 0 else 0)

    def _emit_dht(self, bits: Sequence[int], values: Sequence[int], index: int, ac: bool) -> None:
        self._emit_marker(M_DHT)
        length = sum(bits[1:17])
        self._emit_word(length + 2 + 1 + 16)
        self._emit_byte(index + (16 if ac else 0))
        for count in bits[1:17]:
            self._emit_byte(count)
        for value in values[:length]:
            self._emit_byte(value)

    def _emit_dhts(self) -> None:
        self._emit_dht(DC_LUM_BITS, DC_LUM_VALUES, 0, False)
        self._emit_dht(AC_LUM_BITS, AC_LUM_VALUES, 0, True)
        if self._components == 3:
            self._emit_dht(DC_CHROMA_BITS, DC_CHROMA_VALUES, 1, False)
            self._emit_dht(AC_CHROMA_BITS, AC_CHROMA_VALUES, 1, True)

    def _emit_sos(self) -> None:
        self._emit_marker(M_SOS)
        self._emit_word(2 * self._components + 2 + 1 + 3)
        self._emit_byte(self._components)
        for index in range(self._components):
            self._emit_byte(index + 1)
            self._emit_byte(0x00 if index == 0 else 0x11)
        self._emit_byte(0)  # spectral selection start
        self._emit_byte(63)
        self._emit_byte(0)

    # Block loading -----------------------------------------------------

    def _block_grey(self, x: int) -> list[int]:
        start = x * 8
        return [line[start + k] - 128 for line in self._lines[:8] for k in range(8)]

    def _block_8_8(self, x: int, y: int, component: int) -> list[int]:
        start = x * 24 + component
        rows = self._lines[y * 8:y * 8 + 8]
        return [line[start + 3 * k] - 128 for line in rows for k in range(8)]

    def _block_16_8(self, x: int, component: int) -> list[int]:
        start = x * 48 + component
        block = []
        for i in range(8):
            top, bottom = self._lines[2 * i], self._lines[2 * i + 1]
            rounding = (0, 2) if i % 2 == 0 else (2, 0)
            for k in range(8):
                p = start + 6 * k
                total = top[p] + top[p + 3] + bottom[p] + bottom[p + 3] + rounding[k & 1]
                block.append((total >> 2) - 128)
        return block

    def _block_16_8_8(self, x: int, component: int) -> list[int]:
        start = x * 48 + component
        return [
            ((line[start + 6 * k] + line[start + 6 * k + 3]) >> 1) - 128
            for line in self._lines[:8]
            for k in range(8)
        ]

    # Coding ------------------------------------------------------------

    def _quantize(self, coefficients: Sequence[int], component: int) -> list[int]:
        table = self._quant[1 if component > 0 else 0]
        result = []
        for position, q in zip(ZIGZAG, table):
            value = coefficients[position]
            magnitude = abs(value) + (q >> 1)
            if magnitude < q:
                result.append(0)
            else:
                result.append(-(magnitude // q) if value < 0 else magnitude // q)
        return result

    def _code_coefficients(self, coefficients: Sequence[int], component: int) -> None:
        table = 0 if component == 0 else 1
        dc_codes, dc_sizes = _DC_TABLES[table]
        ac_codes, ac_sizes = _AC_TABLES[table]

        diff = coefficients[0] - self._last_dc[component]
        self._last_dc[component] = coefficients[0]
        nbits = abs(diff).bit_length()
        self._put_bits(dc_codes[nbits], dc_sizes[nbits])
        if nbits:
            self._put_bits((diff - 1 if diff < 0 else diff) & ((1 << nbits) - 1), nbits)

        run_length = 0
        for value in coefficients[1:]:
            if value == 0:
                run_length += 1
                continue
            while run_length >= 16:
                self._put_bits(ac_codes[0xF0], ac_sizes[0xF0])
                run_length -= 16
            nbits = abs(value).bit_length()
            symbol = (run_length << 4) + nbits
            self._put_bits(ac_codes[symbol], ac_sizes[symbol])
            self._put_bits((value - 1 if value < 0 else value) & ((1 << nbits) - 1), nbits)
            run_length = 0
        if run_length:
            self._put_bits(ac_codes[0], ac_sizes[0])

    def _code_block(self, block: list[int], component: int) -> None:
        coefficients = self._quantize(forward_dct(block), component)
        self._code_coefficients(coefficients, component)

    def _process_mcu_row(self) -> None:
        code = self._code_block
        for i in range(self._mcus_per_row):
            if self._components == 1:
                code(self._block_grey(i), 0)
            elif self._subsampling is Subsampling.H1V1:
                for component in range(3):
                    code(self._block_8_8(i, 0, component), component)
            elif self._subsampling is Subsampling.H2V1:
                code(self._block_8_8(i * 2, 0, 0), 0)
                code(self._block_8_8(i * 2 + 1, 0, 0), 0)
                code(self._block_16_8_8(i, 1), 1)
                code(self._block_16_8_8(i, 2), 2)
            else:
                code(self._block_8_8(i * 2, 0, 0), 0)
                code(self._block_8_8(i * 2 + 1, 0, 0), 0)
                code(self._block_8_8(i * 2, 1, 0), 0)
                code(self._block_8_8(i * 2 + 1, 1, 0), 0)
                code(self._block_16_8(i, 1), 1)
                code(self._block_16_8(i, 2), 2)

    def _convert_line(self, scanline: bytes) -> bytes:
        data = bytes(scanline)
        expected = self._width * self._channels
        if len(data) < expected:
            raise EncoderError(f"scanline has {len(data)} bytes, expected {expected}")
        rgb = self._channels == 3
        if self._components == 1:
            line = rgb_to_y(data[:expected]) if rgb else data[:self._width]
            return line + line[-1:] * (self._width_mcu - self._width)
        line = rgb_to_ycc(data[:expected]) if rgb else y_to_ycc(data[:self._width])
        return line + line[-3:] * (self._width_mcu - self._width)

    # Public interface --------------------------------------------------

    def process_scanline(self, scanline: bytes) -> None:
        """Add one row of source pixels to the image."""
        if self._finished:
            raise EncoderError("encoder has already finished")
        self._lines.append(self._convert_line(scanline))
        if len(self._lines) == self._mcu_y:
            self._process_mcu_row()
            self._lines.clear()

    def finish(self) -> None:
        """Encode any pending rows, write the end-of-image marker and flush."""
        if self._finished:
            raise EncoderError("encoder has already finished")
        if self._lines:
            last = self._lines[-1]
            self._lines.extend([last] * (self._mcu_y - len(self._lines)))
            self._process_mcu_row()
            self._lines.clear()
        self._put_bits(0x7F, 7)
        self._emit_marker(M_EOI)
        self._flush()
        self._finished = True


def encode(
    pixels: bytes,
    width: int,
    height: int,
    channels: int = 3,
    params: EncoderParams | None = None,
) -> bytes:
    """Encode a whole packed image and return the JPEG file contents."""
    data = bytes(pixels)
    stride = width * channels
    if len(data) < stride * height:
        raise EncoderError(
            f"pixel data has {len(data)} bytes, expected {stride * height}"
        )
    out = bytearray()
    encoder = JpegEncoder(out.extend, width, height, channels, params)
    for row in range(height):
        encoder.process_scanline(data[row * stride:(row + 1) * stride])
    encoder.finish()
    return bytes(out)