# camstream

Convert raw camera frames into JPEG or BMP images and serve JPEG frames as a
live MJPEG stream over HTTP. Pure Python, standard library only.

## Modules

- `camstream.yuv`: `yuv_to_rgb(y, u, v)` converts one YUV sample triple to
  an `(r, g, b)` tuple using a fixed lookup table. Samples outside 0..255
  raise `ValueError`.
- `camstream.jpeg_tables`: the baseline JPEG building blocks. These are the
  standard quantization and Huffman specifications, `compute_huffman_table`,
  `quantization_table` (quality 1..100), the colour conversions `rgb_to_ycc`,
  `rgb_to_y` and `y_to_ycc`, and the integer `forward_dct` for an 8x8 block.
- `camstream.jpeg_encoder`: a baseline JPEG encoder.
  - `JpegEncoder(write, width, height, channels, params)` takes one scanline
    at a time through `process_scanline` and is completed with `finish`.
    Output goes to the `write` callback in chunks of up to 512 bytes.
  - `EncoderParams` holds `quality` (default 85) and `subsampling` (a
    `Subsampling` value: `Y_ONLY`, `H1V1`, `H2V1`, `H2V2`; default `H2V2`).
  - `encode(pixels, width, height, channels, params)` encodes a whole packed
    image and returns the file contents.
  - Bad parameters, short scanlines and use after `finish` raise
    `EncoderError`, which is a subclass of `ValueError`.
- `camstream.to_jpg`: converts `GRAYSCALE`, `RGB565`, `RGB888` and `YUV422`
  buffers (see `PixelFormat`) to JPEG.
  - Grayscale is encoded as a single luminance channel. The other formats are
    encoded as colour with H2V2 subsampling.
  - Quality is clamped to 1..100.
  - `convert_to_jpeg_stream` passes chunks to a callback and returns the total
    size.
  - `convert_to_jpeg` collects the output. Anything beyond `max_size` bytes,
    128 KiB by default, is dropped.
  - `frame_to_jpeg` does the same for a `Frame(data, width, height,
    pixel_format)`.
  - `convert_line` converts a single row to encoder input.
  - Failures raise `ConversionError`, which is a subclass of `ValueError`.
- `camstream.to_bmp`: builds BMP files from the same formats.
  - `convert_to_bmp` and `frame_to_bmp` write a top-down image. Grayscale
    becomes an 8-bit image with a grey palette. The other formats become
    24-bit images.
  - `to_rgb888` unpacks a whole buffer to 24-bit pixels in B, G, R order.
    RGB888 input is returned unchanged.
- `camstream.stream`: MJPEG over HTTP.
  - `frame_part` builds one multipart section.
  - `mjpeg_chunks` yields the boundary, the part header and the image data
    for each frame. A `None` frame ends the stream.
  - `FrameTimer.tick` logs and returns the size in KB, the frame time in ms
    and the frame rate.
  - `make_handler(frame_source)` returns an HTTP request handler. It streams
    `multipart/x-mixed-replace` at `/` and answers 404 on any other path.
  - `serve(frame_source, host, port)` runs a threaded server until
    interrupted. The default host is `0.0.0.0` and the default port is 80.

## Examples

```python
from camstream.yuv import yuv_to_rgb

yuv_to_rgb(128, 128, 128)   # (130, 130, 130)
```

```python
from camstream.to_jpg import PixelFormat, convert_to_jpeg
from camstream.to_bmp import convert_to_bmp

width, height = 16, 16
gray = bytes(range(256))                     # 16 x 16 grayscale ramp

jpeg = convert_to_jpeg(gray, width, height, PixelFormat.GRAYSCALE, 80)
bmp = convert_to_bmp(gray, width, height, PixelFormat.GRAYSCALE)

assert jpeg[:2] == b"\xff\xd8"
assert bmp[:2] == b"BM"
```

```python
from camstream.stream import mjpeg_chunks

body = b"".join(mjpeg_chunks([jpeg, jpeg]))
```

The frame source is called once for each client. It returns an iterable of
JPEG frames:

```python
import itertools
from camstream.stream import serve

serve(lambda: itertools.repeat(jpeg), "0.0.0.0", 8080)
```

Open `http://localhost:8080/` in a browser to watch the stream.

## What it does not do

- It does not capture images from a camera. Frames must come from your own
  code.
- It cannot decode JPEG. Passing a `PixelFormat.JPEG` frame to the BMP
  functions raises `ConversionError`.
- It does not embed EXIF metadata in the frames it streams.
- It offers no command-line program. The server is started from Python with
  `serve`.