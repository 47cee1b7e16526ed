"""Camera frame conversion to JPEG and BMP, and MJPEG streaming over HTTP."""

__version__ = "0.1.0"

__all__ = ["jpeg_encoder", "jpeg_tables", "stream", "to_bmp", "to_jpg", "yuv"]