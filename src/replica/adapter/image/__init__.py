"""Image adapters for raster file operations.

- png_io: PNG decode/encode between files/bytes and RGBA numpy buffers
"""

from replica.adapter.image.png_io import (
    ImageSource,
    decode_png,
    encode_png,
    image_size,
    load_rgba,
    write_png,
)

__all__ = [
    "ImageSource",
    "decode_png",
    "encode_png",
    "image_size",
    "load_rgba",
    "write_png",
]
