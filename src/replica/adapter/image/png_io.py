"""PNG decoding/encoding via OpenCV.

Adapter between raster artifacts and numpy buffers. Everything above this
layer sees images as (height, width, 4) uint8 RGBA arrays, the layout the
pixel comparison works on. OpenCV's BGR(A) channel order stays in here.
"""

from __future__ import annotations

from pathlib import Path
from typing import Union

import numpy as np

ImageSource = Union[Path, str, bytes, np.ndarray]


def _to_rgba(decoded: np.ndarray) -> np.ndarray:
    """Convert an OpenCV-decoded array to 8-bit RGBA."""
    import cv2

    if decoded.dtype == np.uint16:
        decoded = (decoded >> 8).astype(np.uint8)
    elif decoded.dtype != np.uint8:
        raise ValueError(f"Unsupported PNG sample type: {decoded.dtype}")

    if decoded.ndim == 2:
        return cv2.cvtColor(decoded, cv2.COLOR_GRAY2RGBA)

    channels = decoded.shape[2]
    if channels == 4:
        return cv2.cvtColor(decoded, cv2.COLOR_BGRA2RGBA)
    if channels == 3:
        return cv2.cvtColor(decoded, cv2.COLOR_BGR2RGBA)
    raise ValueError(f"Unsupported channel count: {channels}")


def decode_png(data: bytes) -> np.ndarray:
    """Decode PNG bytes to an RGBA array.

    Args:
        data: Encoded image bytes.

    Returns:
        (height, width, 4) uint8 array.

    Raises:
        ValueError: If the bytes are not a decodable image.
    """
    import cv2

    buffer = np.frombuffer(data, dtype=np.uint8)
    decoded = cv2.imdecode(buffer, cv2.IMREAD_UNCHANGED)
    if decoded is None:
        raise ValueError("Failed to decode image data")
    return _to_rgba(decoded)


def load_rgba(source: ImageSource) -> np.ndarray:
    """Load an image from a path, encoded bytes, or an existing array.

    Arrays are validated and copied so callers never share a buffer with
    the comparison.

    Args:
        source: PNG path, PNG bytes, or (h, w, 4) uint8 RGBA array.

    Returns:
        (height, width, 4) uint8 RGBA array.

    Raises:
        FileNotFoundError: If a path does not exist.
        ValueError: If the data cannot be decoded or has the wrong shape.
    """
    if isinstance(source, np.ndarray):
        if source.ndim != 3 or source.shape[2] != 4 or source.dtype != np.uint8:
            raise ValueError(
                f"Expected (h, w, 4) uint8 RGBA array, got {source.shape} {source.dtype}"
            )
        return source.copy()

    if isinstance(source, bytes):
        return decode_png(source)

    path = Path(source)
    if not path.exists():
        raise FileNotFoundError(f"Image file not found: {path}")
    return decode_png(path.read_bytes())


def encode_png(rgba: np.ndarray) -> bytes:
    """Encode an RGBA array as PNG bytes.

    Raises:
        ValueError: If encoding fails.
    """
    import cv2

    ok, encoded = cv2.imencode(".png", cv2.cvtColor(rgba, cv2.COLOR_RGBA2BGRA))
    if not ok:
        raise ValueError("Failed to encode PNG")
    return encoded.tobytes()


def write_png(path: Path, rgba: np.ndarray) -> Path:
    """Write an RGBA array to a PNG file, creating parent directories.

    Returns:
        The written path.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(encode_png(rgba))
    return path


def image_size(rgba: np.ndarray) -> tuple[int, int]:
    """Return (width, height) of an RGBA array."""
    return int(rgba.shape[1]), int(rgba.shape[0])
