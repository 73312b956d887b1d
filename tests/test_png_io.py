"""Tests for PNG decoding and encoding."""

from pathlib import Path

import numpy as np
import pytest

from replica.adapter.image import decode_png, encode_png, image_size, load_rgba, write_png
from tests.images import solid_rgba


class TestLoadRgba:
    """Loading images from the supported sources."""

    def test_from_path(self, white_png: Path):
        """PNG files decode to (h, w, 4) uint8."""
        rgba = load_rgba(white_png)
        assert rgba.shape == (10, 20, 4)
        assert rgba.dtype == np.uint8
        assert (rgba == 255).all()

    def test_from_bytes(self):
        """Encoded bytes decode directly."""
        rgba = load_rgba(encode_png(solid_rgba(4, 3, (10, 20, 30, 255))))
        assert rgba.shape == (3, 4, 4)
        assert tuple(rgba[0, 0]) == (10, 20, 30, 255)

    def test_array_is_copied(self):
        """Arrays are returned as copies."""
        source = solid_rgba(2, 2)
        loaded = load_rgba(source)
        loaded[0, 0] = 0
        assert (source == 255).all()

    def test_wrong_array_shape(self):
        """RGB arrays are rejected."""
        with pytest.raises(ValueError, match="RGBA"):
            load_rgba(np.zeros((2, 2, 3), dtype=np.uint8))

    def test_missing_file(self, tmp_path: Path):
        """Missing paths raise FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            load_rgba(tmp_path / "nope.png")

    def test_undecodable_bytes(self):
        """Garbage bytes raise ValueError."""
        with pytest.raises(ValueError, match="decode"):
            decode_png(b"not a png")


class TestChannels:
    """Channel order and alpha handling."""

    def test_rgb_order_preserved(self, tmp_path: Path):
        """Red stays red through a write/read cycle (no BGR leak)."""
        path = write_png(tmp_path / "red.png", solid_rgba(3, 3, (255, 0, 0, 255)))
        assert tuple(load_rgba(path)[1, 1]) == (255, 0, 0, 255)

    def test_alpha_preserved(self, tmp_path: Path):
        """Partial transparency survives encoding."""
        path = write_png(tmp_path / "alpha.png", solid_rgba(3, 3, (0, 0, 255, 128)))
        assert tuple(load_rgba(path)[0, 0]) == (0, 0, 255, 128)

    def test_opaque_rgb_png_gets_alpha(self, tmp_path: Path):
        """Three-channel PNGs gain an opaque alpha channel."""
        import cv2

        path = tmp_path / "rgb.png"
        bgr = np.zeros((2, 2, 3), dtype=np.uint8)
        bgr[..., 2] = 200
        cv2.imwrite(str(path), bgr)

        assert tuple(load_rgba(path)[0, 0]) == (200, 0, 0, 255)


class TestWritePng:
    """Writing files."""

    def test_creates_parents(self, tmp_path: Path):
        """Missing parent directories are created."""
        path = write_png(tmp_path / "a" / "b" / "c.png", solid_rgba(1, 1))
        assert path.exists()

    def test_image_size(self):
        """image_size returns (width, height)."""
        assert image_size(solid_rgba(7, 5)) == (7, 5)
