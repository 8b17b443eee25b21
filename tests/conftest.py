"""Pytest fixtures shared across all test files."""

import io

import pytest
from PIL import Image

RED = (255, 0, 0)
BLUE = (0, 0, 255)


def encode(img: Image.Image, fmt: str) -> bytes:
    """Encode an image with Pillow directly, bypassing the handle."""
    buf = io.BytesIO()
    img.save(buf, format=fmt)
    return buf.getvalue()


@pytest.fixture
def red_image():
    """Provide a 100x100 solid red RGB image."""
    return Image.new("RGB", (100, 100), color=RED)


@pytest.fixture
def wide_image():
    """Provide a 200x100 image: blue 50px bands either side of a red center."""
    img = Image.new("RGB", (200, 100), color=BLUE)
    img.paste(RED, (50, 0, 150, 100))
    return img


@pytest.fixture
def jpeg_bytes(red_image):
    """Provide the red image encoded as JPEG."""
    return encode(red_image, "JPEG")


@pytest.fixture
def jpeg_file(tmp_path, jpeg_bytes):
    """Provide a JPEG file on disk."""
    path = tmp_path / "test_image.jpg"
    path.write_bytes(jpeg_bytes)
    return path
