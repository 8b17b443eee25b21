"""Image processing backend delegating decode, resample and encode to Pillow."""

from __future__ import annotations

import io
from pathlib import Path
from typing import IO

from PIL import Image, ImageOps

# Pillow format names accepted on decode, matching the tag vocabulary.
DECODE_FORMATS = ("JPEG", "PNG", "GIF", "WEBP")

# Pillow reports multi-picture JPEGs (MPO) under their own name.
FORMAT_ALIASES = {"MPO": "JPEG"}

# Modes the JPEG encoder writes as-is; everything else is flattened to RGB.
JPEG_MODES = {"1", "L", "RGB", "CMYK"}

SAVE_QUALITY = 95


def decode(fp: IO[bytes]) -> tuple[Image.Image, str]:
    """Decode a stream by sniffing its header and return (image, pillow format)."""
    with Image.open(fp, formats=DECODE_FORMATS) as img:
        img.load()
        fmt = img.format or ""
        fmt = FORMAT_ALIASES.get(fmt, fmt)
        # Detach from the stream so the caller can close it.
        return img.copy(), fmt


def resize_scale(img: Image.Image, width: int, height: int) -> Image.Image:
    """Resample to exactly width x height with Lanczos."""
    return img.resize((width, height), Image.Resampling.LANCZOS)


def resize_stretch(img: Image.Image, width: int, height: int) -> Image.Image:
    """Resample to exactly width x height with nearest neighbor."""
    return img.resize((width, height), Image.Resampling.NEAREST)


def resize_fill(img: Image.Image, width: int, height: int) -> Image.Image:
    """Scale to cover the box, then crop around the center to the exact size."""
    if width <= 0 or height <= 0:
        raise ValueError("height and width must be > 0")
    return ImageOps.fit(img, (width, height), Image.Resampling.LANCZOS, centering=(0.5, 0.5))


def resize_fit(img: Image.Image, width: int, height: int) -> Image.Image:
    """Scale down to fit inside the box, keeping the aspect ratio.

    Images that already fit are returned as an unscaled copy.
    """
    if width <= 0 or height <= 0:
        raise ValueError("height and width must be > 0")
    if img.width <= width and img.height <= height:
        return img.copy()
    return ImageOps.contain(img, (width, height), Image.Resampling.LANCZOS)


def crop_clamped(img: Image.Image, width: int, height: int, x: int, y: int) -> Image.Image:
    """Crop the rectangle at (x, y) intersected with the image bounds."""
    left = min(max(x, 0), img.width)
    top = min(max(y, 0), img.height)
    right = max(min(x + width, img.width), left)
    bottom = max(min(y + height, img.height), top)
    return img.crop((left, top, right, bottom))


def rotate_expand(
    img: Image.Image, degrees: float, fill: tuple[int, int, int, int]
) -> Image.Image:
    """Rotate counter-clockwise onto an expanded RGBA canvas."""
    if img.mode != "RGBA":
        img = img.convert("RGBA")
    return img.rotate(degrees, resample=Image.Resampling.BICUBIC, expand=True, fillcolor=fill)


def encode(img: Image.Image, pillow_format: str, **options) -> bytes:
    """Encode an image in the given Pillow format and return the bytes."""
    if pillow_format == "JPEG" and img.mode not in JPEG_MODES:
        img = img.convert("RGB")
    buf = io.BytesIO()
    img.save(buf, format=pillow_format, **options)
    return buf.getvalue()


def format_for_path(path: str | Path) -> str:
    """Return the Pillow format registered for a path's extension.

    Raises ValueError for extensions Pillow cannot write.
    """
    ext = Path(path).suffix.casefold()
    fmt = Image.registered_extensions().get(ext)
    if fmt is None or fmt not in Image.SAVE:
        raise ValueError(f"unknown file extension: {ext or path!s}")
    return fmt


def save_options(pillow_format: str) -> dict:
    """Return encoder options used when saving to disk."""
    if pillow_format == "JPEG":
        return {"quality": SAVE_QUALITY}
    return {}
