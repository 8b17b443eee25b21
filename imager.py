"""Load, transform and re-encode raster images through a small chainable handle."""

from __future__ import annotations

import io
import logging
import os
import time
from enum import Enum
from pathlib import Path

from PIL import Image, UnidentifiedImageError

import image_backend

FORMAT_JPEG = "jpeg"
FORMAT_JPG = "jpg"
FORMAT_GIF = "gif"
FORMAT_PNG = "png"
FORMAT_WEBP = "webp"
FORMATS = (FORMAT_JPEG, FORMAT_JPG, FORMAT_GIF, FORMAT_PNG, FORMAT_WEBP)

# Tag -> (Pillow format, encoder options). Tags missing here encode to nothing.
ENCODERS: dict[str, tuple[str, dict]] = {
    FORMAT_JPEG: ("JPEG", {"quality": 100}),
    FORMAT_JPG: ("JPEG", {"quality": 100}),
    FORMAT_PNG: ("PNG", {}),
    FORMAT_GIF: ("GIF", {}),
}

TRANSPARENT = (0, 0, 0, 0)

PERF_LOGGING = os.environ.get("IMAGER_PERF") == "1"

_DECODE_ERRORS = (UnidentifiedImageError, OSError, SyntaxError, Image.DecompressionBombError)


class ImagerError(RuntimeError):
    """Base class for errors raised by image handles."""


class FileAccessError(ImagerError):
    """A path could not be opened for reading or writing."""


class DecodeError(ImagerError):
    """Bytes are not a recognized or readable image."""


class EncodeError(ImagerError):
    """The image could not be encoded in the requested format."""


class ResizeMode(str, Enum):
    """Policies for fitting an image into a target box."""

    FIT = "fit"
    CROP = "crop"
    SCALE = "scale"
    STRETCH = "stretch"


_RESIZERS = {
    ResizeMode.FIT: image_backend.resize_fit,
    ResizeMode.CROP: image_backend.resize_fill,
    ResizeMode.SCALE: image_backend.resize_scale,
    ResizeMode.STRETCH: image_backend.resize_stretch,
}


def _size_text(size: tuple[int, int] | None) -> str:
    return f"{size[0]}x{size[1]}" if size else "-"


def perf_log(
    operation: str, duration: float, size: tuple[int, int] | None = None, extra: str = ""
) -> None:
    """Log how long an operation took and the image size it produced."""
    if PERF_LOGGING:
        logging.info(
            "PERF %s: %.3fms [%s] %s", operation, duration * 1000, _size_text(size), extra
        )


class PerfTimer:
    """Context manager timing one image operation.

    Set ``size`` inside the block to report the resulting image size.
    """

    def __init__(self, operation: str, extra: str = ""):
        self.operation = operation
        self.extra = extra
        self.size: tuple[int, int] | None = None
        self._start: float | None = None

    def __enter__(self):
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self._start is not None:
            perf_log(self.operation, time.perf_counter() - self._start, self.size, self.extra)
        return False


def _normalize_format(value: str | None) -> str:
    tag = (value or "").casefold()
    if tag and tag not in FORMATS:
        raise ValueError(f"Unknown format tag: {value!r}")
    return tag


def _decode_stream(fp, source: str) -> tuple[Image.Image, str]:
    with PerfTimer("decode", source) as timer:
        try:
            img, pillow_format = image_backend.decode(fp)
        except _DECODE_ERRORS as exc:
            logging.warning("Decode failed for %s: %s", source, exc)
            raise DecodeError(f"Could not decode image from {source}: {exc}") from exc
        timer.size = img.size
    tag = pillow_format.casefold()
    if tag not in FORMATS:
        logging.warning("Decoded unsupported format %s from %s", pillow_format, source)
        raise DecodeError(f"Unsupported image format {pillow_format!r} from {source}")
    logging.debug("Decoded %s image %dx%d from %s", tag, img.width, img.height, source)
    return img, tag


def _decode_file(path: str | Path) -> tuple[Image.Image, str]:
    path = Path(path)
    try:
        fp = open(path, "rb")
    except OSError as exc:
        logging.warning("Could not open %s: %s", path, exc)
        raise FileAccessError(f"Could not open image file: {path}") from exc
    with fp:
        return _decode_stream(fp, str(path))


def _decode_bytes(data: bytes) -> tuple[Image.Image, str]:
    return _decode_stream(io.BytesIO(data), f"{len(data)} bytes")


class ImageHandle:
    """A decoded image plus the format tag it was read as.

    Transform methods replace the held image and return the handle, so calls
    can be chained::

        data = ImageHandle.from_file("in.jpg").resize(200, 200).rotate(90).to_bytes()

    Handles carry no locking; use one per thread.
    """

    def __init__(self, image: Image.Image, format: str = ""):
        """Wrap an already-decoded image with an optional format tag."""
        self.image = image
        self.format = format

    @property
    def format(self) -> str:
        """Format tag used by to_bytes(): one of FORMATS, or "" when unset."""
        return self._format

    @format.setter
    def format(self, value: str | None) -> None:
        self._format = _normalize_format(value)

    @property
    def width(self) -> int:
        return self.image.width

    @property
    def height(self) -> int:
        return self.image.height

    @property
    def size(self) -> tuple[int, int]:
        return self.image.size

    def __repr__(self) -> str:
        return (
            f"<ImageHandle format={self.format!r} size={self.width}x{self.height} "
            f"mode={self.image.mode}>"
        )

    def _replace(self, image: Image.Image, format: str) -> None:
        tag = _normalize_format(format)
        self.image = image
        self._format = tag

    @classmethod
    def from_image(cls, image: Image.Image) -> ImageHandle:
        """Wrap an already-decoded image. The format tag is left unset."""
        return cls(image)

    @classmethod
    def from_file(cls, path: str | Path) -> ImageHandle:
        """Decode the file at path, detecting the format from its content.

        Raises FileAccessError if the file cannot be opened and DecodeError if
        its content is not a JPEG, PNG, GIF or WebP image.
        """
        img, tag = _decode_file(path)
        return cls(img, tag)

    @classmethod
    def from_bytes(cls, data: bytes) -> ImageHandle:
        """Decode an in-memory encoded image, detecting the format from its content.

        Raises DecodeError if the bytes are not a JPEG, PNG, GIF or WebP image.
        """
        img, tag = _decode_bytes(data)
        return cls(img, tag)

    def load_file(self, path: str | Path) -> ImageHandle:
        """Replace the held image and tag with the decoded file.

        The handle is unchanged if decoding fails.
        """
        img, tag = _decode_file(path)
        self._replace(img, tag)
        return self

    def load_bytes(self, data: bytes) -> ImageHandle:
        """Replace the held image and tag with the decoded bytes.

        The handle is unchanged if decoding fails.
        """
        img, tag = _decode_bytes(data)
        self._replace(img, tag)
        return self

    def resize(
        self, width: int, height: int, mode: ResizeMode | str = ResizeMode.FIT
    ) -> ImageHandle:
        """Resample the image into a width x height box using the given policy.

        FIT keeps the aspect ratio inside the box without enlarging, CROP
        covers the box and trims the overflow around the center, SCALE and
        STRETCH ignore the aspect ratio (Lanczos and nearest neighbor
        respectively). Non-positive sizes raise ValueError.
        """
        mode = ResizeMode(mode)
        with PerfTimer("resize", f"{mode.value} {width}x{height}") as timer:
            self.image = _RESIZERS[mode](self.image, width, height)
            timer.size = self.size
        logging.debug("Resized (%s) to %dx%d", mode.value, self.width, self.height)
        return self

    def crop(self, width: int, height: int, x: int, y: int) -> ImageHandle:
        """Keep the width x height rectangle at (x, y), clamped to the image."""
        with PerfTimer("crop", f"{width}x{height}+{x}+{y}") as timer:
            self.image = image_backend.crop_clamped(self.image, width, height, x, y)
            timer.size = self.size
        logging.debug("Cropped to %dx%d", self.width, self.height)
        return self

    def rotate(
        self, degrees: float, fill: tuple[int, int, int, int] = TRANSPARENT
    ) -> ImageHandle:
        """Rotate counter-clockwise, growing the canvas to fit the result."""
        with PerfTimer("rotate", f"{degrees}") as timer:
            self.image = image_backend.rotate_expand(self.image, degrees, fill)
            timer.size = self.size
        logging.debug("Rotated %s degrees to %dx%d", degrees, self.width, self.height)
        return self

    def to_bytes(self) -> bytes:
        """Encode the image using the format tag.

        JPEG is written at quality 100. Tags without an encoder ("webp" and
        the unset tag) produce b"" rather than an error.
        """
        encoder = ENCODERS.get(self.format)
        if encoder is None:
            logging.debug("No encoder for format tag %r; returning empty buffer", self.format)
            return b""
        pillow_format, options = encoder
        with PerfTimer("encode", self.format) as timer:
            timer.size = self.size
            try:
                return image_backend.encode(self.image, pillow_format, **options)
            except (OSError, ValueError, KeyError) as exc:
                logging.warning("Encode as %s failed: %s", self.format, exc)
                raise EncodeError(f"Could not encode image as {self.format}: {exc}") from exc

    def save(self, path: str | Path) -> None:
        """Write the image to path in the format named by its extension.

        The format tag is ignored. Raises EncodeError for extensions with no
        encoder or when encoding fails, FileAccessError when writing fails.
        """
        path = Path(path)
        with PerfTimer("save", str(path)) as timer:
            timer.size = self.size
            try:
                pillow_format = image_backend.format_for_path(path)
                data = image_backend.encode(
                    self.image, pillow_format, **image_backend.save_options(pillow_format)
                )
            except (OSError, ValueError, KeyError) as exc:
                logging.warning("Encode for %s failed: %s", path, exc)
                raise EncodeError(f"Could not encode image for {path}: {exc}") from exc
            try:
                path.write_bytes(data)
            except OSError as exc:
                logging.warning("Could not write %s: %s", path, exc)
                raise FileAccessError(f"Could not write image file: {path}") from exc
        logging.debug("Saved %s image to %s", pillow_format, path)
