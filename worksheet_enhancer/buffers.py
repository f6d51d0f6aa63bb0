"""Pixel buffer helpers: decoding, encoding, resizing and scratch allocation."""

from __future__ import annotations

import base64
import binascii
import io
import logging
from typing import Dict, List, Tuple, Union

import numpy as np
from PIL import Image, ImageOps, UnidentifiedImageError

from .config import JPEG_QUALITY, UPLOAD_MAX_WIDTH
from .errors import ImageDecodeError, ImageEncodeError

logger = logging.getLogger(__name__)

ImagePayload = Union[bytes, bytearray, memoryview, str]

_MIME_TYPES = {"JPEG": "image/jpeg", "PNG": "image/png", "WEBP": "image/webp"}


def as_rgba(array: np.ndarray) -> np.ndarray:
    """
    Coerce a greyscale, RGB or RGBA array into an RGBA pixel buffer.

    Args:
        array: Array of shape (h, w), (h, w, 3) or (h, w, 4).

    Returns:
        A new uint8 array of shape (h, w, 4). Missing alpha is fully opaque.

    Raises:
        ValueError: If the array shape is not one of the supported layouts.
    """
    array = np.asarray(array)
    if array.ndim == 2:
        array = np.repeat(array[:, :, np.newaxis], 3, axis=2)
    if array.ndim != 3 or array.shape[2] not in (3, 4):
        raise ValueError(f"Unsupported pixel array shape: {array.shape}")

    rgba = np.empty(array.shape[:2] + (4,), dtype=np.uint8)
    rgba[:, :, :3] = np.clip(array[:, :, :3], 0, 255)
    rgba[:, :, 3] = array[:, :, 3] if array.shape[2] == 4 else 255
    return rgba


def _payload_bytes(data: ImagePayload) -> bytes:
    if isinstance(data, (bytes, bytearray, memoryview)):
        return bytes(data)
    if not isinstance(data, str):
        raise ImageDecodeError(f"Unsupported image payload type: {type(data).__name__}")

    payload = data.strip()
    if payload.startswith("data:"):
        header, sep, payload = payload.partition(",")
        if not sep or ";base64" not in header:
            raise ImageDecodeError("Data URL is not base64 encoded")
    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ImageDecodeError(f"Invalid base64 image payload: {exc}") from exc


def _image_to_buffer(image: Image.Image) -> np.ndarray:
    image = ImageOps.exif_transpose(image)
    return np.array(image.convert("RGBA"), dtype=np.uint8)


def decode_image(data: ImagePayload) -> np.ndarray:
    """
    Decode an encoded raster image into an RGBA pixel buffer.

    Accepts raw bytes, a bare base64 string, or a ``data:`` URL. EXIF
    orientation is applied so the buffer matches what a viewer shows.

    Raises:
        ImageDecodeError: If the payload is not a readable image.
    """
    raw = _payload_bytes(data)
    if not raw:
        raise ImageDecodeError("Empty image payload")
    try:
        with Image.open(io.BytesIO(raw)) as image:
            image.load()
            return _image_to_buffer(image)
    except (UnidentifiedImageError, OSError, ValueError, Image.DecompressionBombError) as exc:
        raise ImageDecodeError(f"Could not decode image: {exc}") from exc


def load_image(path: str) -> np.ndarray:
    """Read an image file from disk into an RGBA pixel buffer."""
    try:
        with Image.open(path) as image:
            image.load()
            return _image_to_buffer(image)
    except (UnidentifiedImageError, OSError, ValueError, Image.DecompressionBombError) as exc:
        raise ImageDecodeError(f"Could not read image {path}: {exc}") from exc


def encode_image(buffer: np.ndarray, fmt: str = "JPEG", quality: int = JPEG_QUALITY) -> bytes:
    """
    Encode a pixel buffer into image bytes.

    JPEG has no alpha channel, so transparent pixels are written as their
    underlying colour (black for untouched rectifier output).

    Raises:
        ImageEncodeError: If Pillow cannot write the buffer in ``fmt``.
    """
    fmt = fmt.upper()
    try:
        image = Image.fromarray(as_rgba(buffer))
        if fmt == "JPEG":
            image = image.convert("RGB")
        out = io.BytesIO()
        image.save(out, format=fmt, quality=quality)
    except (OSError, ValueError, KeyError) as exc:
        raise ImageEncodeError(f"Could not encode image as {fmt}: {exc}") from exc
    return out.getvalue()


def encode_data_url(buffer: np.ndarray, fmt: str = "JPEG", quality: int = JPEG_QUALITY) -> str:
    """Encode a pixel buffer as a base64 ``data:`` URL."""
    fmt = fmt.upper()
    mime = _MIME_TYPES.get(fmt, f"image/{fmt.lower()}")
    payload = base64.b64encode(encode_image(buffer, fmt, quality)).decode("ascii")
    return f"data:{mime};base64,{payload}"


def downscale(buffer: np.ndarray, max_side: int) -> Tuple[np.ndarray, float]:
    """
    Shrink a buffer so its longest side is at most ``max_side``.

    Returns:
        A tuple of (buffer, scale_factor) where scale_factor is the number of
        source pixels per pixel of the returned buffer. Buffers already small
        enough are returned as-is with a factor of 1.0.
    """
    height, width = buffer.shape[:2]
    longest = max(height, width)
    if longest <= max_side:
        return buffer, 1.0

    ratio = max_side / float(longest)
    size = (max(1, int(round(width * ratio))), max(1, int(round(height * ratio))))
    small = Image.fromarray(as_rgba(buffer)).resize(size, Image.Resampling.BILINEAR)
    return np.array(small, dtype=np.uint8), longest / float(max_side)


def resize_for_upload(buffer: np.ndarray, max_width: int = UPLOAD_MAX_WIDTH) -> np.ndarray:
    """Cap the width of a buffer, keeping its aspect ratio."""
    height, width = buffer.shape[:2]
    if width <= max_width:
        return buffer.copy()
    new_height = max(1, int(round(height * max_width / float(width))))
    resized = Image.fromarray(as_rgba(buffer)).resize((max_width, new_height), Image.Resampling.LANCZOS)
    return np.array(resized, dtype=np.uint8)


class ScratchPool:
    """
    Explicitly scoped pool of temporary arrays.

    Arrays handed out by ``take`` stay owned by the pool. ``release`` zeroes
    every lent array and makes it available again; leaving the ``with`` block
    releases everything and drops the pool's references. A pool belongs to a
    single enhancement call and must not be shared between threads.
    """

    def __init__(self) -> None:
        self._free: Dict[Tuple[Tuple[int, ...], str], List[np.ndarray]] = {}
        self._lent: List[np.ndarray] = []

    def take(self, shape: Tuple[int, ...], dtype=np.float32) -> np.ndarray:
        key = (tuple(shape), np.dtype(dtype).str)
        bucket = self._free.get(key)
        array = bucket.pop() if bucket else np.zeros(shape, dtype=dtype)
        self._lent.append(array)
        return array

    def release(self) -> None:
        for array in self._lent:
            array.fill(0)
            self._free.setdefault((array.shape, array.dtype.str), []).append(array)
        if self._lent:
            logger.debug(f"Released {len(self._lent)} scratch buffer(s)")
        self._lent.clear()

    @property
    def lent(self) -> int:
        return len(self._lent)

    def __enter__(self) -> "ScratchPool":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()
        self._free.clear()
