"""Utilities for turning arbitrary imagery into canonical comparison buffers."""

from __future__ import annotations

from io import BytesIO

import numpy as np
from PIL import Image, UnidentifiedImageError
from PIL.Image import DecompressionBombError

from ..errors import InvalidImageError
from ..io.models import CANONICAL_SIZE, CanonicalImage


def decode_image(image_bytes: bytes) -> Image.Image:
    """Return a fully loaded RGBA Pillow image decoded from *image_bytes*."""
    if not image_bytes:
        raise InvalidImageError("Empty image payload cannot be decoded")

    try:
        with Image.open(BytesIO(image_bytes)) as img:
            img.load()
            return img.convert("RGBA")
    except (UnidentifiedImageError, DecompressionBombError, OSError) as exc:
        raise InvalidImageError(f"Unable to decode image: {exc}") from exc


def canonicalize(
    img: Image.Image, size: tuple[int, int] = CANONICAL_SIZE
) -> CanonicalImage:
    """Resize *img* to *size* in a single bilinear pass and return its RGBA pixels."""
    width, height = img.size
    if width <= 0 or height <= 0:
        raise InvalidImageError(f"Cannot canonicalize a zero-area image ({width}x{height})")

    rgba = img if img.mode == "RGBA" else img.convert("RGBA")
    try:
        resized = rgba.resize(size, _bilinear_filter())
        try:
            return CanonicalImage(np.asarray(resized))
        finally:
            resized.close()
    finally:
        if rgba is not img:
            rgba.close()


def canonicalize_frame(
    frame: np.ndarray, size: tuple[int, int] = CANONICAL_SIZE
) -> CanonicalImage:
    """Canonicalize an RGB or RGBA video frame array of shape (H, W, C)."""
    pixels = np.asarray(frame)
    if pixels.ndim != 3 or pixels.shape[0] == 0 or pixels.shape[1] == 0:
        raise InvalidImageError(f"Cannot canonicalize a frame of shape {pixels.shape}")
    if pixels.shape[2] not in (3, 4):
        raise InvalidImageError(f"Unsupported channel count {pixels.shape[2]}")

    with Image.fromarray(np.ascontiguousarray(pixels, dtype=np.uint8)) as img:
        return canonicalize(img, size)


def canonicalize_bytes(
    image_bytes: bytes, size: tuple[int, int] = CANONICAL_SIZE
) -> CanonicalImage:
    """Decode *image_bytes* and return the canonical buffer."""
    img = decode_image(image_bytes)
    try:
        return canonicalize(img, size)
    finally:
        img.close()


def _bilinear_filter() -> int:
    resample_attr = getattr(Image, "Resampling", None)
    resample_filter = getattr(resample_attr, "BILINEAR", None) if resample_attr else None
    if resample_filter is None:
        resample_filter = Image.BILINEAR
    return resample_filter
