"""Sampled per-pixel color agreement between canonical buffers."""

from __future__ import annotations

import numpy as np

from ..io.models import RGBA_CHANNELS, CanonicalImage
from ._buffers import require_same_shape

_SAMPLE_STRIDE = 4

# Brightness is r + g + b on a 0-765 scale.
_DARK_BACKGROUND = 100
_LIGHT_BACKGROUND = 600
_BACKGROUND_TOLERANCE = 150
_FOREGROUND_TOLERANCE = 80


def pixel_similarity(a: CanonicalImage, b: CanonicalImage) -> float:
    """Return the fraction of sampled pixels whose colors agree.

    Every fourth pixel is compared. Pixels that look like background (very dark
    or very light) in either image tolerate a larger summed channel difference
    than foreground pixels do.
    """
    require_same_shape(a, b)

    rgb_a = _sampled_rgb(a)
    rgb_b = _sampled_rgb(b)
    total = rgb_a.shape[0]
    if total == 0:
        return 0.0

    diff = np.abs(rgb_a - rgb_b).sum(axis=1)
    background = _is_background(rgb_a.sum(axis=1)) | _is_background(rgb_b.sum(axis=1))
    similar = np.where(
        background, diff < _BACKGROUND_TOLERANCE, diff < _FOREGROUND_TOLERANCE
    )
    return float(np.count_nonzero(similar)) / float(total)


def _sampled_rgb(img: CanonicalImage) -> np.ndarray:
    flat = img.pixels.reshape(-1, RGBA_CHANNELS)
    return flat[::_SAMPLE_STRIDE, :3].astype(np.int32)


def _is_background(brightness: np.ndarray) -> np.ndarray:
    return (brightness < _DARK_BACKGROUND) | (brightness > _LIGHT_BACKGROUND)
