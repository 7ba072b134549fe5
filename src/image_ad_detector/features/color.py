"""Color histogram utilities."""

from __future__ import annotations

import numpy as np

from ..io.models import CanonicalImage
from ._buffers import require_same_shape

HISTOGRAM_BUCKETS = 32
_BUCKET_WIDTH = 32


def folded_indices(img: CanonicalImage) -> np.ndarray:
    """Return the histogram bucket every pixel of *img* folds into.

    Channels are quantized to five bits and combined as ``r*64 + g*8 + b``
    before folding into buckets of 32 composite indices. Composite indices of
    1024 and above, which every red of 128 or more produces, fold past the last
    bucket.
    """
    rgb = img.pixels[..., :3].reshape(-1, 3).astype(np.int64) >> 3
    index = rgb[:, 0] * 64 + rgb[:, 1] * 8 + rgb[:, 2]
    return index // _BUCKET_WIDTH


def has_overflow(img: CanonicalImage) -> bool:
    """Return ``True`` if any pixel of *img* folds past the last bucket."""
    return bool((folded_indices(img) >= HISTOGRAM_BUCKETS).any())


def color_histogram(img: CanonicalImage) -> np.ndarray:
    """Return the 32-bucket color histogram of *img*; overflowed folds are not counted."""
    buckets = folded_indices(img)
    return np.bincount(buckets[buckets < HISTOGRAM_BUCKETS], minlength=HISTOGRAM_BUCKETS)


def histogram_overlap(a: np.ndarray, b: np.ndarray) -> float:
    """Return the intersection over union of two histograms, or 0 when both are empty."""
    hist_a = np.asarray(a, dtype=np.float64)
    hist_b = np.asarray(b, dtype=np.float64)
    if hist_a.shape != hist_b.shape:
        raise ValueError("Histograms must have the same number of buckets")

    union = float(np.maximum(hist_a, hist_b).sum())
    if union <= 0.0:
        return 0.0
    intersection = float(np.minimum(hist_a, hist_b).sum())
    return intersection / union


def color_similarity(a: CanonicalImage, b: CanonicalImage) -> float:
    """Return the color distribution similarity of two canonical buffers.

    An image with any overflowed fold has no defined distribution and scores 0
    against everything, itself included.
    """
    require_same_shape(a, b)
    if has_overflow(a) or has_overflow(b):
        return 0.0
    return histogram_overlap(color_histogram(a), color_histogram(b))
