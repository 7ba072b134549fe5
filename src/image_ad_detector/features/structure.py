"""Coarse layout comparison over fixed-size brightness blocks."""

from __future__ import annotations

import numpy as np

from ..io.models import CanonicalImage
from ._buffers import require_same_shape

BLOCK_SIZE = 8
_MATCH_TOLERANCE = 0.3


def block_brightness(img: CanonicalImage, block: int = BLOCK_SIZE) -> np.ndarray:
    """Return the mean grayscale brightness of each full block, scaled to [0, 1].

    The result has shape ``(height // block, width // block)``; partial blocks
    along the right and bottom edges are ignored.
    """
    if block <= 0:
        raise ValueError("block must be a positive integer")

    rows = img.height // block
    cols = img.width // block
    if rows == 0 or cols == 0:
        return np.zeros((rows, cols), dtype=np.float64)

    rgb = img.pixels[: rows * block, : cols * block, :3].astype(np.float64)
    gray = rgb.sum(axis=2) / 3.0
    blocks = gray.reshape(rows, block, cols, block).mean(axis=(1, 3))
    return blocks / 255.0


def structural_similarity(a: CanonicalImage, b: CanonicalImage) -> float:
    """Return the fraction of blocks whose mean brightness differs by less than 0.3."""
    require_same_shape(a, b)

    blocks_a = block_brightness(a)
    blocks_b = block_brightness(b)
    total = blocks_a.size
    if total == 0:
        return 0.0

    matches = np.abs(blocks_a - blocks_b) < _MATCH_TOLERANCE
    return float(np.count_nonzero(matches)) / float(total)
