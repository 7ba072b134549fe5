"""Shared checks for metric inputs."""

from __future__ import annotations

from ..errors import DimensionMismatchError
from ..io.models import CanonicalImage


def require_same_shape(a: CanonicalImage, b: CanonicalImage) -> None:
    """Raise :class:`DimensionMismatchError` unless *a* and *b* share a shape."""
    if a.pixels.shape != b.pixels.shape:
        raise DimensionMismatchError(a.pixels.shape, b.pixels.shape)
