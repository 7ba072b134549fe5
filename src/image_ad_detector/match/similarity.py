"""Similarity scoring between canonical images."""

from __future__ import annotations

import logging

from ..features.color import color_similarity
from ..features.pixel import pixel_similarity
from ..features.structure import structural_similarity
from ..io.models import CanonicalImage, MetricWeights, SimilarityTriple

logger = logging.getLogger(__name__)

WEIGHTS = MetricWeights()


def base_similarity(a: CanonicalImage, b: CanonicalImage) -> SimilarityTriple:
    """Return the per-metric similarity components between *a* and *b*."""
    return SimilarityTriple(
        pixel=pixel_similarity(a, b),
        structural=structural_similarity(a, b),
        color=color_similarity(a, b),
    )


def combine_components(
    components: SimilarityTriple, weights: MetricWeights = WEIGHTS
) -> float:
    """Return the weighted combination of *components* in the unit interval."""
    score = (
        weights.pixel * float(components.pixel)
        + weights.structural * float(components.structural)
        + weights.color * float(components.color)
    )
    return float(max(0.0, min(1.0, score)))


def combined_similarity(
    a: CanonicalImage, b: CanonicalImage, weights: MetricWeights = WEIGHTS
) -> float:
    """Return the weighted similarity between two canonical images."""
    components = base_similarity(a, b)
    score = combine_components(components, weights)
    logger.debug(
        "pixel=%.3f structural=%.3f color=%.3f weighted=%.3f",
        components.pixel,
        components.structural,
        components.color,
        score,
    )
    return score
