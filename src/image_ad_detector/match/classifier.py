"""Threshold classification of a candidate against the reference set."""

from __future__ import annotations

import logging
from typing import Sequence

from ..io.models import (
    NORMAL_CATEGORY,
    NOT_AD,
    CanonicalImage,
    ClassificationResult,
    MetricWeights,
    ReferenceSet,
    ThresholdTable,
)
from .similarity import WEIGHTS, combined_similarity

logger = logging.getLogger(__name__)


def classify(
    candidate: CanonicalImage,
    references: ReferenceSet,
    thresholds: ThresholdTable,
    weights: MetricWeights = WEIGHTS,
) -> ClassificationResult:
    """Classify *candidate* as ordinary content or as an advertiser's ad.

    Normal references are scanned first and any score above the normal
    threshold ends the scan as not-ad. Advertiser categories are then scanned
    in stored order and the first image scoring above its category threshold
    decides the result.
    """
    for category, images in references:
        threshold = thresholds.for_category(category)
        if _first_match(candidate, category, images, threshold, weights):
            if category == NORMAL_CATEGORY:
                return NOT_AD
            return ClassificationResult.ad(category)

    return NOT_AD


def _first_match(
    candidate: CanonicalImage,
    category: str,
    images: Sequence[CanonicalImage],
    threshold: float,
    weights: MetricWeights,
) -> bool:
    best = 0.0
    for index, reference in enumerate(images):
        score = combined_similarity(candidate, reference, weights)
        if score > threshold:
            logger.debug(
                "Matched %s reference #%d (score=%.3f > %.2f)",
                category,
                index,
                score,
                threshold,
            )
            return True
        best = max(best, score)
    if images:
        logger.debug("Best %s similarity %.3f (threshold %.2f)", category, best, threshold)
    return False
