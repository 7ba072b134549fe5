"""Data models shared across the ad detection pipeline."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, Iterable, Iterator, List, Mapping, Tuple

import numpy as np

from ..errors import ConfigError, InvalidImageError

CANONICAL_SIZE: Tuple[int, int] = (200, 200)
RGBA_CHANNELS = 4

NORMAL_CATEGORY = "normal"

DEFAULT_THRESHOLD = 0.25
DEFAULT_THRESHOLDS: Dict[str, float] = {
    NORMAL_CATEGORY: 0.25,
    "stake": 0.35,
}


@dataclass(frozen=True, slots=True, eq=False)
class CanonicalImage:
    """Read-only RGBA pixel buffer of shape (height, width, 4)."""

    pixels: np.ndarray

    def __post_init__(self) -> None:
        pixels = np.array(self.pixels, dtype=np.uint8)
        if pixels.ndim != 3 or pixels.shape[2] != RGBA_CHANNELS:
            raise InvalidImageError(
                f"Expected an RGBA buffer of shape (H, W, 4), got {pixels.shape}"
            )
        pixels.setflags(write=False)
        object.__setattr__(self, "pixels", pixels)

    @classmethod
    def from_bytes(cls, data: bytes, width: int, height: int) -> "CanonicalImage":
        """Build an image from a row-major RGBA byte string."""
        expected = width * height * RGBA_CHANNELS
        if len(data) != expected:
            raise InvalidImageError(
                f"RGBA buffer holds {len(data)} bytes, expected {expected}"
            )
        flat = np.frombuffer(data, dtype=np.uint8)
        return cls(flat.reshape(height, width, RGBA_CHANNELS))

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    @property
    def size(self) -> Tuple[int, int]:
        return self.width, self.height

    def tobytes(self) -> bytes:
        return self.pixels.tobytes()


@dataclass(frozen=True, slots=True)
class CategoryReferences:
    """Reference images for a single advertiser category."""

    name: str
    images: Tuple[CanonicalImage, ...] = ()


@dataclass(frozen=True, slots=True)
class ReferenceSet:
    """Normal exemplars plus advertiser exemplars in scan order."""

    normal: Tuple[CanonicalImage, ...] = ()
    advertisers: Tuple[CategoryReferences, ...] = ()

    @classmethod
    def from_mapping(
        cls, mapping: Mapping[str, Iterable[CanonicalImage]]
    ) -> "ReferenceSet":
        """Build a reference set keeping the mapping's iteration order."""
        normal: Tuple[CanonicalImage, ...] = ()
        advertisers: List[CategoryReferences] = []
        for category, images in mapping.items():
            if category == NORMAL_CATEGORY:
                normal = tuple(images)
            else:
                advertisers.append(CategoryReferences(category, tuple(images)))
        return cls(normal=normal, advertisers=tuple(advertisers))

    def __iter__(self) -> Iterator[Tuple[str, Tuple[CanonicalImage, ...]]]:
        """Yield ``(category, images)`` in scan order, normal first."""
        yield NORMAL_CATEGORY, self.normal
        for entry in self.advertisers:
            yield entry.name, entry.images

    def __len__(self) -> int:
        return len(self.normal) + sum(len(entry.images) for entry in self.advertisers)


@dataclass(frozen=True, slots=True)
class ThresholdTable:
    """Per-category similarity thresholds with a fallback default."""

    thresholds: Mapping[str, float] = field(
        default_factory=lambda: dict(DEFAULT_THRESHOLDS)
    )
    default: float = DEFAULT_THRESHOLD

    def __post_init__(self) -> None:
        cleaned: Dict[str, float] = {}
        for category, value in self.thresholds.items():
            cleaned[str(category)] = _unit_interval(value, f"threshold for {category!r}")
        object.__setattr__(self, "thresholds", MappingProxyType(cleaned))
        object.__setattr__(self, "default", _unit_interval(self.default, "default threshold"))

    def for_category(self, category: str) -> float:
        """Return the threshold for *category*, falling back to the default."""
        return self.thresholds.get(category, self.default)

    def with_overrides(self, overrides: Mapping[str, float]) -> "ThresholdTable":
        """Return a copy with *overrides* applied; the key ``default`` sets the fallback."""
        merged = dict(self.thresholds)
        default = self.default
        for category, value in overrides.items():
            if category == "default":
                default = value
            else:
                merged[category] = value
        return ThresholdTable(merged, default)


@dataclass(frozen=True, slots=True)
class MetricWeights:
    """Linear weights applied to the pixel, structural and color metrics."""

    pixel: float = 0.4
    structural: float = 0.4
    color: float = 0.2

    def __post_init__(self) -> None:
        values = (self.pixel, self.structural, self.color)
        if any(float(value) < 0.0 for value in values):
            raise ConfigError(f"Metric weights must be non-negative, got {values}")
        if not math.isclose(sum(values), 1.0, abs_tol=1e-9):
            raise ConfigError(f"Metric weights must sum to 1.0, got {sum(values):.6f}")


@dataclass(frozen=True, slots=True)
class SimilarityTriple:
    """Per-metric similarity scores for a single comparison."""

    pixel: float
    structural: float
    color: float


@dataclass(frozen=True, slots=True)
class ClassificationResult:
    """Outcome of classifying one candidate."""

    is_ad: bool = False
    company: str | None = None

    def __post_init__(self) -> None:
        if self.is_ad and not self.company:
            raise ValueError("An ad result must name the matched company")
        if not self.is_ad and self.company is not None:
            raise ValueError("A non-ad result cannot name a company")

    @classmethod
    def ad(cls, company: str) -> "ClassificationResult":
        return cls(is_ad=True, company=company)

    def to_dict(self) -> Dict[str, object]:
        return {"isAd": self.is_ad, "company": self.company}


NOT_AD = ClassificationResult()


@dataclass(slots=True)
class PageMedia:
    """Media URLs discovered on a page, in document order."""

    image_urls: List[str] = field(default_factory=list)
    video_urls: List[str] = field(default_factory=list)


@dataclass(slots=True)
class DetectionRecord:
    """One classified input, as written to the results table."""

    source: str
    media: str
    is_ad: bool
    company: str | None = None
    error: str | None = None


def _unit_interval(value: object, label: str) -> float:
    try:
        number = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{label} must be a number, got {value!r}") from exc
    if math.isnan(number) or not 0.0 <= number <= 1.0:
        raise ConfigError(f"{label} must lie in [0, 1], got {number}")
    return number
