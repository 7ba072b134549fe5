"""Exception types raised by the ad detector."""

from __future__ import annotations


class DetectorError(Exception):
    """Base class for all detector failures."""


class InvalidImageError(DetectorError, ValueError):
    """Raised for zero-area or undecodable image input."""


class DimensionMismatchError(DetectorError, ValueError):
    """Raised when a metric is asked to compare buffers of different sizes."""

    def __init__(self, left: tuple[int, ...], right: tuple[int, ...]) -> None:
        super().__init__(f"Cannot compare buffers of shape {left} and {right}")
        self.left = left
        self.right = right


class ManifestUnavailableError(DetectorError):
    """Raised when a category manifest is missing or cannot be parsed."""

    def __init__(self, location: str, reason: str) -> None:
        super().__init__(f"Manifest unavailable at {location}: {reason}")
        self.location = location
        self.reason = reason


class ConfigError(DetectorError, ValueError):
    """Raised for invalid detector configuration values."""
