"""Detector configuration and its JSON representation."""

from __future__ import annotations

import dataclasses
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Tuple

from .errors import ConfigError
from .io.models import NORMAL_CATEGORY, MetricWeights, ThresholdTable

DEFAULT_ADVERTISERS: Tuple[str, ...] = ("stake",)
DEFAULT_FRAME_INTERVAL = 2.0
DEFAULT_FRAME_DEADLINE = 5.0

_KNOWN_KEYS = {
    "thresholds",
    "weights",
    "advertisers",
    "reference_root",
    "frame_interval",
    "frame_deadline",
}


@dataclass(frozen=True, slots=True)
class DetectorConfig:
    """Immutable settings for an :class:`~image_ad_detector.detector.AdDetector`."""

    thresholds: ThresholdTable = field(default_factory=ThresholdTable)
    weights: MetricWeights = field(default_factory=MetricWeights)
    advertisers: Tuple[str, ...] = DEFAULT_ADVERTISERS
    reference_root: str | None = None
    frame_interval: float = DEFAULT_FRAME_INTERVAL
    frame_deadline: float = DEFAULT_FRAME_DEADLINE

    def __post_init__(self) -> None:
        advertisers = tuple(str(name).strip() for name in self.advertisers)
        if any(not name for name in advertisers):
            raise ConfigError("Advertiser names must be non-empty")
        if NORMAL_CATEGORY in advertisers:
            raise ConfigError(f"{NORMAL_CATEGORY!r} is reserved and cannot be an advertiser")
        if len(set(advertisers)) != len(advertisers):
            raise ConfigError(f"Duplicate advertiser names in {advertisers}")
        object.__setattr__(self, "advertisers", advertisers)

        for name in ("frame_interval", "frame_deadline"):
            value = getattr(self, name)
            if not isinstance(value, (int, float)) or value <= 0:
                raise ConfigError(f"{name} must be a positive number of seconds, got {value!r}")
            object.__setattr__(self, name, float(value))

    def replace(self, **changes: Any) -> "DetectorConfig":
        """Return a copy of this configuration with *changes* applied."""
        return dataclasses.replace(self, **changes)


def config_from_mapping(
    data: Mapping[str, Any], base: DetectorConfig | None = None
) -> DetectorConfig:
    """Apply the settings in *data* on top of *base* (or the defaults)."""
    config = base or DetectorConfig()
    unknown = set(data) - _KNOWN_KEYS
    if unknown:
        raise ConfigError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")

    changes: dict[str, Any] = {}
    if "thresholds" in data:
        thresholds = data["thresholds"]
        if not isinstance(thresholds, Mapping):
            raise ConfigError("thresholds must be an object of category -> value")
        changes["thresholds"] = config.thresholds.with_overrides(thresholds)
    if "weights" in data:
        weights = data["weights"]
        if not isinstance(weights, Mapping):
            raise ConfigError("weights must be an object with pixel/structural/color")
        try:
            changes["weights"] = dataclasses.replace(config.weights, **weights)
        except TypeError as exc:
            raise ConfigError(f"Invalid weights: {exc}") from exc
    if "advertisers" in data:
        advertisers = data["advertisers"]
        if isinstance(advertisers, str) or not isinstance(advertisers, (list, tuple)):
            raise ConfigError("advertisers must be a list of names")
        changes["advertisers"] = tuple(advertisers)
    for key in ("reference_root", "frame_interval", "frame_deadline"):
        if key in data:
            changes[key] = data[key]

    return config.replace(**changes)


def load_config(path: str | Path, base: DetectorConfig | None = None) -> DetectorConfig:
    """Read a JSON configuration document from *path*."""
    config_path = Path(path)
    try:
        payload = json.loads(config_path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise ConfigError(f"Cannot read configuration file {config_path}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Invalid JSON in {config_path}: {exc}") from exc
    if not isinstance(payload, Mapping):
        raise ConfigError(f"Configuration in {config_path} must be a JSON object")
    return config_from_mapping(payload, base)
