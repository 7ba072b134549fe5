"""Shared fixtures for building synthetic canonical images."""

from __future__ import annotations

import numpy as np
import pytest

from image_ad_detector.io.models import CanonicalImage

CANDIDATE_COLOR = (100, 150, 200)


def make_solid(color, size=(200, 200)) -> CanonicalImage:
    width, height = size
    pixels = np.zeros((height, width, 4), dtype=np.uint8)
    pixels[..., :3] = color
    pixels[..., 3] = 255
    return CanonicalImage(pixels)


def make_banded(color, rows, size=(200, 200)) -> CanonicalImage:
    """Top *rows* rows in *color*, the rest black."""
    width, height = size
    pixels = np.zeros((height, width, 4), dtype=np.uint8)
    pixels[:rows, :, :3] = color
    pixels[..., 3] = 255
    return CanonicalImage(pixels)


def make_noise(seed, size=(200, 200)) -> CanonicalImage:
    """Random pixels with red kept below 96, so every pixel has a color bucket."""
    width, height = size
    rng = np.random.default_rng(seed)
    pixels = rng.integers(0, 256, size=(height, width, 4), dtype=np.uint8)
    pixels[..., 0] %= 96
    pixels[..., 3] = 255
    return CanonicalImage(pixels)


@pytest.fixture
def solid():
    return make_solid


@pytest.fixture
def banded():
    return make_banded


@pytest.fixture
def noise():
    return make_noise
