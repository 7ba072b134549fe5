"""Discover embedded image and video media within fetched documents."""

from __future__ import annotations

import logging
from typing import Iterator

from bs4 import BeautifulSoup
from bs4.element import Tag

from ..io.models import PageMedia
from .fetch import normalize_url

logger = logging.getLogger(__name__)

_MEDIA_IMAGE_MARKER = "media"
_SKIPPED_SCHEMES = ("data:", "blob:", "javascript:")


def discover_media(html: str, base_url: str) -> PageMedia:
    """Return the media images and videos embedded in *html*, in document order.

    Only ``<img>`` elements whose ``src`` contains ``"media"`` are considered,
    which skips avatars, emoji and other interface chrome.
    """
    soup = BeautifulSoup(html or "", "lxml")
    media = PageMedia()

    seen: set[str] = set()
    for src in _iter_media_image_sources(soup):
        absolute = _make_absolute(src, base_url)
        if absolute and absolute not in seen:
            seen.add(absolute)
            media.image_urls.append(absolute)

    for src in _iter_video_sources(soup):
        absolute = _make_absolute(src, base_url)
        if absolute and absolute not in seen:
            seen.add(absolute)
            media.video_urls.append(absolute)

    logger.debug(
        "Discovered %d images and %d videos on %s",
        len(media.image_urls),
        len(media.video_urls),
        base_url,
    )
    return media


def _iter_media_image_sources(soup: BeautifulSoup) -> Iterator[str]:
    for img in soup.find_all("img"):
        src = img.get("src")
        if isinstance(src, str) and _MEDIA_IMAGE_MARKER in src:
            yield src


def _iter_video_sources(soup: BeautifulSoup) -> Iterator[str]:
    for video in soup.find_all("video"):
        src = video.get("src")
        if isinstance(src, str) and src.strip():
            yield src
            continue
        for source in video.find_all("source"):
            if not isinstance(source, Tag):
                continue
            nested = source.get("src")
            if isinstance(nested, str) and nested.strip():
                yield nested
                break


def _make_absolute(src: str, base_url: str) -> str | None:
    cleaned = src.strip()
    if not cleaned or cleaned.lower().startswith(_SKIPPED_SCHEMES):
        return None
    return normalize_url(cleaned, base_url)
