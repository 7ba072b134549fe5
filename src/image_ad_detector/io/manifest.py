"""Loading of reference images from per-category manifests."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import List, Sequence, Tuple

from tqdm import tqdm

from ..crawl.fetch import is_remote, read_resource
from ..errors import InvalidImageError, ManifestUnavailableError
from ..extract.normalize import canonicalize_bytes
from .models import (
    CANONICAL_SIZE,
    NORMAL_CATEGORY,
    CanonicalImage,
    CategoryReferences,
    ReferenceSet,
)

logger = logging.getLogger(__name__)

MANIFEST_NAME = "index.json"
ADS_FOLDER = "ads"


class ReferenceLoader:
    """Build a :class:`ReferenceSet` from manifests under a local or remote root.

    The expected layout is ``<root>/normal/index.json`` for ordinary content and
    ``<root>/ads/<advertiser>/index.json`` for each advertiser, where every
    manifest lists image filenames relative to its own folder.
    """

    def __init__(
        self,
        root: str | Path,
        advertisers: Sequence[str] = (),
        size: tuple[int, int] = CANONICAL_SIZE,
    ) -> None:
        self.root = str(root)
        self.advertisers = tuple(advertisers)
        self.size = size

    def load(self) -> ReferenceSet:
        """Load every category; a failing category degrades to no images."""
        normal = self._load_isolated(NORMAL_CATEGORY)
        advertisers = [
            CategoryReferences(name, self._load_isolated(f"{ADS_FOLDER}/{name}"))
            for name in self.advertisers
        ]
        references = ReferenceSet(normal=normal, advertisers=tuple(advertisers))
        logger.info(
            "Loaded %d reference images (%d normal, %s)",
            len(references),
            len(normal),
            ", ".join(f"{entry.name}={len(entry.images)}" for entry in advertisers) or "no advertisers",
        )
        return references

    def load_category(self, folder: str) -> Tuple[CanonicalImage, ...]:
        """Return the canonical images listed in *folder*'s manifest."""
        images: List[CanonicalImage] = []
        for name in tqdm(self.image_names(folder), desc=f"Loading {folder}", unit="image", leave=False):
            location = self.locate(folder, name)
            try:
                payload = read_resource(location)
                if payload is None:
                    raise OSError("download failed")
                images.append(canonicalize_bytes(payload, self.size))
            except (InvalidImageError, OSError) as exc:
                logger.warning("Skipping reference image %s: %s", location, exc)
            except Exception:  # noqa: BLE001 - one bad entry must not drop its category
                logger.exception("Unexpected error loading reference image %s", location)
        return tuple(images)

    def image_names(self, folder: str) -> List[str]:
        """Return the filenames listed for *folder*, or an empty list if unavailable."""
        try:
            return self.read_manifest(folder)
        except ManifestUnavailableError as exc:
            logger.warning("%s", exc)
            return []

    def read_manifest(self, folder: str) -> List[str]:
        """Parse ``index.json`` for *folder*; raise if it is missing or malformed."""
        location = self.locate(folder, MANIFEST_NAME)
        try:
            payload = read_resource(location)
        except OSError as exc:
            raise ManifestUnavailableError(location, str(exc)) from exc
        if payload is None:
            raise ManifestUnavailableError(location, "download failed")

        try:
            data = json.loads(payload.decode("utf-8-sig"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise ManifestUnavailableError(location, f"invalid JSON ({exc})") from exc

        images = data.get("images") if isinstance(data, dict) else None
        if not isinstance(images, list):
            raise ManifestUnavailableError(location, "missing 'images' list")

        names = [item.strip() for item in images if isinstance(item, str) and item.strip()]
        if len(names) != len(images):
            logger.warning("Ignoring %d invalid entries in %s", len(images) - len(names), location)
        return names

    def locate(self, folder: str, name: str) -> str:
        """Resolve *name* inside *folder* against the loader root."""
        if is_remote(self.root):
            return f"{self.root.rstrip('/')}/{folder}/{name}"
        return str(Path(self.root) / folder / name)

    def _load_isolated(self, folder: str) -> Tuple[CanonicalImage, ...]:
        try:
            return self.load_category(folder)
        except Exception:  # noqa: BLE001 - one category must not abort the others
            logger.exception("Failed to load reference category %s", folder)
            return ()
