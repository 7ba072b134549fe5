"""Ad detector state: reference loading and total classification entry points."""

from __future__ import annotations

import asyncio
import logging
from typing import Protocol

from PIL import Image

from .config import DetectorConfig
from .crawl.fetch import read_resource
from .errors import InvalidImageError
from .extract.normalize import canonicalize, canonicalize_bytes
from .io.manifest import ReferenceLoader
from .io.models import (
    NOT_AD,
    CanonicalImage,
    ClassificationResult,
    PageMedia,
    ReferenceSet,
)
from .match.classifier import classify
from .video.frames import VideoFileFrames
from .video.sampler import FrameSource, VideoSampler

logger = logging.getLogger(__name__)


class ReferenceSource(Protocol):
    def load(self) -> ReferenceSet: ...


class AdDetector:
    """Classify images and videos against a lazily loaded reference set.

    References are loaded once, on the first call to :meth:`initialize` or to
    any classification method. Concurrent callers share a single in-flight
    load. If loading fails the detector continues with an empty reference set,
    so every classification method always returns a result and reports
    not-ad when it cannot decide.
    """

    def __init__(
        self,
        config: DetectorConfig | None = None,
        loader: ReferenceSource | None = None,
    ) -> None:
        self.config = config or DetectorConfig()
        if loader is None and self.config.reference_root:
            loader = ReferenceLoader(self.config.reference_root, self.config.advertisers)
        self._loader = loader
        self._references: ReferenceSet | None = None
        self._init_task: asyncio.Future[ReferenceSet] | None = None

    @classmethod
    def from_references(
        cls, references: ReferenceSet, config: DetectorConfig | None = None
    ) -> "AdDetector":
        """Return a detector that is ready immediately with *references*."""
        detector = cls(config)
        detector._references = references
        return detector

    @property
    def ready(self) -> bool:
        return self._references is not None

    @property
    def references(self) -> ReferenceSet:
        return self._references if self._references is not None else ReferenceSet()

    async def initialize(self) -> ReferenceSet:
        """Load the reference set once and return it."""
        if self._references is not None:
            return self._references
        if self._init_task is None:
            self._init_task = asyncio.ensure_future(self._load_references())
        return await asyncio.shield(self._init_task)

    async def _load_references(self) -> ReferenceSet:
        references = ReferenceSet()
        if self._loader is None:
            logger.warning("No reference source configured; every input will be not-ad")
        else:
            try:
                references = await asyncio.to_thread(self._loader.load)
            except Exception:  # noqa: BLE001 - degrade to an empty reference set
                logger.exception("Failed to load reference images")
        self._references = references
        return references

    def classify_canonical(self, candidate: CanonicalImage) -> ClassificationResult:
        """Classify an already canonical buffer against the loaded references."""
        return classify(
            candidate, self.references, self.config.thresholds, self.config.weights
        )

    async def classify_image(
        self, image: Image.Image | CanonicalImage
    ) -> ClassificationResult:
        """Classify a decoded image; never raises."""
        await self.initialize()
        try:
            candidate = image if isinstance(image, CanonicalImage) else canonicalize(image)
            return self.classify_canonical(candidate)
        except Exception:  # noqa: BLE001 - classification is total
            logger.exception("Image classification failed")
            return NOT_AD

    async def classify_bytes(self, image_bytes: bytes) -> ClassificationResult:
        """Decode and classify raw image bytes; never raises."""
        await self.initialize()
        try:
            candidate = await asyncio.to_thread(canonicalize_bytes, image_bytes)
        except InvalidImageError as exc:
            logger.warning("Candidate image rejected: %s", exc)
            return NOT_AD
        except Exception:  # noqa: BLE001 - classification is total
            logger.exception("Unexpected error decoding candidate image")
            return NOT_AD
        return await self.classify_image(candidate)

    async def classify_location(self, location: str) -> ClassificationResult:
        """Classify the image at a local path or URL; never raises."""
        await self.initialize()
        candidate = await self._load_candidate(location)
        if candidate is None:
            return NOT_AD
        return await self.classify_image(candidate)

    async def check_video(self, source: FrameSource) -> ClassificationResult:
        """Sample frames from a playing *source* until it matches, ends or times out."""
        await self.initialize()
        sampler = VideoSampler(
            source,
            self.classify_canonical,
            interval=self.config.frame_interval,
            deadline=self.config.frame_deadline,
        )
        try:
            return await sampler.run()
        except Exception:  # noqa: BLE001 - classification is total
            logger.exception("Video sampling failed")
            return NOT_AD

    async def check_video_location(self, location: str) -> ClassificationResult:
        """Open the video at *location*, play it and sample its frames."""
        await self.initialize()
        try:
            frames = await self._open_frames(location)
        except Exception:  # noqa: BLE001 - classification is total
            logger.exception("Unexpected error opening video %s", location)
            return NOT_AD
        if frames is None:
            return NOT_AD
        try:
            frames.start()
            return await self.check_video(frames)
        finally:
            frames.close()

    async def predict(self, media: PageMedia) -> ClassificationResult:
        """Classify a page from its media.

        Only the first image that loads is checked. Videos are sampled only
        when the page has no loadable image, and then only the first one.
        """
        await self.initialize()
        try:
            for url in media.image_urls:
                candidate = await self._load_candidate(url)
                if candidate is not None:
                    return await self.classify_image(candidate)
            if media.video_urls:
                return await self.check_video_location(media.video_urls[0])
        except Exception:  # noqa: BLE001 - classification is total
            logger.exception("Page prediction failed")
        return NOT_AD

    async def _load_candidate(self, location: str) -> CanonicalImage | None:
        try:
            payload = await asyncio.to_thread(read_resource, location)
            if payload is None:
                return None
            return await asyncio.to_thread(canonicalize_bytes, payload)
        except (InvalidImageError, OSError) as exc:
            logger.warning("Skipping candidate %s: %s", location, exc)
        except Exception:  # noqa: BLE001 - classification is total
            logger.exception("Unexpected error loading candidate %s", location)
        return None

    async def _open_frames(self, location: str) -> VideoFileFrames | None:
        frames = VideoFileFrames(location)
        try:
            await asyncio.to_thread(frames.open)
        except OSError as exc:
            logger.warning("Cannot sample video %s: %s", location, exc)
            return None
        return frames
