"""OpenCV-backed frame source for video files and streams."""

from __future__ import annotations

import asyncio
import logging
import time
from threading import Lock
from typing import Callable

import cv2

from ..errors import InvalidImageError
from ..extract.normalize import canonicalize_frame
from ..io.models import CANONICAL_SIZE, CanonicalImage

logger = logging.getLogger(__name__)


class VideoFileFrames:
    """Play back a video against the wall clock and capture its current frame.

    Playback starts with :meth:`start`; the playback position is the time since
    then, excluding time spent paused. The source reports ``ended`` once the
    position passes the video's duration (when the container reports one).
    """

    def __init__(
        self,
        location: str,
        size: tuple[int, int] = CANONICAL_SIZE,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.location = location
        self.size = size
        self._clock = clock
        self._capture: cv2.VideoCapture | None = None
        self._lock = Lock()
        self._duration: float | None = None
        self._started_at: float | None = None
        self._paused_at: float | None = None
        self._paused_total = 0.0

    def open(self) -> "VideoFileFrames":
        """Open the underlying capture; raise :class:`OSError` if it cannot be read."""
        capture = cv2.VideoCapture(self.location)
        if not capture.isOpened():
            capture.release()
            raise OSError(f"Unable to open video {self.location}")

        fps = capture.get(cv2.CAP_PROP_FPS) or 0.0
        frame_count = capture.get(cv2.CAP_PROP_FRAME_COUNT) or 0.0
        self._duration = (frame_count / fps) if fps > 0 and frame_count > 0 else None
        self._capture = capture
        logger.debug("Opened video %s (duration=%s)", self.location, self._duration)
        return self

    def start(self) -> None:
        """Begin playback at position zero."""
        if self._capture is None:
            self.open()
        self._started_at = self._clock()
        self._paused_at = None
        self._paused_total = 0.0

    def pause(self) -> None:
        if self._paused_at is None:
            self._paused_at = self._clock()

    def resume(self) -> None:
        if self._paused_at is not None:
            self._paused_total += self._clock() - self._paused_at
            self._paused_at = None

    @property
    def duration(self) -> float | None:
        return self._duration

    @property
    def position(self) -> float:
        """Current playback position in seconds."""
        if self._started_at is None:
            return 0.0
        now = self._paused_at if self._paused_at is not None else self._clock()
        return max(0.0, now - self._started_at - self._paused_total)

    @property
    def paused(self) -> bool:
        return self._paused_at is not None

    @property
    def ended(self) -> bool:
        if self._capture is None:
            return True
        return self._duration is not None and self.position >= self._duration

    async def capture(self) -> CanonicalImage:
        """Return the canonical frame at the current playback position."""
        return await asyncio.to_thread(self._read_frame, self.position)

    def _read_frame(self, position: float) -> CanonicalImage:
        with self._lock:
            if self._capture is None:
                raise OSError(f"Video {self.location} is closed")
            self._capture.set(cv2.CAP_PROP_POS_MSEC, position * 1000.0)
            ok, frame = self._capture.read()
        if not ok or frame is None:
            raise InvalidImageError(f"No frame at {position:.2f}s in {self.location}")
        rgb = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
        return canonicalize_frame(rgb, self.size)

    def close(self) -> None:
        with self._lock:
            if self._capture is not None:
                self._capture.release()
                self._capture = None

    def __enter__(self) -> "VideoFileFrames":
        if self._capture is None:
            self.open()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
