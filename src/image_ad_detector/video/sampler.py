"""Periodic classification of video frames under a time budget."""

from __future__ import annotations

import asyncio
import enum
import logging
from typing import Callable, Protocol

from ..config import DEFAULT_FRAME_DEADLINE, DEFAULT_FRAME_INTERVAL
from ..errors import ConfigError
from ..io.models import NOT_AD, CanonicalImage, ClassificationResult

logger = logging.getLogger(__name__)

FrameClassifier = Callable[[CanonicalImage], ClassificationResult]


class FrameSource(Protocol):
    """A playing video that can hand out its current frame."""

    @property
    def ended(self) -> bool: ...

    @property
    def paused(self) -> bool: ...

    async def capture(self) -> CanonicalImage: ...


class SamplerState(enum.Enum):
    IDLE = "idle"
    SAMPLING = "sampling"
    STOPPED_MATCHED = "stopped-matched"
    STOPPED_TIMEOUT = "stopped-timeout"
    STOPPED_ENDED = "stopped-ended"
    STOPPED_CANCELLED = "stopped-cancelled"

    @property
    def terminal(self) -> bool:
        return self not in (SamplerState.IDLE, SamplerState.SAMPLING)


class VideoSampler:
    """Classify frames of *source* until a match, the end of playback or the deadline.

    The first frame is checked as soon as :meth:`run` starts, then one frame per
    *interval* seconds. Frames are processed one at a time; a tick that falls
    due while a frame is still being processed is skipped. After *deadline*
    seconds the sampler gives up and reports not-ad.
    """

    def __init__(
        self,
        source: FrameSource,
        classify_frame: FrameClassifier,
        interval: float = DEFAULT_FRAME_INTERVAL,
        deadline: float = DEFAULT_FRAME_DEADLINE,
    ) -> None:
        if interval <= 0 or deadline <= 0:
            raise ConfigError("interval and deadline must be positive")
        self._source = source
        self._classify_frame = classify_frame
        self._interval = float(interval)
        self._deadline = float(deadline)
        self._state = SamplerState.IDLE
        self._result: ClassificationResult | None = None
        self._attempts = 0
        self._task: asyncio.Task[ClassificationResult] | None = None
        self._cancel_requested = False

    @property
    def state(self) -> SamplerState:
        return self._state

    @property
    def attempts(self) -> int:
        """Number of frames handed to the classifier so far."""
        return self._attempts

    @property
    def result(self) -> ClassificationResult | None:
        return self._result

    async def run(self) -> ClassificationResult:
        """Sample until a terminal state is reached and return its result."""
        if self._state is not SamplerState.IDLE:
            raise RuntimeError("VideoSampler.run() may only be awaited once")

        self._state = SamplerState.SAMPLING
        self._task = asyncio.ensure_future(self._sample())
        try:
            return await asyncio.wait_for(self._task, timeout=self._deadline)
        except asyncio.TimeoutError:
            logger.debug("Video sampling timed out after %.1fs", self._deadline)
            return self._finish(SamplerState.STOPPED_TIMEOUT, NOT_AD)
        except asyncio.CancelledError:
            self._finish(SamplerState.STOPPED_CANCELLED, NOT_AD)
            current = asyncio.current_task()
            if self._cancel_requested and (current is None or not current.cancelling()):
                return NOT_AD
            raise
        finally:
            self._task = None

    def cancel(self) -> None:
        """Stop sampling; no further frames are classified."""
        self._cancel_requested = True
        if self._task is not None:
            self._task.cancel()
        elif not self._state.terminal:
            self._finish(SamplerState.STOPPED_CANCELLED, NOT_AD)

    async def _sample(self) -> ClassificationResult:
        loop = asyncio.get_running_loop()
        started = loop.time()

        result = await self._check_frame()
        if result.is_ad:
            return self._finish(SamplerState.STOPPED_MATCHED, result)

        tick = 0
        while True:
            tick += 1
            now = loop.time()
            missed = int((now - started) // self._interval)
            if missed >= tick:
                logger.debug("Skipping %d overdue frame ticks", missed - tick + 1)
                tick = missed + 1
            await asyncio.sleep(started + tick * self._interval - now)

            if self._source.ended or self._source.paused:
                return self._finish(SamplerState.STOPPED_ENDED, NOT_AD)

            result = await self._check_frame()
            if result.is_ad:
                return self._finish(SamplerState.STOPPED_MATCHED, result)

    async def _check_frame(self) -> ClassificationResult:
        self._attempts += 1
        try:
            frame = await self._source.capture()
            return self._classify_frame(frame)
        except Exception:  # noqa: BLE001 - a bad frame must not end the session
            logger.warning("Video frame check #%d failed", self._attempts, exc_info=True)
            return NOT_AD

    def _finish(self, state: SamplerState, result: ClassificationResult) -> ClassificationResult:
        if self._state.terminal:
            return self._result or NOT_AD
        self._state = state
        self._result = result
        logger.debug(
            "Video sampler stopped (%s) after %d frames: %s",
            state.value,
            self._attempts,
            result.to_dict(),
        )
        return result


async def sample_video(
    source: FrameSource,
    classify_frame: FrameClassifier,
    interval: float = DEFAULT_FRAME_INTERVAL,
    deadline: float = DEFAULT_FRAME_DEADLINE,
) -> ClassificationResult:
    """Run a :class:`VideoSampler` over *source* and return its result."""
    return await VideoSampler(source, classify_frame, interval, deadline).run()
