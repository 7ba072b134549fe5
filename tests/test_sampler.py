"""Tests for the video frame sampler state machine.

Timings are scaled down: a 0.2s interval with a 0.5s deadline mirrors the
default 2s/5s budget.
"""

from __future__ import annotations

import asyncio

import pytest

from image_ad_detector.errors import ConfigError, InvalidImageError
from image_ad_detector.io.models import NOT_AD, ClassificationResult
from image_ad_detector.video.sampler import SamplerState, VideoSampler, sample_video

from conftest import make_solid

PLAIN = make_solid((30, 30, 30), size=(16, 16))
AD = make_solid((200, 40, 40), size=(16, 16))
MATCH = ClassificationResult.ad("acme")


def classify_frame(frame):
    return MATCH if frame is AD else NOT_AD


class FakeFrames:
    """Frame source that replays a script of frames (the last one repeats)."""

    def __init__(self, script, delay=0.0):
        self.script = list(script)
        self.delay = delay
        self.captures = 0
        self.in_flight = 0
        self.max_in_flight = 0
        self.ended = False
        self.paused = False
        self.on_capture = None

    async def capture(self):
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            index = min(self.captures, len(self.script) - 1)
            self.captures += 1
            if self.delay:
                await asyncio.sleep(self.delay)
            frame = self.script[index]
            if self.on_capture is not None:
                self.on_capture(self)
            if isinstance(frame, Exception):
                raise frame
            return frame
        finally:
            self.in_flight -= 1


async def test_no_match_times_out_after_three_attempts():
    source = FakeFrames([PLAIN])
    sampler = VideoSampler(source, classify_frame, interval=0.2, deadline=0.5)

    result = await sampler.run()

    assert result == NOT_AD
    assert sampler.state is SamplerState.STOPPED_TIMEOUT
    assert sampler.attempts == 3
    await asyncio.sleep(0.3)
    assert sampler.attempts == 3
    assert source.captures == 3


async def test_match_on_second_tick_stops_immediately():
    source = FakeFrames([PLAIN, PLAIN, AD, AD])
    sampler = VideoSampler(source, classify_frame, interval=0.05, deadline=2.0)

    result = await sampler.run()

    assert result == MATCH
    assert sampler.state is SamplerState.STOPPED_MATCHED
    assert sampler.result == MATCH
    assert sampler.attempts == 3
    await asyncio.sleep(0.15)
    assert source.captures == 3


async def test_first_frame_is_checked_immediately():
    source = FakeFrames([AD])
    loop = asyncio.get_running_loop()
    started = loop.time()
    result = await sample_video(source, classify_frame, interval=5.0, deadline=10.0)
    assert result == MATCH
    assert loop.time() - started < 1.0


async def test_ended_video_stops_before_timeout():
    source = FakeFrames([PLAIN])

    def end_playback(frames):
        frames.ended = True

    source.on_capture = end_playback
    sampler = VideoSampler(source, classify_frame, interval=0.05, deadline=2.0)

    result = await sampler.run()

    assert result == NOT_AD
    assert result.company is None
    assert sampler.state is SamplerState.STOPPED_ENDED
    assert sampler.attempts == 1


async def test_paused_video_counts_as_ended():
    source = FakeFrames([PLAIN, AD])
    source.paused = True
    sampler = VideoSampler(source, classify_frame, interval=0.05, deadline=2.0)

    assert await sampler.run() == NOT_AD
    assert sampler.state is SamplerState.STOPPED_ENDED


async def test_frame_failures_do_not_end_sampling():
    source = FakeFrames([InvalidImageError("black frame"), RuntimeError("decoder"), AD])
    sampler = VideoSampler(source, classify_frame, interval=0.05, deadline=2.0)

    assert await sampler.run() == MATCH
    assert sampler.attempts == 3


async def test_slow_frames_never_overlap():
    source = FakeFrames([PLAIN], delay=0.12)
    sampler = VideoSampler(source, classify_frame, interval=0.05, deadline=0.5)

    assert await sampler.run() == NOT_AD
    assert sampler.state is SamplerState.STOPPED_TIMEOUT
    assert source.max_in_flight == 1
    assert sampler.attempts <= 5


async def test_cancel_stops_sampling():
    source = FakeFrames([PLAIN])
    sampler = VideoSampler(source, classify_frame, interval=0.05, deadline=5.0)

    task = asyncio.ensure_future(sampler.run())
    await asyncio.sleep(0.12)
    sampler.cancel()
    result = await task
    attempts = sampler.attempts

    assert result == NOT_AD
    assert sampler.state is SamplerState.STOPPED_CANCELLED
    await asyncio.sleep(0.15)
    assert sampler.attempts == attempts


async def test_cancelling_the_caller_propagates():
    source = FakeFrames([PLAIN])
    sampler = VideoSampler(source, classify_frame, interval=0.05, deadline=5.0)

    task = asyncio.ensure_future(sampler.run())
    await asyncio.sleep(0.07)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    assert sampler.state is SamplerState.STOPPED_CANCELLED


async def test_cancel_before_start_is_terminal():
    sampler = VideoSampler(FakeFrames([PLAIN]), classify_frame)
    sampler.cancel()
    assert sampler.state is SamplerState.STOPPED_CANCELLED
    with pytest.raises(RuntimeError):
        await sampler.run()


async def test_run_can_only_be_awaited_once():
    sampler = VideoSampler(FakeFrames([AD]), classify_frame, interval=0.05, deadline=1.0)
    assert await sampler.run() == MATCH
    with pytest.raises(RuntimeError):
        await sampler.run()
    assert sampler.result == MATCH


@pytest.mark.parametrize("interval, deadline", [(0, 1.0), (1.0, 0), (-1.0, 1.0)])
def test_budget_must_be_positive(interval, deadline):
    with pytest.raises(ConfigError):
        VideoSampler(FakeFrames([PLAIN]), classify_frame, interval=interval, deadline=deadline)
