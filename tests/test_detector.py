import asyncio
import threading
import time
from io import BytesIO

import pytest
from PIL import Image

from image_ad_detector.config import DetectorConfig
from image_ad_detector.detector import AdDetector
from image_ad_detector.io.models import NOT_AD, ClassificationResult, PageMedia, ReferenceSet
from image_ad_detector.video.frames import VideoFileFrames

from conftest import CANDIDATE_COLOR, make_banded, make_solid


def _references():
    return ReferenceSet.from_mapping(
        {
            "normal": [make_solid((0, 0, 0)), make_solid((255, 255, 255))],
            "acme": [make_banded(CANDIDATE_COLOR, 60)],
        }
    )


def _png_bytes(color, size=(64, 48)) -> bytes:
    buf = BytesIO()
    Image.new("RGB", size, color).save(buf, format="PNG")
    return buf.getvalue()


class CountingLoader:
    def __init__(self, references=None, error=None):
        self.references = references
        self.error = error
        self.calls = 0
        self._lock = threading.Lock()

    def load(self):
        with self._lock:
            self.calls += 1
        time.sleep(0.05)
        if self.error is not None:
            raise self.error
        return self.references


class StillFrames:
    ended = False
    paused = False

    def __init__(self, frame):
        self.frame = frame

    async def capture(self):
        return self.frame


@pytest.fixture
def config():
    return DetectorConfig(advertisers=("acme",), frame_interval=0.05, frame_deadline=0.3)


async def test_concurrent_initialize_loads_once(config):
    loader = CountingLoader(_references())
    detector = AdDetector(config, loader=loader)

    results = await asyncio.gather(*(detector.initialize() for _ in range(5)))

    assert loader.calls == 1
    assert all(result is results[0] for result in results)
    assert detector.ready
    await detector.initialize()
    assert loader.calls == 1


async def test_classify_before_initialize_waits_for_references(config):
    detector = AdDetector(config, loader=CountingLoader(_references()))
    assert not detector.ready

    result = await detector.classify_image(make_solid(CANDIDATE_COLOR))

    assert result == ClassificationResult.ad("acme")


async def test_failed_load_degrades_to_not_ad(config, caplog):
    detector = AdDetector(config, loader=CountingLoader(error=RuntimeError("offline")))

    result = await detector.classify_image(make_solid(CANDIDATE_COLOR))

    assert result == NOT_AD
    assert detector.ready
    assert len(detector.references) == 0
    assert "Failed to load reference images" in caplog.text


async def test_detector_without_references_reports_not_ad():
    detector = AdDetector()
    assert await detector.classify_image(make_solid(CANDIDATE_COLOR)) == NOT_AD


async def test_classify_pil_image_is_canonicalized(config):
    detector = AdDetector.from_references(_references(), config)
    image = Image.new("RGB", (37, 91), CANDIDATE_COLOR)

    assert await detector.classify_image(image) == ClassificationResult.ad("acme")


async def test_normal_match_wins(config):
    detector = AdDetector.from_references(_references(), config)
    assert await detector.classify_image(make_solid((0, 0, 0))) == NOT_AD


async def test_undecodable_bytes_are_not_ad(config):
    detector = AdDetector.from_references(_references(), config)
    assert await detector.classify_bytes(b"definitely not an image") == NOT_AD
    assert await detector.classify_bytes(b"") == NOT_AD


async def test_classify_bytes(config):
    detector = AdDetector.from_references(_references(), config)
    result = await detector.classify_bytes(_png_bytes(CANDIDATE_COLOR))
    assert result.to_dict() == {"isAd": True, "company": "acme"}


async def test_zero_area_image_is_not_ad(config):
    detector = AdDetector.from_references(_references(), config)
    assert await detector.classify_image(Image.new("RGB", (0, 10))) == NOT_AD


async def test_classify_location_missing_file(config, tmp_path):
    detector = AdDetector.from_references(_references(), config)
    assert await detector.classify_location(str(tmp_path / "missing.png")) == NOT_AD


async def test_predict_uses_first_loadable_image(config, tmp_path):
    ad_path = tmp_path / "ad.png"
    ad_path.write_bytes(_png_bytes(CANDIDATE_COLOR))
    plain_path = tmp_path / "plain.png"
    plain_path.write_bytes(_png_bytes((0, 0, 0)))
    detector = AdDetector.from_references(_references(), config)

    media = PageMedia(
        image_urls=[str(tmp_path / "missing.png"), str(ad_path), str(plain_path)],
        video_urls=["never-sampled.mp4"],
    )
    assert await detector.predict(media) == ClassificationResult.ad("acme")

    media = PageMedia(image_urls=[str(plain_path), str(ad_path)])
    assert await detector.predict(media) == NOT_AD


async def test_predict_falls_back_to_first_video(config, monkeypatch):
    detector = AdDetector.from_references(_references(), config)
    sampled = []

    async def fake_check(location):
        sampled.append(location)
        return ClassificationResult.ad("acme")

    monkeypatch.setattr(detector, "check_video_location", fake_check)

    result = await detector.predict(PageMedia(video_urls=["first.mp4", "second.mp4"]))

    assert result == ClassificationResult.ad("acme")
    assert sampled == ["first.mp4"]


async def test_predict_empty_page(config):
    detector = AdDetector.from_references(_references(), config)
    assert await detector.predict(PageMedia()) == NOT_AD


async def test_check_video_matches_frame(config):
    detector = AdDetector.from_references(_references(), config)
    result = await detector.check_video(StillFrames(make_solid(CANDIDATE_COLOR)))
    assert result == ClassificationResult.ad("acme")


async def test_check_video_times_out_on_plain_frames(config):
    detector = AdDetector.from_references(_references(), config)
    loop = asyncio.get_running_loop()
    started = loop.time()

    result = await detector.check_video(StillFrames(make_solid((90, 20, 160))))

    assert result == NOT_AD
    assert loop.time() - started < 1.0


async def test_check_video_location_unreadable(config, tmp_path):
    detector = AdDetector.from_references(_references(), config)
    bogus = tmp_path / "clip.mp4"
    bogus.write_bytes(b"not a video")
    assert await detector.check_video_location(str(bogus)) == NOT_AD


async def test_classify_location_with_unusable_path(config):
    detector = AdDetector.from_references(_references(), config)
    assert await detector.classify_location("bad\x00path.png") == NOT_AD


async def test_predict_skips_image_that_raises(config, tmp_path):
    ad_path = tmp_path / "ad.png"
    ad_path.write_bytes(_png_bytes(CANDIDATE_COLOR))
    detector = AdDetector.from_references(_references(), config)

    media = PageMedia(image_urls=["bad\x00path.png", str(ad_path)])
    assert await detector.predict(media) == ClassificationResult.ad("acme")


async def test_unexpected_decode_error_is_not_ad(config, monkeypatch):
    def explode(*args, **kwargs):
        raise RuntimeError("decoder crashed")

    monkeypatch.setattr("image_ad_detector.detector.canonicalize_bytes", explode)
    detector = AdDetector.from_references(_references(), config)
    assert await detector.classify_bytes(_png_bytes(CANDIDATE_COLOR)) == NOT_AD


async def test_check_video_location_unexpected_open_error(config, monkeypatch):
    def explode(self):
        raise RuntimeError("backend crashed")

    monkeypatch.setattr(VideoFileFrames, "open", explode)
    detector = AdDetector.from_references(_references(), config)
    assert await detector.check_video_location("clip.mp4") == NOT_AD
