import json

import pandas as pd

from image_ad_detector.io.models import DetectionRecord
from image_ad_detector.io.outputs import RESULT_COLUMNS, results_frame, write_results

RECORDS = [
    DetectionRecord("banner.png", "image", True, "stake"),
    DetectionRecord("https://example.com/post", "page", False),
    DetectionRecord("https://example.com/down", "page", False, error="fetch failed"),
]


def test_results_frame_columns():
    frame = results_frame(RECORDS)
    assert list(frame.columns) == RESULT_COLUMNS
    assert frame["is_ad"].tolist() == [True, False, False]
    assert results_frame([]).empty


def test_write_json(tmp_path):
    path = write_results(tmp_path / "nested" / "results.json", RECORDS)
    rows = json.loads(path.read_text(encoding="utf-8"))
    assert rows[0] == {
        "source": "banner.png",
        "media": "image",
        "is_ad": True,
        "company": "stake",
        "error": None,
    }
    assert rows[2]["error"] == "fetch failed"


def test_write_csv(tmp_path):
    path = write_results(tmp_path / "results.csv", RECORDS)
    frame = pd.read_csv(path)
    assert frame["source"].tolist() == [record.source for record in RECORDS]
    assert frame.loc[0, "company"] == "stake"


def test_write_parquet(tmp_path):
    path = write_results(tmp_path / "results.parquet", RECORDS)
    frame = pd.read_parquet(path)
    assert frame.shape == (3, len(RESULT_COLUMNS))
    assert frame.loc[0, "company"] == "stake"
    assert bool(frame.loc[0, "is_ad"])
