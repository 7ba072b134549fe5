"""Output helpers for persisting detection results."""

from __future__ import annotations

import json
from dataclasses import asdict
from pathlib import Path
from typing import Sequence

import pandas as pd

from .models import DetectionRecord

RESULT_COLUMNS = ["source", "media", "is_ad", "company", "error"]


def results_frame(records: Sequence[DetectionRecord]) -> pd.DataFrame:
    """Return *records* as a DataFrame with a stable column order."""
    return pd.DataFrame([asdict(record) for record in records], columns=RESULT_COLUMNS)


def write_results(path: Path, records: Sequence[DetectionRecord]) -> Path:
    """Write *records* to *path*; the suffix selects Parquet, CSV or JSON."""
    path.parent.mkdir(parents=True, exist_ok=True)
    suffix = path.suffix.lower()
    if suffix == ".parquet":
        results_frame(records).to_parquet(path, index=False, engine="pyarrow")
    elif suffix == ".csv":
        results_frame(records).to_csv(path, index=False)
    else:
        serialised = [asdict(record) for record in records]
        path.write_text(json.dumps(serialised, indent=2), encoding="utf-8")
    return path
