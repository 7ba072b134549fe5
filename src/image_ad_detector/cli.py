"""Command-line interface for the image_ad_detector project."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Any, Iterable
from urllib.parse import urlparse

from .config import DetectorConfig, config_from_mapping, load_config
from .crawl.discover_media import discover_media
from .crawl.fetch import fetch_html, render_page
from .detector import AdDetector
from .errors import ConfigError
from .io.models import DetectionRecord, PageMedia
from .io.outputs import write_results

_VIDEO_EXTENSIONS = {".mp4", ".m4v", ".mov", ".webm", ".mkv", ".avi"}

PageEntry = tuple[str, PageMedia | None]


def parse_args(argv: Iterable[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments for the ad detector."""
    parser = argparse.ArgumentParser(
        description="Classify images, videos and page media as known advertisers' ads."
    )
    parser.add_argument(
        "inputs",
        nargs="*",
        help="Image or video files (or URLs) to classify.",
    )
    parser.add_argument(
        "--references",
        default=None,
        help="Reference image root: a directory or http(s) base URL holding "
        "normal/index.json and ads/<advertiser>/index.json.",
    )
    parser.add_argument(
        "--advertiser",
        action="append",
        default=None,
        metavar="NAME",
        help="Advertiser category to load; repeat to scan several in order.",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to a JSON configuration file.",
    )
    parser.add_argument(
        "--threshold",
        action="append",
        default=None,
        metavar="CATEGORY=VALUE",
        help="Override a category threshold (use 'default' for the fallback).",
    )
    parser.add_argument(
        "--interval",
        type=float,
        default=None,
        help="Seconds between sampled video frames.",
    )
    parser.add_argument(
        "--deadline",
        type=float,
        default=None,
        help="Seconds before video sampling gives up.",
    )
    parser.add_argument(
        "--page",
        action="append",
        default=None,
        metavar="URL",
        help="Fetch a page and classify its media; may be repeated.",
    )
    parser.add_argument(
        "--render",
        action="store_true",
        help="Render pages in a headless browser instead of a plain HTTP fetch.",
    )
    parser.add_argument(
        "--out",
        default=None,
        help="Write results to this path (.json, .csv or .parquet).",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity.",
    )
    return parser.parse_args(list(argv) if argv is not None else None)


def build_config(args: argparse.Namespace) -> DetectorConfig:
    """Combine the optional configuration file with command-line overrides."""
    config = load_config(args.config) if args.config else DetectorConfig()

    overrides: dict[str, Any] = {}
    if args.references:
        overrides["reference_root"] = args.references
    if args.advertiser:
        overrides["advertisers"] = list(args.advertiser)
    if args.threshold:
        overrides["thresholds"] = dict(_parse_threshold(item) for item in args.threshold)
    if args.interval is not None:
        overrides["frame_interval"] = args.interval
    if args.deadline is not None:
        overrides["frame_deadline"] = args.deadline
    return config_from_mapping(overrides, config)


def _parse_threshold(value: str) -> tuple[str, float]:
    category, sep, raw = value.rpartition("=")
    if not sep or not category.strip():
        raise ConfigError(f"Threshold must look like CATEGORY=VALUE, got {value!r}")
    try:
        return category.strip(), float(raw)
    except ValueError as exc:
        raise ConfigError(f"Threshold for {category!r} is not a number: {raw!r}") from exc


def _collect_pages(urls: Iterable[str], render: bool) -> list[PageEntry]:
    """Fetch each page and discover its media before the event loop starts."""
    pages: list[PageEntry] = []
    for url in urls:
        final_url, html = render_page(url) if render else fetch_html(url)
        if not html:
            print(f"[warn] {url}: no HTML content fetched")
            pages.append((url, None))
            continue
        pages.append((url, discover_media(html, final_url or url)))
    return pages


def _is_video(location: str) -> bool:
    path = urlparse(location).path if "://" in location else location
    return Path(path).suffix.lower() in _VIDEO_EXTENSIONS


async def _detect(
    config: DetectorConfig, inputs: list[str], pages: list[PageEntry]
) -> list[DetectionRecord]:
    detector = AdDetector(config)
    await detector.initialize()

    records: list[DetectionRecord] = []
    for location in inputs:
        if _is_video(location):
            result = await detector.check_video_location(location)
            media = "video"
        else:
            result = await detector.classify_location(location)
            media = "image"
        records.append(DetectionRecord(location, media, result.is_ad, result.company))

    for url, page_media in pages:
        if page_media is None:
            records.append(DetectionRecord(url, "page", False, error="fetch failed"))
            continue
        result = await detector.predict(page_media)
        records.append(DetectionRecord(url, "page", result.is_ad, result.company))
    return records


def _print_record(record: DetectionRecord) -> None:
    if record.error:
        print(f"[warn] {record.source}: {record.error}")
    elif record.is_ad:
        print(f"[ad] {record.source} ({record.media}) -> {record.company}")
    else:
        print(f"[ok] {record.source} ({record.media}): not an ad")


def main(argv: Iterable[str] | None = None) -> int:
    """Entry point for the CLI."""
    args = parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        config = build_config(args)
    except ConfigError as exc:
        print(f"[error] {exc}", file=sys.stderr)
        return 2
    if not args.inputs and not args.page:
        print("[error] nothing to classify: pass inputs or --page", file=sys.stderr)
        return 2
    if not config.reference_root:
        print("[warn] no --references given; every input will be reported as not an ad")

    pages = _collect_pages(args.page or [], render=args.render)
    records = asyncio.run(_detect(config, list(args.inputs), pages))
    for record in records:
        _print_record(record)

    ads = sum(1 for record in records if record.is_ad)
    print(f"Classified: {len(records)} (ads {ads})")

    if args.out:
        out_path = write_results(Path(args.out), records)
        print(f"[results] wrote {len(records)} rows to {out_path}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
