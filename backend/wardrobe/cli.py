"""CLI for debugging the image import pipeline.

Usage:
    python -m wardrobe.cli process-image photo.jpg
    python -m wardrobe.cli process-image photo.jpg --no-bg --output-dir /tmp/out
    python -m wardrobe.cli compare a.jpg b.jpg
"""

from __future__ import annotations

import argparse
import shutil
import sys
from pathlib import Path

from wardrobe.config import settings
from wardrobe.logging_setup import configure_logging
from wardrobe.plugins import registry
from wardrobe.services.duplicate_detector import compute_fingerprint, hamming_distance
from wardrobe.services.image_pipeline import CanvasStyle, ImagePipeline, ImageProcessingError
from wardrobe.services.storage import ImageStorage


def process_image(args: argparse.Namespace) -> None:
    source = Path(args.path)
    if not source.is_file():
        print(f"Error: file '{source}' not found")
        sys.exit(1)

    storage = ImageStorage(args.output_dir or settings.UPLOAD_DIR, settings.UPLOAD_URL_PREFIX)
    storage.ensure()
    # Work on a copy so derived files land in the output directory.
    working = storage.path_for(storage.unique_name("cli", source.name))
    shutil.copyfile(source, working)

    background_removal = settings.BG_REMOVAL_ENABLED and not args.no_bg
    segmenter = None
    if background_removal:
        registry.discover()
        segmenter = registry.get("segmenter", settings.BG_REMOVAL_BACKEND)

    pipeline = ImagePipeline(
        storage,
        style=CanvasStyle.from_settings(settings),
        background_removal=background_removal,
        segmenter=segmenter,
    )
    try:
        url = pipeline.process_sync(working)
    except ImageProcessingError as exc:
        print(f"Error: {exc}")
        sys.exit(1)

    print(f"Image URL: {url}")
    print(f"File:      {storage.path_from_url(url)}")


def compare(args: argparse.Namespace) -> None:
    threshold = args.threshold if args.threshold is not None else settings.DUPLICATE_HASH_THRESHOLD
    try:
        first = compute_fingerprint(Path(args.first))
        second = compute_fingerprint(Path(args.second))
    except OSError as exc:
        print(f"Error: {exc}")
        sys.exit(1)

    distance = hamming_distance(first, second)
    print(f"{args.first}: {first:016x}")
    print(f"{args.second}: {second:016x}")
    print(f"Distance: {distance} (threshold {threshold})")
    print(f"Duplicate: {'yes' if distance <= threshold else 'no'}")


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Wardrobe image import tools")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("process-image", help="Run the catalog image pipeline on one file")
    p.add_argument("path")
    p.add_argument("--no-bg", action="store_true", help="Skip background removal")
    p.add_argument("--output-dir", default=None, help="Directory for derived images")
    p.set_defaults(func=process_image)

    p = sub.add_parser("compare", help="Compare two images' perceptual fingerprints")
    p.add_argument("first")
    p.add_argument("second")
    p.add_argument("--threshold", type=int, default=None)
    p.set_defaults(func=compare)

    args = parser.parse_args(argv)
    configure_logging()
    args.func(args)


if __name__ == "__main__":
    main()
