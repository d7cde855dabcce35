"""
matrix-batch: convert a folder of images with one set of effects into a
single zip archive.

    matrix-batch photos/ --preset Matrix --format webp --quality 85
"""
import argparse
import json
import logging
import sys
import uuid
from pathlib import Path

from .. import config
from ..models.batch import BatchItem, BatchJob, BatchStatus
from ..models.effect_settings import EffectSettings
from ..models.errors import ImageProcessingError
from ..pipeline.batch_processor import run_batch
from ..services.image_service import ImageService
from ..services.preset_service import PresetService

logger = logging.getLogger(__name__)

EXIT_CODES = {
    BatchStatus.COMPLETED: 0,
    BatchStatus.PARTIAL_FAILURE: 1,
    BatchStatus.FATAL: 2,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="matrix-batch", description=__doc__.strip().splitlines()[0])
    parser.add_argument("input_dir", type=Path, help="folder of images to convert")
    parser.add_argument("--settings", type=Path, help="JSON file with effect settings")
    parser.add_argument("--preset", help="named effect preset (Matrix, Cyberpunk, Noir, Vintage)")
    parser.add_argument("--format", default=config.DEFAULT_OUTPUT_FORMAT, dest="output_format")
    parser.add_argument("--quality", type=int, default=config.DEFAULT_QUALITY)
    parser.add_argument("--output", type=Path, default=Path(config.BATCH_ARCHIVE_NAME))
    parser.add_argument("--recursive", action="store_true")
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser


def load_settings(path, preset) -> EffectSettings:
    settings = EffectSettings()
    if path is not None:
        with open(path, "r", encoding="utf-8") as fh:
            settings = EffectSettings.from_dict(json.load(fh))
    if preset:
        settings = PresetService.apply_preset(settings, preset)
    return settings


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    # --- Centralized Logging Configuration ---
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else config.LOG_LEVEL,
        format=config.LOG_FORMAT,
        datefmt=config.LOG_DATEFMT,
    )

    image_service = ImageService()
    try:
        settings = load_settings(args.settings, args.preset)
        paths = list(image_service.stream_folder(args.input_dir, recursive=args.recursive))
    except (ImageProcessingError, OSError, ValueError) as e:
        logger.error(f"Cannot start batch: {e}")
        return EXIT_CODES[BatchStatus.FATAL]

    if not paths:
        logger.error(f"No images found in {args.input_dir}")
        return EXIT_CODES[BatchStatus.FATAL]
    if len(paths) > config.MAX_BATCH_ITEMS:
        logger.warning(f"{len(paths)} images found, only the first {config.MAX_BATCH_ITEMS} are converted")
        paths = paths[:config.MAX_BATCH_ITEMS]

    items = [BatchItem(id=uuid.uuid4().hex, filename=p.name, data=image_service.read_bytes(p))
             for p in paths]
    job = BatchJob(items=items, settings=settings,
                   output_format=args.output_format, quality=args.quality)

    try:
        result = run_batch(job, show_progress=True)
    except ImageProcessingError as e:
        logger.error(f"Batch rejected: {e}")
        return EXIT_CODES[BatchStatus.FATAL]

    for failed in result.failures:
        logger.warning(f"  ✗ {failed.filename}: {failed.outcome.reason}")

    if result.archive is not None:
        args.output.parent.mkdir(parents=True, exist_ok=True)
        args.output.write_bytes(result.archive)
        print(f"\n{len(result.successes)}/{len(result.results)} images → {args.output}")
    else:
        print(f"\nBatch failed: {result.message}")

    return EXIT_CODES[result.status]


if __name__ == "__main__":
    sys.exit(main())
