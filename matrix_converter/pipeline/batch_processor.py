# pipeline/batch_processor.py
"""
Batch orchestrator: run the pipeline over every item of a BatchJob, isolate
failures per item, and pack the successes into one zip archive.
"""
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import List, Optional, Sequence, Union
import logging
import uuid

from tqdm import tqdm

from .. import config
from ..models.batch import (
    BatchItem, BatchItemResult, BatchJob, BatchResult, BatchStatus, Failure, Success,
)
from ..models.effect_settings import EffectSettings
from ..models.errors import BatchFatal, BatchItemFailure, ImageProcessingError, InvalidInput
from ..repositories.archive_repository import ArchiveRepository
from .effect_pipeline import EffectPipeline, default_pipeline

logger = logging.getLogger(__name__)


def _process_item(pipeline: EffectPipeline, item: BatchItem, job: BatchJob) -> BatchItemResult:
    """One item, start to finish.  Never raises."""
    try:
        encoded = pipeline.convert(item.data, item.filename, job.settings,
                                   job.output_format, job.quality, item.mime_type)
        return BatchItemResult(item.id, item.filename, Success(encoded.data, encoded.filename))
    except Exception as err:  # one bad item must not take the batch down
        failure = BatchItemFailure(item.id, err)
        if isinstance(err, ImageProcessingError):
            logger.warning(f"Batch item {item.filename} failed: {failure.reason}")
        else:
            logger.exception(f"Unexpected error on batch item {item.filename}")
        return BatchItemResult(item.id, item.filename, Failure(failure.reason, error=failure))


def run_batch(
    job: BatchJob,
    *,
    pipeline: Optional[EffectPipeline] = None,
    archive_repository: Optional[ArchiveRepository] = None,
    max_workers: int = config.BATCH_MAX_WORKERS,
    max_items: int = config.MAX_BATCH_ITEMS,
    show_progress: bool = False,
) -> BatchResult:
    """
    Results come back in input order regardless of completion order.
    Status: COMPLETED (all ok), PARTIAL_FAILURE (mixed), FATAL (none ok or
    archive assembly failed).
    """
    pipeline = pipeline or default_pipeline()
    archive_repository = archive_repository or ArchiveRepository()

    if len(job.items) > max_items:
        raise InvalidInput(f"Batch has {len(job.items)} items, limit is {max_items}")
    job.settings.validate()

    logger.info(f"Processing batch of {len(job.items)} images → {job.output_format}")
    results: List[Optional[BatchItemResult]] = [None] * len(job.items)

    with ThreadPoolExecutor(max_workers=max(1, max_workers)) as pool:
        futures = {
            pool.submit(_process_item, pipeline, item, job): index
            for index, item in enumerate(job.items)
        }
        done = as_completed(futures)
        if show_progress:
            done = tqdm(done, total=len(futures), desc="convert", ncols=70)
        for future in done:
            results[futures[future]] = future.result()

    ordered: List[BatchItemResult] = list(results)
    successes = [r for r in ordered if r.ok]
    failures = [r for r in ordered if not r.ok]

    if not successes:
        logger.error(f"Batch failed: 0 of {len(ordered)} images converted")
        return BatchResult(BatchStatus.FATAL, ordered, message="No image in the batch could be converted")

    try:
        archive = archive_repository.build(
            (r.outcome.member_name, r.outcome.data) for r in successes
        )
    except BatchFatal as err:
        logger.error(f"Batch archive failed: {err}")
        return BatchResult(BatchStatus.FATAL, ordered, message=str(err))

    status = BatchStatus.COMPLETED if not failures else BatchStatus.PARTIAL_FAILURE
    logger.info(f"Batch {status.value}: {len(successes)} converted, {len(failures)} failed")
    return BatchResult(status, ordered, archive=archive,
                       message=f"{len(successes)} of {len(ordered)} images converted")


def process_batch(
    sources: Sequence[Union[bytes, BatchItem]],
    settings: EffectSettings = EffectSettings(),
    *,
    filenames: Optional[Sequence[str]] = None,
    output_format: str = config.DEFAULT_OUTPUT_FORMAT,
    quality: int = config.DEFAULT_QUALITY,
    **kwargs,
) -> BatchResult:
    """
    Convenience wrapper: raw bytes (plus optional filenames) → BatchJob → run_batch.
    """
    items = []
    for index, source in enumerate(sources):
        if isinstance(source, BatchItem):
            items.append(source)
            continue
        name = filenames[index] if filenames else f"image-{index + 1}"
        items.append(BatchItem(id=uuid.uuid4().hex, filename=name, data=source))
    job = BatchJob(items=items, settings=settings, output_format=output_format, quality=quality)
    return run_batch(job, **kwargs)


def raise_for_status(result: BatchResult) -> BatchResult:
    if result.status is BatchStatus.FATAL:
        raise BatchFatal(result.message, failures=result.failures)
    return result
