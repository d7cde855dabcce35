import threading

import numpy as np
import pytest

from matrix_converter.models.effect_settings import EffectSettings
from matrix_converter.models.errors import PreviewCancelled, StageFailure
from matrix_converter.models.raster_buffer import RasterResult
from matrix_converter.pipeline.effect_pipeline import EffectPipeline
from matrix_converter.pipeline.preview_scheduler import PreviewScheduler


class GatedPipeline(EffectPipeline):
    """Blocks every run until released so tests can interleave submissions."""

    def __init__(self):
        super().__init__()
        self.started = threading.Event()
        self.release = threading.Event()
        self.runs = []

    def run(self, buffer, settings, token):
        self.runs.append(token.generation)
        self.started.set()
        self.release.wait(5)
        return super().run(buffer, settings, token)


class FailingPipeline(EffectPipeline):
    def run(self, buffer, settings, token):
        raise StageFailure("boom")


def test_only_the_last_burst_submission_is_computed(gradient):
    previews = []
    pipeline = GatedPipeline()
    pipeline.release.set()
    with PreviewScheduler(gradient, lambda h, r: previews.append(h.generation),
                          debounce_ms=80, pipeline=pipeline) as scheduler:
        handles = [scheduler.schedule(EffectSettings(brightness=b)) for b in (90, 110, 130)]
        final = handles[-1].result(timeout=5)

        for stale in handles[:-1]:
            with pytest.raises(PreviewCancelled):
                stale.result(timeout=5)
            assert stale.cancelled

    assert pipeline.runs == [3]
    assert previews == [3]
    assert isinstance(final, RasterResult)


def test_in_flight_preview_is_superseded(gradient):
    pipeline = GatedPipeline()
    scheduler = PreviewScheduler(gradient, debounce_ms=0, pipeline=pipeline)
    try:
        first = scheduler.schedule(EffectSettings(sepia=10))
        assert pipeline.started.wait(5)
        second = scheduler.schedule(EffectSettings(sepia=90))
        pipeline.release.set()

        with pytest.raises(PreviewCancelled):
            first.result(timeout=5)
        result = second.result(timeout=5)
        assert scheduler.latest is result
    finally:
        scheduler.close(timeout=5)


def test_committed_preview_matches_direct_run(gradient):
    settings = EffectSettings(invert=True, pixelate=2)
    with PreviewScheduler(gradient, debounce_ms=0) as scheduler:
        result = scheduler.schedule(settings).result(timeout=5)
    expected = EffectPipeline().run(gradient, settings)
    assert np.array_equal(result.buffer.pixels, expected.buffer.pixels)


def test_failure_keeps_previous_preview(gradient):
    errors = []
    with PreviewScheduler(gradient, debounce_ms=0) as scheduler:
        good = scheduler.schedule(EffectSettings(sepia=20)).result(timeout=5)
        scheduler.pipeline = FailingPipeline()
        scheduler.on_error = lambda h, exc: errors.append((h.generation, exc))

        bad = scheduler.schedule(EffectSettings(sepia=40))
        with pytest.raises(StageFailure):
            bad.result(timeout=5)
        assert scheduler.latest is good

    assert len(errors) == 1 and errors[0][0] == bad.generation


def test_caller_cancel(gradient):
    with PreviewScheduler(gradient, debounce_ms=200) as scheduler:
        handle = scheduler.schedule(EffectSettings(sepia=20))
        handle.cancel()
        with pytest.raises(PreviewCancelled):
            handle.result(timeout=5)
        assert scheduler.latest is None


def test_closed_scheduler_refuses_work(gradient):
    scheduler = PreviewScheduler(gradient, debounce_ms=0)
    scheduler.close(timeout=5)
    with pytest.raises(RuntimeError):
        scheduler.schedule(EffectSettings())


class FirstRunFails(GatedPipeline):
    """Generation 1 blocks until released, then fails; later ones succeed."""

    def run(self, buffer, settings, token):
        if token.generation == 1:
            self.started.set()
            self.release.wait(5)
            raise StageFailure("late failure")
        return EffectPipeline.run(self, buffer, settings, token)


def test_raising_callback_does_not_stop_the_worker(gradient):
    calls = []

    def on_preview(handle, result):
        calls.append(handle.generation)
        if handle.generation == 1:
            raise RuntimeError("display went away")

    with PreviewScheduler(gradient, on_preview, debounce_ms=0) as scheduler:
        scheduler.schedule(EffectSettings(sepia=10)).result(timeout=5)
        second = scheduler.schedule(EffectSettings(sepia=20)).result(timeout=5)
        assert scheduler.latest is second

    assert calls == [1, 2]


def test_raising_error_callback_does_not_stop_the_worker(gradient):
    def on_error(handle, exc):
        raise RuntimeError("error sink broken")

    with PreviewScheduler(gradient, on_error=on_error, debounce_ms=0) as scheduler:
        scheduler.pipeline = FailingPipeline()
        with pytest.raises(StageFailure):
            scheduler.schedule(EffectSettings(sepia=10)).result(timeout=5)
        scheduler.pipeline = EffectPipeline()
        assert isinstance(scheduler.schedule(EffectSettings(sepia=20)).result(timeout=5), RasterResult)


def test_superseded_failure_is_not_reported(gradient):
    errors = []
    pipeline = FirstRunFails()
    scheduler = PreviewScheduler(gradient, on_error=lambda h, exc: errors.append(h.generation),
                                 debounce_ms=0, pipeline=pipeline)
    try:
        first = scheduler.schedule(EffectSettings(sepia=10))
        assert pipeline.started.wait(5)
        second = scheduler.schedule(EffectSettings(sepia=90))
        pipeline.release.set()

        with pytest.raises(StageFailure):
            first.result(timeout=5)
        assert isinstance(second.result(timeout=5), RasterResult)
    finally:
        scheduler.close(timeout=5)

    assert errors == []
