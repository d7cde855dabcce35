# pipeline/preview_scheduler.py
"""
Debounced, cancellable live preview.

Every ``schedule()`` call becomes the single pending request (older pending
requests are dropped, the in-flight one is asked to stop at its next stage
boundary).  One worker thread waits out the quiet period, runs the pipeline
and commits the result only if nothing newer has been scheduled meanwhile.
"""
from typing import Callable, Optional, Union
import logging
import threading
import time

from .. import config
from ..models.effect_settings import EffectSettings
from ..models.errors import PreviewCancelled
from ..models.raster_buffer import RasterBuffer, RasterResult
from .cancellation import CancellationToken
from .effect_pipeline import EffectPipeline, default_pipeline

logger = logging.getLogger(__name__)

PreviewCallback = Callable[["PreviewHandle", RasterResult], None]
ErrorCallback = Callable[["PreviewHandle", BaseException], None]


class PreviewHandle:
    """Caller-side view of one scheduled preview."""

    def __init__(self, generation: int, settings: EffectSettings):
        self.generation = generation
        self.settings = settings
        self.token = CancellationToken(generation)
        self._finished = threading.Event()
        self._result: Optional[RasterResult] = None
        self._error: Optional[BaseException] = None

    def cancel(self) -> None:
        self.token.cancel()

    @property
    def cancelled(self) -> bool:
        return self.token.cancelled

    def done(self) -> bool:
        return self._finished.is_set()

    def result(self, timeout: Optional[float] = None) -> RasterResult:
        """Block until committed.  Raises PreviewCancelled if superseded."""
        if not self._finished.wait(timeout):
            raise TimeoutError(f"Preview {self.generation} not ready after {timeout}s")
        if self._error is not None:
            raise self._error
        return self._result

    # worker side
    def _resolve(self, result: Optional[RasterResult] = None,
                 error: Optional[BaseException] = None) -> None:
        self._result, self._error = result, error
        self._finished.set()

    def __repr__(self) -> str:
        state = "done" if self.done() else "cancelled" if self.cancelled else "pending"
        return f"<PreviewHandle gen={self.generation} {state}>"


class PreviewScheduler:
    def __init__(
        self,
        source: Union[RasterBuffer, bytes],
        on_preview: Optional[PreviewCallback] = None,
        on_error: Optional[ErrorCallback] = None,
        debounce_ms: int = config.PREVIEW_DEBOUNCE_MS,
        pipeline: Optional[EffectPipeline] = None,
    ):
        self.pipeline = pipeline or default_pipeline()
        if isinstance(source, (bytes, bytearray)):
            source = self.pipeline.image_service.decode(bytes(source))
        self.source: RasterBuffer = source
        self.on_preview = on_preview
        self.on_error = on_error
        self.debounce = max(0, debounce_ms) / 1000.0

        self.lock = threading.Lock()
        self._wakeup = threading.Condition(self.lock)
        self.current_generation = 0
        self.pending_request: Optional[PreviewHandle] = None
        self._due_at = 0.0
        self._running: Optional[PreviewHandle] = None
        self._latest: Optional[RasterResult] = None
        self._closed = False

        self._worker = threading.Thread(target=self._run, name="preview-worker", daemon=True)
        self._worker.start()

    # ─── caller API ─────────────────────────────────────────────────────
    def schedule(self, settings: EffectSettings) -> PreviewHandle:
        """Queue a preview; supersedes every earlier request."""
        settings.validate()
        with self.lock:
            if self._closed:
                raise RuntimeError("PreviewScheduler is closed")
            self.current_generation += 1
            handle = PreviewHandle(self.current_generation, settings)
            self._drop_pending()
            self._supersede(self._running)
            self.pending_request = handle
            self._due_at = time.monotonic() + self.debounce
            self._wakeup.notify()
        logger.debug(f"Preview {handle.generation} scheduled")
        return handle

    @property
    def latest(self) -> Optional[RasterResult]:
        with self.lock:
            return self._latest

    def close(self, timeout: Optional[float] = None) -> None:
        with self.lock:
            self._closed = True
            self._drop_pending()
            self._supersede(self._running)
            self._wakeup.notify()
        self._worker.join(timeout)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    # ─── worker ─────────────────────────────────────────────────────────
    def _drop_pending(self) -> None:
        """Resolve a never-started request as cancelled.  Caller holds the lock."""
        request, self.pending_request = self.pending_request, None
        if request is not None:
            request.cancel()
            request._resolve(error=PreviewCancelled(f"Preview {request.generation} was superseded"))

    @staticmethod
    def _supersede(handle: Optional[PreviewHandle]) -> None:
        if handle is None or handle.done():
            return
        handle.cancel()

    def _next_request(self) -> Optional[PreviewHandle]:
        """Block until a request has been quiet for the debounce period."""
        with self.lock:
            while True:
                if self._closed:
                    return None
                if self.pending_request is None:
                    self._wakeup.wait()
                    continue
                remaining = self._due_at - time.monotonic()
                if remaining > 0:
                    self._wakeup.wait(remaining)
                    continue
                request, self.pending_request = self.pending_request, None
                self._running = request
                return request

    def _run(self) -> None:
        while True:
            request = self._next_request()
            if request is None:
                break
            if request.cancelled:
                self._finish(request, error=PreviewCancelled(f"Preview {request.generation} was cancelled"))
                continue
            try:
                result = self.pipeline.run(self.source, request.settings, request.token)
            except PreviewCancelled as err:
                logger.debug(f"Preview {request.generation} cancelled")
                self._finish(request, error=err)
                continue
            except Exception as err:
                logger.error(f"Preview {request.generation} failed: {err}")
                self._finish(request, error=err)
                with self.lock:
                    current = request.generation == self.current_generation
                if current and self.on_error is not None:
                    self._notify(self.on_error, request, err)
                continue

            if self._commit(request, result) and self.on_preview is not None:
                self._notify(self.on_preview, request, result)

    @staticmethod
    def _notify(callback, request: PreviewHandle, payload) -> None:
        """Run a caller callback; its failures must not stop the worker."""
        try:
            callback(request, payload)
        except Exception:
            logger.exception(f"Preview {request.generation} callback raised")

    def _commit(self, request: PreviewHandle, result: RasterResult) -> bool:
        with self.lock:
            self._running = None
            if request.cancelled or request.generation != self.current_generation:
                stale = True
            else:
                self._latest = result
                stale = False
        if stale:
            request.cancel()
            request._resolve(error=PreviewCancelled(f"Preview {request.generation} was superseded"))
            logger.debug(f"Dropped stale preview {request.generation}")
            return False
        request._resolve(result=result)
        logger.debug(f"Committed preview {request.generation}")
        return True

    def _finish(self, request: Optional[PreviewHandle], error: BaseException) -> None:
        if request is None:
            return
        with self.lock:
            if self._running is request:
                self._running = None
        request._resolve(error=error)
