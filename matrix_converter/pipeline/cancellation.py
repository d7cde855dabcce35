import threading

from ..models.errors import PreviewCancelled


class CancellationToken:
    """
    Cooperative cancellation flag.  The pipeline calls ``check()`` between
    stages; nothing is interrupted mid-stage.
    """

    def __init__(self, generation: int = 0):
        self.generation = generation
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def check(self) -> None:
        if self._event.is_set():
            raise PreviewCancelled(f"Preview generation {self.generation} was superseded")


NEVER_CANCELLED = CancellationToken(-1)
