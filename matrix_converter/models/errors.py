class ImageProcessingError(Exception):
    """Base class for every failure raised by the conversion engine."""


class InvalidInput(ImageProcessingError, ValueError):
    """Unsupported MIME type, oversize payload, zero dimensions or out-of-range settings."""


class DecodeFailure(ImageProcessingError):
    """Source bytes could not be decoded into a raster."""


class StageFailure(ImageProcessingError):
    """A stage received degenerate input (e.g. a zero-area buffer)."""


class EncodeFailure(ImageProcessingError):
    """The target format rejected the pixel data or the quality parameter."""


class PreviewCancelled(ImageProcessingError):
    """A preview computation was superseded by a newer submission."""


class BatchItemFailure(ImageProcessingError):
    """Wraps the failure of one batch item."""

    def __init__(self, item_id: str, cause: Exception):
        super().__init__(f"{item_id}: {cause}")
        self.item_id = item_id
        self.cause = cause

    @property
    def reason(self) -> str:
        return f"{type(self.cause).__name__}: {self.cause}"


class BatchFatal(ImageProcessingError):
    """Every batch item failed, or the archive could not be assembled."""

    def __init__(self, message: str, failures=None):
        super().__init__(message)
        self.failures = list(failures or [])
