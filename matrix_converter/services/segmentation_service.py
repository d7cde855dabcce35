# services/segmentation_service.py
import logging

from ..models.effect_settings import SegmentationParams
from ..models.errors import StageFailure
from ..models.raster_buffer import RasterBuffer
from ..repositories.segmentation_repository import SegmentationRepository

logger = logging.getLogger(__name__)


class SegmentationService:
    """
    Business-level background removal: mask → alpha channel.
    The mask lives only for the duration of one call.
    """

    def __init__(self) -> None:
        self.repo = SegmentationRepository()

    def remove_background(self, buffer: RasterBuffer, params: SegmentationParams = SegmentationParams()) -> RasterBuffer:
        """
        Returns a new buffer whose alpha is the refined foreground mask;
        RGB is untouched.
        """
        if buffer.pixels.size == 0:
            raise StageFailure("Cannot segment an empty buffer")
        params.validate()
        mask = self.repo.retrieve_mask(buffer.pixels, params)
        logger.debug(
            f"Segmented {buffer.width}x{buffer.height}: "
            f"{(mask == 255).mean() * 100:.1f}% solid foreground"
        )
        return buffer.with_alpha(mask)
