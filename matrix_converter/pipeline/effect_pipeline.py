# pipeline/effect_pipeline.py
"""
Pipeline executor: one source + one EffectSettings → one RasterResult.

Stage order is fixed and not commutative:
    resize (only when target dimensions are set)
    → geometry → pixelate → emboss → colour filters → tint
    → background removal (when requested)
    → advanced effects.
"""
from typing import Optional
import logging

from .. import config
from ..models.effect_settings import EffectSettings, SegmentationParams
from ..models.watermark_settings import WatermarkSettings
from ..models.raster_buffer import EncodedImage, ProcessingHistory, RasterBuffer, RasterResult
from ..services.advanced_effects_service import AdvancedEffectsService
from ..services.filter_service import FilterService
from ..services.geometry_service import GeometryService
from ..services.image_service import ImageService
from ..services.segmentation_service import SegmentationService
from ..services.stylize_service import StylizeService
from ..services.watermark_service import Stamp, WatermarkService
from .cancellation import CancellationToken, NEVER_CANCELLED

logger = logging.getLogger(__name__)


class EffectPipeline:
    """Wires the stage services together; holds no per-image state."""

    def __init__(
        self,
        *,
        image_service: Optional[ImageService] = None,
        geometry_service: Optional[GeometryService] = None,
        stylize_service: Optional[StylizeService] = None,
        filter_service: Optional[FilterService] = None,
        segmentation_service: Optional[SegmentationService] = None,
        advanced_effects_service: Optional[AdvancedEffectsService] = None,
        watermark_service: Optional[WatermarkService] = None,
    ):
        self.image_service = image_service or ImageService()
        self.geometry = geometry_service or GeometryService()
        self.stylize = stylize_service or StylizeService()
        self.filters = filter_service or FilterService()
        self.segmentation = segmentation_service or SegmentationService()
        self.advanced = advanced_effects_service or AdvancedEffectsService()
        self.watermarks = watermark_service or WatermarkService(self.image_service.image_repository)

    # ─── core ───────────────────────────────────────────────────────────
    def run(
        self,
        buffer: RasterBuffer,
        settings: EffectSettings,
        token: CancellationToken = NEVER_CANCELLED,
    ) -> RasterResult:
        settings.validate()
        history = ProcessingHistory()
        history.append(f"Source: {buffer.width}x{buffer.height}")

        if settings.has_resize:
            token.check()
            buffer = self.geometry.resize(buffer, settings.target_width, settings.target_height,
                                          settings.maintain_aspect_ratio)
            history.record("resize", width=buffer.width, height=buffer.height)

        if settings.rotation % 360 != 0 or settings.flip_x or settings.flip_y:
            token.check()
            buffer = self.geometry.rotate_and_flip(buffer, settings.rotation,
                                                   settings.flip_x, settings.flip_y)
            history.record("geometry", rotation=settings.rotation,
                           flip_x=settings.flip_x, flip_y=settings.flip_y)

        if settings.pixelate > 1:
            token.check()
            buffer = self.stylize.pixelate(buffer, settings.pixelate)
            history.record("pixelate", block=settings.pixelate)

        if settings.emboss:
            token.check()
            buffer = self.stylize.emboss(buffer)
            history.record("emboss")

        if not self.filters.is_neutral(settings):
            token.check()
            buffer = self.filters.apply_color_filters(buffer, settings)
            history.record("color_filters", brightness=settings.brightness,
                           contrast=settings.contrast, blur=settings.blur,
                           saturation=settings.saturation, sepia=settings.sepia,
                           hue_rotate=settings.hue_rotate, invert=settings.invert,
                           grayscale=settings.grayscale)

        if settings.has_tint:
            token.check()
            buffer = self.filters.apply_tint(buffer, settings.tint_color, settings.tint_intensity)
            history.record("tint", color=settings.tint_color, intensity=settings.tint_intensity)

        if settings.remove_background:
            token.check()
            seg = settings.segmentation
            buffer = self.segmentation.remove_background(buffer, seg)
            history.record("remove_background", threshold=seg.threshold, tolerance=seg.tolerance,
                           smoothing_passes=seg.smoothing_passes, feather_radius=seg.feather_radius)

        buffer = self.advanced.apply_all(buffer, settings, history, checkpoint=token.check)
        token.check()
        return RasterResult(buffer=buffer, history=history)

    # ─── conceptual API ─────────────────────────────────────────────────
    def process_image(self, source: bytes, settings: EffectSettings,
                      mime_type: Optional[str] = None) -> RasterResult:
        """Decode → run.  Raises InvalidInput / DecodeFailure / StageFailure."""
        buffer = self.image_service.decode(source, mime_type)
        return self.run(buffer, settings)

    def remove_background(self, source: bytes, params: SegmentationParams = SegmentationParams(),
                          mime_type: Optional[str] = None) -> RasterResult:
        buffer = self.image_service.decode(source, mime_type)
        history = ProcessingHistory()
        history.append(f"Source: {buffer.width}x{buffer.height}")
        out = self.segmentation.remove_background(buffer, params)
        history.record("remove_background", threshold=params.threshold, tolerance=params.tolerance,
                       smoothing_passes=params.smoothing_passes, feather_radius=params.feather_radius)
        return RasterResult(buffer=out, history=history)

    def watermark(self, source: bytes, settings: WatermarkSettings, stamp: Optional[Stamp] = None,
                  mime_type: Optional[str] = None) -> RasterResult:
        buffer = self.image_service.decode(source, mime_type)
        history = ProcessingHistory()
        history.append(f"Source: {buffer.width}x{buffer.height}")
        out = self.watermarks.apply(buffer, settings, stamp, history)
        return RasterResult(buffer=out, history=history)

    def crop(self, source: bytes, x: float, y: float, width: float, height: float,
             unit: str = "px", aspect: Optional[float] = None,
             mime_type: Optional[str] = None) -> RasterResult:
        buffer = self.image_service.decode(source, mime_type)
        history = ProcessingHistory()
        history.append(f"Source: {buffer.width}x{buffer.height}")
        out = self.geometry.crop(buffer, x, y, width, height, unit, aspect)
        history.record("crop", width=out.width, height=out.height)
        return RasterResult(buffer=out, history=history)

    def convert(self, source: bytes, filename: str, settings: EffectSettings,
                fmt: str = config.DEFAULT_OUTPUT_FORMAT, quality: int = config.DEFAULT_QUALITY,
                mime_type: Optional[str] = None) -> EncodedImage:
        """Single conversion: process + encode, named ``<base>-converted.<ext>``."""
        result = self.process_image(source, settings, mime_type)
        return self.image_service.encode(result.buffer, fmt, quality,
                                         filename=self.image_service.converted_filename(filename, fmt))


_default_pipeline: Optional[EffectPipeline] = None


def default_pipeline() -> EffectPipeline:
    global _default_pipeline
    if _default_pipeline is None:
        _default_pipeline = EffectPipeline()
    return _default_pipeline


def process_image(source: bytes, settings: EffectSettings, mime_type: Optional[str] = None) -> RasterResult:
    return default_pipeline().process_image(source, settings, mime_type)


def remove_background(source: bytes, params: SegmentationParams = SegmentationParams(),
                      mime_type: Optional[str] = None) -> RasterResult:
    return default_pipeline().remove_background(source, params, mime_type)
