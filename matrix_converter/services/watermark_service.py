from typing import Optional, Tuple, Union
import logging

import numpy as np
from PIL import Image as PILImage, ImageDraw, ImageFont

from ..models.effect_settings import parse_color
from ..models.errors import InvalidInput
from ..models.raster_buffer import ProcessingHistory, RasterBuffer
from ..models.watermark_settings import WatermarkSettings
from ..repositories.image_repository import ImageRepository
from . import compositing

logger = logging.getLogger(__name__)

Stamp = Union[bytes, RasterBuffer]


class WatermarkService:
    """
    Stamps text or a logo onto an image.  The stamp is rendered on its own
    transparent tile, rotated, faded and placed at one of five anchors, then
    laid over the picture with source-over.
    """

    def __init__(self, image_repository: Optional[ImageRepository] = None):
        self.image_repository = image_repository or ImageRepository()

    # ─── tiles ──────────────────────────────────────────────────────────
    @staticmethod
    def render_text(text: str, color: str, font_size: int) -> PILImage.Image:
        font = ImageFont.load_default(size=font_size)
        left, top, right, bottom = font.getbbox(text)
        r, g, b = parse_color(color)
        # transparent pixels carry the text colour so resampling leaves no dark fringe
        tile = PILImage.new("RGBA", (max(1, right - left), max(1, bottom - top)), (r, g, b, 0))
        ImageDraw.Draw(tile).text((-left, -top), text, font=font, fill=(r, g, b, 255))
        return tile

    def logo_tile(self, stamp: Stamp, canvas_w: int, canvas_h: int) -> PILImage.Image:
        """Decoded logo, shrunk so its longer side is at most a quarter of the canvas' shorter side."""
        buffer = stamp if isinstance(stamp, RasterBuffer) else self.image_repository.decode(stamp)
        tile = self.image_repository.to_pil(buffer)
        max_size = min(canvas_w, canvas_h) / 4
        if tile.width > max_size or tile.height > max_size:
            scale = max_size / max(tile.width, tile.height)
            size = (max(1, round(tile.width * scale)), max(1, round(tile.height * scale)))
            tile = tile.convert("RGBa").resize(size, PILImage.LANCZOS).convert("RGBA")
        return tile

    @staticmethod
    def anchor(position: str, canvas: Tuple[int, int], margin: Tuple[float, float]) -> Tuple[float, float]:
        """Centre point of the stamp for a named position."""
        w, h = canvas
        mx, my = margin
        return {
            "topLeft": (mx, my),
            "topRight": (w - mx, my),
            "bottomLeft": (mx, h - my),
            "bottomRight": (w - mx, h - my),
        }.get(position, (w / 2, h / 2))

    # ─── stage ──────────────────────────────────────────────────────────
    def apply(self, buffer: RasterBuffer, settings: WatermarkSettings,
              stamp: Optional[Stamp] = None,
              history: Optional[ProcessingHistory] = None) -> RasterBuffer:
        settings.validate()
        if settings.kind == "text":
            if not settings.text:
                return buffer
            tile = self.render_text(settings.text, settings.text_color, settings.font_size)
            margin = (settings.font_size, settings.font_size)
        else:
            if stamp is None:
                raise InvalidInput("Image watermark needs a stamp image")
            tile = self.logo_tile(stamp, buffer.width, buffer.height)
            margin = (tile.width / 2, tile.height / 2)

        cx, cy = self.anchor(settings.position, (buffer.width, buffer.height), margin)
        if settings.angle % 360:
            # PIL turns counter-clockwise; premultiplied mode keeps edges clean
            tile = tile.convert("RGBa").rotate(-settings.angle, resample=PILImage.BICUBIC,
                                               expand=True).convert("RGBA")

        layer = PILImage.new("RGBA", (buffer.width, buffer.height), (0, 0, 0, 0))
        layer.paste(tile, (round(cx - tile.width / 2), round(cy - tile.height / 2)))
        src = compositing.to_float(np.asarray(layer))
        src[..., 3] *= settings.opacity

        out = compositing.source_over(compositing.to_float(buffer.pixels), src)
        if history is not None:
            history.record("watermark", kind=settings.kind, position=settings.position,
                           opacity=settings.opacity, angle=settings.angle)
        logger.debug(f"Applied {settings.kind} watermark at {settings.position}")
        return RasterBuffer(compositing.to_uint8(out))
