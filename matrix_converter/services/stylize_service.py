import logging

import cv2
import numpy as np

from ..models.raster_buffer import RasterBuffer

logger = logging.getLogger(__name__)

EMBOSS_FACTOR = 2


class StylizeService:
    """Pixelation (mosaic) and horizontal emboss."""

    @staticmethod
    def pixelate(buffer: RasterBuffer, block: int) -> RasterBuffer:
        """
        Area-average down to 1/block scale, nearest-neighbour back up.
        block=1 is a no-op.
        """
        if block <= 1:
            return buffer
        w, h = buffer.width, buffer.height
        small_w = max(1, int(w / block))
        small_h = max(1, int(h / block))
        small = cv2.resize(buffer.pixels, (small_w, small_h), interpolation=cv2.INTER_AREA)
        return RasterBuffer(cv2.resize(small, (w, h), interpolation=cv2.INTER_NEAREST))

    @staticmethod
    def emboss(buffer: RasterBuffer, factor: int = EMBOSS_FACTOR) -> RasterBuffer:
        """
        out = 128 + factor * (cur - prev), walking each row left to right.
        ``prev`` is the left neighbour's already-embossed value; column 0 is
        left as is and rows never wrap.  Alpha is untouched.
        """
        src = buffer.pixels[..., :3].astype(np.int32)
        out = src.copy()
        for x in range(1, buffer.width):
            out[:, x] = np.clip(128 + factor * (src[:, x] - out[:, x - 1]), 0, 255)

        pixels = buffer.pixels.copy()
        pixels[..., :3] = out.astype(np.uint8)
        return RasterBuffer(pixels)
