from typing import Optional, Tuple
import logging
import math

import cv2
import numpy as np

from ..models.errors import InvalidInput
from ..models.raster_buffer import RasterBuffer
from . import compositing

logger = logging.getLogger(__name__)


def rotation_matrix(width: int, height: int, degrees: float,
                    scale_x: float = 1.0, scale_y: float = 1.0) -> np.ndarray:
    """
    2×3 forward matrix: translate to centre, rotate clockwise, scale, translate back.
    Pixel centres sit on integer coordinates, so the centre is ((w-1)/2, (h-1)/2).
    """
    theta = math.radians(degrees)
    cos, sin = math.cos(theta), math.sin(theta)
    a = np.array([[cos, -sin],
                  [sin, cos]], dtype=np.float64) @ np.diag([scale_x, scale_y])
    centre = np.array([(width - 1) / 2.0, (height - 1) / 2.0])
    shift = centre - a @ centre
    return np.hstack([a, shift[:, None]])


def warp_rgba(pixels: np.ndarray, matrix: np.ndarray) -> np.ndarray:
    """
    Bilinear warp into a same-size canvas; uncovered area is transparent.
    Works on premultiplied colour so transparent margins don't bleed black.
    """
    h, w = pixels.shape[:2]
    src = compositing.premultiply(compositing.to_float(pixels))
    warped = cv2.warpAffine(src, matrix, (w, h), flags=cv2.INTER_LINEAR,
                            borderMode=cv2.BORDER_CONSTANT, borderValue=(0, 0, 0, 0))
    return compositing.to_uint8(compositing.unpremultiply(warped))


class GeometryService:
    """Rotate / flip / resize.  Canvas size never changes during rotation."""

    @staticmethod
    def rotate_and_flip(buffer: RasterBuffer, rotation: float = 0,
                        flip_x: bool = False, flip_y: bool = False) -> RasterBuffer:
        if rotation % 360 == 0:
            # exact path: whole turns and pure flips never resample
            if not (flip_x or flip_y):
                return buffer
            pixels = buffer.pixels
            if flip_x:
                pixels = pixels[:, ::-1]
            if flip_y:
                pixels = pixels[::-1, :]
            return RasterBuffer(np.ascontiguousarray(pixels))

        matrix = rotation_matrix(buffer.width, buffer.height, rotation,
                                 -1.0 if flip_x else 1.0,
                                 -1.0 if flip_y else 1.0)
        logger.debug(f"Rotating {buffer.width}x{buffer.height} by {rotation}°")
        return RasterBuffer(warp_rgba(buffer.pixels, matrix))

    @staticmethod
    def target_size(width: int, height: int,
                    target_width: Optional[int], target_height: Optional[int],
                    maintain_aspect_ratio: bool = True) -> Tuple[int, int]:
        """
        Resolve the requested size.  With the aspect ratio locked the width
        drives and the height follows (round(width / ratio)).
        """
        ratio = width / height
        if target_width is None and target_height is None:
            return width, height
        if maintain_aspect_ratio:
            if target_width is not None:
                return target_width, max(1, round(target_width / ratio))
            return max(1, round(target_height * ratio)), target_height
        return target_width or width, target_height or height

    @staticmethod
    def fit_within(width: int, height: int, max_width: int, max_height: int,
                   maintain_aspect_ratio: bool = True) -> Tuple[int, int]:
        """Largest size inside the box; never upscales."""
        if max_width < 1 or max_height < 1:
            raise InvalidInput(f"Bounding box must be positive, got {max_width}x{max_height}")
        if not maintain_aspect_ratio:
            return min(width, max_width), min(height, max_height)

        ratio = width / height
        box_w, box_h = max_width, max_height
        if max_width / max_height > ratio:
            box_w = round(max_height * ratio)
        else:
            box_h = round(max_width / ratio)
        scale = min(1.0, max(box_w, box_h) / max(width, height))
        return max(1, round(width * scale)), max(1, round(height * scale))

    def resize(self, buffer: RasterBuffer, target_width: Optional[int] = None,
               target_height: Optional[int] = None,
               maintain_aspect_ratio: bool = True) -> RasterBuffer:
        w, h = self.target_size(buffer.width, buffer.height,
                                target_width, target_height, maintain_aspect_ratio)
        for value in (w, h):
            if not 1 <= value <= 10000:
                raise InvalidInput(f"Target dimension {value} outside [1, 10000]")
        if (w, h) == (buffer.width, buffer.height):
            return buffer
        shrinking = w * h < buffer.width * buffer.height
        interp = cv2.INTER_AREA if shrinking else cv2.INTER_CUBIC
        logger.debug(f"Resizing {buffer.width}x{buffer.height} → {w}x{h}")
        return RasterBuffer(cv2.resize(buffer.pixels, (w, h), interpolation=interp))

    # ─── cropping ───────────────────────────────────────────────────────
    @staticmethod
    def crop_box(width: int, height: int, x: float, y: float, crop_width: float,
                 crop_height: float, unit: str = "px") -> Tuple[int, int, int, int]:
        """
        Resolve a crop rectangle to (left, top, right, bottom) pixel bounds,
        clamped to the image.  ``unit="%"`` reads every value as a percentage
        of the matching image side.
        """
        if unit not in ("px", "%"):
            raise InvalidInput(f"Crop unit must be 'px' or '%', got {unit!r}")
        if unit == "%":
            x, crop_width = x * width / 100.0, crop_width * width / 100.0
            y, crop_height = y * height / 100.0, crop_height * height / 100.0

        bound_l = round(max(0, x))
        bound_t = round(max(0, y))
        bound_r = round(min(width, x + crop_width))
        bound_b = round(min(height, y + crop_height))
        if bound_r <= bound_l or bound_b <= bound_t:
            raise InvalidInput(f"Crop {crop_width}x{crop_height}{unit} at ({x}, {y}) "
                               f"leaves no pixels of a {width}x{height} image")
        return bound_l, bound_t, bound_r, bound_b

    @staticmethod
    def centred_aspect_box(width: int, height: int, aspect: float) -> Tuple[int, int, int, int]:
        """Largest centred (x, y, w, h) rectangle with ``w / h == aspect``."""
        if aspect <= 0:
            raise InvalidInput(f"Aspect ratio must be positive, got {aspect}")
        if width / height > aspect:
            crop_w, crop_h = max(1, round(height * aspect)), height
        else:
            crop_w, crop_h = width, max(1, round(width / aspect))
        return (width - crop_w) // 2, (height - crop_h) // 2, crop_w, crop_h

    def crop(self, buffer: RasterBuffer, x: float, y: float, width: float, height: float,
             unit: str = "px", aspect: Optional[float] = None) -> RasterBuffer:
        """
        Cut a rectangle out of the buffer.  With ``aspect`` set, the rectangle
        is narrowed around its centre to that width/height ratio first.
        """
        bound_l, bound_t, bound_r, bound_b = self.crop_box(buffer.width, buffer.height,
                                                           x, y, width, height, unit)
        if aspect is not None:
            dx, dy, w, h = self.centred_aspect_box(bound_r - bound_l, bound_b - bound_t, aspect)
            bound_l, bound_t = bound_l + dx, bound_t + dy
            bound_r, bound_b = bound_l + w, bound_t + h
        if (bound_l, bound_t, bound_r, bound_b) == (0, 0, buffer.width, buffer.height):
            return buffer
        logger.debug(f"Cropping {buffer.width}x{buffer.height} to "
                     f"[{bound_l}:{bound_r}, {bound_t}:{bound_b}]")
        return RasterBuffer(np.ascontiguousarray(buffer.pixels[bound_t:bound_b, bound_l:bound_r]))
