from __future__ import annotations
import logging
import math

import cv2
import numpy as np

from ..models.effect_settings import EffectSettings, parse_color
from ..models.raster_buffer import RasterBuffer
from . import compositing

logger = logging.getLogger(__name__)


# ─── Filter-effect colour matrices (amount in [0, 1]) ────────────────────
def saturate_matrix(s: float) -> np.ndarray:
    return np.array([
        [0.213 + 0.787 * s, 0.715 - 0.715 * s, 0.072 - 0.072 * s],
        [0.213 - 0.213 * s, 0.715 + 0.285 * s, 0.072 - 0.072 * s],
        [0.213 - 0.213 * s, 0.715 - 0.715 * s, 0.072 + 0.928 * s],
    ], dtype=np.float32)


def sepia_matrix(amount: float) -> np.ndarray:
    k = 1.0 - min(1.0, amount)
    return np.array([
        [0.393 + 0.607 * k, 0.769 - 0.769 * k, 0.189 - 0.189 * k],
        [0.349 - 0.349 * k, 0.686 + 0.314 * k, 0.168 - 0.168 * k],
        [0.272 - 0.272 * k, 0.534 - 0.534 * k, 0.131 + 0.869 * k],
    ], dtype=np.float32)


def grayscale_matrix(amount: float) -> np.ndarray:
    k = 1.0 - min(1.0, amount)
    return np.array([
        [0.2126 + 0.7874 * k, 0.7152 - 0.7152 * k, 0.0722 - 0.0722 * k],
        [0.2126 - 0.2126 * k, 0.7152 + 0.2848 * k, 0.0722 - 0.0722 * k],
        [0.2126 - 0.2126 * k, 0.7152 - 0.7152 * k, 0.0722 + 0.9278 * k],
    ], dtype=np.float32)


def apply_matrix(rgb: np.ndarray, matrix: np.ndarray) -> np.ndarray:
    return np.clip(rgb @ matrix.T, 0.0, 1.0)


def rotate_hue(rgb: np.ndarray, degrees: float) -> np.ndarray:
    """Shift H in HSL space, keep S and L."""
    hls = cv2.cvtColor(np.ascontiguousarray(rgb, dtype=np.float32), cv2.COLOR_RGB2HLS)
    hls[..., 0] = np.mod(hls[..., 0] + degrees, 360.0)
    return np.clip(cv2.cvtColor(hls, cv2.COLOR_HLS2RGB), 0.0, 1.0)


def gaussian_blur(rgba: np.ndarray, radius: float) -> np.ndarray:
    """Blur in premultiplied space so transparent pixels don't darken edges."""
    pre = compositing.premultiply(rgba)
    blurred = cv2.GaussianBlur(pre, (0, 0), sigmaX=float(radius), sigmaY=float(radius))
    return compositing.unpremultiply(blurred)


class FilterService:
    """
    The colour-filter chain and the tint overlay.

    Chain order is fixed: brightness → contrast → blur → saturate → sepia →
    hue-rotate → invert → grayscale.  Neutral steps are skipped entirely, so a
    neutral chain hands back the input untouched.
    """

    @staticmethod
    def is_neutral(settings: EffectSettings) -> bool:
        return (settings.brightness == 100 and settings.contrast == 100
                and settings.blur == 0 and settings.saturation == 100
                and settings.sepia == 0 and settings.hue_rotate % 360 == 0
                and not settings.invert and not settings.grayscale)

    def apply_color_filters(self, buffer: RasterBuffer, settings: EffectSettings) -> RasterBuffer:
        if self.is_neutral(settings):
            return buffer

        rgba = compositing.to_float(buffer.pixels)
        rgb = rgba[..., :3]

        if settings.brightness != 100:
            rgb = np.clip(rgb * (settings.brightness / 100.0), 0.0, 1.0)

        if settings.contrast != 100:
            k = settings.contrast / 100.0
            rgb = np.clip((rgb - 0.5) * k + 0.5, 0.0, 1.0)

        if settings.blur > 0:
            rgba = gaussian_blur(np.concatenate([rgb, rgba[..., 3:4]], axis=-1), settings.blur)
            rgb = rgba[..., :3]

        if settings.saturation != 100:
            rgb = apply_matrix(rgb, saturate_matrix(settings.saturation / 100.0))

        if settings.sepia > 0:
            rgb = apply_matrix(rgb, sepia_matrix(settings.sepia / 100.0))

        if settings.hue_rotate % 360 != 0:
            rgb = rotate_hue(rgb, settings.hue_rotate)

        if settings.invert:
            rgb = 1.0 - rgb

        if settings.grayscale:
            rgb = apply_matrix(rgb, grayscale_matrix(1.0))

        out = np.concatenate([rgb, rgba[..., 3:4]], axis=-1)
        return RasterBuffer(compositing.to_uint8(out))

    @staticmethod
    def apply_tint(buffer: RasterBuffer, tint_color: str, tint_intensity: float) -> RasterBuffer:
        """Solid fill of ``tint_color`` multiplied over the buffer at intensity/100 alpha."""
        if tint_color.lower() == "none" or tint_intensity <= 0:
            return buffer
        color = np.array(parse_color(tint_color), dtype=np.float32) / 255.0
        alpha = min(1.0, tint_intensity / 100.0)
        out = compositing.multiply_fill(compositing.to_float(buffer.pixels), color, alpha)
        return RasterBuffer(compositing.to_uint8(out))

    # ─── extra primitives used by the smart filters ─────────────────────
    @staticmethod
    def shift_temperature_tint(buffer: RasterBuffer, temperature: float = 0,
                               tint: float = 0) -> RasterBuffer:
        """
        temperature: R += 2t, B -= 2t.   tint: G += 2k, R -= k, B -= k.
        """
        if not temperature and not tint:
            return buffer
        rgb = buffer.pixels[..., :3].astype(np.float32)
        rgb[..., 0] += 2 * temperature - tint
        rgb[..., 1] += 2 * tint
        rgb[..., 2] += -2 * temperature - tint
        out = buffer.pixels.copy()
        out[..., :3] = np.clip(np.rint(rgb), 0, 255).astype(np.uint8)
        return RasterBuffer(out)

    @staticmethod
    def apply_vignette(buffer: RasterBuffer, strength: float) -> RasterBuffer:
        """
        Radial gradient, transparent at the centre → black at strength/100
        alpha at radius max(W, H) / 1.5, drawn over the image.
        """
        if strength <= 0:
            return buffer
        h, w = buffer.height, buffer.width
        radius = max(w, h) / 1.5
        ys, xs = np.mgrid[0:h, 0:w].astype(np.float32)
        dist = np.sqrt((xs + 0.5 - w / 2.0) ** 2 + (ys + 0.5 - h / 2.0) ** 2)
        alpha = np.clip(dist / radius, 0.0, 1.0) * (strength / 100.0)

        overlay = np.zeros((h, w, 4), dtype=np.float32)
        overlay[..., 3] = alpha
        out = compositing.source_over(compositing.to_float(buffer.pixels), overlay)
        return RasterBuffer(compositing.to_uint8(out))
