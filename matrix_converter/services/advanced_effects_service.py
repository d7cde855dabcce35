from __future__ import annotations
from typing import Callable, Optional
import logging
import math

import cv2
import numpy as np

from ..models.effect_settings import EffectSettings, parse_color
from ..models.raster_buffer import ProcessingHistory, RasterBuffer
from . import compositing
from .geometry_service import rotation_matrix, warp_rgba

logger = logging.getLogger(__name__)

# independent streams so toggling one random effect never reshuffles the other
_NOISE_STREAM = 1
_GLITCH_STREAM = 2


class AdvancedEffectsService:
    """
    Procedural effects, applied in a fixed order:
    noise → kaleidoscope → mirror → color splash → glitch → gamma →
    color balance → split toning → duotone.
    """

    def apply_all(
        self,
        buffer: RasterBuffer,
        settings: EffectSettings,
        history: Optional[ProcessingHistory] = None,
        checkpoint: Callable[[], None] = lambda: None,
    ) -> RasterBuffer:
        history = history if history is not None else ProcessingHistory()
        steps = (
            (settings.noise_amount > 0, "noise",
             lambda b: self.add_noise(b, settings.noise_amount, settings.seed),
             {"amount": settings.noise_amount}),
            (settings.kaleidoscope_segments > 0, "kaleidoscope",
             lambda b: self.kaleidoscope(b, settings.kaleidoscope_segments),
             {"segments": settings.kaleidoscope_segments}),
            (settings.mirror, "mirror",
             lambda b: self.mirror(b, settings.mirror_axis),
             {"axis": settings.mirror_axis}),
            (settings.color_splash, "color_splash",
             lambda b: self.color_splash(b, settings.target_hue, settings.hue_tolerance),
             {"target_hue": settings.target_hue, "tolerance": settings.hue_tolerance}),
            (settings.glitch_intensity > 0, "glitch",
             lambda b: self.glitch(b, settings.glitch_intensity, settings.seed),
             {"intensity": settings.glitch_intensity}),
            (settings.gamma != 1, "gamma",
             lambda b: self.gamma(b, settings.gamma),
             {"gamma": settings.gamma}),
            (not settings.color_balance.is_neutral, "color_balance",
             lambda b: self.color_balance(b, settings.color_balance.r,
                                          settings.color_balance.g, settings.color_balance.b),
             {"r": settings.color_balance.r, "g": settings.color_balance.g,
              "b": settings.color_balance.b}),
            (settings.split_toning, "split_toning",
             lambda b: self.split_toning(b, settings.highlight_color, settings.shadow_color),
             {"highlight": settings.highlight_color, "shadow": settings.shadow_color}),
            (settings.duotone, "duotone",
             lambda b: self.duotone(b, settings.duotone_highlight, settings.duotone_shadow),
             {"highlight": settings.duotone_highlight, "shadow": settings.duotone_shadow}),
        )
        for enabled, name, effect, params in steps:
            if not enabled:
                continue
            checkpoint()
            logger.debug(f"Applying {name} {params}")
            buffer = effect(buffer)
            history.record(name, **params)
        return buffer

    # ─── individual effects ─────────────────────────────────────────────
    @staticmethod
    def add_noise(buffer: RasterBuffer, amount: float, seed: int) -> RasterBuffer:
        """
        Uniform grain in [-amount/2, +amount/2]; one sample per pixel,
        added to R, G and B alike.
        """
        rng = np.random.default_rng([seed, _NOISE_STREAM])
        noise = (rng.random((buffer.height, buffer.width), dtype=np.float32) - 0.5) * amount
        rgb = buffer.pixels[..., :3].astype(np.float32) + noise[..., None]
        out = buffer.pixels.copy()
        out[..., :3] = np.clip(np.rint(rgb), 0, 255).astype(np.uint8)
        return RasterBuffer(out)

    @staticmethod
    def kaleidoscope(buffer: RasterBuffer, segments: int) -> RasterBuffer:
        """
        ``segments`` copies rotated by i·360/segments about the centre, each
        drawn over the previous ones, then the stack drawn over the buffer.
        """
        w, h = buffer.width, buffer.height
        step = 360.0 / segments
        layer = np.zeros((h, w, 4), dtype=np.float32)
        for i in range(segments):
            if i == 0:
                copy = buffer.pixels
            else:
                copy = warp_rgba(buffer.pixels, rotation_matrix(w, h, step * i))
            layer = compositing.source_over(layer, compositing.to_float(copy))
        out = compositing.source_over(compositing.to_float(buffer.pixels), layer)
        return RasterBuffer(compositing.to_uint8(out))

    @staticmethod
    def mirror(buffer: RasterBuffer, axis: str = "vertical") -> RasterBuffer:
        """
        Reflection drawn over the current image.  ``vertical`` reflects across
        the vertical centre line, ``horizontal`` across the horizontal one,
        ``both`` does vertical then horizontal.  Same-size reflections, so
        nothing falls off the canvas.
        """
        current = compositing.to_float(buffer.pixels)
        if axis in ("vertical", "both"):
            current = compositing.source_over(current, current[:, ::-1])
        if axis in ("horizontal", "both"):
            current = compositing.source_over(current, current[::-1, :])
        return RasterBuffer(compositing.to_uint8(current))

    @staticmethod
    def hue_distance(hue: np.ndarray, target: float) -> np.ndarray:
        """Circular distance on the 360° hue wheel."""
        diff = np.abs(hue - target)
        return np.minimum(diff, 360.0 - diff)

    @classmethod
    def color_splash(cls, buffer: RasterBuffer, target_hue: float, tolerance: float) -> RasterBuffer:
        """Keep pixels whose hue is within ``tolerance`` of ``target_hue``; desaturate the rest."""
        rgb = buffer.pixels[..., :3].astype(np.float32)
        hls = cv2.cvtColor(rgb / 255.0, cv2.COLOR_RGB2HLS)
        outside = cls.hue_distance(hls[..., 0], target_hue) > tolerance

        gray = np.clip(np.rint(compositing.luminance(rgb)), 0, 255).astype(np.uint8)
        out = buffer.pixels.copy()
        for c in range(3):
            out[..., c] = np.where(outside, gray, out[..., c])
        return RasterBuffer(out)

    @staticmethod
    def glitch(buffer: RasterBuffer, intensity: float, seed: int) -> RasterBuffer:
        """
        floor(intensity·5) horizontal slices of height H/20, each redrawn at a
        random horizontal offset in ±intensity·25 px.  Pixels pushed past an
        edge are clipped; the strip left behind keeps its previous pixels.
        """
        rng = np.random.default_rng([seed, _GLITCH_STREAM])
        w, h = buffer.width, buffer.height
        slice_h = max(1, h // 20)
        out = buffer.pixels.copy()
        for _ in range(math.floor(intensity * 5)):
            y = math.floor(rng.random() * h)
            offset = math.floor((rng.random() - 0.5) * intensity * 50)
            if abs(offset) >= w:
                continue
            strip = out[y:y + slice_h].copy()
            if offset >= 0:
                out[y:y + slice_h, offset:] = strip[:, :w - offset]
            else:
                out[y:y + slice_h, :w + offset] = strip[:, -offset:]
        return RasterBuffer(out)

    @staticmethod
    def gamma(buffer: RasterBuffer, gamma: float) -> RasterBuffer:
        if gamma == 1:
            return buffer
        lut = np.clip(np.rint(np.power(np.arange(256) / 255.0, gamma) * 255.0), 0, 255).astype(np.uint8)
        out = buffer.pixels.copy()
        out[..., :3] = lut[buffer.pixels[..., :3]]
        return RasterBuffer(out)

    @staticmethod
    def color_balance(buffer: RasterBuffer, r: int = 0, g: int = 0, b: int = 0) -> RasterBuffer:
        offsets = np.array([r, g, b], dtype=np.int32)
        out = buffer.pixels.copy()
        out[..., :3] = np.clip(buffer.pixels[..., :3].astype(np.int32) + offsets, 0, 255).astype(np.uint8)
        return RasterBuffer(out)

    @staticmethod
    def split_toning(buffer: RasterBuffer, highlight_color: str, shadow_color: str) -> RasterBuffer:
        """50/50 blend with the highlight colour where mean RGB > 0.5, else with the shadow colour."""
        rgb = buffer.pixels[..., :3].astype(np.float32)
        highlight = np.array(parse_color(highlight_color), dtype=np.float32)
        shadow = np.array(parse_color(shadow_color), dtype=np.float32)
        bright = (rgb.sum(axis=-1) / (3 * 255.0)) > 0.5
        tone = np.where(bright[..., None], highlight, shadow)
        out = buffer.pixels.copy()
        out[..., :3] = np.clip(np.rint((rgb + tone) / 2.0), 0, 255).astype(np.uint8)
        return RasterBuffer(out)

    @staticmethod
    def duotone(buffer: RasterBuffer, highlight_color: str, shadow_color: str) -> RasterBuffer:
        """Map luminance onto the shadow → highlight ramp."""
        rgb = buffer.pixels[..., :3].astype(np.float32)
        t = (compositing.luminance(rgb) / 255.0)[..., None]
        highlight = np.array(parse_color(highlight_color), dtype=np.float32)
        shadow = np.array(parse_color(shadow_color), dtype=np.float32)
        out = buffer.pixels.copy()
        out[..., :3] = np.clip(np.rint(shadow * (1.0 - t) + highlight * t), 0, 255).astype(np.uint8)
        return RasterBuffer(out)
