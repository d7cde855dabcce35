"""
Float-domain helpers shared by the stages.

Buffers travel between stages as uint8 RGBA; a stage that blends or
resamples converts to float32 in [0, 1] here and back again when done.
"""
import numpy as np


def to_float(pixels: np.ndarray) -> np.ndarray:
    return pixels.astype(np.float32) / 255.0


def to_uint8(pixels: np.ndarray) -> np.ndarray:
    """[0, 1] float → uint8, rounding half to even like a clamped byte array."""
    return np.clip(np.rint(pixels * 255.0), 0, 255).astype(np.uint8)


def premultiply(rgba: np.ndarray) -> np.ndarray:
    out = rgba.copy()
    out[..., :3] *= out[..., 3:4]
    return out


def unpremultiply(rgba: np.ndarray) -> np.ndarray:
    out = rgba.copy()
    alpha = out[..., 3:4]
    np.divide(out[..., :3], alpha, out=out[..., :3], where=alpha > 0)
    out[..., :3] = np.where(alpha > 0, out[..., :3], 0.0)
    return np.clip(out, 0.0, 1.0)


def source_over(dst: np.ndarray, src: np.ndarray) -> np.ndarray:
    """Porter-Duff *source-over* of two straight-alpha float RGBA planes."""
    a_s = src[..., 3:4]
    a_d = dst[..., 3:4]
    a_o = a_s + a_d * (1.0 - a_s)
    c_o = src[..., :3] * a_s + dst[..., :3] * a_d * (1.0 - a_s)
    rgb = np.divide(c_o, a_o, out=np.zeros_like(c_o), where=a_o > 0)
    return np.concatenate([rgb, a_o], axis=-1)


def multiply_fill(dst: np.ndarray, color: np.ndarray, alpha: float) -> np.ndarray:
    """
    Solid ``color`` (float RGB) drawn over ``dst`` with *multiply* blending
    at global ``alpha``, following the W3C separable-blend compositing rule.
    """
    c_b = dst[..., :3]
    a_b = dst[..., 3:4]
    c_s = color.reshape(1, 1, 3).astype(np.float32)
    a_s = np.float32(alpha)

    blended = c_b * c_s
    co = a_s * (1.0 - a_b) * c_s + a_s * a_b * blended + (1.0 - a_s) * a_b * c_b
    a_o = a_s + a_b * (1.0 - a_s)
    rgb = np.divide(co, a_o, out=np.zeros_like(co), where=a_o > 0)
    return np.concatenate([rgb, a_o], axis=-1)


def luminance(rgb: np.ndarray) -> np.ndarray:
    """Rec. 709 luma on the last axis."""
    return rgb[..., 0] * 0.2126 + rgb[..., 1] * 0.7152 + rgb[..., 2] * 0.0722
