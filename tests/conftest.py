from io import BytesIO

import numpy as np
import pytest
from PIL import Image as PILImage

from matrix_converter.models.raster_buffer import RasterBuffer


def encode_png(pixels: np.ndarray) -> bytes:
    mode = "RGBA" if pixels.shape[2] == 4 else "RGB"
    out = BytesIO()
    PILImage.fromarray(pixels.astype(np.uint8), mode=mode).save(out, format="PNG")
    return out.getvalue()


def solid(width: int, height: int, rgb, alpha: int = 255) -> RasterBuffer:
    pixels = np.zeros((height, width, 4), dtype=np.uint8)
    pixels[..., :3] = rgb
    pixels[..., 3] = alpha
    return RasterBuffer(pixels)


@pytest.fixture
def gradient() -> RasterBuffer:
    """16×12 opaque buffer with distinct values in every pixel."""
    h, w = 12, 16
    ys, xs = np.mgrid[0:h, 0:w]
    pixels = np.zeros((h, w, 4), dtype=np.uint8)
    pixels[..., 0] = xs * 15
    pixels[..., 1] = ys * 20
    pixels[..., 2] = (xs + ys) * 7
    pixels[..., 3] = 255
    return RasterBuffer(pixels)


@pytest.fixture
def gradient_png(gradient) -> bytes:
    return encode_png(gradient.pixels)


@pytest.fixture
def png_factory():
    def make(width=8, height=6, rgb=(200, 50, 50), alpha=255) -> bytes:
        return encode_png(solid(width, height, rgb, alpha).pixels)
    return make
