"""Geometry, mosaic, emboss, colour filter chain and tint."""
import numpy as np
import pytest

from matrix_converter.models.effect_settings import EffectSettings
from matrix_converter.models.errors import InvalidInput
from matrix_converter.models.raster_buffer import RasterBuffer
from matrix_converter.services.filter_service import FilterService
from matrix_converter.services.geometry_service import GeometryService
from matrix_converter.services.stylize_service import StylizeService

from conftest import solid


# ─── geometry ──────────────────────────────────────────────────────────
@pytest.mark.parametrize("flip_x, flip_y", [(True, False), (False, True), (True, True)])
def test_flip_twice_is_identity(gradient, flip_x, flip_y):
    geometry = GeometryService()
    once = geometry.rotate_and_flip(gradient, 0, flip_x, flip_y)
    twice = geometry.rotate_and_flip(once, 0, flip_x, flip_y)
    assert not np.array_equal(once.pixels, gradient.pixels)
    assert np.array_equal(twice.pixels, gradient.pixels)


def test_flip_x_mirrors_columns(gradient):
    out = GeometryService.rotate_and_flip(gradient, 0, flip_x=True)
    assert np.array_equal(out.pixels, gradient.pixels[:, ::-1])


def test_full_turn_is_exact(gradient):
    assert GeometryService.rotate_and_flip(gradient, 360).pixels is gradient.pixels


def test_quarter_turn_is_clockwise():
    pixels = np.zeros((3, 3, 4), dtype=np.uint8)
    pixels[..., 3] = 255
    pixels[0, 0, :3] = (255, 0, 0)
    out = GeometryService.rotate_and_flip(RasterBuffer(pixels), 90)
    assert out.pixels.shape == (3, 3, 4)
    # top-left lands top-right
    assert abs(int(out.pixels[0, 2, 0]) - 255) <= 1
    assert out.pixels[0, 0, 0] <= 1


def test_rotation_keeps_canvas_and_clears_corners(gradient):
    out = GeometryService.rotate_and_flip(gradient, 45)
    assert (out.width, out.height) == (gradient.width, gradient.height)
    assert out.alpha[0, 0] == 0
    assert out.alpha[gradient.height // 2, gradient.width // 2] == 255


def test_resize_locks_aspect_ratio(gradient):
    out = GeometryService().resize(gradient, target_width=8)
    assert (out.width, out.height) == (8, 6)


def test_resize_rejects_huge_targets(gradient):
    with pytest.raises(InvalidInput):
        GeometryService().resize(gradient, target_width=20000, maintain_aspect_ratio=False)


def test_fit_within_never_upscales():
    assert GeometryService.fit_within(400, 200, 100, 100) == (100, 50)
    assert GeometryService.fit_within(40, 20, 1920, 1080) == (40, 20)


def test_crop_pixels(gradient):
    out = GeometryService().crop(gradient, 2, 3, 5, 4)
    assert np.array_equal(out.pixels, gradient.pixels[3:7, 2:7])


def test_crop_percent(gradient):
    out = GeometryService().crop(gradient, 50, 0, 50, 50, unit="%")
    assert np.array_equal(out.pixels, gradient.pixels[0:6, 8:16])


def test_crop_clamps_to_image(gradient):
    out = GeometryService().crop(gradient, 10, 8, 100, 100)
    assert np.array_equal(out.pixels, gradient.pixels[8:12, 10:16])


def test_crop_whole_image_is_noop(gradient):
    assert GeometryService().crop(gradient, -5, -5, 40, 40) is gradient


def test_crop_with_aspect_is_centred(gradient):
    out = GeometryService().crop(gradient, 0, 0, 16, 12, aspect=1)
    assert np.array_equal(out.pixels, gradient.pixels[:, 2:14])


@pytest.mark.parametrize("args, unit", [((20, 20, 5, 5), "px"), ((0, 0, 0, 5), "px"), ((0, 0, 5, 5), "em")])
def test_crop_rejects_empty_or_bad_unit(gradient, args, unit):
    with pytest.raises(InvalidInput):
        GeometryService().crop(gradient, *args, unit=unit)


# ─── pixelate / emboss ─────────────────────────────────────────────────
def test_pixelate_one_is_noop(gradient):
    assert StylizeService.pixelate(gradient, 1) is gradient


def test_pixelate_produces_uniform_blocks(gradient):
    out = StylizeService.pixelate(gradient, 4)
    assert out.pixels.shape == gradient.pixels.shape
    for y in range(0, gradient.height, 4):
        for x in range(0, gradient.width, 4):
            block = out.pixels[y:y + 4, x:x + 4].reshape(-1, 4)
            assert (block == block[0]).all()


def test_emboss_uses_already_embossed_left_neighbour():
    pixels = np.zeros((1, 3, 4), dtype=np.uint8)
    pixels[0, :, :3] = np.array([10, 20, 30])[:, None]
    pixels[..., 3] = 200
    out = StylizeService.emboss(RasterBuffer(pixels))
    # 10 kept; 128 + 2·(20-10) = 148; 128 + 2·(30-148) < 0 → 0
    assert out.pixels[0, :, 0].tolist() == [10, 148, 0]
    assert (out.alpha == 200).all()


def test_emboss_rows_are_independent():
    pixels = np.zeros((2, 2, 4), dtype=np.uint8)
    pixels[0, 1, :3] = 60
    pixels[1, 0, :3] = 250
    out = StylizeService.emboss(RasterBuffer(pixels))
    assert out.pixels[1, 0, 0] == 250
    assert out.pixels[0, 1, 0] == 128 + 2 * 60


# ─── colour filters / tint ─────────────────────────────────────────────
def test_neutral_chain_returns_input(gradient):
    assert FilterService().apply_color_filters(gradient, EffectSettings()) is gradient


def test_invert():
    out = FilterService().apply_color_filters(solid(2, 2, (10, 20, 30)), EffectSettings(invert=True))
    assert out.pixels[0, 0, :3].tolist() == [245, 235, 225]


def test_brightness_clamps():
    out = FilterService().apply_color_filters(solid(2, 2, (100, 200, 0)), EffectSettings(brightness=200))
    assert out.pixels[0, 0, :3].tolist() == [200, 255, 0]


def test_grayscale_equalises_channels(gradient):
    out = FilterService().apply_color_filters(gradient, EffectSettings(grayscale=True))
    rgb = out.rgb.astype(int)
    assert np.abs(rgb[..., 0] - rgb[..., 1]).max() <= 1
    assert np.abs(rgb[..., 1] - rgb[..., 2]).max() <= 1


def test_hue_rotate_full_circle_is_neutral():
    settings = EffectSettings(hue_rotate=360)
    assert FilterService.is_neutral(settings)


def test_hue_rotate_red_to_green():
    out = FilterService().apply_color_filters(solid(1, 1, (255, 0, 0)), EffectSettings(hue_rotate=120))
    assert out.pixels[0, 0, :3].tolist() == [0, 255, 0]


def test_blur_keeps_alpha_of_opaque_image(gradient):
    out = FilterService().apply_color_filters(gradient, EffectSettings(blur=2))
    assert (out.alpha == 255).all()


@pytest.mark.parametrize("intensity, expected", [(100, [255, 0, 0]), (50, [255, 128, 128])])
def test_tint_multiplies(intensity, expected):
    out = FilterService.apply_tint(solid(2, 2, (255, 255, 255)), "#ff0000", intensity)
    assert out.pixels[0, 0, :3].tolist() == expected
    assert out.pixels[0, 0, 3] == 255


def test_tint_none_is_noop(gradient):
    assert FilterService.apply_tint(gradient, "none", 80) is gradient


def test_vignette_darkens_corners_only():
    white = solid(30, 30, (255, 255, 255))
    out = FilterService.apply_vignette(white, 50)
    assert out.pixels[0, 0, 0] < 255
    assert out.pixels[15, 15, 0] >= 245
