import numpy as np

from matrix_converter.models.effect_settings import ColorBalance, EffectSettings
from matrix_converter.models.raster_buffer import ProcessingHistory, RasterBuffer
from matrix_converter.services.advanced_effects_service import AdvancedEffectsService

from conftest import solid

effects = AdvancedEffectsService()


def test_neutral_settings_apply_nothing(gradient):
    history = ProcessingHistory()
    assert effects.apply_all(gradient, EffectSettings(), history) is gradient
    assert len(history) == 0


def test_gamma_one_is_identity(gradient):
    assert effects.gamma(gradient, 1.0) is gradient


def test_gamma_keeps_endpoints():
    pixels = np.zeros((1, 3, 4), dtype=np.uint8)
    pixels[0, :, :3] = np.array([0, 128, 255])[:, None]
    pixels[..., 3] = 255
    out = effects.gamma(RasterBuffer(pixels), 2.0)
    assert out.pixels[0, 0, 0] == 0
    assert out.pixels[0, 1, 0] == 64
    assert out.pixels[0, 2, 0] == 255


def test_color_splash_wraps_around_the_hue_wheel():
    pixels = np.zeros((1, 2, 4), dtype=np.uint8)
    pixels[0, 0, :3] = (255, 0, 21)     # hue ≈ 355°
    pixels[0, 1, :3] = (0, 255, 0)      # hue 120°
    pixels[..., 3] = 255
    out = effects.color_splash(RasterBuffer(pixels), target_hue=0, tolerance=10)
    assert out.pixels[0, 0, :3].tolist() == [255, 0, 21]
    g = out.pixels[0, 1, :3]
    assert g[0] == g[1] == g[2] == round(255 * 0.7152)


def test_hue_distance_is_circular():
    assert effects.hue_distance(np.array([355.0]), 5.0)[0] == 10.0


def test_noise_is_seeded(gradient):
    a = effects.add_noise(gradient, 40, seed=7)
    b = effects.add_noise(gradient, 40, seed=7)
    c = effects.add_noise(gradient, 40, seed=8)
    assert np.array_equal(a.pixels, b.pixels)
    assert not np.array_equal(a.pixels, c.pixels)
    assert (a.alpha == 255).all()


def test_noise_adds_same_offset_to_every_channel():
    out = effects.add_noise(solid(8, 8, (100, 100, 100)), 50, seed=1)
    assert np.array_equal(out.pixels[..., 0], out.pixels[..., 1])
    assert np.array_equal(out.pixels[..., 1], out.pixels[..., 2])


def test_glitch_is_seeded_and_keeps_size(gradient):
    a = effects.glitch(gradient, 2, seed=3)
    b = effects.glitch(gradient, 2, seed=3)
    assert np.array_equal(a.pixels, b.pixels)
    assert a.pixels.shape == gradient.pixels.shape


def test_mirror_of_opaque_image_shows_the_reflection(gradient):
    out = effects.mirror(gradient, "vertical")
    assert np.array_equal(out.pixels, gradient.pixels[:, ::-1])
    both = effects.mirror(gradient, "both")
    assert np.array_equal(both.pixels, gradient.pixels[::-1, ::-1])


def test_kaleidoscope_keeps_opaque_canvas(gradient):
    out = effects.kaleidoscope(gradient, 6)
    assert out.pixels.shape == gradient.pixels.shape
    assert (out.alpha == 255).all()


def test_color_balance_clamps():
    out = effects.color_balance(solid(1, 1, (250, 5, 100)), 10, -10, 0)
    assert out.pixels[0, 0, :3].tolist() == [255, 0, 100]


def test_split_toning_blends_with_highlight_or_shadow():
    out = effects.split_toning(solid(1, 1, (255, 255, 255)), "#ffeb3b", "#3f51b5")
    assert out.pixels[0, 0, :3].tolist() == [255, 245, 157]
    dark = effects.split_toning(solid(1, 1, (0, 0, 0)), "#ffeb3b", "#3f51b5")
    assert dark.pixels[0, 0, :3].tolist() == [32, 40, 90]


def test_duotone_maps_black_and_white_to_the_ramp_ends():
    assert effects.duotone(solid(1, 1, (0, 0, 0)), "#00ff00", "#000080").pixels[0, 0, :3].tolist() == [0, 0, 128]
    assert effects.duotone(solid(1, 1, (255, 255, 255)), "#00ff00", "#000080").pixels[0, 0, :3].tolist() == [0, 255, 0]


def test_apply_all_records_in_order(gradient):
    settings = EffectSettings(noise_amount=10, gamma=1.5, color_balance=ColorBalance(r=5),
                              duotone=True, split_toning=True)
    history = ProcessingHistory()
    effects.apply_all(gradient, settings, history)
    stages = [entry.split("(")[0] for entry in history.entries]
    assert stages == ["noise", "gamma", "color_balance", "split_toning", "duotone"]


def test_apply_all_is_deterministic(gradient):
    settings = EffectSettings(noise_amount=30, glitch_intensity=3, kaleidoscope=0.4, mirror=True)
    a = effects.apply_all(gradient, settings)
    b = effects.apply_all(gradient, settings)
    assert np.array_equal(a.pixels, b.pixels)
