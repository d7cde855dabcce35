import pytest

from matrix_converter.models.effect_settings import EffectSettings
from matrix_converter.models.errors import InvalidInput
from matrix_converter.models.raster_buffer import ProcessingHistory, RasterBuffer
from matrix_converter.pipeline.image_optimizer import effects_history, optimize_image
from matrix_converter.services.image_service import ImageService
from matrix_converter.services.preset_service import PresetService

from conftest import encode_png, solid


def test_presets_are_valid_settings():
    service = PresetService()
    assert service.list_presets() == ["Matrix", "Cyberpunk", "Noir", "Vintage"]
    for name in service.list_presets():
        assert isinstance(service.get_preset(name), EffectSettings)


def test_preset_lookup_ignores_case():
    matrix = PresetService.get_preset("matrix")
    assert matrix.hue_rotate == 120 and matrix.tint_color == "#00ff00"


def test_apply_preset_keeps_unrelated_settings():
    settings = PresetService.apply_preset(EffectSettings(emboss=True, brightness=50), "Noir")
    assert settings.emboss
    assert settings.grayscale and settings.brightness == 90


def test_unknown_preset():
    with pytest.raises(InvalidInput):
        PresetService.get_preset("Sunset")


def test_smart_filters(gradient):
    service = PresetService()
    assert len(service.list_smart_filters()) == 8
    history = ProcessingHistory()
    out = service.apply_smart_filter(gradient, "cinematic", history)
    assert out.pixels.shape == gradient.pixels.shape
    assert history.entries == ("smart_filter(name=Cinematic)",)
    with pytest.raises(InvalidInput):
        service.get_smart_filter("Sepia Dream")


def test_noir_smart_filter_is_gray(gradient):
    out = PresetService().apply_smart_filter(gradient, "Noir")
    rgb = out.rgb.astype(int)
    assert abs(rgb[..., 0] - rgb[..., 2]).max() <= 1


def test_effects_history_skips_neutral_values():
    assert effects_history({"sepia": 40, "invert": True, "blur": 0, "emboss": False}) == \
        "Applied effects: sepia: 40, invert"


def test_optimize_fits_into_the_box():
    source = encode_png(solid(400, 200, (12, 34, 56)).pixels)
    result = optimize_image(source, "pic.png", max_width=100, max_height=100, quality=80,
                            effects=EffectSettings(sepia=40))

    assert result.image.filename == "pic-processed-q80.png"
    decoded = ImageService().decode(result.image.data)
    assert (decoded.width, decoded.height) == (100, 50)

    meta = result.metadata
    assert meta["originalDimensions"] == "400x200"
    assert meta["compressionSettings"] == {"quality": 80, "maxWidth": 100, "maxHeight": 100,
                                           "maintainAspectRatio": True}
    assert meta["imageEffects"] == {"sepia": 40}
    assert meta["processingHistory"][1] == "Compression: Quality 80%, Max dimensions 100x100"
    assert meta["processingHistory"][2] == "Applied effects: sepia: 40"
    assert result.stats.processed_size == len(result.image.data)


def test_optimize_never_upscales():
    source = encode_png(solid(20, 10, (0, 0, 0)).pixels)
    result = optimize_image(source, "tiny.png")
    decoded = ImageService().decode(result.image.data)
    assert (decoded.width, decoded.height) == (20, 10)
    assert len(result.metadata["processingHistory"]) == 2


def test_optimize_names_output_after_encoded_format():
    source = encode_png(solid(20, 10, (9, 9, 9)).pixels)
    result = optimize_image(source, "photo.jpg")
    assert result.image.format == "png"
    assert result.image.filename == "photo-processed-q80.png"


def test_optimize_gif_source_falls_back_to_png():
    from io import BytesIO
    from PIL import Image

    out = BytesIO()
    Image.new("RGB", (12, 8), (255, 0, 0)).save(out, format="GIF")
    result = optimize_image(out.getvalue(), "anim.gif")

    assert result.image.mime_type == "image/png"
    assert result.image.filename == "anim-processed-q80.png"


def test_platform_presets():
    service = PresetService()
    assert service.list_platforms() == ["Instagram", "Facebook", "Twitter", "LinkedIn"]
    story = service.get_platform_preset("instagram", "story")
    assert (story.platform, story.name, story.width, story.height) == ("Instagram", "Story", 1080, 1920)
    assert [p.name for p in service.get_platform_presets("Twitter")] == ["Profile Picture", "Header", "Post"]


def _three_bands() -> RasterBuffer:
    """300x100: red, green and blue thirds."""
    pixels = solid(300, 100, (255, 0, 0)).pixels.copy()
    pixels[:, 100:200, :3] = (0, 255, 0)
    pixels[:, 200:, :3] = (0, 0, 255)
    return RasterBuffer(pixels)


def test_platform_resize_stretch_and_cover():
    buffer = _three_bands()
    service = PresetService()

    stretched = service.resize_for_platform(buffer, "Facebook", "Profile Picture")
    assert (stretched.width, stretched.height) == (170, 170)
    assert tuple(stretched.pixels[85, 2, :3]) == (255, 0, 0)

    history = ProcessingHistory()
    covered = service.resize_for_platform(buffer, "Facebook", "Profile Picture", fit="cover",
                                          history=history)
    assert (covered.width, covered.height) == (170, 170)
    assert tuple(covered.pixels[85, 2, :3]) == (0, 255, 0)
    assert history.entries == ("platform_resize(platform=Facebook, size=Profile Picture, fit=cover)",)


@pytest.mark.parametrize("platform, size, fit", [
    ("MySpace", "Post", "stretch"),
    ("Twitter", "Story", "stretch"),
    ("Twitter", "Post", "contain"),
])
def test_platform_resize_rejects_unknown(gradient, platform, size, fit):
    with pytest.raises(InvalidInput):
        PresetService().resize_for_platform(gradient, platform, size, fit=fit)
