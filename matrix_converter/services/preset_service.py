from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, List, Optional
import logging

from ..models.effect_settings import EffectSettings
from ..models.errors import InvalidInput
from ..models.raster_buffer import ProcessingHistory, RasterBuffer
from .filter_service import FilterService
from .geometry_service import GeometryService

logger = logging.getLogger(__name__)


# ─── One-click effect presets (filter chain + tint) ──────────────────────
EFFECT_PRESETS: Dict[str, Dict] = {
    "Matrix": dict(brightness=110, contrast=120, saturation=90, sepia=0, hue_rotate=120,
                   blur=0, invert=False, grayscale=False, tint_color="#00ff00", tint_intensity=30),
    "Cyberpunk": dict(brightness=120, contrast=130, saturation=150, sepia=0, hue_rotate=180,
                      blur=0, invert=False, grayscale=False, tint_color="#ff00ff", tint_intensity=20),
    "Noir": dict(brightness=90, contrast=140, saturation=0, sepia=0, hue_rotate=0,
                 blur=0, invert=False, grayscale=True, tint_color="none", tint_intensity=0),
    "Vintage": dict(brightness=95, contrast=90, saturation=80, sepia=50, hue_rotate=0,
                    blur=0, invert=False, grayscale=False, tint_color="#704214", tint_intensity=20),
}


# ─── Social-media platform sizes ─────────────────────────────────────────
@dataclass(frozen=True)
class PlatformPreset:
    platform: str
    name: str
    width: int
    height: int

    @property
    def aspect(self) -> float:
        return self.width / self.height


PLATFORM_PRESETS: Dict[str, List[PlatformPreset]] = {
    platform: [PlatformPreset(platform, name, w, h) for name, w, h in sizes]
    for platform, sizes in {
        "Instagram": [("Profile Picture", 320, 320), ("Post", 1080, 1080), ("Story", 1080, 1920),
                      ("Landscape", 1080, 608), ("Portrait", 1080, 1350)],
        "Facebook": [("Profile Picture", 170, 170), ("Cover Photo", 851, 315), ("Post", 1200, 630),
                     ("Event Cover", 1920, 1080)],
        "Twitter": [("Profile Picture", 400, 400), ("Header", 1500, 500), ("Post", 1200, 675)],
        "LinkedIn": [("Profile Picture", 400, 400), ("Cover Photo", 1584, 396), ("Post", 1200, 627)],
    }.items()
}

FIT_MODES = ("stretch", "cover")


@dataclass(frozen=True)
class SmartFilter:
    """
    A finished look: filter-chain values plus the temperature / tint-shift /
    vignette primitives that only the smart filters use.
    """
    name: str
    description: str
    brightness: float = 100
    contrast: float = 100
    saturation: float = 100
    hue: float = 0
    sepia: float = 0
    grayscale: bool = False
    blur: float = 0
    temperature: float = 0
    tint: float = 0
    vignette: float = 0


SMART_FILTERS: List[SmartFilter] = [
    SmartFilter("Vintage", "Warm, faded look with subtle color shifts",
                brightness=105, contrast=95, saturation=85, sepia=30, temperature=10, vignette=20),
    SmartFilter("Noir", "Classic black & white with enhanced contrast",
                brightness=110, contrast=130, grayscale=True, vignette=30),
    SmartFilter("Chrome", "High contrast with metallic tones",
                brightness=115, contrast=120, saturation=110, temperature=-10),
    SmartFilter("Fade", "Soft, muted colors with lifted blacks",
                brightness=108, contrast=90, saturation=85, temperature=5, tint=5),
    SmartFilter("Dramatic", "High contrast with deep shadows",
                brightness=105, contrast=140, saturation=120, vignette=40),
    SmartFilter("Cinematic", "Movie-like color grading",
                brightness=105, contrast=110, saturation=95, temperature=-5, tint=5, vignette=15),
    SmartFilter("Summer", "Warm, vibrant colors",
                brightness=110, contrast=105, saturation=120, temperature=15),
    SmartFilter("Cool", "Cool tones with subtle blue shift",
                brightness=105, contrast=100, saturation=90, temperature=-15, tint=-10),
]


def _lookup(table: Dict[str, object], name: str, kind: str):
    for key, value in table.items():
        if key.lower() == (name or "").strip().lower():
            return value
    raise InvalidInput(f"Unknown {kind} '{name}'. Available: {', '.join(table)}")


class PresetService:
    """Named effect presets and the smart-filter looks."""

    def __init__(self, filter_service: Optional[FilterService] = None,
                 geometry_service: Optional[GeometryService] = None):
        self.filter_service = filter_service or FilterService()
        self.geometry_service = geometry_service or GeometryService()
        self._smart = {f.name: f for f in SMART_FILTERS}

    # ─── effect presets ─────────────────────────────────────────────────
    @staticmethod
    def list_presets() -> List[str]:
        return list(EFFECT_PRESETS)

    @staticmethod
    def get_preset(name: str) -> EffectSettings:
        return EffectSettings(**_lookup(EFFECT_PRESETS, name, "preset")).validate()

    @staticmethod
    def apply_preset(settings: EffectSettings, name: str) -> EffectSettings:
        """Overlay a preset's filter/tint values on existing settings, keeping the rest."""
        return settings.replace(**_lookup(EFFECT_PRESETS, name, "preset")).validate()

    # ─── smart filters ──────────────────────────────────────────────────
    def list_smart_filters(self) -> List[SmartFilter]:
        return list(self._smart.values())

    def get_smart_filter(self, name: str) -> SmartFilter:
        return _lookup(self._smart, name, "smart filter")

    def apply_smart_filter(self, buffer: RasterBuffer, name: str,
                           history: Optional[ProcessingHistory] = None) -> RasterBuffer:
        """
        filter chain → temperature / tint shift → vignette.
        """
        look = self.get_smart_filter(name)
        chain = EffectSettings(
            brightness=look.brightness, contrast=look.contrast, saturation=look.saturation,
            hue_rotate=look.hue, sepia=look.sepia, grayscale=look.grayscale, blur=look.blur,
        )
        out = self.filter_service.apply_color_filters(buffer, chain)
        out = self.filter_service.shift_temperature_tint(out, look.temperature, look.tint)
        out = self.filter_service.apply_vignette(out, look.vignette)
        if history is not None:
            history.record("smart_filter", name=look.name)
        logger.debug(f"Applied smart filter {look.name}")
        return out

    # ─── platform sizes ─────────────────────────────────────────────────
    @staticmethod
    def list_platforms() -> List[str]:
        return list(PLATFORM_PRESETS)

    @staticmethod
    def get_platform_presets(platform: str) -> List[PlatformPreset]:
        return list(_lookup(PLATFORM_PRESETS, platform, "platform"))

    def get_platform_preset(self, platform: str, name: str) -> PlatformPreset:
        presets = {p.name: p for p in self.get_platform_presets(platform)}
        return _lookup(presets, name, f"{platform} size")

    def resize_for_platform(self, buffer: RasterBuffer, platform: str, name: str,
                            fit: str = "stretch",
                            history: Optional[ProcessingHistory] = None) -> RasterBuffer:
        """
        Exact platform dimensions.  ``stretch`` scales straight to the size,
        ``cover`` first crops the centre to the target ratio so nothing distorts.
        """
        if fit not in FIT_MODES:
            raise InvalidInput(f"fit must be one of {FIT_MODES}, got {fit!r}")
        preset = self.get_platform_preset(platform, name)
        if fit == "cover":
            buffer = self.geometry_service.crop(buffer, 0, 0, buffer.width, buffer.height,
                                                aspect=preset.aspect)
        out = self.geometry_service.resize(buffer, preset.width, preset.height,
                                           maintain_aspect_ratio=False)
        if history is not None:
            history.record("platform_resize", platform=preset.platform, size=preset.name, fit=fit)
        logger.debug(f"Resized for {preset.platform} {preset.name} ({preset.width}x{preset.height})")
        return out
