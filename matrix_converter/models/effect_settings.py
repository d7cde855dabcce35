from __future__ import annotations
from dataclasses import dataclass, field, fields, asdict, replace as dc_replace
from typing import Any, Dict, Mapping, Optional, Tuple
import math
import re

from PIL import ImageColor

from .. import config
from .errors import InvalidInput

MIRROR_AXES = ("vertical", "horizontal", "both")

_CAMEL_RE = re.compile(r"(?<!^)(?=[A-Z])")


def parse_color(value: str) -> Tuple[int, int, int]:
    """'#ff00ff', '#f0f' or a CSS colour name → (r, g, b)."""
    if not isinstance(value, str):
        raise InvalidInput(f"Colour must be a string, got {value!r}")
    try:
        rgb = ImageColor.getrgb(value)
    except (ValueError, AttributeError) as err:
        raise InvalidInput(f"Unrecognised colour: {value!r}") from err
    return tuple(rgb[:3])


def _snake(key: str) -> str:
    return _CAMEL_RE.sub("_", key).lower()


def _as_mapping(name: str, value) -> Mapping[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise InvalidInput(f"{name} must be an object, got {value!r}")
    return value


@dataclass(frozen=True)
class SegmentationParams:
    """Background-removal knobs (light-background assumption)."""
    threshold: float = 20        # edge strength, 0‥100
    tolerance: float = 30        # distance from white, 0‥100
    smoothing_passes: int = 1    # 3×3 box-blur rounds, 0‥5
    feather_radius: int = 2      # cone-feather radius in px, 0‥10

    def validate(self) -> "SegmentationParams":
        _check_range("threshold", self.threshold, 0, 100)
        _check_range("tolerance", self.tolerance, 0, 100)
        _check_range("smoothing_passes", self.smoothing_passes, 0, 5)
        _check_range("feather_radius", self.feather_radius, 0, 10)
        return self

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "SegmentationParams":
        aliases = {"smoothing": "smoothing_passes", "feather_size": "feather_radius"}
        known = {f.name for f in fields(cls)}
        kwargs = {}
        for key, value in _as_mapping("segmentation", data).items():
            name = aliases.get(_snake(key), _snake(key))
            if name not in known:
                continue
            try:
                kwargs[name] = float(value) if name in ("threshold", "tolerance") else int(float(value))
            except (TypeError, ValueError, OverflowError) as err:
                raise InvalidInput(f"segmentation.{name}={value!r} is not a number") from err
        return cls(**kwargs).validate()


@dataclass(frozen=True)
class ColorBalance:
    r: int = 0
    g: int = 0
    b: int = 0

    @property
    def is_neutral(self) -> bool:
        return self.r == 0 and self.g == 0 and self.b == 0

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "ColorBalance":
        kwargs = {}
        for key, value in _as_mapping("color_balance", data).items():
            if key not in ("r", "g", "b"):
                raise InvalidInput(f"color_balance has no channel {key!r}")
            try:
                kwargs[key] = int(float(value))
            except (TypeError, ValueError, OverflowError) as err:
                raise InvalidInput(f"color_balance.{key}={value!r} is not a number") from err
        return cls(**kwargs)


def _check_range(name: str, value, lo, hi) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not (lo <= value <= hi):
        raise InvalidInput(f"{name}={value!r} outside [{lo}, {hi}]")


@dataclass(frozen=True)
class EffectSettings:
    """
    Immutable value-object enumerating every stage parameter.

    Two equal instances applied to the same buffer always give byte-identical
    output; random effects draw from ``seed``.
    """
    # ── Color filter chain ────────────────────────────────────────────
    brightness: float = 100      # %
    contrast: float = 100        # %
    saturation: float = 100      # %
    blur: float = 0              # px radius
    sepia: float = 0             # %
    hue_rotate: float = 0        # deg
    invert: bool = False
    grayscale: bool = False

    # ── Geometry / mosaic / emboss ───────────────────────────────────
    rotation: float = 0          # deg, clockwise
    flip_x: bool = False
    flip_y: bool = False
    pixelate: int = 1
    emboss: bool = False

    # ── Tint ──────────────────────────────────────────────────────────
    tint_color: str = "none"
    tint_intensity: float = 0    # %

    # ── Background removal ───────────────────────────────────────────
    remove_background: bool = False
    segmentation: SegmentationParams = field(default_factory=SegmentationParams)

    # ── Advanced effects ─────────────────────────────────────────────
    noise_amount: float = 0
    kaleidoscope: float = 0      # level 0‥10
    mirror: bool = False
    mirror_axis: str = "vertical"
    color_splash: bool = False
    target_hue: float = 0
    hue_tolerance: float = 20
    glitch_intensity: float = 0
    gamma: float = 1.0
    color_balance: ColorBalance = field(default_factory=ColorBalance)
    split_toning: bool = False
    highlight_color: str = "#ffeb3b"
    shadow_color: str = "#3f51b5"
    duotone: bool = False
    duotone_highlight: str = "#00ff00"
    duotone_shadow: str = "#000000"
    seed: int = config.RANDOM_SEED

    # ── Resize pre-stage ─────────────────────────────────────────────
    target_width: Optional[int] = None
    target_height: Optional[int] = None
    maintain_aspect_ratio: bool = True

    # ------------------------------------------------------------------
    @property
    def kaleidoscope_segments(self) -> int:
        if self.kaleidoscope <= 0:
            return 0
        return math.floor(self.kaleidoscope * 8) + 2

    @property
    def has_tint(self) -> bool:
        return self.tint_color.lower() != "none" and self.tint_intensity > 0

    @property
    def has_resize(self) -> bool:
        return self.target_width is not None or self.target_height is not None

    def validate(self) -> "EffectSettings":
        """Raise InvalidInput if any parameter is outside its documented range."""
        for name in ("brightness", "contrast", "saturation"):
            _check_range(name, getattr(self, name), 0, 200)
        _check_range("blur", self.blur, 0, 20)
        _check_range("sepia", self.sepia, 0, 100)
        _check_range("hue_rotate", self.hue_rotate, 0, 360)
        _check_range("pixelate", self.pixelate, 1, 50)
        _check_range("rotation", self.rotation, 0, 360)
        _check_range("tint_intensity", self.tint_intensity, 0, 100)
        _check_range("noise_amount", self.noise_amount, 0, 100)
        _check_range("kaleidoscope", self.kaleidoscope, 0, 10)
        _check_range("target_hue", self.target_hue, 0, 360)
        _check_range("hue_tolerance", self.hue_tolerance, 1, 180)
        _check_range("glitch_intensity", self.glitch_intensity, 0, 10)
        if isinstance(self.gamma, bool) or not isinstance(self.gamma, (int, float)) or not self.gamma > 0:
            raise InvalidInput(f"gamma must be > 0, got {self.gamma!r}")
        for channel in ("r", "g", "b"):
            _check_range(f"color_balance.{channel}", getattr(self.color_balance, channel), -255, 255)
        if self.mirror_axis not in MIRROR_AXES:
            raise InvalidInput(f"mirror_axis must be one of {MIRROR_AXES}, got {self.mirror_axis!r}")
        if not isinstance(self.tint_color, str):
            raise InvalidInput(f"tint_color must be a string, got {self.tint_color!r}")
        if self.tint_color.lower() != "none":
            parse_color(self.tint_color)
        for name in ("highlight_color", "shadow_color", "duotone_highlight", "duotone_shadow"):
            parse_color(getattr(self, name))
        for name in ("target_width", "target_height"):
            value = getattr(self, name)
            if value is not None:
                _check_range(name, value, 1, 10000)
        if isinstance(self.seed, bool) or not isinstance(self.seed, int) or self.seed < 0:
            raise InvalidInput(f"seed must be a non-negative integer, got {self.seed!r}")
        self.segmentation.validate()
        return self

    def replace(self, **changes) -> "EffectSettings":
        return dc_replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def active_effects(self) -> Dict[str, Any]:
        """Parameters that differ from their neutral default."""
        defaults = EffectSettings()
        active = {}
        for f in fields(self):
            if f.name in ("seed", "maintain_aspect_ratio"):
                continue
            value = getattr(self, f.name)
            if value != getattr(defaults, f.name):
                active[f.name] = asdict(value) if hasattr(value, "__dataclass_fields__") else value
        return active

    # ------------------------------------------------------------------
    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "EffectSettings":
        """
        Build settings from a JSON-ish mapping.  Accepts camelCase keys
        (``hueRotate``, ``flipX``, ``tintIntensity`` …) as well as snake_case,
        flat or nested segmentation fields, and validates the result.
        """
        data = dict(_as_mapping("settings", data))
        known = {f.name: f for f in fields(cls)}
        seg_keys = {"threshold", "tolerance", "smoothing_passes", "smoothing",
                    "feather_radius", "feather_size"}

        kwargs: Dict[str, Any] = {}
        seg_data: Dict[str, Any] = dict(_as_mapping("segmentation", data.pop("segmentation", None)))
        for key, value in data.items():
            name = _snake(key)
            if name in seg_keys:
                seg_data[name] = value
            elif name == "color_balance":
                kwargs[name] = ColorBalance.from_dict(value)
            elif name == "kaleidoscope_segments":
                continue
            elif name in known:
                kwargs[name] = _coerce(name, getattr(_DEFAULTS, name), value)
            else:
                raise InvalidInput(f"Unknown effect parameter: {key}")

        kwargs["segmentation"] = SegmentationParams.from_dict(seg_data)
        return cls(**kwargs).validate()


_DEFAULTS = EffectSettings()
_OPTIONAL_INTS = {"target_width", "target_height"}
_INT_FIELDS = {"pixelate", "seed"} | _OPTIONAL_INTS


def _coerce(name: str, default, value):
    """Form / JSON values → the field's type ('120' → 120.0, 'true' → True)."""
    if value is None:
        return None if name in _OPTIONAL_INTS else default
    try:
        if isinstance(default, bool):
            if isinstance(value, str):
                return value.strip().lower() in ("1", "true", "yes", "on")
            return bool(value)
        if name in _INT_FIELDS:
            return int(float(value))
        if isinstance(default, (int, float)):
            return float(value)
    except (TypeError, ValueError, OverflowError) as err:
        raise InvalidInput(f"{name}={value!r} is not a number") from err
    if isinstance(default, str) and not isinstance(value, str):
        raise InvalidInput(f"{name} must be a string, got {value!r}")
    return value
