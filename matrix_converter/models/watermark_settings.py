from __future__ import annotations
from dataclasses import dataclass, fields
from typing import Any, Mapping, Optional

from .effect_settings import _as_mapping, _check_range, _snake, parse_color
from .errors import InvalidInput

WATERMARK_POSITIONS = ("center", "topLeft", "topRight", "bottomLeft", "bottomRight")
WATERMARK_KINDS = ("text", "image")


@dataclass(frozen=True)
class WatermarkSettings:
    """
    Text or image stamp.  ``angle`` turns clockwise about the stamp's centre;
    ``opacity`` scales the stamp's own alpha.
    """
    kind: str = "text"
    text: str = ""
    text_color: str = "#ffffff"
    font_size: int = 48
    opacity: float = 0.5
    angle: float = 0
    position: str = "center"

    def validate(self) -> "WatermarkSettings":
        if self.kind not in WATERMARK_KINDS:
            raise InvalidInput(f"kind must be one of {WATERMARK_KINDS}, got {self.kind!r}")
        if self.position not in WATERMARK_POSITIONS:
            raise InvalidInput(f"position must be one of {WATERMARK_POSITIONS}, got {self.position!r}")
        if not isinstance(self.text, str):
            raise InvalidInput(f"text must be a string, got {self.text!r}")
        parse_color(self.text_color)
        _check_range("font_size", self.font_size, 8, 400)
        _check_range("opacity", self.opacity, 0, 1)
        _check_range("angle", self.angle, -360, 360)
        return self

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "WatermarkSettings":
        """camelCase or snake_case keys; form strings are cast to the field's type."""
        aliases = {"type": "kind", "watermark_type": "kind", "watermark_text": "text", "color": "text_color"}
        defaults = {f.name: f.default for f in fields(cls)}
        kwargs = {}
        for key, value in _as_mapping("watermark", data).items():
            name = aliases.get(_snake(key), _snake(key))
            if name not in defaults:
                raise InvalidInput(f"Unknown watermark setting: {key}")
            default = defaults[name]
            if isinstance(default, str):
                if not isinstance(value, str):
                    raise InvalidInput(f"{name} must be a string, got {value!r}")
                kwargs[name] = value
                continue
            try:
                kwargs[name] = int(float(value)) if name == "font_size" else float(value)
            except (TypeError, ValueError, OverflowError) as err:
                raise InvalidInput(f"{name}={value!r} is not a number") from err
        return cls(**kwargs).validate()
