from __future__ import annotations
from dataclasses import dataclass
from typing import Optional

_UNITS = ["Bytes", "KB", "MB", "GB"]


def format_bytes(size: int) -> str:
    """1536 → '1.5 KB'.  Two decimals, trailing zeros trimmed."""
    if size <= 0:
        return "0 Bytes"
    i = 0
    value = float(size)
    while value >= 1024 and i < len(_UNITS) - 1:
        value /= 1024
        i += 1
    return f"{round(value, 2):g} {_UNITS[i]}"


@dataclass(frozen=True)
class ImageStats:
    """Before/after numbers for one conversion."""
    original_size: int
    width: int
    height: int
    format: str
    processed_size: Optional[int] = None
    processing_time: Optional[float] = None     # seconds

    @property
    def compression_ratio(self) -> Optional[float]:
        if not self.processed_size or not self.original_size:
            return None
        return round(self.original_size / self.processed_size, 2)

    @property
    def size_change_percent(self) -> Optional[float]:
        if self.processed_size is None or not self.original_size:
            return None
        return round((self.processed_size - self.original_size) / self.original_size * 100, 1)

    def as_dict(self) -> dict:
        out = {
            "originalSize": format_bytes(self.original_size),
            "format": self.format.upper(),
            "dimensions": f"{self.width} × {self.height}",
        }
        if self.processed_size is not None:
            out["processedSize"] = format_bytes(self.processed_size)
            out["compressionRatio"] = self.compression_ratio
        if self.processing_time is not None:
            out["processingTime"] = f"{self.processing_time:.2f}s"
        return out
