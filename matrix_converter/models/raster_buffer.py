from __future__ import annotations
from dataclasses import dataclass, field
from typing import List

import numpy as np

from .errors import StageFailure


@dataclass
class RasterBuffer:
    """
    Simple data object: RGBA8 pixels, shape (H, W, 4), dtype uint8.
    Every stage reads one of these and hands back a new one.
    """
    pixels: np.ndarray

    def __post_init__(self):
        if self.pixels.ndim != 3 or self.pixels.shape[2] != 4:
            raise StageFailure(f"Expected an (H, W, 4) RGBA plane, got {self.pixels.shape}")
        if self.pixels.shape[0] == 0 or self.pixels.shape[1] == 0:
            raise StageFailure("Raster buffer has zero pixels")
        if self.pixels.dtype != np.uint8:
            self.pixels = self.pixels.astype(np.uint8)
        if not self.pixels.flags["C_CONTIGUOUS"]:
            self.pixels = np.ascontiguousarray(self.pixels)

    @property
    def width(self) -> int:
        return self.pixels.shape[1]

    @property
    def height(self) -> int:
        return self.pixels.shape[0]

    @property
    def rgb(self) -> np.ndarray:
        return self.pixels[:, :, :3]

    @property
    def alpha(self) -> np.ndarray:
        return self.pixels[:, :, 3]

    def with_alpha(self, alpha: np.ndarray) -> "RasterBuffer":
        out = self.pixels.copy()
        out[:, :, 3] = alpha
        return RasterBuffer(out)


@dataclass
class ProcessingHistory:
    """Append-only, human readable log of which stages ran with which parameters."""
    _entries: List[str] = field(default_factory=list)

    def record(self, stage: str, **params) -> None:
        if params:
            details = ", ".join(f"{k}={v}" for k, v in params.items())
            self._entries.append(f"{stage}({details})")
        else:
            self._entries.append(stage)

    def append(self, entry: str) -> None:
        self._entries.append(entry)

    @property
    def entries(self) -> tuple:
        return tuple(self._entries)

    def __len__(self) -> int:
        return len(self._entries)


@dataclass
class RasterResult:
    """Output of one pipeline invocation."""
    buffer: RasterBuffer
    history: ProcessingHistory = field(default_factory=ProcessingHistory)


@dataclass
class EncodedImage:
    data: bytes
    format: str          # png | jpeg | webp | avif | tiff | bmp
    mime_type: str
    filename: str
