from io import BytesIO
from pathlib import Path
from typing import Iterable, Iterator, Optional, Tuple, Union
import logging

import numpy as np
from PIL import Image as PILImage, UnidentifiedImageError

from .. import config
from ..models.errors import DecodeFailure, EncodeFailure, InvalidInput
from ..models.raster_buffer import RasterBuffer

logger = logging.getLogger(__name__)

ACCEPTED_MIME_TYPES = {
    "image/png", "image/jpeg", "image/jpg", "image/pjpeg", "image/webp",
    "image/gif", "image/bmp", "image/x-ms-bmp", "image/tiff", "image/avif",
}

# target extension → (Pillow format, MIME type, lossy)
OUTPUT_FORMATS = {
    "png":  ("PNG",  "image/png",  False),
    "jpeg": ("JPEG", "image/jpeg", True),
    "jpg":  ("JPEG", "image/jpeg", True),
    "webp": ("WEBP", "image/webp", True),
    "avif": ("AVIF", "image/avif", True),
    "tiff": ("TIFF", "image/tiff", False),
    "bmp":  ("BMP",  "image/bmp",  False),
}

VALID_IMAGE_EXTENSIONS = {".png", ".jpg", ".jpeg", ".webp", ".gif", ".bmp", ".tif", ".tiff", ".avif"}


class ImageRepository:
    """
    Handles byte-level decode/encode and file I/O for RasterBuffer entities.
    No effect logic in here.
    """

    def __init__(self,
                 max_bytes: int = config.MAX_IMAGE_SIZE_MB * 1024 * 1024,
                 max_dimension: int = config.MAX_IMAGE_DIMENSION):
        self.max_bytes = max_bytes
        self.max_dimension = max_dimension

    # ─── decode ───────────────────────────────────────────────────────
    def check_source(self, data: bytes, mime_type: Optional[str] = None) -> None:
        if not data:
            raise InvalidInput("Empty image payload")
        if len(data) > self.max_bytes:
            raise InvalidInput(
                f"Image is {len(data) / (1024 * 1024):.1f}MB, limit is {self.max_bytes // (1024 * 1024)}MB"
            )
        if mime_type is not None:
            mime = mime_type.split(";")[0].strip().lower()
            if not mime.startswith("image/"):
                raise InvalidInput(f"Not an image MIME type: {mime_type}")
            if mime not in ACCEPTED_MIME_TYPES:
                raise InvalidInput(f"Unsupported image type: {mime_type}")

    def decode(self, data: bytes, mime_type: Optional[str] = None) -> RasterBuffer:
        """bytes → RGBA RasterBuffer.  Animated GIFs contribute their first frame."""
        self.check_source(data, mime_type)
        try:
            with PILImage.open(BytesIO(data)) as img:
                width, height = img.size
                if width == 0 or height == 0:
                    raise InvalidInput("Image has zero dimensions")
                if width > self.max_dimension or height > self.max_dimension:
                    raise InvalidInput(
                        f"Image is {width}x{height}, limit is {self.max_dimension}px per axis"
                    )
                if getattr(img, "n_frames", 1) > 1:
                    img.seek(0)
                rgba = img.convert("RGBA")
        except InvalidInput:
            raise
        except (UnidentifiedImageError, OSError, SyntaxError, ValueError,
                PILImage.DecompressionBombError) as err:
            raise DecodeFailure(f"Could not decode image: {err}") from err

        return RasterBuffer(np.asarray(rgba, dtype=np.uint8).copy())

    def read_dimensions(self, data: bytes) -> Tuple[int, int]:
        try:
            with PILImage.open(BytesIO(data)) as img:
                return img.size
        except (UnidentifiedImageError, OSError) as err:
            raise DecodeFailure(f"Could not read image header: {err}") from err

    @staticmethod
    def detect_format(data: bytes) -> Optional[str]:
        try:
            with PILImage.open(BytesIO(data)) as img:
                return (img.format or "").lower() or None
        except (UnidentifiedImageError, OSError):
            return None

    # ─── encode ───────────────────────────────────────────────────────
    @staticmethod
    def to_pil(buffer: RasterBuffer) -> PILImage.Image:
        return PILImage.fromarray(buffer.pixels, mode="RGBA")

    def encode(self, buffer: RasterBuffer, fmt: str, quality: int = config.DEFAULT_QUALITY) -> bytes:
        fmt = fmt.lower()
        if fmt not in OUTPUT_FORMATS:
            raise EncodeFailure(f"Unsupported output format: {fmt}")
        pil_format, _, lossy = OUTPUT_FORMATS[fmt]
        if isinstance(quality, bool) or not isinstance(quality, int) or not 1 <= quality <= 100:
            raise EncodeFailure(f"Quality must be an integer in [1, 100], got {quality!r}")

        img = self.to_pil(buffer)
        if pil_format in ("JPEG", "BMP"):
            # no alpha channel → flatten onto white
            background = PILImage.new("RGB", img.size, (255, 255, 255))
            background.paste(img, mask=img.getchannel("A"))
            img = background

        save_kwargs = {}
        if lossy:
            save_kwargs["quality"] = quality
        if pil_format == "TIFF":
            save_kwargs["compression"] = "tiff_deflate"

        out = BytesIO()
        try:
            img.save(out, format=pil_format, **save_kwargs)
        except (KeyError, OSError, ValueError) as err:
            raise EncodeFailure(f"{pil_format} encoder rejected the image: {err}") from err
        return out.getvalue()

    # ─── file I/O ─────────────────────────────────────────────────────
    @staticmethod
    def read_bytes(path: Union[str, Path]) -> bytes:
        path = Path(path)
        if not path.is_file():
            raise FileNotFoundError(f"Image not found or unreadable: {path}")
        return path.read_bytes()

    def iter_dir(
        self,
        folder: Union[str, Path],
        *,
        recursive: bool = False,
        exts: Iterable[str] | None = None,
    ) -> Iterator[Path]:
        """
        Yield image paths one at a time, sorted by name so batches are stable.
        """
        folder = Path(folder)
        if not folder.is_dir():
            raise NotADirectoryError(folder)

        allowed = {e.lower() for e in (exts or VALID_IMAGE_EXTENSIONS)}
        pattern = "**/*" if recursive else "*"

        for p in sorted(folder.glob(pattern)):
            if not p.is_file():
                continue
            if p.suffix.lower() not in allowed:
                logger.debug(f"Skipping due to extension: {p}")
                continue
            yield p
