from pathlib import Path
from typing import Iterable, Iterator, Optional, Union
import logging

from .. import config
from ..models.raster_buffer import EncodedImage, RasterBuffer
from ..repositories.image_repository import ImageRepository, OUTPUT_FORMATS

logger = logging.getLogger(__name__)


class ImageService:
    """I/O helpers and output naming.  No effect logic."""

    def __init__(self, image_repository: Optional[ImageRepository] = None):
        self.image_repository = image_repository or ImageRepository()

    # ─── loading ─────────────────────────────────────────────────────────
    def decode(self, data: bytes, mime_type: Optional[str] = None) -> RasterBuffer:
        return self.image_repository.decode(data, mime_type)

    def read_bytes(self, path: Union[str, Path]) -> bytes:
        return self.image_repository.read_bytes(path)

    def stream_folder(
        self,
        folder: Union[str, Path],
        *,
        recursive: bool = False,
        exts: Iterable[str] | None = None,
    ) -> Iterator[Path]:
        """
        Yield image paths lazily instead of returning a gigantic list.
        """
        return self.image_repository.iter_dir(folder, recursive=recursive, exts=exts)

    def source_format(self, data: bytes) -> Optional[str]:
        return self.image_repository.detect_format(data)

    # ─── output ─────────────────────────────────────────────────────────
    @staticmethod
    def normalise_format(fmt: str) -> str:
        fmt = fmt.lower().lstrip(".")
        return {"jpg": "jpeg", "tif": "tiff"}.get(fmt, fmt)

    @staticmethod
    def base_name(filename: str) -> str:
        """Text before the first dot (``photo.final.jpg`` → ``photo``)."""
        base = Path(filename or "").name.split(".")[0]
        return base or "image"

    def converted_filename(self, filename: str, fmt: str) -> str:
        return f"{self.base_name(filename)}-converted.{self.normalise_format(fmt)}"

    @staticmethod
    def processed_filename(filename: str, quality: int, ext: Optional[str] = None) -> str:
        """``<base>-processed-q<quality>.<ext>`` – base keeps inner dots, ext defaults to the source's."""
        path = Path(filename or "image")
        ext = (ext or path.suffix.lstrip(".") or config.DEFAULT_OUTPUT_FORMAT).lower()
        return f"{path.stem or 'image'}-processed-q{quality}.{ext}"

    def nobg_filename(self, filename: str) -> str:
        stem = Path(filename or "image").stem or "image"
        return f"{stem}-nobg.png"

    @staticmethod
    def tagged_filename(filename: str, tag: str, fmt: str = "png") -> str:
        """``<stem>-<tag>.<fmt>``, tag lower-cased with spaces as dashes."""
        stem = Path(filename or "image").stem or "image"
        slug = "-".join(tag.lower().split())
        return f"{stem}-{slug}.{fmt}"

    def encode(self, buffer: RasterBuffer, fmt: str = config.DEFAULT_OUTPUT_FORMAT,
               quality: int = config.DEFAULT_QUALITY, filename: Optional[str] = None) -> EncodedImage:
        """
        Business-level encode: bytes + MIME + download name.
        """
        fmt = self.normalise_format(fmt)
        data = self.image_repository.encode(buffer, fmt, quality)
        _, mime, _ = OUTPUT_FORMATS[fmt]
        name = filename or self.converted_filename("image", fmt)
        logger.debug(f"Encoded {buffer.width}x{buffer.height} as {fmt} ({len(data)} bytes)")
        return EncodedImage(data=data, format=fmt, mime_type=mime, filename=name)
