# pipeline/image_optimizer.py
"""
Compress-and-shrink workflow: fit the image in a bounding box, re-encode in
its own format, and describe what was done in a JSON-able metadata sidecar.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional
import logging
import time

from ..models.effect_settings import EffectSettings
from ..models.raster_buffer import EncodedImage, RasterBuffer
from ..repositories.image_repository import OUTPUT_FORMATS
from ..services.geometry_service import GeometryService
from ..services.image_service import ImageService
from ..services.stats_service import ImageStats, format_bytes

logger = logging.getLogger(__name__)

SOFTWARE_NAME = "Matrix Image Converter"


@dataclass
class OptimizedImage:
    image: EncodedImage
    metadata: Dict[str, Any]
    stats: ImageStats


@dataclass
class OptimizeOptions:
    max_width: int = 1920
    max_height: int = 1080
    maintain_aspect_ratio: bool = True
    quality: int = 80
    title: str = ""
    description: str = ""
    copyright: str = ""
    author: str = ""
    extra: Dict[str, Any] = field(default_factory=dict)


def effects_history(effects: Dict[str, Any]) -> str:
    """{'sepia': 40, 'invert': True} → 'Applied effects: sepia: 40, invert'."""
    parts = []
    for key, value in effects.items():
        if value is False or value == 0:
            continue
        parts.append(key if value is True else f"{key}: {value}")
    return f"Applied effects: {', '.join(parts)}"


def optimize_image(
    source: bytes,
    filename: str,
    max_width: int = 1920,
    max_height: int = 1080,
    maintain_aspect_ratio: bool = True,
    quality: int = 80,
    effects: Optional[EffectSettings] = None,
    *,
    options: Optional[OptimizeOptions] = None,
    image_service: Optional[ImageService] = None,
    geometry_service: Optional[GeometryService] = None,
) -> OptimizedImage:
    """
    Shrink (never enlarge) into ``max_width × max_height`` and re-encode.

    ``effects`` is only recorded in the sidecar; run the pipeline first if
    you want them applied.
    """
    opts = options or OptimizeOptions(max_width, max_height, maintain_aspect_ratio, quality)
    image_service = image_service or ImageService()
    geometry = geometry_service or GeometryService()
    started = time.perf_counter()

    buffer: RasterBuffer = image_service.decode(source)
    fmt = image_service.normalise_format(image_service.source_format(source) or "png")
    if fmt not in OUTPUT_FORMATS:
        logger.info(f"Source format {fmt} cannot be re-encoded, falling back to png")
        fmt = "png"

    w, h = geometry.fit_within(buffer.width, buffer.height, opts.max_width, opts.max_height,
                               opts.maintain_aspect_ratio)
    if (w, h) != (buffer.width, buffer.height):
        buffer = geometry.resize(buffer, w, h, maintain_aspect_ratio=False)

    out_name = image_service.processed_filename(filename, opts.quality, ext=fmt)
    encoded = image_service.encode(buffer, fmt, opts.quality, filename=out_name)

    original_w, original_h = image_service.image_repository.read_dimensions(source)
    active = effects.active_effects() if effects is not None else {}
    history = [
        f"Original: {format_bytes(len(source))} ({original_w}x{original_h})",
        f"Compression: Quality {opts.quality}%, Max dimensions {opts.max_width}x{opts.max_height}",
    ]
    if effects is not None:
        history.append(effects_history(active))

    metadata = {
        "title": opts.title,
        "description": opts.description,
        "copyright": opts.copyright,
        "author": opts.author,
        "software": SOFTWARE_NAME,
        "processingDate": datetime.now(timezone.utc).isoformat(),
        "originalSize": format_bytes(len(source)),
        "originalDimensions": f"{original_w}x{original_h}",
        "compressionSettings": {
            "quality": opts.quality,
            "maxWidth": opts.max_width,
            "maxHeight": opts.max_height,
            "maintainAspectRatio": opts.maintain_aspect_ratio,
        },
        "imageEffects": active,
        "processingHistory": history,
        **opts.extra,
    }

    stats = ImageStats(
        original_size=len(source),
        width=buffer.width,
        height=buffer.height,
        format=fmt,
        processed_size=len(encoded.data),
        processing_time=time.perf_counter() - started,
    )
    logger.info(f"Optimized {filename}: {stats.original_size} → {stats.processed_size} bytes "
                f"({stats.size_change_percent}%)")
    return OptimizedImage(image=encoded, metadata=metadata, stats=stats)
