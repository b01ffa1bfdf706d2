"""Image variant generation with Pillow."""

from __future__ import annotations

from dataclasses import dataclass
import io
from typing import Dict, List, Tuple

from PIL import Image, ImageOps, UnidentifiedImageError

from partner_me.core.errors import AppError


VARIANT_THUMBNAIL = "thumbnail"
VARIANT_MEDIUM = "medium"
VARIANT_FULL = "full"
VARIANT_NAMES: Tuple[str, ...] = (VARIANT_THUMBNAIL, VARIANT_MEDIUM, VARIANT_FULL)
OUTPUT_MIME_TYPE = "image/webp"


@dataclass(frozen=True)
class VariantSpec:
    name: str
    width: int
    height: int
    quality: int
    crop: bool


VARIANT_SPECS: Dict[str, VariantSpec] = {
    VARIANT_THUMBNAIL: VariantSpec(VARIANT_THUMBNAIL, 300, 300, 80, True),
    VARIANT_MEDIUM: VariantSpec(VARIANT_MEDIUM, 800, 800, 85, False),
    VARIANT_FULL: VariantSpec(VARIANT_FULL, 1920, 1920, 90, False),
}


@dataclass(frozen=True)
class ProcessedVariant:
    name: str
    content: bytes
    width: int
    height: int

    @property
    def size(self) -> int:
        return len(self.content)


class ProcessingError(AppError):
    default_code = "PROCESSING_ERROR"
    default_status = 500


def _load_clean(content: bytes) -> Image.Image:
    with Image.open(io.BytesIO(content)) as source:
        source.seek(0)
        oriented = ImageOps.exif_transpose(source)
        mode = "RGBA" if oriented.mode in ("RGBA", "LA", "P", "PA") else "RGB"
        converted = oriented.convert(mode)
    # Rebuilt from raw pixels so no EXIF or other metadata survives.
    return Image.frombytes(converted.mode, converted.size, converted.tobytes())


def _resize(image: Image.Image, spec: VariantSpec) -> Image.Image:
    if spec.crop:
        target = (min(spec.width, image.width), min(spec.height, image.height))
        side = min(target)
        return ImageOps.fit(image, (side, side), method=Image.Resampling.LANCZOS)
    resized = image.copy()
    resized.thumbnail((spec.width, spec.height), Image.Resampling.LANCZOS)
    return resized


def render_variant(image: Image.Image, spec: VariantSpec) -> ProcessedVariant:
    resized = _resize(image, spec)
    buffer = io.BytesIO()
    resized.save(buffer, format="WEBP", quality=spec.quality, method=4)
    return ProcessedVariant(
        name=spec.name,
        content=buffer.getvalue(),
        width=resized.width,
        height=resized.height,
    )


def generate_variants(content: bytes) -> List[ProcessedVariant]:
    """Return full, medium and thumbnail WebP renditions, never upscaled."""

    try:
        image = _load_clean(content)
        return [render_variant(image, VARIANT_SPECS[name]) for name in VARIANT_NAMES]
    except (UnidentifiedImageError, OSError, ValueError) as exc:
        raise ProcessingError("Failed to process image") from exc
