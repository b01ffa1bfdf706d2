"""Upload validation for image files."""

from __future__ import annotations

from dataclasses import dataclass
import io
from pathlib import PurePath
from typing import Dict, Optional, Tuple

from PIL import Image, UnidentifiedImageError

from partner_me.core.config import get_settings
from partner_me.core.errors import ValidationError


ALLOWED_MIME_EXTENSIONS: Dict[str, Tuple[str, ...]] = {
    "image/jpeg": (".jpg", ".jpeg"),
    "image/png": (".png",),
    "image/webp": (".webp",),
    "image/gif": (".gif",),
}
PIL_FORMATS: Dict[str, str] = {
    "image/jpeg": "JPEG",
    "image/png": "PNG",
    "image/webp": "WEBP",
    "image/gif": "GIF",
}


@dataclass(frozen=True)
class ValidatedImage:
    filename: str
    mime_type: str
    extension: str
    size: int
    width: int
    height: int


def _invalid(message: str) -> ValidationError:
    return ValidationError(message, code="INVALID_FILE")


def normalize_mime_type(content_type: Optional[str]) -> str:
    normalized = (content_type or "").split(";", 1)[0].strip().lower()
    if normalized == "image/jpg":
        return "image/jpeg"
    return normalized


def matches_magic_bytes(mime_type: str, content: bytes) -> bool:
    if mime_type == "image/jpeg":
        return content[:3] == b"\xff\xd8\xff"
    if mime_type == "image/png":
        return content[:8] == b"\x89PNG\r\n\x1a\n"
    if mime_type == "image/gif":
        return content[:6] in (b"GIF87a", b"GIF89a")
    if mime_type == "image/webp":
        return content[:4] == b"RIFF" and content[8:12] == b"WEBP"
    return False


def sanitize_filename(filename: Optional[str]) -> str:
    name = PurePath((filename or "").replace("\\", "/")).name.strip()
    return name[:255] or "upload"


def validate_image(filename: Optional[str], content_type: Optional[str], content: bytes) -> ValidatedImage:
    """Check size, type, signature and decoded dimensions of an uploaded image."""

    settings = get_settings()
    if not content:
        raise ValidationError("No file uploaded", code="NO_FILE")
    if len(content) > settings.max_upload_size_bytes:
        limit_mb = settings.max_upload_size_bytes / (1024 * 1024)
        raise _invalid(f"File size exceeds the maximum of {limit_mb:g}MB")

    mime_type = normalize_mime_type(content_type)
    if mime_type not in ALLOWED_MIME_EXTENSIONS:
        raise _invalid("Invalid file type. Only JPEG, PNG, WebP and GIF images are allowed")

    safe_name = sanitize_filename(filename)
    extension = PurePath(safe_name).suffix.lower()
    if extension not in ALLOWED_MIME_EXTENSIONS[mime_type]:
        raise _invalid("File extension does not match the file type")

    if not matches_magic_bytes(mime_type, content):
        raise _invalid("File content does not match the declared file type")

    try:
        with Image.open(io.BytesIO(content)) as candidate:
            candidate.verify()
        with Image.open(io.BytesIO(content)) as image:
            detected_format = image.format
            width, height = image.size
    except (UnidentifiedImageError, OSError, SyntaxError, ValueError) as exc:
        raise _invalid("File is not a valid image") from exc

    if detected_format != PIL_FORMATS[mime_type]:
        raise _invalid("File content does not match the declared file type")

    minimum = settings.image_min_dimension
    maximum = settings.image_max_dimension
    if width < minimum or height < minimum:
        raise _invalid(f"Image dimensions must be at least {minimum}x{minimum} pixels")
    if width > maximum or height > maximum:
        raise _invalid(f"Image dimensions must not exceed {maximum}x{maximum} pixels")

    return ValidatedImage(
        filename=safe_name,
        mime_type=mime_type,
        extension=extension,
        size=len(content),
        width=width,
        height=height,
    )
