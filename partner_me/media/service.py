"""Image upload, serving, deletion and orphan cleanup."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import List, Optional
import uuid

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from partner_me.core.config import get_settings
from partner_me.core.errors import NotFoundError, StorageError, ValidationError
from partner_me.core.logger import get_logger
from partner_me.core.metrics import record_image_uploaded, record_orphan_cleanup
from partner_me.files import FileStorageError, StorageProvider, get_storage_provider
from partner_me.media.ownership import find_orphaned_images
from partner_me.media.processing import OUTPUT_MIME_TYPE, VARIANT_FULL, VARIANT_NAMES, generate_variants
from partner_me.media.validation import ValidatedImage, validate_image
from partner_me.schemas.media import ImageItem, ImageVariantItem
from partner_me.storage.db import transaction
from partner_me.storage.models import AnonymousSubmissionImage, BusinessIdea, Image, ImageVariant


logger = get_logger("partner_me.media")

CACHE_CONTROL_IMMUTABLE = "public, max-age=31536000, immutable"


@dataclass(frozen=True)
class UploadResult:
    image: Image
    url: str
    thumbnail_url: str
    medium_url: str


@dataclass(frozen=True)
class VariantFile:
    image_id: str
    variant: str
    storage_path: str
    mime_type: str
    etag: str
    is_local: bool
    url: str


@dataclass(frozen=True)
class DeleteResult:
    image_id: str
    deleted_files: int
    failed_files: int


@dataclass
class CleanupStats:
    images_found: int = 0
    images_deleted: int = 0
    variants_deleted: int = 0
    storage_files_deleted: int = 0
    errors: int = 0


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def image_url(image_id: str, variant: Optional[str] = None) -> str:
    base = get_settings().app_public_base_url.strip().rstrip("/")
    path = f"/api/images/{image_id}"
    if variant:
        path = f"{path}?variant={variant}"
    return f"{base}{path}"


def serialize_image(image: Image) -> ImageItem:
    return ImageItem(
        id=image.id,
        filename=image.filename,
        mime_type=image.mime_type,
        size=image.size,
        width=image.width,
        height=image.height,
        order=image.order,
        url=image_url(image.id, VARIANT_FULL),
        thumbnail_url=image_url(image.id, "thumbnail"),
        medium_url=image_url(image.id, "medium"),
        variants=[
            ImageVariantItem(
                variant=variant.variant,
                url=image_url(image.id, variant.variant),
                width=variant.width,
                height=variant.height,
                size=variant.size,
            )
            for variant in sorted(image.variants, key=lambda item: VARIANT_NAMES.index(item.variant))
        ],
    )


def _storage_paths(image: Image) -> List[str]:
    paths = [variant.storage_path for variant in image.variants]
    if image.storage_path not in paths:
        paths.append(image.storage_path)
    return paths


def _delete_files(storage: StorageProvider, paths: List[str], *, image_id: str) -> tuple[int, int]:
    deleted = 0
    failed = 0
    for path in paths:
        try:
            storage.delete(path)
            deleted += 1
        except FileStorageError as exc:
            failed += 1
            logger.warning("image_file_delete_failed", image_id=image_id, storage_path=path, error=str(exc))
    return deleted, failed


def upload_image(
    session: Session,
    *,
    filename: Optional[str],
    content_type: Optional[str],
    content: bytes,
    business_idea_id: Optional[str] = None,
    validated: Optional[ValidatedImage] = None,
    storage: Optional[StorageProvider] = None,
) -> UploadResult:
    if business_idea_id is not None and session.get(BusinessIdea, business_idea_id) is None:
        raise NotFoundError("Business idea not found", code="BUSINESS_IDEA_NOT_FOUND")

    if validated is None:
        validated = validate_image(filename, content_type, content)
    variants = generate_variants(content)

    provider = storage or get_storage_provider()
    image_id = str(uuid.uuid4())
    base_path = f"business-ideas/{business_idea_id}/{image_id}" if business_idea_id else f"temp/{image_id}"

    written: List[str] = []
    try:
        for variant in variants:
            written.append(provider.upload(f"{base_path}/{variant.name}.webp", variant.content, OUTPUT_MIME_TYPE))
    except FileStorageError as exc:
        _delete_files(provider, written, image_id=image_id)
        logger.error("image_upload_storage_failed", image_id=image_id, error=str(exc))
        raise StorageError("Failed to store image") from exc

    full_path = f"{base_path}/{VARIANT_FULL}.webp"
    try:
        with transaction(session):
            order = 0
            if business_idea_id is not None:
                order = int(
                    session.scalar(select(func.count()).select_from(Image).where(Image.business_idea_id == business_idea_id))
                    or 0
                )
            image = Image(
                id=image_id,
                business_idea_id=business_idea_id,
                filename=validated.filename,
                storage_path=full_path,
                mime_type=validated.mime_type,
                size=validated.size,
                width=validated.width,
                height=validated.height,
                order=order,
            )
            session.add(image)
            for variant in variants:
                session.add(
                    ImageVariant(
                        image_id=image_id,
                        variant=variant.name,
                        storage_path=f"{base_path}/{variant.name}.webp",
                        width=variant.width,
                        height=variant.height,
                        size=variant.size,
                    )
                )
    except SQLAlchemyError:
        _delete_files(provider, written, image_id=image_id)
        raise

    owner = "business_idea" if business_idea_id else "anonymous"
    record_image_uploaded(owner=owner)
    logger.info(
        "image_uploaded",
        image_id=image_id,
        business_idea_id=business_idea_id,
        size=validated.size,
        width=validated.width,
        height=validated.height,
    )
    return UploadResult(
        image=image,
        url=image_url(image_id, VARIANT_FULL),
        thumbnail_url=image_url(image_id, "thumbnail"),
        medium_url=image_url(image_id, "medium"),
    )


def get_image(session: Session, *, image_id: str) -> Image:
    image = session.scalar(select(Image).where(Image.id == image_id).options(selectinload(Image.variants)))
    if image is None:
        raise NotFoundError("Image not found")
    return image


def get_image_variant(
    session: Session,
    *,
    image_id: str,
    variant: str = VARIANT_FULL,
    storage: Optional[StorageProvider] = None,
) -> VariantFile:
    if variant not in VARIANT_NAMES:
        raise ValidationError("Variant must be thumbnail, medium, or full", code="INVALID_VARIANT")

    image = get_image(session, image_id=image_id)
    match = next((item for item in image.variants if item.variant == variant), None)
    if match is None:
        raise NotFoundError("Image variant not found", code="VARIANT_NOT_FOUND")

    provider = storage or get_storage_provider()
    if not provider.exists(match.storage_path):
        raise NotFoundError("Image file not found in storage", code="FILE_NOT_FOUND")

    return VariantFile(
        image_id=image.id,
        variant=variant,
        storage_path=match.storage_path,
        mime_type=OUTPUT_MIME_TYPE,
        etag=f'"{image.id}-{variant}"',
        is_local=provider.provider_name == "local",
        url=provider.get_url(match.storage_path),
    )


def delete_image(
    session: Session,
    *,
    image_id: str,
    storage: Optional[StorageProvider] = None,
) -> DeleteResult:
    image = get_image(session, image_id=image_id)
    provider = storage or get_storage_provider()
    deleted, failed = _delete_files(provider, _storage_paths(image), image_id=image_id)

    with transaction(session):
        session.execute(
            delete(AnonymousSubmissionImage)
            .where(AnonymousSubmissionImage.image_id == image_id)
            .execution_options(synchronize_session=False)
        )
        session.delete(image)

    logger.info("image_deleted", image_id=image_id, deleted_files=deleted, failed_files=failed)
    return DeleteResult(image_id=image_id, deleted_files=deleted, failed_files=failed)


def cleanup_orphaned_images(
    session: Session,
    *,
    retention_hours: Optional[int] = None,
    now: Optional[datetime] = None,
    limit: Optional[int] = None,
    dry_run: bool = False,
    storage: Optional[StorageProvider] = None,
) -> CleanupStats:
    """Delete unowned images older than the retention window, files first.

    With ``dry_run`` the orphans are only counted and logged.
    """

    hours = retention_hours if retention_hours is not None else get_settings().orphan_image_retention_hours
    cutoff = (now or _now_utc()) - timedelta(hours=hours)
    stats = CleanupStats()

    orphans = find_orphaned_images(session, older_than=cutoff, limit=limit)
    stats.images_found = len(orphans)
    if dry_run:
        for image in orphans:
            logger.info("orphan_image_found", image_id=image.id, created_at=image.created_at.isoformat())
        logger.info("orphan_cleanup_dry_run", images_found=stats.images_found)
        return stats

    provider = storage or get_storage_provider()
    for image in orphans:
        image_id = image.id
        variant_count = len(image.variants)
        deleted, failed = _delete_files(provider, _storage_paths(image), image_id=image_id)
        stats.storage_files_deleted += deleted
        stats.errors += failed
        try:
            with transaction(session):
                session.delete(image)
        except SQLAlchemyError as exc:
            stats.errors += 1
            logger.error("orphan_image_delete_failed", image_id=image_id, error=str(exc))
            continue
        stats.images_deleted += 1
        stats.variants_deleted += variant_count

    record_orphan_cleanup(result="deleted", count=stats.images_deleted)
    if stats.errors:
        record_orphan_cleanup(result="error", count=stats.errors)
    logger.info(
        "orphan_cleanup_finished",
        images_found=stats.images_found,
        images_deleted=stats.images_deleted,
        storage_files_deleted=stats.storage_files_deleted,
        errors=stats.errors,
    )
    return stats
