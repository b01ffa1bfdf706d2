from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
from sqlalchemy import select

from partner_me.core.errors import NotFoundError, StorageError, ValidationError
from partner_me.core.metrics import render_prometheus_metrics
from partner_me.media import service
from partner_me.storage.models import AnonymousSubmission, AnonymousSubmissionImage, BusinessIdea, Image, ImageVariant
from tests.conftest import RecordingStorage, build_sqlite_session_factory, make_image_bytes, reset_runtime_caches


@pytest.fixture()
def session():
    reset_runtime_caches()
    factory = build_sqlite_session_factory()
    with factory() as db_session:
        yield db_session
    reset_runtime_caches()


@pytest.fixture()
def storage(tmp_path: Path) -> RecordingStorage:
    return RecordingStorage(tmp_path / "uploads")


def _upload(session, storage, **kwargs):
    return service.upload_image(
        session,
        filename=kwargs.pop("filename", "storefront.png"),
        content_type=kwargs.pop("content_type", "image/png"),
        content=kwargs.pop("content", make_image_bytes("PNG", size=(1000, 800))),
        storage=storage,
        **kwargs,
    )


def test_upload_image_stores_variants_and_rows(session, storage) -> None:
    result = _upload(session, storage)

    image = result.image
    assert image.filename == "storefront.png"
    assert image.mime_type == "image/png"
    assert (image.width, image.height) == (1000, 800)
    assert image.business_idea_id is None
    assert image.storage_path == f"temp/{image.id}/full.webp"
    assert sorted(storage.uploaded) == sorted(
        f"temp/{image.id}/{name}.webp" for name in ("full", "medium", "thumbnail")
    )
    for path in storage.uploaded:
        assert storage.exists(path)

    variants = session.scalars(select(ImageVariant).where(ImageVariant.image_id == image.id)).all()
    assert {variant.variant for variant in variants} == {"full", "medium", "thumbnail"}
    assert result.url.endswith(f"/api/images/{image.id}?variant=full")
    assert result.thumbnail_url.endswith("?variant=thumbnail")

    metrics = render_prometheus_metrics(app_name="partner_me", app_version="test", env="test")
    assert 'partner_me_images_uploaded_total{owner="anonymous"} 1' in metrics


def test_upload_for_business_idea_appends_order(session, storage) -> None:
    idea = BusinessIdea(title="Cafe", description="Corner cafe.", budget_min=1, budget_max=2)
    session.add(idea)
    session.commit()

    first = _upload(session, storage, business_idea_id=idea.id)
    second = _upload(session, storage, business_idea_id=idea.id)

    assert first.image.storage_path.startswith(f"business-ideas/{idea.id}/")
    assert (first.image.order, second.image.order) == (0, 1)


def test_upload_for_unknown_business_idea(session, storage) -> None:
    with pytest.raises(NotFoundError) as exc:
        _upload(session, storage, business_idea_id="missing")

    assert exc.value.code == "BUSINESS_IDEA_NOT_FOUND"
    assert storage.uploaded == []


def test_upload_rejects_invalid_content_before_storing(session, storage) -> None:
    with pytest.raises(ValidationError):
        _upload(session, storage, content=b"not an image at all")

    assert storage.uploaded == []
    assert session.scalars(select(Image)).all() == []


def test_upload_cleans_up_when_storage_fails(session, tmp_path) -> None:
    storage = RecordingStorage(tmp_path / "uploads", fail_upload_after=1)

    with pytest.raises(StorageError):
        _upload(session, storage)

    assert len(storage.uploaded) == 1
    assert storage.deleted == storage.uploaded
    assert session.scalars(select(Image)).all() == []


def test_get_image_variant(session, storage) -> None:
    image = _upload(session, storage).image

    found = service.get_image_variant(session, image_id=image.id, variant="thumbnail", storage=storage)

    assert found.storage_path == f"temp/{image.id}/thumbnail.webp"
    assert found.mime_type == "image/webp"
    assert found.etag == f'"{image.id}-thumbnail"'
    assert found.is_local is True

    with pytest.raises(ValidationError) as bad_variant:
        service.get_image_variant(session, image_id=image.id, variant="huge", storage=storage)
    assert bad_variant.value.code == "INVALID_VARIANT"

    with pytest.raises(NotFoundError):
        service.get_image_variant(session, image_id="missing", storage=storage)

    storage.delete(found.storage_path)
    with pytest.raises(NotFoundError) as missing_file:
        service.get_image_variant(session, image_id=image.id, variant="thumbnail", storage=storage)
    assert missing_file.value.code == "FILE_NOT_FOUND"


def test_delete_image_removes_files_links_and_rows(session, storage) -> None:
    image = _upload(session, storage).image
    submission = AnonymousSubmission(
        title="Idea",
        description="Idea description.",
        budget_min=1,
        budget_max=2,
        contact_email="a@b.co",
        submitter_ip="10.0.0.1",
    )
    session.add(submission)
    session.flush()
    session.add(AnonymousSubmissionImage(submission_id=submission.id, image_id=image.id, order=0))
    session.commit()

    result = service.delete_image(session, image_id=image.id, storage=storage)

    assert result.deleted_files == 3
    assert result.failed_files == 0
    assert session.get(Image, image.id) is None
    assert session.scalars(select(ImageVariant)).all() == []
    assert session.scalars(select(AnonymousSubmissionImage)).all() == []
    assert not any(storage.root.rglob("*.webp"))


def test_cleanup_deletes_only_expired_orphans(session, storage) -> None:
    now = datetime.now(timezone.utc)
    stale = _upload(session, storage).image
    fresh = _upload(session, storage).image
    stale.created_at = now - timedelta(hours=48)
    session.commit()

    stats = service.cleanup_orphaned_images(session, retention_hours=24, now=now, storage=storage)

    assert stats.images_found == 1
    assert stats.images_deleted == 1
    assert stats.variants_deleted == 3
    assert stats.storage_files_deleted == 3
    assert stats.errors == 0
    assert session.get(Image, stale.id) is None
    assert session.get(Image, fresh.id) is not None


def test_cleanup_dry_run_deletes_nothing(session, storage) -> None:
    now = datetime.now(timezone.utc)
    stale = _upload(session, storage).image
    stale.created_at = now - timedelta(hours=48)
    session.commit()

    stats = service.cleanup_orphaned_images(session, now=now, dry_run=True, storage=storage)

    assert stats.images_found == 1
    assert stats.images_deleted == 0
    assert storage.deleted == []
    assert session.get(Image, stale.id) is not None


def test_cleanup_counts_storage_failures_and_continues(session, tmp_path) -> None:
    now = datetime.now(timezone.utc)
    storage = RecordingStorage(tmp_path / "uploads")
    first = _upload(session, storage).image
    second = _upload(session, storage).image
    first.created_at = now - timedelta(hours=30)
    second.created_at = now - timedelta(hours=30)
    session.commit()
    storage.fail_delete = True

    stats = service.cleanup_orphaned_images(session, now=now, storage=storage)

    assert stats.images_found == 2
    assert stats.images_deleted == 2
    assert stats.storage_files_deleted == 0
    assert stats.errors == 6
    metrics = render_prometheus_metrics(app_name="partner_me", app_version="test", env="test")
    assert 'partner_me_orphan_cleanup_total{result="error"} 6' in metrics
