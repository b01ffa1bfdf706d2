from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select

from partner_me.storage.models import Image, User
from scripts import cleanup_orphaned_images, create_admin
from tests.conftest import build_sqlite_session_factory, reset_runtime_caches, use_upload_dir


def test_create_admin_script(monkeypatch, capsys) -> None:
    reset_runtime_caches()
    factory = build_sqlite_session_factory()
    monkeypatch.setattr(create_admin, "get_session_factory", lambda: factory)

    assert create_admin.main(["ops_admin", "--password", "ops-password-1"]) == 0

    output = capsys.readouterr().out
    assert "username=ops_admin" in output
    with factory() as session:
        user = session.scalar(select(User).where(User.username == "ops_admin"))
        assert user is not None and user.is_admin is True
        assert f"admin_user_id={user.id}" in output


def test_create_admin_script_reports_validation_errors(monkeypatch, capsys) -> None:
    reset_runtime_caches()
    factory = build_sqlite_session_factory()
    monkeypatch.setattr(create_admin, "get_session_factory", lambda: factory)

    assert create_admin.main(["ops_admin", "--password", "short"]) == 1

    output = capsys.readouterr().out
    assert "error=VALIDATION_ERROR" in output
    assert "password:" in output


def test_cleanup_script_prints_report(monkeypatch, tmp_path, capsys) -> None:
    reset_runtime_caches()
    storage = use_upload_dir(monkeypatch, tmp_path)
    factory = build_sqlite_session_factory()
    monkeypatch.setattr(cleanup_orphaned_images, "get_session_factory", lambda: factory)
    storage.upload("temp/old/full.webp", b"old", "image/webp")
    with factory() as session:
        session.add(
            Image(
                id="old",
                filename="old.png",
                storage_path="temp/old/full.webp",
                mime_type="image/png",
                size=3,
                width=400,
                height=400,
                created_at=datetime.now(timezone.utc) - timedelta(hours=30),
            )
        )
        session.commit()

    try:
        assert cleanup_orphaned_images.main(["--retention-hours", "24"]) == 0
    finally:
        reset_runtime_caches()

    output = capsys.readouterr().out.splitlines()
    assert "images_found=1" in output
    assert "images_deleted=1" in output
    assert "errors=0" in output
    assert storage.exists("temp/old/full.webp") is False
    with factory() as session:
        assert session.scalars(select(Image)).all() == []


def test_cleanup_script_rejects_bad_arguments() -> None:
    with pytest.raises(ValueError):
        cleanup_orphaned_images.main(["--retention-hours", "0"])
