from __future__ import annotations

from dataclasses import dataclass
import io
import os
from pathlib import Path
from typing import Dict, List, Optional, Tuple
import uuid

os.environ.setdefault("ENV", "test")
os.environ.setdefault("SECRET_KEY", "partner-me-test-secret-key-0123456789abcdef")
os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")

from fastapi.testclient import TestClient
from PIL import Image as PILImage
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import partner_me.api.main as api_main
from partner_me.auth.service import open_session
from partner_me.core.config import get_settings
from partner_me.core.metrics import reset_metrics_for_tests
from partner_me.core.rate_limit import reset_rate_limiter_cache
from partner_me.files import LocalStorageProvider, get_storage_provider, reset_storage_provider_cache
from partner_me.sms import reset_sms_provider_cache
from partner_me.storage.db import Base, get_session, load_models
from partner_me.storage.models import User
from partner_me.storage.security import hash_password


class FakeRedis:
    """Sorted-set and counter subset used by the Redis rate limiters."""

    def __init__(self) -> None:
        self._zsets: Dict[str, Dict[str, float]] = {}
        self._counters: Dict[str, int] = {}
        self.expirations: Dict[str, int] = {}

    def zadd(self, key: str, mapping: Dict[str, float]):
        self._zsets.setdefault(key, {}).update(mapping)
        return len(mapping)

    def zremrangebyscore(self, key: str, minimum: float, maximum: float):
        members = self._zsets.get(key, {})
        stale = [member for member, score in members.items() if minimum <= score <= maximum]
        for member in stale:
            members.pop(member)
        return len(stale)

    def zrangebyscore(self, key: str, minimum: float, maximum, withscores: bool = False):
        upper = float("inf") if maximum == "+inf" else float(maximum)
        rows = sorted(
            ((member, score) for member, score in self._zsets.get(key, {}).items() if minimum <= score <= upper),
            key=lambda item: item[1],
        )
        return rows if withscores else [member for member, _score in rows]

    def incr(self, key: str):
        self._counters[key] = self._counters.get(key, 0) + 1
        return self._counters[key]

    def expire(self, key: str, seconds: int):
        self.expirations[key] = seconds
        return True


class BrokenRedis:
    def __getattr__(self, name: str):
        def _fail(*args, **kwargs):
            del args, kwargs
            raise ConnectionError(f"redis unavailable during {name}")

        return _fail


class RecordingStorage(LocalStorageProvider):
    """Local storage that can be told to fail deletes or uploads for some paths."""

    def __init__(self, root: Path, *, fail_delete: bool = False, fail_upload_after: Optional[int] = None) -> None:
        super().__init__(root=root)
        self.fail_delete = fail_delete
        self.fail_upload_after = fail_upload_after
        self.uploaded: List[str] = []
        self.deleted: List[str] = []

    def upload(self, path: str, content: bytes, content_type: str) -> str:
        from partner_me.files import FileStorageError

        if self.fail_upload_after is not None and len(self.uploaded) >= self.fail_upload_after:
            raise FileStorageError(f"upload refused path={path}")
        self.uploaded.append(path)
        return super().upload(path, content, content_type)

    def delete(self, path: str) -> None:
        from partner_me.files import FileStorageError

        if self.fail_delete:
            raise FileStorageError(f"delete refused path={path}")
        self.deleted.append(path)
        super().delete(path)


@dataclass
class ApiTestContext:
    client: TestClient
    session_factory: sessionmaker
    storage: LocalStorageProvider
    admin_id: str
    admin_token: str
    user_id: str
    user_token: str

    @property
    def admin_headers(self) -> Dict[str, str]:
        return auth_headers(self.admin_token)

    @property
    def user_headers(self) -> Dict[str, str]:
        return auth_headers(self.user_token)


def build_sqlite_session_factory() -> sessionmaker:
    load_models()
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)


def reset_runtime_caches() -> None:
    get_settings.cache_clear()
    reset_storage_provider_cache()
    reset_sms_provider_cache()
    reset_rate_limiter_cache()
    reset_metrics_for_tests()


def auth_headers(token: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def create_user_with_token(
    session_factory: sessionmaker,
    *,
    is_admin: bool = False,
    username: Optional[str] = None,
    password: str = "correct-horse-battery",
) -> Tuple[str, str]:
    with session_factory() as session:
        user = User(
            username=username or f"user_{uuid.uuid4().hex[:12]}",
            password_hash=hash_password(password),
            is_admin=is_admin,
        )
        session.add(user)
        session.commit()
        issued = open_session(session, user=user)
        return user.id, issued.token


def make_image_bytes(
    image_format: str = "PNG",
    *,
    size: Tuple[int, int] = (640, 480),
    color: Tuple[int, int, int] = (30, 120, 200),
) -> bytes:
    buffer = io.BytesIO()
    image = PILImage.new("RGB", size, color)
    image.save(buffer, format=image_format)
    return buffer.getvalue()


def use_upload_dir(monkeypatch, tmp_path: Path) -> LocalStorageProvider:
    upload_dir = tmp_path / "uploads"
    monkeypatch.setenv("UPLOAD_DIR", str(upload_dir))
    monkeypatch.setenv("STORAGE_TYPE", "local")
    get_settings.cache_clear()
    reset_storage_provider_cache()
    storage = get_storage_provider()
    assert isinstance(storage, LocalStorageProvider)
    return storage


def create_api_test_context(monkeypatch, tmp_path: Path) -> ApiTestContext:
    reset_runtime_caches()
    storage = use_upload_dir(monkeypatch, tmp_path)
    session_factory = build_sqlite_session_factory()

    def override_get_session():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    api_main.app.dependency_overrides[get_session] = override_get_session

    admin_id, admin_token = create_user_with_token(session_factory, is_admin=True)
    user_id, user_token = create_user_with_token(session_factory)

    return ApiTestContext(
        client=TestClient(api_main.app),
        session_factory=session_factory,
        storage=storage,
        admin_id=admin_id,
        admin_token=admin_token,
        user_id=user_id,
        user_token=user_token,
    )


def teardown_api_test_context() -> None:
    api_main.app.dependency_overrides.clear()
    reset_runtime_caches()
