"""Filesystem-backed storage rooted at the configured upload directory."""

from __future__ import annotations

from pathlib import Path

from partner_me.files.base import FileStorageError


class LocalStorageProvider:
    provider_name = "local"

    def __init__(self, *, root: str | Path, public_base_url: str = "") -> None:
        configured = Path(root)
        self._root = (configured if configured.is_absolute() else Path.cwd() / configured).resolve()
        self._public_base_url = public_base_url.rstrip("/")

    @property
    def root(self) -> Path:
        return self._root

    def resolve(self, path: str) -> Path:
        relative = path.strip().lstrip("/")
        if not relative:
            raise FileStorageError("storage_path_empty")
        target = (self._root / relative).resolve()
        if target != self._root and self._root not in target.parents:
            raise FileStorageError("storage_path_outside_root")
        return target

    def upload(self, path: str, content: bytes, content_type: str) -> str:
        del content_type
        target = self.resolve(path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(content)
        except OSError as exc:
            raise FileStorageError(f"local_upload_failed path={path}") from exc
        return path

    def delete(self, path: str) -> None:
        target = self.resolve(path)
        try:
            target.unlink(missing_ok=True)
        except OSError as exc:
            raise FileStorageError(f"local_delete_failed path={path}") from exc
        # Drop now-empty image directories, never the root itself.
        parent = target.parent
        while parent != self._root and self._root in parent.parents:
            try:
                parent.rmdir()
            except OSError:
                break
            parent = parent.parent

    def exists(self, path: str) -> bool:
        return self.resolve(path).is_file()

    def read(self, path: str) -> bytes:
        target = self.resolve(path)
        try:
            return target.read_bytes()
        except OSError as exc:
            raise FileStorageError(f"local_read_failed path={path}") from exc

    def get_url(self, path: str) -> str:
        relative = path.strip().lstrip("/")
        if self._public_base_url:
            return f"{self._public_base_url}/uploads/{relative}"
        return f"/uploads/{relative}"
