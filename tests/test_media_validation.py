import io

from PIL import Image as PILImage
import pytest

from partner_me.core.config import get_settings
from partner_me.core.errors import ValidationError
from partner_me.media.validation import (
    matches_magic_bytes,
    normalize_mime_type,
    sanitize_filename,
    validate_image,
)
from tests.conftest import make_image_bytes


@pytest.fixture(autouse=True)
def _fresh_settings():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.mark.parametrize(
    ("image_format", "filename", "content_type"),
    [
        ("PNG", "photo.png", "image/png"),
        ("JPEG", "photo.JPG", "image/jpeg"),
        ("JPEG", "photo.jpeg", "image/jpg"),
        ("WEBP", "photo.webp", "image/webp"),
        ("GIF", "photo.gif", "image/gif"),
    ],
)
def test_accepts_supported_formats(image_format: str, filename: str, content_type: str) -> None:
    content = make_image_bytes(image_format, size=(400, 300))

    validated = validate_image(filename, content_type, content)

    assert validated.width == 400
    assert validated.height == 300
    assert validated.size == len(content)
    assert validated.mime_type == normalize_mime_type(content_type)


def test_rejects_empty_upload() -> None:
    with pytest.raises(ValidationError) as exc:
        validate_image("photo.png", "image/png", b"")
    assert exc.value.code == "NO_FILE"


def test_rejects_oversized_upload(monkeypatch) -> None:
    monkeypatch.setenv("MAX_UPLOAD_SIZE_BYTES", "1024")
    get_settings.cache_clear()
    content = make_image_bytes("PNG", size=(400, 400))
    assert len(content) > 0

    with pytest.raises(ValidationError) as exc:
        validate_image("photo.png", "image/png", content + b"\0" * 2048)

    assert exc.value.code == "INVALID_FILE"
    assert "maximum" in exc.value.message


def test_rejects_unsupported_mime_type() -> None:
    with pytest.raises(ValidationError) as exc:
        validate_image("notes.txt", "text/plain", b"hello world")
    assert exc.value.code == "INVALID_FILE"


def test_rejects_extension_mismatch() -> None:
    content = make_image_bytes("PNG")

    with pytest.raises(ValidationError) as exc:
        validate_image("photo.jpg", "image/png", content)

    assert "extension" in exc.value.message


def test_rejects_spoofed_content() -> None:
    png = make_image_bytes("PNG")

    with pytest.raises(ValidationError) as exc:
        validate_image("photo.jpg", "image/jpeg", png)

    assert exc.value.message == "File content does not match the declared file type"


def test_rejects_truncated_image() -> None:
    png = make_image_bytes("PNG")

    with pytest.raises(ValidationError) as exc:
        validate_image("photo.png", "image/png", png[:64])

    assert exc.value.code == "INVALID_FILE"


@pytest.mark.parametrize("size", [(100, 400), (400, 150), (5000, 300)])
def test_enforces_dimension_bounds(size) -> None:
    content = make_image_bytes("PNG", size=size)

    with pytest.raises(ValidationError) as exc:
        validate_image("photo.png", "image/png", content)

    assert "dimensions" in exc.value.message


def test_helpers() -> None:
    assert normalize_mime_type("IMAGE/JPG; charset=binary") == "image/jpeg"
    assert normalize_mime_type(None) == ""
    assert sanitize_filename("../../etc/passwd.png") == "passwd.png"
    assert sanitize_filename("C:\\Users\\me\\cat.gif") == "cat.gif"
    assert sanitize_filename("") == "upload"

    buffer = io.BytesIO()
    PILImage.new("RGB", (10, 10)).save(buffer, format="WEBP")
    assert matches_magic_bytes("image/webp", buffer.getvalue()) is True
    assert matches_magic_bytes("image/gif", b"GIF89a....") is True
    assert matches_magic_bytes("image/png", b"GIF89a....") is False
