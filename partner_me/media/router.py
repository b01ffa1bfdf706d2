"""Image upload and serving routes."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Query, Request, UploadFile
from fastapi.responses import RedirectResponse, Response
from sqlalchemy.orm import Session

from partner_me.auth.dependencies import get_optional_auth_context, require_admin, require_auth_context
from partner_me.auth.jwt import AuthContext
from partner_me.core.config import get_settings
from partner_me.core.errors import RateLimitError, ValidationError
from partner_me.core.metrics import record_rate_limit_block
from partner_me.core.network import require_client_ip
from partner_me.core.rate_limit import SlidingWindowRateLimiter, get_upload_rate_limiter
from partner_me.files import get_storage_provider
from partner_me.media import service
from partner_me.media.processing import VARIANT_FULL
from partner_me.media.validation import validate_image
from partner_me.schemas.common import Envelope
from partner_me.schemas.media import ImageDeleteResponse, UploadResponse
from partner_me.storage.db import get_session


router = APIRouter(tags=["media"])


@router.post("/upload", response_model=Envelope[UploadResponse])
def upload(
    request: Request,
    file: Optional[UploadFile] = File(default=None),
    business_idea_id: Optional[str] = Form(default=None),
    auth: Optional[AuthContext] = Depends(get_optional_auth_context),
    limiter: SlidingWindowRateLimiter = Depends(get_upload_rate_limiter),
    session: Session = Depends(get_session),
) -> Envelope[UploadResponse]:
    if file is None:
        raise ValidationError("No file provided", code="NO_FILE")

    idea_id = (business_idea_id or "").strip() or None
    if idea_id is not None:
        admin = require_admin(require_auth_context(request, auth, session))
        identifier = f"user:{admin.user_id}"
    else:
        identifier = f"ip:{require_client_ip(request)}"

    check = limiter.check(identifier)
    if not check.allowed:
        record_rate_limit_block(kind="upload")
        raise RateLimitError(check.reason or "Upload rate limit exceeded", retry_after=check.retry_after or 60)

    # One byte past the limit is enough to reject oversized files.
    content = file.file.read(get_settings().max_upload_size_bytes + 1)
    validated = validate_image(file.filename, file.content_type, content)
    limiter.record(identifier)

    result = service.upload_image(
        session,
        filename=file.filename,
        content_type=file.content_type,
        content=content,
        business_idea_id=idea_id,
        validated=validated,
    )
    image = result.image
    return Envelope(
        data=UploadResponse(
            id=image.id,
            url=result.url,
            thumbnail=result.thumbnail_url,
            medium=result.medium_url,
            filename=image.filename,
            size=image.size,
            width=image.width,
            height=image.height,
            business_idea_id=image.business_idea_id,
        )
    )


@router.get("/images/{image_id}")
def serve_image(
    image_id: str,
    request: Request,
    variant: str = Query(default=VARIANT_FULL),
    session: Session = Depends(get_session),
):
    storage = get_storage_provider()
    found = service.get_image_variant(session, image_id=image_id, variant=variant, storage=storage)
    headers = {"Cache-Control": service.CACHE_CONTROL_IMMUTABLE, "ETag": found.etag}

    if not found.is_local:
        return RedirectResponse(url=found.url, status_code=302, headers=headers)

    if request.headers.get("if-none-match") == found.etag:
        return Response(status_code=304, headers=headers)

    headers["Vary"] = "Accept-Encoding"
    return Response(content=storage.read(found.storage_path), media_type=found.mime_type, headers=headers)


@router.delete("/images/{image_id}", response_model=Envelope[ImageDeleteResponse])
def remove_image(
    image_id: str,
    _admin: AuthContext = Depends(require_admin),
    session: Session = Depends(get_session),
) -> Envelope[ImageDeleteResponse]:
    result = service.delete_image(session, image_id=image_id)
    return Envelope(
        data=ImageDeleteResponse(
            id=result.image_id,
            deleted_files=result.deleted_files,
            failed_files=result.failed_files,
        ),
        message="Image deleted successfully",
    )
