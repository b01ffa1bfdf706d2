"""Anonymous submission intake and admin moderation routes."""

from __future__ import annotations

from dataclasses import asdict
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from partner_me.auth.dependencies import require_admin
from partner_me.auth.jwt import AuthContext
from partner_me.core.errors import RateLimitError
from partner_me.core.metrics import record_rate_limit_block
from partner_me.core.network import require_client_ip
from partner_me.core.rate_limit import SlidingWindowRateLimiter, get_submission_rate_limiter
from partner_me.ideas.service import serialize_idea
from partner_me.media.service import serialize_image
from partner_me.schemas.common import Envelope, Pagination
from partner_me.schemas.ideas import BusinessIdeaItem
from partner_me.schemas.submissions import (
    AnonymousSubmissionCreate,
    ApprovalOverrides,
    AuditLogItem,
    FlagRequest,
    PendingSubmissionPage,
    RejectionRequest,
    SubmissionCreatedResponse,
    SubmissionDetail,
    SubmissionItem,
    SubmissionStatsResponse,
    SubmissionUpdate,
)
from partner_me.storage.db import get_session
from partner_me.storage.models import AnonymousSubmission
from partner_me.submissions import service
from partner_me.submissions.audit import list_audit_entries, read_audit_details


router = APIRouter(tags=["submissions"])
admin_router = APIRouter(prefix="/admin/submissions", tags=["admin-submissions"])


def serialize_submission(submission: AnonymousSubmission) -> SubmissionItem:
    item = SubmissionItem.model_validate(submission, from_attributes=True)
    item.images = [serialize_image(link.image) for link in submission.image_links]
    return item


def _detail(session: Session, submission: AnonymousSubmission) -> SubmissionDetail:
    base = serialize_submission(submission)
    audit_logs = [
        AuditLogItem(
            id=entry.id,
            action=entry.action,
            performed_by=entry.performed_by,
            details=read_audit_details(entry).model_dump(mode="json", by_alias=True),
            created_at=entry.created_at,
        )
        for entry in list_audit_entries(session, submission_id=submission.id)
    ]
    return SubmissionDetail(**base.model_dump(), audit_logs=audit_logs)


@router.post(
    "/submissions/anonymous",
    response_model=Envelope[SubmissionCreatedResponse],
    status_code=status.HTTP_201_CREATED,
)
def create_anonymous_submission(
    payload: AnonymousSubmissionCreate,
    client_ip: str = Depends(require_client_ip),
    limiter: SlidingWindowRateLimiter = Depends(get_submission_rate_limiter),
    session: Session = Depends(get_session),
) -> Envelope[SubmissionCreatedResponse]:
    check = limiter.check(client_ip)
    if not check.allowed:
        record_rate_limit_block(kind="submission")
        raise RateLimitError(check.reason or "Submission rate limit exceeded", retry_after=check.retry_after or 60)

    submission = service.create_submission(session, payload=payload, submitter_ip=client_ip)
    limiter.record(client_ip)
    return Envelope(
        data=SubmissionCreatedResponse(
            id=submission.id,
            message=service.SUBMISSION_RECEIVED_MESSAGE,
            estimated_review_time=service.ESTIMATED_REVIEW_TIME,
        )
    )


@admin_router.get("/pending", response_model=Envelope[PendingSubmissionPage])
def list_pending(
    page: int = Query(default=1),
    limit: int = Query(default=20),
    search: Optional[str] = Query(default=None),
    date_from: Optional[datetime] = Query(default=None),
    date_to: Optional[datetime] = Query(default=None),
    has_contact: Optional[bool] = Query(default=None),
    flagged: Optional[bool] = Query(default=None),
    _admin: AuthContext = Depends(require_admin),
    session: Session = Depends(get_session),
) -> Envelope[PendingSubmissionPage]:
    result = service.list_pending_submissions(
        session,
        filters={
            "page": page,
            "limit": limit,
            "search": search,
            "date_from": date_from,
            "date_to": date_to,
            "has_contact": has_contact,
            "flagged": flagged,
        },
    )
    return Envelope(
        data=PendingSubmissionPage(
            items=[serialize_submission(item) for item in result.items],
            pagination=Pagination(
                page=result.page,
                limit=result.limit,
                total=result.total,
                total_pages=result.total_pages,
            ),
        )
    )


@admin_router.get("/stats", response_model=Envelope[SubmissionStatsResponse])
def submission_stats(
    _admin: AuthContext = Depends(require_admin),
    session: Session = Depends(get_session),
) -> Envelope[SubmissionStatsResponse]:
    stats = service.get_submission_stats(session)
    return Envelope(data=SubmissionStatsResponse(**asdict(stats)))


@admin_router.get("/{submission_id}", response_model=Envelope[SubmissionDetail])
def submission_detail(
    submission_id: str,
    _admin: AuthContext = Depends(require_admin),
    session: Session = Depends(get_session),
) -> Envelope[SubmissionDetail]:
    submission = service.get_submission(session, submission_id=submission_id)
    return Envelope(data=_detail(session, submission))


@admin_router.patch("/{submission_id}", response_model=Envelope[SubmissionDetail])
def edit_submission(
    submission_id: str,
    payload: SubmissionUpdate,
    admin: AuthContext = Depends(require_admin),
    session: Session = Depends(get_session),
) -> Envelope[SubmissionDetail]:
    service.update_submission(session, submission_id=submission_id, reviewer_id=admin.user_id, changes=payload)
    submission = service.get_submission(session, submission_id=submission_id)
    return Envelope(data=_detail(session, submission), message="Submission updated successfully")


@admin_router.patch("/{submission_id}/approve", response_model=Envelope[BusinessIdeaItem])
def approve_submission(
    submission_id: str,
    overrides: Optional[ApprovalOverrides] = None,
    admin: AuthContext = Depends(require_admin),
    session: Session = Depends(get_session),
) -> Envelope[BusinessIdeaItem]:
    result = service.approve_submission(
        session,
        submission_id=submission_id,
        reviewer_id=admin.user_id,
        overrides=overrides,
    )
    session.refresh(result.business_idea)
    return Envelope(data=serialize_idea(result.business_idea), message="Submission approved successfully")


@admin_router.patch("/{submission_id}/reject", response_model=Envelope[SubmissionItem])
def reject_submission(
    submission_id: str,
    payload: Optional[RejectionRequest] = None,
    admin: AuthContext = Depends(require_admin),
    session: Session = Depends(get_session),
) -> Envelope[SubmissionItem]:
    submission = service.reject_submission(
        session,
        submission_id=submission_id,
        reviewer_id=admin.user_id,
        reason=payload.reason if payload else None,
    )
    return Envelope(data=serialize_submission(submission), message="Submission rejected successfully")


@admin_router.patch("/{submission_id}/flag", response_model=Envelope[SubmissionItem])
def flag_submission(
    submission_id: str,
    payload: Optional[FlagRequest] = None,
    admin: AuthContext = Depends(require_admin),
    session: Session = Depends(get_session),
) -> Envelope[SubmissionItem]:
    submission = service.flag_submission(
        session,
        submission_id=submission_id,
        reviewer_id=admin.user_id,
        reason=payload.reason if payload else None,
    )
    return Envelope(data=serialize_submission(submission))


@admin_router.patch("/{submission_id}/unflag", response_model=Envelope[SubmissionItem])
def unflag_submission(
    submission_id: str,
    payload: Optional[FlagRequest] = None,
    admin: AuthContext = Depends(require_admin),
    session: Session = Depends(get_session),
) -> Envelope[SubmissionItem]:
    submission = service.unflag_submission(
        session,
        submission_id=submission_id,
        reviewer_id=admin.user_id,
        reason=payload.reason if payload else None,
    )
    return Envelope(data=serialize_submission(submission))
