"""Anonymous submission workflow: create, review queue, approval and rejection."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Mapping, Optional, Union

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import set_committed_value

from partner_me.core.config import get_settings
from partner_me.core.errors import NotFoundError, ValidationError
from partner_me.core.logger import get_logger
from partner_me.core.metrics import record_submission_created, record_submission_reviewed
from partner_me.media.ownership import OwnedByBusinessIdea, Unowned, reassign_image_owner, resolve_owners
from partner_me.schemas.common import validate_payload
from partner_me.schemas.submissions import (
    AnonymousSubmissionCreate,
    ApprovalOverrides,
    RejectionRequest,
    SubmissionFilters,
    SubmissionUpdate,
)
from partner_me.storage.db import transaction
from partner_me.storage.models import AnonymousSubmission, AnonymousSubmissionImage, BusinessIdea
from partner_me.submissions import repository
from partner_me.submissions.audit import (
    ApprovedDetails,
    CreatedDetails,
    EditedDetails,
    FlagDetails,
    RejectedDetails,
    SpamCheckDetails,
    append_audit_entry,
    diff_fields,
)
from partner_me.submissions.spam import build_flag_reason, detect_spam_patterns
from partner_me.submissions.states import (
    ACTION_APPROVED,
    ACTION_CREATED,
    ACTION_EDITED,
    ACTION_FLAGGED,
    ACTION_REJECTED,
    ACTION_UNFLAGGED,
    STATUS_APPROVED,
    STATUS_PENDING,
    STATUS_REJECTED,
    ensure_pending,
    transition_error,
)


logger = get_logger("partner_me.submissions")

SUBMISSION_RECEIVED_MESSAGE = "Your business idea has been submitted successfully and is pending review."
ESTIMATED_REVIEW_TIME = "1-3 business days"
STATS_RECENT_DAYS = 30

EDITABLE_FIELDS = ("title", "description", "budget_min", "budget_max", "contact_email", "contact_phone")
OVERRIDE_FIELDS = ("title", "description", "budget_min", "budget_max")


@dataclass(frozen=True)
class ApprovalResult:
    business_idea: BusinessIdea
    submission: AnonymousSubmission


@dataclass(frozen=True)
class SubmissionStats:
    pending: int
    approved: int
    rejected: int
    approved_last_30_days: int
    rejected_last_30_days: int
    flagged_count: int
    average_review_time_hours: float


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _load(session: Session, submission_id: str, *, for_update: bool = False) -> AnonymousSubmission:
    submission = repository.get_submission_row(session, submission_id, for_update=for_update)
    if submission is None:
        raise NotFoundError("Submission not found", code="SUBMISSION_NOT_FOUND")
    return submission


def _snapshot(submission: AnonymousSubmission, fields) -> Dict[str, Any]:
    return {name: getattr(submission, name) for name in fields}


def _check_budget(budget_min: float, budget_max: float) -> None:
    if budget_min > budget_max:
        raise ValidationError(
            "Minimum budget must be less than or equal to maximum budget",
            details={"budget_min": ["Minimum budget must be less than or equal to maximum budget"]},
        )


def _transition(
    session: Session,
    submission: AnonymousSubmission,
    *,
    action: str,
    values: Dict[str, Any],
) -> None:
    """Move a PENDING row to a terminal status; losers of a race get StateError."""

    result = session.execute(
        update(AnonymousSubmission)
        .where(AnonymousSubmission.id == submission.id, AnonymousSubmission.status == STATUS_PENDING)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        session.refresh(submission)
        raise transition_error(submission.status, action)
    for name, value in values.items():
        set_committed_value(submission, name, value)


def _taken_image_ids(session: Session, image_ids: List[str], owners: Mapping[str, Any]) -> List[str]:
    # Images from reviewed submissions keep their link rows and cannot be resubmitted.
    linked = set(
        session.scalars(
            select(AnonymousSubmissionImage.image_id).where(AnonymousSubmissionImage.image_id.in_(image_ids))
        ).all()
    )
    return [image_id for image_id in image_ids if image_id in linked or not isinstance(owners[image_id], Unowned)]


def create_submission(
    session: Session,
    *,
    payload: Union[AnonymousSubmissionCreate, Mapping[str, Any]],
    submitter_ip: str,
) -> AnonymousSubmission:
    data = validate_payload(AnonymousSubmissionCreate, payload)
    if not submitter_ip.strip():
        raise ValidationError("Submitter IP is required", code="IP_EXTRACTION_FAILED")

    owners = resolve_owners(session, data.image_ids)
    missing = [image_id for image_id in data.image_ids if image_id not in owners]
    if missing:
        raise ValidationError("One or more images do not exist", details={"image_ids": missing})
    taken = _taken_image_ids(session, data.image_ids, owners)
    if taken:
        raise ValidationError("One or more images are already in use", details={"image_ids": taken})

    settings = get_settings()
    spam = detect_spam_patterns(
        title=data.title,
        description=data.description,
        contact_email=data.contact_email,
        contact_phone=data.contact_phone,
        flag_threshold=settings.spam_flag_threshold,
        spam_threshold=settings.spam_threshold,
    )
    now = _now_utc()

    with transaction(session):
        submission = AnonymousSubmission(
            title=data.title,
            description=data.description,
            budget_min=data.budget_min,
            budget_max=data.budget_max,
            contact_email=data.contact_email,
            contact_phone=data.contact_phone,
            submitter_ip=submitter_ip,
            status=STATUS_PENDING,
            flagged_for_review=spam.should_flag,
            flag_reason=build_flag_reason(spam),
            submitted_at=now,
        )
        session.add(submission)
        session.flush()

        for position, image_id in enumerate(data.image_ids):
            session.add(AnonymousSubmissionImage(submission_id=submission.id, image_id=image_id, order=position))
        try:
            session.flush()
        except IntegrityError as exc:
            # Another submission linked one of the images after the ownership check.
            raise ValidationError(
                "One or more images are already in use",
                details={"image_ids": list(data.image_ids)},
            ) from exc

        append_audit_entry(
            session,
            submission_id=submission.id,
            action=ACTION_CREATED,
            details=CreatedDetails(
                spam_check=SpamCheckDetails(**spam.as_details()),
                image_count=len(data.image_ids),
            ),
            created_at=now,
        )

    record_submission_created(flagged=spam.should_flag)
    logger.info(
        "submission_created",
        submission_id=submission.id,
        flagged=spam.should_flag,
        spam_confidence=spam.confidence,
        image_count=len(data.image_ids),
    )
    return submission


def list_pending_submissions(
    session: Session,
    *,
    filters: Union[SubmissionFilters, Mapping[str, Any], None] = None,
) -> repository.SubmissionPage:
    criteria = validate_payload(SubmissionFilters, filters if filters is not None else {})
    return repository.find_pending(session, filters=criteria)


def get_submission(session: Session, *, submission_id: str) -> AnonymousSubmission:
    submission = repository.get_submission_row(session, submission_id, with_images=True)
    if submission is None:
        raise NotFoundError("Submission not found", code="SUBMISSION_NOT_FOUND")
    return submission


def update_submission(
    session: Session,
    *,
    submission_id: str,
    reviewer_id: str,
    changes: Union[SubmissionUpdate, Mapping[str, Any]],
) -> AnonymousSubmission:
    data = validate_payload(SubmissionUpdate, changes)
    proposed = {name: getattr(data, name) for name in data.model_fields_set if name in EDITABLE_FIELDS}
    # Text and budget fields cannot be cleared, contacts can.
    proposed = {
        name: value
        for name, value in proposed.items()
        if value is not None or name in ("contact_email", "contact_phone")
    }

    with transaction(session):
        submission = _load(session, submission_id, for_update=True)
        ensure_pending(submission.status, "edit")

        merged = {**_snapshot(submission, EDITABLE_FIELDS), **proposed}
        _check_budget(merged["budget_min"], merged["budget_max"])
        if not merged["contact_email"] and not merged["contact_phone"]:
            raise ValidationError("At least one contact method (email or phone) is required")

        diff = diff_fields(_snapshot(submission, EDITABLE_FIELDS), proposed)
        if not diff:
            return submission

        for name, change in diff.items():
            setattr(submission, name, change.to)
        append_audit_entry(
            session,
            submission_id=submission.id,
            action=ACTION_EDITED,
            performed_by=reviewer_id,
            details=EditedDetails(changes=diff),
        )

    logger.info("submission_edited", submission_id=submission_id, fields=sorted(diff))
    return submission


def approve_submission(
    session: Session,
    *,
    submission_id: str,
    reviewer_id: str,
    overrides: Union[ApprovalOverrides, Mapping[str, Any], None] = None,
) -> ApprovalResult:
    data = validate_payload(ApprovalOverrides, overrides if overrides is not None else {})
    requested = {name: getattr(data, name) for name in OVERRIDE_FIELDS if getattr(data, name) is not None}

    with transaction(session):
        submission = _load(session, submission_id, for_update=True)
        ensure_pending(submission.status, "approve")

        original = _snapshot(submission, OVERRIDE_FIELDS)
        merged = {**original, **requested}
        _check_budget(merged["budget_min"], merged["budget_max"])

        approved_at = _now_utc()
        business_idea = BusinessIdea(
            title=merged["title"],
            description=merged["description"],
            budget_min=merged["budget_min"],
            budget_max=merged["budget_max"],
            images_json="[]",
            created_at=approved_at,
            updated_at=approved_at,
        )
        session.add(business_idea)
        session.flush()

        image_ids = repository.linked_image_ids(session, submission_id=submission.id)
        for position, image_id in enumerate(image_ids):
            reassign_image_owner(
                session,
                image_id=image_id,
                owner=OwnedByBusinessIdea(business_idea.id),
                order=position,
            )

        _transition(
            session,
            submission,
            action="approve",
            values={
                "status": STATUS_APPROVED,
                "business_idea_id": business_idea.id,
                "approved_by_id": reviewer_id,
                "reviewed_at": approved_at,
            },
        )
        append_audit_entry(
            session,
            submission_id=submission.id,
            action=ACTION_APPROVED,
            performed_by=reviewer_id,
            details=ApprovedDetails(
                business_idea_id=business_idea.id,
                overrides=diff_fields(original, requested),
                image_ids=image_ids,
            ),
            created_at=approved_at,
        )

    record_submission_reviewed(outcome="approved")
    logger.info(
        "submission_approved",
        submission_id=submission_id,
        business_idea_id=business_idea.id,
        reviewer_id=reviewer_id,
        overridden_fields=sorted(requested),
        image_count=len(image_ids),
    )
    return ApprovalResult(business_idea=business_idea, submission=submission)


def reject_submission(
    session: Session,
    *,
    submission_id: str,
    reviewer_id: str,
    reason: Optional[str] = None,
) -> AnonymousSubmission:
    reason = validate_payload(RejectionRequest, {"reason": reason}).reason
    if reason is not None:
        reason = reason.strip() or None

    with transaction(session):
        submission = _load(session, submission_id, for_update=True)
        ensure_pending(submission.status, "reject")

        reviewed_at = _now_utc()
        _transition(
            session,
            submission,
            action="reject",
            values={
                "status": STATUS_REJECTED,
                "rejected_by_id": reviewer_id,
                "rejection_reason": reason,
                "reviewed_at": reviewed_at,
            },
        )
        append_audit_entry(
            session,
            submission_id=submission.id,
            action=ACTION_REJECTED,
            performed_by=reviewer_id,
            details=RejectedDetails(reason=reason),
            created_at=reviewed_at,
        )

    record_submission_reviewed(outcome="rejected")
    logger.info("submission_rejected", submission_id=submission_id, reviewer_id=reviewer_id, has_reason=bool(reason))
    return submission


def _set_flag(
    session: Session,
    *,
    submission_id: str,
    reviewer_id: Optional[str],
    flagged: bool,
    reason: Optional[str],
) -> AnonymousSubmission:
    action = ACTION_FLAGGED if flagged else ACTION_UNFLAGGED
    with transaction(session):
        submission = _load(session, submission_id, for_update=True)
        ensure_pending(submission.status, "flag" if flagged else "unflag")

        submission.flagged_for_review = flagged
        submission.flag_reason = (reason or "Flagged by reviewer") if flagged else None
        append_audit_entry(
            session,
            submission_id=submission.id,
            action=action,
            performed_by=reviewer_id,
            details=FlagDetails(reason=reason),
        )

    logger.info("submission_flag_changed", submission_id=submission_id, flagged=flagged)
    return submission


def flag_submission(
    session: Session,
    *,
    submission_id: str,
    reviewer_id: Optional[str] = None,
    reason: Optional[str] = None,
) -> AnonymousSubmission:
    return _set_flag(session, submission_id=submission_id, reviewer_id=reviewer_id, flagged=True, reason=reason)


def unflag_submission(
    session: Session,
    *,
    submission_id: str,
    reviewer_id: Optional[str] = None,
    reason: Optional[str] = None,
) -> AnonymousSubmission:
    return _set_flag(session, submission_id=submission_id, reviewer_id=reviewer_id, flagged=False, reason=reason)


def get_submission_stats(session: Session, *, now: Optional[datetime] = None) -> SubmissionStats:
    current = now or _now_utc()
    since = current - timedelta(days=STATS_RECENT_DAYS)
    counts = repository.count_by_status(session)

    durations = [
        (_as_utc(reviewed_at) - _as_utc(submitted_at)).total_seconds() / 3600
        for submitted_at, reviewed_at in repository.review_intervals(session)
    ]
    average = round(sum(durations) / len(durations), 2) if durations else 0.0

    return SubmissionStats(
        pending=counts.get(STATUS_PENDING, 0),
        approved=counts.get(STATUS_APPROVED, 0),
        rejected=counts.get(STATUS_REJECTED, 0),
        approved_last_30_days=repository.count_reviewed_since(session, status=STATUS_APPROVED, since=since),
        rejected_last_30_days=repository.count_reviewed_since(session, status=STATUS_REJECTED, since=since),
        flagged_count=repository.count_flagged_pending(session),
        average_review_time_hours=average,
    )
