"""Append-only submission audit log with typed metadata per action."""

from __future__ import annotations

from datetime import datetime, timezone
import json
from typing import Any, Dict, List, Mapping, Optional, Type, Union

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import select
from sqlalchemy.orm import Session

from partner_me.storage.models import SubmissionAuditLog
from partner_me.submissions.states import (
    ACTION_APPROVED,
    ACTION_CREATED,
    ACTION_EDITED,
    ACTION_FLAGGED,
    ACTION_REJECTED,
    ACTION_UNFLAGGED,
)


class SpamCheckDetails(BaseModel):
    flagged: bool
    is_spam: bool
    confidence: float
    reasons: List[str] = Field(default_factory=list)


class FieldChange(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    from_: Any = Field(default=None, alias="from")
    to: Any = None


class CreatedDetails(BaseModel):
    spam_check: SpamCheckDetails
    image_count: int = 0


class EditedDetails(BaseModel):
    changes: Dict[str, FieldChange]


class ApprovedDetails(BaseModel):
    business_idea_id: str
    overrides: Dict[str, FieldChange] = Field(default_factory=dict)
    image_ids: List[str] = Field(default_factory=list)


class RejectedDetails(BaseModel):
    reason: Optional[str] = None


class FlagDetails(BaseModel):
    reason: Optional[str] = None


AuditDetails = Union[CreatedDetails, EditedDetails, ApprovedDetails, RejectedDetails, FlagDetails]

AUDIT_DETAIL_MODELS: Dict[str, Type[BaseModel]] = {
    ACTION_CREATED: CreatedDetails,
    ACTION_EDITED: EditedDetails,
    ACTION_APPROVED: ApprovedDetails,
    ACTION_REJECTED: RejectedDetails,
    ACTION_FLAGGED: FlagDetails,
    ACTION_UNFLAGGED: FlagDetails,
}


def _json_dumps(payload: Dict[str, Any]) -> str:
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=True, sort_keys=True)


def diff_fields(current: Mapping[str, Any], proposed: Mapping[str, Any]) -> Dict[str, FieldChange]:
    """Return `{field: {from, to}}` for proposed values that differ from current ones."""

    changes: Dict[str, FieldChange] = {}
    for name, value in proposed.items():
        if current.get(name) != value:
            changes[name] = FieldChange(from_=current.get(name), to=value)
    return changes


def append_audit_entry(
    session: Session,
    *,
    submission_id: str,
    action: str,
    details: AuditDetails,
    performed_by: Optional[str] = None,
    created_at: Optional[datetime] = None,
) -> SubmissionAuditLog:
    expected = AUDIT_DETAIL_MODELS.get(action)
    if expected is None:
        raise ValueError(f"Unknown audit action: {action}")
    if not isinstance(details, expected):
        raise TypeError(f"{action} audit entries require {expected.__name__}, got {type(details).__name__}")

    entry = SubmissionAuditLog(
        submission_id=submission_id,
        action=action,
        performed_by=performed_by,
        details_json=_json_dumps(details.model_dump(mode="json", by_alias=True)),
        created_at=created_at or datetime.now(timezone.utc),
    )
    session.add(entry)
    return entry


def read_audit_details(entry: SubmissionAuditLog) -> AuditDetails:
    model = AUDIT_DETAIL_MODELS[entry.action]
    return model.model_validate(json.loads(entry.details_json or "{}"))


def list_audit_entries(session: Session, *, submission_id: str) -> list[SubmissionAuditLog]:
    """Newest first."""

    return list(
        session.scalars(
            select(SubmissionAuditLog)
            .where(SubmissionAuditLog.submission_id == submission_id)
            .order_by(SubmissionAuditLog.created_at.desc(), SubmissionAuditLog.id.desc())
        ).all()
    )
