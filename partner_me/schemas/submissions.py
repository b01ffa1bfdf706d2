"""Schemas for anonymous submissions and the admin moderation queue."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Annotated, Any, Dict, List, Optional

from pydantic import BaseModel, BeforeValidator, ConfigDict, EmailStr, Field, StringConstraints, field_validator, model_validator

from partner_me.schemas.common import Pagination
from partner_me.schemas.media import ImageItem


PHONE_PATTERN = r"^(\+?\d{1,3}[-.\s]?)?(\(?\d{3,4}\)?[-.\s]?)?\d{3,4}[-.\s]?\d{4,}$"
MAX_SUBMISSION_IMAGES = 10


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


OptionalEmail = Annotated[Optional[EmailStr], BeforeValidator(_blank_to_none)]
OptionalPhone = Annotated[
    Optional[Annotated[str, StringConstraints(pattern=PHONE_PATTERN)]],
    BeforeValidator(_blank_to_none),
]
SearchText = Annotated[
    Optional[Annotated[str, StringConstraints(max_length=200)]],
    BeforeValidator(_blank_to_none),
]


class AnonymousSubmissionCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    title: str = Field(min_length=1, max_length=200)
    description: str = Field(min_length=10, max_length=5000)
    budget_min: float = Field(ge=0)
    budget_max: float = Field(ge=0)
    contact_email: OptionalEmail = None
    contact_phone: OptionalPhone = None
    image_ids: List[str] = Field(min_length=1, max_length=MAX_SUBMISSION_IMAGES)

    @model_validator(mode="after")
    def _check_invariants(self) -> "AnonymousSubmissionCreate":
        if self.budget_min > self.budget_max:
            raise ValueError("Minimum budget must be less than or equal to maximum budget")
        if not self.contact_email and not self.contact_phone:
            raise ValueError("At least one contact method (email or phone) is required")
        if len(set(self.image_ids)) != len(self.image_ids):
            raise ValueError("Image ids must be unique")
        return self


class SubmissionUpdate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, min_length=10, max_length=5000)
    budget_min: Optional[float] = Field(default=None, ge=0)
    budget_max: Optional[float] = Field(default=None, ge=0)
    contact_email: OptionalEmail = None
    contact_phone: OptionalPhone = None

    @model_validator(mode="after")
    def _check_budget(self) -> "SubmissionUpdate":
        if self.budget_min is not None and self.budget_max is not None and self.budget_min > self.budget_max:
            raise ValueError("Minimum budget must be less than or equal to maximum budget")
        return self


class ApprovalOverrides(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, min_length=10, max_length=5000)
    budget_min: Optional[float] = Field(default=None, ge=0)
    budget_max: Optional[float] = Field(default=None, ge=0)

    @model_validator(mode="after")
    def _check_budget(self) -> "ApprovalOverrides":
        if self.budget_min is not None and self.budget_max is not None and self.budget_min > self.budget_max:
            raise ValueError("Minimum budget must be less than or equal to maximum budget")
        return self


class RejectionRequest(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=1000)


class FlagRequest(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=500)


class SubmissionFilters(BaseModel):
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=20, ge=1, le=100)
    search: SearchText = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    has_contact: Optional[bool] = None
    flagged: Optional[bool] = None

    @field_validator("date_from", "date_to")
    @classmethod
    def _as_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    @model_validator(mode="after")
    def _check_range(self) -> "SubmissionFilters":
        if self.date_from is not None and self.date_to is not None and self.date_from > self.date_to:
            raise ValueError("date_from must be before or equal to date_to")
        return self


class SubmissionCreatedResponse(BaseModel):
    id: str
    message: str
    estimated_review_time: str


class SubmissionItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    description: str
    budget_min: float
    budget_max: float
    contact_email: Optional[str]
    contact_phone: Optional[str]
    submitter_ip: str
    status: str
    rejection_reason: Optional[str]
    flagged_for_review: bool
    flag_reason: Optional[str]
    approved_by_id: Optional[str]
    rejected_by_id: Optional[str]
    business_idea_id: Optional[str]
    submitted_at: datetime
    reviewed_at: Optional[datetime]
    images: List[ImageItem] = Field(default_factory=list)


class AuditLogItem(BaseModel):
    id: str
    action: str
    performed_by: Optional[str]
    details: Dict[str, Any]
    created_at: datetime


class SubmissionDetail(SubmissionItem):
    audit_logs: List[AuditLogItem] = Field(default_factory=list)


class PendingSubmissionPage(BaseModel):
    items: List[SubmissionItem]
    pagination: Pagination


class SubmissionStatsResponse(BaseModel):
    pending: int
    approved: int
    rejected: int
    approved_last_30_days: int
    rejected_last_30_days: int
    flagged_count: int
    average_review_time_hours: float
