"""Query helpers over anonymous submissions and their image links."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
import math
from typing import Dict, List, Optional, Sequence, Tuple

from sqlalchemy import and_, func, or_, select
from sqlalchemy.orm import Session, selectinload

from partner_me.schemas.submissions import SubmissionFilters
from partner_me.storage.models import AnonymousSubmission, AnonymousSubmissionImage, Image
from partner_me.submissions.states import STATUS_PENDING


@dataclass(frozen=True)
class SubmissionPage:
    items: List[AnonymousSubmission]
    page: int
    limit: int
    total: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0


def escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def pending_filter_clauses(filters: SubmissionFilters) -> list:
    """Build AND-combined WHERE clauses; PENDING is always enforced."""

    clauses = [AnonymousSubmission.status == STATUS_PENDING]

    if filters.search:
        pattern = f"%{escape_like(filters.search)}%"
        clauses.append(
            or_(
                AnonymousSubmission.title.ilike(pattern, escape="\\"),
                AnonymousSubmission.description.ilike(pattern, escape="\\"),
            )
        )
    if filters.date_from is not None:
        clauses.append(AnonymousSubmission.submitted_at >= filters.date_from)
    if filters.date_to is not None:
        clauses.append(AnonymousSubmission.submitted_at <= filters.date_to)
    if filters.has_contact is True:
        clauses.append(
            or_(
                AnonymousSubmission.contact_email.is_not(None),
                AnonymousSubmission.contact_phone.is_not(None),
            )
        )
    elif filters.has_contact is False:
        clauses.append(
            and_(
                AnonymousSubmission.contact_email.is_(None),
                AnonymousSubmission.contact_phone.is_(None),
            )
        )
    if filters.flagged is not None:
        clauses.append(AnonymousSubmission.flagged_for_review == filters.flagged)
    return clauses


def _with_images(statement):
    return statement.options(
        selectinload(AnonymousSubmission.image_links)
        .selectinload(AnonymousSubmissionImage.image)
        .selectinload(Image.variants)
    )


def find_pending(session: Session, *, filters: SubmissionFilters) -> SubmissionPage:
    clauses = pending_filter_clauses(filters)
    total = int(session.scalar(select(func.count()).select_from(AnonymousSubmission).where(*clauses)) or 0)

    statement = (
        select(AnonymousSubmission)
        .where(*clauses)
        .order_by(AnonymousSubmission.submitted_at.desc(), AnonymousSubmission.id.desc())
        .offset((filters.page - 1) * filters.limit)
        .limit(filters.limit)
    )
    items = list(session.scalars(_with_images(statement)).all())
    return SubmissionPage(items=items, page=filters.page, limit=filters.limit, total=total)


def get_submission_row(
    session: Session,
    submission_id: str,
    *,
    for_update: bool = False,
    with_images: bool = False,
) -> Optional[AnonymousSubmission]:
    statement = select(AnonymousSubmission).where(AnonymousSubmission.id == submission_id)
    if with_images:
        statement = _with_images(statement)
    if for_update:
        statement = statement.with_for_update()
    return session.scalar(statement)


def linked_image_ids(session: Session, *, submission_id: str) -> List[str]:
    return list(
        session.scalars(
            select(AnonymousSubmissionImage.image_id)
            .where(AnonymousSubmissionImage.submission_id == submission_id)
            .order_by(AnonymousSubmissionImage.order.asc())
        ).all()
    )


def count_by_status(session: Session) -> Dict[str, int]:
    rows = session.execute(
        select(AnonymousSubmission.status, func.count()).group_by(AnonymousSubmission.status)
    ).all()
    return {str(status): int(count) for status, count in rows}


def count_reviewed_since(session: Session, *, status: str, since: datetime) -> int:
    return int(
        session.scalar(
            select(func.count())
            .select_from(AnonymousSubmission)
            .where(AnonymousSubmission.status == status, AnonymousSubmission.reviewed_at >= since)
        )
        or 0
    )


def count_flagged_pending(session: Session) -> int:
    return int(
        session.scalar(
            select(func.count())
            .select_from(AnonymousSubmission)
            .where(
                AnonymousSubmission.status == STATUS_PENDING,
                AnonymousSubmission.flagged_for_review.is_(True),
            )
        )
        or 0
    )


def review_intervals(session: Session) -> Sequence[Tuple[datetime, datetime]]:
    return session.execute(
        select(AnonymousSubmission.submitted_at, AnonymousSubmission.reviewed_at).where(
            AnonymousSubmission.reviewed_at.is_not(None)
        )
    ).all()
