"""Image ownership as an explicit tagged union.

Storage keeps two references: `images.business_idea_id` and link rows in
`anonymous_submission_images`. Link rows are history and survive review, so
an image counts as submission-owned only while the linked submission is still
PENDING and no business idea owns it.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Union

from sqlalchemy import delete, exists, select
from sqlalchemy.orm import Session

from partner_me.core.errors import NotFoundError
from partner_me.storage.models import AnonymousSubmission, AnonymousSubmissionImage, Image
from partner_me.submissions.states import STATUS_PENDING


@dataclass(frozen=True)
class Unowned:
    kind: str = "unowned"


@dataclass(frozen=True)
class OwnedBySubmission:
    submission_id: str
    kind: str = "submission"


@dataclass(frozen=True)
class OwnedByBusinessIdea:
    business_idea_id: str
    kind: str = "business_idea"


ImageOwner = Union[Unowned, OwnedBySubmission, OwnedByBusinessIdea]

UNOWNED = Unowned()


def _pending_link_exists():
    return (
        exists()
        .where(AnonymousSubmissionImage.image_id == Image.id)
        .where(AnonymousSubmissionImage.submission_id == AnonymousSubmission.id)
        .where(AnonymousSubmission.status == STATUS_PENDING)
    )


def resolve_owners(session: Session, image_ids: Iterable[str]) -> Dict[str, ImageOwner]:
    """Resolve owners for existing images; unknown ids are absent from the result."""

    ids = list(dict.fromkeys(image_ids))
    if not ids:
        return {}

    owners: Dict[str, ImageOwner] = {}
    for image_id, business_idea_id in session.execute(
        select(Image.id, Image.business_idea_id).where(Image.id.in_(ids))
    ).all():
        owners[image_id] = OwnedByBusinessIdea(business_idea_id) if business_idea_id else UNOWNED

    unresolved = [image_id for image_id, owner in owners.items() if isinstance(owner, Unowned)]
    if unresolved:
        rows = session.execute(
            select(AnonymousSubmissionImage.image_id, AnonymousSubmissionImage.submission_id)
            .join(AnonymousSubmission, AnonymousSubmission.id == AnonymousSubmissionImage.submission_id)
            .where(
                AnonymousSubmissionImage.image_id.in_(unresolved),
                AnonymousSubmission.status == STATUS_PENDING,
            )
        ).all()
        for image_id, submission_id in rows:
            owners[image_id] = OwnedBySubmission(submission_id)
    return owners


def resolve_image_owner(session: Session, image: Image) -> ImageOwner:
    return resolve_owners(session, [image.id]).get(image.id, UNOWNED)


def reassign_image_owner(
    session: Session,
    *,
    image_id: str,
    owner: ImageOwner,
    order: Optional[int] = None,
) -> Image:
    """Point one image at a new owner inside the caller's transaction."""

    image = session.get(Image, image_id)
    if image is None:
        raise NotFoundError(f"Image {image_id} not found")

    if isinstance(owner, OwnedByBusinessIdea):
        image.business_idea_id = owner.business_idea_id
    elif isinstance(owner, OwnedBySubmission):
        image.business_idea_id = None
        link = session.scalar(select(AnonymousSubmissionImage).where(AnonymousSubmissionImage.image_id == image_id))
        if link is None:
            session.add(
                AnonymousSubmissionImage(
                    submission_id=owner.submission_id,
                    image_id=image_id,
                    order=order or 0,
                )
            )
        else:
            link.submission_id = owner.submission_id
            if order is not None:
                link.order = order
    else:
        image.business_idea_id = None
        pending_ids = select(AnonymousSubmission.id).where(AnonymousSubmission.status == STATUS_PENDING)
        session.execute(
            delete(AnonymousSubmissionImage)
            .where(
                AnonymousSubmissionImage.image_id == image_id,
                AnonymousSubmissionImage.submission_id.in_(pending_ids),
            )
            .execution_options(synchronize_session=False)
        )

    if order is not None:
        image.order = order
    return image


def find_orphaned_images(session: Session, *, older_than: datetime, limit: Optional[int] = None) -> List[Image]:
    statement = (
        select(Image)
        .where(
            Image.business_idea_id.is_(None),
            Image.created_at < older_than,
            ~_pending_link_exists(),
        )
        .order_by(Image.created_at.asc())
    )
    if limit is not None:
        statement = statement.limit(limit)
    return list(session.scalars(statement).all())
