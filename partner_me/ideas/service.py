"""Business idea catalogue and its image ordering."""

from __future__ import annotations

import json
from typing import Any, List, Mapping, Optional, Sequence, Union

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session, selectinload

from partner_me.core.errors import NotFoundError, ValidationError
from partner_me.core.logger import get_logger
from partner_me.files import FileStorageError, StorageProvider, get_storage_provider
from partner_me.media.ownership import (
    UNOWNED,
    OwnedByBusinessIdea,
    Unowned,
    reassign_image_owner,
    resolve_owners,
)
from partner_me.media.service import serialize_image
from partner_me.schemas.common import validate_payload
from partner_me.schemas.ideas import BusinessIdeaItem, BusinessIdeaWrite, ImageReorderRequest
from partner_me.storage.db import transaction
from partner_me.storage.models import (
    AnonymousSubmission,
    AnonymousSubmissionImage,
    BusinessIdea,
    Image,
    PartnershipRequest,
)


logger = get_logger("partner_me.ideas")


def _json_dumps(payload: Any) -> str:
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=True)


def _legacy_images(idea: BusinessIdea) -> List[str]:
    try:
        images = json.loads(idea.images_json or "[]")
    except ValueError:
        return []
    return [str(item) for item in images] if isinstance(images, list) else []


def serialize_idea(idea: BusinessIdea) -> BusinessIdeaItem:
    return BusinessIdeaItem(
        id=idea.id,
        title=idea.title,
        description=idea.description,
        budget_min=idea.budget_min,
        budget_max=idea.budget_max,
        images=_legacy_images(idea),
        uploaded_images=[serialize_image(image) for image in sorted(idea.uploaded_images, key=lambda item: item.order)],
        created_at=idea.created_at,
        updated_at=idea.updated_at,
    )


def _with_images(statement):
    return statement.options(selectinload(BusinessIdea.uploaded_images).selectinload(Image.variants))


def list_business_ideas(session: Session) -> List[BusinessIdea]:
    statement = _with_images(select(BusinessIdea)).order_by(BusinessIdea.created_at.desc(), BusinessIdea.id.desc())
    return list(session.scalars(statement).all())


def get_business_idea(session: Session, *, idea_id: str) -> BusinessIdea:
    idea = session.scalar(_with_images(select(BusinessIdea).where(BusinessIdea.id == idea_id)))
    if idea is None:
        raise NotFoundError("Business idea not found", code="BUSINESS_IDEA_NOT_FOUND")
    return idea


def _check_attachable(session: Session, image_ids: Sequence[str], *, idea_id: Optional[str] = None) -> None:
    owners = resolve_owners(session, image_ids)
    invalid = []
    for image_id in image_ids:
        owner = owners.get(image_id)
        if owner is None:
            invalid.append(image_id)
        elif isinstance(owner, Unowned):
            continue
        elif isinstance(owner, OwnedByBusinessIdea) and owner.business_idea_id == idea_id:
            continue
        else:
            invalid.append(image_id)
    if invalid:
        raise ValidationError(
            "One or more images do not exist or are already in use",
            code="INVALID_IMAGE_IDS",
            details={"image_ids": invalid},
        )


def _attach(session: Session, *, idea_id: str, image_ids: Sequence[str]) -> None:
    for position, image_id in enumerate(image_ids):
        reassign_image_owner(session, image_id=image_id, owner=OwnedByBusinessIdea(idea_id), order=position)


def create_business_idea(
    session: Session,
    *,
    payload: Union[BusinessIdeaWrite, Mapping[str, Any]],
) -> BusinessIdea:
    data = validate_payload(BusinessIdeaWrite, payload)
    _check_attachable(session, data.image_ids)

    with transaction(session):
        idea = BusinessIdea(
            title=data.title,
            description=data.description,
            budget_min=data.budget_min,
            budget_max=data.budget_max,
            images_json=_json_dumps(data.images),
        )
        session.add(idea)
        session.flush()
        _attach(session, idea_id=idea.id, image_ids=data.image_ids)

    session.expire(idea)
    logger.info("business_idea_created", business_idea_id=idea.id, image_count=len(data.image_ids))
    return get_business_idea(session, idea_id=idea.id)


def update_business_idea(
    session: Session,
    *,
    idea_id: str,
    payload: Union[BusinessIdeaWrite, Mapping[str, Any]],
) -> BusinessIdea:
    data = validate_payload(BusinessIdeaWrite, payload)
    replace_images = "image_ids" in data.model_fields_set

    with transaction(session):
        idea = get_business_idea(session, idea_id=idea_id)
        if replace_images:
            _check_attachable(session, data.image_ids, idea_id=idea.id)

        idea.title = data.title
        idea.description = data.description
        idea.budget_min = data.budget_min
        idea.budget_max = data.budget_max
        idea.images_json = _json_dumps(data.images)

        if replace_images:
            for image in list(idea.uploaded_images):
                if image.id not in data.image_ids:
                    reassign_image_owner(session, image_id=image.id, owner=UNOWNED, order=0)
            _attach(session, idea_id=idea.id, image_ids=data.image_ids)

    session.expire(idea)
    logger.info("business_idea_updated", business_idea_id=idea_id, images_replaced=replace_images)
    return get_business_idea(session, idea_id=idea_id)


def delete_business_idea(
    session: Session,
    *,
    idea_id: str,
    storage: Optional[StorageProvider] = None,
) -> int:
    """Delete an idea with its images and partnership requests; returns image count."""

    idea = get_business_idea(session, idea_id=idea_id)
    images = list(idea.uploaded_images)
    provider = storage or get_storage_provider()
    for image in images:
        paths = {variant.storage_path for variant in image.variants} | {image.storage_path}
        for path in sorted(paths):
            try:
                provider.delete(path)
            except FileStorageError as exc:
                logger.warning("image_file_delete_failed", image_id=image.id, storage_path=path, error=str(exc))

    image_ids = [image.id for image in images]
    with transaction(session):
        if image_ids:
            session.execute(
                delete(AnonymousSubmissionImage)
                .where(AnonymousSubmissionImage.image_id.in_(image_ids))
                .execution_options(synchronize_session=False)
            )
        for image in images:
            session.delete(image)
        session.execute(
            delete(PartnershipRequest)
            .where(PartnershipRequest.business_idea_id == idea_id)
            .execution_options(synchronize_session=False)
        )
        session.execute(
            update(AnonymousSubmission)
            .where(AnonymousSubmission.business_idea_id == idea_id)
            .values(business_idea_id=None)
            .execution_options(synchronize_session=False)
        )
        session.delete(idea)

    logger.info("business_idea_deleted", business_idea_id=idea_id, image_count=len(image_ids))
    return len(image_ids)


def reorder_images(
    session: Session,
    *,
    idea_id: str,
    payload: Union[ImageReorderRequest, Mapping[str, Any]],
) -> BusinessIdea:
    data = validate_payload(ImageReorderRequest, payload)

    with transaction(session):
        idea = get_business_idea(session, idea_id=idea_id)
        owned = {image.id for image in idea.uploaded_images}
        invalid = [image_id for image_id in data.image_ids if image_id not in owned]
        if invalid or len(set(data.image_ids)) != len(data.image_ids):
            raise ValidationError(
                "Some image IDs do not belong to this business idea",
                code="INVALID_IMAGE_IDS",
                details={"image_ids": invalid or list(data.image_ids)},
            )
        _attach(session, idea_id=idea.id, image_ids=data.image_ids)

    session.expire(idea)
    logger.info("business_idea_images_reordered", business_idea_id=idea_id, image_count=len(data.image_ids))
    return get_business_idea(session, idea_id=idea_id)
