"""Partnership requests against published business ideas."""

from __future__ import annotations

from typing import Any, List, Mapping, Optional, Tuple, Union

from sqlalchemy import select
from sqlalchemy.orm import Session

from partner_me.core.errors import NotFoundError
from partner_me.core.logger import get_logger
from partner_me.schemas.common import validate_payload
from partner_me.schemas.partnerships import (
    PartnershipFilters,
    PartnershipRequestCreate,
    PartnershipRequestItem,
    PartnershipStatusUpdate,
)
from partner_me.storage.db import transaction
from partner_me.storage.models import BusinessIdea, PartnershipRequest


logger = get_logger("partner_me.partnerships")


def serialize_request(request: PartnershipRequest, *, business_idea_title: Optional[str] = None) -> PartnershipRequestItem:
    item = PartnershipRequestItem.model_validate(request, from_attributes=True)
    item.business_idea_title = business_idea_title
    return item


def create_partnership_request(
    session: Session,
    *,
    payload: Union[PartnershipRequestCreate, Mapping[str, Any]],
) -> PartnershipRequest:
    data = validate_payload(PartnershipRequestCreate, payload)
    if session.get(BusinessIdea, data.business_idea_id) is None:
        raise NotFoundError("Business idea not found", code="BUSINESS_IDEA_NOT_FOUND")

    with transaction(session):
        request = PartnershipRequest(
            business_idea_id=data.business_idea_id,
            name=data.name,
            phone_number=data.phone_number,
            role=data.role,
            status="PENDING",
        )
        session.add(request)

    logger.info(
        "partnership_request_created",
        partnership_request_id=request.id,
        business_idea_id=data.business_idea_id,
        role=data.role,
    )
    return request


def list_partnership_requests(
    session: Session,
    *,
    filters: Union[PartnershipFilters, Mapping[str, Any], None] = None,
) -> List[Tuple[PartnershipRequest, str]]:
    criteria = validate_payload(PartnershipFilters, filters if filters is not None else {})
    statement = select(PartnershipRequest, BusinessIdea.title).join(
        BusinessIdea, BusinessIdea.id == PartnershipRequest.business_idea_id
    )
    if criteria.business_idea_id:
        statement = statement.where(PartnershipRequest.business_idea_id == criteria.business_idea_id)
    if criteria.role:
        statement = statement.where(PartnershipRequest.role == criteria.role)
    if criteria.status:
        statement = statement.where(PartnershipRequest.status == criteria.status)
    statement = statement.order_by(PartnershipRequest.created_at.desc(), PartnershipRequest.id.desc())
    return [(request, title) for request, title in session.execute(statement).all()]


def update_partnership_status(
    session: Session,
    *,
    request_id: str,
    payload: Union[PartnershipStatusUpdate, Mapping[str, Any]],
) -> PartnershipRequest:
    data = validate_payload(PartnershipStatusUpdate, payload)
    with transaction(session):
        request = session.get(PartnershipRequest, request_id)
        if request is None:
            raise NotFoundError("Partnership request not found")
        previous = request.status
        request.status = data.status

    logger.info(
        "partnership_request_status_changed",
        partnership_request_id=request_id,
        previous_status=previous,
        status=data.status,
    )
    return request
