"""Partnership request routes."""

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from partner_me.auth.dependencies import require_admin
from partner_me.auth.jwt import AuthContext
from partner_me.partnerships import service
from partner_me.schemas.common import Envelope
from partner_me.schemas.partnerships import (
    PartnershipRequestCreate,
    PartnershipRequestItem,
    PartnershipStatusUpdate,
)
from partner_me.storage.db import get_session
from partner_me.storage.models import BusinessIdea


router = APIRouter(prefix="/partnership-requests", tags=["partnership-requests"])


@router.post("", response_model=Envelope[PartnershipRequestItem], status_code=status.HTTP_201_CREATED)
def create_request(
    payload: PartnershipRequestCreate,
    session: Session = Depends(get_session),
) -> Envelope[PartnershipRequestItem]:
    request = service.create_partnership_request(session, payload=payload)
    idea = session.get(BusinessIdea, request.business_idea_id)
    return Envelope(
        data=service.serialize_request(request, business_idea_title=idea.title if idea else None),
        message="Partnership request submitted successfully",
    )


@router.get("", response_model=Envelope[List[PartnershipRequestItem]])
def list_requests(
    business_idea_id: Optional[str] = Query(default=None),
    role: Optional[str] = Query(default=None),
    request_status: Optional[str] = Query(default=None, alias="status"),
    _admin: AuthContext = Depends(require_admin),
    session: Session = Depends(get_session),
) -> Envelope[List[PartnershipRequestItem]]:
    rows = service.list_partnership_requests(
        session,
        filters={"business_idea_id": business_idea_id, "role": role, "status": request_status},
    )
    return Envelope(data=[service.serialize_request(request, business_idea_title=title) for request, title in rows])


@router.patch("/{request_id}", response_model=Envelope[PartnershipRequestItem])
def update_request_status(
    request_id: str,
    payload: PartnershipStatusUpdate,
    _admin: AuthContext = Depends(require_admin),
    session: Session = Depends(get_session),
) -> Envelope[PartnershipRequestItem]:
    request = service.update_partnership_status(session, request_id=request_id, payload=payload)
    idea = session.get(BusinessIdea, request.business_idea_id)
    return Envelope(data=service.serialize_request(request, business_idea_title=idea.title if idea else None))
