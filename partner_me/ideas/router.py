"""Business idea routes: public catalogue and admin management."""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from partner_me.auth.dependencies import require_admin
from partner_me.auth.jwt import AuthContext
from partner_me.ideas import service
from partner_me.schemas.auth import MessageResponse
from partner_me.schemas.common import Envelope
from partner_me.schemas.ideas import BusinessIdeaItem, BusinessIdeaWrite, ImageReorderRequest
from partner_me.storage.db import get_session


router = APIRouter(prefix="/business-ideas", tags=["business-ideas"])


@router.get("", response_model=Envelope[List[BusinessIdeaItem]])
def list_ideas(session: Session = Depends(get_session)) -> Envelope[List[BusinessIdeaItem]]:
    return Envelope(data=[service.serialize_idea(idea) for idea in service.list_business_ideas(session)])


@router.post("", response_model=Envelope[BusinessIdeaItem], status_code=status.HTTP_201_CREATED)
def create_idea(
    payload: BusinessIdeaWrite,
    _admin: AuthContext = Depends(require_admin),
    session: Session = Depends(get_session),
) -> Envelope[BusinessIdeaItem]:
    idea = service.create_business_idea(session, payload=payload)
    return Envelope(data=service.serialize_idea(idea))


@router.get("/{idea_id}", response_model=Envelope[BusinessIdeaItem])
def get_idea(idea_id: str, session: Session = Depends(get_session)) -> Envelope[BusinessIdeaItem]:
    return Envelope(data=service.serialize_idea(service.get_business_idea(session, idea_id=idea_id)))


@router.put("/{idea_id}", response_model=Envelope[BusinessIdeaItem])
def update_idea(
    idea_id: str,
    payload: BusinessIdeaWrite,
    _admin: AuthContext = Depends(require_admin),
    session: Session = Depends(get_session),
) -> Envelope[BusinessIdeaItem]:
    idea = service.update_business_idea(session, idea_id=idea_id, payload=payload)
    return Envelope(data=service.serialize_idea(idea))


@router.delete("/{idea_id}", response_model=Envelope[MessageResponse])
def delete_idea(
    idea_id: str,
    _admin: AuthContext = Depends(require_admin),
    session: Session = Depends(get_session),
) -> Envelope[MessageResponse]:
    service.delete_business_idea(session, idea_id=idea_id)
    return Envelope(data=MessageResponse(message="Business idea deleted successfully"))


@router.patch("/{idea_id}/images/reorder", response_model=Envelope[BusinessIdeaItem])
def reorder_idea_images(
    idea_id: str,
    payload: ImageReorderRequest,
    _admin: AuthContext = Depends(require_admin),
    session: Session = Depends(get_session),
) -> Envelope[BusinessIdeaItem]:
    idea = service.reorder_images(session, idea_id=idea_id, payload=payload)
    return Envelope(data=service.serialize_idea(idea))
