"""Schemas for partnership requests."""

from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from partner_me.schemas.submissions import PHONE_PATTERN


PartnershipRole = Literal["HELPER", "OUTLET"]
PartnershipStatus = Literal["PENDING", "CONTACTED", "ACCEPTED", "REJECTED"]


class PartnershipRequestCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    business_idea_id: str = Field(min_length=1)
    name: str = Field(min_length=1, max_length=100)
    phone_number: str = Field(pattern=PHONE_PATTERN)
    role: PartnershipRole


class PartnershipStatusUpdate(BaseModel):
    status: PartnershipStatus


class PartnershipFilters(BaseModel):
    business_idea_id: Optional[str] = None
    role: Optional[PartnershipRole] = None
    status: Optional[PartnershipStatus] = None


class PartnershipRequestItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    business_idea_id: str
    business_idea_title: Optional[str] = None
    name: str
    phone_number: str
    role: str
    status: str
    created_at: datetime
