"""Pydantic schemas for authentication API."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


E164 = r"^\+[1-9]\d{1,14}$"


class CredentialsRegistration(BaseModel):
    username: str = Field(min_length=3, max_length=30, pattern=r"^[A-Za-z0-9_]+$")
    password: str = Field(min_length=8, max_length=100)


class MobileRegistration(BaseModel):
    mobile_number: str = Field(pattern=E164)


class CredentialsLogin(BaseModel):
    username: str = Field(min_length=1)
    password: str = Field(min_length=1)


class OTPRequest(BaseModel):
    mobile_number: str = Field(pattern=E164)


class OTPVerify(BaseModel):
    mobile_number: str = Field(pattern=E164)
    code: str = Field(pattern=r"^\d{4,10}$")


class UserItem(BaseModel):
    id: str
    username: Optional[str]
    mobile_number: Optional[str]
    email: Optional[str]
    name: Optional[str]
    is_admin: bool
    created_at: datetime


class SessionResponse(BaseModel):
    id: str
    token: str
    token_type: str = "bearer"
    user_id: str
    expires_at: datetime


class CurrentSessionResponse(BaseModel):
    id: str
    user_id: str
    expires_at: datetime
    created_at: datetime
    user: UserItem


class MessageResponse(BaseModel):
    message: str
