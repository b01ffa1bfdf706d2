"""Authentication API routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from partner_me.auth import otp as otp_service
from partner_me.auth import service as auth_service
from partner_me.auth.dependencies import require_auth_context
from partner_me.auth.jwt import AuthContext
from partner_me.auth.middleware import extract_bearer_token
from partner_me.schemas.auth import (
    CredentialsLogin,
    CredentialsRegistration,
    CurrentSessionResponse,
    MessageResponse,
    MobileRegistration,
    OTPRequest,
    OTPVerify,
    SessionResponse,
    UserItem,
)
from partner_me.schemas.common import Envelope
from partner_me.storage.db import get_session
from partner_me.storage.models import User


router = APIRouter(prefix="/auth", tags=["auth"])


def _user_item(user: User) -> UserItem:
    return UserItem(
        id=user.id,
        username=user.username,
        mobile_number=user.mobile_number,
        email=user.email,
        name=user.name,
        is_admin=user.is_admin,
        created_at=user.created_at,
    )


def _session_response(issued: auth_service.IssuedSession) -> SessionResponse:
    return SessionResponse(
        id=issued.session.id,
        token=issued.token,
        user_id=issued.user.id,
        expires_at=issued.session.expires_at,
    )


@router.post("/register/credentials", response_model=Envelope[UserItem], status_code=status.HTTP_201_CREATED)
def register_credentials(
    payload: CredentialsRegistration,
    session: Session = Depends(get_session),
) -> Envelope[UserItem]:
    user = auth_service.register_with_credentials(session, payload=payload)
    session.refresh(user)
    return Envelope(data=_user_item(user))


@router.post("/register/mobile", response_model=Envelope[UserItem], status_code=status.HTTP_201_CREATED)
def register_mobile(
    payload: MobileRegistration,
    session: Session = Depends(get_session),
) -> Envelope[UserItem]:
    user = auth_service.register_with_mobile(session, payload=payload)
    session.refresh(user)
    return Envelope(data=_user_item(user))


@router.post("/login/credentials", response_model=Envelope[SessionResponse])
def login_credentials(
    payload: CredentialsLogin,
    session: Session = Depends(get_session),
) -> Envelope[SessionResponse]:
    issued = auth_service.login_with_credentials(session, payload=payload)
    return Envelope(data=_session_response(issued))


@router.post("/otp/request", response_model=Envelope[MessageResponse])
def request_otp(
    payload: OTPRequest,
    session: Session = Depends(get_session),
) -> Envelope[MessageResponse]:
    otp_service.request_otp(session, payload=payload)
    return Envelope(data=MessageResponse(message="OTP sent successfully"))


@router.post("/otp/verify", response_model=Envelope[SessionResponse])
def verify_otp(
    payload: OTPVerify,
    session: Session = Depends(get_session),
) -> Envelope[SessionResponse]:
    issued = otp_service.verify_otp(session, payload=payload)
    return Envelope(data=_session_response(issued))


@router.post("/logout", response_model=Envelope[MessageResponse])
def logout(
    auth: AuthContext = Depends(require_auth_context),
    session: Session = Depends(get_session),
) -> Envelope[MessageResponse]:
    auth_service.logout(session, session_id=auth.session_id)
    return Envelope(data=MessageResponse(message="Logged out successfully"))


@router.get("/session", response_model=Envelope[CurrentSessionResponse])
def current_session(
    request: Request,
    auth: AuthContext = Depends(require_auth_context),
    session: Session = Depends(get_session),
) -> Envelope[CurrentSessionResponse]:
    auth_session, user = auth_service.validate_session(
        session,
        context=auth,
        token=extract_bearer_token(request) or "",
    )
    return Envelope(
        data=CurrentSessionResponse(
            id=auth_session.id,
            user_id=user.id,
            expires_at=auth_session.expires_at,
            created_at=auth_session.created_at,
            user=_user_item(user),
        )
    )
