"""User registration, credential login and session lifecycle."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping, Optional, Tuple, Union
import uuid

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from partner_me.auth.jwt import AuthContext, create_access_token
from partner_me.auth.login_attempts import check_login_rate_limit, record_login_attempt
from partner_me.core.config import get_settings
from partner_me.core.errors import AuthenticationError, ConflictError
from partner_me.core.logger import get_logger
from partner_me.schemas.auth import CredentialsLogin, CredentialsRegistration, MobileRegistration
from partner_me.schemas.common import validate_payload
from partner_me.storage.db import transaction
from partner_me.storage.models import AuthSession, User
from partner_me.storage.security import hash_password, hash_token, verify_password


logger = get_logger("partner_me.auth")

INVALID_CREDENTIALS_MESSAGE = "Invalid username or password"


@dataclass(frozen=True)
class IssuedSession:
    session: AuthSession
    user: User
    token: str


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def register_with_credentials(
    session: Session,
    *,
    payload: Union[CredentialsRegistration, Mapping[str, Any]],
) -> User:
    data = validate_payload(CredentialsRegistration, payload)
    if session.scalar(select(User.id).where(User.username == data.username)) is not None:
        raise ConflictError("Username already exists", code="DUPLICATE_USERNAME")

    try:
        with transaction(session):
            user = User(username=data.username, password_hash=hash_password(data.password))
            session.add(user)
    except IntegrityError as exc:
        raise ConflictError("Username already exists", code="DUPLICATE_USERNAME") from exc

    logger.info("user_registered", user_id=user.id, method="credentials")
    return user


def register_with_mobile(
    session: Session,
    *,
    payload: Union[MobileRegistration, Mapping[str, Any]],
) -> User:
    data = validate_payload(MobileRegistration, payload)
    if session.scalar(select(User.id).where(User.mobile_number == data.mobile_number)) is not None:
        raise ConflictError("Mobile number already exists", code="DUPLICATE_MOBILE")

    try:
        with transaction(session):
            user = User(mobile_number=data.mobile_number)
            session.add(user)
    except IntegrityError as exc:
        raise ConflictError("Mobile number already exists", code="DUPLICATE_MOBILE") from exc

    logger.info("user_registered", user_id=user.id, method="mobile")
    return user


def open_session(session: Session, *, user: User, now: Optional[datetime] = None) -> IssuedSession:
    settings = get_settings()
    created_at = now or _now_utc()
    expires_at = created_at + timedelta(days=settings.session_exp_days)
    session_id = str(uuid.uuid4())
    token = create_access_token(
        AuthContext(user_id=user.id, session_id=session_id, is_admin=user.is_admin),
        expires_at=expires_at,
    )

    with transaction(session):
        auth_session = AuthSession(
            id=session_id,
            user_id=user.id,
            token_hash=hash_token(token),
            expires_at=expires_at,
            created_at=created_at,
        )
        session.add(auth_session)

    logger.info("session_opened", user_id=user.id, session_id=session_id)
    return IssuedSession(session=auth_session, user=user, token=token)


def login_with_credentials(
    session: Session,
    *,
    payload: Union[CredentialsLogin, Mapping[str, Any]],
) -> IssuedSession:
    data = validate_payload(CredentialsLogin, payload)
    check_login_rate_limit(session, identifier=data.username)

    user = session.scalar(select(User).where(User.username == data.username))
    if user is None or not verify_password(data.password, user.password_hash):
        record_login_attempt(session, identifier=data.username, success=False, user_id=user.id if user else None)
        logger.info("login_failed", identifier=data.username)
        raise AuthenticationError(INVALID_CREDENTIALS_MESSAGE, code="AUTH_FAILED")

    record_login_attempt(session, identifier=data.username, success=True, user_id=user.id)
    return open_session(session, user=user)


def validate_session(
    session: Session,
    *,
    context: AuthContext,
    token: str,
    now: Optional[datetime] = None,
) -> Tuple[AuthSession, User]:
    """Return the live session row and its user, or raise INVALID_SESSION."""

    current = now or _now_utc()
    auth_session = session.get(AuthSession, context.session_id)
    if (
        auth_session is None
        or auth_session.user_id != context.user_id
        or auth_session.token_hash != hash_token(token)
        or auth_session.revoked_at is not None
        or _as_utc(auth_session.expires_at) <= current
    ):
        raise AuthenticationError("Invalid or expired session", code="INVALID_SESSION")

    user = session.get(User, auth_session.user_id)
    if user is None:
        raise AuthenticationError("Invalid or expired session", code="INVALID_SESSION")
    return auth_session, user


def logout(session: Session, *, session_id: str) -> None:
    with transaction(session):
        auth_session = session.get(AuthSession, session_id)
        if auth_session is not None and auth_session.revoked_at is None:
            auth_session.revoked_at = _now_utc()
    logger.info("session_revoked", session_id=session_id)


def create_admin_user(session: Session, *, username: str, password: str) -> User:
    """Create an admin account, or promote an existing username and reset its password."""

    data = validate_payload(CredentialsRegistration, {"username": username, "password": password})
    with transaction(session):
        user = session.scalar(select(User).where(User.username == data.username))
        if user is None:
            user = User(username=data.username)
            session.add(user)
        user.password_hash = hash_password(data.password)
        user.is_admin = True

    logger.info("admin_user_provisioned", user_id=user.id, username=data.username)
    return user
