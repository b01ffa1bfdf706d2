"""FastAPI dependencies for authentication and admin enforcement."""

from __future__ import annotations

from typing import Optional

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from partner_me.auth.jwt import AuthContext
from partner_me.auth.middleware import AUTH_CONTEXT_KEY, extract_bearer_token
from partner_me.auth.service import validate_session
from partner_me.core.errors import AuthenticationError, ForbiddenError
from partner_me.storage.db import get_session


def get_optional_auth_context(request: Request) -> Optional[AuthContext]:
    return getattr(request.state, AUTH_CONTEXT_KEY, None)


def require_auth_context(
    request: Request,
    auth: Optional[AuthContext] = Depends(get_optional_auth_context),
    session: Session = Depends(get_session),
) -> AuthContext:
    token = extract_bearer_token(request)
    if token is None:
        raise AuthenticationError("Authentication required")
    if auth is None:
        raise AuthenticationError("Invalid or expired session", code="INVALID_SESSION")

    _auth_session, user = validate_session(session, context=auth, token=token)
    return AuthContext(user_id=user.id, session_id=auth.session_id, is_admin=user.is_admin)


def require_admin(auth: AuthContext = Depends(require_auth_context)) -> AuthContext:
    if not auth.is_admin:
        raise ForbiddenError("Admin access required")
    return auth
