"""JWT issue/verify primitives for session-backed authentication."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
import uuid

import jwt

from partner_me.core.config import get_settings
from partner_me.core.errors import AuthenticationError


@dataclass(frozen=True)
class AuthContext:
    user_id: str
    session_id: str
    is_admin: bool = False


def create_access_token(context: AuthContext, *, expires_at: datetime) -> str:
    settings = get_settings()
    now = datetime.now(timezone.utc)
    payload = {
        "sub": context.user_id,
        "sid": context.session_id,
        "adm": context.is_admin,
        "iat": int(now.timestamp()),
        "exp": int(expires_at.timestamp()),
        "jti": uuid.uuid4().hex,
    }
    return jwt.encode(payload, settings.secret_key, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> AuthContext:
    settings = get_settings()
    try:
        payload = jwt.decode(
            token,
            settings.secret_key,
            algorithms=[settings.jwt_algorithm],
            options={"require": ["sub", "sid", "exp"]},
        )
    except jwt.PyJWTError as exc:
        raise AuthenticationError("Invalid or expired session", code="INVALID_SESSION") from exc
    return AuthContext(
        user_id=str(payload["sub"]),
        session_id=str(payload["sid"]),
        is_admin=bool(payload.get("adm", False)),
    )
