"""Failed-login throttling backed by the login_attempts table."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
import math
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from partner_me.core.config import get_settings
from partner_me.core.errors import RateLimitError
from partner_me.core.logger import get_logger
from partner_me.core.metrics import record_rate_limit_block
from partner_me.storage.models import LoginAttempt


logger = get_logger("partner_me.auth")


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def check_login_rate_limit(session: Session, *, identifier: str, now: Optional[datetime] = None) -> None:
    """Raise RateLimitError once the identifier has too many recent failures."""

    settings = get_settings()
    current = now or _now_utc()
    window = timedelta(minutes=settings.rate_limit_window_minutes)
    window_start = current - window

    failed, oldest = session.execute(
        select(func.count(), func.min(LoginAttempt.attempted_at)).where(
            LoginAttempt.identifier == identifier,
            LoginAttempt.success.is_(False),
            LoginAttempt.attempted_at >= window_start,
        )
    ).one()
    if int(failed or 0) < settings.rate_limit_attempts:
        return

    retry_after = 1
    if oldest is not None:
        retry_after = max(int(math.ceil((_as_utc(oldest) + window - current).total_seconds())), 1)
    record_rate_limit_block(kind="login")
    logger.warning("login_rate_limited", identifier=identifier, failed_attempts=int(failed))
    raise RateLimitError("Too many failed attempts. Please try again later.", retry_after=retry_after)


def record_login_attempt(
    session: Session,
    *,
    identifier: str,
    success: bool,
    user_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> None:
    """Persist one attempt in its own commit; failures are logged, not raised."""

    try:
        session.add(
            LoginAttempt(
                identifier=identifier,
                success=success,
                user_id=user_id,
                attempted_at=now or _now_utc(),
            )
        )
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        logger.warning("login_attempt_record_failed", identifier=identifier, error=str(exc))
