"""One-time password login over SMS."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Mapping, Optional, Union

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from partner_me.auth.login_attempts import check_login_rate_limit, record_login_attempt
from partner_me.auth.service import IssuedSession, open_session
from partner_me.core.config import get_settings
from partner_me.core.errors import AppError, AuthenticationError
from partner_me.core.logger import get_logger
from partner_me.schemas.auth import OTPRequest, OTPVerify
from partner_me.schemas.common import validate_payload
from partner_me.sms import SmsProvider, SmsProviderError, get_sms_provider, otp_message
from partner_me.storage.db import transaction
from partner_me.storage.models import OneTimePassword, User
from partner_me.storage.security import generate_otp_code, hash_token, otp_codes_match


logger = get_logger("partner_me.auth.otp")

UNKNOWN_MOBILE_MESSAGE = "No account found for this mobile number"


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def request_otp(
    session: Session,
    *,
    payload: Union[OTPRequest, Mapping[str, Any]],
    sms_provider: Optional[SmsProvider] = None,
    now: Optional[datetime] = None,
) -> OneTimePassword:
    data = validate_payload(OTPRequest, payload)
    check_login_rate_limit(session, identifier=data.mobile_number)

    user = session.scalar(select(User).where(User.mobile_number == data.mobile_number))
    if user is None:
        record_login_attempt(session, identifier=data.mobile_number, success=False)
        raise AuthenticationError(UNKNOWN_MOBILE_MESSAGE, code="AUTH_FAILED")

    settings = get_settings()
    current = now or _now_utc()
    code = generate_otp_code(settings.otp_length)

    with transaction(session):
        session.execute(
            update(OneTimePassword)
            .where(OneTimePassword.user_id == user.id, OneTimePassword.is_used.is_(False))
            .values(is_used=True)
            .execution_options(synchronize_session=False)
        )
        otp = OneTimePassword(
            user_id=user.id,
            code_hash=hash_token(code),
            expires_at=current + timedelta(minutes=settings.otp_exp_minutes),
            created_at=current,
        )
        session.add(otp)

    provider = sms_provider or get_sms_provider()
    try:
        provider.send_sms(to=data.mobile_number, body=otp_message(code, settings.otp_exp_minutes))
    except SmsProviderError as exc:
        logger.error("otp_send_failed", user_id=user.id, provider=provider.provider_name, error=str(exc))
        raise AppError("Failed to send OTP. Please try again later.", code="OTP_SEND_FAILED") from exc

    logger.info("otp_sent", user_id=user.id, provider=provider.provider_name)
    return otp


def verify_otp(
    session: Session,
    *,
    payload: Union[OTPVerify, Mapping[str, Any]],
    now: Optional[datetime] = None,
) -> IssuedSession:
    data = validate_payload(OTPVerify, payload)
    check_login_rate_limit(session, identifier=data.mobile_number)

    user = session.scalar(select(User).where(User.mobile_number == data.mobile_number))
    if user is None:
        record_login_attempt(session, identifier=data.mobile_number, success=False)
        raise AuthenticationError(UNKNOWN_MOBILE_MESSAGE, code="AUTH_FAILED")

    current = now or _now_utc()
    otp = session.scalar(
        select(OneTimePassword)
        .where(OneTimePassword.user_id == user.id, OneTimePassword.is_used.is_(False))
        .order_by(OneTimePassword.created_at.desc())
        .limit(1)
    )
    if otp is None or not otp_codes_match(data.code, otp.code_hash):
        record_login_attempt(session, identifier=data.mobile_number, success=False, user_id=user.id)
        raise AuthenticationError("Invalid OTP code", code="OTP_INVALID")
    if _as_utc(otp.expires_at) <= current:
        record_login_attempt(session, identifier=data.mobile_number, success=False, user_id=user.id)
        raise AuthenticationError("OTP has expired", code="OTP_EXPIRED")

    with transaction(session):
        otp.is_used = True

    record_login_attempt(session, identifier=data.mobile_number, success=True, user_id=user.id)
    return open_session(session, user=user, now=current)
