"""Factory to resolve the configured SMS provider."""

from __future__ import annotations

from functools import lru_cache

from partner_me.core.config import get_settings
from partner_me.sms.base import SmsProvider
from partner_me.sms.mock_provider import MockSmsProvider
from partner_me.sms.twilio_provider import TwilioSmsProvider


@lru_cache(maxsize=1)
def get_sms_provider() -> SmsProvider:
    settings = get_settings()
    if settings.sms_provider.strip().lower() == "twilio":
        return TwilioSmsProvider(
            account_sid=settings.twilio_account_sid,
            auth_token=settings.twilio_auth_token,
            from_number=settings.twilio_phone_number,
            base_url=settings.twilio_api_base_url,
            timeout_seconds=settings.twilio_timeout_seconds,
        )
    return MockSmsProvider()


def reset_sms_provider_cache() -> None:
    get_sms_provider.cache_clear()
