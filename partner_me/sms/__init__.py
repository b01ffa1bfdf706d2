"""SMS delivery providers."""

from partner_me.sms.base import SentMessage, SmsProvider, SmsProviderError, otp_message
from partner_me.sms.factory import get_sms_provider, reset_sms_provider_cache
from partner_me.sms.mock_provider import MockSmsProvider
from partner_me.sms.twilio_provider import TwilioSmsProvider

__all__ = [
    "MockSmsProvider",
    "SentMessage",
    "SmsProvider",
    "SmsProviderError",
    "TwilioSmsProvider",
    "get_sms_provider",
    "otp_message",
    "reset_sms_provider_cache",
]
