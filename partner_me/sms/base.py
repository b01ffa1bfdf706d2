"""SMS provider contract."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol


class SmsProviderError(RuntimeError):
    """Raised when an SMS provider cannot deliver a message."""


@dataclass(frozen=True)
class SentMessage:
    provider: str
    to: str
    body: str
    message_id: Optional[str] = None


class SmsProvider(Protocol):
    provider_name: str

    def send_sms(self, *, to: str, body: str) -> SentMessage:
        """Deliver one text message."""


def otp_message(code: str, expiry_minutes: int) -> str:
    return f"Your verification code is: {code}. This code will expire in {expiry_minutes} minutes."
