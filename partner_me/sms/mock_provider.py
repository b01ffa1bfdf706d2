"""Development SMS provider that logs instead of sending."""

from __future__ import annotations

from typing import List
import uuid

from partner_me.core.logger import get_logger
from partner_me.sms.base import SentMessage, SmsProviderError


logger = get_logger("partner_me.sms")


class MockSmsProvider:
    provider_name = "mock"

    def __init__(self) -> None:
        self.sent: List[SentMessage] = []

    def send_sms(self, *, to: str, body: str) -> SentMessage:
        if not to.strip():
            raise SmsProviderError("sms_recipient_missing")
        message = SentMessage(provider=self.provider_name, to=to.strip(), body=body, message_id=f"mock-{uuid.uuid4().hex}")
        self.sent.append(message)
        logger.info("sms_mock_sent", to=message.to, message_id=message.message_id)
        return message
