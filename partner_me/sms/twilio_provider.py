"""Twilio Messages API client."""

from __future__ import annotations

from typing import Optional

import httpx

from partner_me.sms.base import SentMessage, SmsProviderError


class TwilioSmsProvider:
    provider_name = "twilio"

    def __init__(
        self,
        *,
        account_sid: str,
        auth_token: str,
        from_number: str,
        base_url: str = "https://api.twilio.com/2010-04-01",
        timeout_seconds: int = 10,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self._account_sid = account_sid.strip()
        self._auth_token = auth_token.strip()
        self._from_number = from_number.strip()
        self._base_url = base_url.rstrip("/")
        self._timeout_seconds = max(1, timeout_seconds)
        self._client = client

    def _messages_url(self) -> str:
        return f"{self._base_url}/Accounts/{self._account_sid}/Messages.json"

    def send_sms(self, *, to: str, body: str) -> SentMessage:
        if not self._account_sid or not self._auth_token or not self._from_number:
            raise SmsProviderError("twilio_credentials_missing")
        if not to.strip():
            raise SmsProviderError("sms_recipient_missing")

        form = {"To": to.strip(), "From": self._from_number, "Body": body}
        auth = (self._account_sid, self._auth_token)
        try:
            if self._client is not None:
                response = self._client.post(self._messages_url(), data=form, auth=auth)
            else:
                with httpx.Client(timeout=self._timeout_seconds) as client:
                    response = client.post(self._messages_url(), data=form, auth=auth)
        except httpx.HTTPError as exc:
            raise SmsProviderError(f"twilio_request_failed error={exc}") from exc

        if response.status_code < 200 or response.status_code >= 300:
            detail = response.text.strip()
            if len(detail) > 200:
                detail = detail[:200] + "..."
            raise SmsProviderError(f"twilio_request_failed status={response.status_code} detail={detail}")

        try:
            payload = response.json()
        except ValueError as exc:
            raise SmsProviderError("twilio_invalid_json_response") from exc

        message_id = payload.get("sid") if isinstance(payload, dict) else None
        return SentMessage(provider=self.provider_name, to=to.strip(), body=body, message_id=message_id)
