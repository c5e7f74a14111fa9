"""Africa's Talking SMS client with a logging mock provider"""

import time
import logging
import httpx
from typing import Optional
from stock247_gateway.config import SmsConfig
from stock247_gateway.domain.models import SmsResult
from stock247_gateway.domain.exceptions import NotificationError


class SmsClient:
    """Client for the Africa's Talking messaging API"""

    def __init__(self, config: SmsConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config
        self.transport = transport

    @property
    def provider(self) -> str:
        return "africastalking" if self.config.is_configured else "mock"

    async def send(self, phone: str, message: str, notification_type: str = "custom") -> SmsResult:
        """
        Send one SMS to an E.164 number.

        Without credentials the message is only logged and reported as sent
        by the "mock" provider.

        Raises:
            NotificationError: On timeout, HTTP errors, or a recipient status other than "Success"
        """
        if not self.config.is_configured:
            logging.info(
                "Mock SMS",
                extra={"to": phone, "notification_type": notification_type, "sms_body": message},
            )
            return SmsResult(success=True, provider="mock", message_id=f"mock-{int(time.time() * 1000)}")

        async with httpx.AsyncClient(timeout=self.config.timeout_seconds, transport=self.transport) as client:
            try:
                response = await client.post(
                    f"{self.config.base_url}/version1/messaging",
                    data={"username": self.config.username, "to": phone, "message": message},
                    headers={"Accept": "application/json", "apiKey": self.config.api_key},
                )
                response.raise_for_status()
                data = response.json()
            except httpx.TimeoutException as e:
                raise NotificationError(f"SMS gateway timeout after {self.config.timeout_seconds}s") from e
            except httpx.HTTPStatusError as e:
                raise NotificationError(f"SMS gateway error: {e.response.status_code}") from e
            except (httpx.RequestError, ValueError) as e:
                raise NotificationError(f"SMS gateway request failed: {e}") from e

        recipients = (data.get("SMSMessageData") or {}).get("Recipients") or [] if isinstance(data, dict) else []
        first = recipients[0] if recipients else {}
        if first.get("status") != "Success":
            raise NotificationError(first.get("status") or "Unknown error")

        return SmsResult(success=True, provider="africastalking", message_id=first.get("messageId"))
