"""Best-effort SMS notifications with audit trail"""

import logging
from typing import Callable, Optional
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from stock247_gateway.domain.exceptions import InvalidRequestError, NotificationError
from stock247_gateway.domain.models import SmsResult
from stock247_gateway.domain.phone import to_e164
from stock247_gateway.infrastructure.clients.sms import SmsClient
from stock247_gateway.infrastructure.database.repositories import AuditRepository
from stock247_gateway.infrastructure.observability.metrics import sms_counter

PREVIEW_LENGTH = 50


def message_preview(message: str) -> str:
    return message[:PREVIEW_LENGTH] + ("..." if len(message) > PREVIEW_LENGTH else "")


class Notifier:
    """
    Sends SMS and records every attempt in the audit log.

    send() never raises: gateway failures, bad numbers and audit write
    errors are logged and reported through the returned SmsResult.
    """

    def __init__(self, sms_client: SmsClient, session_factory: Callable[[], Session], country_code: str = "254"):
        self.sms_client = sms_client
        self.session_factory = session_factory
        self.country_code = country_code

    async def send(
        self,
        phone: str,
        message: str,
        application_id: Optional[str] = None,
        notification_type: str = "custom",
    ) -> SmsResult:
        provider = self.sms_client.provider
        formatted = phone
        try:
            formatted = to_e164(phone, self.country_code)
            result = await self.sms_client.send(formatted, message, notification_type)
        except (InvalidRequestError, NotificationError) as e:
            logging.warning(
                f"SMS not sent: {e}",
                extra={"application_id": application_id, "notification_type": notification_type},
            )
            result = SmsResult(success=False, provider=provider, error=str(e))

        sms_counter.labels(provider=result.provider, outcome="sent" if result.success else "failed").inc()
        self._audit(formatted, message, application_id, notification_type, result)
        return result

    def _audit(
        self,
        phone: str,
        message: str,
        application_id: Optional[str],
        notification_type: str,
        result: SmsResult,
    ) -> None:
        db = self.session_factory()
        try:
            AuditRepository(db).record(
                action="sms_notification",
                entity_type="loan_application",
                entity_id=application_id,
                details={
                    "phone": phone,
                    "notification_type": notification_type,
                    "message_preview": message_preview(message),
                    "result": {
                        "success": result.success,
                        "provider": result.provider,
                        "messageId": result.message_id,
                        "error": result.error,
                    },
                },
            )
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logging.error(f"Failed to audit SMS notification: {e}", extra={"application_id": application_id})
        finally:
            db.close()
