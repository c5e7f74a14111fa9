"""POST /v1/notifications/sms - send an SMS through the configured provider"""

from fastapi import APIRouter, Depends

from stock247_gateway.api.dependencies import get_notifier
from stock247_gateway.api.v1.responses import failure
from stock247_gateway.api.v1.schemas import SmsRequest, SmsResponse
from stock247_gateway.services.notifications import Notifier

router = APIRouter()


@router.post("/notifications/sms", response_model=SmsResponse)
async def send_sms(request_body: SmsRequest, notifier: Notifier = Depends(get_notifier)):
    """
    Send one SMS. Delivery failures are reported in the body, not as HTTP errors.
    """
    if not request_body.phone or not request_body.message:
        return failure(400, "Phone number and message are required")

    result = await notifier.send(
        request_body.phone,
        request_body.message,
        application_id=request_body.applicationId,
        notification_type=request_body.notificationType,
    )

    return SmsResponse(
        success=result.success,
        provider=result.provider,
        messageId=result.message_id,
        message=result.message,
    )
