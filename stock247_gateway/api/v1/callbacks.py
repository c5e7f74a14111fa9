"""POST /v1/mpesa/callback - STK push result delivered by the gateway"""

import time
import logging
from typing import Any, Dict
from fastapi import APIRouter, Body, Depends, Request

from stock247_gateway.api.dependencies import get_reconciler, get_request_id
from stock247_gateway.api.v1.responses import failure
from stock247_gateway.api.v1.schemas import CallbackAck
from stock247_gateway.domain.exceptions import InvalidRequestError, PersistenceError, RepaymentNotFoundError
from stock247_gateway.domain.settlement import parse_callback
from stock247_gateway.infrastructure.observability.logging import log_settlement
from stock247_gateway.services.settlement import SettlementReconciler

router = APIRouter()


@router.post("/mpesa/callback", response_model=CallbackAck)
async def mpesa_callback(
    request: Request,
    payload: Dict[str, Any] = Body(...),
    reconciler: SettlementReconciler = Depends(get_reconciler),
):
    """
    Finalize the repayment named by CheckoutRequestID.

    Returns 200 {"success": true} once processed, whether the payment
    succeeded, failed or was a redelivery. 404 when no repayment matches.
    """
    start_time = time.time()
    request_id = get_request_id(request)

    try:
        callback = parse_callback(payload)
    except InvalidRequestError as e:
        logging.warning(f"Rejected callback: {e}", extra={"request_id": request_id})
        return failure(400, str(e))

    logging.info(
        "Received M-PESA callback",
        extra={
            "request_id": request_id,
            "checkout_request_id": callback.checkout_request_id,
            "result_code": callback.result_code,
        },
    )

    try:
        outcome = await reconciler.handle_callback(callback)
    except RepaymentNotFoundError:
        return failure(404, "Repayment not found")
    except PersistenceError as e:
        return failure(500, str(e))
    except Exception as e:
        logging.error(f"Callback processing error: {e}", extra={"request_id": request_id})
        return failure(500, "Internal server error")

    duration_ms = (time.time() - start_time) * 1000
    log_settlement(request_id, callback.checkout_request_id, outcome, duration_ms)

    return CallbackAck(success=True)
