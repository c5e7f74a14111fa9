"""Repayment endpoints - STK push initiation, demo simulation and lookup"""

import logging
from typing import Callable
from fastapi import APIRouter, BackgroundTasks, Depends, Request
from sqlalchemy.orm import Session

from stock247_gateway.api.dependencies import (
    get_daraja_client,
    get_loan_terms,
    get_notifier,
    get_repayment_service,
    get_request_id,
)
from stock247_gateway.api.v1.responses import failure
from stock247_gateway.api.v1.schemas import (
    InitiateRepaymentRequest,
    InitiateRepaymentResponse,
    RepaymentSchema,
    SettlementResponse,
)
from stock247_gateway.config import LoanTerms
from stock247_gateway.domain.exceptions import (
    DemoModeDisabledError,
    InvalidRequestError,
    LoanNotFoundError,
    PersistenceError,
    RepaymentNotFoundError,
)
from stock247_gateway.infrastructure.clients.daraja import DarajaClient
from stock247_gateway.infrastructure.database.models import Repayment
from stock247_gateway.infrastructure.database.session import get_session_factory
from stock247_gateway.services.notifications import Notifier
from stock247_gateway.services.repayments import RepaymentService, complete_demo_payment, parse_uuid

router = APIRouter()


def to_repayment_schema(r: Repayment) -> RepaymentSchema:
    return RepaymentSchema(
        id=str(r.id),
        user_id=r.user_id,
        loan_id=str(r.loan_id),
        amount=r.amount,
        phone=r.phone,
        checkout_request_id=r.checkout_request_id,
        merchant_request_id=r.merchant_request_id,
        status=r.status,
        mpesa_receipt=r.mpesa_receipt,
        paid_at=r.paid_at,
        created_at=r.created_at,
    )


@router.post("/repayments/initiate", response_model=InitiateRepaymentResponse)
async def initiate_repayment(
    request_body: InitiateRepaymentRequest,
    background_tasks: BackgroundTasks,
    request: Request,
    service: RepaymentService = Depends(get_repayment_service),
    daraja: DarajaClient = Depends(get_daraja_client),
    notifier: Notifier = Depends(get_notifier),
    terms: LoanTerms = Depends(get_loan_terms),
    session_factory: Callable[[], Session] = Depends(get_session_factory),
):
    """
    Start a mobile-money repayment.

    Flow:
    1. Validate fields and normalize the phone number
    2. STK push via Daraja, or synthesized ids in demo/degraded mode
    3. Persist pending repayment + audit entry
    4. Demo mode only: schedule auto-completion after the configured delay
    """
    request_id = get_request_id(request)

    try:
        result = await service.initiate(
            user_id=request_body.user_id,
            loan_id=request_body.loan_id,
            amount=request_body.amount,
            phone=request_body.phone,
            request_id=request_id,
        )
    except InvalidRequestError as e:
        logging.warning(f"Invalid repayment request: {e}", extra={"request_id": request_id})
        return failure(400, str(e))
    except LoanNotFoundError as e:
        return failure(404, str(e))
    except PersistenceError as e:
        return failure(500, str(e))
    except Exception as e:
        logging.error(f"Repayment initiation error: {e}", extra={"request_id": request_id})
        return failure(500, "Internal server error")

    if service.demo_mode:
        background_tasks.add_task(
            complete_demo_payment,
            result.repayment_id,
            session_factory,
            daraja,
            notifier,
            terms,
        )

    return InitiateRepaymentResponse(
        success=True,
        message=result.message,
        repayment_id=result.repayment_id,
        checkout_request_id=result.checkout_request_id,
    )


@router.post("/repayments/{repayment_id}/simulate", response_model=SettlementResponse)
async def simulate_repayment(
    repayment_id: str,
    service: RepaymentService = Depends(get_repayment_service),
    notifier: Notifier = Depends(get_notifier),
):
    """Demo mode: settle a pending repayment as if the gateway had confirmed it"""
    try:
        outcome = await service.simulate_payment(repayment_id, notifier)
    except InvalidRequestError as e:
        return failure(400, str(e))
    except RepaymentNotFoundError as e:
        return failure(404, str(e))
    except DemoModeDisabledError as e:
        return failure(409, str(e))
    except PersistenceError as e:
        return failure(500, str(e))

    return SettlementResponse(
        success=True,
        repayment_id=outcome.repayment_id,
        status=outcome.status,
        total_paid=outcome.total_paid,
        total_due=outcome.total_due,
        loan_completed=outcome.loan_completed,
    )


@router.get("/repayments/{repayment_id}", response_model=RepaymentSchema)
def get_repayment(repayment_id: str, service: RepaymentService = Depends(get_repayment_service)):
    try:
        repayment = service.repayments.get(parse_uuid(repayment_id, "repayment id"))
    except InvalidRequestError as e:
        return failure(400, str(e))

    if repayment is None:
        return failure(404, "Repayment not found")

    return to_repayment_schema(repayment)
