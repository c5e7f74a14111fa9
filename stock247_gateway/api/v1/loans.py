"""Loan application endpoints - intake, balance, admin lifecycle actions"""

import logging
from typing import List, Optional
from fastapi import APIRouter, Depends

from stock247_gateway.api.dependencies import get_loan_service
from stock247_gateway.api.v1.repayments import to_repayment_schema
from stock247_gateway.api.v1.responses import failure
from stock247_gateway.api.v1.schemas import (
    BalanceSchema,
    CreateLoanRequest,
    DisburseLoanRequest,
    DisbursementSchema,
    LoanResponse,
    OverdueSweepResponse,
    RejectLoanRequest,
    RepaymentSchema,
)
from stock247_gateway.domain.exceptions import (
    InvalidRequestError,
    InvalidStatusTransitionError,
    LoanNotFoundError,
    PersistenceError,
)
from stock247_gateway.domain.models import BalanceSummary
from stock247_gateway.infrastructure.database.models import Disbursement, LoanApplication
from stock247_gateway.services.loans import LoanService

router = APIRouter()


def to_disbursement_schema(d: Disbursement) -> DisbursementSchema:
    return DisbursementSchema(
        id=str(d.id),
        application_id=str(d.application_id),
        amount=d.amount,
        repayment_amount=d.repayment_amount,
        repayment_due_date=d.repayment_due_date,
        repayment_status=d.repayment_status,
        status=d.status,
        transaction_ref=d.transaction_ref,
        disbursed_at=d.disbursed_at,
    )


def to_loan_response(
    loan: LoanApplication,
    balance: Optional[BalanceSummary] = None,
    disbursement: Optional[Disbursement] = None,
) -> LoanResponse:
    return LoanResponse(
        id=str(loan.id),
        user_id=loan.user_id,
        business_name=loan.business_name,
        owner_phone=loan.owner_phone,
        loan_amount=loan.loan_amount,
        status=loan.status,
        distributor_paybill=loan.distributor_paybill,
        rejection_reason=loan.rejection_reason,
        created_at=loan.created_at,
        balance=BalanceSchema(
            total_due=balance.total_due,
            total_paid=balance.total_paid,
            outstanding=balance.outstanding,
            total_due_estimated=balance.total_due_estimated,
        )
        if balance
        else None,
        disbursement=to_disbursement_schema(disbursement) if disbursement else None,
    )


def _error(e: Exception):
    """Map lifecycle errors to HTTP responses"""
    if isinstance(e, InvalidRequestError):
        return failure(400, str(e))
    if isinstance(e, LoanNotFoundError):
        return failure(404, str(e))
    if isinstance(e, InvalidStatusTransitionError):
        return failure(409, str(e))
    return failure(500, str(e))


LIFECYCLE_ERRORS = (InvalidRequestError, LoanNotFoundError, InvalidStatusTransitionError, PersistenceError)


@router.post("/loans", response_model=LoanResponse, status_code=201)
def create_loan(request_body: CreateLoanRequest, service: LoanService = Depends(get_loan_service)):
    """Submit a new loan application (status pending)"""
    try:
        loan = service.create_application(
            user_id=request_body.user_id,
            business_name=request_body.business_name,
            owner_phone=request_body.owner_phone,
            loan_amount=request_body.loan_amount,
            loan_purpose=request_body.loan_purpose,
            distributor_name=request_body.distributor_name,
            distributor_paybill=request_body.distributor_paybill,
        )
    except LIFECYCLE_ERRORS as e:
        return _error(e)

    return to_loan_response(loan)


@router.get("/loans/{loan_id}", response_model=LoanResponse)
def get_loan(loan_id: str, service: LoanService = Depends(get_loan_service)):
    """
    Retrieve a loan with its repayment position.

    Returns:
        Loan details, disbursement (if any) and total due / paid / outstanding
    """
    try:
        loan = service.get_loan(loan_id)
    except LIFECYCLE_ERRORS as e:
        return _error(e)

    balance, disbursement = service.balance(loan)
    return to_loan_response(loan, balance, disbursement)


@router.get("/loans/{loan_id}/repayments", response_model=List[RepaymentSchema])
def list_loan_repayments(loan_id: str, service: LoanService = Depends(get_loan_service)):
    try:
        repayments = service.list_repayments(loan_id)
    except LIFECYCLE_ERRORS as e:
        return _error(e)

    return [to_repayment_schema(r) for r in repayments]


@router.post("/loans/{loan_id}/approve", response_model=LoanResponse)
async def approve_loan(loan_id: str, service: LoanService = Depends(get_loan_service)):
    try:
        loan = await service.approve(loan_id)
    except LIFECYCLE_ERRORS as e:
        return _error(e)

    logging.info("Loan approved", extra={"loan_id": loan_id})
    return to_loan_response(loan)


@router.post("/loans/{loan_id}/reject", response_model=LoanResponse)
async def reject_loan(
    loan_id: str,
    request_body: RejectLoanRequest,
    service: LoanService = Depends(get_loan_service),
):
    try:
        loan = await service.reject(loan_id, request_body.reason)
    except LIFECYCLE_ERRORS as e:
        return _error(e)

    logging.info("Loan rejected", extra={"loan_id": loan_id})
    return to_loan_response(loan)


@router.post("/loans/{loan_id}/disburse", response_model=DisbursementSchema, status_code=201)
async def disburse_loan(
    loan_id: str,
    request_body: Optional[DisburseLoanRequest] = None,
    service: LoanService = Depends(get_loan_service),
):
    """
    Create the disbursement for an approved loan.

    Repayment amount is principal + 10% flat interest, due in 7 days.
    """
    transaction_ref = request_body.transaction_ref if request_body else None
    try:
        disbursement = await service.disburse(loan_id, transaction_ref)
    except LIFECYCLE_ERRORS as e:
        return _error(e)

    logging.info("Loan disbursed", extra={"loan_id": loan_id, "disbursement_id": str(disbursement.id)})
    return to_disbursement_schema(disbursement)


@router.post("/disbursements/mark-overdue", response_model=OverdueSweepResponse)
def mark_overdue(service: LoanService = Depends(get_loan_service)):
    """Flag disbursements whose repayment due date has passed"""
    try:
        count = service.mark_overdue()
    except PersistenceError as e:
        return _error(e)

    return OverdueSweepResponse(overdue_count=count)
