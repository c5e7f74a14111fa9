"""Loan lifecycle: application intake, approval, rejection, disbursement and overdue sweep"""

import logging
from decimal import Decimal
from typing import List, Optional, Tuple
from sqlalchemy.orm import Session

from stock247_gateway.config import LoanTerms
from stock247_gateway.domain.exceptions import (
    InvalidRequestError,
    InvalidStatusTransitionError,
    LoanNotFoundError,
)
from stock247_gateway.domain.loans import (
    calculate_due_date,
    calculate_repayment_amount,
    ensure_transition,
    summarize_balance,
)
from stock247_gateway.domain.messages import approved_message, disbursed_message, rejected_message
from stock247_gateway.domain.models import BalanceSummary, LoanStatus
from stock247_gateway.domain.phone import normalize_phone
from stock247_gateway.infrastructure.database.models import Disbursement, LoanApplication, Repayment
from stock247_gateway.infrastructure.database.repositories import (
    AuditRepository,
    DisbursementRepository,
    LoanRepository,
    RepaymentRepository,
)
from stock247_gateway.infrastructure.database.session import committing
from stock247_gateway.services.notifications import Notifier
from stock247_gateway.services.repayments import parse_uuid
from stock247_gateway.utils.date_utils import utc_now


class LoanService:
    """Admin and customer operations on loan applications"""

    def __init__(self, db: Session, notifier: Notifier, terms: LoanTerms):
        self.db = db
        self.notifier = notifier
        self.terms = terms
        self.loans = LoanRepository(db)
        self.disbursements = DisbursementRepository(db)
        self.repayments = RepaymentRepository(db)
        self.audit = AuditRepository(db)

    def get_loan(self, loan_id: str) -> LoanApplication:
        loan = self.loans.get(parse_uuid(loan_id, "loan id"))
        if loan is None:
            raise LoanNotFoundError(f"Loan {loan_id} not found")
        return loan

    def create_application(
        self,
        user_id: str,
        business_name: str,
        owner_phone: str,
        loan_amount: Decimal,
        loan_purpose: Optional[str] = None,
        distributor_name: Optional[str] = None,
        distributor_paybill: Optional[str] = None,
    ) -> LoanApplication:
        if loan_amount <= 0:
            raise InvalidRequestError("Loan amount must be positive")

        with committing(self.db, "Failed to create loan application"):
            loan = self.loans.create_application(
                user_id=user_id,
                business_name=business_name,
                owner_phone=normalize_phone(owner_phone, self.terms.country_code),
                loan_amount=loan_amount,
                loan_purpose=loan_purpose,
                distributor_name=distributor_name,
                distributor_paybill=distributor_paybill,
            )
            self.audit.record(
                action="application_submitted",
                entity_type="loan_application",
                entity_id=loan.id,
                user_id=user_id,
                details={"business_name": business_name, "loan_amount": loan_amount},
            )
        return loan

    def balance(self, loan: LoanApplication) -> Tuple[BalanceSummary, Optional[Disbursement]]:
        disbursement = self.disbursements.get_by_application_id(loan.id)
        summary = summarize_balance(
            self.repayments.total_paid_for_loan(loan.id),
            disbursement.repayment_amount if disbursement else None,
            loan.loan_amount,
            self.terms.interest_rate,
        )
        return summary, disbursement

    def list_repayments(self, loan_id: str) -> List[Repayment]:
        loan = self.get_loan(loan_id)
        return self.repayments.get_by_loan(loan.id)

    async def approve(self, loan_id: str) -> LoanApplication:
        loan = self._move(loan_id, LoanStatus.APPROVED, "loan_approved")
        await self.notifier.send(
            loan.owner_phone,
            approved_message(loan.business_name, loan.loan_amount, self.terms.brand_name),
            application_id=str(loan.id),
            notification_type="approved",
        )
        return loan

    async def reject(self, loan_id: str, reason: str) -> LoanApplication:
        if not reason or not reason.strip():
            raise InvalidRequestError("Please provide a rejection reason")

        loan = self._move(loan_id, LoanStatus.REJECTED, "loan_rejected", rejection_reason=reason.strip())
        await self.notifier.send(
            loan.owner_phone,
            rejected_message(loan.business_name, loan.rejection_reason, self.terms.brand_name),
            application_id=str(loan.id),
            notification_type="rejected",
        )
        return loan

    async def disburse(self, loan_id: str, transaction_ref: Optional[str] = None) -> Disbursement:
        """
        Pay out an approved loan to its distributor.

        repayment_amount = loan_amount × (1 + interest_rate), due after the
        repayment term; both are fixed here and never recomputed.
        """
        loan = self.get_loan(loan_id)
        ensure_transition(loan.status, LoanStatus.DISBURSED)

        disbursed_at = utc_now()
        with committing(self.db, "Failed to create disbursement"):
            disbursement = self.disbursements.create_disbursement(
                application_id=loan.id,
                amount=loan.loan_amount,
                repayment_amount=calculate_repayment_amount(loan.loan_amount, self.terms.interest_rate),
                disbursed_at=disbursed_at,
                repayment_due_date=calculate_due_date(disbursed_at, self.terms.repayment_term_days),
                distributor_paybill=loan.distributor_paybill,
                transaction_ref=transaction_ref or None,
            )
            if not self.loans.transition_status(loan.id, LoanStatus.APPROVED, LoanStatus.DISBURSED):
                raise InvalidStatusTransitionError(loan.status, LoanStatus.DISBURSED.value)
            self.audit.record(
                action="loan_disbursed",
                entity_type="disbursement",
                entity_id=disbursement.id,
                user_id=loan.user_id,
                details={
                    "loan_id": loan.id,
                    "amount": disbursement.amount,
                    "repayment_amount": disbursement.repayment_amount,
                    "repayment_due_date": disbursement.repayment_due_date,
                    "transaction_ref": transaction_ref,
                },
            )

        await self.notifier.send(
            loan.owner_phone,
            disbursed_message(loan.business_name, loan.loan_amount, self.terms.brand_name),
            application_id=str(loan.id),
            notification_type="disbursed",
        )
        return disbursement

    def mark_overdue(self) -> int:
        with committing(self.db, "Failed to flag overdue disbursements"):
            count = self.disbursements.mark_overdue(utc_now())
            if count:
                self.audit.record(
                    action="repayments_overdue",
                    entity_type="disbursement",
                    details={"count": count},
                )
        logging.info("Overdue sweep completed", extra={"overdue_count": count})
        return count

    def _move(self, loan_id: str, target: LoanStatus, action: str, **fields) -> LoanApplication:
        loan = self.get_loan(loan_id)
        current = loan.status
        ensure_transition(current, target)

        with committing(self.db, f"Failed to move loan to {target.value}"):
            if not self.loans.transition_status(loan.id, LoanStatus(current), target, **fields):
                raise InvalidStatusTransitionError(current, target.value)
            self.audit.record(
                action=action,
                entity_type="loan_application",
                entity_id=loan.id,
                user_id=loan.user_id,
                details={"from": current, "to": target.value, **fields},
            )

        self.db.refresh(loan)
        return loan

