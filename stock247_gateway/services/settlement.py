"""
Settlement reconciler for M-Pesa STK push callbacks.

Each callback finalizes at most one Repayment. The pending → paid/failed
change is a conditional update, so a redelivered callback finds nothing to
update and is acknowledged without touching totals, loan status or SMS.
Persistence happens in one transaction; SMS goes out only after commit.
"""

import logging
import uuid
from typing import Optional, Tuple
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from stock247_gateway.config import LoanTerms
from stock247_gateway.domain.exceptions import PersistenceError, RepaymentNotFoundError
from stock247_gateway.domain.messages import payment_failed_message, payment_received_message
from stock247_gateway.domain.models import LoanStatus, SettlementOutcome, StkCallback
from stock247_gateway.domain.settlement import is_fully_paid, resolve_total_due
from stock247_gateway.infrastructure.database.models import Repayment
from stock247_gateway.infrastructure.database.repositories import (
    AuditRepository,
    DisbursementRepository,
    LoanRepository,
    RepaymentRepository,
)
from stock247_gateway.infrastructure.observability.metrics import record_settlement
from stock247_gateway.services.notifications import Notifier
from stock247_gateway.utils.date_utils import utc_now


class SettlementReconciler:
    """Applies payment results to repayments, loans and disbursements"""

    def __init__(self, db: Session, notifier: Notifier, terms: LoanTerms):
        self.db = db
        self.notifier = notifier
        self.terms = terms
        self.repayments = RepaymentRepository(db)
        self.loans = LoanRepository(db)
        self.disbursements = DisbursementRepository(db)
        self.audit = AuditRepository(db)

    async def handle_callback(self, callback: StkCallback) -> SettlementOutcome:
        """
        Finalize the repayment matching callback.checkout_request_id.

        Raises:
            RepaymentNotFoundError: No repayment carries this checkout request id
            PersistenceError: A database write failed (rolled back, failure audited)
        """
        repayment = self.repayments.get_by_checkout_request_id(callback.checkout_request_id)
        if repayment is None:
            record_settlement("not_found")
            logging.error(
                "Repayment not found for checkout request",
                extra={"checkout_request_id": callback.checkout_request_id, "step": "callback_unmatched"},
            )
            raise RepaymentNotFoundError(f"No repayment for checkout request {callback.checkout_request_id}")

        phone = repayment.phone
        if callback.succeeded:
            outcome, sms = self._settle_paid(repayment, callback)
        else:
            outcome, sms = self._settle_failed(repayment, callback)

        record_settlement(outcome.status, float(callback.metadata.amount), outcome.loan_completed)

        if sms:
            await self.notifier.send(phone, sms, application_id=outcome.loan_id, notification_type="custom")

        return outcome

    def _settle_paid(self, repayment: Repayment, callback: StkCallback) -> Tuple[SettlementOutcome, Optional[str]]:
        repayment_id, loan_id, user_id = repayment.id, repayment.loan_id, repayment.user_id
        requested_amount = repayment.amount
        metadata = callback.metadata

        try:
            if not self.repayments.mark_paid(repayment_id, metadata.receipt or None, utc_now()):
                self.db.rollback()
                logging.info(
                    "Duplicate success callback ignored",
                    extra={"repayment_id": str(repayment_id), "checkout_request_id": callback.checkout_request_id},
                )
                return SettlementOutcome(str(repayment_id), str(loan_id), "duplicate"), None

            # Concurrent payments on one loan wait here, so each sum sees the others' committed rows
            self.loans.get_for_update(loan_id)
            total_paid = self.repayments.total_paid_for_loan(loan_id)
            disbursement = self.disbursements.get_by_application_id(loan_id)
            total_due, estimated = resolve_total_due(
                disbursement.repayment_amount if disbursement else None,
                requested_amount,
                self.terms.interest_rate,
            )
            if estimated:
                logging.warning(
                    "No disbursement for repaid loan; total due estimated",
                    extra={"loan_id": str(loan_id), "repayment_id": str(repayment_id), "step": "data_consistency"},
                )

            fully_paid = is_fully_paid(total_paid, total_due)
            loan_completed = False
            if fully_paid:
                loan_completed = self.loans.transition_status(loan_id, LoanStatus.DISBURSED, LoanStatus.COMPLETED)
                self.disbursements.mark_repayment_completed(loan_id)

            self.audit.record(
                action="repayment_successful",
                entity_type="repayment",
                entity_id=repayment_id,
                user_id=user_id,
                details={
                    "loan_id": loan_id,
                    "amount": metadata.amount,
                    "mpesa_receipt": metadata.receipt,
                    "phone": metadata.phone,
                    "total_paid": total_paid,
                    "total_due": total_due,
                    "total_due_estimated": estimated,
                    "fully_paid": fully_paid,
                    "loan_completed": loan_completed,
                },
            )
            self.db.commit()
        except SQLAlchemyError as e:
            self._compensate(repayment_id, loan_id, user_id, callback, e)
            raise PersistenceError("Failed to record successful repayment") from e

        outcome = SettlementOutcome(
            repayment_id=str(repayment_id),
            loan_id=str(loan_id),
            status="paid",
            total_paid=total_paid,
            total_due=total_due,
            fully_paid=fully_paid,
            loan_completed=loan_completed,
        )
        message = payment_received_message(
            metadata.amount or requested_amount,
            metadata.receipt,
            total_paid,
            total_due,
            self.terms.brand_name,
        )
        return outcome, message

    def _settle_failed(self, repayment: Repayment, callback: StkCallback) -> Tuple[SettlementOutcome, Optional[str]]:
        repayment_id, loan_id, user_id = repayment.id, repayment.loan_id, repayment.user_id

        try:
            if not self.repayments.mark_failed(repayment_id):
                self.db.rollback()
                logging.info(
                    "Duplicate failure callback ignored",
                    extra={"repayment_id": str(repayment_id), "checkout_request_id": callback.checkout_request_id},
                )
                return SettlementOutcome(str(repayment_id), str(loan_id), "duplicate"), None

            self.audit.record(
                action="repayment_failed",
                entity_type="repayment",
                entity_id=repayment_id,
                user_id=user_id,
                details={
                    "loan_id": loan_id,
                    "result_code": callback.result_code,
                    "result_desc": callback.result_desc,
                },
            )
            self.db.commit()
        except SQLAlchemyError as e:
            self._compensate(repayment_id, loan_id, user_id, callback, e)
            raise PersistenceError("Failed to record failed repayment") from e

        logging.info(
            "Payment failed",
            extra={
                "repayment_id": str(repayment_id),
                "result_code": callback.result_code,
                "result_desc": callback.result_desc,
            },
        )
        outcome = SettlementOutcome(str(repayment_id), str(loan_id), "failed")
        return outcome, payment_failed_message(callback.result_desc, self.terms.brand_name)

    def _compensate(
        self,
        repayment_id: uuid.UUID,
        loan_id: uuid.UUID,
        user_id: str,
        callback: StkCallback,
        error: Exception,
    ) -> None:
        """Roll back and leave an audit entry describing the failed settlement"""
        self.db.rollback()
        logging.error(
            f"Settlement persistence failed: {error}",
            extra={"repayment_id": str(repayment_id), "checkout_request_id": callback.checkout_request_id},
        )
        try:
            self.audit.record(
                action="repayment_settlement_error",
                entity_type="repayment",
                entity_id=repayment_id,
                user_id=user_id,
                details={
                    "loan_id": loan_id,
                    "checkout_request_id": callback.checkout_request_id,
                    "result_code": callback.result_code,
                    "error": str(error),
                },
            )
            self.db.commit()
        except SQLAlchemyError as audit_error:
            self.db.rollback()
            logging.error(
                f"Failed to audit settlement error: {audit_error}",
                extra={"repayment_id": str(repayment_id)},
            )
