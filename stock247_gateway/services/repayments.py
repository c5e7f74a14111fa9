"""Repayment initiation over M-Pesa STK push, with a demo fallback path"""

import asyncio
import logging
import uuid
from decimal import Decimal
from typing import Any, Callable
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from stock247_gateway.config import LoanTerms
from stock247_gateway.domain.exceptions import (
    DemoModeDisabledError,
    DomainException,
    GatewayUnavailableError,
    InvalidRequestError,
    LoanNotFoundError,
    PersistenceError,
    RepaymentNotFoundError,
)
from stock247_gateway.domain.models import (
    InitiationResult,
    PaymentMetadata,
    RepaymentStatus,
    SettlementOutcome,
    StkCallback,
)
from stock247_gateway.domain.phone import normalize_phone
from stock247_gateway.domain.settlement import (
    account_reference,
    stk_amount,
    synthesize_receipt,
    synthesize_request_ids,
    validate_repayment_request,
)
from stock247_gateway.infrastructure.clients.daraja import DarajaClient
from stock247_gateway.infrastructure.database.repositories import (
    AuditRepository,
    LoanRepository,
    RepaymentRepository,
)
from stock247_gateway.infrastructure.observability.metrics import gateway_failure_counter, record_initiation
from stock247_gateway.services.notifications import Notifier
from stock247_gateway.services.settlement import SettlementReconciler

STK_SENT_MESSAGE = "STK Push sent. Please check your phone and enter your M-PESA PIN."
DEMO_MESSAGE = "Payment initiated (demo mode). Payment will complete shortly."
DEGRADED_MESSAGE = "Payment service temporarily unavailable. Please retry in a few minutes."


def parse_uuid(value: str, label: str) -> uuid.UUID:
    try:
        return uuid.UUID(str(value))
    except ValueError:
        raise InvalidRequestError(f"Invalid {label}")


class RepaymentService:
    """Starts repayments and drives demo-mode completion"""

    def __init__(self, db: Session, daraja: DarajaClient, terms: LoanTerms):
        self.db = db
        self.daraja = daraja
        self.terms = terms
        self.repayments = RepaymentRepository(db)
        self.loans = LoanRepository(db)
        self.audit = AuditRepository(db)

    @property
    def demo_mode(self) -> bool:
        return not self.daraja.config.is_configured

    async def initiate(
        self,
        user_id: Any,
        loan_id: Any,
        amount: Any,
        phone: Any,
        request_id: str = "unknown",
    ) -> InitiationResult:
        """
        Start a push payment and persist a pending Repayment.

        Flow:
        1. Validate input and normalize the phone number
        2. Send an STK push when Daraja is configured; on failure degrade
        3. Otherwise synthesize checkout/merchant request ids
        4. Persist the pending repayment and an initiation audit entry

        Raises:
            InvalidRequestError: Missing field, amount below 1, bad phone or loan id
            LoanNotFoundError: Loan does not exist
            PersistenceError: Repayment could not be stored
        """
        value = validate_repayment_request(user_id, loan_id, amount, phone)
        loan_uuid = parse_uuid(loan_id, "loan id")
        formatted_phone = normalize_phone(phone, self.terms.country_code)

        if self.loans.get(loan_uuid) is None:
            raise LoanNotFoundError(f"Loan {loan_id} not found")

        checkout_request_id = ""
        merchant_request_id = ""
        stk_push_sent = False

        if not self.demo_mode:
            try:
                result = await self.daraja.stk_push(
                    phone=formatted_phone,
                    amount=stk_amount(value),
                    account_reference=account_reference(loan_id),
                )
                checkout_request_id = result.checkout_request_id
                merchant_request_id = result.merchant_request_id
                stk_push_sent = True
            except GatewayUnavailableError as e:
                gateway_failure_counter.inc()
                logging.warning(
                    f"Daraja unavailable, using fallback: {e}",
                    extra={"request_id": request_id, "loan_id": loan_id, "step": "gateway_degraded"},
                )
        else:
            logging.info(
                "Daraja not configured, using demo STK push",
                extra={"request_id": request_id, "loan_id": loan_id, "step": "demo_fallback"},
            )

        if not stk_push_sent:
            checkout_request_id, merchant_request_id = synthesize_request_ids()

        try:
            repayment = self.repayments.create_repayment(
                user_id=user_id,
                loan_id=loan_uuid,
                amount=value,
                phone=formatted_phone,
                checkout_request_id=checkout_request_id,
                merchant_request_id=merchant_request_id,
            )
            self.audit.record(
                action="repayment_initiated",
                entity_type="repayment",
                entity_id=repayment.id,
                user_id=user_id,
                details={
                    "loan_id": loan_id,
                    "amount": value,
                    "phone": formatted_phone,
                    "checkout_request_id": checkout_request_id,
                    "stk_push_sent": stk_push_sent,
                    "gateway_degraded": not stk_push_sent and not self.demo_mode,
                },
            )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logging.error(f"Error inserting repayment: {e}", extra={"request_id": request_id})
            raise PersistenceError("Failed to create repayment record") from e

        record_initiation(stk_push_sent, gateway_configured=not self.demo_mode)

        return InitiationResult(
            repayment_id=str(repayment.id),
            checkout_request_id=checkout_request_id,
            stk_push_sent=stk_push_sent,
            message=self._initiation_message(stk_push_sent),
        )

    def _initiation_message(self, stk_push_sent: bool) -> str:
        if stk_push_sent:
            return STK_SENT_MESSAGE
        # Degraded repayments are never auto-completed; the customer has to retry
        return DEMO_MESSAGE if self.demo_mode else DEGRADED_MESSAGE

    async def simulate_payment(self, repayment_id: str, notifier: Notifier) -> SettlementOutcome:
        """
        Complete a demo repayment through the reconciler, as a gateway callback would.

        Raises:
            DemoModeDisabledError: Real gateway credentials are configured
            RepaymentNotFoundError: Unknown repayment id
        """
        if not self.demo_mode:
            raise DemoModeDisabledError("Simulated payments are disabled when Daraja is configured")

        repayment = self.repayments.get(parse_uuid(repayment_id, "repayment id"))
        if repayment is None:
            raise RepaymentNotFoundError(f"Repayment {repayment_id} not found")

        callback = StkCallback(
            merchant_request_id=repayment.merchant_request_id or "",
            checkout_request_id=repayment.checkout_request_id,
            result_code=0,
            result_desc="The service request is processed successfully.",
            metadata=PaymentMetadata(
                receipt=synthesize_receipt(),
                amount=Decimal(repayment.amount),
                phone=repayment.phone,
            ),
        )
        return await SettlementReconciler(self.db, notifier, self.terms).handle_callback(callback)


async def complete_demo_payment(
    repayment_id: str,
    session_factory: Callable[[], Session],
    daraja: DarajaClient,
    notifier: Notifier,
    terms: LoanTerms,
) -> None:
    """
    Background task: after the demo delay, settle a still-pending repayment.

    A repayment already finalized by a real callback is left alone.
    Errors are logged, never raised.
    """
    await asyncio.sleep(terms.demo_completion_delay_seconds)

    db = session_factory()
    try:
        service = RepaymentService(db, daraja, terms)
        repayment = service.repayments.get(uuid.UUID(repayment_id))
        if repayment is None or repayment.status != RepaymentStatus.PENDING.value:
            logging.info("Demo completion skipped", extra={"repayment_id": repayment_id})
            return
        outcome = await service.simulate_payment(repayment_id, notifier)
        logging.info(
            "Mock payment completed",
            extra={"repayment_id": repayment_id, "settlement_outcome": outcome.status},
        )
    except (DomainException, SQLAlchemyError) as e:
        logging.error(f"Mock payment completion error: {e}", extra={"repayment_id": repayment_id})
    finally:
        db.close()
