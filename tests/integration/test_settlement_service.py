"""Service-level tests for the settlement reconciler and demo completion"""

import pytest
from decimal import Decimal
from unittest.mock import AsyncMock, Mock, patch
from sqlalchemy import event
from sqlalchemy.dialects import postgresql
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session
from conftest import DEMO_DARAJA, TEST_TERMS, TestingSessionLocal
from stock247_gateway.domain.exceptions import NotificationError, PersistenceError, RepaymentNotFoundError
from stock247_gateway.domain.models import PaymentMetadata, StkCallback
from stock247_gateway.infrastructure.clients.daraja import DarajaClient
from stock247_gateway.infrastructure.database.repositories import AuditRepository, LoanRepository
from stock247_gateway.services.notifications import Notifier
from stock247_gateway.services.repayments import complete_demo_payment
from stock247_gateway.services.settlement import SettlementReconciler


def paid(checkout_request_id: str = "ws_CO_100", amount: str = "30000") -> StkCallback:
    return StkCallback(
        merchant_request_id="29115-34620561-1",
        checkout_request_id=checkout_request_id,
        result_code=0,
        result_desc="The service request is processed successfully.",
        metadata=PaymentMetadata(receipt="QKT1ABC2DE", amount=Decimal(amount), phone="254712345678"),
    )


async def test_unknown_checkout_raises(db: Session, notifier: Notifier):
    reconciler = SettlementReconciler(db, notifier, TEST_TERMS)

    with pytest.raises(RepaymentNotFoundError):
        await reconciler.handle_callback(paid("ws_CO_missing"))


async def test_settlement_outcome_totals(db: Session, notifier: Notifier, make_loan, add_repayment):
    loan = make_loan()
    add_repayment(loan, amount=Decimal("30000"))

    outcome = await SettlementReconciler(db, notifier, TEST_TERMS).handle_callback(paid())

    assert outcome.status == "paid"
    assert outcome.total_paid == Decimal("30000")
    assert outcome.total_due == Decimal("55000")
    assert outcome.fully_paid is False
    assert outcome.loan_completed is False


async def test_persistence_failure_rolls_back_and_audits(db: Session, notifier: Notifier, make_loan, add_repayment):
    loan = make_loan()
    repayment = add_repayment(loan)
    reconciler = SettlementReconciler(db, notifier, TEST_TERMS)

    with patch.object(
        reconciler.repayments,
        "total_paid_for_loan",
        side_effect=OperationalError("SELECT sum", {}, Exception("disk I/O error")),
    ):
        with pytest.raises(PersistenceError):
            await reconciler.handle_callback(paid())

    db.expire_all()
    assert repayment.status == "pending"
    assert loan.status == "disbursed"
    audit = AuditRepository(db)
    assert len(audit.get_by_entity(repayment.id, action="repayment_settlement_error")) == 1
    assert audit.get_by_entity(loan.id, action="sms_notification") == []


@patch("stock247_gateway.infrastructure.clients.sms.SmsClient.send")
async def test_sms_failure_does_not_undo_settlement(
    mock_send: AsyncMock, db: Session, notifier: Notifier, make_loan, add_repayment
):
    mock_send.side_effect = NotificationError("SMS gateway timeout after 10.0s")
    loan = make_loan()
    repayment = add_repayment(loan, amount=Decimal("55000"))

    outcome = await SettlementReconciler(db, notifier, TEST_TERMS).handle_callback(paid(amount="55000"))

    assert outcome.loan_completed is True
    db.expire_all()
    assert repayment.status == "paid"
    assert loan.status == "completed"


async def test_demo_completion_skips_settled_repayment(db: Session, notifier: Notifier, make_loan, add_repayment):
    loan = make_loan()
    repayment = add_repayment(loan, status="failed")

    await complete_demo_payment(str(repayment.id), TestingSessionLocal, DarajaClient(DEMO_DARAJA), notifier, TEST_TERMS)

    db.expire_all()
    assert repayment.status == "failed"
    assert AuditRepository(db).get_by_entity(repayment.id, action="repayment_successful") == []


async def test_demo_completion_settles_pending_repayment(db: Session, notifier: Notifier, make_loan, add_repayment):
    loan = make_loan()
    repayment = add_repayment(loan)

    await complete_demo_payment(str(repayment.id), TestingSessionLocal, DarajaClient(DEMO_DARAJA), notifier, TEST_TERMS)

    db.expire_all()
    assert repayment.status == "paid"
    assert repayment.mpesa_receipt.startswith("MOCK")


async def test_loan_row_locked_before_totals(db: Session, notifier: Notifier, make_loan, add_repayment):
    """Payments on the same loan serialize on the loan row before the paid total is summed"""
    loan = make_loan()
    add_repayment(loan, amount=Decimal("30000"))
    reconciler = SettlementReconciler(db, notifier, TEST_TERMS)
    calls = Mock()

    with patch.object(reconciler.loans, "get_for_update", wraps=reconciler.loans.get_for_update) as lock, patch.object(
        reconciler.repayments, "total_paid_for_loan", wraps=reconciler.repayments.total_paid_for_loan
    ) as total:
        calls.attach_mock(lock, "lock")
        calls.attach_mock(total, "total")
        await reconciler.handle_callback(paid())

    assert [c[0] for c in calls.mock_calls] == ["lock", "total"]
    lock.assert_called_once_with(loan.id)


async def test_duplicate_callback_takes_no_loan_lock(db: Session, notifier: Notifier, make_loan, add_repayment):
    loan = make_loan()
    add_repayment(loan, status="paid")
    reconciler = SettlementReconciler(db, notifier, TEST_TERMS)

    with patch.object(reconciler.loans, "get_for_update") as lock:
        outcome = await reconciler.handle_callback(paid())

    assert outcome.status == "duplicate"
    lock.assert_not_called()


def test_loan_lock_is_select_for_update(db: Session, make_loan):
    """On PostgreSQL the lock is a row-level SELECT ... FOR UPDATE"""
    loan = make_loan()
    statements = []

    def capture(orm_execute_state):
        statements.append(str(orm_execute_state.statement.compile(dialect=postgresql.dialect())))

    event.listen(db, "do_orm_execute", capture)
    try:
        locked = LoanRepository(db).get_for_update(loan.id)
    finally:
        event.remove(db, "do_orm_execute", capture)

    assert locked.id == loan.id
    assert statements[-1].rstrip().endswith("FOR UPDATE")
