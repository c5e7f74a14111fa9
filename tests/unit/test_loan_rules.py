"""Unit tests for loan status transitions and flat-interest terms"""

import pytest
from datetime import datetime, timezone
from decimal import Decimal
from stock247_gateway.domain.exceptions import InvalidStatusTransitionError
from stock247_gateway.domain.loans import (
    calculate_due_date,
    calculate_repayment_amount,
    ensure_transition,
    summarize_balance,
)
from stock247_gateway.domain.models import LoanStatus


@pytest.mark.parametrize(
    "current,target",
    [
        ("pending", LoanStatus.APPROVED),
        ("pending", LoanStatus.REJECTED),
        ("approved", LoanStatus.DISBURSED),
        ("disbursed", LoanStatus.COMPLETED),
    ],
)
def test_allowed_transitions(current: str, target: LoanStatus):
    ensure_transition(current, target)


@pytest.mark.parametrize(
    "current,target",
    [
        ("pending", LoanStatus.DISBURSED),
        ("pending", LoanStatus.COMPLETED),
        ("approved", LoanStatus.COMPLETED),
        ("rejected", LoanStatus.APPROVED),
        ("completed", LoanStatus.DISBURSED),
        ("disbursed", LoanStatus.APPROVED),
    ],
)
def test_forbidden_transitions(current: str, target: LoanStatus):
    with pytest.raises(InvalidStatusTransitionError) as exc_info:
        ensure_transition(current, target)
    assert exc_info.value.current == current
    assert exc_info.value.target == target.value


def test_unknown_current_status_is_rejected():
    with pytest.raises(InvalidStatusTransitionError):
        ensure_transition("archived", LoanStatus.APPROVED)


def test_repayment_amount_flat_ten_percent():
    assert calculate_repayment_amount(Decimal("50000"), Decimal("0.10")) == Decimal("55000.00")


def test_repayment_amount_rounds_to_cents():
    # 333.33 * 1.10 = 366.663
    assert calculate_repayment_amount(Decimal("333.33"), Decimal("0.10")) == Decimal("366.66")


def test_due_date_after_term():
    disbursed_at = datetime(2026, 10, 1, 9, 0, tzinfo=timezone.utc)
    assert calculate_due_date(disbursed_at, 7) == datetime(2026, 10, 8, 9, 0, tzinfo=timezone.utc)


def test_summarize_balance_partial():
    summary = summarize_balance(Decimal("30000"), Decimal("55000"), Decimal("50000"), Decimal("0.10"))
    assert summary.total_due == Decimal("55000")
    assert summary.outstanding == Decimal("25000")
    assert summary.total_due_estimated is False


def test_summarize_balance_overpaid_clamps_to_zero():
    summary = summarize_balance(Decimal("56000"), Decimal("55000"), Decimal("50000"), Decimal("0.10"))
    assert summary.outstanding == Decimal("0")


def test_summarize_balance_without_disbursement_is_estimated():
    summary = summarize_balance(Decimal("0"), None, Decimal("20000"), Decimal("0.10"))
    assert summary.total_due == Decimal("22000.00")
    assert summary.total_due_estimated is True
