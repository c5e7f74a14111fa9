"""Loan lifecycle rules: status transitions, flat-interest terms and balances"""

from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, FrozenSet, Optional

from stock247_gateway.domain.exceptions import InvalidStatusTransitionError
from stock247_gateway.domain.models import BalanceSummary, LoanStatus

CENTS = Decimal("0.01")

ALLOWED_TRANSITIONS: Dict[LoanStatus, FrozenSet[LoanStatus]] = {
    LoanStatus.PENDING: frozenset({LoanStatus.APPROVED, LoanStatus.REJECTED}),
    LoanStatus.APPROVED: frozenset({LoanStatus.DISBURSED}),
    LoanStatus.DISBURSED: frozenset({LoanStatus.COMPLETED}),
    LoanStatus.REJECTED: frozenset(),
    LoanStatus.COMPLETED: frozenset(),
}


def ensure_transition(current: str, target: LoanStatus) -> None:
    """Raise unless current → target is a permitted loan status change"""
    try:
        current_status = LoanStatus(current)
    except ValueError:
        raise InvalidStatusTransitionError(current, target.value)

    if target not in ALLOWED_TRANSITIONS[current_status]:
        raise InvalidStatusTransitionError(current_status.value, target.value)


def calculate_repayment_amount(principal: Decimal, interest_rate: Decimal) -> Decimal:
    """
    Flat interest: principal × (1 + rate), fixed once at disbursement.

    Example:
        50000 at 10% → 55000.00
    """
    return (Decimal(principal) * (1 + Decimal(interest_rate))).quantize(CENTS, rounding=ROUND_HALF_UP)


def calculate_due_date(disbursed_at: datetime, term_days: int = 7) -> datetime:
    return disbursed_at + timedelta(days=term_days)


def summarize_balance(
    total_paid: Decimal,
    repayment_amount: Optional[Decimal],
    loan_amount: Decimal,
    interest_rate: Decimal,
) -> BalanceSummary:
    """Outstanding balance against the disbursement's total due (estimated when no disbursement)"""
    estimated = repayment_amount is None
    total_due = calculate_repayment_amount(loan_amount, interest_rate) if estimated else Decimal(repayment_amount)
    outstanding = max(Decimal("0"), total_due - total_paid)
    return BalanceSummary(
        total_due=total_due,
        total_paid=total_paid,
        outstanding=outstanding,
        total_due_estimated=estimated,
    )
