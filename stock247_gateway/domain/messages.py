"""SMS message templates"""

from decimal import Decimal
from typing import Optional


def format_ksh(amount: Decimal) -> str:
    value = Decimal(amount)
    if value == value.to_integral_value():
        return f"{value:,.0f}"
    return f"{value:,.2f}"


def approved_message(business_name: str, loan_amount: Decimal, brand: str) -> str:
    return (
        f"Congratulations! Your loan application for {business_name} has been APPROVED "
        f"for KSh {format_ksh(loan_amount)}. Funds will be disbursed shortly. "
        f"Thank you for choosing {brand}."
    )


def rejected_message(business_name: str, reason: Optional[str], brand: str) -> str:
    detail = f"Reason: {reason}" if reason else "Please contact us for more details."
    return (
        f"Dear Customer, your loan application for {business_name} has been declined. "
        f"{detail} You may reapply after addressing the concerns. - {brand}"
    )


def disbursed_message(business_name: str, loan_amount: Decimal, brand: str) -> str:
    return (
        f"Great news! KSh {format_ksh(loan_amount)} has been disbursed to your distributor "
        f"for {business_name}. Please check with your distributor to confirm receipt. "
        f"Thank you! - {brand}"
    )


def payment_received_message(
    amount: Decimal,
    receipt: str,
    total_paid: Decimal,
    total_due: Decimal,
    brand: str,
) -> str:
    if total_paid >= total_due:
        return f"Your loan is fully repaid! Receipt: {receipt}. Thank you for banking with {brand}."
    return (
        f"Payment of KSh {format_ksh(amount)} received. Receipt: {receipt}. "
        f"Outstanding: KSh {format_ksh(total_due - total_paid)}. Thank you."
    )


def payment_failed_message(result_desc: str, brand: str) -> str:
    return f"Payment failed. {result_desc}. Please try again. - {brand}"
