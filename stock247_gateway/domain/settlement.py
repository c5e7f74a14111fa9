"""Repayment settlement rules - request validation, callback parsing and payoff checks"""

import time
import uuid
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Iterable, Mapping, Optional, Tuple

from stock247_gateway.domain.exceptions import InvalidRequestError
from stock247_gateway.domain.loans import calculate_repayment_amount
from stock247_gateway.domain.models import PaymentMetadata, StkCallback

MINIMUM_REPAYMENT = Decimal("1")

_BASE36 = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"


def validate_repayment_request(user_id: Any, loan_id: Any, amount: Any, phone: Any) -> Decimal:
    """
    Check the four required initiation fields, their types and the 1 KSh floor.

    Fields arrive as raw JSON values; amount may be a number or a numeric string.

    Returns:
        The amount as Decimal

    Raises:
        InvalidRequestError: Missing or malformed field, or amount below the floor
    """
    if not user_id or not loan_id or amount is None or amount == "" or not phone:
        raise InvalidRequestError("Missing required fields")

    if not all(isinstance(v, str) for v in (user_id, loan_id, phone)):
        raise InvalidRequestError("user_id, loan_id and phone must be strings")

    if isinstance(amount, bool) or not isinstance(amount, (int, float, str, Decimal)):
        raise InvalidRequestError("Amount must be a number")

    try:
        value = Decimal(str(amount).strip())
    except InvalidOperation:
        raise InvalidRequestError("Amount must be a number")

    if not value.is_finite() or value < MINIMUM_REPAYMENT:
        raise InvalidRequestError("Amount must be at least 1 KSh")

    return value


def stk_amount(amount: Decimal) -> int:
    """M-Pesa only accepts whole shillings"""
    return int(Decimal(amount).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def account_reference(loan_id: str) -> str:
    return f"LOAN-{str(loan_id)[:8]}"


def synthesize_request_ids() -> Tuple[str, str]:
    """Locally unique checkout/merchant ids for the fallback path"""
    tag = f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}"
    return f"mock-checkout-{tag}", f"mock-merchant-{tag}"


def synthesize_receipt() -> str:
    n = int(time.time() * 1000)
    digits = ""
    while n:
        n, rem = divmod(n, 36)
        digits = _BASE36[rem] + digits
    return f"MOCK{digits or '0'}"


def _to_decimal(value: Any) -> Decimal:
    try:
        parsed = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return Decimal("0")
    return parsed if parsed.is_finite() else Decimal("0")


def parse_callback_metadata(items: Optional[Iterable[Any]]) -> PaymentMetadata:
    """
    Map CallbackMetadata.Item name/value pairs to PaymentMetadata.

    Items may arrive in any order, with absent or oddly typed values.
    Unknown names and malformed entries are skipped; nothing raises.
    """
    metadata = PaymentMetadata()
    for item in items or []:
        if not isinstance(item, Mapping):
            continue
        name = item.get("Name")
        value = item.get("Value")
        if value is None:
            continue
        if name == "MpesaReceiptNumber":
            metadata.receipt = str(value)
        elif name == "Amount":
            metadata.amount = _to_decimal(value)
        elif name == "PhoneNumber":
            metadata.phone = str(value)
    return metadata


def parse_callback(payload: Mapping[str, Any]) -> StkCallback:
    """
    Parse the gateway's {"Body": {"stkCallback": {...}}} envelope.

    Raises:
        InvalidRequestError: Envelope or CheckoutRequestID missing
    """
    body = payload.get("Body") if isinstance(payload, Mapping) else None
    stk = body.get("stkCallback") if isinstance(body, Mapping) else None
    if not isinstance(stk, Mapping) or not stk.get("CheckoutRequestID"):
        raise InvalidRequestError("Malformed callback payload")

    try:
        result_code = int(stk.get("ResultCode", -1))
    except (TypeError, ValueError):
        result_code = -1

    metadata_block = stk.get("CallbackMetadata")
    items = metadata_block.get("Item") if isinstance(metadata_block, Mapping) else None

    return StkCallback(
        merchant_request_id=str(stk.get("MerchantRequestID") or ""),
        checkout_request_id=str(stk["CheckoutRequestID"]),
        result_code=result_code,
        result_desc=str(stk.get("ResultDesc") or ""),
        metadata=parse_callback_metadata(items) if result_code == 0 else PaymentMetadata(),
    )


def resolve_total_due(
    repayment_amount: Optional[Decimal],
    requested_amount: Decimal,
    interest_rate: Decimal,
) -> Tuple[Decimal, bool]:
    """
    Total due for settlement: the disbursement's fixed repayment_amount.

    Returns:
        (total_due, estimated) where estimated is True when no disbursement
        exists and the requested amount plus flat interest is used instead
    """
    if repayment_amount is not None:
        return Decimal(repayment_amount), False
    return calculate_repayment_amount(requested_amount, interest_rate), True


def is_fully_paid(total_paid: Decimal, total_due: Decimal) -> bool:
    return Decimal(total_paid) >= Decimal(total_due)
