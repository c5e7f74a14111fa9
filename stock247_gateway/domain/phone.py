"""Phone number normalization for M-Pesa and SMS"""

import re

from stock247_gateway.domain.exceptions import InvalidRequestError

_SEPARATORS = re.compile(r"[\s-]+")


def normalize_phone(phone: str, country_code: str = "254") -> str:
    """
    Normalize a subscriber number to international format without '+'.

    Rules (applied after stripping whitespace and hyphens):
    - "0712345678"     → "254712345678"  (local trunk prefix replaced)
    - "+254712345678"  → "254712345678"  ('+' dropped)
    - "254712345678"   → "254712345678"
    - "712345678"      → "254712345678"  (country code prepended)

    Raises:
        InvalidRequestError: If the result is empty or not all digits
    """
    cleaned = _SEPARATORS.sub("", phone or "")

    if cleaned.startswith("+"):
        normalized = cleaned[1:]
    elif cleaned.startswith("0"):
        normalized = country_code + cleaned[1:]
    elif cleaned.startswith(country_code):
        normalized = cleaned
    else:
        normalized = country_code + cleaned

    if not normalized.isdigit() or len(normalized) <= len(country_code):
        raise InvalidRequestError(f"Invalid phone number: {phone!r}")

    return normalized


def to_e164(phone: str, country_code: str = "254") -> str:
    """Render a number as +<country><national> for SMS delivery"""
    return "+" + normalize_phone(phone, country_code)
