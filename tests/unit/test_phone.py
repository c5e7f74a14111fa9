"""Unit tests for phone number normalization"""

import pytest
from stock247_gateway.domain.exceptions import InvalidRequestError
from stock247_gateway.domain.phone import normalize_phone, to_e164


@pytest.mark.parametrize(
    "raw",
    ["0712345678", "+254712345678", "254712345678", "712345678", "0712 345 678", "0712-345-678"],
)
def test_normalize_phone_variants(raw: str):
    """Every accepted spelling of the same subscriber collapses to 254XXXXXXXXX"""
    assert normalize_phone(raw) == "254712345678"


def test_normalize_phone_is_idempotent():
    once = normalize_phone("0712345678")
    assert normalize_phone(once) == once


def test_normalize_phone_other_country_code():
    assert normalize_phone("0772123456", country_code="256") == "256772123456"


@pytest.mark.parametrize("raw", ["", "   ", "07-12ab5678", "+", "0"])
def test_normalize_phone_rejects_garbage(raw: str):
    with pytest.raises(InvalidRequestError):
        normalize_phone(raw)


def test_to_e164_adds_plus():
    assert to_e164("0712345678") == "+254712345678"
