"""Unit tests for risk prompt construction and verdict parsing"""

import json
import pytest
from stock247_gateway.domain.exceptions import RiskParseError
from stock247_gateway.domain.risk import (
    build_risk_prompt,
    neutral_verdict,
    parse_risk_verdict,
    strip_code_fence,
)

VERDICT = {
    "riskScore": 28,
    "riskLevel": "low",
    "kycStatus": "verified",
    "amlStatus": "clear",
    "fraudFlags": [],
    "recommendation": "approve",
    "reasons": ["5 years in operation", "All documents uploaded"],
    "confidenceScore": 82,
}


def test_parse_plain_json():
    verdict = parse_risk_verdict(json.dumps(VERDICT))
    assert verdict.risk_score == 28
    assert verdict.risk_level == "low"
    assert verdict.recommendation == "approve"
    assert verdict.confidence_score == 82
    assert len(verdict.reasons) == 2


def test_parse_fenced_json():
    content = "```json\n" + json.dumps(VERDICT) + "\n```"
    assert parse_risk_verdict(content).kyc_status == "verified"


def test_strip_bare_fence():
    assert strip_code_fence("```\n{}\n```") == "{}"


def test_scores_are_clamped():
    verdict = parse_risk_verdict(json.dumps({**VERDICT, "riskScore": 140, "confidenceScore": -3}))
    assert verdict.risk_score == 100
    assert verdict.confidence_score == 0


def test_scalar_lists_are_wrapped():
    verdict = parse_risk_verdict(json.dumps({**VERDICT, "fraudFlags": "Address mismatch"}))
    assert verdict.fraud_flags == ["Address mismatch"]


@pytest.mark.parametrize(
    "content",
    [
        None,
        "I think this business is fine.",
        "[1, 2, 3]",
        json.dumps({"riskLevel": "low"}),
        json.dumps({**VERDICT, "riskLevel": "extreme"}),
        json.dumps({**VERDICT, "riskScore": "high"}),
    ],
)
def test_unusable_replies_raise(content):
    with pytest.raises(RiskParseError):
        parse_risk_verdict(content)


def test_neutral_verdict():
    verdict = neutral_verdict()
    assert verdict.risk_score == 50
    assert verdict.risk_level == "medium"
    assert verdict.kyc_status == "pending"
    assert verdict.recommendation == "review"
    assert verdict.confidence_score == 0


def test_prompt_marks_missing_documents():
    prompt = build_risk_prompt(
        {"businessName": "Kilimani Wines", "yearsInOperation": 5, "loanAmount": 50000},
        {"idDocument": "https://files.test/id.jpg"},
    )
    assert "Business Name: Kilimani Wines" in prompt
    assert "ID Document: Uploaded" in prompt
    assert "Selfie Verification: Missing" in prompt
