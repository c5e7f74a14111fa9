"""Risk assessment prompt construction and verdict parsing"""

import json
from typing import Any, Dict, List, Mapping

from stock247_gateway.domain.exceptions import RiskParseError
from stock247_gateway.domain.models import RiskVerdict

SYSTEM_PROMPT = "You are a precise risk assessment AI. Always respond with valid JSON only."

RISK_LEVELS = ("low", "medium", "high")


def neutral_verdict() -> RiskVerdict:
    """Fixed verdict used when the model reply cannot be parsed"""
    return RiskVerdict(
        risk_score=50,
        risk_level="medium",
        kyc_status="pending",
        aml_status="pending",
        fraud_flags=[],
        recommendation="review",
        reasons=["AI analysis could not be completed. Manual review required."],
        confidence_score=0,
    )


def build_risk_prompt(business_data: Mapping[str, Any], document_urls: Mapping[str, Any]) -> str:
    """Render the analyst prompt for one liquor-store financing application"""

    def field(name: str) -> Any:
        return business_data.get(name, "")

    def uploaded(name: str) -> str:
        return "Uploaded" if document_urls.get(name) else "Missing"

    return f"""You are a loan risk assessment AI for a liquor store financing company. Analyze the following loan application and provide a risk assessment.

Business Information:
- Business Name: {field("businessName")}
- Registration Number: {field("registrationNumber")}
- Years in Operation: {field("yearsInOperation")}
- Physical Address: {field("physicalAddress")}
- Loan Amount Requested: KSh {field("loanAmount")}
- Loan Purpose: {field("loanPurpose")}
- Distributor: {field("distributorName")}

Documents Submitted:
- ID Document: {uploaded("idDocument")}
- Business Registration: {uploaded("businessRegistration")}
- Selfie Verification: {uploaded("selfie")}

Based on this information, provide a JSON response with the following structure:
{{
  "riskScore": <number 0-100, where 0 is lowest risk and 100 is highest risk>,
  "riskLevel": <"low" | "medium" | "high">,
  "kycStatus": <"verified" | "pending" | "flagged">,
  "amlStatus": <"clear" | "pending" | "flagged">,
  "fraudFlags": <array of strings describing any concerns>,
  "recommendation": <"approve" | "review" | "reject">,
  "reasons": <array of strings explaining the assessment>,
  "confidenceScore": <number 0-100>
}}

Consider these factors:
1. Years in operation (2+ years is good, higher is better)
2. Loan amount vs typical business size
3. Document completeness
4. Business registration presence
5. Any inconsistencies in the data

Respond ONLY with valid JSON, no additional text."""


def strip_code_fence(content: str) -> str:
    cleaned = content.strip()
    if cleaned.startswith("```json"):
        cleaned = cleaned[7:]
    if cleaned.startswith("```"):
        cleaned = cleaned[3:]
    if cleaned.endswith("```"):
        cleaned = cleaned[:-3]
    return cleaned.strip()


def _string_list(value: Any) -> List[str]:
    if isinstance(value, list):
        return [str(v) for v in value]
    return [str(value)] if value else []


def parse_risk_verdict(content: Any) -> RiskVerdict:
    """
    Parse the model's JSON reply into a RiskVerdict.

    Raises:
        RiskParseError: Reply is not a JSON object with a usable score and level
    """
    if not isinstance(content, str):
        raise RiskParseError("Model reply is empty")

    try:
        data: Dict[str, Any] = json.loads(strip_code_fence(content))
    except json.JSONDecodeError as e:
        raise RiskParseError(f"Model reply is not JSON: {e}") from e

    if not isinstance(data, dict):
        raise RiskParseError("Model reply is not a JSON object")

    try:
        score = int(round(float(data["riskScore"])))
        level = str(data["riskLevel"]).lower()
    except (KeyError, TypeError, ValueError, OverflowError) as e:
        raise RiskParseError(f"Model reply missing risk fields: {e}") from e

    if level not in RISK_LEVELS:
        raise RiskParseError(f"Unknown risk level: {level}")

    try:
        confidence = int(round(float(data.get("confidenceScore", 0))))
    except (TypeError, ValueError, OverflowError):
        confidence = 0

    return RiskVerdict(
        risk_score=max(0, min(100, score)),
        risk_level=level,
        kyc_status=str(data.get("kycStatus", "pending")),
        aml_status=str(data.get("amlStatus", "pending")),
        fraud_flags=_string_list(data.get("fraudFlags")),
        recommendation=str(data.get("recommendation", "review")),
        reasons=_string_list(data.get("reasons")),
        confidence_score=max(0, min(100, confidence)),
    )
