"""POST /v1/risk/analyze - AI risk assessment for a loan application"""

import logging
from fastapi import APIRouter, Depends, Request

from stock247_gateway.api.dependencies import get_request_id, get_risk_service
from stock247_gateway.api.v1.responses import failure
from stock247_gateway.api.v1.schemas import RiskAnalysisRequest, RiskAnalysisResponse, RiskAssessmentSchema
from stock247_gateway.domain.exceptions import (
    InvalidRequestError,
    LoanNotFoundError,
    PersistenceError,
    RiskServiceError,
)
from stock247_gateway.services.risk import RiskService

router = APIRouter()


@router.post("/risk/analyze", response_model=RiskAnalysisResponse)
async def analyze_risk(
    request_body: RiskAnalysisRequest,
    request: Request,
    service: RiskService = Depends(get_risk_service),
):
    """
    Score an application with the LLM gateway and store the verdict.

    Unparseable model output yields the neutral verdict (score 50, medium).
    Gateway rate limits and depleted credits surface as 429 / 402.
    """
    request_id = get_request_id(request)

    try:
        verdict = await service.assess(
            request_body.applicationId,
            request_body.documentUrls,
            request_body.businessData,
        )
    except InvalidRequestError as e:
        return failure(400, str(e))
    except LoanNotFoundError as e:
        return failure(404, str(e))
    except RiskServiceError as e:
        logging.error(f"AI gateway error: {e}", extra={"request_id": request_id, "status_code": e.status_code})
        return failure(e.status_code, str(e))
    except PersistenceError as e:
        return failure(500, str(e))

    return RiskAnalysisResponse(
        success=True,
        riskAssessment=RiskAssessmentSchema(
            riskScore=verdict.risk_score,
            riskLevel=verdict.risk_level,
            kycStatus=verdict.kyc_status,
            amlStatus=verdict.aml_status,
            fraudFlags=verdict.fraud_flags,
            recommendation=verdict.recommendation,
            reasons=verdict.reasons,
            confidenceScore=verdict.confidence_score,
        ),
    )
