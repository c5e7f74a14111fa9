"""AI risk assessment for loan applications"""

import logging
from typing import Any, Mapping
from sqlalchemy.orm import Session

from stock247_gateway.domain.exceptions import LoanNotFoundError, RiskParseError
from stock247_gateway.domain.models import RiskVerdict
from stock247_gateway.domain.risk import neutral_verdict, parse_risk_verdict
from stock247_gateway.infrastructure.clients.risk import RiskClient
from stock247_gateway.infrastructure.database.repositories import (
    AuditRepository,
    LoanRepository,
    RiskAssessmentRepository,
)
from stock247_gateway.infrastructure.observability.metrics import risk_fallback_counter
from stock247_gateway.infrastructure.database.session import committing
from stock247_gateway.services.repayments import parse_uuid


class RiskService:
    def __init__(self, db: Session, client: RiskClient):
        self.db = db
        self.client = client
        self.loans = LoanRepository(db)
        self.assessments = RiskAssessmentRepository(db)
        self.audit = AuditRepository(db)

    async def assess(
        self,
        application_id: str,
        document_urls: Mapping[str, Any],
        business_data: Mapping[str, Any],
    ) -> RiskVerdict:
        """
        Score an application and upsert its single RiskAssessment row.

        An unparseable model reply yields the neutral verdict (50, medium,
        pending) instead of an error.

        Raises:
            InvalidRequestError: Malformed application id
            LoanNotFoundError: Unknown application
            RiskServiceError: LLM gateway unavailable, rate limited or out of credits
            PersistenceError: Assessment could not be stored
        """
        loan_uuid = parse_uuid(application_id, "application id")
        if self.loans.get(loan_uuid) is None:
            raise LoanNotFoundError(f"Loan {application_id} not found")

        content = await self.client.analyze(business_data, document_urls)
        try:
            verdict = parse_risk_verdict(content)
        except RiskParseError as e:
            risk_fallback_counter.inc()
            logging.warning(f"Failed to parse AI response: {e}", extra={"application_id": application_id})
            verdict = neutral_verdict()

        with committing(self.db, "Failed to store risk assessment"):
            self.assessments.upsert(loan_uuid, verdict)
            self.audit.record(
                action="risk_assessed",
                entity_type="loan_application",
                entity_id=loan_uuid,
                details={
                    "risk_score": verdict.risk_score,
                    "risk_level": verdict.risk_level,
                    "recommendation": verdict.recommendation,
                },
            )

        logging.info(
            "Risk assessment completed",
            extra={
                "application_id": application_id,
                "risk_score": verdict.risk_score,
                "risk_level": verdict.risk_level,
            },
        )
        return verdict
