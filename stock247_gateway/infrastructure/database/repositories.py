"""Data access layer for loans, disbursements, repayments, risk assessments and audit log"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional
from sqlalchemy import func
from sqlalchemy.orm import Session
from stock247_gateway.infrastructure.database.models import (
    AuditLog,
    Disbursement,
    LoanApplication,
    Repayment,
    RiskAssessment,
)
from stock247_gateway.domain.models import (
    DisbursementRepaymentStatus,
    LoanStatus,
    RepaymentStatus,
    RiskVerdict,
)


def _jsonable(value: Any) -> Any:
    """Convert Decimal/UUID/datetime values so audit details serialize as JSON"""
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (uuid.UUID, datetime)):
        return str(value)
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


class LoanRepository:
    """Repository for loan applications"""

    def __init__(self, db: Session):
        self.db = db

    def create_application(
        self,
        user_id: str,
        business_name: str,
        owner_phone: str,
        loan_amount: Decimal,
        loan_purpose: Optional[str] = None,
        distributor_name: Optional[str] = None,
        distributor_paybill: Optional[str] = None,
    ) -> LoanApplication:
        application = LoanApplication(
            user_id=user_id,
            business_name=business_name,
            owner_phone=owner_phone,
            loan_amount=loan_amount,
            loan_purpose=loan_purpose,
            distributor_name=distributor_name,
            distributor_paybill=distributor_paybill,
            status=LoanStatus.PENDING.value,
        )
        self.db.add(application)
        self.db.flush()
        return application

    def get(self, loan_id: uuid.UUID) -> Optional[LoanApplication]:
        return self.db.query(LoanApplication).filter(LoanApplication.id == loan_id).first()

    def get_for_update(self, loan_id: uuid.UUID) -> Optional[LoanApplication]:
        """Load the loan holding its row lock until commit; serializes settlements per loan"""
        return (
            self.db.query(LoanApplication)
            .filter(LoanApplication.id == loan_id)
            .with_for_update()
            .populate_existing()
            .first()
        )

    def transition_status(
        self,
        loan_id: uuid.UUID,
        from_status: LoanStatus,
        to_status: LoanStatus,
        **fields: Any,
    ) -> bool:
        """
        Compare-and-set the loan status.

        Returns:
            True if exactly this call moved the loan out of from_status
        """
        values = {LoanApplication.status: to_status.value}
        values.update({getattr(LoanApplication, k): v for k, v in fields.items()})
        changed = (
            self.db.query(LoanApplication)
            .filter(LoanApplication.id == loan_id, LoanApplication.status == from_status.value)
            .update(values, synchronize_session="fetch")
        )
        return changed == 1


class DisbursementRepository:
    """Repository for disbursements"""

    def __init__(self, db: Session):
        self.db = db

    def create_disbursement(
        self,
        application_id: uuid.UUID,
        amount: Decimal,
        repayment_amount: Decimal,
        disbursed_at: datetime,
        repayment_due_date: datetime,
        distributor_paybill: Optional[str] = None,
        transaction_ref: Optional[str] = None,
    ) -> Disbursement:
        disbursement = Disbursement(
            application_id=application_id,
            amount=amount,
            repayment_amount=repayment_amount,
            distributor_paybill=distributor_paybill,
            transaction_ref=transaction_ref,
            status="completed",
            disbursed_at=disbursed_at,
            repayment_due_date=repayment_due_date,
            repayment_status=DisbursementRepaymentStatus.PENDING.value,
        )
        self.db.add(disbursement)
        self.db.flush()
        return disbursement

    def get_by_application_id(self, application_id: uuid.UUID) -> Optional[Disbursement]:
        return (
            self.db.query(Disbursement)
            .filter(Disbursement.application_id == application_id)
            .order_by(Disbursement.created_at.desc())
            .first()
        )

    def mark_repayment_completed(self, application_id: uuid.UUID) -> int:
        """Set repayment_status=completed where not already completed"""
        return (
            self.db.query(Disbursement)
            .filter(
                Disbursement.application_id == application_id,
                Disbursement.repayment_status != DisbursementRepaymentStatus.COMPLETED.value,
            )
            .update(
                {Disbursement.repayment_status: DisbursementRepaymentStatus.COMPLETED.value},
                synchronize_session="fetch",
            )
        )

    def mark_overdue(self, as_of: datetime) -> int:
        """Flag pending repayments whose due date has passed"""
        return (
            self.db.query(Disbursement)
            .filter(
                Disbursement.repayment_status == DisbursementRepaymentStatus.PENDING.value,
                Disbursement.repayment_due_date < as_of,
            )
            .update(
                {Disbursement.repayment_status: DisbursementRepaymentStatus.OVERDUE.value},
                synchronize_session="fetch",
            )
        )


class RepaymentRepository:
    """Repository for repayment attempts"""

    def __init__(self, db: Session):
        self.db = db

    def create_repayment(
        self,
        user_id: str,
        loan_id: uuid.UUID,
        amount: Decimal,
        phone: str,
        checkout_request_id: str,
        merchant_request_id: str,
    ) -> Repayment:
        repayment = Repayment(
            user_id=user_id,
            loan_id=loan_id,
            amount=amount,
            phone=phone,
            checkout_request_id=checkout_request_id,
            merchant_request_id=merchant_request_id,
            status=RepaymentStatus.PENDING.value,
        )
        self.db.add(repayment)
        self.db.flush()
        return repayment

    def get(self, repayment_id: uuid.UUID) -> Optional[Repayment]:
        return self.db.query(Repayment).filter(Repayment.id == repayment_id).first()

    def get_by_checkout_request_id(self, checkout_request_id: str) -> Optional[Repayment]:
        return (
            self.db.query(Repayment)
            .filter(Repayment.checkout_request_id == checkout_request_id)
            .first()
        )

    def get_by_loan(self, loan_id: uuid.UUID, limit: int = 50) -> List[Repayment]:
        return (
            self.db.query(Repayment)
            .filter(Repayment.loan_id == loan_id)
            .order_by(Repayment.created_at.desc())
            .limit(limit)
            .all()
        )

    def mark_paid(self, repayment_id: uuid.UUID, receipt: str, paid_at: datetime) -> bool:
        """
        Conditional pending → paid update.

        Returns:
            True for exactly one caller per repayment; False for duplicates
        """
        changed = (
            self.db.query(Repayment)
            .filter(Repayment.id == repayment_id, Repayment.status == RepaymentStatus.PENDING.value)
            .update(
                {
                    Repayment.status: RepaymentStatus.PAID.value,
                    Repayment.mpesa_receipt: receipt,
                    Repayment.paid_at: paid_at,
                },
                synchronize_session="fetch",
            )
        )
        return changed == 1

    def mark_failed(self, repayment_id: uuid.UUID) -> bool:
        changed = (
            self.db.query(Repayment)
            .filter(Repayment.id == repayment_id, Repayment.status == RepaymentStatus.PENDING.value)
            .update({Repayment.status: RepaymentStatus.FAILED.value}, synchronize_session="fetch")
        )
        return changed == 1

    def total_paid_for_loan(self, loan_id: uuid.UUID) -> Decimal:
        total = (
            self.db.query(func.coalesce(func.sum(Repayment.amount), 0))
            .filter(Repayment.loan_id == loan_id, Repayment.status == RepaymentStatus.PAID.value)
            .scalar()
        )
        return Decimal(str(total))


class RiskAssessmentRepository:
    """Repository for risk assessments"""

    def __init__(self, db: Session):
        self.db = db

    def get_by_application_id(self, application_id: uuid.UUID) -> Optional[RiskAssessment]:
        return (
            self.db.query(RiskAssessment)
            .filter(RiskAssessment.application_id == application_id)
            .first()
        )

    def upsert(self, application_id: uuid.UUID, verdict: RiskVerdict) -> RiskAssessment:
        """Create or overwrite the single assessment for an application"""
        assessment = self.get_by_application_id(application_id)
        if assessment is None:
            assessment = RiskAssessment(application_id=application_id)
            self.db.add(assessment)

        assessment.risk_score = verdict.risk_score
        assessment.risk_level = verdict.risk_level
        assessment.kyc_status = verdict.kyc_status
        assessment.aml_status = verdict.aml_status
        assessment.fraud_flags = list(verdict.fraud_flags)
        assessment.verification_notes = {
            "recommendation": verdict.recommendation,
            "reasons": list(verdict.reasons),
            "confidenceScore": verdict.confidence_score,
        }
        self.db.flush()
        return assessment


class AuditRepository:
    """Append-only audit trail"""

    def __init__(self, db: Session):
        self.db = db

    def record(
        self,
        action: str,
        entity_type: str,
        entity_id: Optional[Any] = None,
        user_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> AuditLog:
        entry = AuditLog(
            action=action,
            entity_type=entity_type,
            entity_id=str(entity_id) if entity_id is not None else None,
            user_id=user_id,
            details=_jsonable(details or {}),
        )
        self.db.add(entry)
        self.db.flush()
        return entry

    def get_by_entity(self, entity_id: Any, action: Optional[str] = None) -> List[AuditLog]:
        query = self.db.query(AuditLog).filter(AuditLog.entity_id == str(entity_id))
        if action:
            query = query.filter(AuditLog.action == action)
        return query.order_by(AuditLog.created_at.asc()).all()
