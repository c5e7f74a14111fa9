"""SQLAlchemy ORM models for loan applications, disbursements and repayments"""

import uuid
from sqlalchemy import Column, String, Integer, Numeric, DateTime, ForeignKey, Text, JSON
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()

Money = Numeric(12, 2, asdecimal=True)


class LoanApplication(Base):
    """Working-capital funding request; aggregate root"""

    __tablename__ = "loan_applications"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Text, nullable=False, index=True)
    business_name = Column(Text, nullable=False)
    owner_phone = Column(Text, nullable=False)
    loan_amount = Column(Money, nullable=False)
    loan_purpose = Column(Text, nullable=True)
    distributor_name = Column(Text, nullable=True)
    distributor_paybill = Column(Text, nullable=True)
    status = Column(String(16), nullable=False, default="pending")
    rejection_reason = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=func.now())

    disbursements = relationship("Disbursement", back_populates="application")
    repayments = relationship("Repayment", back_populates="loan")


class Disbursement(Base):
    """Principal paid out to the distributor for one application"""

    __tablename__ = "disbursements"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    application_id = Column(UUID(as_uuid=True), ForeignKey("loan_applications.id"), nullable=False, index=True)
    amount = Column(Money, nullable=False)
    distributor_paybill = Column(Text, nullable=True)
    transaction_ref = Column(Text, nullable=True)
    status = Column(String(16), nullable=False, default="pending")
    disbursed_at = Column(DateTime(timezone=True), nullable=True)
    repayment_amount = Column(Money, nullable=False)  # fixed at creation, never recomputed
    repayment_due_date = Column(DateTime(timezone=True), nullable=False)
    repayment_status = Column(String(16), nullable=False, default="pending")
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    application = relationship("LoanApplication", back_populates="disbursements")


class Repayment(Base):
    """One customer-initiated mobile-money payment attempt"""

    __tablename__ = "repayments"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Text, nullable=False, index=True)
    loan_id = Column(UUID(as_uuid=True), ForeignKey("loan_applications.id"), nullable=False, index=True)
    amount = Column(Money, nullable=False)
    phone = Column(Text, nullable=False)
    checkout_request_id = Column(Text, nullable=False, unique=True)
    merchant_request_id = Column(Text, nullable=True)
    status = Column(String(16), nullable=False, default="pending")
    mpesa_receipt = Column(Text, nullable=True)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    loan = relationship("LoanApplication", back_populates="repayments")


class RiskAssessment(Base):
    """AI risk verdict, one row per application"""

    __tablename__ = "risk_assessments"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    application_id = Column(UUID(as_uuid=True), ForeignKey("loan_applications.id"), nullable=False, unique=True)
    risk_score = Column(Integer, nullable=False)
    risk_level = Column(String(16), nullable=False)
    kyc_status = Column(String(16), nullable=False)
    aml_status = Column(String(16), nullable=False)
    fraud_flags = Column(JSON, nullable=False, default=list)
    verification_notes = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=func.now())


class AuditLog(Base):
    """Append-only record of initiations, settlements and notifications"""

    __tablename__ = "audit_logs"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    action = Column(Text, nullable=False, index=True)
    entity_type = Column(Text, nullable=False)
    entity_id = Column(Text, nullable=True, index=True)
    user_id = Column(Text, nullable=True)
    details = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
