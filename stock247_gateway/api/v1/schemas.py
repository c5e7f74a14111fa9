"""Pydantic schemas for API request/response validation"""

from pydantic import BaseModel, Field
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional


class InitiateRepaymentRequest(BaseModel):
    """Request body for POST /v1/repayments/initiate; fields are type-checked by the service so bad input gets a 400"""

    user_id: Any = None
    loan_id: Any = None
    amount: Any = None
    phone: Any = None


class InitiateRepaymentResponse(BaseModel):
    success: bool
    message: str
    repayment_id: Optional[str] = None
    checkout_request_id: Optional[str] = None


class RepaymentSchema(BaseModel):
    id: str
    user_id: str
    loan_id: str
    amount: float
    phone: str
    checkout_request_id: str
    merchant_request_id: Optional[str] = None
    status: str
    mpesa_receipt: Optional[str] = None
    paid_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class SettlementResponse(BaseModel):
    """Result of a simulated payment"""

    success: bool
    repayment_id: str
    status: str
    total_paid: float
    total_due: float
    loan_completed: bool


class CallbackAck(BaseModel):
    """Response for POST /v1/mpesa/callback"""

    success: bool
    message: Optional[str] = None


class CreateLoanRequest(BaseModel):
    """Request body for POST /v1/loans"""

    user_id: str = Field(..., min_length=1)
    business_name: str = Field(..., min_length=1)
    owner_phone: str = Field(..., min_length=1)
    loan_amount: Decimal = Field(..., gt=0, description="Requested principal in KSh")
    loan_purpose: Optional[str] = None
    distributor_name: Optional[str] = None
    distributor_paybill: Optional[str] = None


class BalanceSchema(BaseModel):
    total_due: float
    total_paid: float
    outstanding: float
    total_due_estimated: bool


class DisbursementSchema(BaseModel):
    id: str
    application_id: str
    amount: float
    repayment_amount: float
    repayment_due_date: datetime
    repayment_status: str
    status: str
    transaction_ref: Optional[str] = None
    disbursed_at: Optional[datetime] = None


class LoanResponse(BaseModel):
    """Response for loan endpoints"""

    id: str
    user_id: str
    business_name: str
    owner_phone: str
    loan_amount: float
    status: str
    distributor_paybill: Optional[str] = None
    rejection_reason: Optional[str] = None
    created_at: Optional[datetime] = None
    balance: Optional[BalanceSchema] = None
    disbursement: Optional[DisbursementSchema] = None


class RejectLoanRequest(BaseModel):
    reason: str = ""


class DisburseLoanRequest(BaseModel):
    transaction_ref: Optional[str] = None


class OverdueSweepResponse(BaseModel):
    overdue_count: int


class SmsRequest(BaseModel):
    """Request body for POST /v1/notifications/sms"""

    phone: Optional[str] = None
    message: Optional[str] = None
    applicationId: Optional[str] = None
    notificationType: str = "custom"


class SmsResponse(BaseModel):
    success: bool
    provider: str
    messageId: Optional[str] = None
    message: str


class RiskAnalysisRequest(BaseModel):
    """Request body for POST /v1/risk/analyze"""

    applicationId: str = Field(..., min_length=1)
    documentUrls: Dict[str, Any] = Field(default_factory=dict)
    businessData: Dict[str, Any] = Field(default_factory=dict)


class RiskAssessmentSchema(BaseModel):
    riskScore: int
    riskLevel: str
    kycStatus: str
    amlStatus: str
    fraudFlags: List[str]
    recommendation: str
    reasons: List[str]
    confidenceScore: int


class RiskAnalysisResponse(BaseModel):
    success: bool
    riskAssessment: RiskAssessmentSchema
