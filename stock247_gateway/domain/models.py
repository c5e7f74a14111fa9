"""Domain models - pure Python dataclasses representing business entities"""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import List, Optional


class LoanStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    DISBURSED = "disbursed"
    COMPLETED = "completed"


class RepaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"


class DisbursementStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class DisbursementRepaymentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    OVERDUE = "overdue"


@dataclass
class StkPushResult:
    """Gateway acknowledgement of a push payment request"""

    checkout_request_id: str
    merchant_request_id: str
    response_description: str = ""


@dataclass
class PaymentMetadata:
    """Typed view of CallbackMetadata.Item; missing fields keep their defaults"""

    receipt: str = ""
    amount: Decimal = Decimal("0")
    phone: str = ""


@dataclass
class StkCallback:
    """Payment result delivered by the gateway"""

    merchant_request_id: str
    checkout_request_id: str
    result_code: int
    result_desc: str
    metadata: PaymentMetadata = field(default_factory=PaymentMetadata)

    @property
    def succeeded(self) -> bool:
        return self.result_code == 0


@dataclass
class InitiationResult:
    """Outcome of a repayment initiation"""

    repayment_id: str
    checkout_request_id: str
    stk_push_sent: bool
    message: str


@dataclass
class SettlementOutcome:
    """What the reconciler did with one callback"""

    repayment_id: str
    loan_id: str
    status: str  # "paid", "failed" or "duplicate"
    total_paid: Decimal = Decimal("0")
    total_due: Decimal = Decimal("0")
    fully_paid: bool = False
    loan_completed: bool = False


@dataclass
class BalanceSummary:
    total_due: Decimal
    total_paid: Decimal
    outstanding: Decimal
    total_due_estimated: bool = False


@dataclass
class SmsResult:
    success: bool
    provider: str
    message_id: Optional[str] = None
    error: Optional[str] = None

    @property
    def message(self) -> str:
        if self.success:
            suffix = " (mock)" if self.provider == "mock" else ""
            return f"SMS{suffix} sent successfully"
        return f"Failed to send SMS: {self.error}"


@dataclass
class RiskVerdict:
    """LLM risk assessment for one loan application"""

    risk_score: int
    risk_level: str
    kyc_status: str
    aml_status: str
    fraud_flags: List[str] = field(default_factory=list)
    recommendation: str = "review"
    reasons: List[str] = field(default_factory=list)
    confidence_score: int = 0
