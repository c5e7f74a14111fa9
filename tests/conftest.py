"""Pytest fixtures for testing"""

import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Callable, Generator, Optional
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from stock247_gateway.api.main import create_app
from stock247_gateway.api.dependencies import (
    get_daraja_config,
    get_loan_terms,
    get_risk_config,
    get_sms_config,
)
from stock247_gateway.config import DarajaConfig, LoanTerms, RiskConfig, SmsConfig
from stock247_gateway.infrastructure.clients.sms import SmsClient
from stock247_gateway.infrastructure.database.models import Base, Disbursement, LoanApplication, Repayment
from stock247_gateway.infrastructure.database.session import get_db, get_session_factory
from stock247_gateway.services.notifications import Notifier


# Test database
TEST_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

DEMO_DARAJA = DarajaConfig(base_url="https://daraja.test", shortcode="174379")
LIVE_DARAJA = DarajaConfig(
    base_url="https://daraja.test",
    shortcode="174379",
    consumer_key="key",
    consumer_secret="secret",
    passkey="passkey",
    callback_url="https://stock247.test/v1/mpesa/callback",
)
MOCK_SMS = SmsConfig(base_url="https://sms.test")
TEST_TERMS = LoanTerms(demo_completion_delay_seconds=0)


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """Create test database and session"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def notifier(db: Session) -> Notifier:
    """Notifier using the mock SMS provider"""
    return Notifier(SmsClient(MOCK_SMS), TestingSessionLocal)


def _build_client(db: Session, daraja: DarajaConfig) -> TestClient:
    app = create_app()

    def override_get_db():
        # Background tasks write through other sessions; start each request from committed state
        db.expire_all()
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: TestingSessionLocal
    app.dependency_overrides[get_daraja_config] = lambda: daraja
    app.dependency_overrides[get_sms_config] = lambda: MOCK_SMS
    app.dependency_overrides[get_risk_config] = lambda: RiskConfig(
        gateway_url="https://llm.test/v1/chat/completions", model="test-model", api_key="llm-key"
    )
    app.dependency_overrides[get_loan_terms] = lambda: TEST_TERMS
    return TestClient(app)


@pytest.fixture
def client(db: Session) -> TestClient:
    """FastAPI test client in demo mode (no Daraja credentials)"""
    return _build_client(db, DEMO_DARAJA)


@pytest.fixture
def gateway_client(db: Session) -> TestClient:
    """FastAPI test client with Daraja credentials configured"""
    return _build_client(db, LIVE_DARAJA)


@pytest.fixture
def make_loan(db: Session) -> Callable[..., LoanApplication]:
    """Insert a loan application, optionally with its disbursement"""

    def _make_loan(
        status: str = "disbursed",
        loan_amount: Decimal = Decimal("50000"),
        repayment_amount: Optional[Decimal] = Decimal("55000"),
        due_in_days: int = 7,
    ) -> LoanApplication:
        loan = LoanApplication(
            user_id="user_1",
            business_name="Kilimani Wines & Spirits",
            owner_phone="254712345678",
            loan_amount=loan_amount,
            distributor_paybill="522522",
            status=status,
        )
        db.add(loan)
        db.flush()

        if repayment_amount is not None:
            disbursed_at = datetime.now(timezone.utc)
            db.add(
                Disbursement(
                    application_id=loan.id,
                    amount=loan_amount,
                    repayment_amount=repayment_amount,
                    status="completed",
                    disbursed_at=disbursed_at,
                    repayment_due_date=disbursed_at + timedelta(days=due_in_days),
                    repayment_status="pending",
                )
            )
        db.commit()
        return loan

    return _make_loan


def success_callback(checkout_request_id: str, amount, receipt: str = "QKT1ABC2DE", phone: int = 254712345678) -> dict:
    """Daraja STK callback body for a completed payment"""
    return {
        "Body": {
            "stkCallback": {
                "MerchantRequestID": "29115-34620561-1",
                "CheckoutRequestID": checkout_request_id,
                "ResultCode": 0,
                "ResultDesc": "The service request is processed successfully.",
                "CallbackMetadata": {
                    "Item": [
                        {"Name": "Amount", "Value": amount},
                        {"Name": "MpesaReceiptNumber", "Value": receipt},
                        {"Name": "TransactionDate", "Value": 20261018102115},
                        {"Name": "PhoneNumber", "Value": phone},
                    ]
                },
            }
        }
    }


def failure_callback(checkout_request_id: str, code: int = 1032, desc: str = "Request cancelled by user") -> dict:
    return {
        "Body": {
            "stkCallback": {
                "MerchantRequestID": "29115-34620561-1",
                "CheckoutRequestID": checkout_request_id,
                "ResultCode": code,
                "ResultDesc": desc,
            }
        }
    }


@pytest.fixture
def add_repayment(db: Session) -> Callable[..., Repayment]:
    """Insert a pending repayment for a loan"""

    def _add_repayment(
        loan: LoanApplication,
        amount: Decimal = Decimal("30000"),
        checkout_request_id: str = "ws_CO_100",
        status: str = "pending",
    ) -> Repayment:
        repayment = Repayment(
            user_id=loan.user_id,
            loan_id=loan.id,
            amount=amount,
            phone="254712345678",
            checkout_request_id=checkout_request_id,
            merchant_request_id="29115-34620561-1",
            status=status,
        )
        db.add(repayment)
        db.commit()
        return repayment

    return _add_repayment
