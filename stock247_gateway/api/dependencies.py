"""Dependency injection for FastAPI endpoints"""

from typing import Callable
from fastapi import Depends, Request
from sqlalchemy.orm import Session

from stock247_gateway.config import DarajaConfig, LoanTerms, RiskConfig, SmsConfig, settings
from stock247_gateway.infrastructure.clients.daraja import DarajaClient
from stock247_gateway.infrastructure.clients.risk import RiskClient
from stock247_gateway.infrastructure.clients.sms import SmsClient
from stock247_gateway.infrastructure.database.session import get_db, get_session_factory
from stock247_gateway.services.loans import LoanService
from stock247_gateway.services.notifications import Notifier
from stock247_gateway.services.repayments import RepaymentService
from stock247_gateway.services.risk import RiskService
from stock247_gateway.services.settlement import SettlementReconciler

# Resolved once at process start
_daraja_config = DarajaConfig.from_settings(settings)
_sms_config = SmsConfig.from_settings(settings)
_risk_config = RiskConfig.from_settings(settings)
_loan_terms = LoanTerms.from_settings(settings)


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_daraja_config() -> DarajaConfig:
    return _daraja_config


def get_sms_config() -> SmsConfig:
    return _sms_config


def get_risk_config() -> RiskConfig:
    return _risk_config


def get_loan_terms() -> LoanTerms:
    return _loan_terms


def get_daraja_client(config: DarajaConfig = Depends(get_daraja_config)) -> DarajaClient:
    """Provide Daraja client instance"""
    return DarajaClient(config)


def get_sms_client(config: SmsConfig = Depends(get_sms_config)) -> SmsClient:
    """Provide SMS client instance"""
    return SmsClient(config)


def get_risk_client(config: RiskConfig = Depends(get_risk_config)) -> RiskClient:
    return RiskClient(config)


def get_notifier(
    sms_client: SmsClient = Depends(get_sms_client),
    session_factory: Callable[[], Session] = Depends(get_session_factory),
    terms: LoanTerms = Depends(get_loan_terms),
) -> Notifier:
    return Notifier(sms_client, session_factory, terms.country_code)


def get_repayment_service(
    db: Session = Depends(get_db),
    daraja: DarajaClient = Depends(get_daraja_client),
    terms: LoanTerms = Depends(get_loan_terms),
) -> RepaymentService:
    return RepaymentService(db, daraja, terms)


def get_reconciler(
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
    terms: LoanTerms = Depends(get_loan_terms),
) -> SettlementReconciler:
    return SettlementReconciler(db, notifier, terms)


def get_loan_service(
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
    terms: LoanTerms = Depends(get_loan_terms),
) -> LoanService:
    return LoanService(db, notifier, terms)


def get_risk_service(
    db: Session = Depends(get_db),
    client: RiskClient = Depends(get_risk_client),
) -> RiskService:
    return RiskService(db, client)
