"""Structured JSON logging for production observability"""

import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from pythonjsonlogger import jsonlogger

from stock247_gateway.domain.models import SettlementOutcome

# Set by RequestIDMiddleware for the lifetime of one request (background tasks included)
request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter with timestamp and service metadata"""

    def __init__(self, *args: Any, service_name: str = "stock247-gateway", **kwargs: Any):
        super().__init__(*args, **kwargs)
        self.service_name = service_name

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = self.service_name
        request_id = request_id_var.get()
        if request_id and not log_record.get("request_id"):
            log_record["request_id"] = request_id


def setup_logging(level: str = "INFO", service_name: str = "stock247-gateway") -> None:
    """Configure structured JSON logging"""
    logger = logging.getLogger()
    logger.setLevel(level)

    # Remove existing handlers
    logger.handlers.clear()

    # JSON handler for stdout
    handler = logging.StreamHandler(sys.stdout)
    formatter = CustomJsonFormatter(
        "%(timestamp)s %(level)s %(name)s %(message)s",
        service_name=service_name,
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)


def log_settlement(request_id: str, checkout_request_id: str, outcome: SettlementOutcome, duration_ms: float) -> None:
    """Log structured settlement outcome for reconciliation audits"""
    logging.info(
        "Settlement completed",
        extra={
            "request_id": request_id,
            "checkout_request_id": checkout_request_id,
            "repayment_id": outcome.repayment_id,
            "loan_id": outcome.loan_id,
            "step": "settlement_complete",
            "settlement_outcome": outcome.status,
            "total_paid": str(outcome.total_paid),
            "total_due": str(outcome.total_due),
            "loan_completed": outcome.loan_completed,
            "duration_ms": duration_ms,
        },
    )
