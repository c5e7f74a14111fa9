"""Domain-specific exceptions"""


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class InvalidRequestError(DomainException):
    """Required input is missing or malformed"""

    pass


class GatewayUnavailableError(DomainException):
    """Daraja token exchange or STK push failed"""

    pass


class RepaymentNotFoundError(DomainException):
    """No repayment matches the given id or checkout request id"""

    pass


class LoanNotFoundError(DomainException):
    """Loan application does not exist"""

    pass


class InvalidStatusTransitionError(DomainException):
    """Loan status change not allowed from the current status"""

    def __init__(self, current: str, target: str):
        super().__init__(f"Cannot move loan from '{current}' to '{target}'")
        self.current = current
        self.target = target


class DemoModeDisabledError(DomainException):
    """Simulated payments are refused while real gateway credentials are configured"""

    pass


class PersistenceError(DomainException):
    """Database write failed"""

    pass


class NotificationError(DomainException):
    """SMS send failed. Always absorbed by callers."""

    pass


class RiskParseError(DomainException):
    """LLM reply was not valid verdict JSON"""

    pass


class RiskServiceError(DomainException):
    """LLM gateway refused or failed the request"""

    def __init__(self, message: str, status_code: int = 502):
        super().__init__(message)
        self.status_code = status_code
