"""Prometheus metrics for repayment initiation, settlement, notifications and risk analysis"""

from prometheus_client import Counter, Histogram

# Repayment initiation
repayment_initiated_counter = Counter(
    "stock247_repayment_initiated_total",
    "Repayment initiations by path",
    ["path"],  # stk_push | demo | degraded
)

gateway_failure_counter = Counter(
    "stock247_gateway_failures_total",
    "Failed Daraja token exchanges or STK pushes",
)

# Settlement
callback_counter = Counter(
    "stock247_callback_total",
    "M-Pesa callbacks processed",
    ["outcome"],  # paid | failed | duplicate | not_found
)

loan_completed_counter = Counter(
    "stock247_loans_completed_total",
    "Loans moved to completed by settlement",
)

settlement_amount_histogram = Histogram(
    "stock247_settlement_amount_ksh",
    "Settled repayment amounts in KSh",
    buckets=[100, 500, 1_000, 5_000, 10_000, 25_000, 50_000, 100_000],
)

# Notifications
sms_counter = Counter(
    "stock247_sms_total",
    "SMS send attempts",
    ["provider", "outcome"],  # outcome: sent | failed
)

# Risk analysis
risk_fallback_counter = Counter(
    "stock247_risk_fallback_total",
    "Risk analyses that fell back to the neutral verdict",
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_initiation(stk_push_sent: bool, gateway_configured: bool) -> None:
    """Count initiations, separating plain demo mode from a degraded real gateway"""
    if stk_push_sent:
        path = "stk_push"
    elif gateway_configured:
        path = "degraded"
    else:
        path = "demo"
    repayment_initiated_counter.labels(path=path).inc()


def record_settlement(status: str, amount: float = 0.0, loan_completed: bool = False) -> None:
    callback_counter.labels(outcome=status).inc()
    if status == "paid":
        settlement_amount_histogram.observe(amount)
    if loan_completed:
        loan_completed_counter.inc()
