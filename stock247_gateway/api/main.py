"""FastAPI application factory"""

import logging
from fastapi import FastAPI, Request
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from stock247_gateway.api.middleware import RequestIDMiddleware, MetricsMiddleware
from stock247_gateway.api.v1 import callbacks, loans, notifications, repayments, risk
from stock247_gateway.api.v1.responses import failure
from stock247_gateway.infrastructure.observability.logging import setup_logging
from stock247_gateway.config import settings

# Setup structured logging
setup_logging(settings.log_level, settings.service_name)


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""
    app = FastAPI(
        title="Stock 24/7 Gateway",
        description="Loan disbursement and M-Pesa repayment settlement service",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # Add middleware (order matters: last added = first executed)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)

    # Unhandled errors keep the {success, message} envelope
    @app.exception_handler(Exception)
    async def unhandled_exception(request: Request, exc: Exception):
        logging.error(
            f"Unhandled error: {exc}",
            extra={"request_id": getattr(request.state, "request_id", "unknown"), "path": request.url.path},
        )
        return failure(500, "Internal server error")

    # Health check endpoint
    @app.get("/health")
    def health_check():
        return {"status": "ok", "service": settings.service_name}

    # Prometheus metrics endpoint
    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    # Register API routers
    app.include_router(repayments.router, prefix="/v1", tags=["repayments"])
    app.include_router(callbacks.router, prefix="/v1", tags=["callbacks"])
    app.include_router(loans.router, prefix="/v1", tags=["loans"])
    app.include_router(notifications.router, prefix="/v1", tags=["notifications"])
    app.include_router(risk.router, prefix="/v1", tags=["risk"])

    return app


app = create_app()
