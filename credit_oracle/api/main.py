"""FastAPI application factory (serve with `uvicorn --factory credit_oracle.api.main:create_app`)"""

from fastapi import FastAPI
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from credit_oracle.api.middleware import RequestIDMiddleware, MetricsMiddleware
from credit_oracle.api.v1 import cycles, scores, status
from credit_oracle.infrastructure.observability.logging import setup_logging
from credit_oracle.services.sync import SyncOrchestrator
from credit_oracle.config import settings

# Setup structured logging
setup_logging(settings.log_level)


def create_app(orchestrator: SyncOrchestrator | None = None) -> FastAPI:
    """Create and configure FastAPI application"""
    app = FastAPI(
        title="Credit Score Oracle",
        description="Merchant credit scoring and ledger reconciliation service",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    if orchestrator is None:
        from credit_oracle.services.factory import build_orchestrator

        orchestrator = build_orchestrator()
    app.state.orchestrator = orchestrator

    # Add middleware (order matters: last added = first executed)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)

    # Health check endpoint
    @app.get("/health")
    def health_check():
        return {
            "status": "ok",
            "service": settings.service_name,
            "cycle_running": app.state.orchestrator.is_running,
        }

    # Prometheus metrics endpoint
    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    # Register API routers
    app.include_router(cycles.router, prefix="/v1", tags=["cycles"])
    app.include_router(status.router, prefix="/v1", tags=["status"])
    app.include_router(scores.router, prefix="/v1", tags=["scores"])

    return app
