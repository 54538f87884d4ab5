"""Dependency injection for FastAPI endpoints"""

from fastapi import Request
from credit_oracle.services.sync import SyncOrchestrator


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_orchestrator(request: Request) -> SyncOrchestrator:
    """Provide the app-wide orchestrator so its one-cycle-at-a-time guard holds across requests"""
    return request.app.state.orchestrator
