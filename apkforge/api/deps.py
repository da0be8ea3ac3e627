"""FastAPI dependencies."""

from fastapi import Request

from ..orchestration import PhaseOrchestrator


def get_orchestrator(request: Request) -> PhaseOrchestrator:
    """Orchestrator created by ``create_app`` for this application."""
    return request.app.state.orchestrator
