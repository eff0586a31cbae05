from fastapi import Request

from palmjob.core.config import Settings
from palmjob.core.store import ResultStore
from palmjob.services.orchestrator import AnalysisOrchestrator


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_store(request: Request) -> ResultStore:
    """Process-wide store opened in the app lifespan."""
    return request.app.state.store


def get_orchestrator(request: Request) -> AnalysisOrchestrator:
    return request.app.state.orchestrator
