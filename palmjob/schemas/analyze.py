from pydantic import BaseModel

from palmjob.models import AnalysisStatus


class AnalyzeResponse(BaseModel):
    id: str
    status: AnalysisStatus = AnalysisStatus.pending


class ErrorResponse(BaseModel):
    error: str
    status_code: int
    request_id: str | None = None


class HealthResponse(BaseModel):
    status: str = "ok"
    openai_configured: bool
    store: str  # "ok" | "error"
