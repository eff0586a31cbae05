from .analyze import AnalyzeResponse, ErrorResponse, HealthResponse

__all__ = [
    "AnalyzeResponse",
    "ErrorResponse",
    "HealthResponse",
]
