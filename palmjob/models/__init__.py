from .analysis import (
    ERROR_MESSAGES,
    AnalysisRecord,
    AnalysisStatus,
    Gender,
    JobResult,
    UploadErrorType,
)
from .outcomes import AnalysisOutcome, IllustrationOutcome, ImagePayload, ValidationOutcome

__all__ = [
    "ERROR_MESSAGES",
    "AnalysisOutcome",
    "AnalysisRecord",
    "AnalysisStatus",
    "Gender",
    "IllustrationOutcome",
    "ImagePayload",
    "JobResult",
    "UploadErrorType",
    "ValidationOutcome",
]
