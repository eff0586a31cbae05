"""Domain outcomes returned by the provider clients; raw provider errors never cross these."""
from dataclasses import dataclass, field

from .analysis import ERROR_MESSAGES, JobResult, UploadErrorType


@dataclass(frozen=True)
class ValidationOutcome:
    is_valid: bool
    error_type: UploadErrorType | None = None
    message: str = ""
    details: dict[str, object] = field(default_factory=dict)

    @classmethod
    def accepted(cls, message: str = "", details: dict[str, object] | None = None) -> "ValidationOutcome":
        return cls(is_valid=True, message=message, details=details or {})

    @classmethod
    def rejected(cls, error_type: UploadErrorType, message: str = "") -> "ValidationOutcome":
        return cls(is_valid=False, error_type=error_type, message=message or ERROR_MESSAGES[error_type])


@dataclass(frozen=True)
class AnalysisOutcome:
    job: JobResult | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.job is not None


@dataclass(frozen=True)
class IllustrationOutcome:
    image_url: str | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.image_url is not None


@dataclass(frozen=True)
class ImagePayload:
    """An uploaded palm photo: raw bytes plus the MIME type sniffed from them."""

    data: bytes
    mime_type: str
