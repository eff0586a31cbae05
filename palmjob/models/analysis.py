"""Analysis record: pending → analyzing → completed | failed."""
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class AnalysisStatus(str, Enum):
    pending = "pending"
    analyzing = "analyzing"
    completed = "completed"
    failed = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (AnalysisStatus.completed, AnalysisStatus.failed)

    @property
    def rank(self) -> int:
        return _STATUS_RANK[self]


_STATUS_RANK = {
    AnalysisStatus.pending: 0,
    AnalysisStatus.analyzing: 1,
    AnalysisStatus.completed: 2,
    AnalysisStatus.failed: 2,
}


class UploadErrorType(str, Enum):
    NOT_PALM = "NOT_PALM"                    # not a palm photo
    PALM_CROPPED = "PALM_CROPPED"            # palm cut off
    TOO_DARK = "TOO_DARK"
    TOO_BLURRY = "TOO_BLURRY"
    HAND_MISMATCH = "HAND_MISMATCH"          # left/right swapped or same hand twice
    GENERATION_FAILED = "GENERATION_FAILED"
    UNKNOWN = "UNKNOWN"


ERROR_MESSAGES: dict[UploadErrorType, str] = {
    UploadErrorType.NOT_PALM: "Please upload a photo of a palm.",
    UploadErrorType.PALM_CROPPED: "Please take the photo so the whole palm is visible.",
    UploadErrorType.TOO_DARK: "Please retake the photo somewhere brighter.",
    UploadErrorType.TOO_BLURRY: "Please retake the photo so it is in focus.",
    UploadErrorType.HAND_MISMATCH: (
        "The photos do not look like the hands you selected. Check left/right and upload again."
    ),
    UploadErrorType.GENERATION_FAILED: "We could not generate your result this time. Please upload again.",
    UploadErrorType.UNKNOWN: "Something went wrong. Please try again.",
}


class Gender(str, Enum):
    male = "male"
    female = "female"


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class JobResult(_CamelModel):
    title: str
    short_comment: str | None = None
    interpretation: str
    card_image_url: str | None = None  # set only after the illustration step succeeds


class AnalysisRecord(_CamelModel):
    id: str
    status: AnalysisStatus = AnalysisStatus.pending
    progress: int | None = None  # advisory 0-100
    job: JobResult | None = None
    error: UploadErrorType | None = None
    error_message: str | None = None
    created_at: datetime
    expires_at: datetime

    def to_public(self) -> dict:
        """JSON shape served to pollers: camelCase keys, unset fields omitted."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at
