"""
Pydantic models for the SCORM bridge wire format.

Field names follow the camelCase used by the host application and by the
runtime script embedded in the wrapper document.
"""

from typing import Literal, Optional
from pydantic import BaseModel, Field, field_validator

ContentType = Literal["audioAssignment", "chant", "book", "video"]
LessonStatus = Literal[
    "passed", "failed", "completed", "incomplete", "browsed", "not attempted"
]

CONTENT_TYPES = ("audioAssignment", "chant", "book", "video")
COMPLETED_STATUSES = ("completed", "passed")


class ProgressData(BaseModel):
    """CMI snapshot fields exchanged with the progress endpoints"""
    lessonStatus: LessonStatus = Field(
        default="incomplete", description="cmi.core.lesson_status"
    )
    score: Optional[float] = Field(
        default=None, description="Numeric cmi.core.score.raw"
    )
    scoreRaw: str = Field(
        default="", description="cmi.core.score.raw exactly as written"
    )
    timeSpent: str = Field(
        default="00:00:00.00", description="cmi.core.total_time"
    )
    suspendData: str = Field(default="", description="cmi.suspend_data")
    entry: str = Field(default="ab-initio", description="cmi.core.entry")
    exit: str = Field(default="normal", description="cmi.core.exit")

    @field_validator("scoreRaw", mode="before")
    def coerce_score_raw(cls, v):
        if v is None:
            return ""
        return str(v)

    def raw_score(self) -> str:
        """Score as a CMI string, preferring the exact value the content wrote."""
        if self.scoreRaw:
            return self.scoreRaw
        if self.score is None:
            return ""
        if float(self.score).is_integer():
            return str(int(self.score))
        return str(self.score)


class ProgressSaveRequest(BaseModel):
    """Body of POST /scorm/{contentId}/progress"""
    contentType: ContentType
    progressData: ProgressData


class ProgressOut(ProgressData):
    """Stored progress as returned to the runtime"""
    updatedAt: Optional[str] = None


# Returned when a learner has no stored progress yet
DEFAULT_PROGRESS = ProgressOut(
    lessonStatus="not attempted",
    score=None,
    scoreRaw="",
    timeSpent="00:00:00.00",
    suspendData="",
    entry="ab-initio",
    exit="",
)


class LaunchData(BaseModel):
    launchUrl: str
    entryPoint: str
    extractedPath: str
    contentType: ContentType
    contentId: str


class ProgressSample(BaseModel):
    status: str = "not attempted"
    score: Optional[float] = None
    timeSpent: str = "00:00:00.00"
    isCompleted: bool = False


class ProgressMessage(BaseModel):
    """Frame to host message posted by the progress relay"""
    type: Literal["SCORM_PROGRESS"] = "SCORM_PROGRESS"
    data: ProgressSample


class HostCommand(BaseModel):
    """Host to frame message"""
    type: Literal["SCORM_SAVE", "SCORM_FINISH"]


class PackageMetadata(BaseModel):
    title: str = "SCORM Package"
    entryPoint: str = "index.html"
    version: str = "1.2"
    manifestPath: Optional[str] = None
