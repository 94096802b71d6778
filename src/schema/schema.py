from datetime import datetime
from typing import Annotated, Any, Optional
from uuid import UUID

from pydantic import AfterValidator, BaseModel, Field

from utils.validation import (
    MAX_JOB_DESCRIPTION_LENGTH,
    MAX_RESUME_TEXT_LENGTH,
    MIN_RESUME_TEXT_LENGTH,
    sanitize_text,
)


def _sanitize_optional(text: Optional[str]) -> Optional[str]:
    return sanitize_text(text) if text else None


ResumeText = Annotated[
    str,
    Field(
        min_length=MIN_RESUME_TEXT_LENGTH,
        max_length=MAX_RESUME_TEXT_LENGTH,
        description="Plain text extracted from the uploaded resume.",
    ),
    AfterValidator(sanitize_text),
]

JobDescription = Annotated[
    Optional[str],
    Field(max_length=MAX_JOB_DESCRIPTION_LENGTH, description="Optional target job description."),
    AfterValidator(_sanitize_optional),
]


class AnalyzeRequest(BaseModel):
    """Body of POST /analyze."""

    resumeText: ResumeText
    jobDescription: JobDescription = None
    resumeId: Optional[UUID] = Field(default=None, description="Stored resume this analysis belongs to.")


class OptimizeRequest(BaseModel):
    """Body of POST /optimize."""

    resumeText: ResumeText
    analysisInsights: Optional[str] = Field(default=None, description="Summary of a prior analysis.")
    jobDescription: JobDescription = None
    analysisId: Optional[UUID] = Field(default=None, description="Analysis to attach the optimized resume to.")


class CreditsResponse(BaseModel):
    userId: str
    tier: str
    credits: Optional[int] = Field(description="Current balance, null when unlimited.")
    unlimited: bool
    creditsPerMonth: Optional[int] = Field(description="Monthly allotment, null when unlimited.")
    maxFileSize: int
    allowedTemplates: list[str]
    requestsPerMinute: int


class UsageActivity(BaseModel):
    action: str
    creditsUsed: int
    createdAt: datetime


class UsageStatsResponse(BaseModel):
    totalOperations: int
    totalAnalyses: int
    creditsUsed: int
    recentActivity: list[UsageActivity]


class AnalysisSummary(BaseModel):
    id: str
    resumeId: Optional[str] = None
    jobDescription: Optional[str] = None
    atsScore: Optional[int] = None
    analysisResult: dict[str, Any]
    optimizedContent: Optional[dict[str, Any]] = None
    templateUsed: str
    creditsUsed: int
    createdAt: datetime


class HistoryResponse(BaseModel):
    analyses: list[AnalysisSummary]
    total: int
    limit: int
    offset: int


class StopOperationResponse(BaseModel):
    operationId: str
    cancelled: bool


class ErrorResponse(BaseModel):
    error: str
    code: Optional[str] = None
    details: Optional[Any] = None
