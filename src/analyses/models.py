import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AnalysisRecord(BaseModel):
    """
    A finished resume analysis saved for a signed-in user.

    ``optimized_content`` is filled in later when the user optimizes the resume
    against this analysis.
    """
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    user_id: str
    resume_id: Optional[str] = None
    job_description: Optional[str] = None
    ats_score: Optional[int] = None
    analysis_result: Dict[str, Any]
    optimized_content: Optional[Dict[str, Any]] = None
    template_used: str = "classic"
    credits_used: int = 0
    created_at: datetime = Field(default_factory=_utcnow)
