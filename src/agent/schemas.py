from typing import Literal, Optional
from pydantic import BaseModel, Field


class ResumeContact(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    location: Optional[str] = None
    linkedin: Optional[str] = None
    website: Optional[str] = None


class ResumeExperience(BaseModel):
    company: str
    title: str
    startDate: Optional[str] = None
    endDate: Optional[str] = None
    bullets: list[str]
    improvements: Optional[list[str]] = None


class ResumeEducation(BaseModel):
    institution: str
    degree: str
    field: Optional[str] = None
    graduationDate: Optional[str] = None
    gpa: Optional[str] = None


class ResumeIssue(BaseModel):
    type: Literal["critical", "warning", "suggestion"]
    category: str
    message: str
    fix: str


class AtsBreakdown(BaseModel):
    formatting: int = Field(ge=0, le=100)
    keywords: int = Field(ge=0, le=100)
    structure: int = Field(ge=0, le=100)
    content: int = Field(ge=0, le=100)


class ResumeAnalysis(BaseModel):
    """Structured ATS analysis of a resume."""
    contact: ResumeContact
    summary: Optional[str] = None
    experience: list[ResumeExperience]
    education: list[ResumeEducation]
    skills: list[str]
    atsScore: int = Field(ge=0, le=100)
    atsBreakdown: AtsBreakdown
    issues: list[ResumeIssue]
    detectedKeywords: list[str]
    missingKeywords: Optional[list[str]] = None
    suggestedKeywords: list[str]
    strengths: list[str]
    improvements: list[str]


class OptimizedResume(BaseModel):
    """A rewritten resume."""
    contact: ResumeContact
    summary: str
    experience: list[ResumeExperience]
    education: list[ResumeEducation]
    skills: list[str]
    improvements: list[str]
