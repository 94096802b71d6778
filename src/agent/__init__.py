"""LLM collaborator: model selection, prompts and structured output schemas."""

from .resume_model import ResumeModel
from .schemas import ResumeAnalysis, OptimizedResume

__all__ = ["ResumeModel", "ResumeAnalysis", "OptimizedResume"]
