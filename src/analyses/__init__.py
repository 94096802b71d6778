"""Saved analysis history."""

from .models import AnalysisRecord
from .store import AnalysisStore, InMemoryAnalysisStore, RedisAnalysisStore

__all__ = [
    "AnalysisRecord",
    "AnalysisStore",
    "InMemoryAnalysisStore",
    "RedisAnalysisStore",
]
