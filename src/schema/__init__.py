from .schema import (
    AnalyzeRequest,
    OptimizeRequest,
    CreditsResponse,
    UsageActivity,
    UsageStatsResponse,
    AnalysisSummary,
    HistoryResponse,
    StopOperationResponse,
    ErrorResponse,
)

__all__ = [
    "AnalyzeRequest",
    "OptimizeRequest",
    "CreditsResponse",
    "UsageActivity",
    "UsageStatsResponse",
    "AnalysisSummary",
    "HistoryResponse",
    "StopOperationResponse",
    "ErrorResponse",
]
