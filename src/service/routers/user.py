import logging

from fastapi import APIRouter, Depends, Query

from auth.identity import AuthenticatedUser
from auth.usage_tracking import Tier, get_tier_limits
from schema import AnalysisSummary, CreditsResponse, HistoryResponse, UsageActivity, UsageStatsResponse
from ..config import AdmissionComponents
from ..dependencies import get_authenticated_user, get_components

logger = logging.getLogger('cvboost.service.routers.user')

router = APIRouter(prefix="/user")


@router.get("/credits")
async def get_credits(
    user: AuthenticatedUser = Depends(get_authenticated_user),
    components: AdmissionComponents = Depends(get_components),
) -> CreditsResponse:
    """Current balance and tier entitlements for the caller."""
    profile = await components.profile_store.get_profile(user.user_id)
    tier = profile.tier if profile else Tier.FREE
    limits = get_tier_limits(tier)
    unlimited = limits.unlimited_credits

    return CreditsResponse(
        userId=user.user_id,
        tier=tier.value,
        credits=None if unlimited else (profile.credits if profile else 0),
        unlimited=unlimited,
        creditsPerMonth=None if unlimited else int(limits.credits_per_month),
        maxFileSize=limits.max_file_size,
        allowedTemplates=sorted(limits.allowed_templates),
        requestsPerMinute=limits.requests_per_minute,
    )


@router.get("/stats")
async def get_stats(
    user: AuthenticatedUser = Depends(get_authenticated_user),
    components: AdmissionComponents = Depends(get_components),
) -> UsageStatsResponse:
    stats = await components.ledger.get_usage_stats(user.user_id)
    total_analyses = await components.analysis_store.count_for_user(user.user_id)
    return UsageStatsResponse(
        totalOperations=stats.total_operations,
        totalAnalyses=total_analyses,
        creditsUsed=stats.credits_used,
        recentActivity=[
            UsageActivity(action=entry.action, creditsUsed=entry.credits_used, createdAt=entry.timestamp)
            for entry in stats.recent_activity
        ],
    )


@router.get("/history")
async def get_history(
    limit: int = Query(10, ge=1, le=100),
    offset: int = Query(0, ge=0),
    user: AuthenticatedUser = Depends(get_authenticated_user),
    components: AdmissionComponents = Depends(get_components),
) -> HistoryResponse:
    """The caller's saved analyses, newest first."""
    records, total = await components.analysis_store.list_for_user(user.user_id, limit=limit, offset=offset)
    return HistoryResponse(
        analyses=[
            AnalysisSummary(
                id=record.id,
                resumeId=record.resume_id,
                jobDescription=record.job_description,
                atsScore=record.ats_score,
                analysisResult=record.analysis_result,
                optimizedContent=record.optimized_content,
                templateUsed=record.template_used,
                creditsUsed=record.credits_used,
                createdAt=record.created_at,
            )
            for record in records
        ],
        total=total,
        limit=limit,
        offset=offset,
    )
