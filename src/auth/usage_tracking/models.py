import math
from datetime import datetime, timezone
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, FrozenSet, Optional, Union

UNLIMITED = math.inf

MiB = 1024 * 1024


class Tier(str, Enum):
    FREE = "free"
    PRO = "pro"
    ENTERPRISE = "enterprise"


class RateLimitTier(str, Enum):
    """Tiers known to the rate limiter. Anonymous callers get their own, stricter tier."""
    FREE = "free"
    PRO = "pro"
    ENTERPRISE = "enterprise"
    ANONYMOUS = "anonymous"

    @classmethod
    def for_tier(cls, tier: Tier) -> "RateLimitTier":
        return cls(tier.value)


class TierLimits(BaseModel):
    """Defines the static entitlements of a subscription tier."""
    model_config = ConfigDict(frozen=True)

    credits_per_month: Union[int, float]
    max_file_size: int
    allowed_templates: FrozenSet[str]
    requests_per_minute: int

    @property
    def unlimited_credits(self) -> bool:
        return self.credits_per_month == UNLIMITED


ALL_TEMPLATES = frozenset({"classic", "modern", "executive", "technical"})

TIER_LIMITS: Dict[Tier, TierLimits] = {
    Tier.FREE: TierLimits(
        credits_per_month=3,
        max_file_size=5 * MiB,
        allowed_templates=frozenset({"classic"}),
        requests_per_minute=5,
    ),
    Tier.PRO: TierLimits(
        credits_per_month=50,
        max_file_size=10 * MiB,
        allowed_templates=ALL_TEMPLATES,
        requests_per_minute=30,
    ),
    Tier.ENTERPRISE: TierLimits(
        credits_per_month=UNLIMITED,
        max_file_size=25 * MiB,
        allowed_templates=ALL_TEMPLATES,
        requests_per_minute=100,
    ),
}

# requests per window, window length in seconds
RATE_LIMITS: Dict[RateLimitTier, tuple[int, int]] = {
    RateLimitTier.FREE: (TIER_LIMITS[Tier.FREE].requests_per_minute, 60),
    RateLimitTier.PRO: (TIER_LIMITS[Tier.PRO].requests_per_minute, 60),
    RateLimitTier.ENTERPRISE: (TIER_LIMITS[Tier.ENTERPRISE].requests_per_minute, 60),
    RateLimitTier.ANONYMOUS: (3, 60),
}

_missing_tiers = set(Tier) - set(TIER_LIMITS)
if _missing_tiers:
    raise RuntimeError(f"TIER_LIMITS is missing entries for: {sorted(t.value for t in _missing_tiers)}")

_missing_rate_tiers = set(RateLimitTier) - set(RATE_LIMITS)
if _missing_rate_tiers:
    raise RuntimeError(f"RATE_LIMITS is missing entries for: {sorted(t.value for t in _missing_rate_tiers)}")


def get_tier_limits(tier: Tier) -> TierLimits:
    return TIER_LIMITS[tier]


class Profile(BaseModel):
    """A user's billing profile as held by the profile store."""
    id: str
    email: Optional[str] = None
    credits: int = Field(default=0, ge=0)
    tier: Tier = Tier.FREE


class AuditAction(str, Enum):
    LOGIN = "login"
    LOGOUT = "logout"
    SIGNUP = "signup"
    RESUME_UPLOAD = "resume_upload"
    ANALYSIS_STARTED = "analysis_started"
    ANALYSIS_COMPLETED = "analysis_completed"
    OPTIMIZATION_STARTED = "optimization_started"
    OPTIMIZATION_COMPLETED = "optimization_completed"
    DOWNLOAD = "download"
    RATE_LIMITED = "rate_limited"
    AUTH_FAILED = "auth_failed"
    VALIDATION_FAILED = "validation_failed"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UsageLogEntry(BaseModel):
    """
    Immutable record in the usage log.

    Covers both the credit debit trail (positive ``credits_used``), credit
    additions (negative ``credits_used``) and audit events (``audit:`` prefixed
    actions with ``credits_used == 0``).
    """
    model_config = ConfigDict(frozen=True)

    user_id: Optional[str] = None
    action: str
    credits_used: int = 0
    metadata: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=_utcnow)
    success: bool = True
    error_message: Optional[str] = None


class UsageStats(BaseModel):
    total_operations: int
    credits_used: int
    recent_activity: list[UsageLogEntry]
