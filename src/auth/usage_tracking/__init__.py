"""Tiers, usage log entries and the audit log."""

from .models import (
    Tier,
    RateLimitTier,
    TierLimits,
    TIER_LIMITS,
    RATE_LIMITS,
    UNLIMITED,
    Profile,
    AuditAction,
    UsageLogEntry,
    UsageStats,
    get_tier_limits,
)
from .store import UsageLogStore, InMemoryUsageLogStore, RedisUsageLogStore
from .audit_log import AuditLog

__all__ = [
    "Tier",
    "RateLimitTier",
    "TierLimits",
    "TIER_LIMITS",
    "RATE_LIMITS",
    "UNLIMITED",
    "Profile",
    "AuditAction",
    "UsageLogEntry",
    "UsageStats",
    "get_tier_limits",
    "UsageLogStore",
    "InMemoryUsageLogStore",
    "RedisUsageLogStore",
    "AuditLog",
]
