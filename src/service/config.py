"""
Configuration setup for the cvboost service.

This module handles all configuration initialization including:
- CORS settings
- Authentication configuration
- Global and per-tier rate limiting setup
- Construction of the admission components (stores, ledger, gate, settlement)
"""
import os
import logging
from dataclasses import dataclass
from typing import Optional, Tuple
from fastapi import FastAPI
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded

from analyses import AnalysisStore, InMemoryAnalysisStore, RedisAnalysisStore
from auth.auth import AuthConfig, SupabaseAuth, SupabaseJWTAuth
from auth.credits import CreditLedger, InMemoryProfileStore, ProfileStore, RedisProfileStore
from auth.gate import RequestGate
from auth.identity import get_client_ip
from auth.rate_limiting import RateLimiter, create_limiter, create_rate_limit_storage, _rate_limit_exceeded_handler
from auth.settlement import OperationRegistry, SettlementHook
from auth.usage_tracking import AuditLog, InMemoryUsageLogStore, RedisUsageLogStore, UsageLogStore
from .redis_client import get_redis_client

logger = logging.getLogger('cvboost.service.config')


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() == "true"


def get_cors_config() -> Tuple[list[str], list[str], list[str]]:
    """
    Parse and return CORS configuration from environment variables.

    Returns:
        Tuple containing (origins, methods, headers) lists
    """
    cors_allowed_origins = os.getenv("CORS_ALLOWED_ORIGINS", "").split(",")
    cors_allowed_origins = [origin.strip() for origin in cors_allowed_origins if origin.strip()]

    if not cors_allowed_origins:
        logger.warning("CORS_ALLOWED_ORIGINS not set, using development defaults")
        cors_allowed_origins = [
            "http://localhost:3000",
            "http://127.0.0.1:3000",
        ]

    cors_allowed_methods = os.getenv("CORS_ALLOWED_METHODS", "GET,POST,OPTIONS").split(",")
    cors_allowed_methods = [method.strip() for method in cors_allowed_methods if method.strip()]

    cors_allowed_headers = os.getenv("CORS_ALLOWED_HEADERS", "Content-Type,Authorization").split(",")
    cors_allowed_headers = [header.strip() for header in cors_allowed_headers if header.strip()]

    return cors_allowed_origins, cors_allowed_methods, cors_allowed_headers


def setup_auth() -> AuthConfig:
    """
    Configure and return authentication strategies.

    Tokens are verified locally when SUPABASE_JWT_SECRET is set, otherwise by
    asking Supabase Auth for the current user.
    """
    auth_config = AuthConfig()
    if os.getenv("SUPABASE_JWT_SECRET"):
        auth_config.register_auth_strategy("supabase_jwt", SupabaseJWTAuth())
        logger.info("Authentication configured with local Supabase JWT verification")
    elif os.getenv("SUPABASE_URL") and os.getenv("SUPABASE_ANON_KEY"):
        auth_config.register_auth_strategy("supabase", SupabaseAuth())
        logger.info("Authentication configured with Supabase user lookup")
    else:
        logger.warning("No Supabase credentials configured - every bearer token will be rejected")
    return auth_config


def setup_rate_limiting(app: FastAPI) -> Limiter:
    """
    Configure the coarse global per-IP limit enforced by slowapi.

    Per-tier limits are applied by the request gate, not here.
    """
    limiter = create_limiter(key_func=get_client_ip)
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    logger.info("Global rate limiting configured")
    return limiter


@dataclass
class AdmissionComponents:
    """Everything the request gate and settlement need, built once per process"""
    auth_config: AuthConfig
    profile_store: ProfileStore
    usage_store: UsageLogStore
    audit_log: AuditLog
    ledger: CreditLedger
    rate_limiter: RateLimiter
    gate: RequestGate
    settlement_hook: SettlementHook
    operation_registry: OperationRegistry
    analysis_store: AnalysisStore


def build_admission_components(
    auth_config: AuthConfig,
    profile_store: ProfileStore,
    usage_store: UsageLogStore,
    rate_limiter: RateLimiter,
    analysis_store: Optional[AnalysisStore] = None,
) -> AdmissionComponents:
    audit_log = AuditLog(usage_store)
    ledger = CreditLedger(profile_store, audit_log)
    settlement_hook = SettlementHook(ledger)
    return AdmissionComponents(
        auth_config=auth_config,
        profile_store=profile_store,
        usage_store=usage_store,
        audit_log=audit_log,
        ledger=ledger,
        rate_limiter=rate_limiter,
        gate=RequestGate(rate_limiter, ledger, profile_store, audit_log),
        settlement_hook=settlement_hook,
        operation_registry=OperationRegistry(settlement_hook),
        analysis_store=analysis_store or InMemoryAnalysisStore(),
    )


def components_from_env(auth_config: Optional[AuthConfig] = None) -> AdmissionComponents:
    """Build admission components backed by Redis when REDIS_URL is set, in memory otherwise"""
    redis_url = os.getenv("REDIS_URL")
    redis_client = get_redis_client(redis_url)

    if redis_client is not None:
        profile_store: ProfileStore = RedisProfileStore(redis_client)
        usage_store: UsageLogStore = RedisUsageLogStore(redis_client)
        analysis_store: AnalysisStore = RedisAnalysisStore(redis_client)
    else:
        logger.warning("REDIS_URL not set - profiles, usage logs and analyses kept in memory (not suitable for production)")
        profile_store = InMemoryProfileStore()
        usage_store = InMemoryUsageLogStore()
        analysis_store = InMemoryAnalysisStore()

    fail_open = _env_flag("RATE_LIMIT_FAIL_OPEN")
    if fail_open:
        logger.warning("RATE_LIMIT_FAIL_OPEN enabled - requests pass the rate limiter when its store is down")

    rate_limiter = RateLimiter(create_rate_limit_storage(redis_url), fail_open=fail_open)

    return build_admission_components(
        auth_config=auth_config or setup_auth(),
        profile_store=profile_store,
        usage_store=usage_store,
        rate_limiter=rate_limiter,
        analysis_store=analysis_store,
    )


def get_operation_max_age_minutes() -> int:
    return int(os.getenv("OPERATION_MAX_AGE_MINUTES", "10"))


__all__ = [
    'get_cors_config',
    'setup_auth',
    'setup_rate_limiting',
    'AdmissionComponents',
    'build_admission_components',
    'components_from_env',
    'get_operation_max_age_minutes',
]
