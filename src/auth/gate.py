"""
Request admission gate.

Every AI-invoking endpoint passes through ``RequestGate.authorize`` before the
expensive LLM call is issued. The checks run in order and stop at the first
failure:

1. identity (anonymous callers are only rate limited, never credit gated)
2. per-tier rate limit
3. credit sufficiency

No credits are spent here; see ``auth.settlement`` for the post-success debit.
"""
import logging
from typing import Any, Dict, Optional, Union

from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from .credits import CreditLedger, ProfileStore
from .exceptions import StoreUnavailableError
from .identity import Caller
from .rate_limiting import RateLimiter, RateLimitResult, rate_limit_headers
from .usage_tracking import AuditLog, RateLimitTier, Tier

logger = logging.getLogger('cvboost.gate')

RATE_LIMITED = "RATE_LIMITED"
UNAUTHORIZED = "UNAUTHORIZED"
INSUFFICIENT_CREDITS = "INSUFFICIENT_CREDITS"
SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"


class AuthorizedContext(BaseModel):
    """An admitted request. ``user_id`` is None for anonymous, rate-limited-only access."""
    user_id: Optional[str] = None
    email: str = ""
    tier: Optional[Tier] = None
    credits: int = 0
    ip_address: Optional[str] = None
    rate_limit: Optional[RateLimitResult] = None

    @property
    def is_anonymous(self) -> bool:
        return self.user_id is None

    @property
    def owner_key(self) -> str:
        return self.user_id if self.user_id is not None else f"ip:{self.ip_address}"


class RejectedResponse(BaseModel):
    status_code: int
    code: str
    body: Dict[str, Any]
    headers: Dict[str, str] = Field(default_factory=dict)

    def to_response(self) -> JSONResponse:
        return JSONResponse(status_code=self.status_code, content=self.body, headers=self.headers or None)


GateResult = Union[AuthorizedContext, RejectedResponse]


def _rate_limited(result: RateLimitResult, message: str, **extra: Any) -> RejectedResponse:
    return RejectedResponse(
        status_code=429,
        code=RATE_LIMITED,
        body={
            "error": message,
            "code": RATE_LIMITED,
            "retryAfter": result.retry_after_seconds,
            **extra,
        },
        headers=rate_limit_headers(result),
    )


def service_unavailable() -> RejectedResponse:
    return RejectedResponse(
        status_code=503,
        code=SERVICE_UNAVAILABLE,
        body={
            "error": "Service temporarily unavailable. Please try again shortly.",
            "code": SERVICE_UNAVAILABLE,
        },
        headers={"Retry-After": "5"},
    )


class RequestGate:
    def __init__(
        self,
        rate_limiter: RateLimiter,
        ledger: CreditLedger,
        profile_store: ProfileStore,
        audit_log: AuditLog,
    ):
        self.rate_limiter = rate_limiter
        self.ledger = ledger
        self.profile_store = profile_store
        self.audit_log = audit_log

    async def authorize(
        self,
        caller: Caller,
        require_credits: bool = True,
        credits_required: int = 1,
        endpoint: str = "",
        allow_anonymous: bool = False,
    ) -> GateResult:
        """
        Admit or reject a request.

        Args:
            caller: The resolved request identity
            require_credits: Whether the operation is credit gated. Credit gated
                operations require authentication unless allow_anonymous is set.
            credits_required: Credits the operation will cost on success
            endpoint: Name used in audit records
            allow_anonymous: Admit anonymous callers on their rate limit alone;
                authenticated callers still go through the credit check

        Returns:
            AuthorizedContext if the request may proceed, RejectedResponse otherwise
        """
        try:
            if caller.user is None:
                return await self._authorize_anonymous(caller, require_credits and not allow_anonymous, endpoint)
            return await self._authorize_user(caller, require_credits, credits_required, endpoint)
        except StoreUnavailableError as e:
            logger.error(f"Gate failing closed for {endpoint or 'request'}: {e}")
            return service_unavailable()

    async def _authorize_anonymous(self, caller: Caller, require_credits: bool, endpoint: str) -> GateResult:
        identifier = caller.anonymous_key
        result = await self.rate_limiter.check(identifier, RateLimitTier.ANONYMOUS)

        if not result.allowed:
            await self.audit_log.log_rate_limit_hit(identifier, endpoint)
            return _rate_limited(result, "Rate limit exceeded")

        if require_credits:
            reason = "Invalid access token" if caller.token_rejected else "Authentication required"
            await self.audit_log.log_auth_failure(caller.ip_address, reason)
            return RejectedResponse(
                status_code=401,
                code=UNAUTHORIZED,
                body={"error": "Authentication required", "code": UNAUTHORIZED},
            )

        logger.debug(f"Admitted anonymous caller {identifier} to {endpoint or 'request'}")
        return AuthorizedContext(ip_address=caller.ip_address, rate_limit=result)

    async def _authorize_user(
        self,
        caller: Caller,
        require_credits: bool,
        credits_required: int,
        endpoint: str,
    ) -> GateResult:
        assert caller.user is not None
        user_id = caller.user.user_id

        profile = await self.profile_store.get_profile(user_id)
        tier = profile.tier if profile else Tier.FREE
        credits = profile.credits if profile else 0

        result = await self.rate_limiter.check(user_id, RateLimitTier.for_tier(tier))
        if not result.allowed:
            await self.audit_log.log_rate_limit_hit(user_id, endpoint)
            return _rate_limited(
                result,
                "Rate limit exceeded. Please wait before making another request.",
                upgradeRequired=tier == Tier.FREE,
            )

        if require_credits:
            credit_result = await self.ledger.check_credits(user_id, credits_required)
            if not credit_result.has_credits:
                logger.info(
                    f"Insufficient credits for {user_id}: {credit_result.current_credits}/{credits_required}"
                )
                return RejectedResponse(
                    status_code=402,
                    code=INSUFFICIENT_CREDITS,
                    body={
                        "error": "Insufficient credits. Please upgrade your plan or purchase more credits.",
                        "code": INSUFFICIENT_CREDITS,
                        "currentCredits": credit_result.current_credits,
                        "requiredCredits": credit_result.required_credits,
                        "upgradeRequired": True,
                    },
                )

        return AuthorizedContext(
            user_id=user_id,
            email=caller.user.email,
            tier=tier,
            credits=credits,
            ip_address=caller.ip_address,
            rate_limit=result,
        )
