import logging
import math
import os
import time

from typing import Callable, Dict, Optional
from fastapi import Request
from fastapi.responses import JSONResponse
from limits import RateLimitItem, RateLimitItemPerSecond
from limits.aio.storage import MemoryStorage, Storage
from limits.aio.strategies import MovingWindowRateLimiter
from limits.storage import storage_from_string
from pydantic import BaseModel
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded

from auth.exceptions import StoreUnavailableError
from auth.usage_tracking.models import RATE_LIMITS, RateLimitTier

logger = logging.getLogger('cvboost.rate_limiting')


class RateLimitResult(BaseModel):
    allowed: bool
    limit: int
    remaining: int
    reset_at_epoch_ms: int
    retry_after_seconds: Optional[int] = None


def rate_limit_headers(result: RateLimitResult) -> Dict[str, str]:
    headers = {
        "X-RateLimit-Limit": str(result.limit),
        "X-RateLimit-Remaining": str(result.remaining),
        "X-RateLimit-Reset": str(result.reset_at_epoch_ms),
    }
    if result.retry_after_seconds:
        headers["Retry-After"] = str(result.retry_after_seconds)
    return headers


def create_rate_limit_storage(redis_url: Optional[str] = None) -> Storage:
    """
    Create the counter store shared by all sliding windows.

    Args:
        redis_url (str, optional): Redis connection URL. Falls back to process-local
            memory storage when not provided.
    """
    if redis_url:
        logger.info(f"Rate limiter using Redis storage: {redis_url}")
        return storage_from_string(f"async+{redis_url}")

    logger.warning(
        "REDIS_URL not set - rate limiter using in-memory storage (not suitable for production)"
    )
    return MemoryStorage()


class RateLimiter:
    """
    Sliding-window rate limiter keyed by identifier and tier.

    Only allowed requests are recorded into the window, so ``remaining`` only
    ever decreases until older hits slide out of the window.
    """

    def __init__(
        self,
        storage: Storage,
        limits: Optional[Dict[RateLimitTier, tuple[int, int]]] = None,
        fail_open: bool = False,
    ):
        self.storage = storage
        self.fail_open = fail_open
        self._strategy = MovingWindowRateLimiter(storage)
        self._items: Dict[RateLimitTier, RateLimitItem] = {
            tier: RateLimitItemPerSecond(amount, multiples=window, namespace=f"ratelimit:{tier.value}")
            for tier, (amount, window) in (limits or RATE_LIMITS).items()
        }

    def item_for(self, tier: RateLimitTier) -> RateLimitItem:
        return self._items[tier]

    async def check(self, identifier: str, tier: RateLimitTier) -> RateLimitResult:
        """
        Record a request for ``identifier`` if it fits in the trailing window.

        Args:
            identifier: User id for authenticated callers, ``ip:<address>`` otherwise
            tier: The rate limit tier to apply

        Returns:
            RateLimitResult describing the decision and the window state after it

        Raises:
            StoreUnavailableError: If the counter store is unreachable and the
                limiter is configured to fail closed
        """
        item = self._items[tier]

        try:
            allowed = await self._strategy.hit(item, identifier)
            reset_time, remaining = await self._strategy.get_window_stats(item, identifier)
        except Exception as e:
            if self.fail_open:
                logger.warning(
                    f"Rate limit store unavailable for {identifier} ({tier.value}), failing open: "
                    f"{type(e).__name__}: {e}"
                )
                return RateLimitResult(
                    allowed=True,
                    limit=item.amount,
                    remaining=item.amount,
                    reset_at_epoch_ms=int((time.time() + item.get_expiry()) * 1000),
                )
            logger.error(f"Rate limit store unavailable for {identifier} ({tier.value}): {type(e).__name__}: {e}")
            raise StoreUnavailableError("rate limit store", f"check {tier.value}", e) from e

        retry_after = None
        if not allowed:
            retry_after = max(1, math.ceil(reset_time - time.time()))
            logger.info(f"Rate limit exceeded for {identifier} ({tier.value}), retry after {retry_after}s")

        return RateLimitResult(
            allowed=allowed,
            limit=item.amount,
            remaining=max(0, remaining),
            reset_at_epoch_ms=int(reset_time * 1000),
            retry_after_seconds=retry_after,
        )


def _rate_limit_exceeded_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handler for the coarse global limit enforced by slowapi"""
    if isinstance(exc, RateLimitExceeded):
        detail = exc.detail if hasattr(exc, "detail") else str(exc)
        error_message = f"Rate limit exceeded: {detail}"
    else:
        error_message = "Rate limit error occurred"
        logger.error(
            f"Unexpected error in rate limiter: {type(exc).__name__}: {str(exc)}"
        )

    return JSONResponse(
        status_code=429,
        content={
            "error": error_message,
            "code": "RATE_LIMITED",
            "message": "Too many requests. Please try again later.",
        },
    )


def create_limiter(key_func: Callable) -> Limiter:
    """
    Create the global per-client slowapi limiter that sits in front of the request gate.

    Args:
        key_func (Callable): Function to extract the rate limit key from a request.
    """
    redis_url = os.getenv("REDIS_URL")
    default_limits = [os.getenv("GLOBAL_RATE_LIMIT", "60/minute")]

    try:
        if redis_url:
            logger.info(f"Global limiter using Redis storage: {redis_url}")
            return Limiter(
                key_func=key_func,
                storage_uri=redis_url,
                default_limits=default_limits,
            )
        else:
            logger.warning(
                "REDIS_URL not set - global limiter using in-memory storage (not suitable for production)"
            )
            return Limiter(
                key_func=key_func,
                default_limits=default_limits,
            )
    except Exception as e:
        logger.error(
            f"Error initializing global limiter with Redis: {type(e).__name__}: {str(e)}"
        )
        logger.warning("Falling back to in-memory global rate limiting")
        return Limiter(
            key_func=key_func,
            default_limits=default_limits,
        )
