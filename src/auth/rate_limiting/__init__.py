from .limiter import (
    RateLimiter,
    RateLimitResult,
    rate_limit_headers,
    create_rate_limit_storage,
    create_limiter,
    _rate_limit_exceeded_handler,
)

__all__ = [
    "RateLimiter",
    "RateLimitResult",
    "rate_limit_headers",
    "create_rate_limit_storage",
    "create_limiter",
    "_rate_limit_exceeded_handler",
]
