import logging as log
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from slowapi.middleware import SlowAPIMiddleware

from .logging import RequestResponseLoggingMiddleware
from .error_handling import ErrorHandlingMiddleware
from .exception_handlers import admission_rejected_handler, custom_http_exception_handler, store_unavailable_handler
from auth.exceptions import StoreUnavailableError
from ..dependencies import AdmissionRejected

logger = log.getLogger('cvboost.service.middleware')


def setup_middleware(
    app: FastAPI,
    cors_allowed_origins: list[str],
    cors_allowed_methods: list[str],
    cors_allowed_headers: list[str]
):
    """
    Setup all middleware for the FastAPI application.

    Middleware are added in reverse order (last added = first executed).
    Current order of execution:
    1. SlowAPIMiddleware (global per-IP ceiling)
    2. CORSMiddleware (handles CORS)
    3. ErrorHandlingMiddleware (catches unhandled errors)
    4. RequestResponseLoggingMiddleware (logs requests/responses)

    Args:
        app: FastAPI application instance
        cors_allowed_origins: List of allowed CORS origins
        cors_allowed_methods: List of allowed HTTP methods
        cors_allowed_headers: List of allowed headers
    """
    app.add_exception_handler(HTTPException, custom_http_exception_handler)
    app.add_exception_handler(AdmissionRejected, admission_rejected_handler)
    app.add_exception_handler(StoreUnavailableError, store_unavailable_handler)

    app.add_middleware(RequestResponseLoggingMiddleware)

    app.add_middleware(ErrorHandlingMiddleware)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_allowed_origins,
        allow_credentials=True,
        allow_methods=cors_allowed_methods,
        allow_headers=cors_allowed_headers,
        expose_headers=[
            "X-Operation-ID",
            "X-Analysis-ID",
            "X-RateLimit-Limit",
            "X-RateLimit-Remaining",
            "X-RateLimit-Reset",
            "Retry-After",
        ],
    )

    logger.info(f"CORS configured with origins: {cors_allowed_origins}")

    app.add_middleware(SlowAPIMiddleware)


__all__ = [
    'setup_middleware',
    'RequestResponseLoggingMiddleware',
    'ErrorHandlingMiddleware',
    'admission_rejected_handler',
    'custom_http_exception_handler',
    'store_unavailable_handler',
]
