import logging
from starlette.middleware.base import BaseHTTPMiddleware
from fastapi import Request
from fastapi.responses import JSONResponse

logger = logging.getLogger('cvboost.service.middleware')


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """
    Last-resort handler for errors no exception handler claimed.

    Admission rejections and store outages have their own handlers and never
    reach this point; anything that does is a bug and is reported as a 500.
    """

    async def dispatch(self, request: Request, call_next):
        try:
            return await call_next(request)
        except Exception as exc:
            logger.error(
                f"Unhandled {type(exc).__name__} for {request.method} {request.url.path}: {exc}",
                exc_info=True,
            )
            return JSONResponse(
                status_code=500,
                content={
                    "error": "Internal server error occurred",
                    "error_code": "internal_error",
                    "message": "An unexpected error occurred. No credits were charged. Please try again later.",
                },
            )
