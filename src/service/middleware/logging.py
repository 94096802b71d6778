import logging
from starlette.middleware.base import BaseHTTPMiddleware
from fastapi import Request, HTTPException

from auth.auth import mask_token

logger = logging.getLogger('cvboost.service.middleware')


class RequestResponseLoggingMiddleware(BaseHTTPMiddleware):
    """Middleware to log requests and responses for debugging admission issues"""

    async def dispatch(self, request: Request, call_next):
        logger.debug(f"REQUEST_DEBUG: {request.method} {request.url}")

        authorization = request.headers.get("authorization")
        logger.debug(f"REQUEST_DEBUG: Bearer token present: {bool(authorization)}")
        if authorization:
            logger.debug(f"REQUEST_DEBUG: Authorization (masked): {mask_token(authorization)}")

        try:
            response = await call_next(request)

            logger.debug(f"RESPONSE_DEBUG: Status {response.status_code}")
            logger.debug(f"RESPONSE_DEBUG: Headers: {dict(response.headers)}")

            if response.status_code >= 500:
                logger.error(f"ERROR_RESPONSE_DEBUG: Status {response.status_code} for {request.url}")
            elif response.status_code >= 400:
                logger.info(f"CLIENT_ERROR_DEBUG: Status {response.status_code} for {request.url}")

            return response

        except HTTPException as exc:
            logger.error(f"HTTP_EXCEPTION_DEBUG: Status {exc.status_code}, Detail: {exc.detail}")
            raise
        except Exception as exc:
            logger.error(f"UNEXPECTED_EXCEPTION_DEBUG: {type(exc)}: {str(exc)}")
            raise
