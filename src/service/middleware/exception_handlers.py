import logging
from fastapi import Request, HTTPException
from fastapi.responses import JSONResponse
from fastapi.exception_handlers import http_exception_handler

from auth.exceptions import StoreUnavailableError
from auth.gate import service_unavailable
from ..dependencies import AdmissionRejected

logger = logging.getLogger('cvboost.service.middleware')


async def admission_rejected_handler(request: Request, exc: AdmissionRejected) -> JSONResponse:
    """Render a request gate rejection as its structured JSON body"""
    rejection = exc.rejection
    logger.debug(f"ADMISSION_REJECTED: {request.url.path} -> {rejection.status_code} {rejection.code}")
    return rejection.to_response()


async def store_unavailable_handler(request: Request, exc: StoreUnavailableError) -> JSONResponse:
    """Fail closed with a 503 when a backing store cannot be reached outside the gate"""
    logger.error(f"STORE_UNAVAILABLE: {request.url.path} - {exc}")
    return service_unavailable().to_response()


async def custom_http_exception_handler(request: Request, exc: HTTPException):
    """Custom handler for HTTPExceptions so dict details are returned as the response body"""
    if isinstance(exc.detail, dict):
        logger.info(f"HTTP_EXCEPTION: {exc.status_code} - {exc.detail}")
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.detail,
            headers=exc.headers,
        )

    # For other HTTP exceptions, use default handler but log the details
    logger.info(f"OTHER_HTTP_EXCEPTION: {exc.status_code} - {exc.detail}")
    return await http_exception_handler(request, exc)
