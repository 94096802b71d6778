"""
FastAPI dependencies for the cvboost service.

This module provides reusable dependency functions that can be injected
into route handlers throughout the application.
"""
import logging
from typing import Awaitable, Callable

from fastapi import Depends, HTTPException, Request

from agent import ResumeModel
from auth.auth import AuthConfig
from auth.exceptions import StoreUnavailableError
from auth.gate import AuthorizedContext, RejectedResponse, service_unavailable
from auth.identity import AuthenticatedUser, Caller, resolve_caller
from .config import AdmissionComponents

logger = logging.getLogger('cvboost.service.dependencies')


class AdmissionRejected(Exception):
    """Raised from a dependency when the request gate refuses a request"""

    def __init__(self, rejection: RejectedResponse):
        super().__init__(rejection.code)
        self.rejection = rejection


def get_components(request: Request) -> AdmissionComponents:
    """
    Get the admission components built at application start.

    Returns:
        The AdmissionComponents stored on app.state
    """
    return request.app.state.components


def get_auth_config(components: AdmissionComponents = Depends(get_components)) -> AuthConfig:
    return components.auth_config


async def get_caller(request: Request, auth_config: AuthConfig = Depends(get_auth_config)) -> Caller:
    try:
        return await resolve_caller(request, auth_config)
    except StoreUnavailableError:
        raise AdmissionRejected(service_unavailable())


def get_resume_model() -> ResumeModel:
    """Returns the structured-output model used by the resume endpoints."""
    return ResumeModel()


def require_admission(
    require_credits: bool = True,
    credits_required: int = 1,
    endpoint: str = "",
    allow_anonymous: bool = False,
) -> Callable[..., Awaitable[AuthorizedContext]]:
    """
    Build a dependency that runs the request gate before the route body.

    Args:
        require_credits: Whether the endpoint needs an authenticated caller with credits
        credits_required: Credits the operation will cost on success
        endpoint: Name used in audit records
        allow_anonymous: Let anonymous callers through on their rate limit alone

    Raises:
        AdmissionRejected: When the gate rejects the request
    """
    async def admit(
        caller: Caller = Depends(get_caller),
        components: AdmissionComponents = Depends(get_components),
    ) -> AuthorizedContext:
        result = await components.gate.authorize(
            caller,
            require_credits=require_credits,
            credits_required=credits_required,
            endpoint=endpoint,
            allow_anonymous=allow_anonymous,
        )
        if isinstance(result, RejectedResponse):
            logger.info(f"Rejected {endpoint or 'request'} with {result.status_code} {result.code}")
            raise AdmissionRejected(result)
        return result

    return admit


async def get_authenticated_user(caller: Caller = Depends(get_caller)) -> AuthenticatedUser:
    if caller.user is None:
        raise HTTPException(status_code=401, detail={"error": "Unauthorized"})
    return caller.user
