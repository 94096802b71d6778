"""Resolve who is making a request: an authenticated user or an anonymous IP."""
import logging
from typing import Optional

import aiohttp
from fastapi import Request
from pydantic import BaseModel

from .auth import AuthConfig, mask_token
from .exceptions import StoreUnavailableError

logger = logging.getLogger('cvboost.identity')

UNKNOWN_IP = "unknown"


class AuthenticatedUser(BaseModel):
    user_id: str
    email: str = ""


class Caller(BaseModel):
    """
    The identity of a single request.

    ``user`` is set for authenticated principals. Anonymous callers are known
    only by ``ip_address``.
    """
    user: Optional[AuthenticatedUser] = None
    ip_address: str = UNKNOWN_IP
    user_agent: Optional[str] = None
    # a bearer token was presented but rejected
    token_rejected: bool = False

    @property
    def is_anonymous(self) -> bool:
        return self.user is None

    @property
    def anonymous_key(self) -> str:
        return f"ip:{self.ip_address}"

    @property
    def owner_key(self) -> str:
        """Key identifying this caller as the owner of an operation"""
        return self.user.user_id if self.user else self.anonymous_key


def get_client_ip(request: Request) -> str:
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        first = forwarded_for.split(",")[0].strip()
        if first:
            return first

    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()

    if request.client and request.client.host:
        return request.client.host

    return UNKNOWN_IP


def extract_bearer_token(request: Request) -> Optional[str]:
    authorization = request.headers.get("authorization")
    if not authorization:
        return None

    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


async def resolve_caller(request: Request, auth_config: AuthConfig) -> Caller:
    """
    Build the Caller for a request from its bearer token and network origin.

    Raises:
        StoreUnavailableError: If the auth provider cannot be reached
    """
    ip_address = get_client_ip(request)
    user_agent = request.headers.get("user-agent")
    token = extract_bearer_token(request)

    if not token:
        return Caller(ip_address=ip_address, user_agent=user_agent)

    try:
        user_data = await auth_config.get_current_user(token)
    except aiohttp.ClientError as e:
        logger.error(f"Auth provider unreachable while verifying token {mask_token(token)}: {e}")
        raise StoreUnavailableError("auth provider", "get_current_user", e) from e

    if not user_data or not user_data.get("id"):
        logger.info(f"Rejected bearer token from {ip_address}")
        return Caller(ip_address=ip_address, user_agent=user_agent, token_rejected=True)

    return Caller(
        user=AuthenticatedUser(user_id=str(user_data["id"]), email=user_data.get("email") or ""),
        ip_address=ip_address,
        user_agent=user_agent,
    )
