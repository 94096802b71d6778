import jwt
import os
import logging
import aiohttp
from typing import Dict, Optional

from dotenv import load_dotenv
load_dotenv()

logger = logging.getLogger('cvboost.' + __name__)


def mask_token(token: str) -> str:
    if len(token) > 30:
        return f"{token[:20]}...{token[-10:]}"
    if len(token) > 10:
        return token[:10] + "..."
    return token


class BaseAuth():
    def __init__(self, async_requests_client: Optional[aiohttp.ClientSession] = None):
        """
        Initialize the authentication service with an aiohttp ClientSession.

        Args:
            async_requests_client (aiohttp.ClientSession): An instance of aiohttp.ClientSession
                to be used for making asynchronous HTTP requests to the auth provider.
        """
        self.async_requests_client = async_requests_client

    async def get_client(self):
        if not self.async_requests_client:
            self.async_requests_client = aiohttp.ClientSession()
        return self.async_requests_client

    async def close(self) -> None:
        if self.async_requests_client and not self.async_requests_client.closed:
            await self.async_requests_client.close()

    def construct_headers(self, token: Optional[str] = None) -> Dict[str, str]:
        """
        Constructs the nessecary HTTP auth headers for a given auth method
        """
        raise NotImplementedError

    async def acheck_auth(self, token: Optional[str] = None) -> bool:
        raise NotImplementedError

    async def get_current_user(self, token: Optional[str] = None) -> Optional[dict]:
        """
        Retrieve the user associated with the provided token, as a dict with at least ``id`` and ``email``.
        """
        raise NotImplementedError


class AuthConfig:
    # Registered authentication strategies, tried in registration order

    def __init__(self):
        self.auth_strategies: Dict['str', BaseAuth] = {}

    def register_auth_strategy(self, name: str, auth_strategy: BaseAuth):
        """
        Register a new authentication strategy.

        Args:
            name (str): The name of the authentication strategy.
            auth_strategy (BaseAuth): An instance of a class that inherits from BaseAuth.
        """
        if not isinstance(auth_strategy, BaseAuth):
            raise TypeError(f"{name} must be an instance of BaseAuth")
        self.auth_strategies[name] = auth_strategy

    async def get_current_user(self, token: str) -> Optional[dict]:
        for name, strategy in self.auth_strategies.items():
            user = await strategy.get_current_user(token)
            if user:
                logger.debug(f"Token accepted by auth strategy '{name}'")
                return user
        return None

    async def close(self) -> None:
        for strategy in self.auth_strategies.values():
            await strategy.close()


class SupabaseAuth(BaseAuth):
    """Validates access tokens by asking Supabase Auth for the current user."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)

        self.base_uri = os.getenv('SUPABASE_URL')
        if not self.base_uri:
            raise ValueError('SUPABASE_URL not set in environment variables')

        self.anon_key = os.getenv('SUPABASE_ANON_KEY')
        if not self.anon_key:
            raise ValueError('SUPABASE_ANON_KEY not set in environment variables')

        self.current_user_url = self.base_uri.rstrip('/') + '/auth/v1/user'

    def construct_headers(self, token: Optional[str] = None) -> Dict[str, str]:
        if not token:
            raise ValueError('Token is required')

        return {
            'Authorization': f'Bearer {token}',
            'apikey': self.anon_key or '',
        }

    async def acheck_auth(self, token: Optional[str] = None) -> bool:
        return await self.get_current_user(token) is not None

    async def get_current_user(self, token: Optional[str] = None) -> Optional[dict]:
        """
        Retrieve the Supabase user for an access token.

        Returns:
            Optional[dict]: The user payload if the token is valid, None otherwise.
        """
        headers = self.construct_headers(token)
        assert token is not None

        logger.debug(f"Supabase user lookup - URL: {self.current_user_url}, token (masked): {mask_token(token)}")

        client = await self.get_client()
        async with client.get(self.current_user_url, headers=headers) as response:
            if response.status == 200:
                response_data = await response.json()
                logger.debug(f"Supabase user lookup successful for user {response_data.get('id')}")
                return response_data
            else:
                error_text = await response.text()
                logger.info(f'Supabase rejected access token: {response.status} {error_text}')
                return None


class SupabaseJWTAuth(BaseAuth):
    """Verifies Supabase access tokens locally with the project's JWT secret."""

    def __init__(self, jwt_secret: Optional[str] = None, audience: str = "authenticated", *args, **kwargs):
        super().__init__(*args, **kwargs)

        self.jwt_secret = jwt_secret or os.getenv('SUPABASE_JWT_SECRET')
        if not self.jwt_secret:
            raise ValueError('SUPABASE_JWT_SECRET not set in environment variables')
        self.audience = audience

    def construct_headers(self, token: Optional[str] = None) -> Dict[str, str]:
        if not token:
            raise ValueError('Token is required')
        return {'Authorization': f'Bearer {token}'}

    def _decode(self, token: str) -> Optional[dict]:
        try:
            return jwt.decode(
                token,
                self.jwt_secret,
                algorithms=["HS256"],
                audience=self.audience,
                options={"require": ["sub", "exp"]},
            )
        except jwt.ExpiredSignatureError:
            logger.info(f"Expired access token: {mask_token(token)}")
        except jwt.InvalidTokenError as e:
            logger.info(f"Invalid access token {mask_token(token)}: {e}")
        return None

    async def acheck_auth(self, token: Optional[str] = None) -> bool:
        if not token:
            raise ValueError('Token is required')
        return self._decode(token) is not None

    async def get_current_user(self, token: Optional[str] = None) -> Optional[dict]:
        if not token:
            raise ValueError('Token is required')

        claims = self._decode(token)
        if claims is None:
            return None
        return {"id": claims["sub"], "email": claims.get("email", "")}
