import os
import pytest
import aiohttp
from unittest.mock import AsyncMock, Mock, patch

from starlette.requests import Request

from auth.auth import AuthConfig, BaseAuth, SupabaseAuth, SupabaseJWTAuth, mask_token
from auth.exceptions import StoreUnavailableError
from auth.identity import extract_bearer_token, get_client_ip, resolve_caller

from conftest import TEST_JWT_SECRET, make_token


def make_request(headers: dict[str, str] | None = None, client: tuple[str, int] | None = ("9.9.9.9", 1234)) -> Request:
    scope = {
        "type": "http",
        "method": "POST",
        "path": "/analyze",
        "headers": [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()],
        "client": client,
    }
    return Request(scope)


class TestBaseAuth:
    def test_init(self):
        auth = BaseAuth()
        assert auth.async_requests_client is None

    def test_construct_headers_raises_not_implemented(self):
        auth = BaseAuth()
        with pytest.raises(NotImplementedError):
            auth.construct_headers()


class TestAuthConfig:
    def test_register_rejects_non_strategy(self):
        config = AuthConfig()
        with pytest.raises(TypeError):
            config.register_auth_strategy("bogus", Mock())

    @pytest.mark.asyncio
    async def test_strategies_tried_in_order(self):
        first, second = BaseAuth(), BaseAuth()
        first.get_current_user = AsyncMock(return_value=None)
        second.get_current_user = AsyncMock(return_value={"id": "user-1"})
        config = AuthConfig()
        config.register_auth_strategy("first", first)
        config.register_auth_strategy("second", second)

        assert await config.get_current_user("token") == {"id": "user-1"}
        first.get_current_user.assert_awaited_once_with("token")

    @pytest.mark.asyncio
    async def test_no_strategies_rejects_everything(self):
        assert await AuthConfig().get_current_user("token") is None


class TestSupabaseAuth:
    @patch.dict(os.environ, {'SUPABASE_URL': 'https://project.supabase.co/', 'SUPABASE_ANON_KEY': 'anon-key'})
    def test_init(self):
        auth = SupabaseAuth()
        assert auth.current_user_url == 'https://project.supabase.co/auth/v1/user'

    @patch.dict(os.environ, {'SUPABASE_URL': 'https://project.supabase.co', 'SUPABASE_ANON_KEY': 'anon-key'})
    def test_construct_headers(self):
        auth = SupabaseAuth()
        headers = auth.construct_headers("access-token")
        assert headers['Authorization'] == "Bearer access-token"
        assert headers['apikey'] == "anon-key"

    @patch.dict(os.environ, {'SUPABASE_ANON_KEY': 'anon-key'}, clear=True)
    def test_init_requires_url(self):
        with pytest.raises(ValueError, match="SUPABASE_URL"):
            SupabaseAuth()


class TestSupabaseJWTAuth:
    @pytest.mark.asyncio
    async def test_valid_token(self):
        auth = SupabaseJWTAuth(jwt_secret=TEST_JWT_SECRET)

        user = await auth.get_current_user(make_token("user-1", "jane@example.com"))

        assert user == {"id": "user-1", "email": "jane@example.com"}

    @pytest.mark.asyncio
    async def test_expired_token(self):
        auth = SupabaseJWTAuth(jwt_secret=TEST_JWT_SECRET)

        assert await auth.get_current_user(make_token("user-1", expires_in=-60)) is None

    @pytest.mark.asyncio
    async def test_wrong_secret(self):
        auth = SupabaseJWTAuth(jwt_secret=TEST_JWT_SECRET)
        token = make_token("user-1", secret="another-secret-that-is-also-long-enough")

        assert await auth.get_current_user(token) is None
        assert not await auth.acheck_auth(token)

    @pytest.mark.asyncio
    async def test_garbage_token(self):
        auth = SupabaseJWTAuth(jwt_secret=TEST_JWT_SECRET)

        assert await auth.get_current_user("not-a-jwt") is None

    @patch.dict(os.environ, {}, clear=True)
    def test_init_requires_secret(self):
        with pytest.raises(ValueError, match="SUPABASE_JWT_SECRET"):
            SupabaseJWTAuth()


def test_mask_token():
    token = "a" * 20 + "b" * 20 + "c" * 10
    assert mask_token(token) == "a" * 20 + "..." + "c" * 10
    assert mask_token("short") == "short"


class TestClientIp:
    def test_forwarded_for_first_entry(self):
        request = make_request({"X-Forwarded-For": "1.2.3.4, 5.6.7.8"})
        assert get_client_ip(request) == "1.2.3.4"

    def test_real_ip(self):
        request = make_request({"X-Real-IP": "5.6.7.8"})
        assert get_client_ip(request) == "5.6.7.8"

    def test_socket_address(self):
        assert get_client_ip(make_request()) == "9.9.9.9"

    def test_unknown(self):
        assert get_client_ip(make_request(client=None)) == "unknown"


def test_extract_bearer_token():
    assert extract_bearer_token(make_request({"Authorization": "Bearer abc.def"})) == "abc.def"
    assert extract_bearer_token(make_request({"Authorization": "Basic abc"})) is None
    assert extract_bearer_token(make_request({"Authorization": "Bearer "})) is None
    assert extract_bearer_token(make_request()) is None


class TestResolveCaller:
    @pytest.mark.asyncio
    async def test_no_token_is_anonymous(self, auth_config):
        caller = await resolve_caller(make_request({"User-Agent": "pytest"}), auth_config)

        assert caller.is_anonymous
        assert caller.anonymous_key == "ip:9.9.9.9"
        assert caller.user_agent == "pytest"
        assert not caller.token_rejected

    @pytest.mark.asyncio
    async def test_valid_token(self, auth_config):
        request = make_request({"Authorization": f"Bearer {make_token('user-1', 'jane@example.com')}"})

        caller = await resolve_caller(request, auth_config)

        assert caller.user.user_id == "user-1"
        assert caller.user.email == "jane@example.com"

    @pytest.mark.asyncio
    async def test_invalid_token_is_anonymous_and_flagged(self, auth_config):
        caller = await resolve_caller(make_request({"Authorization": "Bearer nope"}), auth_config)

        assert caller.is_anonymous
        assert caller.token_rejected

    @pytest.mark.asyncio
    async def test_unreachable_provider(self):
        strategy = BaseAuth()
        strategy.get_current_user = AsyncMock(side_effect=aiohttp.ClientConnectionError("refused"))
        config = AuthConfig()
        config.register_auth_strategy("supabase", strategy)

        with pytest.raises(StoreUnavailableError):
            await resolve_caller(make_request({"Authorization": "Bearer token"}), config)
