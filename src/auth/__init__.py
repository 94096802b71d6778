from .auth import AuthConfig, BaseAuth, SupabaseAuth, SupabaseJWTAuth
from .identity import AuthenticatedUser, Caller, get_client_ip, resolve_caller
from .exceptions import StoreUnavailableError, ProfileNotFoundError
from .gate import RequestGate, AuthorizedContext, RejectedResponse
from .settlement import SettlementHook, OperationRegistry, OperationState

__all__ = [
    "AuthConfig",
    "BaseAuth",
    "SupabaseAuth",
    "SupabaseJWTAuth",
    "AuthenticatedUser",
    "Caller",
    "get_client_ip",
    "resolve_caller",
    "StoreUnavailableError",
    "ProfileNotFoundError",
    "RequestGate",
    "AuthorizedContext",
    "RejectedResponse",
    "SettlementHook",
    "OperationRegistry",
    "OperationState",
]
