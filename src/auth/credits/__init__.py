from .store import ProfileStore, InMemoryProfileStore, RedisProfileStore
from .ledger import (
    CreditLedger,
    CreditCheckResult,
    DeductResult,
    AddResult,
    INSUFFICIENT_CREDITS,
    PROFILE_NOT_FOUND,
    INVALID_AMOUNT,
)

__all__ = [
    "ProfileStore",
    "InMemoryProfileStore",
    "RedisProfileStore",
    "CreditLedger",
    "CreditCheckResult",
    "DeductResult",
    "AddResult",
    "INSUFFICIENT_CREDITS",
    "PROFILE_NOT_FOUND",
    "INVALID_AMOUNT",
]
