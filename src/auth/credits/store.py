import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Dict, Optional, Tuple

import redis.asyncio as aioredis
from pydantic import ValidationError
from redis import RedisError

from auth.exceptions import ProfileNotFoundError, StoreUnavailableError
from auth.usage_tracking.models import Profile, Tier

logger = logging.getLogger('cvboost.credits.store')


class ProfileStore(ABC):
    """
    Storage for user billing profiles.

    Credit balances are only changed through ``decrement_credits`` and
    ``increment_credits``, both of which must be atomic per user.
    """

    @abstractmethod
    async def get_profile(self, user_id: str) -> Optional[Profile]:
        """
        Read a profile.

        Returns:
            The profile, or None if the user has none

        Raises:
            StoreUnavailableError: If the store cannot be read
        """
        pass

    @abstractmethod
    async def save_profile(self, profile: Profile) -> None:
        pass

    @abstractmethod
    async def decrement_credits(self, user_id: str, amount: int) -> Tuple[bool, int]:
        """
        Atomically subtract ``amount`` iff the balance covers it.

        Returns:
            (applied, balance): whether the debit happened and the balance after
            the call, unchanged when the balance was too low

        Raises:
            ProfileNotFoundError: If the user has no profile
            StoreUnavailableError: If the store cannot be written
        """
        pass

    @abstractmethod
    async def increment_credits(self, user_id: str, amount: int) -> int:
        """
        Atomically add ``amount`` to the balance.

        Returns:
            The new balance

        Raises:
            ProfileNotFoundError: If the user has no profile
            StoreUnavailableError: If the store cannot be written
        """
        pass


class InMemoryProfileStore(ProfileStore):
    """Process-local profile store guarded by a single asyncio lock."""

    def __init__(self, profiles: Optional[list[Profile]] = None):
        self._profiles: Dict[str, Profile] = {p.id: p for p in profiles or []}
        self._lock = asyncio.Lock()

    async def get_profile(self, user_id: str) -> Optional[Profile]:
        async with self._lock:
            profile = self._profiles.get(user_id)
            return profile.model_copy() if profile else None

    async def save_profile(self, profile: Profile) -> None:
        async with self._lock:
            self._profiles[profile.id] = profile.model_copy()

    async def decrement_credits(self, user_id: str, amount: int) -> Tuple[bool, int]:
        async with self._lock:
            profile = self._profiles.get(user_id)
            if profile is None:
                raise ProfileNotFoundError(user_id)
            if profile.credits < amount:
                return False, profile.credits
            new_balance = profile.credits - amount
            self._profiles[user_id] = profile.model_copy(update={"credits": new_balance})
            return True, new_balance

    async def increment_credits(self, user_id: str, amount: int) -> int:
        async with self._lock:
            profile = self._profiles.get(user_id)
            if profile is None:
                raise ProfileNotFoundError(user_id)
            new_balance = profile.credits + amount
            self._profiles[user_id] = profile.model_copy(update={"credits": new_balance})
            return new_balance


# Returns nil when the profile is missing, else {applied, balance}
DECREMENT_SCRIPT = """
local current = redis.call('HGET', KEYS[1], 'credits')
if current == false then
    return nil
end
current = tonumber(current)
local amount = tonumber(ARGV[1])
if current < amount then
    return {0, current}
end
return {1, redis.call('HINCRBY', KEYS[1], 'credits', -amount)}
"""

# Returns the new balance, or nil when the profile is missing
INCREMENT_SCRIPT = """
if redis.call('EXISTS', KEYS[1]) == 0 then
    return nil
end
return redis.call('HINCRBY', KEYS[1], 'credits', ARGV[1])
"""


class RedisProfileStore(ProfileStore):
    """Profiles kept as Redis hashes at ``profile:<user_id>``."""

    def __init__(self, redis_client: aioredis.Redis, key_prefix: str = "profile"):
        self.redis_client = redis_client
        self.key_prefix = key_prefix

    def _key(self, user_id: str) -> str:
        return f"{self.key_prefix}:{user_id}"

    async def get_profile(self, user_id: str) -> Optional[Profile]:
        try:
            data = await self.redis_client.hgetall(self._key(user_id))  # type: ignore[misc]
        except RedisError as e:
            logger.error(f"Redis error reading profile {user_id}: {e}")
            raise StoreUnavailableError("profile store", "read", e) from e

        if not data:
            return None

        tier = data.get("tier", Tier.FREE.value)
        if tier not in {t.value for t in Tier}:
            logger.warning(f"Profile {user_id} has unknown tier {tier!r}, treating as free")
            tier = Tier.FREE.value

        try:
            return Profile(
                id=user_id,
                email=data.get("email") or None,
                credits=int(data.get("credits", 0)),
                tier=Tier(tier),
            )
        except (ValidationError, ValueError) as e:
            logger.error(f"Corrupted profile data for {user_id}: {e}")
            return None

    async def save_profile(self, profile: Profile) -> None:
        mapping = {
            "credits": profile.credits,
            "tier": profile.tier.value,
            "email": profile.email or "",
        }
        try:
            await self.redis_client.hset(self._key(profile.id), mapping=mapping)  # type: ignore[misc]
        except RedisError as e:
            raise StoreUnavailableError("profile store", "write", e) from e

    async def decrement_credits(self, user_id: str, amount: int) -> Tuple[bool, int]:
        try:
            result = await self.redis_client.eval(  # type: ignore[misc]
                DECREMENT_SCRIPT, 1, self._key(user_id), amount
            )
        except RedisError as e:
            logger.error(f"Redis error deducting credits for {user_id}: {e}")
            raise StoreUnavailableError("profile store", "decrement", e) from e

        if result is None:
            raise ProfileNotFoundError(user_id)
        applied, balance = result
        return int(applied) == 1, int(balance)

    async def increment_credits(self, user_id: str, amount: int) -> int:
        try:
            result = await self.redis_client.eval(  # type: ignore[misc]
                INCREMENT_SCRIPT, 1, self._key(user_id), amount
            )
        except RedisError as e:
            logger.error(f"Redis error incrementing credits for {user_id}: {e}")
            raise StoreUnavailableError("profile store", "increment", e) from e

        if result is None:
            raise ProfileNotFoundError(user_id)
        return int(result)
