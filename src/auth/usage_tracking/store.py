import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Optional

import redis.asyncio as aioredis
from redis import RedisError

from auth.exceptions import StoreUnavailableError
from .models import UsageLogEntry

logger = logging.getLogger('cvboost.usage_tracking.store')

ANONYMOUS_LOG_KEY = "anonymous"


class UsageLogStore(ABC):
    """Append-only storage for usage log entries."""

    @abstractmethod
    async def append(self, entry: UsageLogEntry) -> None:
        """
        Persist a single entry.

        Raises:
            StoreUnavailableError: If the backing store cannot be written
        """
        pass

    @abstractmethod
    async def list_entries(self, user_id: Optional[str], limit: int = 100) -> list[UsageLogEntry]:
        """
        Return the most recent entries for a user, newest first.

        Args:
            user_id: The user to read, or None for entries without a user
            limit: Maximum number of entries to return
        """
        pass


class InMemoryUsageLogStore(UsageLogStore):
    """Process-local usage log, suitable for tests and single-process development."""

    def __init__(self):
        self._entries: list[UsageLogEntry] = []
        self._lock = asyncio.Lock()

    async def append(self, entry: UsageLogEntry) -> None:
        async with self._lock:
            self._entries.append(entry)

    async def list_entries(self, user_id: Optional[str], limit: int = 100) -> list[UsageLogEntry]:
        async with self._lock:
            matching = [e for e in reversed(self._entries) if e.user_id == user_id]
        return matching[:limit]

    @property
    def entries(self) -> list[UsageLogEntry]:
        return list(self._entries)


class RedisUsageLogStore(UsageLogStore):
    """Usage log kept as one Redis list per user, newest entry at the head."""

    def __init__(self, redis_client: aioredis.Redis, key_prefix: str = "usage_logs"):
        self.redis_client = redis_client
        self.key_prefix = key_prefix

    def _key(self, user_id: Optional[str]) -> str:
        return f"{self.key_prefix}:{user_id or ANONYMOUS_LOG_KEY}"

    async def append(self, entry: UsageLogEntry) -> None:
        try:
            await self.redis_client.lpush(self._key(entry.user_id), entry.model_dump_json())  # type: ignore[misc]
        except RedisError as e:
            raise StoreUnavailableError("usage log", "append", e) from e

    async def list_entries(self, user_id: Optional[str], limit: int = 100) -> list[UsageLogEntry]:
        try:
            raw_entries = await self.redis_client.lrange(self._key(user_id), 0, limit - 1)  # type: ignore[misc]
        except RedisError as e:
            raise StoreUnavailableError("usage log", "read", e) from e

        entries = []
        for raw in raw_entries:
            try:
                entries.append(UsageLogEntry.model_validate_json(raw))
            except ValueError as e:
                logger.warning(f"Skipping corrupted usage log entry for {self._key(user_id)}: {e}")
        return entries
