import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Tuple

import redis.asyncio as aioredis
from redis import RedisError

from auth.exceptions import StoreUnavailableError
from .models import AnalysisRecord

logger = logging.getLogger('cvboost.analyses.store')


class AnalysisStore(ABC):
    """Per-user history of saved analyses, newest first."""

    @abstractmethod
    async def save(self, record: AnalysisRecord) -> None:
        """
        Persist a new analysis.

        Raises:
            StoreUnavailableError: If the backing store cannot be written
        """
        pass

    @abstractmethod
    async def get(self, user_id: str, analysis_id: str) -> Optional[AnalysisRecord]:
        """Return the analysis if it exists and belongs to ``user_id``."""
        pass

    @abstractmethod
    async def attach_optimization(self, user_id: str, analysis_id: str, optimized: Dict[str, Any]) -> bool:
        """
        Store an optimized resume on one of the user's analyses.

        Returns:
            False if the analysis does not exist or belongs to someone else
        """
        pass

    @abstractmethod
    async def list_for_user(self, user_id: str, limit: int = 10, offset: int = 0) -> Tuple[list[AnalysisRecord], int]:
        """
        Page through a user's analyses.

        Returns:
            (records, total) where total counts every analysis the user has
        """
        pass

    async def count_for_user(self, user_id: str) -> int:
        _, total = await self.list_for_user(user_id, limit=1, offset=0)
        return total


class InMemoryAnalysisStore(AnalysisStore):
    """Process-local analysis history for tests and single-process development."""

    def __init__(self):
        self._records: Dict[str, AnalysisRecord] = {}
        self._lock = asyncio.Lock()

    async def save(self, record: AnalysisRecord) -> None:
        async with self._lock:
            self._records[record.id] = record.model_copy(deep=True)

    async def get(self, user_id: str, analysis_id: str) -> Optional[AnalysisRecord]:
        async with self._lock:
            record = self._records.get(analysis_id)
            if record is None or record.user_id != user_id:
                return None
            return record.model_copy(deep=True)

    async def attach_optimization(self, user_id: str, analysis_id: str, optimized: Dict[str, Any]) -> bool:
        async with self._lock:
            record = self._records.get(analysis_id)
            if record is None or record.user_id != user_id:
                return False
            self._records[analysis_id] = record.model_copy(update={"optimized_content": optimized})
            return True

    async def list_for_user(self, user_id: str, limit: int = 10, offset: int = 0) -> Tuple[list[AnalysisRecord], int]:
        async with self._lock:
            owned = [r for r in self._records.values() if r.user_id == user_id]
        owned.sort(key=lambda r: r.created_at, reverse=True)
        return owned[offset:offset + limit], len(owned)


class RedisAnalysisStore(AnalysisStore):
    """
    Analyses stored as JSON strings at ``analysis:<id>``, indexed per user by a
    sorted set at ``analyses:<user_id>`` scored by creation time.
    """

    def __init__(
        self,
        redis_client: aioredis.Redis,
        key_prefix: str = "analysis",
        index_prefix: str = "analyses",
    ):
        self.redis_client = redis_client
        self.key_prefix = key_prefix
        self.index_prefix = index_prefix

    def _record_key(self, analysis_id: str) -> str:
        return f"{self.key_prefix}:{analysis_id}"

    def _index_key(self, user_id: str) -> str:
        return f"{self.index_prefix}:{user_id}"

    async def save(self, record: AnalysisRecord) -> None:
        try:
            async with self.redis_client.pipeline(transaction=True) as pipe:
                pipe.set(self._record_key(record.id), record.model_dump_json())
                pipe.zadd(self._index_key(record.user_id), {record.id: record.created_at.timestamp()})
                await pipe.execute()
        except RedisError as e:
            logger.error(f"Redis error saving analysis {record.id}: {e}")
            raise StoreUnavailableError("analysis store", "save", e) from e

    async def get(self, user_id: str, analysis_id: str) -> Optional[AnalysisRecord]:
        try:
            raw = await self.redis_client.get(self._record_key(analysis_id))  # type: ignore[misc]
        except RedisError as e:
            raise StoreUnavailableError("analysis store", "read", e) from e

        if raw is None:
            return None
        try:
            record = AnalysisRecord.model_validate_json(raw)
        except ValueError as e:
            logger.warning(f"Corrupted analysis {analysis_id}: {e}")
            return None
        return record if record.user_id == user_id else None

    async def attach_optimization(self, user_id: str, analysis_id: str, optimized: Dict[str, Any]) -> bool:
        record = await self.get(user_id, analysis_id)
        if record is None:
            return False

        updated = record.model_copy(update={"optimized_content": optimized})
        try:
            await self.redis_client.set(self._record_key(analysis_id), updated.model_dump_json())  # type: ignore[misc]
        except RedisError as e:
            raise StoreUnavailableError("analysis store", "update", e) from e
        return True

    async def list_for_user(self, user_id: str, limit: int = 10, offset: int = 0) -> Tuple[list[AnalysisRecord], int]:
        index_key = self._index_key(user_id)
        try:
            total = await self.redis_client.zcard(index_key)  # type: ignore[misc]
            ids = await self.redis_client.zrevrange(index_key, offset, offset + limit - 1)  # type: ignore[misc]
            raw_records = await self.redis_client.mget([self._record_key(i) for i in ids]) if ids else []  # type: ignore[misc]
        except RedisError as e:
            raise StoreUnavailableError("analysis store", "list", e) from e

        records = []
        for analysis_id, raw in zip(ids, raw_records):
            if raw is None:
                logger.warning(f"Analysis index for {user_id} points at missing record {analysis_id}")
                continue
            try:
                records.append(AnalysisRecord.model_validate_json(raw))
            except ValueError as e:
                logger.warning(f"Skipping corrupted analysis {analysis_id}: {e}")
        return records, int(total)
