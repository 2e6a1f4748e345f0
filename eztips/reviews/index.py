"""
Review Index

Secondary index over reviews already accepted by the ledger. It answers the
fast-path questions (latest reviews for a waiter, has this payment already
been reviewed) without touching the ledger. It is advisory: entries may be
missing until a reconciliation pass backfills them, and nothing stops a
client that bypasses the index from writing a duplicate to the ledger.

Backends:
- RedisReviewIndex: Redis sorted sets per waiter, SET NX for the
  (waiter, payment) pair
- InMemoryReviewIndex: process-local fallback for development and tests
"""

import logging
from abc import ABC, abstractmethod
from typing import Any

from ..errors import CacheReadError, CacheWriteError
from ..models.review import IndexedReview

logger = logging.getLogger(__name__)


class ReviewIndex(ABC):
    """Interface every review index backend implements."""

    @abstractmethod
    async def add(self, entry: IndexedReview) -> bool:
        """
        Store an index entry.

        Returns:
            True if stored, False if an entry for the same
            (waiter_id, correlation_id) pair already exists

        Raises:
            CacheWriteError: If the backend write fails
        """
        pass

    @abstractmethod
    async def find_by_waiter(self, waiter_id: str, limit: int = 50) -> list[IndexedReview]:
        """Return a waiter's reviews, most recent first."""
        pass

    @abstractmethod
    async def exists(self, waiter_id: str, correlation_id: str) -> bool:
        """True if an entry shares both waiter_id and correlation_id exactly."""
        pass

    @abstractmethod
    async def has_sequence(self, sequence_number: int) -> bool:
        """True if the ledger message with this sequence number is indexed."""
        pass

    async def close(self) -> None:
        """Release backend resources."""
        return None


class InMemoryReviewIndex(ReviewIndex):
    """Process-local review index."""

    def __init__(self) -> None:
        self._entries: list[tuple[int, IndexedReview]] = []
        self._pairs: set[tuple[str, str]] = set()
        self._sequences: set[int] = set()
        self._counter = 0

    async def add(self, entry: IndexedReview) -> bool:
        if entry.correlation_id is not None:
            pair = (entry.waiter_id, entry.correlation_id)
            if pair in self._pairs:
                return False
            self._pairs.add(pair)

        self._counter += 1
        self._entries.append((self._counter, entry))
        self._sequences.add(entry.hcs_sequence_number)
        return True

    async def find_by_waiter(self, waiter_id: str, limit: int = 50) -> list[IndexedReview]:
        matching = [(i, e) for i, e in self._entries if e.waiter_id == waiter_id]
        matching.sort(key=lambda item: (item[1].created_at, item[0]), reverse=True)
        return [e for _, e in matching[:limit]]

    async def exists(self, waiter_id: str, correlation_id: str) -> bool:
        return (waiter_id, correlation_id) in self._pairs

    async def has_sequence(self, sequence_number: int) -> bool:
        return sequence_number in self._sequences

    def __len__(self) -> int:
        return len(self._entries)


class RedisReviewIndex(ReviewIndex):
    """
    Redis-backed review index.

    Layout (prefix defaults to "eztips:reviews:"):
    - {prefix}waiter:{waiter_id}   sorted set of entry JSON, scored by created_at
    - {prefix}pair:{waiter}:{tx}   message id, written with NX for dedupe
    - {prefix}sequences            set of indexed ledger sequence numbers
    """

    def __init__(self, redis_client: Any, prefix: str = "eztips:reviews:"):
        self._redis = redis_client
        self._prefix = prefix

    def _waiter_key(self, waiter_id: str) -> str:
        return f"{self._prefix}waiter:{waiter_id}"

    def _pair_key(self, waiter_id: str, correlation_id: str) -> str:
        return f"{self._prefix}pair:{waiter_id}:{correlation_id}"

    def _sequences_key(self) -> str:
        return f"{self._prefix}sequences"

    async def add(self, entry: IndexedReview) -> bool:
        pair_key = None
        member = entry.to_index_json()
        try:
            if entry.correlation_id is not None:
                claimed = await self._redis.set(
                    self._pair_key(entry.waiter_id, entry.correlation_id),
                    entry.hcs_message_id,
                    nx=True,
                )
                if not claimed:
                    return False
                pair_key = self._pair_key(entry.waiter_id, entry.correlation_id)

            await self._redis.zadd(
                self._waiter_key(entry.waiter_id),
                {member: entry.created_at.timestamp()},
            )
            await self._redis.sadd(self._sequences_key(), entry.hcs_sequence_number)
        except Exception as e:
            logger.warning(
                "redis_review_index_write_error",
                extra={"waiter_id": entry.waiter_id, "error": str(e)},
            )
            await self._rollback(entry.waiter_id, member, pair_key)
            raise CacheWriteError(f"Review index write failed: {e}") from e
        return True

    async def _rollback(self, waiter_id: str, member: str, pair_key: str | None) -> None:
        """Undo a partial add so a later reconcile can index the entry."""
        steps = [("zrem", self._redis.zrem, (self._waiter_key(waiter_id), member))]
        if pair_key is not None:
            steps.append(("delete", self._redis.delete, (pair_key,)))

        for name, command, args in steps:
            try:
                await command(*args)
            except Exception as e:
                logger.error(
                    "redis_review_index_rollback_failed",
                    extra={"waiter_id": waiter_id, "command": name, "error": str(e)},
                )

    async def find_by_waiter(self, waiter_id: str, limit: int = 50) -> list[IndexedReview]:
        try:
            raw_entries = await self._redis.zrevrange(self._waiter_key(waiter_id), 0, limit - 1)
        except Exception as e:
            raise CacheReadError(f"Review index read failed: {e}") from e

        entries: list[IndexedReview] = []
        for raw in raw_entries:
            try:
                entries.append(IndexedReview.model_validate_json(raw))
            except ValueError:
                logger.warning("redis_review_index_corrupt_entry", extra={"waiter_id": waiter_id})
        return entries

    async def exists(self, waiter_id: str, correlation_id: str) -> bool:
        try:
            return bool(await self._redis.exists(self._pair_key(waiter_id, correlation_id)))
        except Exception as e:
            raise CacheReadError(f"Review index read failed: {e}") from e

    async def has_sequence(self, sequence_number: int) -> bool:
        try:
            return bool(await self._redis.sismember(self._sequences_key(), sequence_number))
        except Exception as e:
            raise CacheReadError(f"Review index read failed: {e}") from e

    async def close(self) -> None:
        try:
            await self._redis.close()
        except Exception as e:
            logger.debug("redis_close_error", extra={"error": str(e)})


async def init_review_index(
    redis_url: str | None = None,
    redis_password: str | None = None,
    prefix: str = "eztips:reviews:",
) -> ReviewIndex:
    """
    Create the review index, preferring Redis when a URL is configured.

    Falls back to the in-memory index if Redis is unreachable.
    """
    if redis_url:
        try:
            import redis.asyncio as redis

            redis_client = redis.from_url(
                redis_url,
                password=redis_password,
                decode_responses=True,
            )
            await redis_client.ping()
            logger.info("review_index_initialized", extra={"backend": "redis"})
            return RedisReviewIndex(redis_client, prefix=prefix)
        except Exception as e:
            logger.warning("redis_unavailable_using_memory", extra={"error": str(e)})

    logger.info("review_index_initialized", extra={"backend": "memory"})
    return InMemoryReviewIndex()
