"""Local progress cache.

One key per course (`course-{course_id}-completed`) holding a JSON array of
completed item ids, overwritten wholesale on every completion. Reads never
fail: a missing, corrupt or unreachable entry is an empty state.
"""

import json
from typing import Protocol

import redis.asyncio as redis
import structlog

from .models import ProgressState


logger = structlog.get_logger(__name__)


def progress_cache_key(course_id: str) -> str:
    """Cache key for a course's completed items."""
    return f"course-{course_id}-completed"


class CacheBackendError(Exception):
    """Raised by a backend when the store cannot be reached."""


class KeyValueBackend(Protocol):
    """Minimal string key-value store."""

    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str) -> None: ...


class MemoryBackend:
    """Process-local backend."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self.data: dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> str | None:
        return self.data.get(key)

    async def set(self, key: str, value: str) -> None:
        self.data[key] = value


class RedisBackend:
    """Redis-backed store (client created with decode_responses=True)."""

    def __init__(self, client: redis.Redis) -> None:
        self.client = client

    async def get(self, key: str) -> str | None:
        try:
            return await self.client.get(key)
        except redis.RedisError as e:
            raise CacheBackendError(str(e)) from e

    async def set(self, key: str, value: str) -> None:
        try:
            await self.client.set(key, value)
        except redis.RedisError as e:
            raise CacheBackendError(str(e)) from e


def _decode_completed(raw: str) -> frozenset[str]:
    data = json.loads(raw)
    if not isinstance(data, list):
        raise ValueError("cached progress is not a list")
    return frozenset(item for item in data if isinstance(item, str) and item)


class LocalProgressCache:
    """Reads and writes ProgressState snapshots through a backend."""

    def __init__(self, backend: KeyValueBackend) -> None:
        self.backend = backend

    async def load(self, course_id: str) -> ProgressState:
        """Load a course's progress; any failure yields an empty state."""
        key = progress_cache_key(course_id)

        try:
            raw = await self.backend.get(key)
        except CacheBackendError as e:
            logger.warning("progress_cache_read_failed", course_id=course_id, error=str(e))
            return ProgressState.empty(course_id)

        if raw is None:
            return ProgressState.empty(course_id)

        try:
            completed = _decode_completed(raw)
        except ValueError as e:
            # json.JSONDecodeError is a ValueError
            logger.warning(
                "progress_cache_corrupt",
                course_id=course_id,
                error=str(e),
            )
            return ProgressState.empty(course_id)

        return ProgressState(course_id=course_id, completed=completed)

    async def save(self, state: ProgressState) -> bool:
        """Overwrite the cached snapshot. Returns False if the write failed."""
        payload = json.dumps(sorted(state.completed))

        try:
            await self.backend.set(progress_cache_key(state.course_id), payload)
        except CacheBackendError as e:
            logger.warning(
                "progress_cache_write_failed",
                course_id=state.course_id,
                error=str(e),
            )
            return False

        return True
