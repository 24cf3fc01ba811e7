"""Fire-and-forget progress sync.

Key features:
- schedule() returns immediately; the push runs as a background task
- pushes for one course go out one at a time, in scheduling order, so the
  server never ends on an older snapshot than the newest one sent
- payload is always the full current snapshot, so re-sending self-heals a
  dropped sync and duplicate sends are harmless
- failures are logged and swallowed; local state stays authoritative
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from datetime import UTC, datetime

import structlog

from .client import ProgressSnapshot, ProgressSyncError, RemoteProgressClient
from .models import completion_percentage


logger = structlog.get_logger(__name__)


def build_snapshot(completed: Iterable[str], total_count: int) -> ProgressSnapshot:
    """Snapshot of a completed set against the course's item count."""
    completed_count = len(set(completed))
    return ProgressSnapshot(
        completion_percentage=completion_percentage(completed_count, total_count),
        completed_lessons=completed_count,
    )


class ProgressSyncer:
    """Pushes progress snapshots without blocking the caller."""

    def __init__(self, client: RemoteProgressClient) -> None:
        self.client = client
        self._tasks: set[asyncio.Task[bool]] = set()
        self._course_locks: dict[str, asyncio.Lock] = {}
        self._syncs_sent = 0
        self._syncs_failed = 0
        self._last_sync_at: datetime | None = None

    async def sync(
        self,
        course_id: str,
        completed: Iterable[str],
        total_count: int,
    ) -> bool:
        """Push one snapshot. Returns True on success; never raises.

        Pushes for the same course are serialized.
        """
        snapshot = build_snapshot(completed, total_count)

        try:
            async with self._course_lock(course_id):
                await self.client.push_progress(course_id, snapshot)
        except ProgressSyncError as e:
            self._syncs_failed += 1
            logger.warning(
                "progress_sync_failed",
                course_id=course_id,
                status_code=e.status_code,
                error=e.message,
            )
            return False
        except Exception:
            self._syncs_failed += 1
            logger.exception("progress_sync_error", course_id=course_id)
            return False

        self._syncs_sent += 1
        self._last_sync_at = datetime.now(UTC)
        logger.info(
            "progress_synced",
            course_id=course_id,
            completion_percentage=snapshot.completion_percentage,
            completed_lessons=snapshot.completed_lessons,
        )
        return True

    def schedule(
        self,
        course_id: str,
        completed: Iterable[str],
        total_count: int,
    ) -> asyncio.Task[bool]:
        """Start a sync in the background and return its task.

        The completed set is copied now so later mutations do not leak into
        an in-flight push.
        """
        task = asyncio.create_task(
            self.sync(course_id, frozenset(completed), total_count),
            name=f"progress_sync:{course_id}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _course_lock(self, course_id: str) -> asyncio.Lock:
        # asyncio.Lock wakes waiters in FIFO order.
        lock = self._course_locks.get(course_id)
        if lock is None:
            lock = self._course_locks[course_id] = asyncio.Lock()
        return lock

    async def drain(self) -> None:
        """Wait for all in-flight syncs."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def aclose(self) -> None:
        """Drain pending syncs and release the HTTP client."""
        await self.drain()
        await self.client.aclose()
        logger.info("progress_syncer_closed", **self.get_stats())

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def get_stats(self) -> dict:
        return {
            "syncs_sent": self._syncs_sent,
            "syncs_failed": self._syncs_failed,
            "pending": len(self._tasks),
            "last_sync_at": self._last_sync_at,
        }
