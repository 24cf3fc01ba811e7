"""ProgressTracker: the learner-side progress facade.

Local state is authoritative. Every completion is written to the local cache
first and then pushed to the remote endpoint in the background; a failed
push never rolls anything back.
"""

import asyncio
from collections.abc import Iterable

import structlog

from src.courses.provider import OutlineProvider
from src.courses.schemas import ContentKind, CourseOutline

from .cache import LocalProgressCache
from .embed import CommandSender, MessageChannel
from .models import ProgressState
from .policy import CompletionPolicy, evaluate_video_completion
from .session import LessonSession
from .sync import ProgressSyncer


logger = structlog.get_logger(__name__)

# Origins of the hosted player, including its privacy-enhanced domain.
DEFAULT_EMBED_ORIGINS = frozenset(
    {"https://www.youtube.com", "https://www.youtube-nocookie.com"}
)


class LessonNotFoundError(Exception):
    """Raised when a lesson is opened that the course outline does not contain."""

    def __init__(self, course_id: str, item_id: str):
        self.course_id = course_id
        self.item_id = item_id
        self.code = "lesson_not_found"
        super().__init__(f"Lesson {item_id} not found in course {course_id}")


class ProgressTracker:
    """Records lesson completion per course and keeps the remote copy in sync."""

    def __init__(
        self,
        cache: LocalProgressCache,
        syncer: ProgressSyncer,
        outline_provider: OutlineProvider,
        policy: CompletionPolicy | None = None,
        trusted_origins: Iterable[str] = DEFAULT_EMBED_ORIGINS,
    ) -> None:
        self.cache = cache
        self.syncer = syncer
        self.outline_provider = outline_provider
        self.policy = policy or CompletionPolicy()
        if isinstance(trusted_origins, str):
            trusted_origins = (trusted_origins,)
        self.trusted_origins = frozenset(trusted_origins)

        self._states: dict[str, ProgressState] = {}
        self._outlines: dict[str, CourseOutline] = {}
        self._reconciled: set[str] = set()
        self._write_locks: dict[str, asyncio.Lock] = {}

    # =========================================================================
    # Progress state
    # =========================================================================

    async def load_progress(self, course_id: str) -> ProgressState:
        """Completed items of a course (empty when nothing is cached)."""
        state = self._states.get(course_id)
        if state is not None:
            return state

        loaded = await self.cache.load(course_id)
        # A completion may have landed while the cache read was in flight.
        state = self._states.setdefault(course_id, loaded)
        return state

    async def mark_complete(self, course_id: str, item_id: str) -> ProgressState:
        """Record an item as completed.

        Idempotent: an already completed item causes no cache write and no
        sync. Ids missing from the outline are still recorded.
        """
        state = await self.load_progress(course_id)
        if state.is_completed(item_id):
            return state

        state = state.with_item(item_id)
        self._states[course_id] = state
        logger.info(
            "lesson_completed",
            course_id=course_id,
            item_id=item_id,
            completed_count=state.completed_count,
        )

        async with self._write_lock(course_id):
            await self.cache.save(self._states[course_id])

        outline = self._outlines.get(course_id)
        if outline is None:
            logger.warning(
                "progress_sync_skipped",
                course_id=course_id,
                reason="outline_unknown",
            )
        else:
            self.sync_to_remote(course_id, state.completed, outline.count_items())

        return state

    def evaluate_video_completion(
        self,
        kind: ContentKind | str,
        current_position: float | None,
        total_duration: float | None,
    ) -> bool:
        return evaluate_video_completion(
            kind,
            current_position,
            total_duration,
            threshold=self.policy.watch_threshold,
        )

    def sync_to_remote(
        self,
        course_id: str,
        completed: Iterable[str],
        total_count: int,
    ) -> asyncio.Task[bool]:
        """Push a full snapshot in the background; the caller never waits."""
        return self.syncer.schedule(course_id, completed, total_count)

    def completion_percentage(self, course_id: str) -> int:
        """Percentage of the known outline completed (0 if the outline is unknown)."""
        outline = self._outlines.get(course_id)
        if outline is None:
            return 0
        state = self._states.get(course_id) or ProgressState.empty(course_id)
        return state.completion_percentage(outline.count_items())

    # =========================================================================
    # Courses and lessons
    # =========================================================================

    async def open_course(self, course_id: str) -> CourseOutline:
        """Fetch the outline and load progress.

        Progress recorded while offline is pushed once per tracker, the first
        time the course is opened with a non-empty local state.

        Raises:
            OutlineUnavailableError: If the outline cannot be fetched
        """
        outline = await self.outline_provider.get_outline(course_id)
        self._outlines[course_id] = outline

        state = await self.load_progress(course_id)
        if state.completed and course_id not in self._reconciled:
            self._reconciled.add(course_id)
            self.sync_to_remote(course_id, state.completed, outline.count_items())

        logger.info(
            "course_opened",
            course_id=course_id,
            total_items=outline.count_items(),
            completed_count=state.completed_count,
        )
        return outline

    def outline(self, course_id: str) -> CourseOutline | None:
        return self._outlines.get(course_id)

    def open_lesson(
        self,
        course_id: str,
        item_id: str,
        channel: MessageChannel | None = None,
        send_command: CommandSender | None = None,
    ) -> LessonSession:
        """Create a session for one content item of an opened course.

        Raises:
            LessonNotFoundError: If the course was not opened or lacks the item
        """
        outline = self._outlines.get(course_id)
        item = outline.find_item(item_id) if outline else None
        if item is None:
            raise LessonNotFoundError(course_id, item_id)

        return LessonSession(
            self,
            course_id,
            item,
            channel=channel,
            send_command=send_command,
        )

    def _write_lock(self, course_id: str) -> asyncio.Lock:
        lock = self._write_locks.get(course_id)
        if lock is None:
            lock = self._write_locks[course_id] = asyncio.Lock()
        return lock

    async def aclose(self) -> None:
        """Wait for in-flight syncs and release clients."""
        await self.syncer.aclose()
        close = getattr(self.outline_provider, "aclose", None)
        if close is not None:
            await close()
