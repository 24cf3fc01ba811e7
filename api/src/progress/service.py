"""Course progress service layer.

Business logic for:
- Storing the snapshots pushed by learner trackers
- Enrollment creation on first sync
- Per-lesson watch progress reported by the video player
- Per-learner progress statistics
"""

from datetime import UTC, datetime
from typing import TYPE_CHECKING

import structlog

from src.courses.provider import OutlineProvider, OutlineUnavailableError

from .models import (
    EnrollmentProgress,
    EnrollmentStatus,
    LessonProgress,
    round_half_up,
    status_for_percentage,
)
from .schemas import CourseProgressSummary, UserProgressStatsResponse


if TYPE_CHECKING:
    from cassandra.cluster import Session

logger = structlog.get_logger(__name__)


# ==============================================================================
# Custom Exceptions
# ==============================================================================


class ProgressError(Exception):
    """Base progress error."""

    def __init__(self, message: str, code: str = "progress_error"):
        self.message = message
        self.code = code
        super().__init__(message)


class ProgressNotFoundError(ProgressError):
    """No progress has been synced for this course."""

    def __init__(self, message: str = "Progress not found for this course"):
        super().__init__(message, "progress_not_found")


class InvalidProgressError(ProgressError):
    """Snapshot is inconsistent."""

    def __init__(self, message: str = "Invalid progress snapshot"):
        super().__init__(message, "invalid_progress")


# ==============================================================================
# Progress Service
# ==============================================================================


class ProgressService:
    """Service for synced course progress."""

    def __init__(
        self,
        session: "Session",
        keyspace: str,
        outline_provider: OutlineProvider | None = None,
        lesson_complete_percentage: float = 90.0,
    ):
        """Initialize with Cassandra session.

        Without an outline provider, lesson reports are stored but the course
        percentage is left to the tracker's snapshots.
        """
        self.session = session
        self.keyspace = keyspace
        self.outline_provider = outline_provider
        self.lesson_complete_percentage = lesson_complete_percentage
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for efficient execution."""
        self._get_progress = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.enrollment_progress
            WHERE course_id = ? AND user_id = ?
        """)

        self._upsert_progress = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.enrollment_progress
            (course_id, user_id, status, completion_percentage, completed_lessons,
             enrolled_at, started_at, completed_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """)

        self._get_user_progress = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.enrollment_progress_by_user
            WHERE user_id = ?
        """)

        self._upsert_progress_by_user = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.enrollment_progress_by_user
            (user_id, course_id, status, completion_percentage, completed_lessons,
             enrolled_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        """)

        self._get_lesson_progress = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.lesson_progress
            WHERE user_id = ? AND course_id = ? AND lesson_id = ?
        """)

        self._get_course_lessons = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.lesson_progress
            WHERE user_id = ? AND course_id = ?
        """)

        self._upsert_lesson_progress = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.lesson_progress
            (user_id, course_id, lesson_id, progress, completed,
             last_watched_at, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """)

    # ==========================================================================
    # Course Progress Operations
    # ==========================================================================

    async def get_course_progress(
        self, user_id: str, course_id: str
    ) -> EnrollmentProgress | None:
        """Get stored progress by learner and course."""
        result = await self.session.aexecute(self._get_progress, [course_id, user_id])
        row = result.one()
        return EnrollmentProgress.from_row(row) if row else None

    async def require_course_progress(
        self, user_id: str, course_id: str
    ) -> EnrollmentProgress:
        """Get stored progress.

        Raises:
            ProgressNotFoundError: If the learner never synced this course
        """
        progress = await self.get_course_progress(user_id, course_id)
        if progress is None:
            raise ProgressNotFoundError
        return progress

    async def update_course_progress(
        self,
        user_id: str,
        course_id: str,
        completion_percentage: int,
        completed_lessons: int,
    ) -> EnrollmentProgress:
        """Store a pushed snapshot.

        The enrollment row is created on the first sync. A zero percentage
        keeps the stored one, matching the platform's long-standing behavior
        of ignoring empty updates. Snapshots are full state, so repeated
        pushes are idempotent.

        Raises:
            InvalidProgressError: If the values are out of range
        """
        if not 0 <= completion_percentage <= 100 or completed_lessons < 0:
            raise InvalidProgressError

        now = datetime.now(UTC)
        progress = await self.get_course_progress(user_id, course_id)
        created = progress is None
        if progress is None:
            progress = EnrollmentProgress(
                course_id=course_id,
                user_id=user_id,
                enrolled_at=now,
            )

        if completion_percentage:
            progress.completion_percentage = completion_percentage
        progress.completed_lessons = completed_lessons
        self._apply_status(progress, now)

        await self._save_progress(progress)

        logger.info(
            "course_progress_updated",
            user_id=user_id,
            course_id=course_id,
            completion_percentage=progress.completion_percentage,
            completed_lessons=progress.completed_lessons,
            created=created,
        )

        return progress

    @staticmethod
    def _apply_status(progress: EnrollmentProgress, now: datetime) -> None:
        """Derive status and milestone dates from the current percentage."""
        progress.status = status_for_percentage(progress.completion_percentage).value
        progress.updated_at = now

        if progress.completion_percentage > 0 and progress.started_at is None:
            progress.started_at = now
        if progress.is_completed and progress.completed_at is None:
            progress.completed_at = now

    async def _save_progress(self, progress: EnrollmentProgress) -> None:
        """Write progress to both tables (dual-write)."""
        await self.session.aexecute(
            self._upsert_progress,
            [
                progress.course_id,
                progress.user_id,
                progress.status,
                progress.completion_percentage,
                progress.completed_lessons,
                progress.enrolled_at,
                progress.started_at,
                progress.completed_at,
                progress.updated_at,
            ],
        )

        await self.session.aexecute(
            self._upsert_progress_by_user,
            [
                progress.user_id,
                progress.course_id,
                progress.status,
                progress.completion_percentage,
                progress.completed_lessons,
                progress.enrolled_at,
                progress.updated_at,
            ],
        )

    # ==========================================================================
    # Lesson Progress Operations
    # ==========================================================================

    async def get_lesson_progress(
        self, user_id: str, course_id: str, lesson_id: str
    ) -> LessonProgress:
        """Get watch progress of one lesson (zero and not completed if never watched)."""
        result = await self.session.aexecute(
            self._get_lesson_progress, [user_id, course_id, lesson_id]
        )
        row = result.one()
        if row is None:
            return LessonProgress.not_started(user_id, course_id, lesson_id)
        return LessonProgress.from_row(row)

    async def get_course_lesson_progress(
        self, user_id: str, course_id: str
    ) -> list[LessonProgress]:
        """Get every lesson of a course the learner reported progress for."""
        rows = await self.session.aexecute(self._get_course_lessons, [user_id, course_id])
        return [LessonProgress.from_row(row) for row in rows]

    async def update_lesson_progress(
        self,
        user_id: str,
        course_id: str,
        lesson_id: str,
        progress: float,
    ) -> LessonProgress:
        """Store a reported watch percentage.

        The lesson is completed once the percentage reaches
        `lesson_complete_percentage` and stays completed afterwards. A new
        completion raises the course percentage of an existing enrollment.

        Raises:
            InvalidProgressError: If the percentage is outside 0-100
        """
        if not 0 <= progress <= 100:
            raise InvalidProgressError("Progress must be between 0 and 100")

        now = datetime.now(UTC)
        lesson = await self.get_lesson_progress(user_id, course_id, lesson_id)
        newly_completed = (
            not lesson.completed and progress >= self.lesson_complete_percentage
        )

        lesson.progress = progress
        lesson.completed = lesson.completed or newly_completed
        lesson.last_watched_at = now
        lesson.created_at = lesson.created_at or now
        lesson.updated_at = now

        await self.session.aexecute(
            self._upsert_lesson_progress,
            [
                lesson.user_id,
                lesson.course_id,
                lesson.lesson_id,
                lesson.progress,
                lesson.completed,
                lesson.last_watched_at,
                lesson.created_at,
                lesson.updated_at,
            ],
        )

        logger.info(
            "lesson_progress_updated",
            user_id=user_id,
            course_id=course_id,
            lesson_id=lesson_id,
            progress=progress,
            completed=lesson.completed,
        )

        if newly_completed:
            await self._recompute_course_progress(user_id, course_id)

        return lesson

    async def _recompute_course_progress(
        self, user_id: str, course_id: str
    ) -> EnrollmentProgress | None:
        """Raise the enrollment percentage from completed lessons.

        Completed lessons are counted against every content item of the
        outline. The stored percentage is only ever raised, since tracker
        snapshots also count items that have no watch progress.
        """
        if self.outline_provider is None:
            return None

        progress = await self.get_course_progress(user_id, course_id)
        if progress is None:
            return None

        try:
            outline = await self.outline_provider.get_outline(course_id)
        except OutlineUnavailableError as e:
            logger.warning(
                "course_progress_recompute_skipped",
                course_id=course_id,
                reason=e.message,
            )
            return None

        lessons = await self.get_course_lesson_progress(user_id, course_id)
        completed = sum(1 for lesson in lessons if lesson.completed)
        total = outline.count_items()
        percentage = min(100, round_half_up(100 * completed / total)) if total else 0

        if percentage <= progress.completion_percentage:
            return progress

        progress.completion_percentage = percentage
        progress.completed_lessons = max(progress.completed_lessons, completed)
        self._apply_status(progress, datetime.now(UTC))
        await self._save_progress(progress)

        logger.info(
            "course_progress_recomputed",
            user_id=user_id,
            course_id=course_id,
            completion_percentage=percentage,
            completed_lessons=progress.completed_lessons,
        )
        return progress

    # ==========================================================================
    # User Statistics
    # ==========================================================================

    async def get_user_progress(self, user_id: str) -> list[EnrollmentProgress]:
        """Get progress for every course the learner synced."""
        rows = await self.session.aexecute(self._get_user_progress, [user_id])
        return [EnrollmentProgress.from_lookup_row(row) for row in rows]

    async def get_user_progress_stats(self, user_id: str) -> UserProgressStatsResponse:
        """Aggregate a learner's progress across courses."""
        courses = await self.get_user_progress(user_id)

        completed = sum(
            1 for p in courses if p.status == EnrollmentStatus.COMPLETED.value
        )
        in_progress = sum(
            1 for p in courses if p.status == EnrollmentStatus.IN_PROGRESS.value
        )
        total_lessons = sum(p.completed_lessons for p in courses)
        average = (
            round_half_up(sum(p.completion_percentage for p in courses) / len(courses))
            if courses
            else 0
        )
        last_updated = max(courses, key=lambda p: p.updated_at, default=None)

        return UserProgressStatsResponse(
            total_courses=len(courses),
            completed_courses=completed,
            in_progress_courses=in_progress,
            total_completed_lessons=total_lessons,
            average_completion_percentage=average,
            last_updated_course_id=last_updated.course_id if last_updated else None,
            courses=[
                CourseProgressSummary(
                    course_id=p.course_id,
                    status=EnrollmentStatus(p.status),
                    completion_percentage=p.completion_percentage,
                    completed_lessons=p.completed_lessons,
                    updated_at=p.updated_at,
                )
                for p in courses
            ],
        )
