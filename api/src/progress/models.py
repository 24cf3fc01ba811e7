"""Database models for synced course progress.

Cassandra table definitions for:
- Enrollment progress: latest snapshot per (course, learner)
- Lookup table: the same snapshot partitioned by learner
- Lesson progress: watch percentage per (learner, course, lesson)

Architecture: Dual-write pattern for efficient queries by both
course_id and user_id perspectives.
"""

import math
from datetime import UTC, datetime
from enum import Enum
from typing import Any


class EnrollmentStatus(str, Enum):
    """Course enrollment status."""

    ENROLLED = "enrolled"  # no completed items yet
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"  # 100%


def status_for_percentage(completion_percentage: int) -> EnrollmentStatus:
    """Derive the enrollment status from a completion percentage."""
    if completion_percentage >= 100:
        return EnrollmentStatus.COMPLETED
    if completion_percentage > 0:
        return EnrollmentStatus.IN_PROGRESS
    return EnrollmentStatus.ENROLLED


# ==============================================================================
# Helper Functions
# ==============================================================================


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for positives."""
    return math.floor(value + 0.5)


def ensure_utc_aware(dt: datetime | None) -> datetime | None:
    """Ensure datetime is UTC-aware (Cassandra returns naive datetimes)."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

# Course and learner ids are opaque platform ids, stored as text.
ENROLLMENT_PROGRESS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.enrollment_progress (
    course_id TEXT,
    user_id TEXT,
    status TEXT,
    completion_percentage INT,
    completed_lessons INT,
    enrolled_at TIMESTAMP,
    started_at TIMESTAMP,
    completed_at TIMESTAMP,
    updated_at TIMESTAMP,
    PRIMARY KEY (course_id, user_id)
)
"""

# Lookup: "which courses has this learner synced progress for?"
ENROLLMENT_PROGRESS_BY_USER_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.enrollment_progress_by_user (
    user_id TEXT,
    course_id TEXT,
    status TEXT,
    completion_percentage INT,
    completed_lessons INT,
    enrolled_at TIMESTAMP,
    updated_at TIMESTAMP,
    PRIMARY KEY (user_id, course_id)
)
"""

# One partition per (learner, course): "what has this learner watched here?"
LESSON_PROGRESS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.lesson_progress (
    user_id TEXT,
    course_id TEXT,
    lesson_id TEXT,
    progress DOUBLE,
    completed BOOLEAN,
    last_watched_at TIMESTAMP,
    created_at TIMESTAMP,
    updated_at TIMESTAMP,
    PRIMARY KEY ((user_id, course_id), lesson_id)
)
"""

PROGRESS_TABLES_CQL = [
    ENROLLMENT_PROGRESS_TABLE_CQL,
    ENROLLMENT_PROGRESS_BY_USER_TABLE_CQL,
    LESSON_PROGRESS_TABLE_CQL,
]


# ==============================================================================
# Entity Classes
# ==============================================================================


class EnrollmentProgress:
    """Synced progress of one learner in one course.

    Attributes:
        course_id: Course id
        user_id: Learner id
        status: Enrollment status (enrolled, in_progress, completed)
        completion_percentage: Integer percentage 0-100
        completed_lessons: Number of completed content items
        enrolled_at: First sync timestamp
        started_at: First sync with a non-zero percentage
        completed_at: First sync at 100%
        updated_at: Last sync timestamp
    """

    def __init__(
        self,
        course_id: str,
        user_id: str,
        status: str = EnrollmentStatus.ENROLLED.value,
        completion_percentage: int = 0,
        completed_lessons: int = 0,
        enrolled_at: datetime | None = None,
        started_at: datetime | None = None,
        completed_at: datetime | None = None,
        updated_at: datetime | None = None,
    ):
        self.course_id = course_id
        self.user_id = user_id
        self.status = status
        self.completion_percentage = completion_percentage
        self.completed_lessons = completed_lessons
        self.enrolled_at = ensure_utc_aware(enrolled_at) or datetime.now(UTC)
        self.started_at = ensure_utc_aware(started_at)
        self.completed_at = ensure_utc_aware(completed_at)
        self.updated_at = ensure_utc_aware(updated_at) or self.enrolled_at

    @property
    def is_completed(self) -> bool:
        return self.status == EnrollmentStatus.COMPLETED.value

    @classmethod
    def from_row(cls, row: Any) -> "EnrollmentProgress":
        """Create instance from a Cassandra row (main table)."""
        return cls(
            course_id=row.course_id,
            user_id=row.user_id,
            status=row.status or EnrollmentStatus.ENROLLED.value,
            completion_percentage=row.completion_percentage or 0,
            completed_lessons=row.completed_lessons or 0,
            enrolled_at=row.enrolled_at,
            started_at=row.started_at,
            completed_at=row.completed_at,
            updated_at=row.updated_at,
        )

    @classmethod
    def from_lookup_row(cls, row: Any) -> "EnrollmentProgress":
        """Create instance from the by-user lookup table (no milestone dates)."""
        return cls(
            course_id=row.course_id,
            user_id=row.user_id,
            status=row.status or EnrollmentStatus.ENROLLED.value,
            completion_percentage=row.completion_percentage or 0,
            completed_lessons=row.completed_lessons or 0,
            enrolled_at=row.enrolled_at,
            updated_at=row.updated_at,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "course_id": self.course_id,
            "user_id": self.user_id,
            "status": self.status,
            "completion_percentage": self.completion_percentage,
            "completed_lessons": self.completed_lessons,
            "enrolled_at": self.enrolled_at,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
            "updated_at": self.updated_at,
        }

    def __repr__(self) -> str:
        return (
            f"<EnrollmentProgress user={self.user_id} course={self.course_id} "
            f"{self.status} {self.completion_percentage}%>"
        )


class LessonProgress:
    """Watch progress of one learner on one lesson.

    Attributes:
        user_id: Learner id
        course_id: Course id
        lesson_id: Content item id
        progress: Watched percentage 0-100 (last reported)
        completed: Set once progress reached the completion mark; never cleared
        last_watched_at: Last report timestamp (None if never watched)
        created_at: First report timestamp
        updated_at: Last report timestamp
    """

    def __init__(
        self,
        user_id: str,
        course_id: str,
        lesson_id: str,
        progress: float = 0.0,
        completed: bool = False,
        last_watched_at: datetime | None = None,
        created_at: datetime | None = None,
        updated_at: datetime | None = None,
    ):
        self.user_id = user_id
        self.course_id = course_id
        self.lesson_id = lesson_id
        self.progress = progress
        self.completed = completed
        self.last_watched_at = ensure_utc_aware(last_watched_at)
        self.created_at = ensure_utc_aware(created_at)
        self.updated_at = ensure_utc_aware(updated_at)

    @classmethod
    def not_started(cls, user_id: str, course_id: str, lesson_id: str) -> "LessonProgress":
        """Placeholder for a lesson the learner never watched."""
        return cls(user_id=user_id, course_id=course_id, lesson_id=lesson_id)

    @classmethod
    def from_row(cls, row: Any) -> "LessonProgress":
        """Create instance from a Cassandra row."""
        return cls(
            user_id=row.user_id,
            course_id=row.course_id,
            lesson_id=row.lesson_id,
            progress=row.progress or 0.0,
            completed=bool(row.completed),
            last_watched_at=row.last_watched_at,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "user_id": self.user_id,
            "course_id": self.course_id,
            "lesson_id": self.lesson_id,
            "progress": self.progress,
            "completed": self.completed,
            "last_watched_at": self.last_watched_at,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    def __repr__(self) -> str:
        return (
            f"<LessonProgress user={self.user_id} course={self.course_id} "
            f"lesson={self.lesson_id} {self.progress}%>"
        )
