"""Course progress endpoint (server side).

Provides:
- Storage of progress snapshots pushed by learner trackers
- Enrollment creation on first sync
- Per-lesson watch progress
- Learner statistics across courses
"""

from .models import (
    PROGRESS_TABLES_CQL,
    EnrollmentProgress,
    EnrollmentStatus,
    LessonProgress,
)


__all__ = [
    "PROGRESS_TABLES_CQL",
    "EnrollmentProgress",
    "EnrollmentStatus",
    "LessonProgress",
]
