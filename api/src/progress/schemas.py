"""Pydantic schemas for the progress endpoints."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from .models import EnrollmentProgress, EnrollmentStatus, LessonProgress


# ==============================================================================
# Course Progress Schemas
# ==============================================================================


class UpdateCourseProgressRequest(BaseModel):
    """Full progress snapshot pushed by the learner's tracker."""

    model_config = ConfigDict(populate_by_name=True)

    completion_percentage: int = Field(
        ..., ge=0, le=100, alias="completionPercentage", description="0-100"
    )
    completed_lessons: int = Field(
        ..., ge=0, alias="completedLessons", description="Completed content items"
    )


class EnrollmentProgressResponse(BaseModel):
    """Stored progress of a learner in a course."""

    model_config = ConfigDict(from_attributes=True)

    course_id: str
    user_id: str
    status: EnrollmentStatus
    completion_percentage: int
    completed_lessons: int
    enrolled_at: datetime
    started_at: datetime | None = None
    completed_at: datetime | None = None
    updated_at: datetime

    @classmethod
    def from_entity(cls, progress: EnrollmentProgress) -> "EnrollmentProgressResponse":
        return cls.model_validate(progress)


# ==============================================================================
# User Stats Schemas
# ==============================================================================


class CourseProgressSummary(BaseModel):
    """Compact per-course entry of the learner stats."""

    course_id: str
    status: EnrollmentStatus
    completion_percentage: int
    completed_lessons: int
    updated_at: datetime | None = None


class UserProgressStatsResponse(BaseModel):
    """Progress across every course the learner has synced."""

    total_courses: int
    completed_courses: int
    in_progress_courses: int
    total_completed_lessons: int
    average_completion_percentage: int
    last_updated_course_id: str | None = None
    courses: list[CourseProgressSummary] = Field(default_factory=list)


# ==============================================================================
# Lesson Progress Schemas
# ==============================================================================


class UpdateLessonProgressRequest(BaseModel):
    """Watch percentage reported by the video player."""

    model_config = ConfigDict(populate_by_name=True)

    course_id: str = Field(..., min_length=1, max_length=128, alias="courseId")
    lesson_id: str = Field(..., min_length=1, max_length=128, alias="lessonId")
    progress: float = Field(..., ge=0, le=100, description="Watched percentage")


class LessonProgressResponse(BaseModel):
    """Watch progress of one lesson."""

    model_config = ConfigDict(from_attributes=True)

    course_id: str
    lesson_id: str
    progress: float
    completed: bool
    last_watched_at: datetime | None = None

    @classmethod
    def from_entity(cls, progress: LessonProgress) -> "LessonProgressResponse":
        return cls.model_validate(progress)


class CourseLessonProgressResponse(BaseModel):
    """Every lesson of a course the learner reported progress for."""

    course_id: str
    completed_lessons: int
    lessons: list[LessonProgressResponse] = Field(default_factory=list)
