"""Course progress API endpoints.

Provides routes for:
- Progress snapshots pushed by learner trackers
- Stored course progress
- Per-lesson watch progress
- Learner statistics across courses
"""

from typing import Annotated

from fastapi import APIRouter, Path

from src.auth.dependencies import CurrentLearner
from src.core.context import set_course_id

from .dependencies import ProgressServiceDep, handle_progress_error
from .schemas import (
    CourseLessonProgressResponse,
    EnrollmentProgressResponse,
    LessonProgressResponse,
    UpdateCourseProgressRequest,
    UpdateLessonProgressRequest,
    UserProgressStatsResponse,
)
from .service import ProgressError


router = APIRouter(prefix="/v1/progress", tags=["progress"])
enrollments_router = APIRouter(prefix="/v1/enrollments", tags=["enrollments"])

CourseId = Annotated[str, Path(min_length=1, max_length=128, description="Course id")]
LessonId = Annotated[str, Path(min_length=1, max_length=128, description="Lesson id")]


# ==============================================================================
# Enrollment Progress Endpoints
# ==============================================================================


@enrollments_router.put(
    "/progress/{course_id}",
    response_model=EnrollmentProgressResponse,
    summary="Update course progress",
)
async def update_course_progress(
    data: UpdateCourseProgressRequest,
    progress_service: ProgressServiceDep,
    learner: CurrentLearner,
    course_id: CourseId,
) -> EnrollmentProgressResponse:
    """Store the learner's full progress snapshot for a course.

    Creates the enrollment on first sync. A zero percentage keeps the stored
    value.
    """
    set_course_id(course_id)
    try:
        progress = await progress_service.update_course_progress(
            user_id=learner.id,
            course_id=course_id,
            completion_percentage=data.completion_percentage,
            completed_lessons=data.completed_lessons,
        )
        return EnrollmentProgressResponse.from_entity(progress)
    except ProgressError as e:
        raise handle_progress_error(e) from e


@enrollments_router.get(
    "/progress/{course_id}",
    response_model=EnrollmentProgressResponse,
    summary="Get course progress",
)
async def get_course_progress(
    progress_service: ProgressServiceDep,
    learner: CurrentLearner,
    course_id: CourseId,
) -> EnrollmentProgressResponse:
    """Get the learner's stored progress for a course (404 if never synced)."""
    set_course_id(course_id)
    try:
        progress = await progress_service.require_course_progress(learner.id, course_id)
        return EnrollmentProgressResponse.from_entity(progress)
    except ProgressError as e:
        raise handle_progress_error(e) from e


# ==============================================================================
# User Statistics Endpoints
# ==============================================================================


@router.get(
    "/user/stats",
    response_model=UserProgressStatsResponse,
    summary="Get learner progress statistics",
)
async def get_user_progress_stats(
    progress_service: ProgressServiceDep,
    learner: CurrentLearner,
) -> UserProgressStatsResponse:
    """Aggregated progress across every course the learner synced."""
    return await progress_service.get_user_progress_stats(learner.id)


# ==============================================================================
# Lesson Progress Endpoints
# ==============================================================================
# Registered after /user/stats, which the two-segment lesson route would
# otherwise match.


@router.post(
    "",
    response_model=LessonProgressResponse,
    summary="Save lesson watch progress",
)
async def update_lesson_progress(
    data: UpdateLessonProgressRequest,
    progress_service: ProgressServiceDep,
    learner: CurrentLearner,
) -> LessonProgressResponse:
    """Store the watched percentage of a lesson.

    The lesson is completed once the percentage reaches the completion mark.
    """
    set_course_id(data.course_id)
    try:
        lesson = await progress_service.update_lesson_progress(
            user_id=learner.id,
            course_id=data.course_id,
            lesson_id=data.lesson_id,
            progress=data.progress,
        )
        return LessonProgressResponse.from_entity(lesson)
    except ProgressError as e:
        raise handle_progress_error(e) from e


@router.get(
    "/{course_id}",
    response_model=CourseLessonProgressResponse,
    summary="Get lesson progress of a course",
)
async def get_course_lesson_progress(
    progress_service: ProgressServiceDep,
    learner: CurrentLearner,
    course_id: CourseId,
) -> CourseLessonProgressResponse:
    """Every lesson of the course the learner has watched."""
    set_course_id(course_id)
    lessons = await progress_service.get_course_lesson_progress(learner.id, course_id)
    return CourseLessonProgressResponse(
        course_id=course_id,
        completed_lessons=sum(1 for lesson in lessons if lesson.completed),
        lessons=[LessonProgressResponse.from_entity(lesson) for lesson in lessons],
    )


@router.get(
    "/{course_id}/{lesson_id}",
    response_model=LessonProgressResponse,
    summary="Get lesson progress",
)
async def get_lesson_progress(
    progress_service: ProgressServiceDep,
    learner: CurrentLearner,
    course_id: CourseId,
    lesson_id: LessonId,
) -> LessonProgressResponse:
    """Watch progress of one lesson (0% and not completed if never watched)."""
    set_course_id(course_id)
    lesson = await progress_service.get_lesson_progress(learner.id, course_id, lesson_id)
    return LessonProgressResponse.from_entity(lesson)
