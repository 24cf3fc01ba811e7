"""Shared test fixtures."""

import os


os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("LOG_REQUESTS", "false")

from unittest.mock import AsyncMock, Mock  # noqa: E402

import pytest  # noqa: E402
from cassandra.cluster import Session  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from src.auth.security import create_access_token  # noqa: E402
from src.courses.schemas import CourseOutline  # noqa: E402
from src.main import create_app  # noqa: E402


COURSE_ID = "course-1"


def build_outline(course_id: str = COURSE_ID) -> CourseOutline:
    """Two sections x one subsection x two items (4 items).

    a1 article, v1 native video, v2 embedded video, as1 assignment.
    """
    return CourseOutline.model_validate(
        {
            "_id": course_id,
            "title": "Pharmacology basics",
            "sections": [
                {
                    "_id": "s1",
                    "title": "Intro",
                    "order": 1,
                    "subsections": [
                        {
                            "_id": "ss1",
                            "title": "Welcome",
                            "content": [
                                {"_id": "a1", "type": "article", "title": "Read me"},
                                {
                                    "_id": "v1",
                                    "type": "video",
                                    "title": "Lecture",
                                    "videoUrl": "https://cdn.example.com/v1.mp4",
                                },
                            ],
                        }
                    ],
                },
                {
                    "_id": "s2",
                    "title": "Practice",
                    "order": 2,
                    "subsections": [
                        {
                            "_id": "ss2",
                            "title": "Hands on",
                            "content": [
                                {
                                    "_id": "v2",
                                    "type": "video",
                                    "title": "Demo",
                                    "videoUrl": "https://www.youtube.com/embed/abc123",
                                },
                                {"_id": "as1", "type": "assignment", "title": "Quiz"},
                            ],
                        }
                    ],
                },
            ],
        }
    )


@pytest.fixture
def outline() -> CourseOutline:
    """Four-item course outline."""
    return build_outline()


@pytest.fixture
def app():
    """Application without running the lifespan (no infrastructure)."""
    return create_app()


@pytest.fixture
def client(app) -> TestClient:
    """Test client (lifespan not started, so no Cassandra connection)."""
    return TestClient(app)


@pytest.fixture
def learner_id() -> str:
    """Test learner ID."""
    return "learner-42"


@pytest.fixture
def auth_headers(learner_id: str) -> dict[str, str]:
    """Authorization header with a valid access token."""
    return {"Authorization": f"Bearer {create_access_token(learner_id)}"}


@pytest.fixture
def mock_session():
    """Mock Cassandra session."""
    session = Mock(spec=Session)
    # Mock prepare to avoid actual statement preparation
    session.prepare = Mock(return_value=Mock())
    # Make aexecute awaitable (cassandra-asyncio-driver)
    session.aexecute = AsyncMock(return_value=Mock())
    return session
