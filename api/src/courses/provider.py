"""Course outline providers.

The tracker never owns the outline: it asks a provider for the tree of a
course and treats the result as read-only.
"""

from collections.abc import Mapping
from typing import Protocol

import httpx
import structlog
from pydantic import ValidationError

from .schemas import CourseOutline


logger = structlog.get_logger(__name__)


class OutlineUnavailableError(Exception):
    """Raised when a course outline cannot be obtained."""

    def __init__(self, course_id: str, message: str = "Course outline unavailable"):
        self.course_id = course_id
        self.message = message
        self.code = "outline_unavailable"
        super().__init__(f"{message}: {course_id}")


class OutlineProvider(Protocol):
    """Source of course outlines."""

    async def get_outline(self, course_id: str) -> CourseOutline: ...


class StaticOutlineProvider:
    """Serves outlines from memory (offline use, fixtures)."""

    def __init__(self, outlines: Mapping[str, CourseOutline] | None = None) -> None:
        self._outlines: dict[str, CourseOutline] = dict(outlines or {})

    def add(self, outline: CourseOutline) -> None:
        self._outlines[outline.id] = outline

    async def get_outline(self, course_id: str) -> CourseOutline:
        try:
            return self._outlines[course_id]
        except KeyError:
            raise OutlineUnavailableError(course_id, "Unknown course") from None


class HttpOutlineProvider:
    """Fetches outlines from the course catalog API.

    GET {base_url}/api/courses/{course_id} -> {"success": true, "data": {...}}
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = http_client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = http_client is None

    async def get_outline(self, course_id: str) -> CourseOutline:
        url = f"{self.base_url}/api/courses/{course_id}"

        try:
            response = await self._client.get(url, headers={"Accept": "application/json"})
        except httpx.HTTPError as e:
            logger.error("outline_request_error", course_id=course_id, error=str(e))
            raise OutlineUnavailableError(course_id) from e

        if response.status_code != httpx.codes.OK:
            logger.error(
                "outline_request_failed",
                course_id=course_id,
                status_code=response.status_code,
            )
            raise OutlineUnavailableError(
                course_id, f"Catalog returned {response.status_code}"
            )

        try:
            body = response.json()
            data = body.get("data", body) if isinstance(body, dict) else body
            return CourseOutline.model_validate(data)
        except (ValueError, ValidationError) as e:
            logger.error("outline_parse_failed", course_id=course_id, error=str(e))
            raise OutlineUnavailableError(course_id, "Malformed course outline") from e

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
