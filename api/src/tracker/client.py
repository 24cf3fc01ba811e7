"""HTTP client for the remote progress endpoint."""

import inspect
from collections.abc import Awaitable, Callable

import httpx
import structlog
from pydantic import BaseModel, ConfigDict, Field


logger = structlog.get_logger(__name__)

TokenProvider = Callable[[], str | None | Awaitable[str | None]]


class ProgressSnapshot(BaseModel):
    """Full progress snapshot pushed for a course (never a delta)."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    completion_percentage: int = Field(..., ge=0, le=100, alias="completionPercentage")
    completed_lessons: int = Field(..., ge=0, alias="completedLessons")


class ProgressSyncError(Exception):
    """Raised when the remote endpoint rejects or cannot receive a snapshot."""

    def __init__(self, message: str, status_code: int | None = None):
        self.message = message
        self.status_code = status_code
        self.code = "progress_sync_failed"
        super().__init__(message)


class RemoteProgressClient:
    """Pushes progress snapshots to PUT /v1/enrollments/progress/{course_id}.

    The bearer credential comes from an injected token provider (sync or
    async callable) owned by the auth layer.
    """

    def __init__(
        self,
        base_url: str,
        token_provider: TokenProvider,
        timeout: float = 10.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._token_provider = token_provider
        self._client = http_client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = http_client is None

    def progress_url(self, course_id: str) -> str:
        return f"{self.base_url}/v1/enrollments/progress/{course_id}"

    async def _token(self) -> str | None:
        token = self._token_provider()
        if inspect.isawaitable(token):
            token = await token
        return token

    async def push_progress(self, course_id: str, snapshot: ProgressSnapshot) -> None:
        """Send a snapshot.

        Raises:
            ProgressSyncError: On transport errors, timeouts and non-2xx replies
        """
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        token = await self._token()
        if token:
            headers["Authorization"] = f"Bearer {token}"

        try:
            response = await self._client.put(
                self.progress_url(course_id),
                json=snapshot.model_dump(by_alias=True),
                headers=headers,
            )
        except httpx.TimeoutException as e:
            raise ProgressSyncError("Progress endpoint timeout") from e
        except httpx.HTTPError as e:
            raise ProgressSyncError(f"Progress endpoint request error: {e}") from e

        if not response.is_success:
            raise ProgressSyncError(
                f"Progress endpoint returned {response.status_code}",
                status_code=response.status_code,
            )

        logger.debug(
            "progress_pushed",
            course_id=course_id,
            completion_percentage=snapshot.completion_percentage,
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
