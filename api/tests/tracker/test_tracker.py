"""Tests for ProgressTracker and lesson sessions."""

import asyncio
import json
from unittest.mock import AsyncMock, Mock

import pytest

from src.courses.provider import OutlineUnavailableError, StaticOutlineProvider
from src.courses.schemas import CourseOutline
from src.tracker.cache import LocalProgressCache, MemoryBackend
from src.tracker.client import RemoteProgressClient
from src.tracker.embed import LocalMessageChannel, listening_command
from src.tracker.models import ItemStatus
from src.tracker.policy import CompletionPolicy
from src.tracker.sync import ProgressSyncer
from src.tracker.tracker import LessonNotFoundError, ProgressTracker


COURSE_ID = "course-1"
TRUSTED = "https://www.youtube.com"


@pytest.fixture
def backend() -> MemoryBackend:
    """In-memory cache backend with a spy on writes."""
    backend = MemoryBackend()
    backend.set = AsyncMock(wraps=backend.set)
    return backend


@pytest.fixture
def remote():
    """Remote client that records pushed snapshots."""
    client = Mock(spec=RemoteProgressClient)
    client.push_progress = AsyncMock(return_value=None)
    client.aclose = AsyncMock(return_value=None)
    return client


@pytest.fixture
def tracker(backend, remote, outline) -> ProgressTracker:
    return ProgressTracker(
        cache=LocalProgressCache(backend),
        syncer=ProgressSyncer(remote),
        outline_provider=StaticOutlineProvider({outline.id: outline}),
        policy=CompletionPolicy(poll_interval_seconds=0.01),
        trusted_origins={TRUSTED},
    )


def pushed(remote) -> list[tuple[str, int, int]]:
    return [
        (call.args[0], call.args[1].completion_percentage, call.args[1].completed_lessons)
        for call in remote.push_progress.await_args_list
    ]


class TestLoadProgress:
    @pytest.mark.asyncio
    async def test_empty_on_miss(self, tracker) -> None:
        state = await tracker.load_progress(COURSE_ID)
        assert state.completed == frozenset()

    @pytest.mark.asyncio
    async def test_reads_cached_entry(self, tracker, backend) -> None:
        backend.data[f"course-{COURSE_ID}-completed"] = '["a1"]'
        state = await tracker.load_progress(COURSE_ID)
        assert state.completed == {"a1"}

    @pytest.mark.asyncio
    async def test_corrupt_entry_is_empty(self, tracker, backend) -> None:
        backend.data[f"course-{COURSE_ID}-completed"] = "{{{"
        state = await tracker.load_progress(COURSE_ID)
        assert state.completed == frozenset()


class TestMarkComplete:
    """Idempotent, monotonic completion."""

    @pytest.mark.asyncio
    async def test_idempotent(self, tracker, backend, remote) -> None:
        await tracker.open_course(COURSE_ID)

        first = await tracker.mark_complete(COURSE_ID, "a1")
        for _ in range(3):
            again = await tracker.mark_complete(COURSE_ID, "a1")
        await tracker.syncer.drain()

        assert again == first
        assert backend.set.await_count == 1
        assert pushed(remote) == [(COURSE_ID, 25, 1)]

    @pytest.mark.asyncio
    async def test_concurrent_duplicates_write_and_push_once(
        self, tracker, backend, remote
    ) -> None:
        await tracker.open_course(COURSE_ID)

        async def slow_set(key, value):
            await asyncio.sleep(0.01)
            await MemoryBackend.set(backend, key, value)

        backend.set.side_effect = slow_set

        states = await asyncio.gather(
            *(tracker.mark_complete(COURSE_ID, "a1") for _ in range(5))
        )
        await tracker.syncer.drain()

        assert all(state.completed == {"a1"} for state in states)
        assert backend.set.await_count == 1
        assert pushed(remote) == [(COURSE_ID, 25, 1)]

    @pytest.mark.asyncio
    async def test_concurrent_samples_complete_once(self, tracker, backend, remote) -> None:
        await tracker.open_course(COURSE_ID)

        async def slow_set(key, value):
            await asyncio.sleep(0.01)
            await MemoryBackend.set(backend, key, value)

        backend.set.side_effect = slow_set

        async with tracker.open_lesson(COURSE_ID, "v1") as session:
            await session.on_metadata_loaded(100)
            await asyncio.gather(
                session.on_time_update(80),
                session.on_time_update(90),
                session.on_time_update(95),
                tracker.mark_complete(COURSE_ID, "v1"),
            )
            assert session.status == ItemStatus.COMPLETED

        await tracker.syncer.drain()

        assert backend.set.await_count == 1
        assert pushed(remote) == [(COURSE_ID, 25, 1)]

    @pytest.mark.asyncio
    async def test_slow_early_push_does_not_overwrite_latest(self, tracker, remote) -> None:
        await tracker.open_course(COURSE_ID)
        server: dict[str, int] = {}

        async def push(course_id, snapshot):
            await asyncio.sleep(0.05 if snapshot.completed_lessons == 1 else 0)
            server[course_id] = snapshot.completion_percentage

        remote.push_progress.side_effect = push

        for item_id in ["a1", "v1", "v2", "as1"]:
            await tracker.mark_complete(COURSE_ID, item_id)
        await tracker.syncer.drain()

        assert tracker.completion_percentage(COURSE_ID) == 100
        assert server[COURSE_ID] == 100

    @pytest.mark.asyncio
    async def test_writes_full_snapshot(self, tracker, backend) -> None:
        await tracker.mark_complete(COURSE_ID, "a1")
        await tracker.mark_complete(COURSE_ID, "v1")

        stored = json.loads(backend.data[f"course-{COURSE_ID}-completed"])
        assert stored == ["a1", "v1"]

    @pytest.mark.asyncio
    async def test_monotonic(self, tracker) -> None:
        history = []
        for item_id in ["a1", "v1", "a1", "as1", "v1"]:
            state = await tracker.mark_complete(COURSE_ID, item_id)
            history.append(state.completed)

        for earlier, later in zip(history, history[1:], strict=False):
            assert earlier <= later

    @pytest.mark.asyncio
    async def test_unknown_outline_skips_sync(self, tracker, remote) -> None:
        state = await tracker.mark_complete(COURSE_ID, "a1")
        await tracker.syncer.drain()

        assert state.is_completed("a1")
        remote.push_progress.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_accepts_ids_outside_outline(self, tracker, remote) -> None:
        await tracker.open_course(COURSE_ID)
        for item_id in ["a1", "v1", "v2", "as1", "retired-item"]:
            await tracker.mark_complete(COURSE_ID, item_id)
        await tracker.syncer.drain()

        assert pushed(remote)[-1] == (COURSE_ID, 100, 5)

    @pytest.mark.asyncio
    async def test_sync_failure_keeps_local_state(self, tracker, backend, remote) -> None:
        await tracker.open_course(COURSE_ID)
        remote.push_progress.side_effect = RuntimeError("network down")

        state = await tracker.mark_complete(COURSE_ID, "a1")
        await tracker.syncer.drain()

        assert state.is_completed("a1")
        assert json.loads(backend.data[f"course-{COURSE_ID}-completed"]) == ["a1"]
        assert tracker.syncer.get_stats()["syncs_failed"] == 1


class TestOpenCourse:
    @pytest.mark.asyncio
    async def test_pushes_offline_progress_once(self, tracker, backend, remote) -> None:
        backend.data[f"course-{COURSE_ID}-completed"] = '["a1", "v1"]'

        await tracker.open_course(COURSE_ID)
        await tracker.open_course(COURSE_ID)
        await tracker.syncer.drain()

        assert pushed(remote) == [(COURSE_ID, 50, 2)]
        assert tracker.completion_percentage(COURSE_ID) == 50

    @pytest.mark.asyncio
    async def test_empty_progress_is_not_pushed(self, tracker, remote) -> None:
        await tracker.open_course(COURSE_ID)
        await tracker.syncer.drain()
        remote.push_progress.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_missing_course(self, tracker) -> None:
        with pytest.raises(OutlineUnavailableError):
            await tracker.open_course("nope")
        assert tracker.completion_percentage("nope") == 0


class TestLessonSession:
    """Per-item state machine."""

    @pytest.mark.asyncio
    async def test_article_completes_on_display(self, tracker) -> None:
        await tracker.open_course(COURSE_ID)

        async with tracker.open_lesson(COURSE_ID, "a1") as session:
            assert session.status == ItemStatus.COMPLETED

        state = await tracker.load_progress(COURSE_ID)
        assert state.is_completed("a1")

    @pytest.mark.asyncio
    async def test_native_video_state_machine(self, tracker) -> None:
        await tracker.open_course(COURSE_ID)

        async with tracker.open_lesson(COURSE_ID, "v1") as session:
            assert session.status == ItemStatus.NOT_STARTED
            assert await session.on_metadata_loaded(100) == ItemStatus.IN_PROGRESS
            assert await session.on_time_update(69.9) == ItemStatus.IN_PROGRESS
            assert await session.on_time_update(70) == ItemStatus.COMPLETED

        assert (await tracker.load_progress(COURSE_ID)).is_completed("v1")

    @pytest.mark.asyncio
    async def test_unknown_duration_defers_completion(self, tracker) -> None:
        await tracker.open_course(COURSE_ID)

        async with tracker.open_lesson(COURSE_ID, "v1") as session:
            assert await session.on_time_update(500) == ItemStatus.IN_PROGRESS
            assert await session.on_metadata_loaded(0) == ItemStatus.IN_PROGRESS
            assert await session.on_metadata_loaded(600) == ItemStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_invalid_readings_are_ignored(self, tracker) -> None:
        await tracker.open_course(COURSE_ID)

        async with tracker.open_lesson(COURSE_ID, "v1") as session:
            assert await session.on_time_update(float("nan")) == ItemStatus.NOT_STARTED
            assert await session.on_time_update(-1) == ItemStatus.NOT_STARTED
            assert session.watch.samples == 0

    @pytest.mark.asyncio
    async def test_samples_after_completion_are_ignored(self, tracker) -> None:
        await tracker.open_course(COURSE_ID)
        tracker.mark_complete = AsyncMock(wraps=tracker.mark_complete)

        async with tracker.open_lesson(COURSE_ID, "v1") as session:
            await session.on_metadata_loaded(100)
            await session.on_time_update(90)
            await session.on_time_update(95)
            await session.on_time_update(10)

        tracker.mark_complete.assert_awaited_once_with(COURSE_ID, "v1")
        assert session.watch.current_position == 90

    @pytest.mark.asyncio
    async def test_completed_item_starts_completed(self, tracker) -> None:
        await tracker.open_course(COURSE_ID)
        await tracker.mark_complete(COURSE_ID, "v1")

        async with tracker.open_lesson(COURSE_ID, "v1") as session:
            assert session.status == ItemStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_unknown_lesson(self, tracker) -> None:
        await tracker.open_course(COURSE_ID)
        with pytest.raises(LessonNotFoundError):
            tracker.open_lesson(COURSE_ID, "missing")

    @pytest.mark.asyncio
    async def test_lesson_of_unopened_course(self, tracker) -> None:
        with pytest.raises(LessonNotFoundError):
            tracker.open_lesson(COURSE_ID, "a1")


class TestEmbeddedSession:
    """Embedded media driven through the message channel."""

    @pytest.mark.asyncio
    async def test_embedded_video_completes_from_messages(self, tracker) -> None:
        await tracker.open_course(COURSE_ID)
        channel = LocalMessageChannel()

        async with tracker.open_lesson(COURSE_ID, "v2", channel=channel) as session:
            assert channel.subscriber_count == 1
            await channel.publish(
                TRUSTED,
                json.dumps({"event": "infoDelivery", "info": {"currentTime": 30, "duration": 100}}),
            )
            assert session.status == ItemStatus.IN_PROGRESS
            await channel.publish(
                TRUSTED,
                json.dumps({"event": "infoDelivery", "info": {"currentTime": 75}}),
            )
            assert session.status == ItemStatus.COMPLETED

        assert channel.subscriber_count == 0

    @pytest.mark.asyncio
    async def test_spoofed_origin_does_not_change_watch_progress(self, tracker) -> None:
        await tracker.open_course(COURSE_ID)
        channel = LocalMessageChannel()

        async with tracker.open_lesson(COURSE_ID, "v2", channel=channel) as session:
            await channel.publish(
                "https://evil.example.com",
                json.dumps({"event": "infoDelivery", "info": {"currentTime": 99, "duration": 100}}),
            )

            assert session.status == ItemStatus.NOT_STARTED
            assert session.watch.current_position == 0.0
            assert session.watch.total_duration is None
            assert session.watch.samples == 0

    @pytest.mark.asyncio
    async def test_privacy_enhanced_embed_completes(self, backend, remote) -> None:
        outline = CourseOutline.model_validate(
            {
                "_id": "course-nc",
                "title": "Embedded only",
                "sections": [
                    {
                        "_id": "s1",
                        "title": "Only",
                        "subsections": [
                            {
                                "_id": "ss1",
                                "title": "Only",
                                "content": [
                                    {
                                        "_id": "nc1",
                                        "type": "video",
                                        "title": "Private embed",
                                        "videoUrl": "https://www.youtube-nocookie.com/embed/x",
                                    }
                                ],
                            }
                        ],
                    }
                ],
            }
        )
        tracker = ProgressTracker(
            cache=LocalProgressCache(backend),
            syncer=ProgressSyncer(remote),
            outline_provider=StaticOutlineProvider({outline.id: outline}),
        )
        await tracker.open_course("course-nc")
        channel = LocalMessageChannel()

        async with tracker.open_lesson("course-nc", "nc1", channel=channel) as session:
            assert session.is_embedded
            await channel.publish(
                "https://www.youtube-nocookie.com",
                json.dumps({"event": "infoDelivery", "info": {"currentTime": 99, "duration": 100}}),
            )
            assert session.status == ItemStatus.COMPLETED

        await tracker.aclose()
        assert pushed(remote) == [("course-nc", 100, 1)]

    @pytest.mark.asyncio
    async def test_poller_lifecycle_is_scoped(self, tracker) -> None:
        await tracker.open_course(COURSE_ID)
        channel = LocalMessageChannel()
        send = AsyncMock()

        async with tracker.open_lesson(
            COURSE_ID, "v2", channel=channel, send_command=send
        ) as session:
            poller = session.poller
            assert poller is not None
            await asyncio.sleep(0.03)
            assert poller.is_running

        assert poller.is_running is False
        assert session.poller is None
        send.assert_awaited_with(listening_command("lesson-v2"))
        sent = send.await_count
        await asyncio.sleep(0.03)
        assert send.await_count == sent

    @pytest.mark.asyncio
    async def test_native_video_does_not_subscribe(self, tracker) -> None:
        await tracker.open_course(COURSE_ID)
        channel = LocalMessageChannel()

        async with tracker.open_lesson(COURSE_ID, "v1", channel=channel) as session:
            assert channel.subscriber_count == 0
            assert session.poller is None


class TestEndToEnd:
    """Article plus one video out of four items."""

    @pytest.mark.asyncio
    async def test_article_and_video_reach_fifty_percent(self, tracker, remote) -> None:
        await tracker.open_course(COURSE_ID)

        async with tracker.open_lesson(COURSE_ID, "a1") as article:
            assert article.status == ItemStatus.COMPLETED

        async with tracker.open_lesson(COURSE_ID, "v1") as video:
            await video.on_metadata_loaded(200)
            assert await video.on_time_update(130) == ItemStatus.IN_PROGRESS
            assert tracker.completion_percentage(COURSE_ID) == 25
            assert await video.on_time_update(145) == ItemStatus.COMPLETED

        await tracker.aclose()

        assert tracker.completion_percentage(COURSE_ID) == 50
        assert pushed(remote) == [(COURSE_ID, 25, 1), (COURSE_ID, 50, 2)]
