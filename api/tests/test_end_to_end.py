"""Tracker pushing progress to the API in-process."""

import httpx
import pytest

from src.auth.security import create_access_token
from src.courses.provider import StaticOutlineProvider
from src.progress.service import ProgressService
from src.tracker.cache import LocalProgressCache, MemoryBackend
from src.tracker.client import RemoteProgressClient
from src.tracker.sync import ProgressSyncer
from src.tracker.tracker import ProgressTracker


@pytest.mark.asyncio
async def test_completions_reach_progress_tables(
    app, mock_session, outline, learner_id
) -> None:
    """Each completion is stored by the endpoint through the dual write."""
    mock_session.aexecute.return_value.one.return_value = None
    app.state.progress_service = ProgressService(
        session=mock_session, keyspace="test_keyspace"
    )

    http_client = httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app), base_url="http://testserver"
    )
    remote = RemoteProgressClient(
        "http://testserver",
        token_provider=lambda: create_access_token(learner_id),
        http_client=http_client,
    )
    tracker = ProgressTracker(
        cache=LocalProgressCache(MemoryBackend()),
        syncer=ProgressSyncer(remote),
        outline_provider=StaticOutlineProvider({outline.id: outline}),
    )

    await tracker.open_course(outline.id)
    async with tracker.open_lesson(outline.id, "a1"):
        pass
    async with tracker.open_lesson(outline.id, "v1") as video:
        await video.on_metadata_loaded(200)
        await video.on_time_update(145)
    await tracker.syncer.drain()

    stats = tracker.syncer.get_stats()
    assert stats["syncs_sent"] == 2
    assert stats["syncs_failed"] == 0

    main_table_writes = [
        call.args[1]
        for call in mock_session.aexecute.await_args_list
        if len(call.args[1]) == 9
    ]
    assert sorted(args[:5] for args in main_table_writes) == [
        [outline.id, learner_id, "in_progress", 25, 1],
        [outline.id, learner_id, "in_progress", 50, 2],
    ]

    await tracker.aclose()
    await http_client.aclose()
