"""Lesson sessions.

A session lives while one content item is on screen and drives the item's
state machine:

    not_started --(first sample)--> in_progress --(threshold)--> completed
    not_started --(non-video shown)------------------------------> completed

Completed is terminal; samples arriving afterwards are ignored.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog
from pydantic import ValidationError

from src.courses.media import MediaSource
from src.courses.schemas import ContentItem

from .embed import (
    CommandSender,
    EmbedPoller,
    InboundMessage,
    MessageChannel,
    Subscription,
    parse_status_message,
)
from .models import ItemStatus, WatchProgress, WatchSample


if TYPE_CHECKING:
    from .tracker import ProgressTracker


logger = structlog.get_logger(__name__)


class LessonSession:
    """Tracks one viewed content item until it is closed.

    Use as an async context manager so the embed subscription and poller are
    always released:

        async with tracker.open_lesson(course_id, item_id, channel=channel) as session:
            ...
    """

    def __init__(
        self,
        tracker: ProgressTracker,
        course_id: str,
        item: ContentItem,
        channel: MessageChannel | None = None,
        send_command: CommandSender | None = None,
        frame_id: str | None = None,
    ) -> None:
        self.tracker = tracker
        self.course_id = course_id
        self.item = item
        self.channel = channel
        self.send_command = send_command
        self.frame_id = frame_id or f"lesson-{item.id}"
        self.watch = WatchProgress()

        self._status = ItemStatus.NOT_STARTED
        self._subscription: Subscription | None = None
        self._poller: EmbedPoller | None = None
        self._started = False
        self._stopped = False

    @property
    def status(self) -> ItemStatus:
        return self._status

    @property
    def is_embedded(self) -> bool:
        return self.item.media_source == MediaSource.EMBEDDED

    @property
    def poller(self) -> EmbedPoller | None:
        return self._poller

    async def start(self) -> ItemStatus:
        if self._started:
            return self._status
        self._started = True

        state = await self.tracker.load_progress(self.course_id)
        if state.is_completed(self.item.id):
            self._status = ItemStatus.COMPLETED
            return self._status

        if not self.item.is_video:
            await self._complete()
            return self._status

        if self.is_embedded and self.channel is not None:
            self._subscription = self.channel.subscribe(self._on_message)
            if self.send_command is not None:
                self._poller = EmbedPoller(
                    self.send_command,
                    frame_id=self.frame_id,
                    interval_seconds=self.tracker.policy.poll_interval_seconds,
                )
                self._poller.start()

        logger.debug(
            "lesson_session_started",
            course_id=self.course_id,
            item_id=self.item.id,
            embedded=self.is_embedded,
        )
        return self._status

    async def on_time_update(self, position: float) -> ItemStatus:
        """Native player reported a new playback position."""
        return await self._record(current_time=position)

    async def on_metadata_loaded(self, duration: float) -> ItemStatus:
        """Native player learned the media duration."""
        return await self._record(duration=duration)

    async def _record(
        self,
        current_time: float | None = None,
        duration: float | None = None,
    ) -> ItemStatus:
        try:
            sample = WatchSample(current_time=current_time, duration=duration)
        except ValidationError:
            logger.debug("watch_sample_rejected", item_id=self.item.id)
            return self._status
        return await self.record_sample(sample)

    async def record_sample(self, sample: WatchSample) -> ItemStatus:
        """Apply a watch sample and complete the item once it qualifies."""
        if self._status == ItemStatus.COMPLETED or self._stopped:
            return self._status

        self.watch.apply(sample)
        if self._status == ItemStatus.NOT_STARTED:
            self._status = ItemStatus.IN_PROGRESS

        if self.tracker.evaluate_video_completion(
            self.item.kind,
            self.watch.current_position,
            self.watch.total_duration,
        ):
            await self._complete()

        return self._status

    async def _on_message(self, message: InboundMessage) -> None:
        sample = parse_status_message(message, self.tracker.trusted_origins)
        if sample is None:
            return
        await self.record_sample(sample)

    async def _complete(self) -> None:
        # Set before awaiting so a concurrent sample cannot complete twice.
        self._status = ItemStatus.COMPLETED
        await self.tracker.mark_complete(self.course_id, self.item.id)

    async def _release(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None
        if self._poller is not None:
            await self._poller.stop()
            self._poller = None

    async def stop(self) -> None:
        """Release the embed subscription and poller. Safe to call twice."""
        if self._stopped:
            return
        self._stopped = True
        await self._release()
        logger.debug(
            "lesson_session_stopped",
            course_id=self.course_id,
            item_id=self.item.id,
            status=self._status.value,
        )

    async def __aenter__(self) -> LessonSession:
        await self.start()
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.stop()
