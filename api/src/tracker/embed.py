"""Embedded-media status channel.

Hosted embeds report playback only through asynchronous status messages.
The session asks for them by posting a `listening` command every poll
interval, and the embed answers with `infoDelivery` messages:

    {"event": "infoDelivery", "info": {"currentTime": 12.3, "duration": 200}}

Messages are only trusted when they come from the embed's origin, and are
parsed into a WatchSample or dropped; nothing partially parsed gets through.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Awaitable, Callable, Collection
from dataclasses import dataclass
from typing import Any, Protocol

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .models import WatchSample


logger = structlog.get_logger(__name__)

INFO_DELIVERY_EVENT = "infoDelivery"


@dataclass(frozen=True)
class InboundMessage:
    """A message received from an embed (origin is the sender's origin)."""

    origin: str
    data: Any


MessageHandler = Callable[[InboundMessage], Awaitable[None]]
CommandSender = Callable[[str], Awaitable[None]]


class _EmbedInfo(BaseModel):
    model_config = ConfigDict(extra="ignore", allow_inf_nan=False)

    current_time: float | None = Field(default=None, alias="currentTime")
    duration: float | None = None


class _EmbedStatusMessage(BaseModel):
    model_config = ConfigDict(extra="ignore")

    event: str
    info: _EmbedInfo | None = None


def parse_status_message(
    message: InboundMessage,
    trusted_origins: str | Collection[str],
) -> WatchSample | None:
    """Turn an inbound message into a watch sample, or None.

    `trusted_origins` is a single origin or a collection of them; origins
    are compared exactly.

    None covers: untrusted origin, non-JSON data, unexpected shape, events
    other than infoDelivery and messages without a usable reading.
    """
    if isinstance(trusted_origins, str):
        trusted_origins = (trusted_origins,)
    if message.origin not in trusted_origins:
        return None

    data = message.data
    if isinstance(data, str | bytes):
        try:
            data = json.loads(data)
        except ValueError:
            return None

    try:
        status = _EmbedStatusMessage.model_validate(data)
        if status.event != INFO_DELIVERY_EVENT or status.info is None:
            return None
        return WatchSample(
            current_time=status.info.current_time,
            duration=status.info.duration,
        )
    except ValidationError:
        return None


def listening_command(frame_id: str) -> str:
    """Command asking the embed to push status messages."""
    return json.dumps({"event": "listening", "id": frame_id, "channel": "widget"})


class Subscription(Protocol):
    def unsubscribe(self) -> None: ...


class MessageChannel(Protocol):
    """Source of inbound embed messages."""

    def subscribe(self, handler: MessageHandler) -> Subscription: ...


class _LocalSubscription:
    def __init__(self, channel: LocalMessageChannel, handler: MessageHandler) -> None:
        self._channel = channel
        self._handler = handler
        self.active = True

    def unsubscribe(self) -> None:
        if self.active:
            self._channel._handlers.remove(self._handler)
            self.active = False


class LocalMessageChannel:
    """In-process channel: publish() delivers to every current subscriber."""

    def __init__(self) -> None:
        self._handlers: list[MessageHandler] = []

    def subscribe(self, handler: MessageHandler) -> _LocalSubscription:
        self._handlers.append(handler)
        return _LocalSubscription(self, handler)

    async def publish(self, origin: str, data: Any) -> None:
        message = InboundMessage(origin=origin, data=data)
        for handler in list(self._handlers):
            await handler(message)

    @property
    def subscriber_count(self) -> int:
        return len(self._handlers)


class EmbedPoller:
    """Per-session polling handle for one embed.

    start() begins sending `listening` commands every interval; stop()
    cancels the loop and waits for it, so no timer outlives its session.
    """

    def __init__(
        self,
        send_command: CommandSender,
        frame_id: str,
        interval_seconds: float,
    ) -> None:
        self._send_command = send_command
        self.frame_id = frame_id
        self.interval_seconds = interval_seconds
        self._task: asyncio.Task[None] | None = None
        self.polls_sent = 0

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.is_running:
            return
        self._task = asyncio.create_task(
            self._poll_loop(), name=f"embed_poller:{self.frame_id}"
        )

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _poll_loop(self) -> None:
        command = listening_command(self.frame_id)
        while True:
            try:
                await self._send_command(command)
                self.polls_sent += 1
            except Exception as e:
                logger.warning(
                    "embed_poll_failed",
                    frame_id=self.frame_id,
                    error=str(e),
                )
            await asyncio.sleep(self.interval_seconds)
