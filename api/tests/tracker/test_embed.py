"""Tests for the embedded-media status channel."""

import asyncio
import json
from unittest.mock import AsyncMock

import pytest

from src.tracker.embed import (
    EmbedPoller,
    InboundMessage,
    LocalMessageChannel,
    listening_command,
    parse_status_message,
)
from src.tracker.models import WatchSample


TRUSTED = "https://www.youtube.com"


def info_delivery(current_time=None, duration=None) -> str:
    info = {}
    if current_time is not None:
        info["currentTime"] = current_time
    if duration is not None:
        info["duration"] = duration
    return json.dumps({"event": "infoDelivery", "info": info})


class TestParseStatusMessage:
    """Messages become a sample or nothing."""

    def test_valid_message(self) -> None:
        message = InboundMessage(TRUSTED, info_delivery(130, 200))
        assert parse_status_message(message, TRUSTED) == WatchSample(
            current_time=130, duration=200
        )

    def test_already_decoded_payload(self) -> None:
        data = {"event": "infoDelivery", "info": {"currentTime": 5, "extra": 1}}
        sample = parse_status_message(InboundMessage(TRUSTED, data), TRUSTED)
        assert sample == WatchSample(current_time=5)

    def test_spoofed_origin_is_dropped(self) -> None:
        message = InboundMessage("https://evil.example.com", info_delivery(190, 200))
        assert parse_status_message(message, TRUSTED) is None

    def test_any_of_several_trusted_origins(self) -> None:
        trusted = {TRUSTED, "https://www.youtube-nocookie.com"}

        nocookie = InboundMessage("https://www.youtube-nocookie.com", info_delivery(10))
        assert parse_status_message(nocookie, trusted) == WatchSample(current_time=10)

        lookalike = InboundMessage("https://youtube-nocookie.com.evil.io", info_delivery(10))
        assert parse_status_message(lookalike, trusted) is None

    @pytest.mark.parametrize(
        "data",
        [
            "not json",
            "[1, 2]",
            json.dumps({"event": "onReady"}),
            json.dumps({"event": "infoDelivery"}),
            json.dumps({"event": "infoDelivery", "info": {}}),
            json.dumps({"event": "infoDelivery", "info": {"currentTime": "soon"}}),
            json.dumps({"event": "infoDelivery", "info": {"currentTime": -3}}),
            None,
        ],
    )
    def test_malformed_messages_are_dropped(self, data) -> None:
        assert parse_status_message(InboundMessage(TRUSTED, data), TRUSTED) is None


class TestLocalMessageChannel:
    """Scoped subscriptions."""

    @pytest.mark.asyncio
    async def test_publish_reaches_subscribers_until_unsubscribed(self) -> None:
        channel = LocalMessageChannel()
        handler = AsyncMock()

        subscription = channel.subscribe(handler)
        await channel.publish(TRUSTED, "hello")
        subscription.unsubscribe()
        subscription.unsubscribe()
        await channel.publish(TRUSTED, "again")

        handler.assert_awaited_once_with(InboundMessage(TRUSTED, "hello"))
        assert channel.subscriber_count == 0


class TestEmbedPoller:
    """Explicit per-session polling handle."""

    def test_listening_command(self) -> None:
        assert json.loads(listening_command("frame-1")) == {
            "event": "listening",
            "id": "frame-1",
            "channel": "widget",
        }

    @pytest.mark.asyncio
    async def test_polls_until_stopped(self) -> None:
        send = AsyncMock()
        poller = EmbedPoller(send, frame_id="frame-1", interval_seconds=0.01)

        poller.start()
        await asyncio.sleep(0.05)
        await poller.stop()
        sent = send.await_count
        await asyncio.sleep(0.03)

        assert sent >= 1
        assert send.await_count == sent
        assert poller.is_running is False
        send.assert_awaited_with(listening_command("frame-1"))

    @pytest.mark.asyncio
    async def test_sender_errors_do_not_stop_polling(self) -> None:
        send = AsyncMock(side_effect=ConnectionError("frame gone"))
        poller = EmbedPoller(send, frame_id="frame-1", interval_seconds=0.01)

        poller.start()
        await asyncio.sleep(0.05)
        assert poller.is_running is True
        await poller.stop()

        assert send.await_count >= 2
        assert poller.polls_sent == 0

    @pytest.mark.asyncio
    async def test_stop_is_idempotent(self) -> None:
        poller = EmbedPoller(AsyncMock(), frame_id="f", interval_seconds=1)
        await poller.stop()
        poller.start()
        await poller.stop()
        await poller.stop()
        assert poller.is_running is False
