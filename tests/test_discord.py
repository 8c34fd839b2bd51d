import asyncio
import json

import httpx
import pytest

from beluga.bus.events import OutboundMessage
from beluga.bus.queue import MessageBus
from beluga.channels.base import ChannelError, ChannelInfo, ChannelKind
from beluga.channels.discord import DiscordChannel, split_message
from beluga.config.schema import DiscordConfig

THREAD_PAYLOAD = {
    "id": "321",
    "type": 11,
    "name": "beluga-cat • exam help",
    "owner_id": "bot-1",
    "parent_id": "500",
    "guild_id": "1",
    "thread_metadata": {"archived": False},
}


def make_channel(handler, allow_from=None) -> DiscordChannel:
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    config = DiscordConfig(token="tok", allow_from=allow_from or [])
    return DiscordChannel(config, MessageBus(), http=http)


class Recorder:
    """Replies with the scripted (status, body) pairs in order, repeating the last one."""

    def __init__(self, *responses: tuple[int, object]):
        self.requests: list[httpx.Request] = []
        self.responses = list(responses)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        status, body = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if body is None:
            return httpx.Response(status)
        return httpx.Response(status, json=body)


def test_channel_info_from_payload():
    info = ChannelInfo.from_payload({**THREAD_PAYLOAD, "thread_metadata": {"archived": True}})

    assert info.id == "321"
    assert info.kind is ChannelKind.PUBLIC_THREAD
    assert info.is_thread and not info.supports_threads
    assert info.owner_id == "bot-1"
    assert info.archived is True

    assert ChannelInfo.from_payload({"id": 5, "type": 99}).kind is ChannelKind.UNKNOWN
    assert ChannelInfo.from_payload({"id": 6, "type": 0}).supports_threads


def test_split_message_prefers_newlines():
    text = "a" * 1500 + "\n" + "b" * 1500
    assert split_message(text) == ["a" * 1500, "b" * 1500]
    assert split_message("short") == ["short"]
    assert [len(c) for c in split_message("x" * 4500)] == [2000, 2000, 500]


@pytest.mark.asyncio
async def test_create_thread_from_message_caches_result():
    recorder = Recorder((201, THREAD_PAYLOAD))
    channel = make_channel(recorder)

    info = await channel.create_thread("500", "beluga-cat • exam help", 60, message_id="m-9")

    request = recorder.requests[0]
    assert request.method == "POST"
    assert request.url.path == "/api/v10/channels/500/messages/m-9/threads"
    assert request.headers["authorization"] == "Bot tok"
    assert json.loads(request.content) == {"name": "beluga-cat • exam help", "auto_archive_duration": 60}
    assert channel.get_cached_channel("321") is info


@pytest.mark.asyncio
async def test_create_thread_without_message_sets_type():
    recorder = Recorder((201, THREAD_PAYLOAD))
    channel = make_channel(recorder)

    await channel.create_thread("500", "name", 60)

    assert recorder.requests[0].url.path == "/api/v10/channels/500/threads"
    assert json.loads(recorder.requests[0].content)["type"] == 11


@pytest.mark.asyncio
async def test_rename_and_archive_update_cache_and_send_reason():
    recorder = Recorder((200, THREAD_PAYLOAD))
    channel = make_channel(recorder)
    cached = channel._cache_channel(ChannelInfo.from_payload(THREAD_PAYLOAD))

    await channel.rename_channel("321", "[ARCHIVED] beluga-cat • exam help", reason="Session ended")
    await channel.set_archived("321", True, reason="Session ended")

    assert cached.name == "[ARCHIVED] beluga-cat • exam help"
    assert cached.archived is True
    assert [r.method for r in recorder.requests] == ["PATCH", "PATCH"]
    assert recorder.requests[0].headers["x-audit-log-reason"] == "Session ended"
    assert json.loads(recorder.requests[1].content) == {"archived": True}


@pytest.mark.asyncio
async def test_delete_forgets_channel():
    channel = make_channel(Recorder((204, None)))
    cached = channel._cache_channel(ChannelInfo.from_payload(THREAD_PAYLOAD))

    await channel.delete_channel("321")

    assert channel.get_cached_channel("321") is None
    assert cached.deleted is True


@pytest.mark.asyncio
async def test_errors_raise_channel_error_and_fetch_returns_none():
    channel = make_channel(Recorder((404, {"message": "Unknown Channel"})))

    with pytest.raises(ChannelError):
        await channel.rename_channel("321", "x")
    assert await channel.fetch_channel("321") is None
    assert await channel.get_channel("321") is None


@pytest.mark.asyncio
async def test_rate_limit_is_retried_once():
    recorder = Recorder((429, {"retry_after": 0.01}), (200, {"id": "1"}))
    channel = make_channel(recorder)

    await channel.send(OutboundMessage(channel="discord", chat_id="321", content="hello"))

    assert len(recorder.requests) == 2
    assert json.loads(recorder.requests[1].content) == {"content": "hello"}


@pytest.mark.asyncio
async def test_second_rate_limit_raises():
    channel = make_channel(Recorder((429, {"retry_after": 0.01})))

    with pytest.raises(ChannelError):
        await channel.send(OutboundMessage(channel="discord", chat_id="321", content="hello"))


@pytest.mark.asyncio
async def test_get_channel_fetches_and_caches():
    recorder = Recorder((200, THREAD_PAYLOAD))
    channel = make_channel(recorder)

    first = await channel.get_channel("321")
    second = await channel.get_channel("321")

    assert first is second
    assert len(recorder.requests) == 1


@pytest.mark.asyncio
async def test_gateway_events_maintain_cache():
    channel = make_channel(Recorder((200, None)))

    await channel._dispatch_event("READY", {"user": {"id": 42}})
    await channel._dispatch_event("GUILD_CREATE", {
        "id": "1",
        "channels": [{"id": "500", "type": 0, "name": "general"}],
        "threads": [dict(THREAD_PAYLOAD)],
    })
    await channel._dispatch_event("THREAD_UPDATE", {**THREAD_PAYLOAD, "thread_metadata": {"archived": True}})

    assert channel.user_id == "42"
    assert channel.get_cached_channel("500").guild_id == "1"
    assert channel.get_cached_channel("321").archived is True

    await channel._dispatch_event("THREAD_DELETE", {"id": "321"})
    assert channel.get_cached_channel("321") is None


@pytest.mark.asyncio
async def test_message_create_publishes_inbound_and_skips_bots():
    channel = make_channel(Recorder((200, None)), allow_from=["7"])

    await channel._dispatch_event("MESSAGE_CREATE", {
        "id": "m1", "channel_id": "321", "content": "bot text", "author": {"id": "9", "bot": True},
    })
    await channel._dispatch_event("MESSAGE_CREATE", {
        "id": "m2", "channel_id": "321", "content": "stranger", "author": {"id": "8"},
    })
    await channel._dispatch_event("MESSAGE_CREATE", {
        "id": "m3", "channel_id": "321", "guild_id": "1", "content": "hello", "author": {"id": "7"},
    })

    msg = await asyncio.wait_for(channel.bus.consume_inbound(), timeout=1)
    assert msg.sender_id == "7"
    assert msg.content == "hello"
    assert msg.message_id == "m3"
    assert channel.bus.inbound.empty()


@pytest.mark.asyncio
async def test_reply_reference_only_on_first_chunk():
    recorder = Recorder((200, {"id": "1"}))
    channel = make_channel(recorder)

    text = "a" * 1500 + "\n" + "b" * 1500
    await channel.send(OutboundMessage(channel="discord", chat_id="500", content=text, reply_to="m-5"))

    first, second = [json.loads(r.content) for r in recorder.requests]
    assert first["message_reference"] == {"message_id": "m-5"}
    assert first["allowed_mentions"] == {"replied_user": False}
    assert "message_reference" not in second
