"""
Shared pytest fixtures: an in-memory platform client, a scripted reply provider
and a manual clock, so the session manager can be driven without Discord or
network access.
"""

import asyncio
import sys
from pathlib import Path
from typing import Any

import pytest

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from beluga.bus.events import OutboundMessage  # noqa: E402
from beluga.bus.queue import MessageBus  # noqa: E402
from beluga.channels.base import BaseChannel, ChannelError, ChannelInfo, ChannelKind  # noqa: E402
from beluga.config.schema import DiscordConfig, SessionConfig  # noqa: E402
from beluga.providers.base import GenerationSettings, ReplyProvider  # noqa: E402
from beluga.session.lifecycle import SessionController  # noqa: E402


class FakeChannel(BaseChannel):
    """Platform client that records every call and can be told to fail."""

    name = "fake"

    def __init__(self) -> None:
        super().__init__(DiscordConfig(), MessageBus())
        self.user_id = "bot-1"
        self.sent: list[tuple[str, str]] = []
        self.outbox: list[OutboundMessage] = []
        self.created: list[dict[str, Any]] = []
        self.renamed: list[tuple[str, str]] = []
        self.archived: list[tuple[str, bool]] = []
        self.deleted: list[str] = []
        self.remote: dict[str, ChannelInfo] = {}
        self.fail: set[str] = set()
        self._next_id = 1000

    def add_channel(self, **kwargs: Any) -> ChannelInfo:
        return self._cache_channel(ChannelInfo(**kwargs))

    def _maybe_fail(self, op: str) -> None:
        if op in self.fail:
            raise ChannelError(f"{op} failed")

    async def start(self) -> None:
        self._running = True

    async def stop(self) -> None:
        self._running = False

    async def send(self, msg: OutboundMessage) -> None:
        self._maybe_fail("send")
        self.sent.append((msg.chat_id, msg.content))
        self.outbox.append(msg)

    async def create_thread(self, parent_id, name, auto_archive_minutes, message_id=None) -> ChannelInfo:
        self._maybe_fail("create")
        self._next_id += 1
        self.created.append({
            "parent_id": parent_id,
            "name": name,
            "auto_archive_minutes": auto_archive_minutes,
            "message_id": message_id,
        })
        info = ChannelInfo(
            id=str(self._next_id),
            name=name,
            kind=ChannelKind.PUBLIC_THREAD,
            owner_id=self.user_id,
            parent_id=parent_id,
        )
        return self._cache_channel(info)

    async def rename_channel(self, channel_id, name, reason=None) -> None:
        self._maybe_fail("rename")
        self.renamed.append((channel_id, name))
        if channel_id in self._channels:
            self._channels[channel_id].name = name

    async def set_archived(self, channel_id, archived, reason=None) -> None:
        self._maybe_fail("archive")
        self.archived.append((channel_id, archived))
        if channel_id in self._channels:
            self._channels[channel_id].archived = archived

    async def delete_channel(self, channel_id, reason=None) -> None:
        self._maybe_fail("delete")
        self.deleted.append(channel_id)
        self._forget_channel(channel_id)

    async def fetch_channel(self, channel_id) -> ChannelInfo | None:
        return self.remote.get(channel_id)

    def messages_to(self, channel_id: str) -> list[str]:
        return [text for cid, text in self.sent if cid == channel_id]


class FakeProvider(ReplyProvider):
    """Returns a fixed reply and records the transcripts it was given."""

    def __init__(self, reply: str = "sure thing") -> None:
        super().__init__(default_model="fake-model")
        self.reply = reply
        self.calls: list[list[dict[str, Any]]] = []
        self.release: asyncio.Event | None = None

    async def generate_reply(self, memory, system_prompt, settings: GenerationSettings | None = None) -> str:
        self.calls.append(memory)
        if self.release is not None:
            await self.release.wait()
        else:
            await asyncio.sleep(0)
        return self.reply


class ManualClock:
    def __init__(self, now: float = 1_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def client() -> FakeChannel:
    return FakeChannel()


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def session_config() -> SessionConfig:
    return SessionConfig()


@pytest.fixture
def controller(client, provider, session_config, clock) -> SessionController:
    return SessionController(client=client, provider=provider, config=session_config, clock=clock)


@pytest.fixture
def text_channel(client) -> ChannelInfo:
    return client.add_channel(id="500", name="general", kind=ChannelKind.GUILD_TEXT, guild_id="1")


@pytest.fixture
def managed_thread(client) -> ChannelInfo:
    return client.add_channel(
        id="900",
        name="beluga-cat • exam help",
        kind=ChannelKind.PUBLIC_THREAD,
        owner_id="user-7",
        parent_id="500",
    )
