"""
渠道基类模块 - 定义聊天平台客户端的统一接口。

会话管理器只依赖本模块中的抽象，不直接依赖 Discord：
- ChannelKind / ChannelInfo：频道类型与频道快照（名称、所有者、是否归档等）
- BaseChannel：平台客户端抽象基类

【核心抽象方法】
- start() / stop()：连接平台、开始/停止监听消息
- send()：向频道发送文本
- create_thread() / rename_channel() / set_archived() / delete_channel()：线程操作
- fetch_channel()：按 ID 从平台拉取频道信息

【公共能力】
- 频道缓存：get_cached_channel() 只查本地缓存，get_channel() 缓存未命中时再走 fetch_channel()
- is_allowed()：基于白名单的权限控制
- _handle_message()：消息预处理与转发（权限检查 → 构造 InboundMessage → 发布到总线）

【Java 开发者类比】
- BaseChannel 相当于 Java 的 abstract class + interface
- _handle_message() 相当于 Template Method 模式中的模板方法
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import IntEnum
from typing import Any

from loguru import logger

from beluga.bus.events import InboundMessage, OutboundMessage
from beluga.bus.queue import MessageBus


class ChannelError(Exception):
    """平台侧操作失败（发送、改名、归档、删除、建线程等）。"""


class ChannelKind(IntEnum):
    """Discord 频道类型编号（与 API 中的 type 字段一致）。"""
    GUILD_TEXT = 0
    DM = 1
    GUILD_VOICE = 2
    GROUP_DM = 3
    GUILD_CATEGORY = 4
    GUILD_ANNOUNCEMENT = 5
    ANNOUNCEMENT_THREAD = 10
    PUBLIC_THREAD = 11
    PRIVATE_THREAD = 12
    GUILD_STAGE_VOICE = 13
    GUILD_FORUM = 15
    UNKNOWN = -1

    @classmethod
    def parse(cls, value: Any) -> "ChannelKind":
        """把 API 返回的 type 转成枚举，未知值归为 UNKNOWN。"""
        try:
            return cls(int(value))
        except (TypeError, ValueError):
            return cls.UNKNOWN


THREAD_KINDS = {ChannelKind.ANNOUNCEMENT_THREAD, ChannelKind.PUBLIC_THREAD, ChannelKind.PRIVATE_THREAD}
THREAD_PARENT_KINDS = {ChannelKind.GUILD_TEXT, ChannelKind.GUILD_ANNOUNCEMENT}


@dataclass
class ChannelInfo:
    """
    频道快照。

    属性:
        id: 频道 ID
        name: 显示名称
        kind: 频道类型
        owner_id: 线程创建者 ID（普通频道为 None）
        parent_id: 线程所属的父频道 ID
        guild_id: 服务器 ID
        archived: 线程是否已归档
        deleted: 本进程是否已经删除过该频道（避免重复的平台侧操作）
    """

    id: str
    name: str = ""
    kind: ChannelKind = ChannelKind.UNKNOWN
    owner_id: str | None = None
    parent_id: str | None = None
    guild_id: str | None = None
    archived: bool = False
    deleted: bool = False

    @property
    def is_thread(self) -> bool:
        return self.kind in THREAD_KINDS

    @property
    def supports_threads(self) -> bool:
        """只有服务器文本频道和公告频道可以创建子线程。"""
        return self.kind in THREAD_PARENT_KINDS

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> "ChannelInfo":
        """从 Discord channel 对象构造快照。"""
        metadata = data.get("thread_metadata") or {}
        owner = data.get("owner_id")
        parent = data.get("parent_id")
        guild = data.get("guild_id")
        return cls(
            id=str(data.get("id", "")),
            name=data.get("name") or "",
            kind=ChannelKind.parse(data.get("type")),
            owner_id=str(owner) if owner else None,
            parent_id=str(parent) if parent else None,
            guild_id=str(guild) if guild else None,
            archived=bool(metadata.get("archived", False)),
        )


class BaseChannel(ABC):
    """
    聊天平台客户端抽象基类。

    属性:
        name: 渠道标识名（如 "discord"）
        config: 渠道配置对象
        bus: 消息总线实例，用于发布入站消息
        user_id: 机器人自身的用户 ID（连接就绪后才有值）
        _channels: 频道缓存 {channel_id: ChannelInfo}
        _running: 渠道运行状态标志
    """

    name: str = "base"

    def __init__(self, config: Any, bus: MessageBus):
        self.config = config
        self.bus = bus
        self.user_id: str | None = None
        self._channels: dict[str, ChannelInfo] = {}
        self._running = False

    @abstractmethod
    async def start(self) -> None:
        """连接平台并持续监听消息（长期运行的异步任务）。"""
        pass

    @abstractmethod
    async def stop(self) -> None:
        """断开连接并释放资源。"""
        pass

    @abstractmethod
    async def send(self, msg: OutboundMessage) -> None:
        """
        发送一条文本消息。

        异常:
            ChannelError: 平台拒绝或网络失败
        """
        pass

    @abstractmethod
    async def create_thread(
        self,
        parent_id: str,
        name: str,
        auto_archive_minutes: int,
        message_id: str | None = None,
    ) -> ChannelInfo:
        """
        在 parent_id 下创建公开线程；给出 message_id 时从该消息上开线程。

        异常:
            ChannelError: 创建失败
        """
        pass

    @abstractmethod
    async def rename_channel(self, channel_id: str, name: str, reason: str | None = None) -> None:
        """修改频道名称。失败时抛出 ChannelError。"""
        pass

    @abstractmethod
    async def set_archived(self, channel_id: str, archived: bool, reason: str | None = None) -> None:
        """设置线程归档状态。失败时抛出 ChannelError。"""
        pass

    @abstractmethod
    async def delete_channel(self, channel_id: str, reason: str | None = None) -> None:
        """删除频道（线程）。失败时抛出 ChannelError。"""
        pass

    @abstractmethod
    async def fetch_channel(self, channel_id: str) -> ChannelInfo | None:
        """从平台拉取频道信息，频道不存在或无权限时返回 None。"""
        pass

    def get_cached_channel(self, channel_id: str) -> ChannelInfo | None:
        """只查询本地缓存，不发网络请求。"""
        return self._channels.get(channel_id)

    async def get_channel(self, channel_id: str) -> ChannelInfo | None:
        """先查缓存，未命中时从平台拉取并写入缓存。"""
        cached = self._channels.get(channel_id)
        if cached is not None:
            return cached
        info = await self.fetch_channel(channel_id)
        if info is not None:
            self._cache_channel(info)
        return info

    def _cache_channel(self, info: ChannelInfo) -> ChannelInfo:
        """写入缓存。同一频道对象原地更新，保证持有旧引用的调用方看到最新状态。"""
        current = self._channels.get(info.id)
        if current is None:
            self._channels[info.id] = info
            return info
        current.name = info.name or current.name
        current.kind = info.kind if info.kind is not ChannelKind.UNKNOWN else current.kind
        current.owner_id = info.owner_id or current.owner_id
        current.parent_id = info.parent_id or current.parent_id
        current.guild_id = info.guild_id or current.guild_id
        current.archived = info.archived
        return current

    def _forget_channel(self, channel_id: str) -> None:
        info = self._channels.pop(channel_id, None)
        if info is not None:
            info.deleted = True

    def is_allowed(self, sender_id: str) -> bool:
        """
        检查发送者是否有权限使用该机器人。

        - 白名单为空 → 允许所有人（开放模式）
        - 白名单非空 → 只允许名单中的用户
        """
        allow_list = getattr(self.config, "allow_from", [])
        if not allow_list:
            return True
        return str(sender_id) in allow_list

    async def _handle_message(
        self,
        sender_id: str,
        chat_id: str,
        content: str,
        metadata: dict[str, Any] | None = None
    ) -> None:
        """
        处理来自聊天平台的入站消息（模板方法）。

        1. 权限检查：验证发送者是否在白名单中
        2. 消息标准化：转换为统一的 InboundMessage
        3. 发布到总线：交给 BotLoop 调度
        """
        if not self.is_allowed(sender_id):
            logger.warning(
                f"Access denied for sender {sender_id} on channel {self.name}. "
                f"Add them to allowFrom list in config to grant access."
            )
            return

        msg = InboundMessage(
            channel=self.name,
            sender_id=str(sender_id),
            chat_id=str(chat_id),
            content=content,
            metadata=metadata or {}
        )
        await self.bus.publish_inbound(msg)
