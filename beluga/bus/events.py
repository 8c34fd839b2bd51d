"""
消息事件类型定义模块 - 定义渠道与调度器之间传输的数据结构。

- InboundMessage：入站消息（从 Discord 到 BotLoop）
- OutboundMessage：出站消息（会话控制器要发往某个频道的文本）

【Java 开发者类比】
- 使用 Python 的 @dataclass 装饰器，等价于 Java 的 record 类或 Lombok 的 @Data
- field(default_factory=...) 等价于 Java 中在构造器里 new ArrayList<>()
"""

from dataclasses import dataclass, field
from typing import Any


@dataclass
class InboundMessage:
    """
    入站消息 - 从聊天渠道接收到的用户消息。

    属性:
        channel: 消息来源渠道标识（目前只有 'discord'）
        sender_id: 发送者唯一标识（Discord 用户 ID）
        chat_id: 消息所在频道 / 线程的 ID
        content: 消息文本内容
        metadata: 渠道特有的附加数据（message_id、guild_id 等）
    """

    channel: str
    sender_id: str
    chat_id: str
    content: str
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def message_id(self) -> str | None:
        """触发消息的 ID（用于从该消息上直接开线程）。"""
        return self.metadata.get("message_id") or None


@dataclass
class OutboundMessage:
    """
    出站消息 - 要发送到某个频道的文本。

    属性:
        channel: 目标渠道标识
        chat_id: 目标频道 / 线程 ID
        content: 文本内容
        reply_to: 可选的引用消息 ID（提示类消息直接回复触发它的那条消息）
    """

    channel: str
    chat_id: str
    content: str
    reply_to: str | None = None
