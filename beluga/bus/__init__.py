"""
消息总线模块 - 实现 Discord 渠道与会话调度之间的解耦通信。

消息流向：
  用户消息 → DiscordChannel → InboundMessage → 消息总线 → BotLoop 调度

出站方向（回复、线程改名、归档等）需要等待结果并处理失败，
因此由会话控制器直接调用渠道的 REST 方法，不经过总线排队。

【Java 开发者类比】
- MessageBus 类似于一个 LinkedBlockingQueue 包装的生产者-消费者通道
- InboundMessage / OutboundMessage 类似于入站 / 出站 DTO
"""

from beluga.bus.events import InboundMessage, OutboundMessage
from beluga.bus.queue import MessageBus

__all__ = ["MessageBus", "InboundMessage", "OutboundMessage"]
