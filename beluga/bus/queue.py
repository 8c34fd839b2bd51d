"""
异步消息队列模块 - 消息总线的核心实现。

基于 asyncio.Queue 的生产者-消费者模式：
  DiscordChannel → publish_inbound() → inbound 队列 → consume_inbound() → BotLoop

【Java 开发者类比】
- asyncio.Queue 类似于 Java 的 LinkedBlockingQueue
- publish/consume 类似于 BlockingQueue.put()/take()
"""

import asyncio

from beluga.bus.events import InboundMessage


class MessageBus:
    """
    异步消息总线 - 解耦 Discord 渠道与会话调度器。

    属性:
        inbound: 入站消息异步队列（渠道 → 调度器）
    """

    def __init__(self):
        self.inbound: asyncio.Queue[InboundMessage] = asyncio.Queue()

    async def publish_inbound(self, msg: InboundMessage) -> None:
        """发布入站消息（渠道 → 调度器）。"""
        await self.inbound.put(msg)

    async def consume_inbound(self) -> InboundMessage:
        """
        消费下一条入站消息（阻塞等待）。

        BotLoop 主循环调用此方法获取待处理的用户消息，
        队列为空时异步阻塞直到有新消息到达。
        """
        return await self.inbound.get()
