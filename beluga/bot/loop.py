"""
消息调度循环模块 - 把入站消息分类并交给会话控制器。

核心类 BotLoop 持续从消息总线消费 InboundMessage，每条消息在独立的 asyncio 任务中处理，
因此某个会话等待模型回复时，不会阻塞其他会话和超时回收。

分类规则：
- 非线程频道中以 "/ask" 开头的消息 → 开启新会话（话题为空时是 "chat"）；
  频道不能建线程或建线程失败时，以回复触发消息的形式给出提示
- 线程中的消息：
  - 先查登记表，查不到时按线程名尝试恢复会话
  - "/stop" → 结束会话；"/reset" → 重置会话
  - 其他以 "/" 或 "!" 开头的消息 → 忽略（留给其他命令处理器）
  - 其余内容 → 作为一轮对话交给 SessionController.submit_turn()

【Java 开发者类比】
- BotLoop 类似于一个 @KafkaListener 消费者，把每条消息提交到线程池处理
- process_message() 类似于 Controller 层的路由方法
"""

import asyncio

from loguru import logger

from beluga.bus.events import InboundMessage, OutboundMessage
from beluga.bus.queue import MessageBus
from beluga.channels.base import BaseChannel, ChannelError, ChannelInfo
from beluga.session.lifecycle import REASON_USER_STOP, SessionController, UnsupportedChannelKind

ASK_COMMAND = "/ask"
STOP_COMMAND = "/stop"
RESET_COMMAND = "/reset"
COMMAND_PREFIXES = ("/", "!")

UNSUPPORTED_CHANNEL_NOTICE = "I can only start a chat from a regular text channel."
NO_SESSION_TO_STOP = "No active session to stop."
THREAD_FAILED_NOTICE = "Couldn't open a thread here."


class BotLoop:
    """
    消息调度主循环。

    属性:
        bus: 消息总线（入站消息来源）
        client: 平台客户端（解析频道信息、发送提示）
        controller: 会话生命周期控制器
        _tasks: 正在处理中的消息任务
    """

    def __init__(self, bus: MessageBus, client: BaseChannel, controller: SessionController):
        self.bus = bus
        self.client = client
        self.controller = controller
        self._running = False
        self._tasks: set[asyncio.Task] = set()

    async def run(self) -> None:
        """
        启动调度主循环，持续从消息总线消费消息。

        通过 asyncio.wait_for 设置1秒超时来实现非阻塞轮询，以便及时响应 stop()。
        """
        self._running = True
        logger.info("Bot loop started")

        while self._running:
            try:
                msg = await asyncio.wait_for(self.bus.consume_inbound(), timeout=1.0)
            except asyncio.TimeoutError:
                continue

            task = asyncio.create_task(self._dispatch(msg))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    def stop(self) -> None:
        """停止主循环（下次轮询超时后退出）。"""
        self._running = False
        logger.info("Bot loop stopping")

    async def drain(self) -> None:
        """等待所有正在处理的消息完成。"""
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    async def _dispatch(self, msg: InboundMessage) -> None:
        try:
            await self.process_message(msg)
        except Exception as e:
            logger.error(f"Error handling message {msg.message_id} in {msg.chat_id}: {e}")

    async def process_message(self, msg: InboundMessage) -> None:
        """
        处理单条入站消息。

        参数:
            msg: 入站消息
        """
        channel = await self.client.get_channel(msg.chat_id)
        if channel is None:
            logger.debug(f"Could not resolve channel {msg.chat_id}; ignoring message")
            return

        content = msg.content

        if not channel.is_thread:
            if content.startswith(ASK_COMMAND):
                await self._handle_ask(channel, msg)
            return

        session = self.controller.registry.get(channel.id) or self.controller.rehydrate_session(channel)
        if session is None:
            logger.debug(f"No session found for thread {channel.id}, content: {content!r}")

        if content == STOP_COMMAND:
            if session is None:
                await self._notify(channel.id, NO_SESSION_TO_STOP, reply_to=msg.message_id)
                return
            await self.controller.end_session(channel, REASON_USER_STOP)
            return
        if content == RESET_COMMAND:
            await self.controller.reset_session(channel, session)
            return
        if content.startswith(COMMAND_PREFIXES) or session is None:
            return

        await self.controller.submit_turn(channel, session, msg.sender_id, content)

    async def _handle_ask(self, channel: ChannelInfo, msg: InboundMessage) -> None:
        topic = msg.content[len(ASK_COMMAND):].strip() or "chat"
        try:
            await self.controller.start_session(channel, topic, msg.sender_id, message_id=msg.message_id)
        except UnsupportedChannelKind as e:
            logger.debug(str(e))
            await self._notify(channel.id, UNSUPPORTED_CHANNEL_NOTICE, reply_to=msg.message_id)
        except ChannelError as e:
            logger.warning(f"Could not start a session in {channel.id}: {e}")
            await self._notify(channel.id, THREAD_FAILED_NOTICE, reply_to=msg.message_id)

    async def _notify(self, channel_id: str, text: str, reply_to: str | None = None) -> None:
        """发送提示消息；给出 reply_to 时以回复触发消息的形式发出。"""
        await self.client.send(OutboundMessage(
            channel=self.client.name, chat_id=channel_id, content=text, reply_to=reply_to,
        ))
