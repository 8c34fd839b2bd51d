"""
会话生命周期控制器模块 - 托管线程会话的创建、恢复、对话、重置与结束。

【职责】
- start_session()：在文本频道里开一个专属线程，登记新会话，发送开场说明和问候语
- rehydrate_session()：登记表里没有某线程时（如进程重启），按线程名前缀识别并恢复会话身份
- submit_turn()：冷却检查 → 记录用户轮次 → 设置冷却 → 调用回复提供者 → 记录并发送回复
- reset_session()：清空记忆、重置冷却，保留会话身份与话题
- end_session()：先从登记表移除，再尽力通知 / 删除 / 改名 / 归档线程
- shutdown()：进程退出时的收尾（逐个结束或直接清空登记表）

【失败处理约定】
end_session() 中登记表移除是唯一的权威状态变更，并且最先发生。之后的每个平台侧步骤
（通知、删除、改名、归档）都单独兜底：失败只记录 warning 日志并返回 False，
绝不向上抛出，也不回滚登记表。唯一的"回退"是删除失败时改走归档流程。

【并发约定】
submit_turn() 中"检查冷却"与"设置冷却"之间不能出现 await：两条几乎同时到达的消息
只有第一条能通过检查。设置冷却之后才去等待回复提供者。
"""

import time
from typing import Any, Awaitable, Callable

from loguru import logger

from beluga.bus.events import OutboundMessage
from beluga.channels.base import BaseChannel, ChannelInfo
from beluga.config.schema import SessionConfig
from beluga.providers.base import GenerationSettings, ReplyProvider
from beluga.session.manager import Session, SessionRegistry
from beluga.session.memory import ASSISTANT, USER, ConversationMemory
from beluga.utils.helpers import clip

# Discord 频道名长度上限
THREAD_NAME_LIMIT = 100
ARCHIVED_MARKER = "ARCHIVED"
DEFAULT_TOPIC = "chat"
UNKNOWN_STARTER = "unknown"

GREETING = "How can I help?"
REASON_USER_STOP = "Session ended by user."
REASON_TIMEOUT = "Session timed out after inactivity."
REASON_SHUTDOWN = "Bot is shutting down."
NO_SESSION_TO_RESET = "No active session to reset."
MEMORY_CLEARED = "Memory cleared for this session."


class UnsupportedChannelKind(Exception):
    """起始频道不能创建子线程（私信、语音频道、线程内部等）。"""

    def __init__(self, channel: ChannelInfo):
        self.channel = channel
        super().__init__(f"Channel {channel.id} ({channel.kind.name}) cannot host threads")


def compose_thread_name(prefix: str, separator: str, topic: str) -> str:
    """拼接托管线程名："<前缀> <分隔符> <话题>"，超出平台长度上限的部分截掉。"""
    return clip(f"{prefix} {separator} {topic}", THREAD_NAME_LIMIT)


def parse_topic(name: str, separator: str) -> str:
    """取第一个分隔符之后的文本作为话题；没有分隔符或内容为空时为 "chat"。"""
    if separator not in name:
        return DEFAULT_TOPIC
    return name.split(separator, 1)[1].strip() or DEFAULT_TOPIC


def prefix_thread_name(name: str, marker: str) -> str:
    """
    给线程名加 "[marker] " 前缀（幂等：已带该前缀时原样返回）。

    示例:
        prefix_thread_name("beluga-cat • exam help", "ARCHIVED")
        → "[ARCHIVED] beluga-cat • exam help"
    """
    tag = f"[{marker}]"
    if name.startswith(tag):
        return name
    return clip(f"{tag} {name}", THREAD_NAME_LIMIT)


class SessionController:
    """
    会话生命周期控制器。

    属性:
        client: 平台客户端（发送消息、线程操作、频道缓存）
        provider: 回复提供者（启动时选定）
        config: 会话配置
        generation: 每次生成回复使用的参数
        registry: 会话登记表（由控制器持有）
        clock: 返回 epoch 秒的时钟函数（测试时可注入）
    """

    def __init__(
        self,
        client: BaseChannel,
        provider: ReplyProvider,
        config: SessionConfig | None = None,
        generation: GenerationSettings | None = None,
        registry: SessionRegistry | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.client = client
        self.provider = provider
        self.config = config or SessionConfig()
        self.generation = generation or GenerationSettings(
            max_tokens=self.config.max_tokens,
            temperature=self.config.temperature,
        )
        self.registry = registry if registry is not None else SessionRegistry()
        self.clock = clock

    @property
    def bot_id(self) -> str:
        return self.client.user_id or "bot"

    def _new_session(self, channel_id: str, topic: str, started_by: str) -> Session:
        return Session(
            channel_id=channel_id,
            topic=topic,
            started_by=started_by,
            last_active_at=self.clock(),
            memory=ConversationMemory(limit=self.config.memory_limit),
        )

    def intro_text(self, topic: str) -> str:
        minutes = max(1, int(self.config.ttl_s // 60))
        return (
            f"I'm active in this thread now. Topic: **{topic}**.\n"
            f"Use `/stop` to end, `/reset` to clear memory. "
            f"I time out after {minutes} minutes of inactivity."
        )

    # ------------------------------------------------------------------
    # 创建与恢复
    # ------------------------------------------------------------------

    async def start_session(
        self,
        origin: ChannelInfo,
        topic: str,
        started_by: str,
        message_id: str | None = None,
    ) -> Session:
        """
        在 origin 频道中开启一个托管线程会话。

        参数:
            origin: 触发 /ask 的频道
            topic: 话题（为空时使用 "chat"）
            started_by: 发起人用户 ID
            message_id: 触发消息 ID，给出时线程挂在这条消息上

        顺序：建线程 → 登记会话 → 发送开场说明 → 发送问候语（记为第一轮助手发言）。
        会话在发送之前就已登记，开场说明发送失败时异常向上抛出，但会话保持登记、
        没有问候轮次；之后线程内的消息照常作为对话轮次处理。

        异常:
            UnsupportedChannelKind: origin 不能创建子线程
            ChannelError: 线程创建失败，或开场消息发送失败
        """
        if not origin.supports_threads:
            raise UnsupportedChannelKind(origin)

        topic = topic.strip() or DEFAULT_TOPIC
        name = compose_thread_name(self.config.thread_prefix, self.config.separator, topic)
        logger.debug(f"Starting thread session in {origin.id} with topic {topic!r}")

        thread = await self.client.create_thread(
            origin.id,
            name,
            self.config.auto_archive_minutes,
            message_id=message_id,
        )
        session = self._new_session(thread.id, topic, started_by)
        self.registry.put(thread.id, session)
        logger.info(f"Session started in thread {thread.id} by {started_by}")

        await self._say(thread.id, self.intro_text(topic))
        await self.send_reply(thread.id, session, GREETING)
        return session

    def rehydrate_session(self, channel: ChannelInfo) -> Session | None:
        """
        为登记表中缺失的线程恢复会话。

        线程名不以托管前缀开头（大小写不敏感）时返回 None；否则从线程名解析话题，
        以线程所有者作为发起人（未知为 "unknown"），登记一个记忆为空的新会话。
        """
        existing = self.registry.get(channel.id)
        if existing is not None:
            return existing

        name = channel.name or ""
        if not name.lower().startswith(self.config.thread_prefix.lower()):
            return None

        topic = parse_topic(name, self.config.separator)
        session = self._new_session(channel.id, topic, channel.owner_id or UNKNOWN_STARTER)
        self.registry.put(channel.id, session)
        logger.debug(f"Rehydrated session from existing thread {channel.id}, topic: {topic!r}")
        return session

    # ------------------------------------------------------------------
    # 对话轮次
    # ------------------------------------------------------------------

    def record_turn(self, session: Session, role: str, content: str) -> None:
        """追加一轮到会话记忆（追加后自动裁剪到上限）。"""
        session.memory.append(role, content)

    async def send_reply(self, channel_id: str, session: Session, text: str) -> None:
        """以机器人身份记录一轮助手发言并发送到线程。"""
        self.record_turn(session, ASSISTANT, text)
        session.last_speaker = self.bot_id
        await self._say(channel_id, text)

    async def submit_turn(
        self,
        channel: ChannelInfo,
        session: Session,
        author_id: str,
        content: str,
    ) -> str | None:
        """
        处理线程中的一条用户消息。

        返回:
            发送出去的回复文本；消息被忽略（无触发前缀、内容为空、冷却中、会话已结束）时返回 None
        """
        if self.config.require_prefix:
            if not content.startswith(self.config.trigger_prefix):
                return None
            content = content[len(self.config.trigger_prefix):]

        content = content.strip()
        if not content:
            logger.debug(f"Empty content in thread {channel.id}; ignoring")
            return None

        now = self.clock()
        if session.in_cooldown(now):
            logger.debug(f"Dropping turn in {channel.id}: cooling down until {session.cooldown_until}")
            return None

        # 以下直到 generate_reply 之前不能有 await
        session.last_active_at = now
        session.last_speaker = author_id
        self.record_turn(session, USER, content)
        session.cooldown_until = max(session.cooldown_until, now + self.config.cooldown_s)

        reply = await self.provider.generate_reply(
            session.memory.to_messages(),
            self.config.system_prompt,
            self.generation,
        )

        if self.registry.get(channel.id) is not session:
            logger.debug(f"Session {channel.id} ended while generating a reply; dropping it")
            return None

        await self.send_reply(channel.id, session, reply)
        return reply

    # ------------------------------------------------------------------
    # 重置与结束
    # ------------------------------------------------------------------

    async def reset_session(self, channel: ChannelInfo, session: Session | None) -> None:
        """清空记忆、冷却和最近发言者，保留会话身份与话题；没有会话时只回复提示。"""
        if session is None:
            await self._say(channel.id, NO_SESSION_TO_RESET)
            return

        session.memory.clear()
        session.cooldown_until = 0.0
        session.last_speaker = None
        session.last_active_at = self.clock()
        logger.info(f"Session {channel.id} reset")
        await self._say(channel.id, MEMORY_CLEARED)

    async def end_session(self, channel: ChannelInfo, reason: str = "Session ended.") -> None:
        """
        结束会话。

        1. 无条件从登记表移除（之后的查询立即视为会话已结束）
        2. 通知线程
        3. 配置了 delete_on_end 时尝试删除线程，成功即结束；失败回退到归档
        4. 线程名加 "[ARCHIVED]" 前缀（幂等），并设为归档

        第 2-4 步各自兜底，失败只记日志，绝不抛出。重复结束同一个线程时，
        若线程已删除或已归档则直接返回，不再重复平台侧操作。
        """
        session = self.registry.remove(channel.id)
        if channel.deleted or (session is None and channel.archived):
            logger.debug(f"Thread {channel.id} already ended; skipping channel side effects")
            return
        logger.info(f"Ending session {channel.id}: {reason}")

        await self._attempt("send end notice", channel.id, self._say, channel.id, reason)

        if self.config.delete_on_end:
            deleted = await self._attempt(
                "delete thread", channel.id,
                self.client.delete_channel, channel.id, f"Session ended: {reason}",
            )
            if deleted:
                channel.deleted = True
                return
            logger.warning(f"Falling back to archiving thread {channel.id}")

        archived_name = prefix_thread_name(channel.name, ARCHIVED_MARKER)
        if channel.name and archived_name != channel.name:
            await self._attempt(
                "rename thread", channel.id,
                self.client.rename_channel, channel.id, archived_name, "Session ended",
            )
        if not channel.archived:
            await self._attempt(
                "archive thread", channel.id,
                self.client.set_archived, channel.id, True, "Session ended",
            )

    async def shutdown(self, end_sessions: bool | None = None) -> None:
        """
        进程退出时的收尾。

        参数:
            end_sessions: True 时逐个结束会话（通知并归档线程）；False 时只清空登记表，
                线程保持打开，下次启动时可按线程名恢复。默认取配置 end_on_shutdown。
        """
        if end_sessions is None:
            end_sessions = self.config.end_on_shutdown

        if end_sessions:
            for channel_id, _ in self.registry.items():
                channel = self.client.get_cached_channel(channel_id)
                if channel is None:
                    self.registry.remove(channel_id)
                    continue
                await self.end_session(channel, REASON_SHUTDOWN)

        if len(self.registry):
            logger.info(f"Dropping {len(self.registry)} in-memory session(s) on shutdown")
        self.registry.clear()

    # ------------------------------------------------------------------
    # 内部工具
    # ------------------------------------------------------------------

    async def _say(self, channel_id: str, text: str) -> None:
        await self.client.send(OutboundMessage(channel=self.client.name, chat_id=channel_id, content=text))

    async def _attempt(
        self,
        action: str,
        channel_id: str,
        func: Callable[..., Awaitable[Any]],
        *args: Any,
    ) -> bool:
        """执行一个平台侧步骤，失败时记录 warning 并返回 False（不抛出）。"""
        try:
            await func(*args)
            return True
        except Exception as e:
            logger.warning(f"Could not {action} for {channel_id}: {e}")
            return False
