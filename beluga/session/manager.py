"""
会话与会话登记表模块。

- Session：单个托管线程的会话状态（话题、发起人、最近活跃时间、冷却截止时间、记忆）
- SessionRegistry：线程 ID → Session 的内存映射，判断"某线程是否为活跃托管会话"的唯一依据

【存储】
纯内存，不落盘。进程重启后只能依靠线程命名规则恢复会话身份（见 lifecycle.py 的
rehydrate_session），历史记忆会丢失。

【并发】
所有操作都在同一个 asyncio 事件循环中执行，登记表只在 await 之间被同步修改，
不需要加锁；但不支持跨线程 / 跨进程共享。

【Java 开发者类比】
- Session 类似于 Java Servlet 的 HttpSession
- SessionRegistry 类似于一个只在单线程中使用的 HashMap<String, Session>
"""

from dataclasses import dataclass, field

from beluga.session.memory import ConversationMemory


@dataclass
class Session:
    """
    单个托管线程的会话状态。

    属性:
        channel_id: 线程 ID，登记表的键，线程存续期间不变
        topic: 创建时设定的话题，同时写进线程名以便重启后恢复
        started_by: 发起人用户 ID（仅供参考；恢复时取线程所有者，未知为 "unknown"）
        last_active_at: 最近一次被接受的轮次时间（epoch 秒），超时回收依据
        cooldown_until: 在此时间之前到达的新轮次会被静默丢弃
        memory: 有界对话记录
        last_speaker: 最近一轮的发言者 ID（用户或机器人自身）
    """

    channel_id: str
    topic: str
    started_by: str
    last_active_at: float
    cooldown_until: float = 0.0
    memory: ConversationMemory = field(default_factory=ConversationMemory)
    last_speaker: str | None = None

    def idle_for(self, now: float) -> float:
        """距最近一次活跃已经过去的秒数。"""
        return now - self.last_active_at

    def in_cooldown(self, now: float) -> bool:
        return now < self.cooldown_until


class SessionRegistry:
    """
    线程 ID → Session 的内存登记表。

    同一个线程 ID 任何时刻最多对应一个 Session（put 会覆盖）。
    """

    def __init__(self):
        self._sessions: dict[str, Session] = {}

    def get(self, channel_id: str) -> Session | None:
        return self._sessions.get(channel_id)

    def put(self, channel_id: str, session: Session) -> None:
        self._sessions[channel_id] = session

    def remove(self, channel_id: str) -> Session | None:
        """移除并返回会话；不存在时返回 None（重复移除是安全的）。"""
        return self._sessions.pop(channel_id, None)

    def items(self) -> list[tuple[str, Session]]:
        """返回快照列表，遍历期间可以安全地增删登记项。"""
        return list(self._sessions.items())

    def clear(self) -> None:
        self._sessions.clear()

    def __contains__(self, channel_id: object) -> bool:
        return channel_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)
