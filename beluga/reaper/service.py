"""
超时回收服务实现 - 定期扫描会话登记表，结束超过 TTL 未活动的会话。

本模块实现了周期性扫描机制：
- 按固定间隔（默认 60 秒）执行一次 sweep()
- 对 now - last_active_at > ttl_s（默认 20 分钟）的会话：
  - 能从平台客户端缓存中解析到线程 → 调用 SessionController.end_session()（与用户 /stop 相同）
  - 解析不到（线程已在外部被删除）→ 只从登记表移除，不做任何平台侧操作
- 单个会话结束失败只记录日志，不中断本轮扫描

架构设计：
- 基于 asyncio.Task 的定期循环，与消息处理在同一个事件循环中交替运行，互不阻塞
"""

import asyncio
import time
from typing import Callable

from loguru import logger

from beluga.channels.base import BaseChannel
from beluga.session.lifecycle import REASON_TIMEOUT, SessionController
from beluga.session.manager import SessionRegistry

# 默认扫描间隔：60 秒
DEFAULT_REAP_INTERVAL_S = 60

# 默认无活动超时：20 分钟
DEFAULT_TTL_S = 20 * 60


class ReaperService:
    """
    超时回收服务。

    工作流程：
    1. 每隔 interval_s 秒触发一次扫描
    2. 遍历登记表快照，找出无活动时间超过 ttl_s 的会话
    3. 逐个结束（或直接移除）这些会话
    """

    def __init__(
        self,
        controller: SessionController,
        interval_s: float = DEFAULT_REAP_INTERVAL_S,
        ttl_s: float = DEFAULT_TTL_S,
        clock: Callable[[], float] | None = None,
    ):
        """
        初始化回收服务。

        参数:
            controller: 会话控制器（提供登记表、平台客户端和 end_session）
            interval_s: 扫描间隔秒数
            ttl_s: 无活动超时秒数
            clock: 时钟函数，默认与控制器共用
        """
        self.controller = controller
        self.interval_s = interval_s
        self.ttl_s = ttl_s
        self.clock = clock or controller.clock or time.time
        self._running = False
        self._task: asyncio.Task | None = None

    @property
    def registry(self) -> SessionRegistry:
        return self.controller.registry

    @property
    def client(self) -> BaseChannel:
        return self.controller.client

    async def start(self) -> None:
        """启动回收服务（后台任务）。"""
        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info(f"Session reaper started (every {self.interval_s}s, ttl {self.ttl_s}s)")

    def stop(self) -> None:
        """停止回收服务并取消循环任务。"""
        self._running = False
        if self._task:
            self._task.cancel()
            self._task = None

    async def _run_loop(self) -> None:
        """主循环。先等待一个间隔周期，再执行扫描，循环往复。"""
        while self._running:
            try:
                await asyncio.sleep(self.interval_s)
                if self._running:
                    await self.sweep()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Session reaper error: {e}")

    def is_expired(self, idle_s: float) -> bool:
        return idle_s > self.ttl_s

    async def sweep(self) -> list[str]:
        """
        执行一次扫描。

        返回:
            本轮被结束（或移除）的线程 ID 列表
        """
        now = self.clock()
        expired: list[str] = []

        for channel_id, session in self.registry.items():
            if not self.is_expired(session.idle_for(now)):
                continue
            if self.registry.get(channel_id) is not session:
                continue  # 扫描过程中已被其他流程结束

            expired.append(channel_id)
            channel = self.client.get_cached_channel(channel_id)
            if channel is None:
                logger.info(f"Thread {channel_id} is gone; dropping its session")
                self.registry.remove(channel_id)
                continue

            try:
                await self.controller.end_session(channel, REASON_TIMEOUT)
            except Exception as e:
                logger.error(f"Failed to end expired session {channel_id}: {e}")
                self.registry.remove(channel_id)

        if expired:
            logger.debug(f"Reaper expired {len(expired)} session(s)")
        return expired
