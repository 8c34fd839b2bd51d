"""
超时回收模块 - 定期结束长时间无活动的托管会话。

- ReaperService: 基于 asyncio.Task 的定期扫描服务
"""

from beluga.reaper.service import ReaperService

__all__ = ["ReaperService"]
