"""
调度模块 - 消费入站消息并路由到会话控制器。

- BotLoop: 消息调度主循环
"""

from beluga.bot.loop import BotLoop

__all__ = ["BotLoop"]
