"""
渠道模块 - 聊天平台接入层。

- base.py    : BaseChannel 抽象基类、ChannelInfo 频道快照、ChannelError
- discord.py : 基于 Gateway WebSocket + REST API 的 Discord 实现
"""

from beluga.channels.base import BaseChannel, ChannelError, ChannelInfo, ChannelKind

__all__ = ["BaseChannel", "ChannelError", "ChannelInfo", "ChannelKind"]
