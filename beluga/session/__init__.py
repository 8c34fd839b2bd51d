"""
会话管理模块 - 托管线程会话的状态、记忆与生命周期。

【架构定位】
- memory.py    : ConversationMemory，有界的对话轮次列表
- manager.py   : Session 会话状态 + SessionRegistry 内存登记表
- lifecycle.py : SessionController，创建 / 恢复 / 对话 / 重置 / 结束

BotLoop 收到线程内消息后，先查登记表（必要时按线程名恢复），再交给控制器处理；
ReaperService 定期扫描登记表，对超时会话调用同一个 end_session()。

【Java 开发者类比】
- SessionRegistry 类似于 Spring Session 的 SessionRepository（纯内存实现）
- SessionController 类似于一个持有仓库和下游客户端的 Service
"""

from beluga.session.lifecycle import SessionController, UnsupportedChannelKind, prefix_thread_name
from beluga.session.manager import Session, SessionRegistry
from beluga.session.memory import ConversationMemory

__all__ = [
    "ConversationMemory",
    "Session",
    "SessionController",
    "SessionRegistry",
    "UnsupportedChannelKind",
    "prefix_thread_name",
]
