"""
beluga - Discord 线程对话机器人

模块概述：
    本文件是 beluga 包的入口文件（__init__.py），定义了包的元信息。
    beluga 在 Discord 文本频道中通过 `/ask <话题>` 开启一个专属线程（thread），
    之后线程内的每条消息都会成为一轮与大语言模型的对话。

    核心功能包括：
    - 会话管理（创建、按线程名恢复、超时回收、冷却节流、有界记忆）
    - 可插拔的回复提供者（OpenAI Chat Completions / Google Gemini / 本地 Mock）
    - 基于 Discord Gateway WebSocket + REST API 的渠道接入
"""

# 版本号，遵循语义化版本规范（主版本.次版本.修订号）
__version__ = "0.1.0"

# 项目 logo 表情符号，用于 CLI 输出等场景的品牌标识
__logo__ = "🐋"
