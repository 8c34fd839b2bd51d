"""
回复提供者模块（providers 包）。

本模块是 beluga 与文本生成服务之间的桥梁层：
- base.py            : ReplyProvider 抽象基类 + GenerationSettings + HTTP 公共实现
- openai_provider.py : OpenAI Chat Completions 后端
- gemini_provider.py : Google Gemini generateContent 后端
- mock_provider.py   : 无网络回显后端（仅用于 OpenAI 调试）
- registry.py        : 后端元数据注册表
- factory.py         : 启动时按配置选定后端
"""

from beluga.providers.base import GenerationSettings, ReplyProvider
from beluga.providers.factory import create_provider
from beluga.providers.gemini_provider import GeminiProvider
from beluga.providers.mock_provider import MockProvider
from beluga.providers.openai_provider import OpenAIProvider

__all__ = [
    "GenerationSettings",
    "ReplyProvider",
    "create_provider",
    "GeminiProvider",
    "MockProvider",
    "OpenAIProvider",
]
