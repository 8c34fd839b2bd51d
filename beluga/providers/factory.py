"""
回复提供者工厂 - 启动时根据配置选定唯一的后端实例。

选择规则：
- llm_provider == "openai" 且 mock_openai=True → MockProvider（不联网）
- llm_provider == "openai" → OpenAIProvider
- llm_provider == "gemini" → GeminiProvider（mock_openai 对其无效，会记录一条警告）
"""

import httpx
from loguru import logger

from beluga.config.loader import ConfigError
from beluga.config.schema import Config
from beluga.providers.base import ReplyProvider
from beluga.providers.gemini_provider import GeminiProvider
from beluga.providers.mock_provider import MockProvider
from beluga.providers.openai_provider import OpenAIProvider
from beluga.providers.registry import find_by_name


def create_provider(config: Config, http: httpx.AsyncClient | None = None) -> ReplyProvider:
    """
    根据配置创建回复提供者。

    参数:
        config: 全局配置
        http: 可选的共享 HTTP 客户端（测试时注入 MockTransport）

    异常:
        ConfigError: llm_provider 不是已注册的后端
    """
    spec = find_by_name(config.provider_name)
    if spec is None:
        raise ConfigError(f"Unknown LLM provider: {config.llm_provider!r}")

    p = config.get_provider()
    model = config.get_model()

    if config.mock_openai and not spec.supports_mock:
        logger.warning(f"MOCK_OPENAI is ignored for the {spec.label} provider")

    if config.uses_mock:
        logger.info("Using mock OpenAI provider (no network calls)")
        return MockProvider(default_model=model)

    kwargs = dict(
        api_key=p.api_key,
        api_base=p.api_base or spec.default_api_base,
        default_model=model,
        timeout=p.timeout,
        http=http,
    )
    if spec.name == "gemini":
        return GeminiProvider(merge_consecutive_roles=config.providers.gemini.merge_consecutive_roles, **kwargs)
    return OpenAIProvider(**kwargs)
