"""
Mock 回复提供者 - 不发任何网络请求，回显最后一条用户消息。

用于在没有真实 API Key 的情况下调试会话管理逻辑（对应 MOCK_OPENAI=true，仅 OpenAI 后端可用）。
"""

from typing import Any

from beluga.providers.base import GenerationSettings, ReplyProvider


class MockProvider(ReplyProvider):
    """确定性的回显提供者。"""

    label = "OpenAI (mock)"

    async def generate_reply(
        self,
        memory: list[dict[str, Any]],
        system_prompt: str,
        settings: GenerationSettings | None = None,
    ) -> str:
        last_user = next(
            (m["content"] for m in reversed(memory) if m["role"] == "user" and m["content"]),
            "your message",
        )
        return f'Mock reply (no OpenAI): I heard "{last_user}".'
