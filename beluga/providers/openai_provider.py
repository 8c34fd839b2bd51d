"""
OpenAI 回复提供者 - Chat Completions 接口（后端 A）。

请求形态：
  POST {api_base}/chat/completions
  Authorization: Bearer <api_key>
  {"model", "messages": [{"role": "system", ...}, *对话轮次], "max_tokens", "temperature"}

对话轮次按原样发送（保留 user / assistant 角色），系统提示词作为首条 system 消息。
响应取 choices[0].message.content 并去除首尾空白。
"""

from typing import Any

from loguru import logger

from beluga.providers.base import EMPTY_REPLY, GenerationSettings, HTTPReplyProvider, apology


class OpenAIProvider(HTTPReplyProvider):
    """OpenAI Chat Completions 后端。"""

    label = "OpenAI"

    def __init__(self, *args: Any, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self.api_base = (self.api_base or "https://api.openai.com/v1").rstrip("/")

    def build_payload(
        self,
        memory: list[dict[str, Any]],
        system_prompt: str,
        settings: GenerationSettings,
    ) -> dict[str, Any]:
        """构造请求体：system 消息在前，随后是完整的对话轮次。"""
        messages = [{"role": "system", "content": system_prompt}]
        messages.extend({"role": m["role"], "content": m["content"]} for m in memory)
        return {
            "model": settings.model or self.default_model,
            "messages": messages,
            "max_tokens": settings.max_tokens,
            "temperature": settings.temperature,
        }

    async def generate_reply(
        self,
        memory: list[dict[str, Any]],
        system_prompt: str,
        settings: GenerationSettings | None = None,
    ) -> str:
        settings = settings or GenerationSettings()
        payload = self.build_payload(memory, system_prompt, settings)
        logger.debug(f"Using OpenAI provider with model {payload['model']}")

        data = await self._post_json(
            f"{self.api_base}/chat/completions",
            payload,
            headers={"Authorization": f"Bearer {self.api_key}"},
        )
        if data is None:
            return apology(self.label)
        return self._parse_reply(data) or EMPTY_REPLY

    @staticmethod
    def _parse_reply(data: Any) -> str:
        """提取 choices[0].message.content；结构不符时返回空字符串。"""
        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            return ""
        return content.strip() if isinstance(content, str) else ""
