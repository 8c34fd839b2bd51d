"""
Gemini 回复提供者 - generateContent 接口（后端 B）。

请求形态：
  POST {api_base}/models/{model}:generateContent?key=<api_key>
  {
    "systemInstruction": {"parts": [{"text": 系统提示词}]},
    "contents": [{"role": "user"|"model", "parts": [{"text": ...}]}, ...],
    "generationConfig": {"maxOutputTokens", "temperature"}
  }

角色映射：assistant → "model"，user → "user"。系统提示词走独立字段，不进入 contents。
响应取 candidates[0].content.parts 中所有 text，按换行拼接后去除首尾空白。

【连续同角色轮次】
Gemini 期望 user / model 交替出现。会话记忆里可能出现连续的同角色轮次
（例如开场白之后用户连发两条），merge_consecutive_roles=True 时会先把它们用换行合并，
再作为单条 content 发送；设为 False 时逐条原样发送。
"""

from typing import Any

from loguru import logger

from beluga.providers.base import EMPTY_REPLY, GenerationSettings, HTTPReplyProvider, apology


def merge_consecutive(memory: list[dict[str, Any]]) -> list[dict[str, str]]:
    """
    合并相邻的同角色轮次（内容用换行连接），返回新列表，不修改入参。

    示例:
        [user "a", user "b", assistant "c"] → [user "a\\nb", assistant "c"]
    """
    merged: list[dict[str, str]] = []
    for msg in memory:
        if merged and merged[-1]["role"] == msg["role"]:
            merged[-1]["content"] += "\n" + msg["content"]
        else:
            merged.append({"role": msg["role"], "content": msg["content"]})
    return merged


def to_contents(memory: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """把对话轮次转换为 Gemini 的 contents 结构。"""
    return [
        {
            "role": "model" if m["role"] == "assistant" else "user",
            "parts": [{"text": m["content"]}],
        }
        for m in memory
    ]


class GeminiProvider(HTTPReplyProvider):
    """Google Gemini generateContent 后端。"""

    label = "Gemini"

    def __init__(self, *args: Any, merge_consecutive_roles: bool = True, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self.api_base = (self.api_base or "https://generativelanguage.googleapis.com/v1beta").rstrip("/")
        self.merge_consecutive_roles = merge_consecutive_roles

    def build_payload(
        self,
        memory: list[dict[str, Any]],
        system_prompt: str,
        settings: GenerationSettings,
    ) -> dict[str, Any]:
        """构造请求体（是否合并连续同角色轮次由 merge_consecutive_roles 决定）。"""
        turns = merge_consecutive(memory) if self.merge_consecutive_roles else memory
        return {
            "systemInstruction": {"parts": [{"text": system_prompt}]},
            "contents": to_contents(turns),
            "generationConfig": {
                "maxOutputTokens": settings.max_tokens,
                "temperature": settings.temperature,
            },
        }

    async def generate_reply(
        self,
        memory: list[dict[str, Any]],
        system_prompt: str,
        settings: GenerationSettings | None = None,
    ) -> str:
        settings = settings or GenerationSettings()
        model = settings.model or self.default_model
        logger.debug(f"Using Gemini provider with model {model}")

        data = await self._post_json(
            f"{self.api_base}/models/{model}:generateContent",
            self.build_payload(memory, system_prompt, settings),
            params={"key": self.api_key or ""},
        )
        if data is None:
            return apology(self.label)
        return self._parse_reply(data) or EMPTY_REPLY

    @staticmethod
    def _parse_reply(data: Any) -> str:
        """拼接 candidates[0].content.parts 中的所有 text 字段。"""
        try:
            parts = data["candidates"][0]["content"]["parts"]
        except (KeyError, IndexError, TypeError):
            return ""
        if not isinstance(parts, list):
            return ""
        texts = [p["text"] for p in parts if isinstance(p, dict) and isinstance(p.get("text"), str)]
        return "\n".join(texts).strip()
