"""
回复提供者基类定义模块。

本模块定义了"把一段有界对话记录 + 固定系统提示词变成一条助手回复"的统一接口：
- GenerationSettings : 单次生成参数（模型名、最大输出长度、温度）
- ReplyProvider      : 抽象基类，每个后端一个实现类，启动时选定一次

架构角色：
  SessionController.submit_turn() → ReplyProvider.generate_reply() → HTTP API → 回复文本

错误约定：
  generate_reply() 不向调用方抛出后端错误。非 2xx 状态、网络异常、响应为空等情况
  都在提供者内部记录日志，并转换为固定的兜底文案返回。

类比 Java：
  - ReplyProvider 相当于一个 interface，定义了 generateReply() 和 aclose()
  - GenerationSettings 相当于一个不可变的参数对象
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

import httpx
from loguru import logger

from beluga.utils.helpers import truncate_string

EMPTY_REPLY = "Hmm, I got an empty reply."


def apology(label: str) -> str:
    """后端请求失败时返回给用户的固定致歉文案。"""
    return f"Sorry, I ran into an error talking to {label}."


@dataclass(frozen=True)
class GenerationSettings:
    """
    单次生成参数。

    属性:
        model: 模型名，为 None 时使用提供者的默认模型
        max_tokens: 回复的最大输出 token 数
        temperature: 采样温度
    """
    model: str | None = None
    max_tokens: int = 800
    temperature: float = 0.7


class ReplyProvider(ABC):
    """
    回复提供者抽象基类。

    属性:
        api_key: API 密钥
        api_base: API 基础 URL（用于代理或私有部署）
        default_model: 默认模型名
    """

    label: str = "the model"

    def __init__(
        self,
        api_key: str | None = None,
        api_base: str | None = None,
        default_model: str = "",
    ):
        self.api_key = api_key
        self.api_base = api_base
        self.default_model = default_model

    @abstractmethod
    async def generate_reply(
        self,
        memory: list[dict[str, Any]],
        system_prompt: str,
        settings: GenerationSettings | None = None,
    ) -> str:
        """
        根据对话记录生成一条助手回复。

        参数:
            memory: 按时间顺序排列的轮次，每条为 {"role": "user"|"assistant", "content": "..."}
            system_prompt: 固定的系统提示词
            settings: 生成参数，为 None 时使用默认值

        返回:
            回复文本（失败时为兜底文案，不抛异常）
        """
        pass

    async def aclose(self) -> None:
        """释放提供者持有的资源（HTTP 连接池等）。默认无事可做。"""
        return None


class HTTPReplyProvider(ReplyProvider):
    """
    基于 httpx 的提供者公共实现：负责 HTTP 客户端生命周期和"请求失败 → 兜底"的统一处理。

    可以注入一个外部的 httpx.AsyncClient（测试中配合 httpx.MockTransport 使用），
    此时由调用方负责关闭；否则首次请求时按需创建，并在 aclose() 中关闭。
    """

    def __init__(
        self,
        api_key: str | None = None,
        api_base: str | None = None,
        default_model: str = "",
        timeout: float | None = None,
        http: httpx.AsyncClient | None = None,
    ):
        super().__init__(api_key, api_base, default_model)
        self.timeout = timeout
        self._http = http
        self._owns_http = http is None

    def _client(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=self.timeout)
        return self._http

    async def _post_json(
        self,
        url: str,
        payload: dict[str, Any],
        headers: dict[str, str] | None = None,
        params: dict[str, str] | None = None,
    ) -> Any | None:
        """
        发送 JSON POST 请求。

        返回:
            成功时返回解析后的 JSON；非 2xx、网络异常或响应不是 JSON 时记录错误并返回 None
        """
        try:
            response = await self._client().post(url, json=payload, headers=headers, params=params)
        except httpx.HTTPError as e:
            logger.error(f"{self.label} request failed: {e}")
            return None

        if not response.is_success:
            logger.error(f"{self.label} error {response.status_code}: {truncate_string(response.text, 1000)}")
            return None

        try:
            return response.json()
        except ValueError as e:
            logger.error(f"{self.label} returned invalid JSON: {e}")
            return None

    async def aclose(self) -> None:
        if self._http is not None and self._owns_http:
            await self._http.aclose()
            self._http = None
