"""
回复后端注册表 - 所有 LLM 后端元数据的唯一真相来源（Single Source of Truth）。

采用"数据驱动"的设计思想：每个后端的差异（环境变量名、默认模型、默认 API 地址、
是否支持 Mock）都集中声明在 PROVIDERS 元组中，配置校验、状态显示和后端创建都从这里派生，
而不是在代码各处写 if provider == "openai" 分支。

添加新后端只需三步：
  1. 在下方 PROVIDERS 元组中新增一条 ProviderSpec
  2. 在 config/schema.py 的 ProvidersConfig 中新增一个字段
  3. 实现一个 ReplyProvider 子类并在 create_provider() 中接入
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class ProviderSpec:
    """
    单个回复后端的元数据规格定义。

    属性:
        name: 配置字段名（"openai" / "gemini"），同时也是 LLM_PROVIDER 的取值
        env_key: 对应 API Key 的扁平环境变量名（用于错误提示）
        display_name: 在 `beluga status` 中显示的名称
        default_model: 未配置模型时使用的默认模型
        default_api_base: 默认 API 基础 URL
        supports_mock: 是否支持 Mock 模式（无网络回显）
    """

    name: str
    env_key: str
    display_name: str = ""
    default_model: str = ""
    default_api_base: str = ""
    supports_mock: bool = False

    @property
    def label(self) -> str:
        """获取显示标签，优先使用 display_name，否则将 name 首字母大写。"""
        return self.display_name or self.name.title()


PROVIDERS: tuple[ProviderSpec, ...] = (

    # OpenAI Chat Completions：system 提示词作为首条消息，Bearer 认证
    ProviderSpec(
        name="openai",
        env_key="OPENAI_API_KEY",
        display_name="OpenAI",
        default_model="gpt-3.5-turbo",
        default_api_base="https://api.openai.com/v1",
        supports_mock=True,
    ),

    # Google Gemini generateContent：systemInstruction 独立字段，Key 走查询参数
    ProviderSpec(
        name="gemini",
        env_key="GEMINI_API_KEY",
        display_name="Gemini",
        default_model="gemini-2.5-flash-lite",
        default_api_base="https://generativelanguage.googleapis.com/v1beta",
        supports_mock=False,
    ),
)


def find_by_name(name: str | None) -> ProviderSpec | None:
    """按名称查找后端规格（大小写不敏感）。"""
    if not name:
        return None
    name = name.strip().lower()
    for spec in PROVIDERS:
        if spec.name == name:
            return spec
    return None
