"""
配置数据模型定义 (config/schema.py)
=================================
本模块使用 Pydantic 定义 beluga 的完整配置结构。
所有配置项都有默认值，只有 Discord token 和所选 LLM 提供商的 API Key 必须由用户提供。

整体配置结构（树形）：
Config (根配置)
├── llm_provider  - 使用哪个回复后端（"openai" | "gemini"），启动时固定
├── mock_openai   - OpenAI Mock 模式（不发网络请求，回显最后一条用户消息）
├── debug         - 调试日志开关
├── discord       - Discord 渠道配置（token、gateway 地址、intents、白名单）
├── providers     - 各 LLM 提供商配置（API Key、模型名、API Base）
└── session       - 会话行为配置（线程前缀、TTL、冷却、记忆上限、系统提示词等）

对于 Java 开发者：
- Pydantic 的 BaseModel 类似于 Java 的 POJO/Record，但自带字段验证和默认值
- BaseSettings 类似于 Spring 的 @ConfigurationProperties，额外支持从环境变量读取配置
"""

from pydantic import BaseModel, Field, ConfigDict
from pydantic_settings import BaseSettings


DEFAULT_SYSTEM_PROMPT = (
    "You are a discord user if user are chating or serious questioning you academic question, "
    "academic respond should be no more than 1000 varcharacters. If user is chating you can join "
    "the coversation casually, limited in 150 characters."
)


# ==============================================================================
# 渠道配置
# ==============================================================================


class DiscordConfig(BaseModel):
    """Discord 渠道配置。使用 Gateway WebSocket 接收消息，REST API 操作频道。"""
    token: str = ""  # 从 Discord Developer Portal 获取的 Bot Token（必填）
    allow_from: list[str] = Field(default_factory=list)  # 允许的用户 ID 白名单（空 = 所有人）
    gateway_url: str = "wss://gateway.discord.gg/?v=10&encoding=json"
    api_base: str = "https://discord.com/api/v10"
    intents: int = 33281  # GUILDS + GUILD_MESSAGES + MESSAGE_CONTENT


# ==============================================================================
# LLM 提供商配置
# ==============================================================================


class ProviderConfig(BaseModel):
    """单个回复后端的配置。"""
    api_key: str = ""  # API 密钥（留空表示未配置）
    model: str = ""  # 模型名（留空则使用 registry 中的默认模型）
    api_base: str | None = None  # 自定义 API 基础 URL（代理或私有部署）
    timeout: float | None = None  # HTTP 超时秒数，None 表示不限制


class GeminiProviderConfig(ProviderConfig):
    """Gemini 额外配置：是否把连续的同角色轮次合并后再发送。"""
    merge_consecutive_roles: bool = True


class ProvidersConfig(BaseModel):
    """所有回复后端的聚合配置（用户只需配置使用的那个）。"""
    openai: ProviderConfig = Field(default_factory=ProviderConfig)
    gemini: GeminiProviderConfig = Field(default_factory=GeminiProviderConfig)


# ==============================================================================
# 会话配置
# ==============================================================================


class SessionConfig(BaseModel):
    """
    会话行为配置。

    对于 Java 开发者：
    - ttl_s / reap_interval_s 类似于缓存的 expireAfterAccess + 清理线程周期
    - memory_limit 类似于有界队列的容量
    """
    thread_prefix: str = "beluga-cat"  # 托管线程名前缀（重启后靠它识别并恢复会话）
    separator: str = "•"  # 前缀与话题之间的分隔符
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    ttl_s: float = 20 * 60  # 无活动超时（秒）
    cooldown_s: float = 1.0  # 两轮对话之间的最小间隔（秒）
    memory_limit: int = 40  # 每个会话保留的最大轮次数
    reap_interval_s: float = 60  # 超时扫描周期（秒）
    auto_archive_minutes: int = 60  # Discord 线程自动归档时长（分钟）
    delete_on_end: bool = False  # 结束会话时删除线程（否则改名 + 归档）
    end_on_shutdown: bool = False  # 进程退出时是否逐个结束会话（否则只清空内存登记）
    max_tokens: int = 800  # 单次回复的最大输出 token 数
    temperature: float = 0.7  # 生成温度
    require_prefix: bool = False  # 只把带触发前缀的消息当作对话轮次
    trigger_prefix: str = "?"


# ==============================================================================
# 根配置类
# ==============================================================================


class Config(BaseSettings):
    """
    beluga 根配置类。

    继承自 Pydantic 的 BaseSettings，除了支持从 JSON 文件加载外，
    还支持从环境变量读取配置：
    - 环境变量前缀: BELUGA_
    - 嵌套分隔符: __ (双下划线)
    - 示例: BELUGA_SESSION__TTL_S=600 可覆盖 session.ttl_s

    另外 loader.py 会识别一组无前缀的扁平环境变量（DISCORD_TOKEN、LLM_PROVIDER 等）。
    """
    llm_provider: str = "gemini"
    mock_openai: bool = False
    debug: bool = False
    discord: DiscordConfig = Field(default_factory=DiscordConfig)
    providers: ProvidersConfig = Field(default_factory=ProvidersConfig)
    session: SessionConfig = Field(default_factory=SessionConfig)

    @property
    def provider_name(self) -> str:
        """规范化后的提供商名称（小写、去空白）。"""
        return self.llm_provider.strip().lower()

    def get_provider(self) -> ProviderConfig | None:
        """获取当前所选提供商的配置；名称未知时返回 None。"""
        return getattr(self.providers, self.provider_name, None)

    def get_model(self) -> str:
        """获取当前所选提供商的模型名，未配置时回退到 registry 中的默认模型。"""
        from beluga.providers.registry import find_by_name
        p = self.get_provider()
        if p and p.model:
            return p.model
        spec = find_by_name(self.provider_name)
        return spec.default_model if spec else ""

    @property
    def uses_mock(self) -> bool:
        """Mock 模式只对 OpenAI 后端生效。"""
        return self.mock_openai and self.provider_name == "openai"

    model_config = ConfigDict(
        env_prefix="BELUGA_",
        env_nested_delimiter="__"
    )
