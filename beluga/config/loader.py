"""
配置加载工具模块 (config/loader.py)
=================================
本模块负责 beluga 配置的加载、校验、保存和格式转换：
- 配置文件默认路径: ~/.beluga/config.json（可选，不存在时使用默认值）
- 配置文件使用 camelCase（驼峰命名），Python 内部使用 snake_case（下划线命名）
- 兼容一组无前缀的扁平环境变量（DISCORD_TOKEN、OPENAI_API_KEY 等），优先级高于配置文件
- validate_config() 在启动时检查必填项，缺失即为致命错误

对于 Java 开发者：
- 类似于 Spring Boot 的 application.yml 加载 + 环境变量覆盖
- ConfigError 类似于启动阶段抛出的 BeanCreationException，进程直接退出
"""

import json
import os
from pathlib import Path
from typing import Any, Mapping

from beluga.config.schema import Config


class ConfigError(Exception):
    """配置缺失或非法。属于启动期致命错误，不在运行时恢复。"""


# 扁平环境变量 → 配置路径
ENV_ALIASES: dict[str, tuple[str, ...]] = {
    "DISCORD_TOKEN": ("discord", "token"),
    "LLM_PROVIDER": ("llm_provider",),
    "OPENAI_API_KEY": ("providers", "openai", "api_key"),
    "OPENAI_MODEL": ("providers", "openai", "model"),
    "GEMINI_API_KEY": ("providers", "gemini", "api_key"),
    "GEMINI_MODEL": ("providers", "gemini", "model"),
    "SYSTEM_PROMPT": ("session", "system_prompt"),
    "MOCK_OPENAI": ("mock_openai",),
    "DELETE_THREAD_ON_END": ("session", "delete_on_end"),
    "DEBUG_LOG": ("debug",),
}

# 这些变量只认字符串 "true"（大小写不敏感），其他值一律视为 False
BOOLEAN_ENV = {"MOCK_OPENAI", "DELETE_THREAD_ON_END", "DEBUG_LOG"}


def get_config_path() -> Path:
    """获取默认配置文件路径: ~/.beluga/config.json"""
    return Path.home() / ".beluga" / "config.json"


def load_config(config_path: Path | None = None, env: Mapping[str, str] | None = None) -> Config:
    """
    加载配置：配置文件 → 扁平环境变量覆盖 → Pydantic 校验。

    参数:
        config_path: 可选的配置文件路径。为 None 时使用默认路径。
        env: 环境变量映射，默认读取 os.environ（测试时可传入字典）

    返回:
        Config 配置对象实例

    异常:
        ConfigError: 配置文件存在但无法解析
    """
    path = config_path or get_config_path()
    data: dict[str, Any] = {}

    if path.exists():
        try:
            with open(path, encoding="utf-8") as f:
                data = convert_keys(json.load(f))
        except (json.JSONDecodeError, OSError) as e:
            raise ConfigError(f"Failed to load config from {path}: {e}") from e

    apply_env_aliases(data, os.environ if env is None else env)
    return Config(**data)


def apply_env_aliases(data: dict[str, Any], env: Mapping[str, str]) -> dict[str, Any]:
    """把扁平环境变量写入嵌套配置字典（就地修改并返回）。空字符串视为未设置。"""
    for name, path in ENV_ALIASES.items():
        value = env.get(name)
        if value is None or value == "":
            continue
        parsed: Any = value.strip().lower() == "true" if name in BOOLEAN_ENV else value
        node = data
        for key in path[:-1]:
            node = node.setdefault(key, {})
        node[path[-1]] = parsed
    return data


def validate_config(config: Config) -> Config:
    """
    启动前校验必填配置。

    规则：
    1. Discord token 必填
    2. llm_provider 必须是已注册的后端（openai / gemini）
    3. 所选后端的 API Key 必填；OpenAI 在 Mock 模式下可以不填

    异常:
        ConfigError: 列出所有缺失/非法项
    """
    from beluga.providers.registry import PROVIDERS, find_by_name

    problems: list[str] = []
    if not config.discord.token:
        problems.append("Missing DISCORD_TOKEN (discord.token)")

    spec = find_by_name(config.provider_name)
    if spec is None:
        names = ", ".join(f'"{s.name}"' for s in PROVIDERS)
        problems.append(f"LLM_PROVIDER must be one of {names}, got {config.llm_provider!r}")
    else:
        p = config.get_provider()
        if not (p and p.api_key) and not config.uses_mock:
            problems.append(f"Missing {spec.env_key} (providers.{spec.name}.apiKey)")

    if problems:
        raise ConfigError("; ".join(problems))
    return config


def save_config(config: Config, config_path: Path | None = None) -> None:
    """
    将配置对象保存为 JSON 文件（camelCase 键名）。

    参数:
        config: 要保存的配置对象
        config_path: 可选的保存路径。为 None 时使用默认路径。
    """
    path = config_path or get_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)

    data = convert_to_camel(config.model_dump())

    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, ensure_ascii=False)


def convert_keys(data: Any) -> Any:
    """
    递归地将字典中所有 camelCase 键名转换为 snake_case。

    示例: {"maxTokens": 800} → {"max_tokens": 800}
    """
    if isinstance(data, dict):
        return {camel_to_snake(k): convert_keys(v) for k, v in data.items()}
    if isinstance(data, list):
        return [convert_keys(item) for item in data]
    return data


def convert_to_camel(data: Any) -> Any:
    """递归地将字典中所有 snake_case 键名转换为 camelCase。"""
    if isinstance(data, dict):
        return {snake_to_camel(k): convert_to_camel(v) for k, v in data.items()}
    if isinstance(data, list):
        return [convert_to_camel(item) for item in data]
    return data


def camel_to_snake(name: str) -> str:
    """
    将 camelCase 字符串转换为 snake_case。
    例: "maxTokens" → "max_tokens", "apiBase" → "api_base"
    """
    result = []
    for i, char in enumerate(name):
        if char.isupper() and i > 0:
            result.append("_")
        result.append(char.lower())
    return "".join(result)


def snake_to_camel(name: str) -> str:
    """
    将 snake_case 字符串转换为 camelCase。
    例: "max_tokens" → "maxTokens", "api_base" → "apiBase"
    """
    components = name.split("_")
    return components[0] + "".join(x.title() for x in components[1:])
