"""
配置模块 (config)
================
1. 定义配置数据模型（schema.py）- 使用 Pydantic 定义所有配置项的结构和默认值
2. 加载/校验/保存配置（loader.py）- JSON 文件 + 环境变量，启动期校验必填项
"""

from beluga.config.loader import ConfigError, load_config, get_config_path, validate_config
from beluga.config.schema import Config

__all__ = ["Config", "ConfigError", "load_config", "get_config_path", "validate_config"]
