"""
工具函数模块 - 提供 beluga 项目全局通用的辅助函数。

本模块包含：
- truncate_string：截断过长文本（日志输出用）
- clip：按平台长度上限硬截断（频道名等）
"""

from beluga.utils.helpers import truncate_string, clip

__all__ = ["truncate_string", "clip"]
