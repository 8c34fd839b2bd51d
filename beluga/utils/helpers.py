"""
工具函数集合 - beluga 项目全局通用的字符串辅助函数。

- truncate_string：截断过长文本（日志输出用）
- clip：按平台长度上限硬截断（频道名等）
"""


def truncate_string(s: str, max_len: int = 100, suffix: str = "...") -> str:
    """
    截断字符串到指定最大长度，超出时添加后缀。

    参数:
        s: 原始字符串
        max_len: 最大长度（包含后缀），默认 100
        suffix: 截断后缀，默认 "..."

    返回:
        截断后的字符串
    """
    if len(s) <= max_len:
        return s
    return s[: max_len - len(suffix)] + suffix


def clip(s: str, max_len: int) -> str:
    """按长度上限硬截断，不加后缀（Discord 频道名超长会被 API 直接拒绝）。"""
    return s[:max_len]
