"""
会话记忆模块 - 单个会话的有界对话记录。

每个会话持有一个 ConversationMemory，按插入顺序保存 {"role", "content"} 轮次，
并在每次追加后裁剪到上限 M（默认 40）：从最旧的一端整段删除多出的条目，
剩余条目的相对顺序保持不变。

【Java 开发者类比】
类似于一个容量固定、满了就淘汰队首的 ArrayDeque（EvictingQueue）。
"""

from typing import Any, Iterable, Iterator

USER = "user"
ASSISTANT = "assistant"
ROLES = (USER, ASSISTANT)


class ConversationMemory:
    """
    有界的对话轮次列表。

    属性:
        limit: 最大保留轮次数
        _turns: 轮次列表，每条为 {"role": "user"|"assistant", "content": str}
    """

    def __init__(self, limit: int = 40, turns: Iterable[dict[str, Any]] | None = None):
        if limit < 1:
            raise ValueError(f"Memory limit must be positive, got {limit}")
        self.limit = limit
        self._turns: list[dict[str, str]] = []
        if turns:
            self.extend(turns)

    def append(self, role: str, content: str) -> None:
        """追加一轮并裁剪。"""
        if role not in ROLES:
            raise ValueError(f"Unknown role: {role}")
        self._turns.append({"role": role, "content": content})
        self.trim()

    def extend(self, turns: Iterable[dict[str, Any]]) -> None:
        """批量追加（如导入历史），全部追加后只裁剪一次。"""
        for turn in turns:
            if turn["role"] not in ROLES:
                raise ValueError(f"Unknown role: {turn['role']}")
            self._turns.append({"role": turn["role"], "content": turn["content"]})
        self.trim()

    def trim(self) -> int:
        """删除最旧的多余条目，返回删除的数量。"""
        overflow = len(self._turns) - self.limit
        if overflow <= 0:
            return 0
        del self._turns[:overflow]
        return overflow

    def clear(self) -> None:
        self._turns = []

    def last(self, role: str | None = None) -> dict[str, str] | None:
        """最近一轮（可按角色过滤）。"""
        for turn in reversed(self._turns):
            if role is None or turn["role"] == role:
                return turn
        return None

    def to_messages(self) -> list[dict[str, str]]:
        """返回副本，供回复提供者构造请求使用。"""
        return [dict(t) for t in self._turns]

    def __len__(self) -> int:
        return len(self._turns)

    def __iter__(self) -> Iterator[dict[str, str]]:
        return iter(self.to_messages())

    def __repr__(self) -> str:
        return f"ConversationMemory(limit={self.limit}, turns={len(self._turns)})"
