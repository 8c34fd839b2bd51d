import pytest

from beluga.session.memory import ASSISTANT, USER, ConversationMemory


def test_append_never_exceeds_limit_and_keeps_most_recent_in_order():
    memory = ConversationMemory(limit=5)
    contents = [f"turn-{i}" for i in range(13)]

    for i, text in enumerate(contents):
        memory.append(USER if i % 2 == 0 else ASSISTANT, text)
        assert len(memory) <= 5
        expected = contents[max(0, i + 1 - 5): i + 1]
        assert [t["content"] for t in memory] == expected


def test_extend_trims_many_entries_at_once():
    memory = ConversationMemory(limit=3)
    memory.append(USER, "old")

    memory.extend({"role": USER, "content": str(i)} for i in range(10))

    assert [t["content"] for t in memory] == ["7", "8", "9"]


def test_trim_reports_removed_count():
    memory = ConversationMemory(limit=40)
    memory._turns = [{"role": USER, "content": str(i)} for i in range(45)]

    assert memory.trim() == 5
    assert memory.to_messages()[0]["content"] == "5"
    assert memory.trim() == 0


def test_last_filters_by_role():
    memory = ConversationMemory(limit=10)
    memory.append(USER, "question")
    memory.append(ASSISTANT, "answer")

    assert memory.last()["content"] == "answer"
    assert memory.last(USER)["content"] == "question"


def test_to_messages_returns_copies():
    memory = ConversationMemory(limit=10)
    memory.append(USER, "hi")

    messages = memory.to_messages()
    messages[0]["content"] = "changed"

    assert memory.last()["content"] == "hi"


def test_clear_empties_memory():
    memory = ConversationMemory(limit=10, turns=[{"role": USER, "content": "hi"}])
    memory.clear()
    assert len(memory) == 0


def test_rejects_unknown_role_and_bad_limit():
    memory = ConversationMemory(limit=2)
    with pytest.raises(ValueError):
        memory.append("system", "nope")
    with pytest.raises(ValueError):
        ConversationMemory(limit=0)
