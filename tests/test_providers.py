import json

import httpx
import pytest

from beluga.config.loader import ConfigError
from beluga.config.schema import Config
from beluga.providers import GeminiProvider, MockProvider, OpenAIProvider, create_provider
from beluga.providers.base import EMPTY_REPLY, GenerationSettings
from beluga.providers.gemini_provider import merge_consecutive, to_contents


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


MEMORY = [
    {"role": "assistant", "content": "How can I help?"},
    {"role": "user", "content": "hi"},
    {"role": "user", "content": "are you there?"},
]


# ---------------------------------------------------------------------------
# OpenAI
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_openai_request_shape_and_reply():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers.get("authorization")
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"choices": [{"message": {"content": "  hello there \n"}}]})

    async with _client(handler) as http:
        provider = OpenAIProvider(api_key="sk-test", default_model="gpt-3.5-turbo", http=http)
        reply = await provider.generate_reply(MEMORY, "be nice", GenerationSettings(max_tokens=50, temperature=0.2))

    assert reply == "hello there"
    assert seen["url"] == "https://api.openai.com/v1/chat/completions"
    assert seen["auth"] == "Bearer sk-test"
    assert seen["body"] == {
        "model": "gpt-3.5-turbo",
        "messages": [{"role": "system", "content": "be nice"}, *MEMORY],
        "max_tokens": 50,
        "temperature": 0.2,
    }


@pytest.mark.asyncio
async def test_openai_error_status_becomes_apology():
    async with _client(lambda request: httpx.Response(500, text="boom")) as http:
        provider = OpenAIProvider(api_key="sk-test", default_model="m", http=http)
        reply = await provider.generate_reply(MEMORY, "sys")

    assert reply == "Sorry, I ran into an error talking to OpenAI."


@pytest.mark.asyncio
async def test_openai_transport_error_becomes_apology():
    def handler(request):
        raise httpx.ConnectError("unreachable", request=request)

    async with _client(handler) as http:
        provider = OpenAIProvider(api_key="sk-test", default_model="m", http=http)
        reply = await provider.generate_reply(MEMORY, "sys")

    assert reply.startswith("Sorry")


@pytest.mark.asyncio
async def test_openai_empty_content_becomes_placeholder():
    async with _client(lambda r: httpx.Response(200, json={"choices": [{"message": {"content": "   "}}]})) as http:
        provider = OpenAIProvider(api_key="sk-test", default_model="m", http=http)
        assert await provider.generate_reply(MEMORY, "sys") == EMPTY_REPLY


# ---------------------------------------------------------------------------
# Gemini
# ---------------------------------------------------------------------------


def test_merge_consecutive_joins_same_role_runs():
    merged = merge_consecutive(MEMORY)

    assert merged == [
        {"role": "assistant", "content": "How can I help?"},
        {"role": "user", "content": "hi\nare you there?"},
    ]
    assert MEMORY[1]["content"] == "hi"


def test_to_contents_maps_assistant_to_model():
    assert to_contents(MEMORY[:2]) == [
        {"role": "model", "parts": [{"text": "How can I help?"}]},
        {"role": "user", "parts": [{"text": "hi"}]},
    ]


@pytest.mark.asyncio
async def test_gemini_request_shape_and_reply():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["key"] = request.url.params.get("key")
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={
            "candidates": [{"content": {"parts": [{"text": "line one"}, {"text": "line two "}]}}],
        })

    async with _client(handler) as http:
        provider = GeminiProvider(api_key="g-key", default_model="gemini-2.5-flash-lite", http=http)
        reply = await provider.generate_reply(MEMORY, "be nice", GenerationSettings(max_tokens=100, temperature=0.5))

    assert reply == "line one\nline two"
    assert seen["path"] == "/v1beta/models/gemini-2.5-flash-lite:generateContent"
    assert seen["key"] == "g-key"
    assert seen["body"]["systemInstruction"] == {"parts": [{"text": "be nice"}]}
    assert seen["body"]["generationConfig"] == {"maxOutputTokens": 100, "temperature": 0.5}
    assert [c["role"] for c in seen["body"]["contents"]] == ["model", "user"]


def test_gemini_can_send_turns_without_merging():
    provider = GeminiProvider(api_key="k", default_model="m", merge_consecutive_roles=False)

    payload = provider.build_payload(MEMORY, "sys", GenerationSettings())

    assert [c["role"] for c in payload["contents"]] == ["model", "user", "user"]


@pytest.mark.asyncio
async def test_gemini_missing_candidates_is_placeholder_and_errors_apologize():
    async with _client(lambda r: httpx.Response(200, json={"candidates": []})) as http:
        provider = GeminiProvider(api_key="k", default_model="m", http=http)
        assert await provider.generate_reply(MEMORY, "sys") == EMPTY_REPLY

    async with _client(lambda r: httpx.Response(403, json={"error": "denied"})) as http:
        provider = GeminiProvider(api_key="k", default_model="m", http=http)
        assert await provider.generate_reply(MEMORY, "sys") == "Sorry, I ran into an error talking to Gemini."


# ---------------------------------------------------------------------------
# Mock 与工厂
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_mock_echoes_last_user_message():
    provider = MockProvider()

    reply = await provider.generate_reply([{"role": "user", "content": "hi"}], "sys")
    assert "hi" in reply
    assert reply == 'Mock reply (no OpenAI): I heard "hi".'

    assert "your message" in await provider.generate_reply([], "sys")


def test_factory_selects_backend():
    gemini = create_provider(Config(llm_provider="gemini", providers={"gemini": {"api_key": "k"}}))
    openai = create_provider(Config(llm_provider="OpenAI", providers={"openai": {"api_key": "k"}}))
    mock = create_provider(Config(llm_provider="openai", mock_openai=True))

    assert isinstance(gemini, GeminiProvider)
    assert gemini.default_model == "gemini-2.5-flash-lite"
    assert isinstance(openai, OpenAIProvider)
    assert openai.api_base == "https://api.openai.com/v1"
    assert isinstance(mock, MockProvider)


def test_factory_ignores_mock_flag_for_gemini():
    provider = create_provider(Config(llm_provider="gemini", mock_openai=True, providers={"gemini": {"api_key": "k"}}))
    assert isinstance(provider, GeminiProvider)


def test_factory_rejects_unknown_backend():
    with pytest.raises(ConfigError):
        create_provider(Config(llm_provider="claude"))


@pytest.mark.asyncio
@pytest.mark.parametrize("body", [
    {"candidates": [{"content": {"parts": None}}]},
    {"candidates": [{"content": {"parts": [{"text": 5}]}}]},
    {"candidates": [{"content": {"parts": "text"}}]},
])
async def test_gemini_malformed_parts_become_placeholder(body):
    async with _client(lambda r: httpx.Response(200, json=body)) as http:
        provider = GeminiProvider(api_key="k", default_model="m", http=http)
        assert await provider.generate_reply(MEMORY, "sys") == EMPTY_REPLY


@pytest.mark.asyncio
async def test_gemini_skips_non_text_parts():
    body = {"candidates": [{"content": {"parts": [{"text": "kept"}, {"text": None}, {"inlineData": {}}, 7]}}]}

    async with _client(lambda r: httpx.Response(200, json=body)) as http:
        provider = GeminiProvider(api_key="k", default_model="m", http=http)
        assert await provider.generate_reply(MEMORY, "sys") == "kept"
