"""
Tests for the OpenAI LLM client and the client factory.
"""

import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest

from agent_memory_runtime.interfaces import Provider


@pytest.fixture
def client():
    """Create an OpenAIClient with mocked dependencies."""
    with patch("agent_memory_runtime.llm.openai.AsyncOpenAI"):
        from agent_memory_runtime.llm.openai import OpenAIClient
        return OpenAIClient(api_key="test-key")


def completion(content=None, tool_calls=None, finish_reason="stop"):
    return SimpleNamespace(
        choices=[SimpleNamespace(
            message=SimpleNamespace(content=content, tool_calls=tool_calls),
            finish_reason=finish_reason,
        )],
        usage=SimpleNamespace(prompt_tokens=7, completion_tokens=3, total_tokens=10),
        model="gpt-4o",
    )


def function_call(call_id, name, arguments):
    return SimpleNamespace(id=call_id, function=SimpleNamespace(name=name, arguments=arguments))


class TestConvertMessage:
    """Tests for core message to OpenAI conversion."""

    def test_plain_message(self, client):
        assert client._convert_message({"role": "user", "content": "Hi"}) == [
            {"role": "user", "content": "Hi"},
        ]

    def test_assistant_tool_calls(self, client):
        converted = client._convert_message({
            "role": "assistant",
            "content": [
                {"type": "text", "text": "Checking."},
                {"type": "tool-call", "tool_call_id": "c1", "tool_name": "get_weather", "args": {"city": "Paris"}},
            ],
        })
        assert converted == [{
            "role": "assistant",
            "content": "Checking.",
            "tool_calls": [{
                "id": "c1",
                "type": "function",
                "function": {"name": "get_weather", "arguments": '{"city": "Paris"}'},
            }],
        }]

    def test_tool_only_assistant_has_null_content(self, client):
        converted = client._convert_message({
            "role": "assistant",
            "content": [{"type": "tool-call", "tool_call_id": "c1", "tool_name": "t", "args": {}}],
        })
        assert converted[0]["content"] is None

    def test_tool_message_split_per_result(self, client):
        converted = client._convert_message({
            "role": "tool",
            "content": [
                {"type": "tool-result", "tool_call_id": "c1", "tool_name": "a", "result": "ok"},
                {"type": "tool-result", "tool_call_id": "c2", "tool_name": "b", "result": {"n": 1}},
            ],
        })
        assert converted == [
            {"role": "tool", "tool_call_id": "c1", "content": "ok"},
            {"role": "tool", "tool_call_id": "c2", "content": json.dumps({"n": 1})},
        ]


class TestGenerate:
    async def test_text_response(self, client):
        client._client.chat.completions.create = AsyncMock(return_value=completion("Hello"))

        result = await client.generate([{"role": "user", "content": "Hi"}], temperature=0.5)

        assert result.text == "Hello"
        assert result.finish_reason == "stop"
        assert result.usage["total_tokens"] == 10
        kwargs = client._client.chat.completions.create.call_args.kwargs
        assert kwargs["temperature"] == 0.5
        assert kwargs["model"] == client.default_model

    async def test_tool_call_response(self, client):
        client._client.chat.completions.create = AsyncMock(return_value=completion(
            tool_calls=[
                function_call("c1", "get_weather", '{"city": "Paris"}'),
                function_call("c2", "broken", "{not json"),
            ],
            finish_reason="tool_calls",
        ))

        result = await client.generate([{"role": "user", "content": "Weather?"}])

        assert result.finish_reason == "tool-calls"
        assert [(c.id, c.arguments) for c in result.tool_calls] == [
            ("c1", {"city": "Paris"}),
            ("c2", {}),
        ]


class TestFactory:
    """Tests for get_llm_client()."""

    def test_unknown_provider(self):
        from agent_memory_runtime.llm import get_llm_client

        with pytest.raises(ValueError, match="Unknown LLM provider"):
            get_llm_client(provider="nope")

    def test_provider_detected_from_model(self):
        from agent_memory_runtime.llm import get_llm_client

        with patch("agent_memory_runtime.llm.anthropic.AsyncAnthropic"):
            llm = get_llm_client(model="claude-haiku-4-5-20251001", api_key="test-key")

        assert llm.provider == Provider.ANTHROPIC
        assert llm.default_model == "claude-haiku-4-5-20251001"

    def test_explicit_openai(self):
        from agent_memory_runtime.llm import get_llm_client

        with patch("agent_memory_runtime.llm.openai.AsyncOpenAI"):
            llm = get_llm_client(provider="openai", api_key="test-key")

        assert llm.provider == Provider.OPENAI

    def test_missing_openai_key(self, monkeypatch):
        from agent_memory_runtime.llm.openai import OpenAIConfigurationError
        from agent_memory_runtime.llm import get_llm_client

        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        with pytest.raises(OpenAIConfigurationError):
            get_llm_client(provider="openai")

    def test_qualified_model_id(self):
        from agent_memory_runtime.llm import get_llm_client

        with patch("agent_memory_runtime.llm.openai.AsyncOpenAI"):
            llm = get_llm_client(model="openai/gpt-4.1", api_key="test-key")

        assert llm.provider == Provider.OPENAI
        assert llm.default_model == "gpt-4.1"


class TestModelDetection:
    """Tests for provider detection from model ids."""

    def test_registry_and_prefix(self):
        from agent_memory_runtime.llm import get_provider_for_model

        assert get_provider_for_model("gpt-4o") == Provider.OPENAI
        assert get_provider_for_model("claude-3-7-sonnet-latest") == Provider.ANTHROPIC
        assert get_provider_for_model("o4-mini") == Provider.OPENAI
        assert get_provider_for_model("llama3") is None

    def test_split_model_id(self):
        from agent_memory_runtime.llm import split_model_id

        assert split_model_id("anthropic:claude-haiku-4-5-20251001") == (
            Provider.ANTHROPIC,
            "claude-haiku-4-5-20251001",
        )
        assert split_model_id("gpt-4o") == (None, "gpt-4o")
        assert split_model_id("meta/llama3") == (None, "meta/llama3")

    def test_model_info(self):
        from agent_memory_runtime.llm import get_model_info

        info = get_model_info("openai/gpt-4o-mini")
        assert info.provider == Provider.OPENAI
        assert info.context_window == 128_000
        assert get_model_info("unknown") is None
