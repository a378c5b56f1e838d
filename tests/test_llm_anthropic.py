"""
Tests for the Anthropic LLM client.
"""

import pytest
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

from agent_memory_runtime.config import reset_config


@pytest.fixture
def client():
    """Create an AnthropicClient with mocked dependencies."""
    with patch("agent_memory_runtime.llm.anthropic.AsyncAnthropic"):
        from agent_memory_runtime.llm.anthropic import AnthropicClient
        return AnthropicClient(api_key="test-key")


def tool_call(call_id, name="get_weather", args=None):
    return {"type": "tool-call", "tool_call_id": call_id, "tool_name": name, "args": args or {}}


def tool_result(call_id, result, name="get_weather", is_error=False):
    part = {"type": "tool-result", "tool_call_id": call_id, "tool_name": name, "result": result}
    if is_error:
        part["is_error"] = True
    return part


class TestConfiguration:
    def test_missing_key(self, monkeypatch):
        from agent_memory_runtime.llm.anthropic import AnthropicClient, AnthropicConfigurationError

        monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
        reset_config()
        with pytest.raises(AnthropicConfigurationError, match="ANTHROPIC_API_KEY"):
            AnthropicClient()


class TestBuildRequest:
    """Tests for request conversion."""

    def test_system_messages_folded(self, client):
        request = client._build_request(
            [
                {"role": "system", "content": "Be brief."},
                {"role": "system", "content": "Answer in French."},
                {"role": "user", "content": "Hi"},
            ],
            model=None, tools=None, temperature=None, max_tokens=None, kwargs={},
        )
        assert request["system"] == "Be brief.\n\nAnswer in French."
        assert request["messages"] == [{"role": "user", "content": "Hi"}]
        assert request["max_tokens"] == 4096
        assert request["model"] == client.default_model

    def test_tool_round_trip_blocks(self, client):
        request = client._build_request(
            [
                {"role": "user", "content": "Weather?"},
                {"role": "assistant", "content": [
                    {"type": "text", "text": "Checking."},
                    tool_call("tc1", args={"city": "Paris"}),
                ]},
                {"role": "tool", "content": [tool_result("tc1", {"temp": 21})]},
            ],
            model="claude-haiku-4-5", tools=None, temperature=0.2, max_tokens=100, kwargs={},
        )
        assistant, tool = request["messages"][1], request["messages"][2]

        assert assistant["content"] == [
            {"type": "text", "text": "Checking."},
            {"type": "tool_use", "id": "tc1", "name": "get_weather", "input": {"city": "Paris"}},
        ]
        assert tool == {
            "role": "user",
            "content": [{"type": "tool_result", "tool_use_id": "tc1", "content": '{"temp": 21}'}],
        }
        assert request["temperature"] == 0.2
        assert request["max_tokens"] == 100

    def test_error_results_flagged(self, client):
        message = client._convert_message(
            {"role": "tool", "content": [tool_result("tc1", "boom", is_error=True)]}
        )
        assert message["content"][0]["is_error"] is True
        assert message["content"][0]["content"] == "boom"

    def test_orphaned_tool_calls_removed(self, client):
        """Tool calls without a result are dropped before sending."""
        request = client._build_request(
            [
                {"role": "user", "content": "Do two things"},
                {"role": "assistant", "content": [tool_call("tc1"), tool_call("tc2")]},
                {"role": "tool", "content": [tool_result("tc1", "result1")]},
            ],
            model=None, tools=None, temperature=None, max_tokens=None, kwargs={},
        )
        blocks = request["messages"][1]["content"]
        assert [b["id"] for b in blocks] == ["tc1"]

    def test_tool_result_and_user_merged(self, client):
        """A tool result followed by a user message becomes one user turn."""
        request = client._build_request(
            [
                {"role": "assistant", "content": [tool_call("tc1")]},
                {"role": "tool", "content": [tool_result("tc1", "ok")]},
                {"role": "user", "content": "Thanks"},
            ],
            model=None, tools=None, temperature=None, max_tokens=None, kwargs={},
        )
        assert [m["role"] for m in request["messages"]] == ["assistant", "user"]
        assert request["messages"][1]["content"][-1] == {"type": "text", "text": "Thanks"}

    def test_tools_converted(self, client):
        request = client._build_request(
            [{"role": "user", "content": "Hi"}],
            model=None,
            tools=[{
                "type": "function",
                "function": {"name": "get_weather", "description": "Weather", "parameters": {"type": "object"}},
            }],
            temperature=None, max_tokens=None, kwargs={},
        )
        assert request["tools"] == [
            {"name": "get_weather", "description": "Weather", "input_schema": {"type": "object"}},
        ]


class TestGenerate:
    async def test_generate_converts_response(self, client):
        response = SimpleNamespace(
            content=[
                SimpleNamespace(type="text", text="Let me check."),
                SimpleNamespace(type="tool_use", id="tc1", name="get_weather", input={"city": "Paris"}),
            ],
            usage=SimpleNamespace(input_tokens=12, output_tokens=8),
            model="claude-sonnet-4-5-20250929",
            stop_reason="tool_use",
        )
        client._client.messages.create = AsyncMock(return_value=response)

        result = await client.generate([{"role": "user", "content": "Weather?"}])

        assert result.text == "Let me check."
        assert result.finish_reason == "tool-calls"
        assert result.usage == {"prompt_tokens": 12, "completion_tokens": 8, "total_tokens": 20}
        assert [c.name for c in result.tool_calls] == ["get_weather"]
        assert result.tool_calls[0].arguments == {"city": "Paris"}


class FakeStream:
    """Stands in for the SDK's message stream context manager."""

    def __init__(self, events, final):
        self.events = events
        self.final = final

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for event in self.events:
            yield event

    async def get_final_message(self):
        return self.final


class TestStream:
    async def test_stream_text_and_tool_calls(self, client):
        events = [
            SimpleNamespace(type="content_block_delta", delta=SimpleNamespace(type="text_delta", text="Hel")),
            SimpleNamespace(type="content_block_delta", delta=SimpleNamespace(type="text_delta", text="lo")),
            SimpleNamespace(
                type="content_block_stop",
                content_block=SimpleNamespace(type="tool_use", id="tc1", name="get_weather", input={"city": "Rome"}),
            ),
        ]
        final = SimpleNamespace(stop_reason="tool_use", usage=SimpleNamespace(input_tokens=5, output_tokens=3))
        client._client.messages.stream = MagicMock(return_value=FakeStream(events, final))

        chunks = [chunk async for chunk in client.stream([{"role": "user", "content": "Hi"}])]

        assert "".join(c.delta for c in chunks) == "Hello"
        calls = [call for c in chunks for call in c.tool_calls]
        assert calls[0].id == "tc1"
        assert calls[0].arguments == {"city": "Rome"}
        assert chunks[-1].finish_reason == "tool-calls"
        assert chunks[-1].usage["total_tokens"] == 8
