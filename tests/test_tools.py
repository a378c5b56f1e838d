"""
Tests for the tool adapter, guarded execution and the result cache.
"""

import asyncio

import pytest

from agent_memory_runtime.exceptions import ConfigurationError, ToolExecutionError, ToolInputError
from agent_memory_runtime.tools import (
    CoreTool,
    ToolAction,
    ToolAdapter,
    ToolExecutionContext,
    ToolResultCache,
    cached_execute,
)
from agent_memory_runtime.tools.cache import args_digest

CITY_SCHEMA = {
    "type": "object",
    "properties": {"city": {"type": "string"}},
    "required": ["city"],
}


@pytest.fixture
def context():
    return ToolExecutionContext(run_id="run-1", thread_id="t1", resource_id="user-1", agent_name="support")


def weather_action(calls=None, enable_cache=False):
    async def get_weather(args, context):
        if calls is not None:
            calls.append((args, context))
        return {"city": args["city"], "temp": 21}

    return ToolAction(
        id="get_weather",
        description="Current weather for a city",
        input_schema=CITY_SCHEMA,
        execute=get_weather,
        enable_cache=enable_cache,
    )


# =============================================================================
# CoreTool
# =============================================================================


class TestCoreTool:
    """Tests for CoreTool execution."""

    async def test_execute_async_body(self, context):
        tool = CoreTool(weather_action(), "get_weather", context)
        assert await tool.execute({"city": "Paris"}) == {"city": "Paris", "temp": 21}

    async def test_execute_sync_body(self, context):
        action = ToolAction(
            id="add",
            description="Add two numbers",
            execute=lambda args, ctx: args["a"] + args["b"],
        )
        tool = CoreTool(action, "add", context)
        assert await tool.execute({"a": 2, "b": 3}) == 5

    async def test_body_receives_context(self, context):
        calls = []
        tool = CoreTool(weather_action(calls), "get_weather", context)
        await tool.execute({"city": "Paris"})

        assert calls[0][1].thread_id == "t1"
        assert calls[0][1].run_id == "run-1"

    async def test_invalid_input_not_executed(self, context):
        calls = []
        tool = CoreTool(weather_action(calls), "get_weather", context)

        with pytest.raises(ToolInputError) as exc_info:
            await tool.execute({"town": "Paris"})

        assert calls == []
        assert str(exc_info.value).startswith("Invalid input for tool 'get_weather':")
        assert exc_info.value.run_id == "run-1"

    async def test_body_failure_wrapped(self, context, caplog):
        async def broken(args, ctx):
            raise KeyError("missing")

        tool = CoreTool(ToolAction(id="broken", description="", execute=broken), "broken", context)

        with pytest.raises(ToolExecutionError) as exc_info:
            await tool.execute({})

        assert isinstance(exc_info.value.cause, KeyError)
        assert exc_info.value.tool_name == "broken"
        assert "Tool broken failed (run_id=run-1)" in caplog.text

    def test_openai_format(self, context):
        tool = CoreTool(weather_action(), "get_weather", context)
        assert tool.to_openai_format() == {
            "type": "function",
            "function": {
                "name": "get_weather",
                "description": "Current weather for a city",
                "parameters": CITY_SCHEMA,
            },
        }


# =============================================================================
# ToolAdapter
# =============================================================================


class TestToolAdapter:
    """Tests for ToolAdapter.adapt()."""

    def test_adapt_first_party(self, context):
        tools = ToolAdapter().adapt({"get_weather": weather_action()}, context)
        assert list(tools) == ["get_weather"]
        assert tools["get_weather"].context.thread_id == "t1"

    async def test_toolset_tools_get_no_thread_id(self, context):
        calls = []
        tools = ToolAdapter().adapt(
            {},
            context,
            toolsets={"mcp": {"get_weather": weather_action(calls)}},
        )
        await tools["get_weather"].execute({"city": "Paris"})

        received = calls[0][1]
        assert received.thread_id is None
        assert received.run_id == "run-1"
        assert received.resource_id == "user-1"

    def test_toolset_overrides_first_party(self, context):
        override = ToolAction(id="other", description="From toolset", execute=lambda a, c: None)
        tools = ToolAdapter().adapt(
            {"get_weather": weather_action()},
            context,
            toolsets={"extra": {"get_weather": override}},
        )
        assert tools["get_weather"].description == "From toolset"

    def test_invalid_schema_rejected(self, context):
        action = ToolAction(
            id="bad",
            description="",
            execute=lambda a, c: None,
            input_schema={"type": "not-a-type"},
        )
        with pytest.raises(ConfigurationError):
            ToolAdapter().adapt({"bad": action}, context)

    def test_adapt_nothing(self, context):
        assert ToolAdapter().adapt(None, context) == {}


# =============================================================================
# Cache
# =============================================================================


class TestToolResultCache:
    """Tests for ToolResultCache and cached_execute."""

    def test_args_digest_ignores_key_order(self):
        assert args_digest({"a": 1, "b": 2}) == args_digest({"b": 2, "a": 1})
        assert args_digest({"a": 1}) != args_digest({"a": 2})

    def test_lru_eviction(self):
        cache = ToolResultCache(max_size=2)
        cache.set(("t", None, "1"), 1)
        cache.set(("t", None, "2"), 2)
        cache.get(("t", None, "1"))
        cache.set(("t", None, "3"), 3)

        assert len(cache) == 2
        assert cache.get(("t", None, "2")) is None
        assert cache.get(("t", None, "1")) == 1

    def test_invalid_size(self):
        with pytest.raises(ValueError):
            ToolResultCache(max_size=0)

    async def test_cached_execute_decorator(self, context):
        cache = ToolResultCache()
        calls = []

        @cached_execute(cache, "lookup")
        async def lookup(args, ctx):
            calls.append(args)
            return {"value": args["q"]}

        first = await lookup({"q": "x"}, context)
        second = await lookup({"q": "x"}, context)

        assert first == second == {"value": "x"}
        assert len(calls) == 1
        assert cache.hits == 1
        assert cache.misses == 1

    async def test_identical_calls_hit_cache(self, context):
        cache = ToolResultCache()
        calls = []
        tools = ToolAdapter(cache=cache).adapt({"get_weather": weather_action(calls, enable_cache=True)}, context)

        await tools["get_weather"].execute({"city": "Paris"})
        await tools["get_weather"].execute({"city": "Paris"})
        await tools["get_weather"].execute({"city": "Rome"})

        assert len(calls) == 2
        assert cache.hits == 1

    async def test_cache_keyed_by_thread(self, context):
        cache = ToolResultCache()
        calls = []
        adapter = ToolAdapter(cache=cache)
        action = weather_action(calls, enable_cache=True)

        await adapter.adapt({"get_weather": action}, context)["get_weather"].execute({"city": "Paris"})
        other = ToolExecutionContext(run_id="run-2", thread_id="t2")
        await adapter.adapt({"get_weather": action}, other)["get_weather"].execute({"city": "Paris"})

        assert len(calls) == 2

    async def test_cache_disabled_per_tool(self, context):
        cache = ToolResultCache()
        calls = []
        tools = ToolAdapter(cache=cache).adapt({"get_weather": weather_action(calls)}, context)

        await tools["get_weather"].execute({"city": "Paris"})
        await tools["get_weather"].execute({"city": "Paris"})

        assert len(calls) == 2
        assert len(cache) == 0

    async def test_failures_not_cached(self, context):
        cache = ToolResultCache()
        attempts = []

        async def flaky(args, ctx):
            attempts.append(1)
            if len(attempts) == 1:
                raise asyncio.TimeoutError()
            return "ok"

        action = ToolAction(id="flaky", description="", execute=flaky, enable_cache=True)
        tool = ToolAdapter(cache=cache).adapt({"flaky": action}, context)["flaky"]

        with pytest.raises(ToolExecutionError):
            await tool.execute({})
        assert await tool.execute({}) == "ok"
        assert len(attempts) == 2
