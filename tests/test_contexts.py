"""
Tests for RunContext.
"""

from agent_memory_runtime.contexts import RunContext
from agent_memory_runtime.interfaces import EventType


class TestRunContext:
    """Tests for RunContext."""

    def test_init_defaults(self):
        ctx = RunContext()

        assert ctx.run_id is not None
        assert ctx.thread_id is None
        assert ctx.toolsets == {}
        assert ctx.max_steps == 5
        assert ctx.events == []

    def test_run_ids_unique(self):
        assert RunContext().run_id != RunContext().run_id

    def test_tool_context(self):
        ctx = RunContext("run-1", thread_id="t1", resource_id="user-1", agent_name="support")
        tool_ctx = ctx.tool_context()

        assert tool_ctx.run_id == "run-1"
        assert tool_ctx.thread_id == "t1"
        assert tool_ctx.resource_id == "user-1"
        assert tool_ctx.agent_name == "support"

    async def test_emit_records_event(self):
        ctx = RunContext("run-1")
        await ctx.emit(EventType.RUN_STARTED, {"agent": "support"})

        event = ctx.events[0]
        assert event["event_type"] == "run.started"
        assert event["payload"] == {"agent": "support"}
        assert "timestamp" in event

    async def test_emit_plain_string(self):
        ctx = RunContext()
        await ctx.emit("custom", {})
        assert ctx.events_of("custom")

    async def test_on_event_callback(self):
        received = []
        ctx = RunContext(on_event=lambda kind, payload: received.append((kind, payload)))

        await ctx.emit(EventType.TOOL_CALL, {"tool_name": "x"})

        assert received == [("tool.call", {"tool_name": "x"})]

    async def test_events_of_filters(self):
        ctx = RunContext()
        await ctx.emit(EventType.STEP_STARTED, {"step": 1})
        await ctx.emit(EventType.TOOL_CALL, {})
        await ctx.emit(EventType.STEP_STARTED, {"step": 2})

        steps = ctx.events_of(EventType.STEP_STARTED)
        assert [e["payload"]["step"] for e in steps] == [1, 2]

    async def test_events_returns_copy(self):
        ctx = RunContext()
        await ctx.emit(EventType.ERROR, {})

        ctx.events.clear()
        assert len(ctx.events) == 1

        ctx.clear_events()
        assert ctx.events == []
