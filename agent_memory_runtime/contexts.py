"""
Per-run context.

A RunContext describes one agent run (ids, instructions, toolsets, step
bound) and records the events emitted while it executes. It is never
persisted.

Agents create one per call and expose its events on the result:

    result = await agent.generate("Hi", thread_id="t-1", resource_id="user-1")
    for event in result.events:
        print(event["event_type"], event["payload"])
"""

from datetime import datetime, timezone
from typing import Callable, Optional
from uuid import uuid4

from agent_memory_runtime.interfaces import EventType
from agent_memory_runtime.tools.adapter import ToolAction, ToolExecutionContext


class RunContext:
    """
    In-memory run context.

    Example:
        ctx = RunContext(
            run_id="run-1",
            thread_id="t-1",
            instructions="You are helpful.",
            on_event=lambda kind, payload: print(kind, payload),
        )
    """

    def __init__(
        self,
        run_id: Optional[str] = None,
        *,
        thread_id: Optional[str] = None,
        resource_id: Optional[str] = None,
        instructions: str = "",
        toolsets: Optional[dict[str, dict[str, ToolAction]]] = None,
        max_steps: int = 5,
        agent_name: Optional[str] = None,
        on_event: Optional[Callable[[str, dict], None]] = None,
    ):
        """
        Initialize a run context.

        Args:
            run_id: Unique identifier for this run (auto-generated if not provided)
            thread_id: Thread the run reads from and writes to
            resource_id: Owner of the thread
            instructions: Agent instructions for this run
            toolsets: Auxiliary toolsets merged into the agent's tools
            max_steps: Maximum number of model calls
            agent_name: Name of the agent executing the run
            on_event: Optional callback for events (for testing/debugging)
        """
        self.run_id = run_id or str(uuid4())
        self.thread_id = thread_id
        self.resource_id = resource_id
        self.instructions = instructions
        self.toolsets = toolsets or {}
        self.max_steps = max_steps
        self.agent_name = agent_name
        self._events: list[dict] = []
        self._on_event = on_event

    def tool_context(self) -> ToolExecutionContext:
        """The context handed to first-party tools."""
        return ToolExecutionContext(
            run_id=self.run_id,
            thread_id=self.thread_id,
            resource_id=self.resource_id,
            agent_name=self.agent_name,
        )

    async def emit(self, event_type: EventType | str, payload: dict) -> None:
        """Emit an event (stored in memory)."""
        event_type_str = event_type.value if hasattr(event_type, "value") else str(event_type)
        event = {
            "event_type": event_type_str,
            "payload": payload,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        self._events.append(event)
        if self._on_event:
            self._on_event(event_type_str, payload)

    @property
    def events(self) -> list[dict]:
        """Get all emitted events (for testing/debugging)."""
        return self._events.copy()

    def events_of(self, event_type: EventType | str) -> list[dict]:
        event_type_str = event_type.value if hasattr(event_type, "value") else str(event_type)
        return [e for e in self._events if e["event_type"] == event_type_str]

    def clear_events(self) -> None:
        """Clear all events (for testing)."""
        self._events.clear()
