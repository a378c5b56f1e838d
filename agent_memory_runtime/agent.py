"""
Agent: a model with instructions, tools and conversation memory.

A run moves through four phases:

    BEFORE      normalise input, resolve the thread, recall memory, persist
                the new user messages, build the context, bind tools
    MODEL_CALL  bounded step loop, one-shot or streamed
    AFTER       sanitize and persist the response, schedule metric hooks
    DONE

Memory failures never fail a run unless MemoryOptions.required is set:
BEFORE falls back to an empty history and AFTER logs the failed write-back
while the answer is still returned.

Example:
    agent = Agent(
        name="support",
        instructions="You answer billing questions.",
        llm=get_llm_client(model="gpt-4o-mini"),
        tools={"lookup_invoice": lookup_invoice},
        memory=MemoryManager(FileThreadStore()),
    )

    result = await agent.generate("Where is my invoice?", thread_id="t-1", resource_id="user-1")
    print(result.text)

    async for frame in agent.stream("And the previous one?", thread_id="t-1", resource_id="user-1"):
        ...
"""

import asyncio
import json
import logging
import weakref
from contextlib import aclosing
from dataclasses import dataclass, field
from enum import Enum
from typing import AsyncIterator, Optional, Union
from uuid import uuid4

from agent_memory_runtime import context_builder
from agent_memory_runtime.agentic_loop import (
    AgenticLoopResult,
    run_agentic_loop,
    stream_agentic_loop,
)
from agent_memory_runtime.config import get_config
from agent_memory_runtime.contexts import RunContext
from agent_memory_runtime.exceptions import ConfigurationError, PersistenceError
from agent_memory_runtime.hooks import HookRunner, Metric
from agent_memory_runtime.interfaces import EventType, LLMClient, Message, message_text
from agent_memory_runtime.memory.manager import MemoryManager, MemoryOptions
from agent_memory_runtime.persistence.base import MemoryMessage, Thread, utcnow
from agent_memory_runtime.sanitizer import sanitize_response_messages
from agent_memory_runtime.streaming.decoder import ChatState, consume_stream
from agent_memory_runtime.tools.adapter import CoreTool, ToolAction, ToolAdapter
from agent_memory_runtime.tools.cache import ToolResultCache

logger = logging.getLogger(__name__)

DEFAULT_THREAD_TITLE = "New Thread"

TITLE_PROMPT = """
- you will generate a short title based on the first message a user begins a conversation with
- ensure it is not more than 80 characters long
- the title should be a summary of the user's message
- do not use quotes or colons"""

MessagesInput = Union[str, list[str], list[Message]]


class RunPhase(str, Enum):
    BEFORE = "before"
    MODEL_CALL = "model_call"
    AFTER = "after"
    DONE = "done"


@dataclass
class AgentContext:
    """Collaborators injected for a single call, overriding the agent's own."""

    memory: Optional[MemoryManager] = None
    tool_adapter: Optional[ToolAdapter] = None


@dataclass
class AgentResult:
    """Outcome of Agent.generate()."""

    text: str
    messages: list[Message]
    steps: int
    usage: dict
    thread_id: Optional[str]
    run_id: str
    events: list[dict] = field(default_factory=list)


@dataclass
class _Run:
    ctx: RunContext
    input_messages: list[Message]
    context_messages: list[Message]
    tools: Optional[dict[str, CoreTool]]
    memory: Optional[MemoryManager]
    options: MemoryOptions
    persist: bool = False
    phase: RunPhase = RunPhase.BEFORE


def normalize_messages(messages: MessagesInput) -> list[Message]:
    """Turn str / list[str] / list[dict] input into core messages with ids."""
    if isinstance(messages, str):
        messages = [messages]
    normalized = []
    for message in messages:
        if isinstance(message, str):
            message = {"role": "user", "content": message}
        else:
            message = dict(message)
        message.setdefault("id", str(uuid4()))
        normalized.append(message)
    return normalized


def _last_user_text(messages: list[Message]) -> str:
    for message in reversed(messages):
        if message.get("role") == "user":
            return message_text(message)
    return ""


def _new_messages(messages: list[Message]) -> list[Message]:
    """Messages a run adds to its thread: the latest user message, else every non-system input."""
    for message in reversed(messages):
        if message.get("role") == "user":
            return [message]
    return [m for m in messages if m.get("role") != "system"]


class Agent:
    """
    Memory-augmented, tool-calling agent.

    Args:
        name: Agent name, used in logs and hook events
        instructions: System instructions
        llm: An LLMClient, or a model id resolved with get_llm_client()
        tools: First-party tools by name
        metrics: Metric hooks by name, run after every generation
        memory: Default memory for runs that pass a resource_id
        max_steps: Default step bound (falls back to config.max_steps)
        serialize_thread_writes: Serialize write-back of runs sharing a thread
        tool_cache: Result cache used by tools with enable_cache set
    """

    def __init__(
        self,
        name: str,
        instructions: str,
        llm: Optional[Union[LLMClient, str]],
        tools: Optional[dict[str, ToolAction]] = None,
        metrics: Optional[dict[str, Metric]] = None,
        memory: Optional[MemoryManager] = None,
        max_steps: Optional[int] = None,
        serialize_thread_writes: bool = True,
        tool_cache: Optional[ToolResultCache] = None,
    ):
        if llm is None:
            raise ConfigurationError(f"Agent {name} requires an llm")

        self.model: Optional[str] = None
        if isinstance(llm, str):
            from agent_memory_runtime.llm import get_llm_client, split_model_id

            self.model = split_model_id(llm)[1]
            llm = get_llm_client(model=llm)

        self.name = name
        self.instructions = instructions
        self.llm = llm
        self.tools = tools or {}
        self.metrics = metrics or {}
        self.memory = memory
        self.max_steps = max_steps
        self.serialize_thread_writes = serialize_thread_writes
        self.tool_adapter = ToolAdapter(cache=tool_cache)
        self.hooks = HookRunner()
        self._thread_locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    def __repr__(self) -> str:
        return f"Agent({self.name!r})"

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    async def generate(
        self,
        messages: MessagesInput,
        *,
        thread_id: Optional[str] = None,
        resource_id: Optional[str] = None,
        run_id: Optional[str] = None,
        toolsets: Optional[dict[str, dict[str, ToolAction]]] = None,
        max_steps: Optional[int] = None,
        memory_options: Optional[MemoryOptions] = None,
        context: Optional[AgentContext] = None,
        temperature: Optional[float] = None,
    ) -> AgentResult:
        """
        Run the agent to completion.

        Raises:
            StepLimitExceeded: The model still requested tools at the last step
        """
        run = await self._before(
            messages,
            thread_id=thread_id,
            resource_id=resource_id,
            run_id=run_id,
            toolsets=toolsets,
            max_steps=max_steps,
            memory_options=memory_options,
            context=context,
        )

        run.phase = RunPhase.MODEL_CALL
        try:
            result = await run_agentic_loop(
                self.llm,
                run.context_messages,
                run.tools,
                run.ctx,
                model=self.model,
                max_steps=run.ctx.max_steps,
                temperature=temperature,
            )
        except Exception as e:
            await run.ctx.emit(EventType.RUN_FAILED, {"error": str(e), "phase": run.phase.value})
            raise

        await self._after(run, result)
        return AgentResult(
            text=result.final_content,
            messages=result.messages,
            steps=result.steps,
            usage=result.usage,
            thread_id=run.ctx.thread_id,
            run_id=run.ctx.run_id,
            events=run.ctx.events,
        )

    def stream(
        self,
        messages: MessagesInput,
        *,
        thread_id: Optional[str] = None,
        resource_id: Optional[str] = None,
        run_id: Optional[str] = None,
        toolsets: Optional[dict[str, dict[str, ToolAction]]] = None,
        max_steps: Optional[int] = None,
        memory_options: Optional[MemoryOptions] = None,
        context: Optional[AgentContext] = None,
        temperature: Optional[float] = None,
    ) -> "AgentStream":
        """
        Start a streamed run. Nothing happens until the stream is iterated
        or consumed.
        """
        return AgentStream(
            self,
            messages,
            dict(
                thread_id=thread_id,
                resource_id=resource_id,
                run_id=run_id or str(uuid4()),
                toolsets=toolsets,
                max_steps=max_steps,
                memory_options=memory_options,
                context=context,
            ),
            temperature=temperature,
        )

    async def wait_for_hooks(self) -> None:
        """Wait for background metric hooks started by previous runs."""
        await self.hooks.wait()

    # -------------------------------------------------------------------------
    # Phases
    # -------------------------------------------------------------------------

    def _thread_lock(self, thread_id: str) -> asyncio.Lock:
        lock = self._thread_locks.get(thread_id)
        if lock is None:
            lock = asyncio.Lock()
            self._thread_locks[thread_id] = lock
        return lock

    async def _save(self, memory: MemoryManager, thread_id: str, messages: list[MemoryMessage]) -> None:
        if not messages:
            return
        if self.serialize_thread_writes:
            async with self._thread_lock(thread_id):
                await memory.save_messages(messages)
        else:
            await memory.save_messages(messages)

    async def _before(
        self,
        messages: MessagesInput,
        *,
        thread_id: Optional[str],
        resource_id: Optional[str],
        run_id: Optional[str],
        toolsets: Optional[dict[str, dict[str, ToolAction]]],
        max_steps: Optional[int],
        memory_options: Optional[MemoryOptions],
        context: Optional[AgentContext],
    ) -> _Run:
        context = context or AgentContext()
        input_messages = normalize_messages(messages)
        memory = context.memory or self.memory
        options = memory_options or MemoryOptions()

        ctx = RunContext(
            run_id=run_id,
            thread_id=thread_id,
            resource_id=resource_id,
            instructions=self.instructions,
            toolsets=toolsets,
            max_steps=max_steps or self.max_steps or get_config().max_steps,
            agent_name=self.name,
        )
        await ctx.emit(EventType.RUN_STARTED, {"agent": self.name, "thread_id": thread_id})

        recalled: list[MemoryMessage] = []
        memory_note = None
        persist = False
        if memory is not None and resource_id:
            try:
                thread = await self._resolve_thread(memory, thread_id, resource_id, input_messages, options)
                ctx.thread_id = thread.id

                recalled = await memory.remember_messages(
                    thread.id,
                    vector_query=_last_user_text(input_messages),
                    options=options,
                )

                created_at = utcnow()
                await self._save(memory, thread.id, [
                    MemoryMessage.from_core_message(m, thread.id, m["id"], created_at=created_at)
                    for m in _new_messages(input_messages)
                ])
                persist = True
                logger.debug(f"Saved input messages to thread {thread.id} (run_id={ctx.run_id})")

                memory_note = await memory.get_system_message(thread.id)
            except PersistenceError as e:
                if options.required:
                    await ctx.emit(EventType.RUN_FAILED, {"error": str(e), "phase": RunPhase.BEFORE.value})
                    raise
                logger.warning(f"Memory unavailable for run {ctx.run_id}, continuing without history: {e}")
                await ctx.emit(EventType.MEMORY_DEGRADED, {"phase": RunPhase.BEFORE.value, "error": str(e)})
                recalled = []
                memory_note = None
        elif memory is not None:
            logger.debug(f"No resource_id for run {ctx.run_id}; memory disabled")

        context_messages = context_builder.build(
            self.instructions, memory_note, recalled, input_messages
        )

        tools = None
        if self.tools or toolsets or memory is not None:
            adapter = context.tool_adapter or self.tool_adapter
            tools = adapter.adapt(self.tools, ctx.tool_context(), toolsets)

        return _Run(
            ctx=ctx,
            input_messages=input_messages,
            context_messages=context_messages,
            tools=tools,
            memory=memory,
            options=options,
            persist=persist,
        )

    async def _resolve_thread(
        self,
        memory: MemoryManager,
        thread_id: Optional[str],
        resource_id: str,
        input_messages: list[Message],
        options: MemoryOptions,
    ) -> Thread:
        thread = await memory.get_thread_by_id(thread_id) if thread_id else None
        if thread is not None:
            return thread

        logger.debug(f"Creating thread {thread_id or '(new)'} for agent {self.name}")
        title = DEFAULT_THREAD_TITLE
        if options.generate_title:
            title = await self.generate_title(input_messages)
        return await memory.create_thread(resource_id, title=title, thread_id=thread_id)

    async def generate_title(self, messages: list[Message]) -> str:
        """Ask the model for a short thread title; falls back to "New Thread"."""
        user_message = next((m for m in reversed(messages) if m.get("role") == "user"), None)
        if user_message is None:
            return DEFAULT_THREAD_TITLE
        try:
            response = await self.llm.generate(
                [
                    {"role": "system", "content": TITLE_PROMPT},
                    {"role": "user", "content": json.dumps(
                        {"role": "user", "content": user_message.get("content", "")}
                    )},
                ],
                model=self.model,
            )
        except Exception as e:
            logger.warning(f"Error generating title: {e}")
            return DEFAULT_THREAD_TITLE
        title = response.text.replace('"', "").replace(":", "").strip()
        return title[:80] or DEFAULT_THREAD_TITLE

    async def _after(self, run: _Run, result: AgenticLoopResult) -> None:
        run.phase = RunPhase.AFTER
        response_messages = sanitize_response_messages(result.messages)

        if run.persist and run.memory is not None and response_messages:
            thread_id = run.ctx.thread_id
            created_at = utcnow()
            try:
                await self._save(run.memory, thread_id, [
                    MemoryMessage.from_core_message(
                        m, thread_id, run.memory.generate_id(), created_at=created_at
                    )
                    for m in response_messages
                ])
            except PersistenceError as e:
                if run.options.required:
                    await run.ctx.emit(EventType.RUN_FAILED, {"error": str(e), "phase": run.phase.value})
                    raise
                logger.error(f"Failed to save response of run {run.ctx.run_id} to thread {thread_id}: {e}")
                await run.ctx.emit(EventType.MEMORY_DEGRADED, {"phase": run.phase.value, "error": str(e)})

        if self.metrics:
            self.hooks.schedule(
                self.metrics,
                input="\n".join(message_text(m) for m in run.input_messages),
                output=result.final_content,
                run_id=run.ctx.run_id,
                agent_name=self.name,
            )

        await run.ctx.emit(EventType.RUN_SUCCEEDED, {"steps": result.steps, "usage": result.usage})
        run.phase = RunPhase.DONE


class AgentStream:
    """
    Handle on a streamed run.

    Iterate it for wire-format frames (bytes), or call `consume()` to decode
    them into an assistant message. A stream can be iterated once.

    AFTER runs only when the model finished normally; a stream that ended on
    an error frame or was closed early is not persisted.
    """

    def __init__(self, agent: Agent, messages: MessagesInput, options: dict, temperature: Optional[float] = None):
        self._agent = agent
        self._messages = messages
        self._options = options
        self._temperature = temperature
        self._iterator: Optional[AsyncIterator[bytes]] = None
        self.run_id: str = options["run_id"]
        self.thread_id: Optional[str] = options.get("thread_id")
        self.result: Optional[AgenticLoopResult] = None
        self.phase = RunPhase.BEFORE
        self.events: list[dict] = []

    def __aiter__(self) -> AsyncIterator[bytes]:
        if self._iterator is None:
            self._iterator = self._run()
        return self._iterator

    async def _run(self) -> AsyncIterator[bytes]:
        agent = self._agent
        run = await agent._before(self._messages, **self._options)
        self.thread_id = run.ctx.thread_id
        self.result = AgenticLoopResult()

        run.phase = self.phase = RunPhase.MODEL_CALL
        try:
            async with aclosing(stream_agentic_loop(
                agent.llm,
                run.context_messages,
                run.tools,
                run.ctx,
                self.result,
                model=agent.model,
                max_steps=run.ctx.max_steps,
                temperature=self._temperature,
            )) as frames:
                async for frame in frames:
                    yield frame
        except Exception as e:
            await run.ctx.emit(EventType.RUN_FAILED, {"error": str(e), "phase": run.phase.value})
            raise
        finally:
            self.events = run.ctx.events

        if self.result.completed:
            await agent._after(run, self.result)
        else:
            await run.ctx.emit(EventType.RUN_FAILED, {"error": "stream ended on error", "phase": run.phase.value})
        self.phase = run.phase
        self.events = run.ctx.events

    async def consume(
        self,
        chat_state: Optional[ChatState] = None,
        retain_partial: bool = True,
    ) -> Optional[Message]:
        """Decode the whole stream and return the final assistant message."""
        return await consume_stream(self, chat_state, retain_partial=retain_partial)

    async def aclose(self) -> None:
        if self._iterator is not None:
            await self._iterator.aclose()
