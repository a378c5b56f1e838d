"""
Bounded tool-calling loop.

One step is one model call. If the model answers with tool calls, they are
executed concurrently, their results are appended as a single tool message
and the loop calls the model again. The loop ends when the model answers
without tool calls. A step at the bound that still asks for tools raises
StepLimitExceeded instead of running them.

Two variants share this logic:
- run_agentic_loop: one-shot, returns an AgenticLoopResult
- stream_agentic_loop: async generator of wire-format frames
"""

import asyncio
import logging
from contextlib import aclosing
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Optional

from agent_memory_runtime.contexts import RunContext
from agent_memory_runtime.exceptions import StepLimitExceeded, ToolError, ToolInputError
from agent_memory_runtime.interfaces import (
    EventType,
    LLMClient,
    LLMToolCall,
    Message,
    text_part,
    tool_result_part,
)
from agent_memory_runtime.streaming.wire import (
    ERROR_PREFIX,
    error_frame,
    finish_message_frame,
    finish_step_frame,
    text_frame,
    tool_call_frame,
    tool_result_frame,
)
from agent_memory_runtime.tools.adapter import CoreTool

logger = logging.getLogger(__name__)


@dataclass
class UsageStats:
    """Accumulated token usage across the model calls of a run."""

    total_prompt_tokens: int = 0
    total_completion_tokens: int = 0
    llm_calls: int = 0
    tool_calls: int = 0

    def add_llm_call(self, usage: Optional[dict]) -> None:
        usage = usage or {}
        self.llm_calls += 1
        self.total_prompt_tokens += usage.get("prompt_tokens", 0)
        self.total_completion_tokens += usage.get("completion_tokens", 0)

    def add_tool_calls(self, count: int) -> None:
        self.tool_calls += count

    def to_dict(self) -> dict:
        return {
            "prompt_tokens": self.total_prompt_tokens,
            "completion_tokens": self.total_completion_tokens,
            "total_tokens": self.total_prompt_tokens + self.total_completion_tokens,
            "llm_calls": self.llm_calls,
            "tool_calls": self.tool_calls,
        }


@dataclass
class AgenticLoopResult:
    """Result from running the loop."""

    final_content: str = ""
    """The final text response from the model."""

    messages: list[Message] = field(default_factory=list)
    """Messages produced by the run: assistant and tool messages, in order."""

    steps: int = 0
    """Number of model calls made."""

    usage_stats: UsageStats = field(default_factory=UsageStats)

    finish_reason: str = ""

    completed: bool = False
    """False if a streamed run ended on a provider error."""

    @property
    def usage(self) -> dict:
        return self.usage_stats.to_dict()


def _tool_schemas(tools: Optional[dict[str, CoreTool]]) -> Optional[list[dict]]:
    if not tools:
        return None
    return [tool.to_openai_format() for tool in tools.values()]


def _assistant_message(text: str, tool_calls: list[LLMToolCall]) -> Message:
    content = [text_part(text)] if text else []
    content.extend(call.to_part() for call in tool_calls)
    return {"role": "assistant", "content": content}


async def execute_tool_calls(
    tool_calls: list[LLMToolCall],
    tools: dict[str, CoreTool],
    ctx: RunContext,
) -> Message:
    """
    Run the tool calls of one step concurrently.

    Returns one tool message with a tool-result part per call, in the order
    the model issued the calls. Failures become results flagged is_error.
    """

    async def run_one(call: LLMToolCall) -> dict:
        await ctx.emit(EventType.TOOL_CALL, {
            "id": call.id,
            "name": call.name,
            "arguments": call.arguments,
        })

        is_error = False
        tool = tools.get(call.name)
        if tool is None:
            logger.warning(f"Model called unknown tool {call.name} (run_id={ctx.run_id})")
            result: Any = {"error": f"Unknown tool: {call.name}"}
            is_error = True
        else:
            try:
                result = await tool.execute(call.arguments)
            except ToolInputError as e:
                logger.warning(str(e))
                result = {"error": str(e)}
                is_error = True
            except ToolError as e:
                result = {"error": str(e)}
                is_error = True

        await ctx.emit(EventType.TOOL_RESULT, {
            "tool_call_id": call.id,
            "name": call.name,
            "result": result,
            "is_error": is_error,
        })
        return tool_result_part(call.id, call.name, result, is_error=is_error)

    # gather returns results in call order, whatever order they finish in
    parts = await asyncio.gather(*(run_one(call) for call in tool_calls))
    return {"role": "tool", "content": list(parts)}


def _check_max_steps(max_steps: int) -> None:
    if max_steps < 1:
        raise ValueError(f"max_steps must be at least 1, got {max_steps}")


async def run_agentic_loop(
    llm: LLMClient,
    messages: list[Message],
    tools: Optional[dict[str, CoreTool]],
    ctx: RunContext,
    *,
    model: Optional[str] = None,
    max_steps: int = 5,
    temperature: Optional[float] = None,
    **llm_kwargs,
) -> AgenticLoopResult:
    """
    Run the tool-calling loop to completion.

    Args:
        llm: The model client
        messages: Context messages (system first)
        tools: Run-bound tools by name, or None
        ctx: Run context for events
        model: Model to use (passed to the client)
        max_steps: Maximum number of model calls
        temperature: Sampling temperature
        **llm_kwargs: Additional kwargs passed to llm.generate()

    Raises:
        StepLimitExceeded: The model still requested tools at the last step
    """
    _check_max_steps(max_steps)
    result = AgenticLoopResult()
    schemas = _tool_schemas(tools)

    for step in range(1, max_steps + 1):
        result.steps = step
        logger.debug(f"Agentic loop step {step}/{max_steps} (run_id={ctx.run_id})")
        await ctx.emit(EventType.STEP_STARTED, {"step": step})

        response = await llm.generate(
            [*messages, *result.messages],
            model=model,
            tools=schemas,
            temperature=temperature,
            **llm_kwargs,
        )
        result.usage_stats.add_llm_call(response.usage)
        result.finish_reason = response.finish_reason
        result.messages.append(response.message)

        tool_calls = response.tool_calls
        if not tool_calls:
            result.final_content = response.text
            result.completed = True
            if result.final_content:
                await ctx.emit(EventType.ASSISTANT_MESSAGE, {
                    "content": result.final_content,
                    "role": "assistant",
                })
            await ctx.emit(EventType.STEP_FINISHED, {"step": step, "finish_reason": result.finish_reason})
            return result

        if step == max_steps:
            raise StepLimitExceeded(max_steps, messages=result.messages)

        result.usage_stats.add_tool_calls(len(tool_calls))
        result.messages.append(await execute_tool_calls(tool_calls, tools or {}, ctx))
        await ctx.emit(EventType.STEP_FINISHED, {"step": step, "finish_reason": "tool-calls"})

    # Unreachable: the last step either returns or raises
    raise StepLimitExceeded(max_steps, messages=result.messages)


async def stream_agentic_loop(
    llm: LLMClient,
    messages: list[Message],
    tools: Optional[dict[str, CoreTool]],
    ctx: RunContext,
    result: AgenticLoopResult,
    *,
    model: Optional[str] = None,
    max_steps: int = 5,
    temperature: Optional[float] = None,
    **llm_kwargs,
) -> AsyncIterator[bytes]:
    """
    Streaming variant of run_agentic_loop.

    Yields wire-format frames: text deltas (0), tool calls (9), tool results
    (a), step finishes (e) and the final message finish (d). `result` is
    filled in as the run progresses; `result.completed` is set once the
    model produced its final answer.

    A provider error ends the stream with an error frame (3) instead of
    raising. StepLimitExceeded is raised from the generator.
    """
    _check_max_steps(max_steps)
    schemas = _tool_schemas(tools)

    for step in range(1, max_steps + 1):
        result.steps = step
        logger.debug(f"Streaming loop step {step}/{max_steps} (run_id={ctx.run_id})")
        await ctx.emit(EventType.STEP_STARTED, {"step": step})

        text = ""
        tool_calls: list[LLMToolCall] = []
        finish_reason = ""
        usage: Optional[dict] = None
        try:
            async with aclosing(llm.stream(
                [*messages, *result.messages],
                model=model,
                tools=schemas,
                temperature=temperature,
                **llm_kwargs,
            )) as chunks:
                async for chunk in chunks:
                    if chunk.delta:
                        text += chunk.delta
                        yield text_frame(chunk.delta)
                    tool_calls.extend(chunk.tool_calls)
                    if chunk.finish_reason:
                        finish_reason = chunk.finish_reason
                    if chunk.usage:
                        usage = chunk.usage
        except Exception as e:
            logger.exception(f"Model stream failed at step {step} (run_id={ctx.run_id})")
            await ctx.emit(EventType.ERROR, {"error": str(e), "step": step})
            yield error_frame(f"{ERROR_PREFIX}{type(e).__name__}: {e}")
            return

        result.usage_stats.add_llm_call(usage)
        result.finish_reason = finish_reason
        result.messages.append(_assistant_message(text, tool_calls))

        if not tool_calls:
            result.final_content = text
            result.completed = True
            if text:
                await ctx.emit(EventType.ASSISTANT_MESSAGE, {"content": text, "role": "assistant"})
            await ctx.emit(EventType.STEP_FINISHED, {"step": step, "finish_reason": finish_reason})
            yield finish_step_frame(finish_reason or "stop", usage)
            yield finish_message_frame(finish_reason or "stop", result.usage)
            return

        for call in tool_calls:
            yield tool_call_frame(call.id, call.name, call.arguments)

        if step == max_steps:
            raise StepLimitExceeded(max_steps, messages=result.messages)

        result.usage_stats.add_tool_calls(len(tool_calls))
        tool_message = await execute_tool_calls(tool_calls, tools or {}, ctx)
        result.messages.append(tool_message)
        for part in tool_message["content"]:
            yield tool_result_frame(part["tool_call_id"], part["result"])
        await ctx.emit(EventType.STEP_FINISHED, {"step": step, "finish_reason": "tool-calls"})
        yield finish_step_frame("tool-calls", usage, is_continued=False)
