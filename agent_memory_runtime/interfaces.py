"""
Core interfaces shared by the agent, the model clients and the memory layer.

Messages handed to models are plain dicts ("core messages"):

    {"role": "user", "content": "Hello"}
    {"role": "assistant", "content": [
        {"type": "text", "text": "Let me check."},
        {"type": "tool-call", "tool_call_id": "call_1",
         "tool_name": "get_weather", "args": {"city": "Paris"}},
    ]}
    {"role": "tool", "content": [
        {"type": "tool-result", "tool_call_id": "call_1",
         "tool_name": "get_weather", "result": {"temp": 21}},
    ]}

Model clients convert this neutral shape to and from their provider's
format.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, AsyncIterator, Optional

Message = dict[str, Any]

TEXT = "text"
TOOL_CALL = "tool-call"
TOOL_RESULT = "tool-result"


class Provider(str, Enum):
    """Model providers the runtime can talk to."""

    OPENAI = "openai"
    ANTHROPIC = "anthropic"


class EventType(str, Enum):
    """Events emitted on a RunContext during a run."""

    RUN_STARTED = "run.started"
    RUN_SUCCEEDED = "run.succeeded"
    RUN_FAILED = "run.failed"
    STEP_STARTED = "step.started"
    STEP_FINISHED = "step.finished"
    TOOL_CALL = "tool.call"
    TOOL_RESULT = "tool.result"
    ASSISTANT_MESSAGE = "assistant.message"
    MEMORY_DEGRADED = "memory.degraded"
    ERROR = "error"


# =============================================================================
# Content helpers
# =============================================================================


def text_part(text: str) -> dict:
    return {"type": TEXT, "text": text}


def tool_call_part(tool_call_id: str, tool_name: str, args: dict) -> dict:
    return {
        "type": TOOL_CALL,
        "tool_call_id": tool_call_id,
        "tool_name": tool_name,
        "args": args,
    }


def tool_result_part(
    tool_call_id: str,
    tool_name: str,
    result: Any,
    is_error: bool = False,
) -> dict:
    part = {
        "type": TOOL_RESULT,
        "tool_call_id": tool_call_id,
        "tool_name": tool_name,
        "result": result,
    }
    if is_error:
        part["is_error"] = True
    return part


def content_parts(message: Message) -> list[dict]:
    """Return a message's content as a list of parts."""
    content = message.get("content", "")
    if isinstance(content, str):
        return [text_part(content)] if content else []
    return list(content or [])


def message_text(message: Message) -> str:
    """Concatenate the text parts of a message."""
    content = message.get("content", "")
    if isinstance(content, str):
        return content
    return "".join(
        part.get("text", "") for part in content or [] if part.get("type") == TEXT
    )


# =============================================================================
# LLM interface
# =============================================================================


@dataclass
class LLMToolCall:
    """A tool call requested by the model."""

    id: str
    name: str
    arguments: dict = field(default_factory=dict)

    def to_part(self) -> dict:
        return tool_call_part(self.id, self.name, self.arguments)


@dataclass
class LLMResponse:
    """Complete (non-streamed) model output for one step."""

    message: Message
    usage: dict = field(default_factory=dict)
    model: str = ""
    finish_reason: str = ""
    raw_response: Any = None

    @property
    def text(self) -> str:
        return message_text(self.message)

    @property
    def tool_calls(self) -> list[LLMToolCall]:
        return [
            LLMToolCall(
                id=part["tool_call_id"],
                name=part["tool_name"],
                arguments=part.get("args") or {},
            )
            for part in content_parts(self.message)
            if part.get("type") == TOOL_CALL
        ]


@dataclass
class LLMStreamChunk:
    """
    One increment of a streamed model response.

    Text arrives as `delta`. Tool calls are reported once they are complete.
    The final chunk carries `finish_reason` and, when known, `usage`.
    """

    delta: str = ""
    tool_calls: list[LLMToolCall] = field(default_factory=list)
    finish_reason: Optional[str] = None
    usage: Optional[dict] = None


class LLMClient(ABC):
    """
    Capability interface every model provider implements.

    `generate` and `stream` are required. `embed` is optional; providers
    without an embedding endpoint keep the default.
    """

    provider: Optional[Provider] = None

    @abstractmethod
    async def generate(
        self,
        messages: list[Message],
        *,
        model: Optional[str] = None,
        tools: Optional[list[dict]] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        **kwargs,
    ) -> LLMResponse:
        """Generate a complete response."""
        ...

    @abstractmethod
    def stream(
        self,
        messages: list[Message],
        *,
        model: Optional[str] = None,
        tools: Optional[list[dict]] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        **kwargs,
    ) -> AsyncIterator[LLMStreamChunk]:
        """Stream a response as an async iterator of chunks."""
        ...

    async def embed(self, text: str) -> list[float]:
        """Embed text with this provider. Not every provider supports it."""
        raise NotImplementedError(
            f"{type(self).__name__} does not provide embeddings"
        )

    async def close(self) -> None:
        """Close any connections. Override if needed."""
        pass
