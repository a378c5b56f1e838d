"""
Deterministic test doubles.

- MockLLMClient: replays scripted responses for generate() and stream()
- MockEmbeddingClient: bag-of-words hashing embeddings, no network
- FailingThreadStore: in-memory store whose chosen operations raise

Example:
    llm = MockLLMClient([
        [LLMToolCall(id="call_1", name="get_weather", arguments={"city": "Paris"})],
        "It is 21 degrees in Paris.",
    ])
    agent = Agent(name="test", instructions="...", llm=llm, tools=tools)
"""

import hashlib
import math
import re
from dataclasses import dataclass
from typing import AsyncIterator, Optional, Union

from agent_memory_runtime.interfaces import (
    LLMClient,
    LLMResponse,
    LLMStreamChunk,
    Message,
    text_part,
)
from agent_memory_runtime.persistence.memory import InMemoryThreadStore
from agent_memory_runtime.vectorstore.embeddings import EmbeddingClient

DEFAULT_USAGE = {"prompt_tokens": 10, "completion_tokens": 5, "total_tokens": 15}


@dataclass
class StreamInterrupted:
    """Scripted stream that yields `text` and then raises `error`."""

    text: str
    error: Exception


ScriptedResponse = Union[LLMResponse, str, list, Message, Exception, StreamInterrupted]


class MockLLMClient(LLMClient):
    """
    LLM client that replays scripted responses in order.

    Each response is one of:
    - str: a final text answer
    - list[LLMToolCall]: a tool-call step
    - dict: a full assistant message
    - LLMResponse: returned as is
    - Exception: raised by the call
    - StreamInterrupted: streams part of an answer, then raises

    Every call is recorded in `calls` as a dict of its arguments.
    """

    def __init__(
        self,
        responses: Optional[list[ScriptedResponse]] = None,
        chunk_size: int = 4,
        usage: Optional[dict] = None,
    ):
        self.responses = list(responses or [])
        self.chunk_size = chunk_size
        self.usage = usage if usage is not None else dict(DEFAULT_USAGE)
        self.calls: list[dict] = []
        self.closed = False

    def _next(self) -> ScriptedResponse:
        if not self.responses:
            raise RuntimeError("MockLLMClient has no scripted responses left")
        return self.responses.pop(0)

    def _record(self, method: str, messages: list[Message], **kwargs) -> None:
        self.calls.append({"method": method, "messages": list(messages), **kwargs})

    def _to_response(self, item: ScriptedResponse) -> LLMResponse:
        if isinstance(item, LLMResponse):
            return item
        if isinstance(item, str):
            message = {"role": "assistant", "content": [text_part(item)]}
            finish_reason = "stop"
        elif isinstance(item, list):
            message = {"role": "assistant", "content": [call.to_part() for call in item]}
            finish_reason = "tool-calls"
        else:
            message = item
            finish_reason = "stop"
        return LLMResponse(
            message=message,
            usage=dict(self.usage),
            model="mock",
            finish_reason=finish_reason,
        )

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
        self._record("generate", messages, model=model, tools=tools, temperature=temperature)
        item = self._next()
        if isinstance(item, Exception):
            raise item
        if isinstance(item, StreamInterrupted):
            raise item.error
        return self._to_response(item)

    async def stream(
        self,
        messages: list[Message],
        *,
        model: Optional[str] = None,
        tools: Optional[list[dict]] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        **kwargs,
    ) -> AsyncIterator[LLMStreamChunk]:
        self._record("stream", messages, model=model, tools=tools, temperature=temperature)
        item = self._next()
        if isinstance(item, Exception):
            raise item

        if isinstance(item, StreamInterrupted):
            for chunk in self._split(item.text):
                yield LLMStreamChunk(delta=chunk)
            raise item.error

        response = self._to_response(item)
        for chunk in self._split(response.text):
            yield LLMStreamChunk(delta=chunk)
        if response.tool_calls:
            yield LLMStreamChunk(tool_calls=response.tool_calls)
        yield LLMStreamChunk(finish_reason=response.finish_reason, usage=response.usage)

    def _split(self, text: str) -> list[str]:
        size = max(self.chunk_size, 1)
        return [text[i:i + size] for i in range(0, len(text), size)]

    async def close(self) -> None:
        self.closed = True


class MockEmbeddingClient(EmbeddingClient):
    """
    Hashing-trick embeddings: texts sharing words get similar vectors.

    Set `fail=True` to make every call raise.
    """

    def __init__(self, dimensions: int = 32, fail: bool = False):
        self._dimensions = dimensions
        self.fail = fail
        self.calls: list[str] = []

    @property
    def dimensions(self) -> int:
        return self._dimensions

    @property
    def model_name(self) -> str:
        return "mock-embeddings"

    async def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        if self.fail:
            raise RuntimeError("embedding service unavailable")

        vector = [0.0] * self._dimensions
        for word in re.findall(r"\w+", text.lower()):
            digest = hashlib.sha256(word.encode("utf-8")).digest()
            vector[int.from_bytes(digest[:4], "big") % self._dimensions] += 1.0

        norm = math.sqrt(sum(v * v for v in vector))
        if norm == 0:
            return vector
        return [v / norm for v in vector]


class FailingThreadStore(InMemoryThreadStore):
    """
    In-memory store that raises on the named operations.

    Example:
        store = FailingThreadStore(fail_on={"save_messages"})
    """

    def __init__(self, fail_on: Optional[set[str]] = None, error: Optional[Exception] = None):
        super().__init__()
        self.fail_on = set(fail_on or ())
        self.error = error or ConnectionError("thread store unavailable")

    def _check(self, operation: str) -> None:
        if operation in self.fail_on:
            raise self.error

    async def create_thread(self, *args, **kwargs):
        self._check("create_thread")
        return await super().create_thread(*args, **kwargs)

    async def get_thread_by_id(self, thread_id):
        self._check("get_thread_by_id")
        return await super().get_thread_by_id(thread_id)

    async def save_messages(self, messages):
        self._check("save_messages")
        return await super().save_messages(messages)

    async def get_messages(self, thread_id, last=None):
        self._check("get_messages")
        return await super().get_messages(thread_id, last=last)

    async def get_messages_around(self, thread_id, message_ids, message_range=0):
        self._check("get_messages_around")
        return await super().get_messages_around(thread_id, message_ids, message_range)

    async def get_system_message(self, thread_id):
        self._check("get_system_message")
        return await super().get_system_message(thread_id)
