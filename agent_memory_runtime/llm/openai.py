"""
OpenAI Chat Completions client over core messages.
"""

import json
import logging
from typing import AsyncIterator, Optional

from openai import AsyncOpenAI

from agent_memory_runtime.config import get_config
from agent_memory_runtime.exceptions import ConfigurationError
from agent_memory_runtime.interfaces import (
    TEXT,
    TOOL_CALL,
    TOOL_RESULT,
    LLMClient,
    LLMResponse,
    LLMStreamChunk,
    LLMToolCall,
    Message,
    Provider,
    content_parts,
    message_text,
    text_part,
    tool_call_part,
)
from agent_memory_runtime.llm.models_config import DEFAULT_MODELS

logger = logging.getLogger(__name__)

FINISH_REASONS = {
    "stop": "stop",
    "tool_calls": "tool-calls",
    "function_call": "tool-calls",
    "length": "length",
    "content_filter": "content-filter",
}


class OpenAIConfigurationError(ConfigurationError):
    """Raised when OpenAI API key is not configured."""
    pass


def _parse_arguments(raw: Optional[str], tool_name: str) -> dict:
    if not raw:
        return {}
    try:
        args = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning(f"Failed to parse arguments for tool {tool_name}: {raw}")
        return {}
    return args if isinstance(args, dict) else {}


def _usage(usage) -> dict:
    if usage is None:
        return {}
    return {
        "prompt_tokens": usage.prompt_tokens,
        "completion_tokens": usage.completion_tokens,
        "total_tokens": usage.total_tokens,
    }


class OpenAIClient(LLMClient):
    """
    OpenAI API client.

    Supports chat completion models and, through `embed`, embeddings.
    """

    provider = Provider.OPENAI

    def __init__(
        self,
        api_key: Optional[str] = None,
        default_model: Optional[str] = None,
        **kwargs,
    ):
        config = get_config()

        self.default_model = default_model or config.default_model or DEFAULT_MODELS[Provider.OPENAI]
        self.embedding_model = config.embedding_model

        # Priority: explicit key, then config, then OPENAI_API_KEY
        resolved_api_key = api_key or config.get_openai_api_key()

        if not resolved_api_key:
            raise OpenAIConfigurationError.missing_api_key("openai", "OPENAI_API_KEY", "sk-...")

        self._client = AsyncOpenAI(api_key=resolved_api_key, **kwargs)

    def _build_request(
        self,
        messages: list[Message],
        model: Optional[str],
        tools: Optional[list[dict]],
        temperature: Optional[float],
        max_tokens: Optional[int],
        kwargs: dict,
    ) -> dict:
        converted = []
        for msg in messages:
            converted.extend(self._convert_message(msg))

        request_kwargs = {
            "model": model or self.default_model,
            "messages": converted,
        }
        if tools:
            request_kwargs["tools"] = tools
        if temperature is not None:
            request_kwargs["temperature"] = temperature
        if max_tokens is not None:
            request_kwargs["max_tokens"] = max_tokens

        request_kwargs.update(kwargs)
        return request_kwargs

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
        """Generate a completion from OpenAI."""
        request_kwargs = self._build_request(messages, model, tools, temperature, max_tokens, kwargs)
        response = await self._client.chat.completions.create(**request_kwargs)

        choice = response.choices[0]
        parts = []
        if choice.message.content:
            parts.append(text_part(choice.message.content))
        for tool_call in choice.message.tool_calls or []:
            parts.append(tool_call_part(
                tool_call.id,
                tool_call.function.name,
                _parse_arguments(tool_call.function.arguments, tool_call.function.name),
            ))

        return LLMResponse(
            message={"role": "assistant", "content": parts},
            usage=_usage(response.usage),
            model=response.model,
            finish_reason=FINISH_REASONS.get(choice.finish_reason, choice.finish_reason or ""),
            raw_response=response,
        )

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
        """
        Stream a completion from OpenAI.

        Tool call fragments are accumulated by index and yielded once the
        model finishes. The last chunk carries finish_reason and usage.
        """
        request_kwargs = self._build_request(messages, model, tools, temperature, max_tokens, kwargs)
        request_kwargs["stream"] = True
        request_kwargs["stream_options"] = {"include_usage": True}

        pending: dict[int, dict] = {}
        finish_reason = ""
        usage: dict = {}

        response = await self._client.chat.completions.create(**request_kwargs)
        async with response:
            async for chunk in response:
                if chunk.usage is not None:
                    usage = _usage(chunk.usage)
                if not chunk.choices:
                    continue
                choice = chunk.choices[0]
                delta = choice.delta
                if delta.content:
                    yield LLMStreamChunk(delta=delta.content)
                for fragment in delta.tool_calls or []:
                    entry = pending.setdefault(fragment.index, {"id": "", "name": "", "arguments": ""})
                    if fragment.id:
                        entry["id"] = fragment.id
                    if fragment.function is not None:
                        if fragment.function.name:
                            entry["name"] = fragment.function.name
                        if fragment.function.arguments:
                            entry["arguments"] += fragment.function.arguments
                if choice.finish_reason:
                    finish_reason = FINISH_REASONS.get(choice.finish_reason, choice.finish_reason)

        if pending:
            yield LLMStreamChunk(tool_calls=[
                LLMToolCall(
                    id=entry["id"],
                    name=entry["name"],
                    arguments=_parse_arguments(entry["arguments"], entry["name"]),
                )
                for _, entry in sorted(pending.items())
            ])
        yield LLMStreamChunk(finish_reason=finish_reason or "stop", usage=usage)

    async def embed(self, text: str) -> list[float]:
        response = await self._client.embeddings.create(model=self.embedding_model, input=text)
        return response.data[0].embedding

    def _convert_message(self, msg: Message) -> list[dict]:
        """
        Convert a core message to OpenAI format.

        A tool message becomes one OpenAI tool message per tool result.
        """
        role = msg.get("role", "user")
        content = msg.get("content", "")

        if role == "tool":
            converted = []
            for part in content_parts(msg):
                if part.get("type") != TOOL_RESULT:
                    continue
                result = part.get("result")
                converted.append({
                    "role": "tool",
                    "tool_call_id": part["tool_call_id"],
                    "content": result if isinstance(result, str) else json.dumps(result),
                })
            return converted

        if role == "assistant" and not isinstance(content, str):
            tool_calls = [
                {
                    "id": part["tool_call_id"],
                    "type": "function",
                    "function": {
                        "name": part["tool_name"],
                        "arguments": json.dumps(part.get("args") or {}),
                    },
                }
                for part in content
                if part.get("type") == TOOL_CALL
            ]
            converted = {"role": "assistant", "content": message_text(msg) or None}
            if tool_calls:
                converted["tool_calls"] = tool_calls
            return [converted]

        if isinstance(content, str):
            return [{"role": role, "content": content}]
        return [{
            "role": role,
            "content": [
                {"type": "text", "text": part["text"]}
                for part in content
                if part.get("type") == TEXT
            ],
        }]

    async def close(self) -> None:
        await self._client.close()
