"""
Anthropic Messages API client over core messages.
"""

import json
import logging
from typing import AsyncIterator, Optional

from anthropic import AsyncAnthropic

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
from agent_memory_runtime.sanitizer import sanitize_response_messages

logger = logging.getLogger(__name__)

FINISH_REASONS = {
    "end_turn": "stop",
    "stop_sequence": "stop",
    "tool_use": "tool-calls",
    "max_tokens": "length",
}


class AnthropicConfigurationError(ConfigurationError):
    """Raised when Anthropic API key is not configured."""
    pass


class AnthropicClient(LLMClient):
    """
    Claude models through the Messages API.

    System messages become the top-level system prompt, tool messages become
    user turns of tool_result blocks, and tool_use blocks without a result are
    removed before sending.
    """

    provider = Provider.ANTHROPIC

    def __init__(
        self,
        api_key: Optional[str] = None,
        default_model: Optional[str] = None,
        **kwargs,
    ):
        config = get_config()

        self.default_model = default_model or config.default_model or DEFAULT_MODELS[Provider.ANTHROPIC]

        # Priority: explicit key, then config, then ANTHROPIC_API_KEY
        resolved_api_key = api_key or config.get_anthropic_api_key()

        if not resolved_api_key:
            raise AnthropicConfigurationError.missing_api_key("anthropic", "ANTHROPIC_API_KEY", "sk-ant-...")

        self._client = AsyncAnthropic(
            api_key=resolved_api_key,
            **kwargs,
        )

    def _build_request(
        self,
        messages: list[Message],
        model: Optional[str],
        tools: Optional[list[dict]],
        temperature: Optional[float],
        max_tokens: Optional[int],
        kwargs: dict,
    ) -> dict:
        # Anthropic rejects tool_use blocks without a tool_result
        messages = sanitize_response_messages(messages)

        system_parts = []
        converted_messages = []
        for msg in messages:
            if msg.get("role") == "system":
                system_parts.append(message_text(msg))
            else:
                converted_messages.append(self._convert_message(msg))

        request_kwargs = {
            "model": model or self.default_model,
            "messages": self._merge_consecutive_messages(converted_messages),
            "max_tokens": max_tokens or 4096,
        }
        if system_parts:
            request_kwargs["system"] = "\n\n".join(system_parts)
        if tools:
            request_kwargs["tools"] = self._convert_tools(tools)
        if temperature is not None:
            request_kwargs["temperature"] = temperature

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
        """One Messages API call; tools are given in OpenAI function format."""
        request_kwargs = self._build_request(messages, model, tools, temperature, max_tokens, kwargs)
        response = await self._client.messages.create(**request_kwargs)

        return LLMResponse(
            message=self._convert_response(response),
            usage={
                "prompt_tokens": response.usage.input_tokens,
                "completion_tokens": response.usage.output_tokens,
                "total_tokens": response.usage.input_tokens + response.usage.output_tokens,
            },
            model=response.model,
            finish_reason=FINISH_REASONS.get(response.stop_reason, response.stop_reason or ""),
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
        Stream a completion from Anthropic.

        Text is yielded as it arrives. Tool calls are yielded once their
        content block is complete. The last chunk carries finish_reason and usage.
        """
        request_kwargs = self._build_request(messages, model, tools, temperature, max_tokens, kwargs)

        async with self._client.messages.stream(**request_kwargs) as stream:
            async for event in stream:
                if event.type == "content_block_delta" and event.delta.type == "text_delta":
                    yield LLMStreamChunk(delta=event.delta.text)
                elif event.type == "content_block_stop" and event.content_block.type == "tool_use":
                    block = event.content_block
                    yield LLMStreamChunk(
                        tool_calls=[LLMToolCall(id=block.id, name=block.name, arguments=block.input or {})]
                    )

            final = await stream.get_final_message()
            yield LLMStreamChunk(
                finish_reason=FINISH_REASONS.get(final.stop_reason, final.stop_reason or "stop"),
                usage={
                    "prompt_tokens": final.usage.input_tokens,
                    "completion_tokens": final.usage.output_tokens,
                    "total_tokens": final.usage.input_tokens + final.usage.output_tokens,
                },
            )

    def _convert_message(self, msg: Message) -> dict:
        """
        Convert a core message to Anthropic format.

        Handles:
        - Regular user/assistant messages
        - Assistant tool-call parts (tool_use blocks)
        - Tool messages (user message with tool_result blocks)
        """
        role = msg.get("role", "user")

        # Tool results go as user messages with tool_result content blocks
        if role == "tool":
            blocks = []
            for part in content_parts(msg):
                if part.get("type") != TOOL_RESULT:
                    continue
                result = part.get("result")
                block = {
                    "type": "tool_result",
                    "tool_use_id": part["tool_call_id"],
                    "content": result if isinstance(result, str) else json.dumps(result),
                }
                if part.get("is_error"):
                    block["is_error"] = True
                blocks.append(block)
            return {"role": "user", "content": blocks}

        content = msg.get("content", "")
        if isinstance(content, str):
            return {"role": role, "content": content}

        blocks = []
        for part in content:
            kind = part.get("type")
            if kind == TEXT and part.get("text"):
                blocks.append({"type": "text", "text": part["text"]})
            elif kind == TOOL_CALL:
                blocks.append({
                    "type": "tool_use",
                    "id": part["tool_call_id"],
                    "name": part["tool_name"],
                    "input": part.get("args") or {},
                })
        return {"role": role, "content": blocks}

    def _merge_consecutive_messages(self, messages: list[dict]) -> list[dict]:
        """
        Merge consecutive messages with the same role.

        Anthropic requires that messages alternate between user and assistant roles.
        A tool message followed by a user message both become user messages and
        have to be combined into one with multiple content blocks.
        """
        merged = []
        for msg in messages:
            if merged and msg["role"] == merged[-1]["role"]:
                last_msg = merged[-1]
                last_msg["content"] = self._as_blocks(last_msg["content"]) + self._as_blocks(msg["content"])
            else:
                merged.append(dict(msg))
        return merged

    @staticmethod
    def _as_blocks(content) -> list[dict]:
        if isinstance(content, str):
            return [{"type": "text", "text": content}] if content else []
        return list(content)

    def _convert_tools(self, tools: list[dict]) -> list[dict]:
        """Convert OpenAI tool format to Anthropic format."""
        result = []
        for tool in tools:
            if tool.get("type") == "function":
                func = tool["function"]
                result.append({
                    "name": func["name"],
                    "description": func.get("description", ""),
                    "input_schema": func.get("parameters", {}),
                })
        return result

    def _convert_response(self, response) -> Message:
        """Convert an Anthropic response to an assistant core message."""
        parts = []
        for block in response.content:
            if block.type == "text" and block.text:
                parts.append(text_part(block.text))
            elif block.type == "tool_use":
                parts.append(tool_call_part(block.id, block.name, block.input or {}))
        return {"role": "assistant", "content": parts}

    async def close(self) -> None:
        await self._client.close()
