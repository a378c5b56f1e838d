"""
Response sanitizing before persistence.

A model response can end with tool calls that never got a result (the step
limit was hit, the stream was cut) or with empty text parts. Those are
removed so a thread never stores a tool call without its answer.
"""

from agent_memory_runtime.interfaces import TEXT, TOOL_CALL, TOOL_RESULT, Message


def sanitize_response_messages(messages: list[Message]) -> list[Message]:
    """
    Drop orphaned tool calls and empty text parts from assistant messages,
    then drop messages left without content.
    """
    answered = set()
    for message in messages:
        content = message.get("content")
        if isinstance(content, list):
            for part in content:
                if part.get("type") == TOOL_RESULT:
                    answered.add(part.get("tool_call_id"))

    sanitized = []
    for message in messages:
        content = message.get("content")
        if message.get("role") == "assistant" and isinstance(content, list):
            kept = []
            for part in content:
                kind = part.get("type")
                if kind == TOOL_CALL:
                    if part.get("tool_call_id") in answered:
                        kept.append(part)
                elif kind == TEXT:
                    if part.get("text"):
                        kept.append(part)
                else:
                    kept.append(part)
            message = {**message, "content": kept}
            content = kept

        if not content:
            continue
        sanitized.append(message)
    return sanitized
