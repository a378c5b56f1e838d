"""
Context window assembly.

The model always sees exactly:

    [system message, *recalled messages, *new messages]

The system message carries the agent instructions, the current date and
time, and the thread's memory note. It is always first and there is only
one: system messages found among the inputs are folded into it.
"""

from datetime import datetime
from typing import Optional, Union

from agent_memory_runtime.interfaces import Message, message_text
from agent_memory_runtime.persistence.base import MemoryMessage

SYSTEM_ROLE = "system"


def format_time(now: datetime) -> str:
    """Format a time as h:mm AM/PM, e.g. 3:07 PM."""
    hour = now.strftime("%I").lstrip("0")
    return f"{hour}:{now.strftime('%M %p')}"


def build_system_prompt(
    instructions: str,
    system_memory_note: Optional[str] = None,
    now: Optional[datetime] = None,
    extra: Optional[list[str]] = None,
) -> str:
    now = now or datetime.now().astimezone()
    prompt = (
        f"{instructions}\n\n"
        f"Today's date is {now.isoformat()} and the time is {format_time(now)}"
    )
    if system_memory_note:
        prompt += f"\n\n{system_memory_note}"
    for text in extra or []:
        if text:
            prompt += f"\n\n{text}"
    return prompt


def build(
    instructions: str,
    system_memory_note: Optional[str],
    recalled: list[Union[MemoryMessage, Message]],
    new_messages: list[Message],
    now: Optional[datetime] = None,
) -> list[Message]:
    """
    Build the ordered message list for a model call.

    Args:
        instructions: Agent instructions
        system_memory_note: The thread's memory note, if any
        recalled: Messages recalled from memory, in thread order
        new_messages: Messages of the current request
        now: Override for the current time

    Returns:
        [system, *recalled, *new_messages] with recalled messages that also
        appear in new_messages removed
    """
    folded: list[str] = []

    new_ids = {m.get("id") for m in new_messages if m.get("id")}
    seen: set[str] = set()
    history: list[Message] = []
    for item in recalled:
        message = item.to_core_message() if isinstance(item, MemoryMessage) else dict(item)
        message_id = message.get("id")
        if message_id and (message_id in new_ids or message_id in seen):
            continue
        if message_id:
            seen.add(message_id)
        if message.get("role") == SYSTEM_ROLE:
            folded.append(message_text(message))
            continue
        history.append(message)

    current: list[Message] = []
    for message in new_messages:
        if message.get("role") == SYSTEM_ROLE:
            folded.append(message_text(message))
            continue
        current.append(message)

    system = {
        "role": SYSTEM_ROLE,
        "content": build_system_prompt(instructions, system_memory_note, now, folded),
    }
    return [system, *history, *current]
