"""
Abstract base classes and data model for thread persistence.

These interfaces define the contract that all storage backends must implement.
Projects can provide their own implementations (database-backed, cloud
storage, etc.) and hand them to a MemoryManager.

Example custom backend:
    class PostgresThreadStore(ThreadStore):
        def __init__(self, pool):
            self.pool = pool

        async def get_thread_by_id(self, thread_id: str) -> Optional[Thread]:
            row = await self.pool.fetchrow("SELECT * FROM threads WHERE id = $1", thread_id)
            return Thread.from_dict(dict(row)) if row else None
        ...

Backends raise PersistenceError when the underlying storage fails.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from agent_memory_runtime.interfaces import (
    Message,
    TOOL_CALL,
    TOOL_RESULT,
    content_parts,
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_datetime(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


class Scope(str, Enum):
    """
    Storage scope for file-backed stores.

    - GLOBAL: User's home directory (~/.agent_memory/)
    - PROJECT: Current working directory (./.agent_memory/)
    """

    GLOBAL = "global"
    PROJECT = "project"


class MessageRole(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class MessageType(str, Enum):
    TEXT = "text"
    TOOL_CALL = "tool-call"
    TOOL_RESULT = "tool-result"


@dataclass
class Thread:
    """A persisted conversation."""

    id: str
    resource_id: str
    title: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    metadata: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "resource_id": self.resource_id,
            "title": self.title,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Thread":
        return cls(
            id=data["id"],
            resource_id=data["resource_id"],
            title=data.get("title"),
            created_at=_parse_datetime(data.get("created_at")) or utcnow(),
            updated_at=_parse_datetime(data.get("updated_at")) or utcnow(),
            metadata=data.get("metadata", {}),
        )


@dataclass
class MemoryMessage:
    """
    A message persisted in a thread.

    `sequence` is assigned by the store when the message is saved and breaks
    ties between messages sharing a `created_at`.
    """

    id: str
    thread_id: str
    role: str  # system, user, assistant, tool
    content: str | list
    type: str = MessageType.TEXT.value
    created_at: datetime = field(default_factory=utcnow)

    # Tool call bookkeeping (assistant tool-call and tool-result messages)
    tool_call_ids: Optional[list[str]] = None
    tool_call_args: Optional[list[dict]] = None
    tool_names: Optional[list[str]] = None

    sequence: Optional[int] = None

    def sort_key(self) -> tuple:
        return (self.created_at, self.sequence if self.sequence is not None else 0)

    def to_core_message(self) -> Message:
        """Convert to the model-facing message shape."""
        return {"id": self.id, "role": self.role, "content": self.content}

    @classmethod
    def from_core_message(
        cls,
        message: Message,
        thread_id: str,
        message_id: str,
        created_at: Optional[datetime] = None,
    ) -> "MemoryMessage":
        """
        Build a persistable message from a core message.

        Tool bookkeeping is derived from the content parts: tool messages
        record the ids they answer, assistant messages record the calls they
        made. An assistant message's type is the type of its first part.
        """
        role = message.get("role", MessageRole.USER.value)
        parts = content_parts(message)
        message_type = MessageType.TEXT.value
        tool_call_ids = None
        tool_call_args = None
        tool_names = None

        if role == MessageRole.TOOL.value:
            tool_call_ids = [
                p["tool_call_id"] for p in parts if p.get("type") == TOOL_RESULT
            ]
            message_type = MessageType.TOOL_RESULT.value
        elif role == MessageRole.ASSISTANT.value:
            calls = [p for p in parts if p.get("type") == TOOL_CALL]
            tool_call_ids = [c["tool_call_id"] for c in calls]
            tool_call_args = [c.get("args") or {} for c in calls]
            tool_names = [c["tool_name"] for c in calls]
            if parts and not isinstance(message.get("content"), str):
                message_type = parts[0].get("type", MessageType.TEXT.value)

        return cls(
            id=message_id,
            thread_id=thread_id,
            role=role,
            content=message.get("content", ""),
            type=message_type,
            created_at=created_at or utcnow(),
            tool_call_ids=tool_call_ids or None,
            tool_call_args=tool_call_args or None,
            tool_names=tool_names or None,
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "thread_id": self.thread_id,
            "role": self.role,
            "content": self.content,
            "type": self.type,
            "created_at": self.created_at.isoformat(),
            "tool_call_ids": self.tool_call_ids,
            "tool_call_args": self.tool_call_args,
            "tool_names": self.tool_names,
            "sequence": self.sequence,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "MemoryMessage":
        return cls(
            id=data["id"],
            thread_id=data["thread_id"],
            role=data["role"],
            content=data["content"],
            type=data.get("type", MessageType.TEXT.value),
            created_at=_parse_datetime(data.get("created_at")) or utcnow(),
            tool_call_ids=data.get("tool_call_ids"),
            tool_call_args=data.get("tool_call_args"),
            tool_names=data.get("tool_names"),
            sequence=data.get("sequence"),
        )


def order_messages(messages: list[MemoryMessage]) -> list[MemoryMessage]:
    """Sort messages by (created_at, sequence) ascending."""
    return sorted(messages, key=MemoryMessage.sort_key)


class ThreadStore(ABC):
    """
    Abstract interface for thread and message storage.

    Thread stores hold the durable mapping of thread -> ordered messages,
    plus an optional per-thread memory note surfaced in the system prompt.
    Messages are append-only.
    """

    @abstractmethod
    async def create_thread(
        self,
        resource_id: str,
        title: Optional[str] = None,
        thread_id: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> Thread:
        """
        Create a thread. If `thread_id` already exists the existing thread is
        returned unchanged.
        """
        ...

    @abstractmethod
    async def get_thread_by_id(self, thread_id: str) -> Optional[Thread]:
        """Get a thread by ID."""
        ...

    @abstractmethod
    async def update_thread_title(self, thread_id: str, title: str) -> Thread:
        """Change a thread's title. Raises PersistenceError for unknown threads."""
        ...

    @abstractmethod
    async def list_threads(self, resource_id: str) -> list[Thread]:
        """List the threads owned by a resource, newest first."""
        ...

    @abstractmethod
    async def save_messages(self, messages: list[MemoryMessage]) -> list[MemoryMessage]:
        """
        Append messages to their threads.

        Assigns `sequence` to each message and returns them. Raises
        PersistenceError if a referenced thread does not exist.
        """
        ...

    @abstractmethod
    async def get_messages(
        self,
        thread_id: str,
        last: Optional[int] = None,
    ) -> list[MemoryMessage]:
        """
        Get a thread's messages in thread order.

        Args:
            thread_id: Thread to read
            last: Only return the most recent N messages (None for all)
        """
        ...

    @abstractmethod
    async def get_messages_around(
        self,
        thread_id: str,
        message_ids: list[str],
        message_range: int = 0,
    ) -> list[MemoryMessage]:
        """
        Get the given messages plus `message_range` neighbours on each side,
        in thread order and without duplicates. Unknown ids are ignored.
        """
        ...

    @abstractmethod
    async def get_system_message(self, thread_id: str) -> Optional[str]:
        """Get the thread's memory note, if any."""
        ...

    @abstractmethod
    async def set_system_message(self, thread_id: str, content: Optional[str]) -> None:
        """Set or clear the thread's memory note."""
        ...

    async def close(self) -> None:
        """Close any connections. Override if needed."""
        pass


def window_around(
    messages: list[MemoryMessage],
    message_ids: list[str],
    message_range: int,
) -> list[MemoryMessage]:
    """
    Select messages with the given ids plus `message_range` neighbours.

    `messages` must already be in thread order. Shared by the bundled
    backends.
    """
    wanted = set(message_ids)
    selected: set[int] = set()
    for index, message in enumerate(messages):
        if message.id in wanted:
            start = max(0, index - message_range)
            end = min(len(messages), index + message_range + 1)
            selected.update(range(start, end))
    return [messages[i] for i in sorted(selected)]
