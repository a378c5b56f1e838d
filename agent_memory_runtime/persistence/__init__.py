"""
Persistence module for conversation threads and their messages.

This module provides the ThreadStore contract plus two reference backends:
- InMemoryThreadStore: dictionaries, lost on exit
- FileThreadStore: one JSON document per thread

Example usage:
    from agent_memory_runtime.persistence import FileThreadStore, MemoryMessage

    store = FileThreadStore(project_dir=Path("."))
    thread = await store.create_thread(resource_id="user-123", thread_id="t-1")

    await store.save_messages([
        MemoryMessage(id="m-1", thread_id=thread.id, role="user", content="Hello"),
    ])

    recent = await store.get_messages(thread.id, last=10)
"""

from agent_memory_runtime.persistence.base import (
    ThreadStore,
    Thread,
    MemoryMessage,
    MessageRole,
    MessageType,
    Scope,
    order_messages,
)
from agent_memory_runtime.persistence.memory import InMemoryThreadStore
from agent_memory_runtime.persistence.file import FileThreadStore

__all__ = [
    # Abstract interface
    "ThreadStore",
    # Data classes
    "Thread",
    "MemoryMessage",
    "MessageRole",
    "MessageType",
    "Scope",
    "order_messages",
    # Implementations
    "InMemoryThreadStore",
    "FileThreadStore",
]
