"""
In-memory thread store.

Useful for tests, scripts and single-process deployments. Everything is
lost when the process exits.
"""

from copy import deepcopy
from typing import Optional
from uuid import uuid4

from agent_memory_runtime.exceptions import PersistenceError
from agent_memory_runtime.persistence.base import (
    MemoryMessage,
    Thread,
    ThreadStore,
    order_messages,
    utcnow,
    window_around,
)


class InMemoryThreadStore(ThreadStore):
    """Thread store backed by plain dictionaries."""

    def __init__(self):
        self._threads: dict[str, Thread] = {}
        self._messages: dict[str, list[MemoryMessage]] = {}
        self._system_messages: dict[str, str] = {}
        self._next_sequence: dict[str, int] = {}

    async def create_thread(
        self,
        resource_id: str,
        title: Optional[str] = None,
        thread_id: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> Thread:
        if thread_id and thread_id in self._threads:
            return self._threads[thread_id]

        thread = Thread(
            id=thread_id or str(uuid4()),
            resource_id=resource_id,
            title=title,
            metadata=metadata or {},
        )
        self._threads[thread.id] = thread
        self._messages[thread.id] = []
        self._next_sequence[thread.id] = 0
        return thread

    async def get_thread_by_id(self, thread_id: str) -> Optional[Thread]:
        return self._threads.get(thread_id)

    async def update_thread_title(self, thread_id: str, title: str) -> Thread:
        thread = self._threads.get(thread_id)
        if thread is None:
            raise PersistenceError(f"Thread not found: {thread_id}", operation="update_thread_title")
        thread.title = title
        thread.updated_at = utcnow()
        return thread

    async def list_threads(self, resource_id: str) -> list[Thread]:
        threads = [t for t in self._threads.values() if t.resource_id == resource_id]
        threads.sort(key=lambda t: t.updated_at, reverse=True)
        return threads

    async def save_messages(self, messages: list[MemoryMessage]) -> list[MemoryMessage]:
        for message in messages:
            if message.thread_id not in self._threads:
                raise PersistenceError(
                    f"Cannot save message {message.id}: thread {message.thread_id} does not exist",
                    operation="save_messages",
                )

        saved = []
        for message in messages:
            stored = deepcopy(message)
            stored.sequence = self._next_sequence[message.thread_id]
            self._next_sequence[message.thread_id] += 1
            self._messages[message.thread_id].append(stored)
            self._threads[message.thread_id].updated_at = utcnow()
            message.sequence = stored.sequence
            saved.append(message)
        return saved

    async def get_messages(
        self,
        thread_id: str,
        last: Optional[int] = None,
    ) -> list[MemoryMessage]:
        messages = order_messages(self._messages.get(thread_id, []))
        if last is not None:
            messages = messages[-last:] if last > 0 else []
        return [deepcopy(m) for m in messages]

    async def get_messages_around(
        self,
        thread_id: str,
        message_ids: list[str],
        message_range: int = 0,
    ) -> list[MemoryMessage]:
        messages = order_messages(self._messages.get(thread_id, []))
        return [deepcopy(m) for m in window_around(messages, message_ids, message_range)]

    async def get_system_message(self, thread_id: str) -> Optional[str]:
        return self._system_messages.get(thread_id)

    async def set_system_message(self, thread_id: str, content: Optional[str]) -> None:
        if content is None:
            self._system_messages.pop(thread_id, None)
        else:
            self._system_messages[thread_id] = content
