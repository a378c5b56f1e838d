"""
Memory manager: the storage facade used by agents.

Wraps a ThreadStore, and optionally a VectorStore plus EmbeddingClient, behind
one object. Saved text messages are indexed for semantic recall, and every
backend failure is reported as PersistenceError so callers handle a single
error type.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Optional, TypeVar
from uuid import uuid4

from agent_memory_runtime.config import get_config
from agent_memory_runtime.exceptions import PersistenceError
from agent_memory_runtime.interfaces import message_text
from agent_memory_runtime.memory.recall import MemoryRecall, RecallQuery
from agent_memory_runtime.persistence.base import MemoryMessage, Thread, ThreadStore
from agent_memory_runtime.vectorstore.base import VectorStore
from agent_memory_runtime.vectorstore.embeddings import EmbeddingClient

logger = logging.getLogger(__name__)

T = TypeVar("T")


# =============================================================================
# Configuration
# =============================================================================


@dataclass
class MemoryOptions:
    """Per-run memory settings. Defaults come from the runtime config."""

    # Recall settings
    recency_count: Optional[int] = field(default_factory=lambda: get_config().recency_count)
    top_k: int = field(default_factory=lambda: get_config().top_k)
    message_range: int = field(default_factory=lambda: get_config().message_range)

    # Raise persistence errors instead of logging and continuing
    required: bool = False

    # Ask the model for a title when a thread is created
    generate_title: bool = False


# =============================================================================
# Memory Manager
# =============================================================================


class MemoryManager:
    """
    Thread storage plus semantic recall.

    Example:
        memory = MemoryManager(
            InMemoryThreadStore(),
            vector_store=InMemoryVectorStore(),
            embedder=OpenAIEmbeddings(),
        )
        thread = await memory.create_thread(resource_id="user-1")
        recalled = await memory.remember_messages(thread.id, vector_query="pricing")
    """

    def __init__(
        self,
        store: ThreadStore,
        vector_store: Optional[VectorStore] = None,
        embedder: Optional[EmbeddingClient] = None,
        index_name: Optional[str] = None,
    ):
        self._store = store
        self._vector_store = vector_store
        self._embedder = embedder
        self._index_name = index_name or get_config().vector_index_name
        self._recall = MemoryRecall(
            store,
            vector_store=vector_store,
            embedder=embedder,
            index_name=self._index_name,
        )

    @property
    def store(self) -> ThreadStore:
        return self._store

    @property
    def index_name(self) -> str:
        return self._index_name

    def generate_id(self) -> str:
        return str(uuid4())

    async def _call(self, operation: str, awaitable: Awaitable[T]) -> T:
        try:
            return await awaitable
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(f"{operation} failed: {e}", operation=operation) from e

    # -------------------------------------------------------------------------
    # Threads
    # -------------------------------------------------------------------------

    async def create_thread(
        self,
        resource_id: str,
        title: Optional[str] = None,
        thread_id: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> Thread:
        return await self._call(
            "create_thread",
            self._store.create_thread(
                resource_id, title=title, thread_id=thread_id, metadata=metadata
            ),
        )

    async def get_thread_by_id(self, thread_id: str) -> Optional[Thread]:
        return await self._call("get_thread_by_id", self._store.get_thread_by_id(thread_id))

    async def update_thread_title(self, thread_id: str, title: str) -> Thread:
        return await self._call(
            "update_thread_title", self._store.update_thread_title(thread_id, title)
        )

    async def list_threads(self, resource_id: str) -> list[Thread]:
        return await self._call("list_threads", self._store.list_threads(resource_id))

    # -------------------------------------------------------------------------
    # Messages
    # -------------------------------------------------------------------------

    async def save_messages(self, messages: list[MemoryMessage]) -> list[MemoryMessage]:
        """Persist messages, then index their text for semantic recall."""
        if not messages:
            return []
        saved = await self._call("save_messages", self._store.save_messages(messages))
        await self._index_messages(saved)
        return saved

    async def _index_messages(self, messages: list[MemoryMessage]) -> None:
        if self._vector_store is None or self._embedder is None:
            return

        indexable = []
        for message in messages:
            text = message_text(message.to_core_message())
            if text.strip():
                indexable.append((message, text))
        if not indexable:
            return

        try:
            vectors = await self._embedder.embed_batch([text for _, text in indexable])
            await self._vector_store.upsert(
                self._index_name,
                vectors=vectors,
                metadata=[
                    {"thread_id": m.thread_id, "message_id": m.id} for m, _ in indexable
                ],
                ids=[m.id for m, _ in indexable],
                contents=[text for _, text in indexable],
            )
        except Exception as e:
            logger.warning(f"Failed to index {len(indexable)} messages for semantic recall: {e}")

    async def remember_messages(
        self,
        thread_id: str,
        vector_query: str = "",
        options: Optional[MemoryOptions] = None,
    ) -> list[MemoryMessage]:
        """Recall recent and semantically related messages of a thread."""
        options = options or MemoryOptions()
        query = RecallQuery(
            thread_id=thread_id,
            recency_count=options.recency_count,
            semantic_query=vector_query,
            top_k=options.top_k,
            message_range=options.message_range,
        )
        return await self._call("remember_messages", self._recall.recall(query))

    async def get_messages(self, thread_id: str, last: Optional[int] = None) -> list[MemoryMessage]:
        return await self._call("get_messages", self._store.get_messages(thread_id, last=last))

    # -------------------------------------------------------------------------
    # Memory note
    # -------------------------------------------------------------------------

    async def get_system_message(self, thread_id: str) -> Optional[str]:
        return await self._call("get_system_message", self._store.get_system_message(thread_id))

    async def set_system_message(self, thread_id: str, content: Optional[str]) -> None:
        await self._call(
            "set_system_message", self._store.set_system_message(thread_id, content)
        )

    async def close(self) -> None:
        await self._store.close()
        if self._vector_store is not None:
            await self._vector_store.close()
        if self._embedder is not None:
            await self._embedder.close()

    def __repr__(self) -> str:
        parts: list[Any] = [type(self._store).__name__]
        if self._vector_store is not None:
            parts.append(type(self._vector_store).__name__)
        return f"MemoryManager({', '.join(parts)})"
