"""
Semantic-plus-recency recall over a thread's history.

Recall combines the most recent messages of a thread with the neighbourhoods
of messages that are semantically close to the current input. The vector
side is optional and best-effort: if it fails, recall degrades to recency
only. Failures of the thread store itself propagate as PersistenceError.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from agent_memory_runtime.persistence.base import MemoryMessage, ThreadStore, order_messages
from agent_memory_runtime.vectorstore.base import VectorStore
from agent_memory_runtime.vectorstore.embeddings import EmbeddingClient

logger = logging.getLogger(__name__)

DEFAULT_INDEX_NAME = "memory_messages"


@dataclass
class RecallQuery:
    """
    Parameters of one recall.

    recency_count: number of most recent messages to include. 0 includes
        none, None includes the whole thread.
    semantic_query: text to embed for similarity search. Empty disables the
        semantic side.
    top_k: number of similar messages to look up.
    message_range: neighbours to include on each side of a similar message.
    """

    thread_id: str
    recency_count: Optional[int] = 10
    semantic_query: str = ""
    top_k: int = 2
    message_range: int = 2


class MemoryRecall:
    """Recalls messages for a thread from a ThreadStore and an optional vector index."""

    def __init__(
        self,
        store: ThreadStore,
        vector_store: Optional[VectorStore] = None,
        embedder: Optional[EmbeddingClient] = None,
        index_name: str = DEFAULT_INDEX_NAME,
    ):
        self._store = store
        self._vector_store = vector_store
        self._embedder = embedder
        self._index_name = index_name

    @property
    def semantic_enabled(self) -> bool:
        return self._vector_store is not None and self._embedder is not None

    async def recall(self, query: RecallQuery) -> list[MemoryMessage]:
        """
        Return recent and semantically related messages, de-duplicated by id
        and sorted by (created_at, sequence).
        """
        if query.recency_count == 0:
            recent = []
        else:
            recent = await self._store.get_messages(query.thread_id, last=query.recency_count)

        similar: list[MemoryMessage] = []
        if self.semantic_enabled and query.semantic_query and query.top_k > 0:
            hit_ids = await self._similar_message_ids(query)
            if hit_ids:
                similar = await self._store.get_messages_around(
                    query.thread_id, hit_ids, query.message_range
                )

        merged: dict[str, MemoryMessage] = {}
        for message in [*recent, *similar]:
            merged.setdefault(message.id, message)
        return order_messages(list(merged.values()))

    async def _similar_message_ids(self, query: RecallQuery) -> list[str]:
        try:
            vector = await self._embedder.embed(query.semantic_query)
            results = await self._vector_store.query(
                self._index_name,
                vector,
                top_k=query.top_k,
                filter={"thread_id": query.thread_id},
            )
        except Exception as e:
            logger.warning(
                f"Semantic recall failed for thread {query.thread_id}, using recent messages only: {e}"
            )
            return []
        return [r.metadata.get("message_id", r.id) for r in results]
