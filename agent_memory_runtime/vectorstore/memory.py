"""
In-memory vector store using cosine similarity.

Brute-force search over every vector in the index; fine for tests and
small conversations.
"""

import math
from typing import Optional

from agent_memory_runtime.vectorstore.base import (
    VectorRecord,
    VectorSearchResult,
    VectorStore,
    matches_filter,
    prepare_batch,
)


def cosine_similarity(a: list[float], b: list[float]) -> float:
    if len(a) != len(b):
        raise ValueError(f"Vector dimensions differ: {len(a)} != {len(b)}")
    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (norm_a * norm_b)


class InMemoryVectorStore(VectorStore):
    """Vector store keeping each index as a dict of VectorRecords."""

    def __init__(self):
        self._indexes: dict[str, dict[str, VectorRecord]] = {}
        self._dimensions: dict[str, int] = {}

    async def create_index(
        self,
        index_name: str,
        dimension: int,
        metric: str = "cosine",
    ) -> None:
        if metric != "cosine":
            raise ValueError(f"InMemoryVectorStore only supports cosine, got: {metric}")
        self._indexes.setdefault(index_name, {})
        self._dimensions.setdefault(index_name, dimension)

    async def upsert(
        self,
        index_name: str,
        vectors: list[list[float]],
        metadata: Optional[list[dict]] = None,
        ids: Optional[list[str]] = None,
        contents: Optional[list[str]] = None,
    ) -> list[str]:
        if not vectors:
            return []
        await self.create_index(index_name, len(vectors[0]))
        dimension = self._dimensions[index_name]

        rows = prepare_batch(index_name, dimension, vectors, metadata, ids, contents)

        index = self._indexes[index_name]
        for id, vector, meta, content in rows:
            index[id] = VectorRecord(id=id, vector=list(vector), content=content, metadata=dict(meta))
        return [row[0] for row in rows]

    async def query(
        self,
        index_name: str,
        query_vector: list[float],
        top_k: int = 10,
        filter: Optional[dict] = None,
    ) -> list[VectorSearchResult]:
        index = self._indexes.get(index_name)
        if not index or top_k <= 0:
            return []

        scored = [
            VectorSearchResult(
                id=record.id,
                score=cosine_similarity(query_vector, record.vector),
                content=record.content,
                metadata=dict(record.metadata),
            )
            for record in index.values()
            if matches_filter(record.metadata, filter)
        ]
        scored.sort(key=lambda r: r.score, reverse=True)
        return scored[:top_k]

    async def delete(self, index_name: str, id: str) -> bool:
        index = self._indexes.get(index_name, {})
        return index.pop(id, None) is not None

    async def get(self, index_name: str, id: str) -> Optional[VectorRecord]:
        return self._indexes.get(index_name, {}).get(id)
