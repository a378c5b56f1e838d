"""
Vector storage contract for semantic recall.

A store holds named indexes. Memory recall writes one vector per persisted
text message (metadata: thread_id, message_id, role) and later asks for the
closest messages of a single thread, so every backend has to apply the
metadata filter before cutting results to top_k.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional
from uuid import uuid4


@dataclass
class VectorRecord:
    id: str
    vector: list[float]
    content: str = ""
    metadata: dict = field(default_factory=dict)


@dataclass
class VectorSearchResult:
    """One hit; score is cosine similarity, higher is closer."""

    id: str
    score: float
    content: str = ""
    metadata: dict = field(default_factory=dict)


def matches_filter(metadata: dict, filter: Optional[dict]) -> bool:
    """Equality match of every filter key against metadata."""
    if not filter:
        return True
    return all(metadata.get(key) == value for key, value in filter.items())


def prepare_batch(
    index_name: str,
    dimension: int,
    vectors: list[list[float]],
    metadata: Optional[list[dict]],
    ids: Optional[list[str]],
    contents: Optional[list[str]],
) -> list[tuple[str, list[float], dict, str]]:
    """
    Fill in defaults for an upsert batch and check it against the index.

    Returns (id, vector, metadata, content) rows in input order.

    Raises:
        ValueError: On mismatched list lengths or a wrong vector dimension
    """
    ids = ids or [str(uuid4()) for _ in vectors]
    metadata = metadata or [{} for _ in vectors]
    contents = contents or ["" for _ in vectors]
    if not (len(ids) == len(metadata) == len(contents) == len(vectors)):
        raise ValueError("vectors, ids, metadata and contents must have equal length")

    for vector in vectors:
        if len(vector) != dimension:
            raise ValueError(
                f"Index {index_name} expects {dimension} dimensions, got {len(vector)}"
            )
    return list(zip(ids, vectors, metadata, contents))


class VectorStore(ABC):
    """
    Similarity search over named indexes.

    Backends: InMemoryVectorStore (brute force, tests and scripts) and
    SqliteVecStore (sqlite-vec, one local database file).
    """

    @abstractmethod
    async def create_index(
        self,
        index_name: str,
        dimension: int,
        metric: str = "cosine",
    ) -> None:
        """
        Create an index if it does not exist.

        Only cosine is supported by the bundled backends.
        """
        ...

    @abstractmethod
    async def upsert(
        self,
        index_name: str,
        vectors: list[list[float]],
        metadata: Optional[list[dict]] = None,
        ids: Optional[list[str]] = None,
        contents: Optional[list[str]] = None,
    ) -> list[str]:
        """
        Insert or replace vectors.

        Args:
            index_name: Target index (created on first use)
            vectors: Embedding vectors
            metadata: One metadata dict per vector
            ids: Vector ids (generated when omitted)
            contents: Original text per vector

        Returns:
            The ids of the stored vectors, in input order
        """
        ...

    @abstractmethod
    async def query(
        self,
        index_name: str,
        query_vector: list[float],
        top_k: int = 10,
        filter: Optional[dict] = None,
    ) -> list[VectorSearchResult]:
        """
        Search for similar vectors.

        Args:
            index_name: Index to search
            query_vector: The query embedding vector
            top_k: Maximum number of results to return
            filter: Optional metadata filter (equality matching)

        Returns:
            List of VectorSearchResult ordered by similarity (highest first).
            Unknown indexes yield an empty list.
        """
        ...

    @abstractmethod
    async def delete(self, index_name: str, id: str) -> bool:
        """
        Delete a vector by ID.

        Returns:
            True if the vector existed and was deleted
        """
        ...

    @abstractmethod
    async def get(self, index_name: str, id: str) -> Optional[VectorRecord]:
        """Get a vector by ID, or None."""
        ...

    async def close(self) -> None:
        """Close connections. Override if needed."""
        pass
