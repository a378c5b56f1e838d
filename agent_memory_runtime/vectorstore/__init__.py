"""
Vector indexes and embedders behind semantic recall.

    from agent_memory_runtime.vectorstore import get_vector_store, get_embedding_client

    memory = MemoryManager(
        FileThreadStore(),
        vector_store=get_vector_store("sqlite_vec", path="./memory.db"),
        embedder=get_embedding_client("openai"),
    )

MemoryManager indexes every saved text message; recall embeds the latest
user input and queries the index filtered to the current thread.
"""

from typing import Optional

from agent_memory_runtime.interfaces import LLMClient
from agent_memory_runtime.vectorstore.base import (
    VectorRecord,
    VectorSearchResult,
    VectorStore,
)
from agent_memory_runtime.vectorstore.embeddings import (
    EmbeddingClient,
    ModelEmbeddings,
    OpenAIEmbeddings,
)
from agent_memory_runtime.vectorstore.memory import InMemoryVectorStore

VECTOR_BACKENDS = ("memory", "sqlite_vec")
EMBEDDING_PROVIDERS = ("openai", "model")


def get_vector_store(backend: str = "memory", **kwargs) -> VectorStore:
    """
    Build a vector store.

    Args:
        backend: "memory" or "sqlite_vec" (needs the sqlite-vec extra)
        **kwargs: Passed to the backend, e.g. path= for sqlite_vec

    Raises:
        ValueError: If the backend is unknown
    """
    if backend == "memory":
        return InMemoryVectorStore(**kwargs)
    if backend == "sqlite_vec":
        from agent_memory_runtime.vectorstore.sqlite_vec import SqliteVecStore

        return SqliteVecStore(**kwargs)
    raise ValueError(
        f"Unknown vector store backend: {backend}. "
        f"Available backends: {', '.join(VECTOR_BACKENDS)}"
    )


def get_embedding_client(
    provider: str = "openai",
    model: Optional[str] = None,
    llm: Optional[LLMClient] = None,
    **kwargs,
) -> EmbeddingClient:
    """
    Build an embedding client.

    "openai" calls the embeddings endpoint; "model" wraps `llm` and needs
    dimensions= as well.

    Raises:
        ValueError: If the provider is unknown or "model" has no llm
    """
    if provider == "openai":
        return OpenAIEmbeddings(model=model, **kwargs)
    if provider == "model":
        if llm is None:
            raise ValueError("The 'model' embedding provider needs an llm")
        return ModelEmbeddings(llm, model_name=model, **kwargs)
    raise ValueError(
        f"Unknown embedding provider: {provider}. "
        f"Available providers: {', '.join(EMBEDDING_PROVIDERS)}"
    )


def __getattr__(name: str):
    # sqlite_vec imports sqlite3 extension loading; keep it off the import path
    if name == "SqliteVecStore":
        from agent_memory_runtime.vectorstore.sqlite_vec import SqliteVecStore

        return SqliteVecStore
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    "VectorStore",
    "VectorRecord",
    "VectorSearchResult",
    "EmbeddingClient",
    "InMemoryVectorStore",
    "OpenAIEmbeddings",
    "ModelEmbeddings",
    "SqliteVecStore",
    "get_vector_store",
    "get_embedding_client",
]
