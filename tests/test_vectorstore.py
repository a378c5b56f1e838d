"""
Tests for vector store implementations.

These tests verify the VectorStore contract against InMemoryVectorStore and
SqliteVecStore, plus the factory functions and OpenAI embeddings wrapper.
"""

import sqlite3
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from agent_memory_runtime.config import configure, reset_config
from agent_memory_runtime.testing import MockEmbeddingClient
from agent_memory_runtime.vectorstore import (
    InMemoryVectorStore,
    ModelEmbeddings,
    OpenAIEmbeddings,
    VectorRecord,
    VectorSearchResult,
    get_embedding_client,
    get_vector_store,
)
from agent_memory_runtime.vectorstore.base import prepare_batch
from agent_memory_runtime.vectorstore.memory import cosine_similarity


@pytest.fixture(params=["memory", "sqlite_vec"])
def store(request):
    """Every bundled VectorStore backend."""
    if request.param == "memory":
        return InMemoryVectorStore()
    pytest.importorskip("sqlite_vec")
    if not hasattr(sqlite3.Connection, "enable_load_extension"):
        pytest.skip("sqlite3 built without extension loading")
    from agent_memory_runtime.vectorstore import SqliteVecStore

    return SqliteVecStore(":memory:")


class TestDataclasses:
    """Tests for the vector dataclasses."""

    def test_vector_record_defaults(self):
        record = VectorRecord(id="v1", vector=[0.1, 0.2])
        assert record.content == ""
        assert record.metadata == {}

    def test_search_result(self):
        result = VectorSearchResult(id="v1", score=0.9, content="Hello", metadata={"a": 1})
        assert result.score == 0.9
        assert result.metadata == {"a": 1}


class TestCosineSimilarity:
    def test_identical(self):
        assert cosine_similarity([1.0, 0.0], [2.0, 0.0]) == pytest.approx(1.0)

    def test_orthogonal(self):
        assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)

    def test_zero_vector(self):
        assert cosine_similarity([0.0, 0.0], [1.0, 0.0]) == 0.0

    def test_dimension_mismatch(self):
        with pytest.raises(ValueError):
            cosine_similarity([1.0], [1.0, 0.0])


class TestVectorStore:
    """Contract tests run against every backend."""

    async def test_upsert_and_get(self, store):
        ids = await store.upsert(
            "messages",
            vectors=[[1.0, 0.0, 0.0]],
            metadata=[{"thread_id": "t1"}],
            ids=["m1"],
            contents=["Hello"],
        )
        assert ids == ["m1"]

        record = await store.get("messages", "m1")
        assert record is not None
        assert record.content == "Hello"
        assert record.metadata == {"thread_id": "t1"}
        assert record.vector == pytest.approx([1.0, 0.0, 0.0])

    async def test_upsert_generates_ids(self, store):
        ids = await store.upsert("messages", vectors=[[1.0, 0.0], [0.0, 1.0]])
        assert len(ids) == 2
        assert len(set(ids)) == 2

    async def test_upsert_replaces(self, store):
        await store.upsert("messages", vectors=[[1.0, 0.0]], ids=["m1"], contents=["old"])
        await store.upsert("messages", vectors=[[0.0, 1.0]], ids=["m1"], contents=["new"])

        record = await store.get("messages", "m1")
        assert record.content == "new"

    async def test_query_ranked_by_similarity(self, store):
        await store.upsert(
            "messages",
            vectors=[[1.0, 0.0, 0.0], [0.7, 0.7, 0.0], [0.0, 0.0, 1.0]],
            ids=["exact", "close", "far"],
        )

        results = await store.query("messages", [1.0, 0.0, 0.0], top_k=2)
        assert [r.id for r in results] == ["exact", "close"]
        assert results[0].score == pytest.approx(1.0, abs=1e-5)
        assert results[0].score > results[1].score

    async def test_query_filter_applied_before_limit(self, store):
        """Filtered results still fill top_k from the matching rows."""
        await store.upsert(
            "messages",
            vectors=[[1.0, 0.0], [0.9, 0.1], [0.1, 0.9]],
            metadata=[{"thread_id": "t1"}, {"thread_id": "t1"}, {"thread_id": "t2"}],
            ids=["a", "b", "c"],
        )

        results = await store.query("messages", [0.0, 1.0], top_k=1, filter={"thread_id": "t1"})
        assert [r.id for r in results] == ["b"]

    async def test_query_unknown_index(self, store):
        assert await store.query("missing", [1.0, 0.0]) == []

    async def test_query_top_k_zero(self, store):
        await store.upsert("messages", vectors=[[1.0, 0.0]])
        assert await store.query("messages", [1.0, 0.0], top_k=0) == []

    async def test_dimension_mismatch(self, store):
        await store.upsert("messages", vectors=[[1.0, 0.0]])
        with pytest.raises(ValueError):
            await store.upsert("messages", vectors=[[1.0, 0.0, 0.0]])

    async def test_unsupported_metric(self, store):
        with pytest.raises(ValueError):
            await store.create_index("messages", 3, metric="euclidean")

    async def test_delete(self, store):
        await store.upsert("messages", vectors=[[1.0, 0.0]], ids=["m1"])

        assert await store.delete("messages", "m1") is True
        assert await store.delete("messages", "m1") is False
        assert await store.get("messages", "m1") is None
        await store.close()


class TestSqliteVecStore:
    def test_invalid_index_name(self):
        from agent_memory_runtime.vectorstore.sqlite_vec import _table

        with pytest.raises(ValueError):
            _table("messages; DROP TABLE x")
        assert _table("memory_messages") == "vec_memory_messages"


class TestFactories:
    def test_get_vector_store_memory(self):
        assert isinstance(get_vector_store("memory"), InMemoryVectorStore)

    def test_get_vector_store_unknown(self):
        with pytest.raises(ValueError, match="Unknown vector store backend"):
            get_vector_store("pinecone")

    def test_get_embedding_client_unknown(self):
        with pytest.raises(ValueError, match="Unknown embedding provider"):
            get_embedding_client("cohere")

    def test_model_provider_needs_llm(self):
        with pytest.raises(ValueError, match="needs an llm"):
            get_embedding_client("model", dimensions=8)

    def test_model_provider(self):
        client = get_embedding_client("model", llm=MagicMock(), dimensions=8)
        assert isinstance(client, ModelEmbeddings)
        assert client.dimensions == 8


class TestPrepareBatch:
    def test_defaults_filled(self):
        rows = prepare_batch("idx", 2, [[1.0, 0.0], [0.0, 1.0]], None, None, None)

        assert len(rows) == 2
        assert rows[0][0] != rows[1][0]
        assert rows[0][2:] == ({}, "")

    def test_length_mismatch(self):
        with pytest.raises(ValueError, match="equal length"):
            prepare_batch("idx", 2, [[1.0, 0.0]], None, ["a", "b"], None)

    def test_wrong_dimension(self):
        with pytest.raises(ValueError, match="expects 2 dimensions"):
            prepare_batch("idx", 2, [[1.0, 0.0, 0.0]], None, None, None)


class TestOpenAIEmbeddings:
    """Tests for OpenAIEmbeddings with a mocked OpenAI client."""

    @pytest.fixture(autouse=True)
    def _config(self):
        reset_config()
        configure(openai_api_key="sk-test")
        yield
        reset_config()

    async def test_embed(self):
        response = MagicMock()
        response.data = [MagicMock(embedding=[0.1, 0.2])]
        client = MagicMock()
        client.embeddings.create = AsyncMock(return_value=response)

        with patch("agent_memory_runtime.vectorstore.embeddings.openai.AsyncOpenAI", return_value=client):
            embeddings = OpenAIEmbeddings(model="text-embedding-3-small")
            vector = await embeddings.embed("hello")

        assert vector == [0.1, 0.2]
        kwargs = client.embeddings.create.call_args.kwargs
        assert kwargs["model"] == "text-embedding-3-small"
        assert kwargs["input"] == "hello"


class TestMockEmbeddingClient:
    async def test_deterministic_and_normalised(self):
        client = MockEmbeddingClient(dimensions=16)
        first = await client.embed("billing invoice overdue")
        second = await client.embed("billing invoice overdue")

        assert first == second
        assert sum(v * v for v in first) == pytest.approx(1.0)

    async def test_shared_words_are_closer(self):
        client = MockEmbeddingClient()
        query = await client.embed("invoice number")
        related = await client.embed("your invoice number is 42")
        unrelated = await client.embed("the weather is sunny")

        assert cosine_similarity(query, related) > cosine_similarity(query, unrelated)


class TestEmbeddingBatches:
    """Tests for batched and model-backed embeddings."""

    @pytest.fixture(autouse=True)
    def _config(self):
        configure(openai_api_key="sk-test")

    async def test_embed_batch_splits_and_orders(self):
        def create(model, input):
            # Reply out of order to check re-sorting by index
            data = [MagicMock(index=i, embedding=[float(len(text))]) for i, text in enumerate(input)]
            return MagicMock(data=list(reversed(data)))

        client = MagicMock()
        client.embeddings.create = AsyncMock(side_effect=create)

        with patch("agent_memory_runtime.vectorstore.embeddings.openai.AsyncOpenAI", return_value=client):
            embeddings = OpenAIEmbeddings(batch_size=2)
            vectors = await embeddings.embed_batch(["a", "bb", "ccc"])

        assert vectors == [[1.0], [2.0], [3.0]]
        assert client.embeddings.create.await_count == 2

    async def test_dimensions_sent_for_v3_models(self):
        response = MagicMock()
        response.data = [MagicMock(embedding=[0.5])]
        client = MagicMock()
        client.embeddings.create = AsyncMock(return_value=response)

        with patch("agent_memory_runtime.vectorstore.embeddings.openai.AsyncOpenAI", return_value=client):
            embeddings = OpenAIEmbeddings(model="text-embedding-3-large", dimensions=256)
            await embeddings.embed("hello")

        assert embeddings.dimensions == 256
        assert client.embeddings.create.call_args.kwargs["dimensions"] == 256

    def test_invalid_batch_size(self):
        with pytest.raises(ValueError):
            OpenAIEmbeddings(batch_size=0)

    async def test_model_embeddings_delegate(self):
        llm = MagicMock()
        llm.embed = AsyncMock(return_value=[0.1, 0.2])
        embeddings = ModelEmbeddings(llm, dimensions=2, model_name="text-embedding-3-small")

        assert await embeddings.embed("hi") == [0.1, 0.2]
        assert await embeddings.embed_batch(["a", "b"]) == [[0.1, 0.2], [0.1, 0.2]]
        assert embeddings.model_name == "text-embedding-3-small"
