"""
Embedding clients used by memory recall.

The same client embeds persisted message text at save time and the latest
user input at recall time, so both sides of a search live in one vector space.

Two implementations ship with the package:
- OpenAIEmbeddings talks to the embeddings endpoint directly and batches
- ModelEmbeddings reuses an LLMClient whose provider can embed
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

import openai

from agent_memory_runtime.config import get_config
from agent_memory_runtime.interfaces import LLMClient

logger = logging.getLogger(__name__)

KNOWN_DIMENSIONS = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
}


class EmbeddingClient(ABC):
    """Turns message text into vectors for a VectorStore."""

    @abstractmethod
    async def embed(self, text: str) -> list[float]:
        ...

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """
        Embed several texts, preserving order.

        The default makes one embed() call per text; clients with a batch
        endpoint override it.
        """
        return [await self.embed(text) for text in texts]

    @property
    @abstractmethod
    def dimensions(self) -> int:
        ...

    @property
    @abstractmethod
    def model_name(self) -> str:
        ...

    async def close(self) -> None:
        pass


class OpenAIEmbeddings(EmbeddingClient):
    """
    OpenAI embeddings endpoint.

    Args:
        model: Embedding model (defaults to config.embedding_model)
        api_key: Falls back to config, then OPENAI_API_KEY
        dimensions: Shortened output size, honoured by text-embedding-3-* only
        batch_size: Maximum inputs sent in one request by embed_batch()
    """

    def __init__(
        self,
        model: Optional[str] = None,
        api_key: Optional[str] = None,
        dimensions: Optional[int] = None,
        batch_size: int = 256,
    ):
        config = get_config()
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self._model = model or config.embedding_model
        self._api_key = api_key or config.get_openai_api_key()
        self._dimensions = dimensions
        self.batch_size = batch_size
        self._client: Optional[openai.AsyncOpenAI] = None

    @property
    def client(self) -> openai.AsyncOpenAI:
        # Created on first use so constructing a MemoryManager needs no network config
        if self._client is None:
            self._client = openai.AsyncOpenAI(api_key=self._api_key)
        return self._client

    @property
    def dimensions(self) -> int:
        return self._dimensions or KNOWN_DIMENSIONS.get(self._model, 1536)

    @property
    def model_name(self) -> str:
        return self._model

    async def _create(self, payload):
        request = {"model": self._model, "input": payload}
        if self._dimensions and self._model.startswith("text-embedding-3"):
            request["dimensions"] = self._dimensions
        return await self.client.embeddings.create(**request)

    async def embed(self, text: str) -> list[float]:
        response = await self._create(text)
        return response.data[0].embedding

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        vectors: list[list[float]] = []
        for start in range(0, len(texts), self.batch_size):
            chunk = texts[start:start + self.batch_size]
            response = await self._create(chunk)
            # The endpoint does not promise response order
            vectors.extend(item.embedding for item in sorted(response.data, key=lambda d: d.index))
        logger.debug(f"Embedded {len(texts)} texts with {self._model}")
        return vectors

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None


class ModelEmbeddings(EmbeddingClient):
    """
    Embeddings through an LLMClient's optional embed() capability.

    Lets an agent's model client double as its memory embedder. Providers
    without embeddings raise NotImplementedError on first use, which memory
    recall treats like any other vector failure.
    """

    def __init__(self, llm: LLMClient, dimensions: int, model_name: Optional[str] = None):
        self._llm = llm
        self._dimensions = dimensions
        self._model_name = model_name or getattr(llm, "embedding_model", None) or type(llm).__name__

    @property
    def dimensions(self) -> int:
        return self._dimensions

    @property
    def model_name(self) -> str:
        return self._model_name

    async def embed(self, text: str) -> list[float]:
        return await self._llm.embed(text)
