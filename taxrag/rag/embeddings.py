"""Embedding providers.

Two independent implementations of the :class:`Embedder` capability:

- ``OpenAIEmbeddings``: batch-capable ``/embeddings`` endpoint.
- ``UpstageEmbeddings``: the Upstage endpoint only accepts a single string
  per request, so ``embed_documents`` issues one call per text, in order.

Vectors from different providers have different dimensions and must never
be mixed in one index.
"""
from typing import Dict, List, Optional, Protocol

import httpx
import structlog

from taxrag import config
from taxrag.errors import EmbeddingAuthError, EmbeddingProviderError
from taxrag.llm_client import APIClient

logger = structlog.get_logger()

EMBEDDING_PROVIDERS = ("openai", "upstage")


class Embedder(Protocol):
    """Capability shared by all embedding providers."""

    name: str

    async def embed_query(self, text: str) -> List[float]:
        ...

    async def embed_documents(self, texts: List[str]) -> List[List[float]]:
        ...


def _embedding_client(
    provider: str, base_url: str, transport: Optional[httpx.AsyncBaseTransport]
) -> APIClient:
    return APIClient(
        provider=provider,
        base_url=base_url,
        error_cls=EmbeddingProviderError,
        auth_error_cls=EmbeddingAuthError,
        transport=transport,
    )


def _vectors_from_response(provider: str, data: Dict, expected: int) -> List[List[float]]:
    items = data.get("data") if isinstance(data, dict) else None
    if not isinstance(items, list) or len(items) != expected:
        raise EmbeddingProviderError(
            provider,
            f"{provider} returned {len(items) if isinstance(items, list) else 'no'} "
            f"embeddings for {expected} inputs",
            status_code=200,
            body=str(data)[:200],
        )
    if not all(isinstance(item, dict) and "embedding" in item for item in items):
        raise EmbeddingProviderError(
            provider,
            f"{provider} returned malformed embedding items",
            status_code=200,
            body=str(data)[:200],
        )
    ordered = sorted(items, key=lambda item: item.get("index", 0))
    return [item["embedding"] for item in ordered]


class OpenAIEmbeddings:
    """OpenAI embeddings (``text-embedding-3-large`` by default)."""

    name = "openai"

    def __init__(
        self,
        model: str = None,
        base_url: str = None,
        batch_size: int = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.model = model or config.OPENAI_EMBEDDING_MODEL
        self.batch_size = batch_size or config.EMBEDDING_BATCH_SIZE
        self.client = _embedding_client(
            self.name, base_url or config.OPENAI_BASE_URL, transport
        )

    async def _embed(self, inputs: List[str]) -> List[List[float]]:
        data = await self.client.post_json(
            "/embeddings", {"model": self.model, "input": inputs}
        )
        return _vectors_from_response(self.name, data, len(inputs))

    async def embed_query(self, text: str) -> List[float]:
        vectors = await self._embed([text])
        return vectors[0]

    async def embed_documents(self, texts: List[str]) -> List[List[float]]:
        """Embed texts in batches of ``batch_size`` per request."""
        if not texts:
            return []

        embeddings: List[List[float]] = []
        for i in range(0, len(texts), self.batch_size):
            batch = texts[i : i + self.batch_size]
            embeddings.extend(await self._embed(batch))

            logger.debug(
                "embeddings_batch_generated",
                provider=self.name,
                batch_size=len(batch),
                total_so_far=len(embeddings),
            )

        return embeddings


class UpstageEmbeddings:
    """Upstage Solar embeddings.

    The endpoint rejects multi-item inputs, so documents are embedded with
    sequential single-item calls. Queries and passages may use different
    models (``embedding-query`` / ``embedding-passage``); both default to
    ``embedding-query``.
    """

    name = "upstage"

    def __init__(
        self,
        query_model: str = None,
        passage_model: str = None,
        base_url: str = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.query_model = query_model or config.UPSTAGE_QUERY_MODEL
        self.passage_model = passage_model or config.UPSTAGE_PASSAGE_MODEL
        self.client = _embedding_client(
            self.name, base_url or config.UPSTAGE_BASE_URL, transport
        )

    async def _embed_one(self, text: str, model: str) -> List[float]:
        data = await self.client.post_json("/embeddings", {"model": model, "input": text})
        return _vectors_from_response(self.name, data, 1)[0]

    async def embed_query(self, text: str) -> List[float]:
        return await self._embed_one(text, self.query_model)

    async def embed_documents(self, texts: List[str]) -> List[List[float]]:
        embeddings = []
        for text in texts:
            embeddings.append(await self._embed_one(text, self.passage_model))

        logger.debug("upstage_documents_embedded", count=len(embeddings))
        return embeddings


def create_embedder(
    provider: str, transport: Optional[httpx.AsyncBaseTransport] = None
) -> Embedder:
    """Create the embedder registered under a provider name.

    Args:
        provider: 'openai' or 'upstage'
        transport: Optional httpx transport (used by tests)

    Raises:
        ValueError: If the provider is unknown
    """
    if provider == "openai":
        return OpenAIEmbeddings(transport=transport)
    if provider == "upstage":
        return UpstageEmbeddings(transport=transport)
    raise ValueError(f"Unsupported embedding provider: {provider}")
