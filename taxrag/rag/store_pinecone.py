"""Pinecone vector store (persistent backend).

The request-serving path only queries: the index must already hold vectors
produced by the same embedding provider (see ``scripts/index_pinecone.py``).
Chunk text is stored under the ``text`` metadata key.
"""
from typing import Any, Dict, List, Optional, Sequence

import httpx
import structlog

from taxrag import config
from taxrag.errors import VectorStoreError
from taxrag.llm_client import APIClient, pinecone_headers
from taxrag.rag.chunker import DocumentChunk
from taxrag.rag.embeddings import Embedder
from taxrag.rag.retriever import RetrievalResult

logger = structlog.get_logger()

TEXT_METADATA_KEY = "text"


class PineconeVectorStore:
    """Thin async proxy over a Pinecone serverless index."""

    backend = "pinecone"

    def __init__(
        self,
        index_name: str,
        embedder: Embedder,
        control_url: str = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the store.

        Args:
            index_name: Pinecone index name
            embedder: Embedder whose vectors the index was populated with
            control_url: Pinecone control plane URL (default from config)
            transport: Optional httpx transport (used by tests)
        """
        self.index_name = index_name
        self.embedder = embedder
        self.control = APIClient(
            provider="pinecone",
            base_url=control_url or config.PINECONE_CONTROL_URL,
            headers_factory=pinecone_headers,
            error_cls=VectorStoreError,
            transport=transport,
        )
        self._data: Optional[APIClient] = None
        self.host: Optional[str] = None
        self.dimension: Optional[int] = None

    async def _data_client(self) -> APIClient:
        """Resolve the index host once and return a data-plane client."""
        if self._data is None:
            description = await self.control.get_json(f"/indexes/{self.index_name}")
            host = description.get("host")
            if not host:
                raise VectorStoreError(
                    "pinecone", f"Pinecone index '{self.index_name}' has no host"
                )
            self.host = host
            self.dimension = description.get("dimension")
            base_url = host if host.startswith("http") else f"https://{host}"
            self._data = self.control.with_base_url(base_url)

            logger.info(
                "pinecone_index_resolved",
                index_name=self.index_name,
                host=host,
                dimension=self.dimension,
            )
        return self._data

    async def search(self, query_text: str, top_k: int = None) -> List[RetrievalResult]:
        """Embed the query and proxy a top-k query to Pinecone."""
        top_k = config.RETRIEVAL_TOP_K if top_k is None else top_k
        query_embedding = await self.embedder.embed_query(query_text)
        data = await self._data_client()

        response = await data.post_json(
            "/query",
            {
                "vector": query_embedding,
                "topK": top_k,
                "includeMetadata": True,
                "includeValues": False,
            },
        )

        results = []
        for match in response.get("matches", []):
            metadata = dict(match.get("metadata") or {})
            content = metadata.pop(TEXT_METADATA_KEY, "")
            results.append(
                RetrievalResult(
                    content=content,
                    score=float(match.get("score", 0.0)),
                    vector_id=str(match.get("id", "")),
                    metadata=metadata,
                )
            )

        # Python's sort is stable, so equal scores keep Pinecone's order.
        results.sort(key=lambda r: -r.score)

        logger.info(
            "vector_search_completed",
            backend=self.backend,
            index_name=self.index_name,
            embedding_provider=self.embedder.name,
            top_k=top_k,
            results_found=len(results),
        )
        return results[:top_k]

    async def upsert_chunks(
        self,
        chunks: Sequence[DocumentChunk],
        embeddings: List[List[float]],
        batch_size: int = None,
        id_prefix: str = "chunk",
    ) -> int:
        """Upsert chunk vectors with their text as metadata.

        Returns:
            Number of vectors upserted
        """
        if len(chunks) != len(embeddings):
            raise ValueError(
                f"Got {len(embeddings)} embeddings for {len(chunks)} chunks"
            )

        batch_size = batch_size or config.PINECONE_UPSERT_BATCH_SIZE
        data = await self._data_client()

        vectors = [
            {
                "id": f"{id_prefix}-{chunk.chunk_index}",
                "values": embedding,
                "metadata": {**_flat_metadata(chunk.metadata), TEXT_METADATA_KEY: chunk.content},
            }
            for chunk, embedding in zip(chunks, embeddings)
        ]

        upserted = 0
        for i in range(0, len(vectors), batch_size):
            batch = vectors[i : i + batch_size]
            response = await data.post_json("/vectors/upsert", {"vectors": batch})
            upserted += int(response.get("upsertedCount", len(batch)))

            logger.debug(
                "pinecone_batch_upserted",
                index_name=self.index_name,
                batch_size=len(batch),
                total_so_far=upserted,
            )

        logger.info("pinecone_upsert_completed", index_name=self.index_name, count=upserted)
        return upserted

    async def delete_all(self) -> None:
        """Delete every vector in the default namespace."""
        data = await self._data_client()
        await data.post_json("/vectors/delete", {"deleteAll": True})
        logger.info("pinecone_vectors_deleted", index_name=self.index_name)

    def get_stats(self) -> Dict[str, Any]:
        """Get statistics about the vector store."""
        return {
            "backend": self.backend,
            "initialized": self.host is not None,
            "index_name": self.index_name,
            "host": self.host,
            "dimension": self.dimension,
            "embedding_provider": self.embedder.name,
        }


def _flat_metadata(metadata: Dict[str, Any]) -> Dict[str, Any]:
    """Pinecone metadata values must be strings, numbers, booleans or string lists."""
    flat = {}
    for key, value in metadata.items():
        if isinstance(value, (str, int, float, bool)):
            flat[key] = value
        elif isinstance(value, list) and all(isinstance(v, str) for v in value):
            flat[key] = value
        else:
            flat[key] = str(value)
    return flat
