"""In-process FAISS vector store (ephemeral backend).

Handles:
- Embedding chunks through the provider's batch capability
- Exact cosine search (inner product over L2-normalised vectors)
- Keeping chunk text and metadata alongside FAISS row ids

The index lives only in memory and is rebuilt on every cold start.
"""
from typing import Any, Dict, List, Optional, Sequence

import faiss
import numpy as np
import structlog

from taxrag import config
from taxrag.rag.chunker import DocumentChunk
from taxrag.rag.embeddings import Embedder
from taxrag.rag.retriever import RetrievalResult

logger = structlog.get_logger()

SCORE_DECIMALS = 6


def normalize_vectors(vectors: np.ndarray) -> np.ndarray:
    """Normalize rows to unit length so inner product equals cosine similarity.

    Computed in float64 so parallel vectors of different lengths map to the
    same float32 unit vector.
    """
    vectors = np.asarray(vectors, dtype=np.float64)
    norms = np.linalg.norm(vectors, axis=1, keepdims=True)
    norms[norms == 0] = 1.0
    return (vectors / norms).astype(np.float32)


def tie_score(score: float) -> float:
    """Score used for ranking; float32 noise below this precision is a tie."""
    return round(score, SCORE_DECIMALS)


class FAISSVectorStore:
    """FAISS-based in-memory vector store bound to one embedder."""

    backend = "memory"

    def __init__(self, embedder: Embedder):
        """Initialize an empty store.

        Args:
            embedder: Embedder used for both indexing and queries
        """
        self.embedder = embedder
        self.index: Optional[faiss.Index] = None
        self.dimension: Optional[int] = None
        self.chunks: List[DocumentChunk] = []

    @classmethod
    async def build_from_chunks(
        cls, chunks: Sequence[DocumentChunk], embedder: Embedder
    ) -> "FAISSVectorStore":
        """Embed every chunk and return a ready store.

        Args:
            chunks: Chunks to index, stored in the given order
            embedder: Embedder for documents and, later, queries

        Returns:
            FAISSVectorStore containing all chunks
        """
        store = cls(embedder)
        chunks = list(chunks)

        embeddings = await embedder.embed_documents([c.content for c in chunks])
        if embeddings:
            store.init_new_index(len(embeddings[0]))
            store.add_vectors(embeddings, chunks)

        logger.info(
            "faiss_index_built",
            embedding_provider=embedder.name,
            chunk_count=len(chunks),
            dimension=store.dimension,
        )
        return store

    def init_new_index(self, dimension: int) -> None:
        """Initialize a new exact inner-product index."""
        self.dimension = dimension
        self.index = faiss.IndexFlatIP(dimension)
        self.chunks = []

    def add_vectors(
        self, embeddings: List[List[float]], chunks: Sequence[DocumentChunk]
    ) -> List[int]:
        """Add vectors and their chunks to the index.

        Returns:
            Row ids assigned to the vectors (insertion order)

        Raises:
            RuntimeError: If no index initialized
            ValueError: On dimension or length mismatch
        """
        if self.index is None:
            raise RuntimeError("No index initialized. Call init_new_index() first.")

        if len(embeddings) != len(chunks):
            raise ValueError(
                f"Got {len(embeddings)} embeddings for {len(chunks)} chunks"
            )

        if not embeddings:
            return []

        vectors = np.array(embeddings, dtype=np.float64)

        if vectors.shape[1] != self.dimension:
            raise ValueError(
                f"Embedding dimension mismatch: expected {self.dimension}, "
                f"got {vectors.shape[1]}"
            )

        start_id = self.index.ntotal
        self.index.add(normalize_vectors(vectors))
        self.chunks.extend(chunks)

        return list(range(start_id, start_id + len(embeddings)))

    def search_by_vector(
        self, query_embedding: List[float], top_k: int
    ) -> List[RetrievalResult]:
        """Return the ``top_k`` most similar chunks to a query vector.

        Results are sorted by descending score; equal scores keep insertion
        order.
        """
        if self.index is None or self.index.ntotal == 0:
            return []

        query_vector = np.array([query_embedding], dtype=np.float64)

        if query_vector.shape[1] != self.dimension:
            raise ValueError(
                f"Query dimension mismatch: expected {self.dimension}, "
                f"got {query_vector.shape[1]}"
            )

        top_k = min(top_k, self.index.ntotal)
        if top_k <= 0:
            return []

        query_vector = normalize_vectors(query_vector)
        total = self.index.ntotal

        # Widen the candidate set while the last candidate still ties with the
        # k-th, so a tie at the cut-off goes to the earliest inserted row.
        fetch = top_k
        while True:
            scores, indices = self.index.search(query_vector, fetch)
            hits = [
                (float(score), int(idx))
                for score, idx in zip(scores[0].tolist(), indices[0].tolist())
                if 0 <= idx < len(self.chunks)
            ]
            hits.sort(key=lambda hit: (-tie_score(hit[0]), hit[1]))

            if fetch >= total or len(hits) < fetch:
                break
            if tie_score(min(s for s, _ in hits)) < tie_score(hits[top_k - 1][0]):
                break
            fetch = min(total, fetch * 2)

        hits = hits[:top_k]

        return [
            RetrievalResult(
                content=self.chunks[idx].content,
                score=score,
                vector_id=str(idx),
                metadata=dict(self.chunks[idx].metadata),
            )
            for score, idx in hits
        ]

    async def search(self, query_text: str, top_k: int = None) -> List[RetrievalResult]:
        """Embed the query with the store's embedder and search.

        Args:
            query_text: Natural-language query
            top_k: Number of results (default from config)

        Returns:
            ``min(top_k, n)`` results, best first
        """
        top_k = config.RETRIEVAL_TOP_K if top_k is None else top_k
        query_embedding = await self.embedder.embed_query(query_text)
        results = self.search_by_vector(query_embedding, top_k)

        logger.info(
            "vector_search_completed",
            backend=self.backend,
            embedding_provider=self.embedder.name,
            top_k=top_k,
            results_found=len(results),
            top_score=results[0].score if results else None,
        )
        return results

    def get_stats(self) -> Dict[str, Any]:
        """Get statistics about the vector store."""
        return {
            "backend": self.backend,
            "initialized": self.index is not None,
            "vector_count": self.index.ntotal if self.index is not None else 0,
            "dimension": self.dimension,
            "embedding_provider": self.embedder.name,
        }
