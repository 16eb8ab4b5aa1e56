"""Retrieval results and the vector index capability.

Both backends (in-process FAISS, Pinecone) return ``RetrievalResult`` lists
ordered by descending similarity.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Protocol

from taxrag import config


@dataclass(frozen=True)
class RetrievalResult:
    """A single retrieved chunk with its similarity score."""

    content: str
    score: float
    vector_id: str
    metadata: Dict[str, Any] = field(default_factory=dict)

    def preview(self, max_chars: int = None) -> str:
        """Truncated preview shown to the user as a source."""
        max_chars = max_chars or config.SOURCE_PREVIEW_CHARS
        return self.content[:max_chars] + "..."


class VectorIndex(Protocol):
    """Capability shared by the vector index backends.

    ``search`` must embed the query with the embedder the index was built
    with; vectors from different providers are not comparable.
    """

    backend: str

    async def search(self, query_text: str, top_k: int) -> List[RetrievalResult]:
        ...

    def get_stats(self) -> Dict[str, Any]:
        ...


def format_context(results: List[RetrievalResult]) -> str:
    """Join retrieved chunk texts in ranked order for the prompt."""
    return "\n\n".join(result.content for result in results)


def format_sources(results: List[RetrievalResult]) -> List[str]:
    """Source previews in the same order as the results."""
    return [result.preview() for result in results]
