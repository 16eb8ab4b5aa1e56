"""Source document loading and the offline Pinecone ingest pipeline.

Orchestrates:
- Reading the plain-text source document
- Text chunking
- Embedding generation (dimension probe first)
- Clearing and repopulating the provider's Pinecone index
"""
from pathlib import Path
from typing import Any, Dict, Optional

import structlog

from taxrag import config
from taxrag.errors import InputFileError, UpstreamCallError, UpstreamConfigError
from taxrag.rag.chunker import TextChunker
from taxrag.rag.embeddings import Embedder, create_embedder
from taxrag.rag.store_pinecone import PineconeVectorStore

logger = structlog.get_logger()


def load_source_document(path: Path) -> str:
    """Read the source document as UTF-8 text.

    Raises:
        InputFileError: If the file does not exist or cannot be read
    """
    path = Path(path)
    if not path.is_file():
        raise InputFileError(f"Source document not found: {path}")

    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise InputFileError(f"Failed to read source document {path}: {e}") from e

    logger.info("source_document_loaded", path=str(path), length=len(text))
    return text


class PineconeIngestPipeline:
    """Pipeline for indexing the source document into Pinecone."""

    def __init__(
        self,
        provider: str,
        source_path: Path = None,
        chunker: Optional[TextChunker] = None,
        embedder: Optional[Embedder] = None,
        store: Optional[PineconeVectorStore] = None,
    ):
        """Initialize the ingest pipeline.

        Args:
            provider: Embedding provider ('openai' or 'upstage')
            source_path: Source document (default from config)
            chunker: Chunker (1500/200 by default)
            embedder: Embedder (default created from provider)
            store: PineconeVectorStore (default from the provider's index name)
        """
        self.provider = provider
        self.source_path = Path(source_path or config.SOURCE_DOCUMENT_PATH)
        self.chunker = chunker or TextChunker()
        self.embedder = embedder or create_embedder(provider)

        if store is None:
            store = PineconeVectorStore(config.get_pinecone_index_name(provider), self.embedder)
        self.store = store

    async def run(self) -> Dict[str, Any]:
        """Replace the index contents with freshly embedded chunks.

        Returns:
            Dictionary with ingestion statistics
        """
        logger.info(
            "pinecone_ingest_started",
            provider=self.provider,
            index_name=self.store.index_name,
        )

        text = load_source_document(self.source_path)
        chunks = self.chunker.chunk_text(text, metadata={"source": self.source_path.name})

        if not chunks:
            logger.warning("no_chunks_created", path=str(self.source_path))
            return {"provider": self.provider, "chunks_created": 0, "vectors_upserted": 0}

        try:
            await self.store.delete_all()
        except UpstreamConfigError:
            raise
        except UpstreamCallError as e:
            # An empty serverless index rejects deleteAll; nothing to clear.
            logger.warning("pinecone_delete_skipped", provider=self.provider, error=str(e))

        probe = await self.embedder.embed_query(chunks[0].content)
        logger.info(
            "embedding_dimension_detected",
            provider=self.provider,
            dimension=len(probe),
            sample=probe[:3],
        )

        embeddings = await self.embedder.embed_documents([c.content for c in chunks])
        upserted = await self.store.upsert_chunks(chunks, embeddings, id_prefix=self.provider)

        stats = {
            "provider": self.provider,
            "index_name": self.store.index_name,
            "chunks_created": len(chunks),
            "vectors_upserted": upserted,
            "dimension": len(probe),
        }
        logger.info("pinecone_ingest_completed", **stats)
        return stats
