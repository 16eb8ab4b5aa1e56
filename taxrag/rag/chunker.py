"""Text chunking with overlap for RAG pipeline.

Implements fixed-window character chunking: every chunk after the first
starts with the last ``chunk_overlap`` characters of the previous one, so
the source text can be rebuilt by dropping those prefixes.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import structlog

from taxrag import config

logger = structlog.get_logger()


@dataclass(frozen=True)
class DocumentChunk:
    """A chunk of source text with position information."""

    content: str
    char_start: int
    char_end: int
    chunk_index: int
    metadata: Dict[str, Any] = field(default_factory=dict)


class TextChunker:
    """Character-based text chunker with overlap support."""

    def __init__(
        self,
        chunk_size: int = None,
        chunk_overlap: int = None,
    ):
        """Initialize the text chunker.

        Args:
            chunk_size: Size of each chunk in characters (default from config)
            chunk_overlap: Overlap between chunks in characters (default from config)
        """
        self.chunk_size = config.CHUNK_SIZE if chunk_size is None else chunk_size
        self.chunk_overlap = config.CHUNK_OVERLAP if chunk_overlap is None else chunk_overlap

        if self.chunk_size <= 0:
            raise ValueError(f"Chunk size must be positive, got {self.chunk_size}")

        if self.chunk_overlap < 0 or self.chunk_overlap >= self.chunk_size:
            raise ValueError(
                f"Overlap ({self.chunk_overlap}) must be between 0 and "
                f"chunk size ({self.chunk_size})"
            )

    def chunk_text(
        self, text: str, metadata: Optional[Dict[str, Any]] = None
    ) -> List[DocumentChunk]:
        """Split text into overlapping chunks.

        Args:
            text: Text to chunk
            metadata: Metadata copied into every chunk (e.g. ``source``)

        Returns:
            List of DocumentChunk objects in reading order
        """
        if not text:
            return []

        base_metadata = dict(metadata or {})
        text_length = len(text)
        step = self.chunk_size - self.chunk_overlap

        chunks = []
        start = 0
        chunk_index = 0

        while True:
            end = min(start + self.chunk_size, text_length)
            chunks.append(
                DocumentChunk(
                    content=text[start:end],
                    char_start=start,
                    char_end=end,
                    chunk_index=chunk_index,
                    metadata={
                        **base_metadata,
                        "chunk_index": chunk_index,
                        "char_start": start,
                        "char_end": end,
                    },
                )
            )

            if end == text_length:
                break

            start += step
            chunk_index += 1

        logger.info(
            "text_chunked",
            text_length=text_length,
            chunk_count=len(chunks),
            chunk_size=self.chunk_size,
            chunk_overlap=self.chunk_overlap,
        )

        return chunks


def split_text(
    text: str,
    chunk_size: int = None,
    chunk_overlap: int = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> List[DocumentChunk]:
    """Chunk text with the given (or default) window (convenience function)."""
    return TextChunker(chunk_size, chunk_overlap).chunk_text(text, metadata)
