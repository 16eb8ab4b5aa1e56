"""RAG pipeline: index registry plus per-question retrieval and generation.

Each provider key (embedding provider x backend) owns one index. Indexes
are built lazily on first use and reused for the process lifetime.
Concurrent first requests for the same key await one shared build task.
"""
import asyncio
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Awaitable, Callable, Dict, List, Optional

import structlog

from taxrag import config
from taxrag.errors import ValidationError
from taxrag.rag.chunker import TextChunker
from taxrag.rag.embeddings import EMBEDDING_PROVIDERS, Embedder, create_embedder
from taxrag.rag.generator import ChatGenerator, build_prompt, create_generator
from taxrag.rag.ingest import load_source_document
from taxrag.rag.retriever import VectorIndex, format_context, format_sources
from taxrag.rag.store_faiss import FAISSVectorStore
from taxrag.rag.store_pinecone import PineconeVectorStore

logger = structlog.get_logger()

MODEL_TYPES = ("openai", "upstage", "openai-pinecone", "upstage-pinecone")
DEFAULT_MODEL_TYPE = "openai"

UNSUPPORTED_MODEL_MESSAGE = f"지원하지 않는 모델 타입입니다. ({', '.join(MODEL_TYPES)})"


@dataclass(frozen=True)
class ProviderKey:
    """An embedding provider paired with a vector index backend."""

    embedding: str
    backend: str = "memory"

    @property
    def name(self) -> str:
        if self.backend == "memory":
            return self.embedding
        return f"{self.embedding}-{self.backend}"

    @classmethod
    def parse(cls, model_type: str) -> "ProviderKey":
        """Parse a ``modelType`` selector such as ``upstage-pinecone``.

        Raises:
            ValidationError: If the selector is not one of MODEL_TYPES
        """
        if model_type not in MODEL_TYPES:
            raise ValidationError(UNSUPPORTED_MODEL_MESSAGE)
        embedding, _, backend = model_type.partition("-")
        return cls(embedding=embedding, backend=backend or "memory")

    @classmethod
    def all(cls) -> List["ProviderKey"]:
        return [cls.parse(model_type) for model_type in MODEL_TYPES]


@dataclass
class Answer:
    """Generated answer plus source previews in retrieval order."""

    answer: str
    sources: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, object]:
        return {"answer": self.answer, "sources": self.sources}


class IndexState(str, Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"


class IndexRegistry:
    """Per-key index cache with a single-flight guard on the first build."""

    def __init__(self, builder: Callable[[ProviderKey], Awaitable[VectorIndex]]):
        self._builder = builder
        self._indexes: Dict[ProviderKey, VectorIndex] = {}
        self._building: Dict[ProviderKey, asyncio.Task] = {}
        self.build_count = 0

    def state(self, key: ProviderKey) -> IndexState:
        if key in self._indexes:
            return IndexState.READY
        if key in self._building:
            return IndexState.INITIALIZING
        return IndexState.UNINITIALIZED

    def is_initialized(self, key: ProviderKey) -> bool:
        return key in self._indexes

    async def get(self, key: ProviderKey) -> VectorIndex:
        """Return the index for ``key``, building it if needed.

        A failed build is not cached; the next call starts a new one.
        """
        index = self._indexes.get(key)
        if index is not None:
            return index

        task = self._building.get(key)
        if task is None:
            task = asyncio.ensure_future(self._build(key))
            task.add_done_callback(_consume_exception)
            self._building[key] = task
        else:
            logger.info("index_build_in_flight_awaited", key=key.name)

        # Shielded so one cancelled request does not cancel the shared build.
        return await asyncio.shield(task)

    async def _build(self, key: ProviderKey) -> VectorIndex:
        logger.info("index_build_started", key=key.name)
        self.build_count += 1
        try:
            index = await self._builder(key)
        except Exception as e:
            logger.error(
                "index_build_failed",
                key=key.name,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise
        finally:
            self._building.pop(key, None)

        self._indexes[key] = index
        logger.info("index_build_completed", key=key.name, stats=index.get_stats())
        return index


def _consume_exception(task: asyncio.Task) -> None:
    # Waiters re-raise the error; this only silences "never retrieved" warnings.
    if not task.cancelled():
        task.exception()


class RAGPipeline:
    """Question answering over the source document."""

    def __init__(
        self,
        source_path: Path = None,
        chunker: Optional[TextChunker] = None,
        embedder_factory: Callable[[str], Embedder] = create_embedder,
        generator: Optional[ChatGenerator] = None,
        pinecone_store_factory: Callable[[str, Embedder], VectorIndex] = None,
        top_k: int = None,
    ):
        """Initialize the pipeline.

        Args:
            source_path: Plain-text source document (default from config)
            chunker: Chunker used for in-memory indexes (1500/200 by default)
            embedder_factory: Creates an embedder from a provider name
            generator: Answer generator (default selected by config)
            pinecone_store_factory: Creates a Pinecone-backed index from an
                embedding provider name and its embedder
            top_k: Chunks retrieved per question (default from config)
        """
        self.source_path = source_path or config.SOURCE_DOCUMENT_PATH
        self.chunker = chunker or TextChunker()
        self.embedder_factory = embedder_factory
        self._generator = generator
        self.pinecone_store_factory = pinecone_store_factory or _pinecone_store
        self.top_k = top_k or config.RETRIEVAL_TOP_K

        self._embedders: Dict[str, Embedder] = {}
        self.registry = IndexRegistry(self._build_index)

    @property
    def generator(self) -> ChatGenerator:
        if self._generator is None:
            self._generator = create_generator()
        return self._generator

    def embedder(self, provider: str) -> Embedder:
        """Shared embedder per provider; queries must use the build embedder."""
        if provider not in EMBEDDING_PROVIDERS:
            raise ValueError(f"Unsupported embedding provider: {provider}")
        if provider not in self._embedders:
            self._embedders[provider] = self.embedder_factory(provider)
        return self._embedders[provider]

    async def _build_index(self, key: ProviderKey) -> VectorIndex:
        embedder = self.embedder(key.embedding)

        if key.backend == "pinecone":
            return self.pinecone_store_factory(key.embedding, embedder)

        text = load_source_document(self.source_path)
        chunks = self.chunker.chunk_text(text, metadata={"source": self.source_path.name})

        logger.info(
            "source_document_chunked",
            key=key.name,
            text_length=len(text),
            chunk_count=len(chunks),
        )
        return await FAISSVectorStore.build_from_chunks(chunks, embedder)

    async def warm_up(self, key: ProviderKey) -> None:
        """Build the index for ``key`` ahead of the first question."""
        await self.registry.get(key)

    def status(self) -> Dict[str, bool]:
        """Initialization flag per supported model type."""
        return {key.name: self.registry.is_initialized(key) for key in ProviderKey.all()}

    async def ask(self, question: str, key: ProviderKey) -> Answer:
        """Answer a question with retrieved context.

        Steps run strictly in order; any failure aborts the call.
        """
        index = await self.registry.get(key)

        results = await index.search(question, self.top_k)
        logger.info("documents_retrieved", key=key.name, count=len(results))

        prompt = build_prompt(format_context(results), question)
        answer = await self.generator.generate(prompt)

        return Answer(answer=answer, sources=format_sources(results))


def _pinecone_store(provider: str, embedder: Embedder) -> PineconeVectorStore:
    config.get_api_key("pinecone")
    return PineconeVectorStore(config.get_pinecone_index_name(provider), embedder)
