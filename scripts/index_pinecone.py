#!/usr/bin/env python
"""Index the source document into Pinecone.

Usage:
    python scripts/index_pinecone.py --provider openai
    python scripts/index_pinecone.py --provider upstage
    python scripts/index_pinecone.py --provider all     # default
"""
import argparse
import asyncio
import sys
from datetime import datetime
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from taxrag import config
from taxrag.errors import InputFileError, TaxRagError
from taxrag.logging_config import configure_logging
from taxrag.rag.embeddings import EMBEDDING_PROVIDERS
from taxrag.rag.ingest import PineconeIngestPipeline
import structlog

logger = structlog.get_logger()


def print_banner(message: str):
    print(f"\n{'=' * 50}")
    print(f"  {message}")
    print(f"{'=' * 50}\n")


def providers_to_index(choice: str) -> list:
    """Resolve the --provider choice, skipping unconfigured providers for 'all'."""
    if choice != "all":
        return [choice]

    selected = []
    for provider in EMBEDDING_PROVIDERS:
        if config.has_api_key(provider) and config.has_pinecone_index(provider):
            selected.append(provider)
        else:
            print(f"[{provider}] Skipped - API key or index name not set")
    return selected


async def index_provider(provider: str, source_path: Path = None) -> dict:
    print_banner(f"[{provider}] Pinecone indexing")
    started = datetime.now()

    pipeline = PineconeIngestPipeline(provider, source_path=source_path)
    print(f"[{provider}] Index: {pipeline.store.index_name}")

    stats = await pipeline.run()
    elapsed = (datetime.now() - started).total_seconds()

    print(f"[{provider}] Chunks created:    {stats['chunks_created']}")
    print(f"[{provider}] Vectors upserted:  {stats['vectors_upserted']}")
    if stats.get("dimension"):
        print(f"[{provider}] Dimension:         {stats['dimension']}")
    print(f"[{provider}] Time elapsed:      {elapsed:.1f}s")
    return stats


async def main():
    """Main entry point for the indexing script."""
    parser = argparse.ArgumentParser(
        description="Index the source document into Pinecone",
    )
    parser.add_argument(
        "--provider",
        choices=[*EMBEDDING_PROVIDERS, "all"],
        default="all",
        help="Embedding provider whose index to populate (default: all)",
    )
    parser.add_argument(
        "--source",
        type=Path,
        default=None,
        help=f"Source document (default: {config.SOURCE_DOCUMENT_PATH})",
    )
    args = parser.parse_args()

    configure_logging()

    if not config.has_api_key("pinecone"):
        print("Error: PINECONE_API_KEY is not set.")
        sys.exit(1)

    print_banner("Pinecone indexing script")

    try:
        for provider in providers_to_index(args.provider):
            await index_provider(provider, source_path=args.source)

    except InputFileError as e:
        print(f"\n❌ Error: {e}\n")
        sys.exit(1)

    except TaxRagError as e:
        print(f"\n❌ Indexing failed: {e}\n")
        logger.error("index_pinecone_failed", error=str(e), error_type=type(e).__name__)
        sys.exit(1)

    print_banner("Indexing complete")


if __name__ == "__main__":
    asyncio.run(main())
