"""Application configuration with sensible defaults.

Tunables are read once at import. API keys and Pinecone index names are
read at call time through the helpers at the bottom of this module so a
running server picks up credentials exported after startup.
"""
import os
from pathlib import Path

from taxrag.errors import MissingCredentialError

# Paths
BASE_DIR = Path(__file__).parent.parent
DATA_DIR = BASE_DIR / "data"
SOURCE_DOCUMENT_PATH = Path(os.getenv("SOURCE_DOCUMENT_PATH", str(DATA_DIR / "tax.txt")))

# Provider endpoints
OPENAI_BASE_URL = os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1")
UPSTAGE_BASE_URL = os.getenv("UPSTAGE_BASE_URL", "https://api.upstage.ai/v1")
PINECONE_CONTROL_URL = os.getenv("PINECONE_CONTROL_URL", "https://api.pinecone.io")
PINECONE_API_VERSION = os.getenv("PINECONE_API_VERSION", "2024-07")

# Models
OPENAI_EMBEDDING_MODEL = os.getenv("OPENAI_EMBEDDING_MODEL", "text-embedding-3-large")
UPSTAGE_QUERY_MODEL = os.getenv("UPSTAGE_QUERY_MODEL", "embedding-query")
UPSTAGE_PASSAGE_MODEL = os.getenv("UPSTAGE_PASSAGE_MODEL", "embedding-query")
GENERATION_PROVIDER = os.getenv("GENERATION_PROVIDER", "openai")  # 'openai' or 'upstage'
CHAT_MODEL = os.getenv("CHAT_MODEL", "gpt-4o-mini")
UPSTAGE_CHAT_MODEL = os.getenv("UPSTAGE_CHAT_MODEL", "solar-pro")
TEMPERATURE = 0.0

# RAG parameters (character-based)
CHUNK_SIZE = int(os.getenv("CHUNK_SIZE", "1500"))
CHUNK_OVERLAP = int(os.getenv("CHUNK_OVERLAP", "200"))
RETRIEVAL_TOP_K = int(os.getenv("RETRIEVAL_TOP_K", "3"))
SOURCE_PREVIEW_CHARS = 100
EMBEDDING_BATCH_SIZE = int(os.getenv("EMBEDDING_BATCH_SIZE", "512"))
PINECONE_UPSERT_BATCH_SIZE = 100

# Network
HTTP_TIMEOUT = float(os.getenv("HTTP_TIMEOUT", "60.0"))

# Server
HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "5000"))

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Environment variable names per provider
API_KEY_ENV = {
    "openai": "OPENAI_API_KEY",
    "upstage": "UPSTAGE_API_KEY",
    "pinecone": "PINECONE_API_KEY",
}

PINECONE_INDEX_ENV = {
    "openai": "PINECONE_INDEX_OPENAI",
    "upstage": "PINECONE_INDEX_UPSTAGE",
}


def get_api_key(provider: str) -> str:
    """Return the API key for a provider.

    Args:
        provider: One of 'openai', 'upstage', 'pinecone'

    Returns:
        The key with surrounding whitespace removed

    Raises:
        MissingCredentialError: If the environment variable is unset or blank
    """
    env_name = API_KEY_ENV[provider]
    value = os.getenv(env_name, "").strip()
    if not value:
        raise MissingCredentialError(provider, f"{env_name} is not set")
    return value


def get_pinecone_index_name(provider: str) -> str:
    """Return the Pinecone index name holding vectors for an embedding provider.

    Raises:
        MissingCredentialError: If the index name is not configured
    """
    env_name = PINECONE_INDEX_ENV[provider]
    value = os.getenv(env_name, "").strip()
    if not value:
        raise MissingCredentialError("pinecone", f"{env_name} is not set")
    return value


def has_api_key(provider: str) -> bool:
    """Check whether a provider key is configured without raising."""
    return bool(os.getenv(API_KEY_ENV[provider], "").strip())


def has_pinecone_index(provider: str) -> bool:
    """Check whether a Pinecone index name is configured for a provider."""
    return bool(os.getenv(PINECONE_INDEX_ENV[provider], "").strip())
