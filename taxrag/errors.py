"""Error types raised across the RAG service.

Failures are typed where they happen (HTTP client, providers, stores) so
the request layer can map them to responses without inspecting messages.

    TaxRagError
    ├── ValidationError            bad request fields (400)
    ├── UpstreamConfigError        credentials / config (500 + provider hint)
    │   ├── MissingCredentialError
    │   └── UpstreamAuthError      401/403 from an upstream
    ├── UpstreamCallError          any other upstream failure (500)
    │   ├── EmbeddingProviderError
    │   ├── GenerationError
    │   ├── VectorStoreError
    │   └── UpstreamTimeoutError
    └── InputFileError             source document missing

EmbeddingAuthError is both an EmbeddingProviderError and an
UpstreamAuthError: a 401 from an embedding endpoint is still reported as a
credential problem.
"""
from typing import Optional


class TaxRagError(Exception):
    """Base class for all service errors."""


class ValidationError(TaxRagError):
    """A request field is missing or has an unsupported value."""


class UpstreamConfigError(TaxRagError):
    """A provider cannot be used because of its credentials or configuration."""

    def __init__(self, provider: str, message: str):
        super().__init__(message)
        self.provider = provider


class MissingCredentialError(UpstreamConfigError):
    """A required API key or index name is not configured."""


class UpstreamCallError(TaxRagError):
    """An upstream call failed for a reason other than credentials."""

    def __init__(
        self,
        provider: str,
        message: str,
        status_code: Optional[int] = None,
        body: str = "",
    ):
        # Not super(): in the auth subclasses the next class in the MRO is
        # UpstreamConfigError, whose signature differs.
        TaxRagError.__init__(self, message)
        self.provider = provider
        self.status_code = status_code
        self.body = body


class UpstreamAuthError(UpstreamCallError, UpstreamConfigError):
    """An upstream rejected our credentials (401/403)."""


class EmbeddingProviderError(UpstreamCallError):
    """An embedding endpoint failed; carries the HTTP status and body."""


class EmbeddingAuthError(EmbeddingProviderError, UpstreamAuthError):
    """An embedding endpoint rejected our credentials."""


class GenerationError(UpstreamCallError):
    """A chat-completion call failed or returned an unusable payload."""


class VectorStoreError(UpstreamCallError):
    """A call to the external vector store failed."""


class UpstreamTimeoutError(UpstreamCallError):
    """An upstream did not answer within the configured timeout."""


class InputFileError(TaxRagError):
    """The source document for indexing cannot be read."""

