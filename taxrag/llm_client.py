"""Async JSON client for the hosted providers (OpenAI, Upstage, Pinecone).

Transport failures and non-2xx responses are turned into the typed errors
of :mod:`taxrag.errors` here, so callers never see raw httpx exceptions.
"""
from typing import Any, Callable, Dict, Optional, Type

import httpx
import structlog

from taxrag import config
from taxrag.errors import (
    UpstreamAuthError,
    UpstreamCallError,
    UpstreamTimeoutError,
)

logger = structlog.get_logger()

AUTH_FAILURE_STATUSES = (401, 403)
BODY_PREVIEW_CHARS = 2000


def bearer_headers(api_key: str) -> Dict[str, str]:
    """Headers for OpenAI-compatible APIs."""
    return {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json",
    }


def pinecone_headers(api_key: str) -> Dict[str, str]:
    """Headers for the Pinecone control and data planes."""
    return {
        "Api-Key": api_key,
        "X-Pinecone-API-Version": config.PINECONE_API_VERSION,
        "Content-Type": "application/json",
    }


class APIClient:
    """Async client for a single hosted provider."""

    def __init__(
        self,
        provider: str,
        base_url: str,
        api_key_provider: Optional[str] = None,
        headers_factory: Callable[[str], Dict[str, str]] = bearer_headers,
        timeout: float = None,
        error_cls: Type[UpstreamCallError] = UpstreamCallError,
        auth_error_cls: Type[UpstreamAuthError] = UpstreamAuthError,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the client.

        Args:
            provider: Provider name used in logs and raised errors
            base_url: API base URL; request paths are appended to it
            api_key_provider: Key name for config.get_api_key (defaults to provider)
            headers_factory: Builds request headers from the API key
            timeout: Request timeout in seconds (defaults to config.HTTP_TIMEOUT)
            error_cls: Error raised for non-2xx responses and transport failures
            auth_error_cls: Error raised for 401/403 responses
            transport: Optional httpx transport (used by tests)
        """
        self.provider = provider
        self.base_url = base_url.rstrip("/")
        self.api_key_provider = api_key_provider or provider
        self.headers_factory = headers_factory
        self.timeout = timeout or config.HTTP_TIMEOUT
        self.error_cls = error_cls
        self.auth_error_cls = auth_error_cls
        self.transport = transport

    def with_base_url(self, base_url: str) -> "APIClient":
        """Return a client for the same provider pointed at another host."""
        return APIClient(
            provider=self.provider,
            base_url=base_url,
            api_key_provider=self.api_key_provider,
            headers_factory=self.headers_factory,
            timeout=self.timeout,
            error_cls=self.error_cls,
            auth_error_cls=self.auth_error_cls,
            transport=self.transport,
        )

    async def post_json(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """POST a JSON payload and return the decoded JSON response.

        Raises:
            MissingCredentialError: If the provider key is not configured
            UpstreamAuthError: On 401/403
            UpstreamTimeoutError: If the request times out
            UpstreamCallError: On any other failure (subclass per error_cls)
        """
        return await self._request("POST", path, payload)

    async def get_json(self, path: str) -> Dict[str, Any]:
        """GET a resource and return the decoded JSON response."""
        return await self._request("GET", path, None)

    async def _request(
        self, method: str, path: str, payload: Optional[Dict[str, Any]]
    ) -> Dict[str, Any]:
        api_key = config.get_api_key(self.api_key_provider)
        url = f"{self.base_url}{path}"

        logger.debug("upstream_request", provider=self.provider, method=method, url=url)

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self.transport
            ) as client:
                response = await client.request(
                    method,
                    url,
                    headers=self.headers_factory(api_key),
                    json=payload,
                )
        except httpx.TimeoutException as e:
            logger.error(
                "upstream_timeout",
                provider=self.provider,
                url=url,
                timeout=self.timeout,
            )
            raise UpstreamTimeoutError(
                self.provider, f"{self.provider} request timed out: {e}"
            ) from e
        except httpx.HTTPError as e:
            logger.error(
                "upstream_connection_error",
                provider=self.provider,
                url=url,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise self.error_cls(
                self.provider, f"{self.provider} request failed: {e}"
            ) from e

        if not response.is_success:
            body = response.text[:BODY_PREVIEW_CHARS]
            status = response.status_code
            logger.error(
                "upstream_http_error",
                provider=self.provider,
                url=url,
                status_code=status,
                body_preview=body[:200],
            )
            error_cls = (
                self.auth_error_cls if status in AUTH_FAILURE_STATUSES else self.error_cls
            )
            raise error_cls(
                self.provider,
                f"{self.provider} API error: {status} - {body}",
                status_code=status,
                body=body,
            )

        try:
            data = response.json()
        except ValueError as e:
            logger.error("upstream_invalid_json", provider=self.provider, url=url)
            raise self.error_cls(
                self.provider,
                f"{self.provider} returned invalid JSON: {e}",
                status_code=response.status_code,
                body=response.text[:BODY_PREVIEW_CHARS],
            ) from e

        logger.debug(
            "upstream_response",
            provider=self.provider,
            url=url,
            status_code=response.status_code,
        )
        return data
