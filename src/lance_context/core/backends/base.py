"""Base classes for embedding backends."""

from abc import ABC, abstractmethod
from typing import Any

import httpx
import orjson
from loguru import logger

from ...config.settings import EmbeddingConfig
from ..exceptions import BackendError, ConnectivityError, EmbeddingError
from ..rate_limiter import RateLimiter
from ..retry import RetryPolicy


class EmbeddingBackend(ABC):
    """Capability set every embedding backend provides.

    ``embed_batch`` receives at most one request group worth of texts; the
    dispatcher does the splitting and the wave scheduling above it.
    """

    name: str = "base"

    @abstractmethod
    async def initialize(self) -> None:
        """Check connectivity or load the model. Must be called once before use."""

    @abstractmethod
    async def embed(self, text: str) -> list[float]:
        """Embed a single text."""

    @abstractmethod
    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Embed texts, returning vectors in input order."""

    @abstractmethod
    def get_dimensions(self) -> int:
        """Vector dimension produced by this backend."""

    @abstractmethod
    def get_model(self) -> str:
        """Model identifier."""

    @property
    def default_batch_size(self) -> int:
        return 32

    async def close(self) -> None:
        """Release network clients or models."""


class HttpEmbeddingBackend(EmbeddingBackend):
    """Shared plumbing for backends reached over HTTP.

    Every request first takes a token from the backend's own rate limiter,
    then runs under the retry policy. httpx failures are translated into
    ``ConnectivityError`` (retried) or ``BackendError`` (retried only for
    429 and 5xx).
    """

    def __init__(
        self,
        config: EmbeddingConfig,
        client: httpx.AsyncClient | None = None,
        rate_limiter: RateLimiter | None = None,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        self.config = config
        self.rate_limiter = rate_limiter or RateLimiter.from_config(config.rate_limit)
        self.retry_policy = retry_policy or RetryPolicy(config.retry)
        self._client = client
        self._owns_client = client is None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.config.timeout)
        return self._client

    def _headers(self) -> dict[str, str]:
        return {"Content-Type": "application/json"}

    def _status_message(self, status_code: int) -> str:
        """Human-readable explanation for an error status."""
        if status_code == 429:
            return f"{self.name} API rate limit exceeded"
        if status_code >= 500:
            return f"{self.name} server error (HTTP {status_code})"
        return f"{self.name} request rejected (HTTP {status_code})"

    async def _send(self, method: str, url: str, payload: Any | None = None) -> Any:
        """One HTTP request without retry, returning the decoded JSON body."""
        await self.rate_limiter.acquire()
        try:
            response = await self.client.request(
                method,
                url,
                headers=self._headers(),
                content=orjson.dumps(payload) if payload is not None else None,
            )
            response.raise_for_status()
        except httpx.TimeoutException as e:
            raise ConnectivityError(
                f"{self.name} request timed out after {self.config.timeout}s",
                context={"url": url},
            ) from e
        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            raise BackendError(
                self._status_message(status_code),
                status_code=status_code,
                context={"url": url, "body": e.response.text[:500]},
            ) from e
        except httpx.TransportError as e:
            raise ConnectivityError(
                f"Cannot reach {self.name} at {url}: {e}", context={"url": url}
            ) from e

        try:
            return orjson.loads(response.content)
        except orjson.JSONDecodeError as e:
            raise EmbeddingError(f"{self.name} returned invalid JSON: {e}") from e

    async def _request(self, method: str, url: str, payload: Any | None = None) -> Any:
        """HTTP request under the retry policy."""
        return await self.retry_policy.call(self._send, method, url, payload)

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            logger.debug(f"Closed {self.name} HTTP client")
        self._client = None
