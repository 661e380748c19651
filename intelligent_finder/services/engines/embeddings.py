"""
Ollama Embedding Client

Async HTTP client that produces text embeddings for the semantic engine.
Uses httpx with tenacity retries on connection errors.
"""

from typing import Optional

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from intelligent_finder.config import EmbeddingSettings, embedding_settings
from intelligent_finder.errors import EmbeddingError

logger = structlog.get_logger(__name__)


class OllamaEmbeddingClient:
    """
    Async client for the Ollama embeddings endpoint.

    Usage:
        async with OllamaEmbeddingClient() as client:
            engine = SemanticMatchEngine(client)
            vector = await client.embed("Invoice INV-118 ACME")
    """

    def __init__(
        self,
        settings: Optional[EmbeddingSettings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        retry_backoff: float = 1.0,
    ):
        """
        Initialize embedding client.

        Args:
            settings: Embedding settings (defaults to config)
            transport: Custom httpx transport (used by tests)
            retry_backoff: Multiplier of the exponential wait between retries
        """
        self._settings = settings or embedding_settings
        self.base_url = self._settings.ollama_url.rstrip("/")
        self.model = self._settings.model
        self.timeout = httpx.Timeout(
            connect=5.0,
            read=self._settings.timeout,
            write=5.0,
            pool=5.0,
        )
        self.max_retries = self._settings.max_retries
        self._transport = transport
        self._retry_backoff = retry_backoff
        self._client: Optional[httpx.AsyncClient] = None
        self._log = logger.bind(service="ollama", base_url=self.base_url, model=self.model)

    async def __aenter__(self) -> "OllamaEmbeddingClient":
        """Context manager entry - create async client."""
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self._transport or httpx.AsyncHTTPTransport(retries=1),
            headers={"Content-Type": "application/json"},
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit - close async client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    @property
    def client(self) -> httpx.AsyncClient:
        """Get the HTTP client, raising if not initialized."""
        if self._client is None:
            raise EmbeddingError(
                "OllamaEmbeddingClient not initialized. "
                "Use 'async with OllamaEmbeddingClient() as client:'"
            )
        return self._client

    async def embed(self, text: str) -> list[float]:
        """
        Generate an embedding for ``text``.

        Retries connection errors up to ``max_retries`` attempts with
        exponential backoff.

        Raises:
            EmbeddingError: On HTTP errors, malformed responses or when
                retries are exhausted
        """
        if not text.strip():
            raise EmbeddingError("Cannot embed empty text")

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.max_retries),
                wait=wait_exponential(multiplier=self._retry_backoff, max=10),
                retry=retry_if_exception_type((httpx.ConnectError, httpx.ConnectTimeout)),
                reraise=True,
            ):
                with attempt:
                    response = await self.client.post(
                        "/api/embeddings",
                        json={"model": self.model, "prompt": text},
                    )
                    response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._log.warning("embedding_http_error", status_code=exc.response.status_code)
            raise EmbeddingError(
                f"Embedding request failed: HTTP {exc.response.status_code}",
                details={"status_code": exc.response.status_code},
            ) from exc
        except httpx.HTTPError as exc:
            self._log.warning("embedding_unavailable", error=str(exc))
            raise EmbeddingError(f"Embedding service unavailable: {exc}") from exc

        embedding = response.json().get("embedding")
        if not embedding:
            raise EmbeddingError("Embedding response did not contain a vector")

        self._log.debug("embedding_generated", text_length=len(text), dimensions=len(embedding))
        return embedding
