"""
Ollama embedding provider implementation.

Talks to a local or remote Ollama server over HTTP:
- POST /api/embed    batch embedding ({"model", "input": [...]})
- GET  /api/version  health check

Default model: nomic-embed-text (768-D).
"""

import logging
import time
from typing import List, Optional

import httpx

from src.shared.observability.metrics import (
    embedding_batch_texts,
    embedding_error_total,
    embedding_latency_ms,
    embedding_request_total,
)

from .base import EmbeddingProviderError

logger = logging.getLogger(__name__)


def _is_retryable_status(status_code: int) -> bool:
    # Client errors will not succeed on repeat, except rate limiting
    if status_code == 429:
        return True
    return not 400 <= status_code < 500


class OllamaEmbeddingProvider:
    """
    Async Ollama embedding provider.

    The provider performs exactly one HTTP request per call; retry, batching
    and caching are the batch client's job.
    """

    def __init__(
        self,
        model: str = "nomic-embed-text",
        base_url: str = "http://localhost:11434",
        timeout: float = 30.0,
        dims: Optional[int] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize Ollama embedding provider.

        Args:
            model: Ollama model name (must be pulled first: `ollama pull <model>`)
            base_url: Ollama API base URL
            timeout: Request timeout in seconds
            dims: Expected embedding dimensions (None disables the check)
            client: Pre-built httpx.AsyncClient (tests inject a MockTransport)
        """
        self._model_id = model
        self._provider_name = "ollama"
        self._base_url = base_url.rstrip("/")
        self._dims = dims
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=timeout, base_url=self._base_url, follow_redirects=True
        )

        logger.info(
            f"OllamaEmbeddingProvider initialized: "
            f"model={model}, dims={dims}, base_url={self._base_url}"
        )

    @classmethod
    def from_config(cls, config) -> "OllamaEmbeddingProvider":
        """Build from an EmbeddingClientConfig section."""
        return cls(
            model=config.model,
            base_url=config.base_url,
            timeout=config.timeout_seconds,
        )

    @property
    def dims(self) -> Optional[int]:
        """Get expected embedding dimensions."""
        return self._dims

    @property
    def model_id(self) -> str:
        """Get model identifier."""
        return self._model_id

    @property
    def provider_name(self) -> str:
        """Get provider name."""
        return self._provider_name

    async def embed_documents(self, texts: List[str]) -> List[List[float]]:
        """
        Generate embeddings for multiple texts in one request.

        Args:
            texts: List of texts to embed

        Returns:
            List of embedding vectors

        Raises:
            ValueError: If texts is empty
            EmbeddingProviderError: If the request fails or the response is malformed
        """
        if not texts:
            raise ValueError("Cannot embed empty text list")

        start_time = time.time()
        embedding_batch_texts.labels(model_id=self._model_id).observe(len(texts))

        try:
            try:
                response = await self._client.post(
                    "/api/embed",
                    json={"model": self._model_id, "input": texts},
                )
                response.raise_for_status()
            except httpx.HTTPStatusError as e:
                status = e.response.status_code
                raise EmbeddingProviderError(
                    f"Ollama API error {status}: {e.response.text[:200]}",
                    status_code=status,
                    retryable=_is_retryable_status(status),
                ) from e
            except httpx.HTTPError as e:
                raise EmbeddingProviderError(
                    f"Ollama request failed: {type(e).__name__}: {e}"
                ) from e

            try:
                embeddings = response.json().get("embeddings")
            except (ValueError, AttributeError) as e:
                raise EmbeddingProviderError(
                    f"Ollama returned a malformed response: {e}"
                ) from e
            if not isinstance(embeddings, list) or len(embeddings) != len(texts):
                got = len(embeddings) if isinstance(embeddings, list) else 0
                raise EmbeddingProviderError(
                    f"Ollama returned {got} embeddings for {len(texts)} texts"
                )

            # Validate dimensions
            if self._dims is not None:
                for embedding in embeddings:
                    if len(embedding) != self._dims:
                        raise EmbeddingProviderError(
                            f"Ollama returned {len(embedding)}-D vector, "
                            f"expected {self._dims}-D",
                            retryable=False,
                        )

        except EmbeddingProviderError as e:
            embedding_error_total.labels(
                model_id=self._model_id, error_type=type(e.__cause__ or e).__name__
            ).inc()
            logger.error(f"Failed to embed documents with Ollama: {e}")
            raise

        # Record success
        latency_ms = (time.time() - start_time) * 1000
        embedding_request_total.labels(
            model_id=self._model_id, operation="documents"
        ).inc()
        embedding_latency_ms.labels(
            model_id=self._model_id, operation="documents"
        ).observe(latency_ms)

        logger.debug(
            f"Ollama embeddings generated: {len(embeddings)} vectors, "
            f"{latency_ms:.2f}ms"
        )

        return [[float(x) for x in embedding] for embedding in embeddings]

    async def health_check(self) -> bool:
        """Return True when GET /api/version succeeds."""
        embedding_request_total.labels(
            model_id=self._model_id, operation="health"
        ).inc()
        try:
            response = await self._client.get("/api/version")
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning(f"Ollama health check failed at {self._base_url}: {e}")
            return False
        return True

    async def aclose(self) -> None:
        """Close the HTTP client if this provider created it."""
        if self._owns_client:
            await self._client.aclose()
