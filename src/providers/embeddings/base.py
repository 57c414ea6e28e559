"""
Base embedding provider protocol.

This abstraction enables:
1. Clean swapping between remote embedding backends
2. Consistent async API for the batch client
3. Test doubles without any network access

Providers return List[List[float]] (no numpy arrays) so results stay JSON
serializable and can be cached as plain tuples.
"""

from typing import List, Optional, Protocol, runtime_checkable


class EmbeddingProviderError(RuntimeError):
    """
    Transport or provider-side failure while generating embeddings.

    Attributes:
        status_code: HTTP status code when the failure came from a response
        retryable: False when repeating the same request cannot succeed
            (e.g. HTTP 4xx other than 429)
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        retryable: bool = True,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.retryable = retryable


@runtime_checkable
class EmbeddingProvider(Protocol):
    """
    Protocol for remote embedding providers.

    All providers must implement this interface to be usable by
    EmbeddingBatchClient.
    """

    @property
    def model_id(self) -> str:
        """
        Get the model identifier.

        Returns:
            str: Model identifier (e.g., "nomic-embed-text"); also used as the
            cache key prefix
        """
        ...

    @property
    def provider_name(self) -> str:
        """
        Get the provider name.

        Returns:
            str: Provider name (e.g., "ollama")
        """
        ...

    async def embed_documents(self, texts: List[str]) -> List[List[float]]:
        """
        Generate embeddings for multiple texts in one remote call.

        Args:
            texts: Non-empty list of texts to embed

        Returns:
            One embedding vector per input text, in input order

        Raises:
            EmbeddingProviderError: If the remote call fails
        """
        ...

    async def health_check(self) -> bool:
        """
        Check that the provider is reachable.

        Returns:
            True when the provider responded successfully
        """
        ...
