"""
Embedding provider interfaces and implementations.
"""

from .base import EmbeddingProvider, EmbeddingProviderError
from .ollama import OllamaEmbeddingProvider

__all__ = ["EmbeddingProvider", "EmbeddingProviderError", "OllamaEmbeddingProvider"]
