# Shared test fixtures: fake embedding provider, controllable clock, no-op sleep

import os
import sys
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import pytest

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

# Set test environment
os.environ["ENV"] = "test"

from src.providers.embeddings.base import EmbeddingProviderError  # noqa: E402


class FakeEmbeddingProvider:
    """
    In-memory provider.

    Vectors come from ``vectors`` when the text is mapped there, otherwise
    from a deterministic function of the text. ``fail_times`` makes the first
    N calls raise; ``error`` overrides the raised exception.
    """

    def __init__(
        self,
        vectors: Optional[Dict[str, Sequence[float]]] = None,
        fail_times: int = 0,
        error: Optional[Exception] = None,
        model_id: str = "fake-embed",
    ):
        self.vectors = dict(vectors or {})
        self.fail_times = fail_times
        self.error = error
        self.calls: List[List[str]] = []
        self.healthy = True
        self._model_id = model_id

    @property
    def model_id(self) -> str:
        return self._model_id

    @property
    def provider_name(self) -> str:
        return "fake"

    def vector_for(self, text: str) -> List[float]:
        if text in self.vectors:
            return [float(x) for x in self.vectors[text]]
        return [float(len(text)), float(sum(map(ord, text)) % 97), 1.0]

    async def embed_documents(self, texts: List[str]) -> List[List[float]]:
        self.calls.append(list(texts))
        if self.fail_times > 0:
            self.fail_times -= 1
            raise self.error or EmbeddingProviderError("provider unavailable")
        return [self.vector_for(t) for t in texts]

    async def health_check(self) -> bool:
        return self.healthy


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    """Async sleep replacement that records requested delays and returns at once."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def fake_provider():
    return FakeEmbeddingProvider()


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def no_sleep():
    return RecordingSleep()


@pytest.fixture
def provider_cls():
    """The fake provider class, for tests that configure or subclass it."""
    return FakeEmbeddingProvider
