from __future__ import annotations

import asyncio
import time
from typing import Any, Callable, Dict, List, Optional, Sequence, Set, Tuple

from src.providers.embeddings.base import EmbeddingProvider, EmbeddingProviderError
from src.shared.cache import EmbeddingCache, make_cache_key, normalize_text
from src.shared.config import Config, EmbeddingClientConfig
from src.shared.models import (
    BatchEmbeddingResult,
    EmbeddingRequest,
    EmbeddingResult,
    EmbeddingVector,
)
from src.shared.observability import get_logger
from src.shared.observability.metrics import embedding_retry_total
from src.shared.resilience import RetryExhaustedError, RetryPolicy, retry_async

log = get_logger(__name__)

Vector = Tuple[float, ...]


class EmbeddingBatchError(RuntimeError):
    """Raised when a batch cannot be embedded; no partial result is returned."""

    def __init__(self, operation: str, attempts: int, last_error: BaseException):
        super().__init__(
            f"{operation} failed after {attempts} attempt(s): "
            f"{type(last_error).__name__}: {last_error}"
        )
        self.operation = operation
        self.attempts = attempts
        self.last_error = last_error


class EmbeddingBatchClient:
    """Cache-aware, batching, retrying front end for an embedding provider.

    One ``embed_batch`` call:

    1. deduplicates texts that are equal after normalization (NFC, trimmed),
       the first occurrence being the one sent to the provider,
    2. looks up each distinct text in the cache,
    3. sends the misses to the provider in sub-batches of at most
       ``batch_size`` texts, with at most ``max_concurrency`` calls in flight,
    4. retries each sub-batch under the retry policy, with a per-attempt
       timeout,
    5. writes fresh vectors to the cache and merges everything back into
       request order.

    If any sub-batch fails for good, the still running siblings are cancelled
    and ``EmbeddingBatchError`` is raised.
    """

    def __init__(
        self,
        provider: EmbeddingProvider,
        cache: Optional[EmbeddingCache] = None,
        config: Optional[EmbeddingClientConfig] = None,
        retry_policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], Any] = asyncio.sleep,
    ) -> None:
        self._provider = provider
        self._cache = cache
        self._config = config or EmbeddingClientConfig()
        self._retry_policy = retry_policy or RetryPolicy(
            max_retries=self._config.max_retries,
            delays_ms=tuple(self._config.retry_delays_ms),
        )
        self._sleep = sleep

    @classmethod
    def from_config(
        cls, provider: EmbeddingProvider, config: Config
    ) -> "EmbeddingBatchClient":
        """Build a client (and its own cache when enabled) from the main Config."""
        cache = EmbeddingCache.from_config(config.cache) if config.cache.enabled else None
        return cls(provider, cache=cache, config=config.embedding)

    @property
    def model_id(self) -> str:
        return self._provider.model_id

    @property
    def cache(self) -> Optional[EmbeddingCache]:
        return self._cache

    async def embed_batch(
        self, requests: Sequence[EmbeddingRequest]
    ) -> BatchEmbeddingResult:
        """Embed ``requests``; results keep request order and duplicates."""
        start = time.monotonic()
        if not requests:
            return BatchEmbeddingResult(
                results=(), cache_hits=0, cache_misses=0, retries=0, total_time_ms=0.0
            )

        # Dedupe on the same normalized form the cache keys use
        keys = [normalize_text(r.text) for r in requests]
        unique: Dict[str, str] = {}
        for key, request in zip(keys, requests):
            unique.setdefault(key, request.text)

        vectors: Dict[str, Vector] = {}
        hits: Set[str] = set()
        misses: List[str] = []

        for key, text in unique.items():
            cached = self._cache_get(text)
            if cached is not None:
                vectors[key] = cached
                hits.add(key)
            else:
                misses.append(key)

        retries = 0
        if misses:
            miss_texts = [unique[key] for key in misses]
            fresh, retries = await self._embed_misses(miss_texts)
            for key, text, vector in zip(misses, miss_texts, fresh):
                vectors[key] = vector
                self._cache_put(text, vector)

        results = tuple(
            EmbeddingResult(embedding=vectors[key], from_cache=key in hits, id=r.id)
            for key, r in zip(keys, requests)
        )
        total_time_ms = (time.monotonic() - start) * 1000

        log.debug(
            "embedding_batch_completed",
            model_id=self.model_id,
            requests=len(requests),
            distinct=len(unique),
            cache_hits=len(hits),
            cache_misses=len(misses),
            retries=retries,
            total_time_ms=round(total_time_ms, 2),
        )

        return BatchEmbeddingResult(
            results=results,
            cache_hits=len(hits),
            cache_misses=len(misses),
            retries=retries,
            total_time_ms=total_time_ms,
        )

    async def embed_texts(
        self, texts: Sequence[str], ids: Optional[Sequence[str]] = None
    ) -> List[EmbeddingVector]:
        """Embed plain texts; ``ids`` default to the positional index."""
        if ids is not None and len(ids) != len(texts):
            raise ValueError(f"Got {len(ids)} ids for {len(texts)} texts")
        text_ids = list(ids) if ids is not None else [str(i) for i in range(len(texts))]
        batch = await self.embed_batch(
            [EmbeddingRequest(text=t, id=i) for t, i in zip(texts, text_ids)]
        )
        return [
            EmbeddingVector(text_id=r.id, values=r.embedding) for r in batch.results
        ]

    async def embed(self, text: str) -> Vector:
        batch = await self.embed_batch([EmbeddingRequest(text=text)])
        return batch.results[0].embedding

    def clear_cache(self) -> None:
        if self._cache is not None:
            self._cache.clear()

    def cache_stats(self) -> Dict[str, Any]:
        if self._cache is None:
            return {"enabled": False}
        return {"enabled": True, **self._cache.stats()}

    async def health_check(self) -> bool:
        return await self._provider.health_check()

    async def _embed_misses(self, texts: List[str]) -> Tuple[List[Vector], int]:
        batch_size = self._config.batch_size
        batches = [texts[i : i + batch_size] for i in range(0, len(texts), batch_size)]
        semaphore = asyncio.Semaphore(self._config.max_concurrency)

        tasks = [
            asyncio.ensure_future(self._run_sub_batch(batch, semaphore))
            for batch in batches
        ]
        try:
            outcomes = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        vectors: List[Vector] = []
        retries = 0
        for batch_vectors, batch_retries in outcomes:
            vectors.extend(batch_vectors)
            retries += batch_retries
        return vectors, retries

    async def _run_sub_batch(
        self, texts: List[str], semaphore: asyncio.Semaphore
    ) -> Tuple[List[Vector], int]:
        operation = f"embed_documents[{self.model_id}]"
        attempts = 0

        async def attempt() -> List[Vector]:
            nonlocal attempts
            attempts += 1
            raw = await asyncio.wait_for(
                self._provider.embed_documents(list(texts)),
                timeout=self._config.timeout_seconds,
            )
            if len(raw) != len(texts):
                raise EmbeddingProviderError(
                    f"Provider returned {len(raw)} vectors for {len(texts)} texts"
                )
            return [tuple(float(x) for x in vector) for vector in raw]

        def on_retry(retry_number: int, error: BaseException) -> None:
            embedding_retry_total.labels(operation="embed_documents").inc()

        async with semaphore:
            try:
                outcome = await retry_async(
                    attempt,
                    self._retry_policy,
                    operation=operation,
                    sleep=self._sleep,
                    on_retry=on_retry,
                )
            except RetryExhaustedError as e:
                raise EmbeddingBatchError(operation, e.attempts, e.last_error) from e
            except Exception as e:
                raise EmbeddingBatchError(operation, attempts, e) from e

        return outcome.value, outcome.retries

    def _cache_get(self, text: str) -> Optional[Vector]:
        if self._cache is None:
            return None
        try:
            return self._cache.get(make_cache_key(self.model_id, text))
        except Exception as e:
            log.warning("embedding_cache_read_failed", error=str(e))
            return None

    def _cache_put(self, text: str, vector: Vector) -> None:
        if self._cache is None:
            return
        try:
            self._cache.put(make_cache_key(self.model_id, text), vector)
        except Exception as e:
            log.warning("embedding_cache_write_failed", error=str(e))
