"""
ContextWindowFitter packs externally ranked search results into a token
budget for a language-model prompt.

Results are taken whole, in the order given (the caller owns ranking). A
result that does not fit is skipped and the scan continues, so a smaller
result further down can still use the remaining space.
"""

from __future__ import annotations

from typing import List, Optional, Sequence

from src.providers.tokenizer_service import TokenEstimator
from src.shared.config import ContextWindowConfig
from src.shared.models import FittedContext, SearchResult
from src.shared.observability import get_logger
from src.shared.observability.metrics import (
    context_fit_excluded_total,
    context_fit_tokens_used,
)

log = get_logger(__name__)


class ContextWindowFitter:
    def __init__(
        self,
        config: Optional[ContextWindowConfig] = None,
        estimator: Optional[TokenEstimator] = None,
    ) -> None:
        self.config = config or ContextWindowConfig()
        self.estimator = estimator or TokenEstimator()

    def estimate_tokens(self, text: str) -> int:
        return self.estimator.estimate(text)

    def fit(
        self,
        results: Sequence[SearchResult],
        reserved_tokens: Optional[int] = None,
        max_tokens: Optional[int] = None,
    ) -> FittedContext:
        """
        Greedily include results while they fit in max_tokens - reserved_tokens.

        Args:
            results: Ranked results, consumed in this order
            reserved_tokens: Tokens held back for prompt and answer
                (defaults to config.default_reserved_tokens)
            max_tokens: Context window size (defaults to config.default_max_tokens)

        Raises:
            ValueError: If reserved_tokens or max_tokens is negative
        """
        if max_tokens is None:
            max_tokens = self.config.default_max_tokens
        if reserved_tokens is None:
            reserved_tokens = self.config.default_reserved_tokens
        if max_tokens < 0:
            raise ValueError(f"max_tokens must be >= 0, got {max_tokens}")
        if reserved_tokens < 0:
            raise ValueError(f"reserved_tokens must be >= 0, got {reserved_tokens}")

        available = max_tokens - reserved_tokens
        included: List[SearchResult] = []
        used = 0

        if available > 0:
            for result in results:
                cost = self.estimator.estimate(result.text)
                if used + cost <= available:
                    included.append(result)
                    used += cost

        excluded = len(results) - len(included)
        context = FittedContext(
            included=tuple(included),
            excluded_count=excluded,
            tokens_used=used,
            tokens_available=max(available, 0),
            truncated=excluded > 0,
            reserved_tokens=reserved_tokens,
            max_tokens=max_tokens,
        )

        context_fit_tokens_used.observe(used)
        if excluded:
            context_fit_excluded_total.inc(excluded)
        log.debug(
            "context_fitted",
            results=len(results),
            included=len(included),
            excluded=excluded,
            tokens_used=used,
            tokens_available=context.tokens_available,
        )
        return context
