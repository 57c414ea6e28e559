"""
Token estimation for context budgeting.

This is a character-ratio approximation, not a real tokenizer: the default of
4 characters per token is the usual rule of thumb for English text with
BPE-style tokenizers. Callers that require exact counts must plug in a
model-specific tokenizer.
"""

import math
from typing import Iterable, Optional

from src.shared.config import TokenEstimatorConfig


class TokenEstimator:
    """
    Estimate token counts as ceil(len(text) / chars_per_token).

    Properties:
    - empty text -> 0
    - non-negative
    - monotonically non-decreasing in text length
    """

    def __init__(self, chars_per_token: float = 4.0):
        """
        Args:
            chars_per_token: Characters per token (must be > 0)

        Raises:
            ValueError: If chars_per_token is not positive
        """
        if chars_per_token <= 0:
            raise ValueError(
                f"chars_per_token must be positive, got {chars_per_token}"
            )
        self.chars_per_token = chars_per_token

    @classmethod
    def from_config(
        cls, config: Optional[TokenEstimatorConfig] = None
    ) -> "TokenEstimator":
        config = config or TokenEstimatorConfig()
        return cls(chars_per_token=config.chars_per_token)

    def estimate(self, text: str) -> int:
        """Estimated token count for a single text."""
        if not text:
            return 0
        return math.ceil(len(text) / self.chars_per_token)

    def estimate_many(self, texts: Iterable[str]) -> int:
        """Sum of per-text estimates."""
        return sum(self.estimate(text) for text in texts)
