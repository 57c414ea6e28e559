"""
Pass 1 of semantic chunking: statistical boundary candidate detection.

Each gap between consecutive TextUnits carries a score (cosine similarity or
cosine distance of the two unit vectors). A gap is a candidate boundary when
its score is an outlier against the document's own score distribution:

- similarity mode: score < mean - k * std
- distance mode:   score > mean + k * std

with k = std_multiplier and std the population standard deviation. Documents
with fewer than ``min_samples`` gaps have no meaningful distribution, so the
absolute ``fallback_threshold`` is used as the cutoff instead. Comparisons are
strict: a score exactly at the cutoff is not a boundary.
"""

from typing import FrozenSet, List, Optional, Sequence

import numpy as np

from src.shared.config import ThresholdConfig
from src.shared.models import BoundaryScore
from src.shared.observability import get_logger
from src.shared.vector_utils import cosine_distance, cosine_similarity

log = get_logger(__name__)


def compute_boundary_scores(
    vectors: Sequence[Sequence[float]], score_mode: str = "similarity"
) -> List[BoundaryScore]:
    """Score every gap between consecutive vectors (gap i sits after vector i)."""
    score_fn = cosine_distance if score_mode == "distance" else cosine_similarity
    return [
        BoundaryScore(gap_index=i, score=score_fn(vectors[i], vectors[i + 1]))
        for i in range(len(vectors) - 1)
    ]


class AdaptiveThresholdCalculator:
    """Finds boundary candidates from gap scores under a ThresholdConfig."""

    def __init__(self, config: Optional[ThresholdConfig] = None):
        self.config = config or ThresholdConfig()

    @property
    def distance_mode(self) -> bool:
        return self.config.score_mode == "distance"

    def compute_cutoff(self, scores: Sequence[float]) -> float:
        """Cutoff for ``scores``: statistical when enough samples, else the fallback."""
        cfg = self.config
        if len(scores) < cfg.min_samples:
            return cfg.fallback_threshold

        values = np.asarray(scores, dtype=np.float64)
        mean = float(np.mean(values))
        std = float(np.std(values))
        if self.distance_mode:
            cutoff = mean + cfg.std_multiplier * std
        else:
            cutoff = mean - cfg.std_multiplier * std

        if cfg.min_threshold is not None:
            cutoff = max(cutoff, cfg.min_threshold)
        if cfg.max_threshold is not None:
            cutoff = min(cutoff, cfg.max_threshold)
        return cutoff

    def is_boundary(self, score: float, cutoff: float) -> bool:
        if self.distance_mode:
            return score > cutoff
        return score < cutoff

    def find_candidates(self, scores: Sequence[float]) -> FrozenSet[int]:
        """
        Gap indices whose score crosses the cutoff.

        Returns an empty set for fewer than two scores.
        """
        if len(scores) <= 1:
            return frozenset()

        cutoff = self.compute_cutoff(scores)
        candidates = [i for i, s in enumerate(scores) if self.is_boundary(s, cutoff)]

        limit = self.config.candidate_limit
        if limit is not None and len(candidates) > limit:
            # Strongest first: lowest similarity / highest distance, then lowest index
            sign = -1.0 if self.distance_mode else 1.0
            candidates = sorted(candidates, key=lambda i: (sign * scores[i], i))[:limit]

        log.debug(
            "boundary_candidates_found",
            gaps=len(scores),
            cutoff=round(cutoff, 6),
            candidates=len(candidates),
            score_mode=self.config.score_mode,
        )
        return frozenset(candidates)


def detect_candidate_boundaries(
    scores: Sequence[float], config: Optional[ThresholdConfig] = None
) -> FrozenSet[int]:
    """Functional form of AdaptiveThresholdCalculator.find_candidates."""
    return AdaptiveThresholdCalculator(config).find_candidates(scores)
