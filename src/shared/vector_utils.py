"""
Shared utilities for vector operations.

This module provides the vector math used by the chunker (boundary scores and
chunk aggregate vectors) so that every caller computes similarity the same way.
"""

from typing import List, Sequence

import numpy as np


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Cosine similarity between two vectors.

    A zero-norm vector has no direction; its similarity to anything is 0.0.

    Raises:
        ValueError: If the vectors differ in dimension
    """
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    if va.shape != vb.shape:
        raise ValueError(
            f"Vector dimension mismatch: {va.shape[0]} != {vb.shape[0]}"
        )
    norm_a = np.linalg.norm(va)
    norm_b = np.linalg.norm(vb)
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return float(np.dot(va, vb) / (norm_a * norm_b))


def cosine_distance(a: Sequence[float], b: Sequence[float]) -> float:
    """1 - cosine similarity."""
    return 1.0 - cosine_similarity(a, b)


def mean_vector(vectors: Sequence[Sequence[float]]) -> List[float]:
    """
    Element-wise mean of equally sized vectors.

    Raises:
        ValueError: If no vectors are given or dimensions differ
    """
    if not vectors:
        raise ValueError("mean_vector requires at least one vector")
    dims = {len(v) for v in vectors}
    if len(dims) != 1:
        raise ValueError(f"Vector dimension mismatch: {sorted(dims)}")
    return np.mean(np.asarray(vectors, dtype=np.float64), axis=0).tolist()
