"""
Shared domain models for chunking, embedding and context fitting.

Value objects are frozen dataclasses: once a TextUnit, vector, chunk or fitted
context is created it is never mutated. Configuration models derive from
ContextBaseModel (pydantic) so they are validated at construction.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict


class ContextBaseModel(BaseModel):
    model_config = ConfigDict(
        protected_namespaces=(),  # allow fields like model_id
        arbitrary_types_allowed=True,
    )


@dataclass(frozen=True)
class TextUnit:
    """Contiguous span of a source document considered for boundary detection."""

    document_id: str
    index: int
    start_offset: int
    end_offset: int
    text: str

    @property
    def char_count(self) -> int:
        return len(self.text)


@dataclass(frozen=True)
class EmbeddingVector:
    """Embedding of one text, keyed by the identifier of that text."""

    text_id: str
    values: Tuple[float, ...]

    @property
    def dims(self) -> int:
        return len(self.values)

    def as_list(self) -> list:
        return list(self.values)


@dataclass(frozen=True)
class BoundaryScore:
    """Similarity (or distance) across the gap between unit i and unit i+1."""

    gap_index: int
    score: float


@dataclass(frozen=True)
class Chunk:
    """
    Final contiguous group of TextUnits treated as one retrievable unit.

    unit_indices references the TextUnits the chunk was built from; the units
    themselves stay owned by the ingesting document.
    """

    chunk_id: str
    document_id: str
    index: int
    text: str
    start_offset: int
    end_offset: int
    unit_indices: Tuple[int, ...]
    vector: Tuple[float, ...]
    char_count: int
    token_count: int
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class SearchResult:
    """Externally ranked candidate considered for inclusion in a fitted context."""

    text: str
    relevance: float
    source: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class FittedContext:
    """Outcome of one fit call; included results keep their input order."""

    included: Tuple[SearchResult, ...]
    excluded_count: int
    tokens_used: int
    tokens_available: int
    truncated: bool
    reserved_tokens: int
    max_tokens: int

    @property
    def included_count(self) -> int:
        return len(self.included)

    @property
    def utilization(self) -> float:
        if self.tokens_available <= 0:
            return 0.0
        return self.tokens_used / self.tokens_available


@dataclass(frozen=True)
class EmbeddingRequest:
    text: str
    id: Optional[str] = None


@dataclass(frozen=True)
class EmbeddingResult:
    embedding: Tuple[float, ...]
    from_cache: bool
    id: Optional[str] = None


@dataclass(frozen=True)
class BatchEmbeddingResult:
    """Per-request results (request order, duplicates included) plus call statistics."""

    results: Tuple[EmbeddingResult, ...]
    cache_hits: int
    cache_misses: int
    retries: int
    total_time_ms: float
