# src/ingestion/semantic_chunker.py
"""
Two-pass semantic chunking over embedded TextUnits.

Pass 1 (boundary_detection): score every gap between consecutive units and
keep the statistical outliers as candidate boundaries.

Pass 2 (this module): turn candidates into segments and enforce the size
bounds, all as pure functions over explicit intermediate data:

- initial_segments:       cut the unit sequence at every candidate gap
- merge_small_segments:   fold segments below min_size into a neighbour
- split_large_segments:   split segments above max_size at their strongest
                          internal boundary
- refine_segments:        merge, then split

Segments are half-open ``(start, end)`` ranges of unit positions. A segment's
size is the length of its units joined by a single space, which is exactly
the length of the emitted chunk text.

A single unit longer than max_size cannot be split at a gap; it is cut into
fixed-size pieces (preferring whitespace) that all inherit the unit vector.

Chunking one document is atomic: if embedding fails, ChunkingError is raised
and no chunk is returned.
"""

from __future__ import annotations

import re
from typing import List, Optional, Sequence, Tuple

import numpy as np

from src.clients.embedding_client import EmbeddingBatchClient
from src.ingestion.boundary_detection import (
    AdaptiveThresholdCalculator,
    compute_boundary_scores,
)
from src.ingestion.text_units import split_sentences
from src.providers.tokenizer_service import TokenEstimator
from src.shared.chunk_utils import generate_chunk_id, link_chunks
from src.shared.config import ChunkingConfig
from src.shared.models import Chunk, TextUnit
from src.shared.observability import get_logger
from src.shared.observability.metrics import (
    chunk_size_chars,
    chunking_documents_total,
    chunks_created_total,
)
from src.shared.vector_utils import mean_vector

log = get_logger(__name__)

STRATEGY = "semantic"

Segment = Tuple[int, int]

_WHITESPACE_RE = re.compile(r"\s")


class ChunkingError(RuntimeError):
    """Raised when a document cannot be chunked; the cause is chained."""

    def __init__(self, document_id: str, cause: BaseException):
        super().__init__(
            f"Chunking failed for document {document_id}: "
            f"{type(cause).__name__}: {cause}"
        )
        self.document_id = document_id


# ============================================================================
# Pass 2: pure segment refinement
# ============================================================================


def segment_size(segment: Segment, unit_sizes: Sequence[int]) -> int:
    """Joined-text length of a segment (one separator between units)."""
    start, end = segment
    return sum(unit_sizes[start:end]) + (end - start - 1)


def initial_segments(unit_count: int, candidates: Sequence[int]) -> List[Segment]:
    """Cut ``unit_count`` units after every candidate gap index."""
    if unit_count <= 0:
        return []
    cuts = sorted(g + 1 for g in set(candidates) if 0 <= g < unit_count - 1)
    bounds = [0, *cuts, unit_count]
    return [(bounds[i], bounds[i + 1]) for i in range(len(bounds) - 1)]


def merge_small_segments(
    segments: Sequence[Segment], unit_sizes: Sequence[int], min_size: int
) -> List[Segment]:
    """
    Merge segments below ``min_size`` until none remain or one segment is left.

    The leftmost undersized segment is merged first. It joins its shorter
    neighbour; on a tie, the following one. The first and last segments
    merge with their only neighbour.
    """
    merged = list(segments)
    while len(merged) > 1:
        small = next(
            (i for i, seg in enumerate(merged) if segment_size(seg, unit_sizes) < min_size),
            None,
        )
        if small is None:
            break

        if small == 0:
            partner = 1
        elif small == len(merged) - 1:
            partner = small - 1
        else:
            prev_size = segment_size(merged[small - 1], unit_sizes)
            next_size = segment_size(merged[small + 1], unit_sizes)
            partner = small - 1 if prev_size < next_size else small + 1

        lo, hi = min(small, partner), max(small, partner)
        merged[lo : hi + 1] = [(merged[lo][0], merged[hi][1])]
    return merged


def split_large_segments(
    segments: Sequence[Segment],
    unit_sizes: Sequence[int],
    scores: Sequence[float],
    min_size: int,
    max_size: int,
    distance_mode: bool = False,
) -> List[Segment]:
    """
    Split segments above ``max_size`` at their strongest internal boundary.

    ``scores[g]`` is the score of gap g (between unit g and g + 1). The
    strongest gap is the lowest similarity (highest distance in distance
    mode); gaps leaving both halves at least ``min_size`` are preferred and
    ties go to the lowest gap index. Halves are split again until they fit
    or consist of a single unit.
    """
    result: List[Segment] = []
    for segment in segments:
        stack = [segment]
        while stack:
            start, end = stack.pop()
            if end - start <= 1 or segment_size((start, end), unit_sizes) <= max_size:
                result.append((start, end))
                continue

            gaps = range(start, end - 1)
            balanced = [
                g
                for g in gaps
                if segment_size((start, g + 1), unit_sizes) >= min_size
                and segment_size((g + 1, end), unit_sizes) >= min_size
            ]
            pool = balanced or list(gaps)
            if distance_mode:
                best = min(pool, key=lambda g: (-scores[g], g))
            else:
                best = min(pool, key=lambda g: (scores[g], g))

            # Right half pushed first so the left half is emitted first
            stack.append((best + 1, end))
            stack.append((start, best + 1))
    return result


def refine_segments(
    segments: Sequence[Segment],
    unit_sizes: Sequence[int],
    scores: Sequence[float],
    min_size: int,
    max_size: int,
    distance_mode: bool = False,
) -> List[Segment]:
    """Pass 2: merge undersized segments, then split oversized ones."""
    merged = merge_small_segments(segments, unit_sizes, min_size)
    return split_large_segments(
        merged, unit_sizes, scores, min_size, max_size, distance_mode
    )


def split_oversized_text(text: str, max_size: int) -> List[Tuple[int, int]]:
    """
    Cut ``text`` into pieces of at most ``max_size`` characters.

    Each cut falls on the last whitespace inside the window when there is
    one, otherwise exactly at ``max_size``. Returns ``(start, end)`` spans
    relative to ``text``; leading whitespace and whitespace between pieces
    is dropped, so every span is non-empty.
    """
    if max_size <= 0:
        raise ValueError(f"max_size must be positive, got {max_size}")

    spans: List[Tuple[int, int]] = []
    pos, n = 0, len(text)
    while pos < n and text[pos].isspace():
        pos += 1
    while pos < n:
        if n - pos <= max_size:
            spans.append((pos, n))
            break

        window_end = pos + max_size
        last_ws = -1
        for match in _WHITESPACE_RE.finditer(text, pos + 1, window_end + 1):
            last_ws = match.start()
        cut = last_ws if last_ws > pos else window_end

        piece_end = pos + len(text[pos:cut].rstrip())
        spans.append((pos, piece_end))

        pos = cut
        while pos < n and text[pos].isspace():
            pos += 1
    return spans


# ============================================================================
# Chunker
# ============================================================================


class SemanticChunker:
    """
    Embedding-driven chunker.

    Flow: embed units -> gap scores -> Pass 1 candidates -> Pass 2 segments
    -> chunks with mean vectors, token estimates and neighbour links.
    """

    def __init__(
        self,
        embedding_client: EmbeddingBatchClient,
        config: Optional[ChunkingConfig] = None,
        estimator: Optional[TokenEstimator] = None,
    ):
        self.embedding_client = embedding_client
        self.config = config or ChunkingConfig()
        self.estimator = estimator or TokenEstimator()
        self.calculator = AdaptiveThresholdCalculator(self.config.threshold)

    async def chunk_document(self, document_id: str, text: str) -> List[Chunk]:
        """Segment ``text`` into sentences and chunk them."""
        units = split_sentences(document_id, text)
        if not units:
            log.debug("semantic_chunking_empty_document", document_id=document_id)
            return []
        return await self.chunk_units(units)

    async def chunk_units(self, units: Sequence[TextUnit]) -> List[Chunk]:
        """
        Chunk an ordered sequence of units from one document.

        Raises:
            ValueError: If the units belong to more than one document
            ChunkingError: If embedding the units fails
        """
        if not units:
            return []

        document_id = units[0].document_id
        if any(u.document_id != document_id for u in units):
            raise ValueError("chunk_units requires units from a single document")

        try:
            embedded = await self.embedding_client.embed_texts(
                [u.text for u in units],
                ids=[f"{document_id}:{u.index}" for u in units],
            )
        except Exception as e:
            chunking_documents_total.labels(strategy=STRATEGY, status="error").inc()
            log.error(
                "semantic_chunking_embedding_failed",
                document_id=document_id,
                units=len(units),
                error=str(e),
            )
            raise ChunkingError(document_id, e) from e

        vectors = [v.values for v in embedded]
        distance_mode = self.calculator.distance_mode
        scores = [
            s.score
            for s in compute_boundary_scores(vectors, self.config.threshold.score_mode)
        ]

        # Pass 1
        candidates = self.calculator.find_candidates(scores)

        # Pass 2
        unit_sizes = [u.char_count for u in units]
        segments = refine_segments(
            initial_segments(len(units), sorted(candidates)),
            unit_sizes,
            scores,
            self.config.min_size,
            self.config.max_size,
            distance_mode,
        )

        chunks = link_chunks(self._build_chunks(units, vectors, scores, segments))

        chunking_documents_total.labels(strategy=STRATEGY, status="success").inc()
        chunks_created_total.labels(strategy=STRATEGY).inc(len(chunks))
        for chunk in chunks:
            chunk_size_chars.labels(strategy=STRATEGY).observe(chunk.char_count)

        log.info(
            "semantic_chunking_complete",
            document_id=document_id,
            units=len(units),
            candidates=len(candidates),
            chunks=len(chunks),
        )
        return chunks

    def _build_chunks(
        self,
        units: Sequence[TextUnit],
        vectors: Sequence[Sequence[float]],
        scores: Sequence[float],
        segments: Sequence[Segment],
    ) -> List[Chunk]:
        # (text, start_offset, end_offset, unit_indices, vector, coherence)
        drafts = []
        for start, end in segments:
            seg_units = units[start:end]
            if len(seg_units) == 1 and seg_units[0].char_count > self.config.max_size:
                unit = seg_units[0]
                for rel_start, rel_end in split_oversized_text(
                    unit.text, self.config.max_size
                ):
                    drafts.append(
                        (
                            unit.text[rel_start:rel_end],
                            unit.start_offset + rel_start,
                            unit.start_offset + rel_end,
                            (unit.index,),
                            tuple(vectors[start]),
                            1.0,
                        )
                    )
                continue

            drafts.append(
                (
                    " ".join(u.text for u in seg_units),
                    seg_units[0].start_offset,
                    seg_units[-1].end_offset,
                    tuple(u.index for u in seg_units),
                    tuple(mean_vector(vectors[start:end])),
                    self._coherence(scores[start : end - 1]),
                )
            )

        document_id = units[0].document_id
        chunks = []
        for index, draft in enumerate(drafts):
            text, start_offset, end_offset, unit_indices, vector, coherence = draft
            chunks.append(
                Chunk(
                    chunk_id=generate_chunk_id(document_id, index, start_offset, end_offset),
                    document_id=document_id,
                    index=index,
                    text=text,
                    start_offset=start_offset,
                    end_offset=end_offset,
                    unit_indices=unit_indices,
                    vector=vector,
                    char_count=len(text),
                    token_count=self.estimator.estimate(text),
                    metadata={"strategy": STRATEGY, "coherence_score": coherence},
                )
            )
        return chunks

    def _coherence(self, internal_scores: Sequence[float]) -> float:
        """Mean similarity across a chunk's internal gaps (1.0 for one unit)."""
        if not internal_scores:
            return 1.0
        values = np.asarray(internal_scores, dtype=np.float64)
        if self.calculator.distance_mode:
            values = 1.0 - values
        return float(np.mean(values))
