"""
Fixed-size sentence packing: the no-embedding chunking strategy.

Sentences are packed greedily. A chunk is closed when the next sentence
would push it past max_size and it has already reached min_size; below
min_size the chunk is topped up to max_size with the head of the next
sentence instead. Each new chunk starts with the last ``overlap``
characters of the previous one.

Sentences longer than max_size are cut the same way the semantic chunker cuts
oversized units. Chunks carry no vector.
"""

from collections import deque
from dataclasses import replace
from typing import List, Optional, Sequence, Tuple

from src.ingestion.semantic_chunker import split_oversized_text
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

log = get_logger(__name__)

STRATEGY = "simple"


def _slice_unit(unit: TextUnit, start: int, end: int) -> TextUnit:
    """Sub-span of a unit; offsets stay relative to the source document."""
    return replace(
        unit,
        start_offset=unit.start_offset + start,
        end_offset=unit.start_offset + end,
        text=unit.text[start:end],
    )


def _separator(prev: TextUnit, nxt: TextUnit) -> str:
    # Pieces cut from one unit without whitespace between them stay glued
    return "" if prev.end_offset == nxt.start_offset else " "


def _join(pieces: Sequence[TextUnit]) -> str:
    if not pieces:
        return ""
    parts = [pieces[0].text]
    for prev, nxt in zip(pieces, pieces[1:]):
        parts.append(_separator(prev, nxt))
        parts.append(nxt.text)
    return "".join(parts)


def _joined_size(pieces: Sequence[TextUnit]) -> int:
    return len(_join(pieces))


def _fit_pieces(units: Sequence[TextUnit], max_size: int) -> List[TextUnit]:
    """Cut units longer than max_size into pieces that fit."""
    pieces: List[TextUnit] = []
    for unit in units:
        if unit.char_count <= max_size:
            pieces.append(unit)
            continue
        for start, end in split_oversized_text(unit.text, max_size):
            pieces.append(_slice_unit(unit, start, end))
    return pieces


def _split_head(piece: TextUnit, room: int) -> Tuple[Optional[TextUnit], Optional[TextUnit]]:
    """Split off a head of at most ``room`` characters, preferring whitespace."""
    if room <= 0:
        return None, piece
    spans = split_oversized_text(piece.text, room)
    if not spans:
        return None, None
    head = _slice_unit(piece, *spans[0])
    if len(spans) == 1:
        return head, None
    return head, _slice_unit(piece, spans[1][0], piece.char_count)


def overlap_tail(pieces: Sequence[TextUnit], overlap: int) -> List[TextUnit]:
    """
    Last ``overlap`` characters of the joined pieces, as pieces.

    The separator between two pieces is dropped and leading whitespace is
    trimmed, so the tail may come out slightly shorter than ``overlap``.
    """
    remaining = min(overlap, _joined_size(pieces))
    tail: List[TextUnit] = []
    for i in range(len(pieces) - 1, -1, -1):
        piece = pieces[i]
        if remaining <= 0:
            break
        if piece.char_count >= remaining:
            tail.append(_slice_unit(piece, piece.char_count - remaining, piece.char_count))
            break
        tail.append(piece)
        remaining -= piece.char_count
        if i > 0:
            remaining -= len(_separator(pieces[i - 1], piece))
    tail.reverse()

    if tail:
        first = tail[0]
        stripped = first.text.lstrip()
        if not stripped:
            tail.pop(0)
        elif len(stripped) != first.char_count:
            tail[0] = _slice_unit(first, first.char_count - len(stripped), first.char_count)
    return tail


def pack_pieces(
    pieces: Sequence[TextUnit], min_size: int, max_size: int, overlap: int = 0
) -> List[List[TextUnit]]:
    """
    Greedy packing of consecutive pieces into groups of at most max_size.

    Every piece must already fit in max_size. An overlap tail that leaves no
    room for the next piece is dropped.
    """
    groups: List[List[TextUnit]] = []
    current: List[TextUnit] = []
    fresh = 0  # pieces in current that are not overlap
    queue = deque(pieces)
    while queue:
        piece = queue.popleft()
        size = _joined_size(current)
        gap = len(_separator(current[-1], piece)) if current else 0
        if not current or size + gap + piece.char_count <= max_size:
            current.append(piece)
            fresh += 1
            continue

        if fresh == 0:
            current = []
            queue.appendleft(piece)
            continue

        if size < min_size:
            head, rest = _split_head(piece, max_size - size - gap)
            if head is not None:
                current.append(head)
            if rest is not None:
                queue.appendleft(rest)
        else:
            queue.appendleft(piece)

        groups.append(current)
        current = overlap_tail(current, overlap) if queue else []
        fresh = 0

    if fresh:
        groups.append(current)
    return groups


class SimpleChunker:
    """Rule-based chunker used when semantic chunking is not wanted or fails."""

    def __init__(
        self,
        config: Optional[ChunkingConfig] = None,
        estimator: Optional[TokenEstimator] = None,
    ):
        self.config = config or ChunkingConfig()
        self.estimator = estimator or TokenEstimator()

    async def chunk_document(self, document_id: str, text: str) -> List[Chunk]:
        return await self.chunk_units(split_sentences(document_id, text))

    async def chunk_units(self, units: Sequence[TextUnit]) -> List[Chunk]:
        if not units:
            return []

        document_id = units[0].document_id
        groups = pack_pieces(
            _fit_pieces(units, self.config.max_size),
            self.config.min_size,
            self.config.max_size,
            self.config.effective_overlap,
        )

        chunks = []
        for index, group in enumerate(groups):
            text = _join(group)
            start_offset = group[0].start_offset
            end_offset = group[-1].end_offset
            chunks.append(
                Chunk(
                    chunk_id=generate_chunk_id(document_id, index, start_offset, end_offset),
                    document_id=document_id,
                    index=index,
                    text=text,
                    start_offset=start_offset,
                    end_offset=end_offset,
                    unit_indices=tuple(dict.fromkeys(p.index for p in group)),
                    vector=(),
                    char_count=len(text),
                    token_count=self.estimator.estimate(text),
                    metadata={"strategy": STRATEGY},
                )
            )
        chunks = link_chunks(chunks)

        chunking_documents_total.labels(strategy=STRATEGY, status="success").inc()
        chunks_created_total.labels(strategy=STRATEGY).inc(len(chunks))
        for chunk in chunks:
            chunk_size_chars.labels(strategy=STRATEGY).observe(chunk.char_count)

        log.debug(
            "simple_chunking_complete",
            document_id=document_id,
            chunks=len(chunks),
            overlap=self.config.effective_overlap,
        )
        return chunks
