"""
Chunk utilities shared by the chunking strategies.

Provides deterministic chunk ID generation and neighbour linking.

Key invariants:
- IDs are deterministic: same inputs -> same ID
- IDs are full SHA256 hex (64-char)
- Linking never reorders chunks
"""

import dataclasses
import hashlib
from typing import List, Sequence

from src.shared.models import Chunk


def generate_chunk_id(
    document_id: str, index: int, start_offset: int, end_offset: int
) -> str:
    """
    Generate deterministic chunk ID.

    The chunk position and source span are part of the identity, so the
    pieces of a force-split unit get distinct IDs.

    Args:
        document_id: Document identifier
        index: Chunk position within the document (0-based)
        start_offset: Source start offset
        end_offset: Source end offset

    Returns:
        64-character deterministic chunk ID (SHA256 hex)
    """
    if not document_id:
        raise ValueError("document_id cannot be empty")

    # Format: document_id|index|start:end
    material = f"{document_id}|{index}|{start_offset}:{end_offset}"
    return hashlib.sha256(material.encode("utf-8")).hexdigest()


def link_chunks(chunks: Sequence[Chunk]) -> List[Chunk]:
    """
    Return copies of ``chunks`` with relationship metadata.

    Adds ``prev_chunk_id``, ``next_chunk_id`` (None at the ends) and
    ``position`` ("i/n", 1-based) to each chunk's metadata.
    """
    total = len(chunks)
    linked: List[Chunk] = []
    for i, chunk in enumerate(chunks):
        metadata = dict(chunk.metadata)
        metadata["prev_chunk_id"] = chunks[i - 1].chunk_id if i > 0 else None
        metadata["next_chunk_id"] = chunks[i + 1].chunk_id if i < total - 1 else None
        metadata["position"] = f"{i + 1}/{total}"
        linked.append(dataclasses.replace(chunk, metadata=metadata))
    return linked
