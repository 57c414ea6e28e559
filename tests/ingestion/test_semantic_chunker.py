"""
End-to-end tests for SemanticChunker with an in-memory embedding provider.
"""

import math

import pytest

from src.clients.embedding_client import EmbeddingBatchClient, EmbeddingBatchError
from src.ingestion.semantic_chunker import ChunkingError, SemanticChunker
from src.ingestion.text_units import split_sentences
from src.providers.tokenizer_service import TokenEstimator
from src.shared.cache import EmbeddingCache
from src.shared.config import ChunkingConfig, EmbeddingClientConfig
from src.shared.models import TextUnit

U1, U2, U3 = "Alpha one.", "Alpha two.", "Beta three."


def _unit_vectors(first_sim: float, second_sim: float):
    """Three 2-D unit vectors whose consecutive cosine similarities are given."""
    a = 0.0
    b = a + math.acos(first_sim)
    c = b + math.acos(second_sim)
    return [[math.cos(t), math.sin(t)] for t in (a, b, c)]


def _chunker(provider, **chunking_kwargs) -> SemanticChunker:
    client = EmbeddingBatchClient(
        provider,
        cache=EmbeddingCache(),
        config=EmbeddingClientConfig(max_retries=0),
    )
    config = ChunkingConfig(**{"min_size": 1, "max_size": 1000, **chunking_kwargs})
    return SemanticChunker(client, config, TokenEstimator())


@pytest.fixture
def scenario_provider(provider_cls):
    v1, v2, v3 = _unit_vectors(0.9, 0.2)
    return provider_cls(vectors={U1: v1, U2: v2, U3: v3})


class TestSemanticChunker:
    @pytest.mark.asyncio
    async def test_boundary_on_low_similarity_gap(self, scenario_provider):
        """Scores [0.9, 0.2] with defaults -> chunks {u1, u2} and {u3}."""
        chunker = _chunker(scenario_provider)
        chunks = await chunker.chunk_document("doc-a", f"{U1} {U2} {U3}")

        assert [c.unit_indices for c in chunks] == [(0, 1), (2,)]
        assert [c.text for c in chunks] == [f"{U1} {U2}", U3]

    @pytest.mark.asyncio
    async def test_chunk_fields(self, scenario_provider):
        text = f"{U1} {U2} {U3}"
        chunks = await _chunker(scenario_provider).chunk_document("doc-a", text)
        first, second = chunks

        assert first.document_id == "doc-a"
        assert [c.index for c in chunks] == [0, 1]
        assert text[first.start_offset : first.end_offset] == first.text
        assert text[second.start_offset : second.end_offset] == second.text
        assert first.char_count == len(first.text)
        assert first.token_count == math.ceil(len(first.text) / 4)

        v1, v2, _ = _unit_vectors(0.9, 0.2)
        assert first.vector == pytest.approx(tuple((x + y) / 2 for x, y in zip(v1, v2)))
        assert first.metadata["coherence_score"] == pytest.approx(0.9)
        assert second.metadata["coherence_score"] == 1.0
        assert first.metadata["strategy"] == "semantic"

    @pytest.mark.asyncio
    async def test_neighbour_links(self, scenario_provider):
        chunks = await _chunker(scenario_provider).chunk_document("doc-a", f"{U1} {U2} {U3}")

        assert chunks[0].metadata["prev_chunk_id"] is None
        assert chunks[0].metadata["next_chunk_id"] == chunks[1].chunk_id
        assert chunks[1].metadata["prev_chunk_id"] == chunks[0].chunk_id
        assert chunks[1].metadata["next_chunk_id"] is None
        assert [c.metadata["position"] for c in chunks] == ["1/2", "2/2"]
        assert len({c.chunk_id for c in chunks}) == 2

    @pytest.mark.asyncio
    async def test_idempotent(self, scenario_provider):
        chunker = _chunker(scenario_provider)
        text = f"{U1} {U2} {U3}"
        assert await chunker.chunk_document("doc-a", text) == await chunker.chunk_document(
            "doc-a", text
        )

    @pytest.mark.asyncio
    async def test_small_segments_merged(self, scenario_provider):
        # {u3} alone (11 chars) is below min_size and folds into its neighbour
        chunks = await _chunker(scenario_provider, min_size=15).chunk_document(
            "doc-a", f"{U1} {U2} {U3}"
        )
        assert [c.unit_indices for c in chunks] == [(0, 1, 2)]

    @pytest.mark.asyncio
    async def test_distance_mode(self, scenario_provider):
        chunks = await _chunker(
            scenario_provider, threshold={"score_mode": "distance"}
        ).chunk_document("doc-a", f"{U1} {U2} {U3}")
        # distances [0.1, 0.8]: only 0.8 exceeds the 0.5 fallback cutoff
        assert [c.unit_indices for c in chunks] == [(0, 1), (2,)]

    @pytest.mark.asyncio
    async def test_oversized_unit_force_split(self, provider_cls):
        provider = provider_cls()
        sentence = "word " * 10 + "end."
        chunks = await _chunker(provider, min_size=1, max_size=12).chunk_document(
            "doc-b", sentence
        )

        assert len(chunks) > 1
        assert all(c.char_count <= 12 for c in chunks)
        assert all(c.unit_indices == (0,) for c in chunks)
        assert len({c.vector for c in chunks}) == 1
        assert len({c.chunk_id for c in chunks}) == len(chunks)
        for chunk in chunks:
            assert sentence[chunk.start_offset : chunk.end_offset] == chunk.text

    @pytest.mark.asyncio
    async def test_sizes_within_bounds(self, provider_cls):
        text = " ".join(f"Sentence number {i} talks about topic {i % 3}." for i in range(40))
        chunks = await _chunker(provider_cls(), min_size=80, max_size=300).chunk_document(
            "doc-c", text
        )

        assert len(chunks) > 1
        assert all(80 <= c.char_count <= 300 for c in chunks)
        covered = [i for c in chunks for i in c.unit_indices]
        assert covered == list(range(40))

    @pytest.mark.asyncio
    async def test_short_document_is_single_chunk(self, provider_cls):
        chunks = await _chunker(provider_cls(), min_size=500, max_size=1000).chunk_document(
            "doc-d", "Tiny. Document."
        )
        assert len(chunks) == 1
        assert chunks[0].text == "Tiny. Document."

    @pytest.mark.asyncio
    async def test_empty_document(self, fake_provider):
        assert await _chunker(fake_provider).chunk_document("doc-e", "   ") == []
        assert fake_provider.calls == []

    @pytest.mark.asyncio
    async def test_embedding_failure_is_atomic(self, provider_cls):
        provider = provider_cls(fail_times=100)

        with pytest.raises(ChunkingError) as exc_info:
            await _chunker(provider).chunk_document("doc-f", f"{U1} {U2} {U3}")

        assert exc_info.value.document_id == "doc-f"
        assert isinstance(exc_info.value.__cause__, EmbeddingBatchError)

    @pytest.mark.asyncio
    async def test_chunk_units_requires_single_document(self, fake_provider):
        units = split_sentences("a", "One.") + split_sentences("b", "Two.")
        with pytest.raises(ValueError):
            await _chunker(fake_provider).chunk_units(units)

    @pytest.mark.asyncio
    async def test_force_split_of_indented_unit_has_no_empty_chunk(self, provider_cls):
        unit = TextUnit("doc-g", 0, 0, 12, "    abcdefgh")
        chunks = await _chunker(provider_cls(), min_size=1, max_size=3).chunk_units([unit])

        assert [c.text for c in chunks] == ["abc", "def", "gh"]
        assert all(c.token_count > 0 for c in chunks)
        assert [(c.start_offset, c.end_offset) for c in chunks] == [(4, 7), (7, 10), (10, 12)]
