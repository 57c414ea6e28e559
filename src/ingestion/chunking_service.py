"""
Chunking strategy selection and multi-document chunking.

The semantic strategy is the default. The simple strategy is used when it
is configured explicitly, or as a fallback after a semantic failure when
``fallback_to_simple`` is enabled. Without that flag a semantic failure
propagates as ChunkingError.
"""

import asyncio
from typing import Dict, List, Optional, Sequence, Tuple

from src.clients.embedding_client import EmbeddingBatchClient
from src.ingestion.semantic_chunker import ChunkingError, SemanticChunker
from src.ingestion.simple_chunker import SimpleChunker
from src.providers.tokenizer_service import TokenEstimator
from src.shared.config import ChunkingConfig
from src.shared.models import Chunk
from src.shared.observability import get_logger

log = get_logger(__name__)


class ChunkingService:
    def __init__(
        self,
        embedding_client: Optional[EmbeddingBatchClient] = None,
        config: Optional[ChunkingConfig] = None,
        estimator: Optional[TokenEstimator] = None,
        max_concurrent_documents: int = 4,
    ):
        if max_concurrent_documents <= 0:
            raise ValueError(
                f"max_concurrent_documents must be positive, got {max_concurrent_documents}"
            )
        self.config = config or ChunkingConfig()
        estimator = estimator or TokenEstimator()
        if self.config.strategy == "semantic" and embedding_client is None:
            raise ValueError("semantic strategy requires an embedding client")

        self.semantic = (
            SemanticChunker(embedding_client, self.config, estimator)
            if embedding_client is not None
            else None
        )
        self.simple = SimpleChunker(self.config, estimator)
        self.max_concurrent_documents = max_concurrent_documents

    async def chunk_document(self, document_id: str, text: str) -> List[Chunk]:
        """Chunk one document with the configured strategy."""
        if self.config.strategy == "simple":
            return await self.simple.chunk_document(document_id, text)

        try:
            return await self.semantic.chunk_document(document_id, text)
        except ChunkingError as e:
            if not self.config.fallback_to_simple:
                raise
            log.warning(
                "semantic_chunking_fallback",
                document_id=document_id,
                error=str(e),
            )
            return await self.simple.chunk_document(document_id, text)

    async def chunk_documents(
        self, documents: Sequence[Tuple[str, str]]
    ) -> Dict[str, List[Chunk]]:
        """
        Chunk ``(document_id, text)`` pairs concurrently.

        Returns a mapping in input order. The first failing document aborts
        the call; documents still in progress are cancelled.
        """
        ids = [doc_id for doc_id, _ in documents]
        if len(set(ids)) != len(ids):
            raise ValueError("document ids must be unique")

        semaphore = asyncio.Semaphore(self.max_concurrent_documents)

        async def run(document_id: str, text: str) -> List[Chunk]:
            async with semaphore:
                return await self.chunk_document(document_id, text)

        tasks = [asyncio.ensure_future(run(doc_id, text)) for doc_id, text in documents]
        try:
            results = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        log.info(
            "documents_chunked",
            documents=len(documents),
            chunks=sum(len(r) for r in results),
        )
        return dict(zip(ids, results))
