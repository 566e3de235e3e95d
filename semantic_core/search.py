"""Chunk retrieval: vector search blended with caller-supplied keyword scores.

This module implements:
- SearchHit: one ranked chunk with its final, semantic and keyword scores
- ChunkSearch.search: embed the query (through the query cache when configured),
  fetch nearest chunks by pgvector cosine distance, merge keyword-only matches
  and rank everything with rank_hybrid

Keyword scores are computed by the caller (full-text search, BM25, ...) and
passed in keyed by chunk id; chunks found only by keyword rank on that score.
"""
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

from semantic_core.embedding import EmbeddingGenerator
from semantic_core.exceptions import ValidationError
from semantic_core.obs import span
from semantic_core.scoring import HybridWeights, RankCandidate, default_weights, rank_hybrid
from semantic_core.store import ChunkRepository, SourceRepository, StoredChunk

logger = logging.getLogger(__name__)


@dataclass
class SearchHit:
    chunk: StoredChunk
    final_score: float
    semantic_score: Optional[float]
    keyword_score: Optional[float]


class ChunkSearch:
    """Hybrid chunk search.

    Args:
        chunks: Chunk persistence providing vector search.
        generator: Embedding generator used for the query vector.
        sources: Source lookup used to scope keyword-only hits to an owner.
    """

    def __init__(self, chunks: ChunkRepository, generator: EmbeddingGenerator, sources: SourceRepository):
        self.chunks = chunks
        self.generator = generator
        self.sources = sources

    async def search(
        self,
        query: str,
        limit: int = 10,
        threshold: float = 0.0,
        owner_id: Optional[str] = None,
        keyword_scores: Optional[Dict[str, float]] = None,
        semantic_weight: Optional[float] = None,
    ) -> List[SearchHit]:
        """Return up to ``limit`` chunks ranked by hybrid score.

        Args:
            query: Search text.
            limit: Number of hits to return.
            threshold: Minimum vector similarity for a semantic match.
            owner_id: Restrict to chunks of this owner's sources.
            keyword_scores: Keyword relevance in [0, 1] keyed by chunk id.
            semantic_weight: Override for the semantic weight in [0, 1]; the
                keyword weight becomes its complement.

        Raises:
            ValidationError: Blank query or invalid weights.
            ProviderError: The query could not be embedded.
        """
        if not query or not query.strip():
            raise ValidationError("Query is required", field="query")
        keyword_scores = keyword_scores or {}
        if semantic_weight is None:
            weights = default_weights()
        else:
            weights = HybridWeights(semantic=semantic_weight, keyword=round(1.0 - semantic_weight, 6))

        with span("search.chunks", {"limit": limit, "keyword_hits": len(keyword_scores)}):
            qvec = await self.generator.embed(query)
            matches = await self.chunks.search_by_embedding(qvec, limit=limit, threshold=threshold, owner_id=owner_id)

            pool: Dict[str, StoredChunk] = {chunk.id: chunk for chunk, _ in matches}
            candidates = [
                RankCandidate(item_id=chunk.id, embedding=chunk.embedding, keyword_score=keyword_scores.get(chunk.id))
                for chunk, _ in matches
            ]
            # keyword-only matches: rank on keyword score alone
            for chunk_id, score in keyword_scores.items():
                if chunk_id in pool:
                    continue
                chunk = await self.chunks.get(chunk_id)
                if chunk is None or not await self._owned(chunk, owner_id):
                    logger.debug("Keyword hit %s skipped", chunk_id)
                    continue
                pool[chunk_id] = chunk
                candidates.append(RankCandidate(item_id=chunk_id, keyword_score=score))

            ranked = rank_hybrid(qvec, candidates, weights, dimensions=self.generator.config.dimensions)

        hits = [
            SearchHit(
                chunk=pool[r.item_id],
                final_score=r.score.final_score,
                semantic_score=r.score.semantic_score,
                keyword_score=r.score.keyword_score,
            )
            for r in ranked[:limit]
        ]
        logger.info("Search returned %d hit(s) from %d candidate(s)", len(hits), len(candidates))
        return hits

    async def _owned(self, chunk: StoredChunk, owner_id: Optional[str]) -> bool:
        if not owner_id:
            return True
        source = await self.sources.get(chunk.source_id)
        return source is not None and source.owner_id == owner_id
