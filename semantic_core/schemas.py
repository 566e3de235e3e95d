"""Pydantic request/response schemas for the API.

Defines the public contracts used by the FastAPI endpoints:
- GenerateEmbeddingRequest / GenerateEmbeddingResponse: one-off embedding generation.
- EmbeddingBackfillRequest / EmbeddingBackfillResponse: embedding backfill runs.
- EmbeddingCoverageResponse: pending/completed counts for a backfill target.
- ChunkBackfillRequest / ChunkBackfillResponse / ChunkStatsResponse: chunk creation.
- ChunkOut / RegenerateChunksResponse: per-source chunk views.
- SearchRequest / SearchResponse: hybrid chunk search.
- ErrorResponse: body returned for mapped domain errors.
"""
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from semantic_core.chunking import BoundaryType
from semantic_core.embedding import EmbeddableKind


class BackfillTarget(str, Enum):
    SUMMARIES = "summaries"
    CHUNKS = "chunks"


class GenerateEmbeddingRequest(BaseModel):
    """Request body for generating one embedding.

    Attributes:
        text: Text to embed (1..8000 characters once trimmed).
        type: What the text represents; recorded on the trace span.
        normalize: Return a unit-length vector.
    """
    text: str = Field(..., description="Text to embed")
    type: EmbeddableKind = EmbeddableKind.SUMMARY
    normalize: bool = True


class GenerateEmbeddingResponse(BaseModel):
    embedding: List[float]
    model: str
    tokens: int
    dimensions: int


class EmbeddingBackfillRequest(BaseModel):
    """Request body for an embedding backfill run.

    Attributes:
        target: Which table to backfill.
        batch_size: Items per batch (1..100).
        dry_run: Only count candidates.
        owner_id: Restrict to one owner.
        skip_existing: Only items without an embedding.
    """
    target: BackfillTarget = BackfillTarget.SUMMARIES
    batch_size: int = Field(default=50, ge=1, le=100)
    dry_run: bool = False
    owner_id: Optional[str] = None
    skip_existing: bool = True


class BackfillFailureOut(BaseModel):
    item_id: str
    error: str


class EmbeddingBackfillResponse(BaseModel):
    target: BackfillTarget
    dry_run: bool
    candidates: int
    processed: int
    failed: int
    skipped: int
    duration_ms: int
    failures: List[BackfillFailureOut] = []


class EmbeddingCoverageResponse(BaseModel):
    target: BackfillTarget
    pending: int
    completed: int


class ChunkBackfillRequest(BaseModel):
    source_id: Optional[str] = None
    owner_id: Optional[str] = None
    batch_size: int = Field(default=10, ge=1, le=100)
    dry_run: bool = False


class ChunkBackfillResponse(BaseModel):
    dry_run: bool
    sources_needing_chunks: int
    sources_processed: int
    chunks_created: int
    chunks_embedded: int = 0
    failed: int
    duration_ms: int
    failures: List[BackfillFailureOut] = []


class ChunkStatsResponse(BaseModel):
    total_sources: int
    sources_with_chunks: int
    sources_without_chunks: int
    total_chunks: int
    chunks_with_embeddings: int
    chunks_without_embeddings: int
    avg_chunk_length: float


class ChunkMetadataOut(BaseModel):
    start_char: int
    end_char: int
    token_count: int
    type: BoundaryType
    heading: Optional[str] = None
    page_number: Optional[int] = None
    overlap_chars: int = 0


class ChunkOut(BaseModel):
    """A stored chunk; the vector itself is omitted, only its presence is reported."""
    id: str
    source_id: str
    chunk_index: int
    content: str
    has_embedding: bool
    metadata: ChunkMetadataOut


class RegenerateChunksResponse(BaseModel):
    source_id: str
    chunks_created: int
    chunks_embedded: int
    skipped: bool


class SearchRequest(BaseModel):
    """Request body for hybrid chunk search.

    Attributes:
        query: Search text.
        limit: Number of hits (1..50).
        threshold: Minimum vector similarity for a semantic match.
        owner_id: Restrict to one owner.
        keyword_scores: Keyword relevance in [0, 1] keyed by chunk id, from the
            caller's keyword search.
        semantic_weight: Override for the configured semantic weight.
    """
    query: str = Field(..., min_length=1, description="Search text")
    limit: int = Field(default=10, ge=1, le=50)
    threshold: float = Field(default=0.0, ge=0.0, le=1.0)
    owner_id: Optional[str] = None
    keyword_scores: Dict[str, float] = Field(default_factory=dict)
    semantic_weight: Optional[float] = Field(default=None, ge=0.0, le=1.0)


class SearchHitOut(BaseModel):
    chunk: ChunkOut
    final_score: float
    semantic_score: Optional[float] = None
    keyword_score: Optional[float] = None


class SearchResponse(BaseModel):
    query: str
    results: List[SearchHitOut]


class ErrorResponse(BaseModel):
    error: str
    detail: str
    details: Dict[str, Any] = {}
