"""FastAPI application entrypoint and routes.

Exposes health, embedding generation, backfill, chunk search and per-source
chunk endpoints, configures CORS, maps domain errors to HTTP status codes, and
initializes the database schema at startup.

Collaborators (stores, generator, services) are provided through FastAPI
dependencies so tests can swap them with app.dependency_overrides.
"""
import logging
from typing import List, Optional

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from semantic_core.backfill import BackfillConfig, BackfillOrchestrator, ChunkBackfill
from semantic_core.chunks import ChunkService
from semantic_core.config import settings
from semantic_core.db import init_db
from semantic_core.embedding import EmbeddingGenerator, get_generator
from semantic_core.exceptions import NotFoundError, PersistenceError, ProviderError, SemanticCoreError, ValidationError
from semantic_core.schemas import (
    BackfillFailureOut,
    BackfillTarget,
    ChunkBackfillRequest,
    ChunkBackfillResponse,
    ChunkMetadataOut,
    ChunkOut,
    ChunkStatsResponse,
    EmbeddingBackfillRequest,
    EmbeddingBackfillResponse,
    EmbeddingCoverageResponse,
    ErrorResponse,
    GenerateEmbeddingRequest,
    GenerateEmbeddingResponse,
    RegenerateChunksResponse,
    SearchHitOut,
    SearchRequest,
    SearchResponse,
)
from semantic_core.search import ChunkSearch
from semantic_core.store import (
    ChunkRepository,
    EmbeddingTarget,
    SourceRepository,
    SqlChunkStore,
    SqlSourceStore,
    SqlSummaryStore,
    StoredChunk,
)

logger = logging.getLogger(__name__)

app = FastAPI(title="Semantic Core API", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_credentials=True,
    allow_headers=["*"],
)

_STATUS_BY_ERROR = (
    (NotFoundError, 404),
    (ValidationError, 400),
    (ProviderError, 502),
    (PersistenceError, 503),
)


@app.exception_handler(SemanticCoreError)
async def semantic_core_error_handler(request: Request, exc: SemanticCoreError) -> JSONResponse:
    """Translate domain errors into JSON responses with a matching status code."""
    status = next((code for kind, code in _STATUS_BY_ERROR if isinstance(exc, kind)), 500)
    if status >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=status,
        content=ErrorResponse(error=type(exc).__name__, detail=exc.message, details=exc.details).model_dump(),
    )


@app.on_event("startup")
def on_startup() -> None:
    """Initialize database schema and indexes at application startup."""
    init_db()


# Dependency providers

def get_embedding_generator() -> EmbeddingGenerator:
    return get_generator()


def get_chunk_store() -> ChunkRepository:
    return SqlChunkStore()


def get_summary_store() -> EmbeddingTarget:
    return SqlSummaryStore()


def get_source_store() -> SourceRepository:
    return SqlSourceStore()


def get_chunk_service(
    chunks: ChunkRepository = Depends(get_chunk_store),
    generator: EmbeddingGenerator = Depends(get_embedding_generator),
) -> ChunkService:
    return ChunkService(chunks, generator)


def _target_store(target: BackfillTarget, summaries: EmbeddingTarget, chunks: ChunkRepository) -> EmbeddingTarget:
    return chunks if target == BackfillTarget.CHUNKS else summaries


def _chunk_out(chunk: StoredChunk) -> ChunkOut:
    return ChunkOut(
        id=chunk.id,
        source_id=chunk.source_id,
        chunk_index=chunk.chunk_index,
        content=chunk.content,
        has_embedding=chunk.embedding is not None,
        metadata=ChunkMetadataOut(**chunk.metadata.to_dict()),
    )


@app.get("/health")
def health():
    """Liveness probe endpoint.

    Returns:
        dict: {"status": "ok"} when the service is running.
    """
    return {"status": "ok", "embedding_model": settings.OPENAI_EMBEDDING_MODEL}


@app.post("/embeddings/generate", response_model=GenerateEmbeddingResponse)
async def generate_embedding(
    req: GenerateEmbeddingRequest,
    generator: EmbeddingGenerator = Depends(get_embedding_generator),
) -> GenerateEmbeddingResponse:
    """Embed one text. Blank or oversized text yields 400, provider failure 502."""
    result = await generator.generate(req.text, kind=req.type, normalize=req.normalize)
    return GenerateEmbeddingResponse(
        embedding=result.embedding,
        model=result.model,
        tokens=result.tokens,
        dimensions=result.dimensions,
    )


@app.post("/embeddings/backfill", response_model=EmbeddingBackfillResponse)
async def backfill_embeddings(
    req: EmbeddingBackfillRequest,
    generator: EmbeddingGenerator = Depends(get_embedding_generator),
    summaries: EmbeddingTarget = Depends(get_summary_store),
    chunks: ChunkRepository = Depends(get_chunk_store),
) -> EmbeddingBackfillResponse:
    """Embed summaries or chunks that have no embedding yet.

    Workflow:
    - Scan up to BACKFILL_SCAN_LIMIT candidates (optionally for one owner)
    - Dry run: report the candidate count only
    - Otherwise embed sequentially in batches, recording per-item failures
    """
    orchestrator = BackfillOrchestrator(_target_store(req.target, summaries, chunks), generator)
    result = await orchestrator.backfill_embeddings(
        BackfillConfig(
            batch_size=req.batch_size,
            dry_run=req.dry_run,
            skip_existing=req.skip_existing,
            owner_id=req.owner_id,
            scan_limit=settings.BACKFILL_SCAN_LIMIT,
        )
    )
    return EmbeddingBackfillResponse(
        target=req.target,
        dry_run=result.dry_run,
        candidates=result.candidates,
        processed=result.processed,
        failed=result.failed,
        skipped=result.skipped,
        duration_ms=result.duration_ms,
        failures=[BackfillFailureOut(item_id=f.item_id, error=f.error) for f in result.failures],
    )


@app.get("/embeddings/backfill", response_model=EmbeddingCoverageResponse)
async def embedding_coverage(
    target: BackfillTarget = BackfillTarget.SUMMARIES,
    owner_id: Optional[str] = None,
    generator: EmbeddingGenerator = Depends(get_embedding_generator),
    summaries: EmbeddingTarget = Depends(get_summary_store),
    chunks: ChunkRepository = Depends(get_chunk_store),
) -> EmbeddingCoverageResponse:
    """Pending and completed embedding counts for one target."""
    orchestrator = BackfillOrchestrator(_target_store(target, summaries, chunks), generator)
    return EmbeddingCoverageResponse(
        target=target,
        pending=await orchestrator.get_pending_count(owner_id),
        completed=await orchestrator.get_completed_count(owner_id),
    )


@app.post("/chunks/backfill", response_model=ChunkBackfillResponse)
async def backfill_chunks(
    req: ChunkBackfillRequest,
    sources: SourceRepository = Depends(get_source_store),
    service: ChunkService = Depends(get_chunk_service),
) -> ChunkBackfillResponse:
    """Create chunks for sources that qualify for chunking but have none."""
    result = await ChunkBackfill(sources, service).backfill_chunks(
        owner_id=req.owner_id,
        batch_size=req.batch_size,
        dry_run=req.dry_run,
        source_id=req.source_id,
    )
    return ChunkBackfillResponse(
        dry_run=result.dry_run,
        sources_needing_chunks=result.candidates,
        sources_processed=result.sources_processed,
        chunks_created=result.chunks_created,
        chunks_embedded=result.chunks_embedded,
        failed=result.failed,
        duration_ms=result.duration_ms,
        failures=[BackfillFailureOut(item_id=f.item_id, error=f.error) for f in result.failures],
    )


@app.get("/chunks/backfill", response_model=ChunkStatsResponse)
async def chunk_stats(
    owner_id: Optional[str] = None,
    sources: SourceRepository = Depends(get_source_store),
    service: ChunkService = Depends(get_chunk_service),
) -> ChunkStatsResponse:
    """Chunk coverage across sources."""
    stats = await service.get_chunk_stats(owner_id=owner_id)
    total_sources = await sources.count(owner_id)
    return ChunkStatsResponse(
        total_sources=total_sources,
        sources_with_chunks=stats.sources_with_chunks,
        sources_without_chunks=max(0, total_sources - stats.sources_with_chunks),
        total_chunks=stats.total_chunks,
        chunks_with_embeddings=stats.chunks_with_embeddings,
        chunks_without_embeddings=stats.chunks_without_embeddings,
        avg_chunk_length=stats.avg_chunk_length,
    )


@app.get("/sources/{source_id}/chunks", response_model=List[ChunkOut])
async def list_source_chunks(
    source_id: str,
    service: ChunkService = Depends(get_chunk_service),
) -> List[ChunkOut]:
    """Stored chunks of a source, ordered by chunk_index."""
    return [_chunk_out(c) for c in await service.get_source_chunks(source_id)]


@app.post("/sources/{source_id}/chunks/regenerate", response_model=RegenerateChunksResponse)
async def regenerate_source_chunks(
    source_id: str,
    sources: SourceRepository = Depends(get_source_store),
    service: ChunkService = Depends(get_chunk_service),
) -> RegenerateChunksResponse:
    """Delete and recreate the chunks of one source."""
    source = await sources.get(source_id)
    if source is None:
        raise NotFoundError("source", source_id)
    result = await service.regenerate_source_chunks(source)
    return RegenerateChunksResponse(
        source_id=source_id,
        chunks_created=result.chunks_created,
        chunks_embedded=result.chunks_embedded,
        skipped=result.skipped,
    )


@app.post(
    "/search",
    response_model=SearchResponse,
    responses={400: {"model": ErrorResponse}, 502: {"model": ErrorResponse}},
)
async def search_chunks(
    req: SearchRequest,
    generator: EmbeddingGenerator = Depends(get_embedding_generator),
    chunks: ChunkRepository = Depends(get_chunk_store),
    sources: SourceRepository = Depends(get_source_store),
) -> SearchResponse:
    """Hybrid chunk search.

    Workflow:
    - Embed the query (served from the Redis query cache when enabled)
    - Vector search over chunk embeddings (similarity = 1 - cosine distance)
    - Blend with the caller's keyword scores using the configured hybrid weights
    """
    hits = await ChunkSearch(chunks, generator, sources).search(
        req.query,
        limit=req.limit,
        threshold=req.threshold,
        owner_id=req.owner_id,
        keyword_scores=req.keyword_scores,
        semantic_weight=req.semantic_weight,
    )
    return SearchResponse(
        query=req.query,
        results=[
            SearchHitOut(
                chunk=_chunk_out(h.chunk),
                final_score=h.final_score,
                semantic_score=h.semantic_score,
                keyword_score=h.keyword_score,
            )
            for h in hits
        ],
    )
