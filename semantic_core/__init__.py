"""Semantic retrieval core for a personal knowledge base.

Submodules overview:
- main: FastAPI application exposing embedding, chunk and backfill endpoints.
- config: Application settings and environment variable loading.
- db: Database engine/session management helpers.
- models: ORM models (sources, summaries, content chunks) with pgvector columns.
- schemas: Pydantic request/response models for API contracts.
- store: Persistence collaborators used by the chunk service and backfill.
- chunking: Text segmentation into bounded, boundary-aware chunks.
- embedding: Embedding generation with retry/backoff and normalization.
- retry: Reusable retry policy built on tenacity.
- vectors: Vector math (cosine similarity, normalization, distances).
- scoring: Hybrid semantic + keyword scoring.
- chunks: Source chunk lifecycle (create, regenerate, embed, stats).
- backfill: Resumable embedding and chunk backfill orchestration.
- cache: Redis-backed query embedding cache.
- exceptions: Error taxonomy shared across layers.
- jobs: Command line entry points (backfill, text ingestion).
- obs: Observability utilities (tracing/spans).
"""
