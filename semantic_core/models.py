"""Database ORM models.

Defines persistent entities used by the retrieval core:
- Source: a stored knowledge item (text, url, pdf, note, image) owned by a user.
- Summary: a per-source summary whose embedding powers summary-level search.
- ContentChunk: a bounded slice of a source with an optional pgvector embedding.

Embeddings are nullable everywhere: a missing vector only disables semantic
matching for that row and is filled in later by the backfill jobs.
"""
import uuid
from datetime import datetime

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from pgvector.sqlalchemy import Vector

from semantic_core.db import Base
from semantic_core.config import settings


def _uuid() -> str:
    return str(uuid.uuid4())


class Source(Base):
    """User-owned content materialized as text by upstream acquisition."""
    __tablename__ = "sources"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(64), nullable=False)
    title = Column(String(512), nullable=True)
    content_type = Column(String(16), nullable=False)  # text | url | pdf | note | image
    original_content = Column(Text, nullable=False, default="")
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (Index("idx_sources_user", "user_id"),)


class Summary(Base):
    """Generated summary of a source with optional embedding.

    The text embedded for a summary is summary_text followed by its key topics.
    """
    __tablename__ = "summaries"

    id = Column(String(36), primary_key=True, default=_uuid)
    source_id = Column(String(36), ForeignKey("sources.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(String(64), nullable=False)
    summary_text = Column(Text, nullable=False, default="")
    key_topics = Column(JSON, nullable=True)
    embedding = Column(Vector(dim=settings.EMBEDDING_DIM), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index("idx_summaries_source", "source_id"),
        Index("idx_summaries_user", "user_id"),
    )


class ContentChunk(Base):
    """Vector-embedded chunk of a source used for retrieval.

    Indexes:
        - uq_chunks_source_index: one row per (source_id, chunk_index)
        - idx_chunks_source: speeds up ordered reads per source

    Notes:
        The embedding dimension is derived from settings.EMBEDDING_DIM and should
        match the embedding model configured in semantic_core.config.Settings.
        ``chunk_metadata`` maps to the ``metadata`` column, a name reserved by
        declarative models.
    """
    __tablename__ = "content_chunks"

    id = Column(String(36), primary_key=True, default=_uuid)
    source_id = Column(String(36), ForeignKey("sources.id", ondelete="CASCADE"), nullable=False)
    chunk_index = Column(Integer, nullable=False)
    content = Column(Text, nullable=False)
    embedding = Column(Vector(dim=settings.EMBEDDING_DIM), nullable=True)
    chunk_metadata = Column("metadata", JSON, nullable=False, default=dict)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("source_id", "chunk_index", name="uq_chunks_source_index"),
        Index("idx_chunks_source", "source_id"),
    )
