"""Persistence collaborators for chunks, summaries and sources.

The chunk service and backfill jobs depend only on the protocols defined here:
- EmbeddingTarget: anything whose rows may lack an embedding (summaries, chunks)
- ChunkRepository: chunk CRUD ordered by chunk_index, plus stats and vector search
- SourceRepository: lookup of sources and of sources that still need chunks

The Sql* implementations run synchronous SQLAlchemy sessions on the default
executor (see db.run_in_session) and translate SQLAlchemyError into
PersistenceError. Vector search uses pgvector cosine distance
(similarity = 1 - distance).
"""
import functools
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, List, Optional, Protocol, Sequence, Tuple, TypeVar

from sqlalchemy import and_, delete, exists, func, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from semantic_core.chunking import CHUNK_THRESHOLDS, ChunkMetadata, DocumentChunk
from semantic_core.db import run_in_session
from semantic_core.exceptions import NotFoundError, PersistenceError
from semantic_core.models import ContentChunk, Source, Summary

T = TypeVar("T")


class EmbeddingState(str, Enum):
    """Lifecycle of one item's embedding: absent -> present (terminal until regenerated)."""
    ABSENT = "absent"
    PRESENT = "present"

    @classmethod
    def of(cls, embedding: Optional[Sequence[float]]) -> "EmbeddingState":
        return cls.ABSENT if embedding is None else cls.PRESENT


@dataclass
class PendingItem:
    item_id: str
    text: str


@dataclass
class StoredChunk:
    id: str
    source_id: str
    chunk_index: int
    content: str
    embedding: Optional[List[float]]
    metadata: ChunkMetadata

    @property
    def state(self) -> EmbeddingState:
        return EmbeddingState.of(self.embedding)


@dataclass
class SourceRecord:
    id: str
    owner_id: str
    content_type: str
    content: str


@dataclass
class ChunkStats:
    total_chunks: int = 0
    chunks_with_embeddings: int = 0
    chunks_without_embeddings: int = 0
    avg_chunk_length: float = 0.0
    sources_with_chunks: int = 0


class EmbeddingTarget(Protocol):
    name: str

    async def count_pending(self, owner_id: Optional[str] = None) -> int:
        ...

    async def count_completed(self, owner_id: Optional[str] = None) -> int:
        ...

    async def fetch_candidates(
        self, limit: int, owner_id: Optional[str] = None, only_missing: bool = True
    ) -> List[PendingItem]:
        ...

    async def update_embedding(self, item_id: str, embedding: List[float]) -> None:
        ...


class ChunkRepository(EmbeddingTarget, Protocol):
    async def insert_many(
        self, source_id: str, items: Sequence[Tuple[DocumentChunk, Optional[List[float]]]]
    ) -> List[StoredChunk]:
        ...

    async def delete_by_source(self, source_id: str) -> int:
        ...

    async def list_by_source(self, source_id: str) -> List[StoredChunk]:
        ...

    async def get(self, chunk_id: str) -> Optional[StoredChunk]:
        ...

    async def stats(self, source_id: Optional[str] = None, owner_id: Optional[str] = None) -> ChunkStats:
        ...

    async def search_by_embedding(
        self,
        query_vector: List[float],
        limit: int = 10,
        threshold: float = 0.0,
        owner_id: Optional[str] = None,
    ) -> List[Tuple[StoredChunk, float]]:
        ...


class SourceRepository(Protocol):
    async def get(self, source_id: str) -> Optional[SourceRecord]:
        ...

    async def count(self, owner_id: Optional[str] = None) -> int:
        ...

    async def list_without_chunks(
        self, limit: int, owner_id: Optional[str] = None, source_id: Optional[str] = None
    ) -> List[SourceRecord]:
        ...


def persistence_op(operation: str) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """Decorator translating SQLAlchemy failures into PersistenceError."""

    def decorator(fn: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @functools.wraps(fn)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            try:
                return await fn(*args, **kwargs)
            except SQLAlchemyError as exc:
                raise PersistenceError(f"{operation} failed: {exc}", operation=operation) from exc

        return wrapper

    return decorator


def _vector(value: Any) -> Optional[List[float]]:
    # pgvector hands back numpy arrays
    if value is None:
        return None
    return [float(x) for x in value]


def _to_stored(row: ContentChunk) -> StoredChunk:
    return StoredChunk(
        id=row.id,
        source_id=row.source_id,
        chunk_index=row.chunk_index,
        content=row.content,
        embedding=_vector(row.embedding),
        metadata=ChunkMetadata.from_dict(row.chunk_metadata or {}),
    )


def _to_source(row: Source) -> SourceRecord:
    return SourceRecord(id=row.id, owner_id=row.user_id, content_type=row.content_type, content=row.original_content or "")


class SqlChunkStore:
    """content_chunks table access."""

    name = "content_chunks"

    @staticmethod
    def _scoped(stmt, owner_id: Optional[str]):
        if owner_id:
            stmt = stmt.join(Source, Source.id == ContentChunk.source_id).where(Source.user_id == owner_id)
        return stmt

    async def _count(self, has_embedding: bool, owner_id: Optional[str]) -> int:
        cond = ContentChunk.embedding.isnot(None) if has_embedding else ContentChunk.embedding.is_(None)
        stmt = self._scoped(select(func.count(ContentChunk.id)).select_from(ContentChunk), owner_id).where(cond)
        return await run_in_session(lambda s: int(s.execute(stmt).scalar_one()))

    @persistence_op("count_pending")
    async def count_pending(self, owner_id: Optional[str] = None) -> int:
        return await self._count(False, owner_id)

    @persistence_op("count_completed")
    async def count_completed(self, owner_id: Optional[str] = None) -> int:
        return await self._count(True, owner_id)

    @persistence_op("fetch_candidates")
    async def fetch_candidates(
        self, limit: int, owner_id: Optional[str] = None, only_missing: bool = True
    ) -> List[PendingItem]:
        stmt = self._scoped(select(ContentChunk.id, ContentChunk.content).select_from(ContentChunk), owner_id)
        if only_missing:
            stmt = stmt.where(ContentChunk.embedding.is_(None))
        stmt = stmt.order_by(ContentChunk.created_at, ContentChunk.chunk_index).limit(limit)
        rows = await run_in_session(lambda s: s.execute(stmt).all())
        return [PendingItem(item_id=r.id, text=r.content) for r in rows]

    @persistence_op("update_embedding")
    async def update_embedding(self, item_id: str, embedding: List[float]) -> None:
        stmt = update(ContentChunk).where(ContentChunk.id == item_id).values(embedding=embedding)
        updated = await run_in_session(lambda s: s.execute(stmt).rowcount)
        if not updated:
            raise NotFoundError("chunk", item_id)

    @persistence_op("insert_chunks")
    async def insert_many(
        self, source_id: str, items: Sequence[Tuple[DocumentChunk, Optional[List[float]]]]
    ) -> List[StoredChunk]:
        """Insert all chunks of one run in a single transaction.

        A clash on (source_id, chunk_index) rolls back every row of this call
        and leaves rows written by other runs untouched.
        """

        def work(s: Session) -> List[StoredChunk]:
            rows = [
                ContentChunk(
                    source_id=source_id,
                    chunk_index=chunk.index,
                    content=chunk.content,
                    embedding=embedding,
                    chunk_metadata=chunk.metadata.to_dict(),
                )
                for chunk, embedding in items
            ]
            s.add_all(rows)
            s.flush()
            return [_to_stored(r) for r in rows]

        return await run_in_session(work)

    @persistence_op("delete_chunks")
    async def delete_by_source(self, source_id: str) -> int:
        stmt = delete(ContentChunk).where(ContentChunk.source_id == source_id)
        return await run_in_session(lambda s: s.execute(stmt).rowcount)

    @persistence_op("list_chunks")
    async def list_by_source(self, source_id: str) -> List[StoredChunk]:
        stmt = select(ContentChunk).where(ContentChunk.source_id == source_id).order_by(ContentChunk.chunk_index)
        return await run_in_session(lambda s: [_to_stored(r) for r in s.execute(stmt).scalars().all()])

    @persistence_op("get_chunk")
    async def get(self, chunk_id: str) -> Optional[StoredChunk]:
        def work(s: Session) -> Optional[StoredChunk]:
            row = s.get(ContentChunk, chunk_id)
            return _to_stored(row) if row is not None else None

        return await run_in_session(work)

    @persistence_op("chunk_stats")
    async def stats(self, source_id: Optional[str] = None, owner_id: Optional[str] = None) -> ChunkStats:
        stmt = self._scoped(
            select(
                func.count(ContentChunk.id),
                func.count(ContentChunk.embedding),
                func.avg(func.length(ContentChunk.content)),
                func.count(func.distinct(ContentChunk.source_id)),
            ).select_from(ContentChunk),
            owner_id,
        )
        if source_id:
            stmt = stmt.where(ContentChunk.source_id == source_id)
        total, embedded, avg_len, sources = await run_in_session(lambda s: tuple(s.execute(stmt).one()))
        total = int(total or 0)
        embedded = int(embedded or 0)
        return ChunkStats(
            total_chunks=total,
            chunks_with_embeddings=embedded,
            chunks_without_embeddings=total - embedded,
            avg_chunk_length=float(avg_len or 0.0),
            sources_with_chunks=int(sources or 0),
        )

    @persistence_op("search_chunks")
    async def search_by_embedding(
        self,
        query_vector: List[float],
        limit: int = 10,
        threshold: float = 0.0,
        owner_id: Optional[str] = None,
    ) -> List[Tuple[StoredChunk, float]]:
        """Nearest chunks by cosine distance, as (chunk, similarity) pairs."""
        distance = ContentChunk.embedding.cosine_distance(query_vector).label("distance")
        stmt = self._scoped(select(ContentChunk, distance).select_from(ContentChunk), owner_id)
        stmt = stmt.where(ContentChunk.embedding.isnot(None)).order_by(distance).limit(limit)

        def work(s: Session) -> List[Tuple[StoredChunk, float]]:
            out = []
            for row, dist in s.execute(stmt).all():
                sim = max(0.0, 1.0 - float(dist))
                if sim >= threshold:
                    out.append((_to_stored(row), sim))
            return out

        return await run_in_session(work)


class SqlSummaryStore:
    """summaries table access; embeds summary text followed by key topics."""

    name = "summaries"

    @staticmethod
    def _scoped(stmt, owner_id: Optional[str]):
        return stmt.where(Summary.user_id == owner_id) if owner_id else stmt

    @persistence_op("count_pending")
    async def count_pending(self, owner_id: Optional[str] = None) -> int:
        stmt = self._scoped(select(func.count(Summary.id)).where(Summary.embedding.is_(None)), owner_id)
        return await run_in_session(lambda s: int(s.execute(stmt).scalar_one()))

    @persistence_op("count_completed")
    async def count_completed(self, owner_id: Optional[str] = None) -> int:
        stmt = self._scoped(select(func.count(Summary.id)).where(Summary.embedding.isnot(None)), owner_id)
        return await run_in_session(lambda s: int(s.execute(stmt).scalar_one()))

    @persistence_op("fetch_candidates")
    async def fetch_candidates(
        self, limit: int, owner_id: Optional[str] = None, only_missing: bool = True
    ) -> List[PendingItem]:
        stmt = self._scoped(select(Summary.id, Summary.summary_text, Summary.key_topics), owner_id)
        if only_missing:
            stmt = stmt.where(Summary.embedding.is_(None))
        stmt = stmt.order_by(Summary.created_at).limit(limit)
        rows = await run_in_session(lambda s: s.execute(stmt).all())
        return [
            PendingItem(item_id=r.id, text=" ".join([r.summary_text or "", *(r.key_topics or [])]).strip())
            for r in rows
        ]

    @persistence_op("update_embedding")
    async def update_embedding(self, item_id: str, embedding: List[float]) -> None:
        stmt = update(Summary).where(Summary.id == item_id).values(embedding=embedding)
        updated = await run_in_session(lambda s: s.execute(stmt).rowcount)
        if not updated:
            raise NotFoundError("summary", item_id)


class SqlSourceStore:
    """sources table access."""

    @persistence_op("get_source")
    async def get(self, source_id: str) -> Optional[SourceRecord]:
        def work(s: Session) -> Optional[SourceRecord]:
            row = s.get(Source, source_id)
            return _to_source(row) if row is not None else None

        return await run_in_session(work)

    @persistence_op("create_source")
    async def create(self, owner_id: str, content_type: str, content: str, title: Optional[str] = None) -> SourceRecord:
        def work(s: Session) -> SourceRecord:
            row = Source(user_id=owner_id, title=title, content_type=content_type, original_content=content)
            s.add(row)
            s.flush()
            return _to_source(row)

        return await run_in_session(work)

    @persistence_op("count_sources")
    async def count(self, owner_id: Optional[str] = None) -> int:
        stmt = select(func.count(Source.id))
        if owner_id:
            stmt = stmt.where(Source.user_id == owner_id)
        return await run_in_session(lambda s: int(s.execute(stmt).scalar_one()))

    @persistence_op("list_unchunked_sources")
    async def list_without_chunks(
        self, limit: int, owner_id: Optional[str] = None, source_id: Optional[str] = None
    ) -> List[SourceRecord]:
        """Sources with no chunk rows whose type and length qualify for chunking."""
        length = func.length(Source.original_content)
        chunkable = or_(
            *[and_(Source.content_type == kind.value, length > threshold) for kind, threshold in CHUNK_THRESHOLDS.items()]
        )
        has_chunks = exists(select(ContentChunk.id).where(ContentChunk.source_id == Source.id))
        stmt = select(Source).where(chunkable, ~has_chunks)
        if owner_id:
            stmt = stmt.where(Source.user_id == owner_id)
        if source_id:
            stmt = stmt.where(Source.id == source_id)
        stmt = stmt.order_by(Source.created_at).limit(limit)
        return await run_in_session(lambda s: [_to_source(r) for r in s.execute(stmt).scalars().all()])
