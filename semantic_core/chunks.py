"""Source chunk lifecycle: segment, embed, persist, regenerate.

ChunkService ties the segmenter, the embedding generator and a ChunkRepository:
- create_source_chunks: chunk a source (when should_chunk allows it) and store
  every chunk, with a null embedding where embedding failed
- delete_source_chunks / regenerate_source_chunks: delete-then-recreate so
  chunk indices restart at 0 and stay gap-free
- get_source_chunks: stored chunks ordered by chunk_index
- embed_chunk: (re)embed one stored chunk
- get_chunk_stats: coverage counters, optionally per source or owner
"""
import logging
from dataclasses import dataclass
from typing import List, Optional

from semantic_core.chunking import chunk_document, get_chunk_config, should_chunk
from semantic_core.embedding import EmbeddableKind, EmbeddingGenerator
from semantic_core.exceptions import NotFoundError, PersistenceError
from semantic_core.obs import span
from semantic_core.store import ChunkRepository, ChunkStats, SourceRecord, StoredChunk

logger = logging.getLogger(__name__)


@dataclass
class ChunkCreationResult:
    source_id: str
    chunks_created: int = 0
    chunks_embedded: int = 0
    skipped: bool = False

    @property
    def chunks_without_embedding(self) -> int:
        return self.chunks_created - self.chunks_embedded


class ChunkService:
    """Chunk CRUD for sources.

    Args:
        chunks: Chunk persistence.
        generator: Embedding generator used for each chunk.
    """

    def __init__(self, chunks: ChunkRepository, generator: EmbeddingGenerator):
        self.chunks = chunks
        self.generator = generator

    async def create_source_chunks(self, source: SourceRecord) -> ChunkCreationResult:
        """Chunk and embed a source, storing every chunk.

        Embedding failures leave that chunk's embedding null. All chunks are written
        in one transaction, so a failed write (including a clash with a concurrent
        run on the same source) stores nothing from this call and propagates.

        Returns:
            ChunkCreationResult: counts; ``skipped`` when the source is too short
            or of a type that is never chunked.
        """
        result = ChunkCreationResult(source_id=source.id)
        content = source.content or ""
        if not should_chunk(source.content_type, len(content)):
            result.skipped = True
            return result

        drafts = chunk_document(content, source.content_type, get_chunk_config(len(content)))
        with span("chunks.create", {"source_id": source.id, "chunks": len(drafts)}):
            items = []
            for draft in drafts:
                outcome = await self.generator.try_generate(draft.content, kind=EmbeddableKind.CHUNK)
                embedding = outcome.value.embedding if outcome.ok else None
                if not outcome.ok:
                    logger.warning("Chunk %d of %s stored without embedding: %s", draft.index, source.id, outcome.error)
                items.append((draft, embedding))
            try:
                stored = await self.chunks.insert_many(source.id, items)
            except PersistenceError:
                logger.error("Chunk insert failed for %s; none of %d chunk(s) written", source.id, len(items))
                raise

        result.chunks_created = len(stored)
        result.chunks_embedded = sum(1 for chunk in stored if chunk.embedding is not None)

        logger.info(
            "Created %d chunk(s) for %s (%d embedded)", result.chunks_created, source.id, result.chunks_embedded
        )
        return result

    async def delete_source_chunks(self, source_id: str) -> int:
        deleted = await self.chunks.delete_by_source(source_id)
        logger.info("Deleted %d chunk(s) for %s", deleted, source_id)
        return deleted

    async def regenerate_source_chunks(self, source: SourceRecord) -> ChunkCreationResult:
        """Delete all chunks of a source, then create them again from index 0."""
        await self.delete_source_chunks(source.id)
        return await self.create_source_chunks(source)

    async def get_source_chunks(self, source_id: str) -> List[StoredChunk]:
        return await self.chunks.list_by_source(source_id)

    async def embed_chunk(self, chunk_id: str) -> StoredChunk:
        """Embed one stored chunk and persist the vector.

        Raises:
            NotFoundError: No chunk with this id.
            ValidationError / ProviderError: Embedding failed.
        """
        chunk = await self.chunks.get(chunk_id)
        if chunk is None:
            raise NotFoundError("chunk", chunk_id)
        result = await self.generator.generate(chunk.content, kind=EmbeddableKind.CHUNK)
        await self.chunks.update_embedding(chunk_id, result.embedding)
        chunk.embedding = result.embedding
        return chunk

    async def get_chunk_stats(self, source_id: Optional[str] = None, owner_id: Optional[str] = None) -> ChunkStats:
        return await self.chunks.stats(source_id=source_id, owner_id=owner_id)
