"""
Pytest configuration and shared fakes for the semantic core test suite.

Provides:
- FakeProvider: deterministic embedding provider with scripted failures
- RecordingSleep: awaitable sleep that records requested delays
- In-memory chunk, summary and source stores implementing the store protocols
- FakeRedis: the subset of redis.asyncio used by QueryEmbeddingCache
"""
import asyncio
import hashlib
import math
import uuid
from typing import Dict, List, Optional

import pytest

from semantic_core.chunking import should_chunk
from semantic_core.embedding import EmbeddingConfig, EmbeddingGenerator, ProviderEmbedding
from semantic_core.exceptions import NotFoundError, PersistenceError
from semantic_core.retry import RetryPolicy
from semantic_core.store import ChunkStats, PendingItem, SourceRecord, StoredChunk

DIMS = 8


class FakeProvider:
    """Returns a vector derived from the text; pops scripted errors first."""

    def __init__(self, dimensions: int = DIMS, failures: Optional[List[Exception]] = None):
        self.dimensions = dimensions
        self.failures = list(failures or [])
        self.fail_texts: Dict[str, Exception] = {}
        self.calls: List[str] = []

    async def embed(self, text: str, model: str) -> ProviderEmbedding:
        self.calls.append(text)
        if text in self.fail_texts:
            raise self.fail_texts[text]
        if self.failures:
            raise self.failures.pop(0)
        digest = hashlib.sha256(text.encode("utf-8")).digest()
        vector = [float(b % 7) + 1.0 for b in digest[: self.dimensions]]
        return ProviderEmbedding(vector=vector, total_tokens=max(1, len(text) // 4), model=model)


class RecordingSleep:
    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


class InMemoryChunkStore:
    name = "content_chunks"

    def __init__(self, owners: Optional[Dict[str, str]] = None):
        self.rows: Dict[str, StoredChunk] = {}
        self.owners = owners if owners is not None else {}
        self.fail_insert_at: Optional[int] = None
        self.writes = 0

    def _visible(self, owner_id: Optional[str]) -> List[StoredChunk]:
        rows = sorted(self.rows.values(), key=lambda c: (c.source_id, c.chunk_index))
        if owner_id:
            rows = [r for r in rows if self.owners.get(r.source_id) == owner_id]
        return rows

    async def count_pending(self, owner_id=None) -> int:
        return sum(1 for r in self._visible(owner_id) if r.embedding is None)

    async def count_completed(self, owner_id=None) -> int:
        return sum(1 for r in self._visible(owner_id) if r.embedding is not None)

    async def fetch_candidates(self, limit, owner_id=None, only_missing=True) -> List[PendingItem]:
        rows = [r for r in self._visible(owner_id) if not only_missing or r.embedding is None]
        return [PendingItem(item_id=r.id, text=r.content) for r in rows[:limit]]

    async def update_embedding(self, item_id, embedding) -> None:
        if item_id not in self.rows:
            raise NotFoundError("chunk", item_id)
        self.writes += 1
        self.rows[item_id].embedding = list(embedding)

    async def insert_many(self, source_id, items) -> List[StoredChunk]:
        """All-or-nothing insert honouring the (source_id, chunk_index) unique key."""
        # let concurrent writers interleave, as a real round trip would
        await asyncio.sleep(0)
        taken = {c.chunk_index for c in self.rows.values() if c.source_id == source_id}
        for chunk, _ in items:
            if self.fail_insert_at is not None and chunk.index == self.fail_insert_at:
                raise PersistenceError("insert failed", operation="insert_chunks")
            if chunk.index in taken:
                raise PersistenceError(
                    f"duplicate key uq_chunks_source_index ({source_id}, {chunk.index})", operation="insert_chunks"
                )
        stored = [
            StoredChunk(
                id=str(uuid.uuid4()),
                source_id=source_id,
                chunk_index=chunk.index,
                content=chunk.content,
                embedding=list(embedding) if embedding is not None else None,
                metadata=chunk.metadata,
            )
            for chunk, embedding in items
        ]
        for row in stored:
            self.rows[row.id] = row
        self.writes += len(stored)
        return stored

    async def search_by_embedding(self, query_vector, limit=10, threshold=0.0, owner_id=None):
        scored = []
        for row in self._visible(owner_id):
            if row.embedding is None:
                continue
            norm = math.sqrt(sum(x * x for x in query_vector)) * math.sqrt(sum(x * x for x in row.embedding))
            sim = max(0.0, sum(a * b for a, b in zip(query_vector, row.embedding)) / norm) if norm else 0.0
            if sim >= threshold:
                scored.append((row, sim))
        scored.sort(key=lambda pair: pair[1], reverse=True)
        return scored[:limit]

    async def delete_by_source(self, source_id) -> int:
        doomed = [cid for cid, c in self.rows.items() if c.source_id == source_id]
        for cid in doomed:
            del self.rows[cid]
        return len(doomed)

    async def list_by_source(self, source_id) -> List[StoredChunk]:
        return sorted((c for c in self.rows.values() if c.source_id == source_id), key=lambda c: c.chunk_index)

    async def get(self, chunk_id) -> Optional[StoredChunk]:
        return self.rows.get(chunk_id)

    async def stats(self, source_id=None, owner_id=None) -> ChunkStats:
        rows = self._visible(owner_id)
        if source_id:
            rows = [r for r in rows if r.source_id == source_id]
        embedded = sum(1 for r in rows if r.embedding is not None)
        return ChunkStats(
            total_chunks=len(rows),
            chunks_with_embeddings=embedded,
            chunks_without_embeddings=len(rows) - embedded,
            avg_chunk_length=(sum(len(r.content) for r in rows) / len(rows)) if rows else 0.0,
            sources_with_chunks=len({r.source_id for r in rows}),
        )


class InMemorySummaryStore:
    name = "summaries"

    def __init__(self):
        # id -> {"owner": str, "text": str, "embedding": Optional[list]}
        self.rows: Dict[str, dict] = {}
        self.writes = 0

    def add(self, item_id: str, text: str, owner: str = "user-1", embedding=None) -> None:
        self.rows[item_id] = {"owner": owner, "text": text, "embedding": embedding}

    def _visible(self, owner_id):
        return [(k, v) for k, v in self.rows.items() if not owner_id or v["owner"] == owner_id]

    async def count_pending(self, owner_id=None) -> int:
        return sum(1 for _, v in self._visible(owner_id) if v["embedding"] is None)

    async def count_completed(self, owner_id=None) -> int:
        return sum(1 for _, v in self._visible(owner_id) if v["embedding"] is not None)

    async def fetch_candidates(self, limit, owner_id=None, only_missing=True) -> List[PendingItem]:
        rows = [(k, v) for k, v in self._visible(owner_id) if not only_missing or v["embedding"] is None]
        return [PendingItem(item_id=k, text=v["text"]) for k, v in rows[:limit]]

    async def update_embedding(self, item_id, embedding) -> None:
        if item_id not in self.rows:
            raise NotFoundError("summary", item_id)
        self.writes += 1
        self.rows[item_id]["embedding"] = list(embedding)


class InMemorySourceStore:
    def __init__(self, chunks: InMemoryChunkStore):
        self.rows: Dict[str, SourceRecord] = {}
        self.chunks = chunks

    def add(self, source: SourceRecord) -> SourceRecord:
        self.rows[source.id] = source
        self.chunks.owners[source.id] = source.owner_id
        return source

    async def get(self, source_id) -> Optional[SourceRecord]:
        return self.rows.get(source_id)

    async def count(self, owner_id=None) -> int:
        return sum(1 for s in self.rows.values() if not owner_id or s.owner_id == owner_id)

    async def list_without_chunks(self, limit, owner_id=None, source_id=None) -> List[SourceRecord]:
        chunked = {c.source_id for c in self.chunks.rows.values()}
        out = [
            s
            for s in self.rows.values()
            if s.id not in chunked
            and should_chunk(s.content_type, len(s.content))
            and (not owner_id or s.owner_id == owner_id)
            and (not source_id or s.id == source_id)
        ]
        return out[:limit]


class FakeRedis:
    def __init__(self):
        self.data: Dict[str, str] = {}
        self.ttls: Dict[str, int] = {}

    async def get(self, key):
        return self.data.get(key)

    async def setex(self, key, ttl, value):
        self.data[key] = value
        self.ttls[key] = ttl

    async def delete(self, key):
        return 1 if self.data.pop(key, None) is not None else 0

    async def scan_iter(self, match=None):
        prefix = (match or "*").rstrip("*")
        for key in list(self.data):
            if key.startswith(prefix):
                yield key


def long_text(paragraphs: int = 6, sentences: int = 8) -> str:
    """Multi-paragraph prose long enough to be chunked."""
    paras = []
    for p in range(paragraphs):
        paras.append(
            " ".join(f"Paragraph {p} sentence {s} talks about retrieval and vectors." for s in range(sentences))
        )
    return "\n\n".join(paras)


@pytest.fixture
def embedding_config():
    return EmbeddingConfig(api_key="test", model="test-embedding", dimensions=DIMS)


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def sleeper():
    return RecordingSleep()


@pytest.fixture
def generator(provider, embedding_config, sleeper):
    return EmbeddingGenerator(provider=provider, config=embedding_config, retry_policy=RetryPolicy(), sleep=sleeper)


@pytest.fixture
def chunk_store():
    return InMemoryChunkStore()


@pytest.fixture
def summary_store():
    return InMemorySummaryStore()


@pytest.fixture
def source_store(chunk_store):
    return InMemorySourceStore(chunk_store)
