"""
Tests for semantic_core/backfill.py
Embedding backfill over summaries/chunks and chunk creation for sources.
"""
import pytest

from conftest import long_text
from semantic_core.backfill import BackfillConfig, BackfillOrchestrator, ChunkBackfill
from semantic_core.chunks import ChunkService
from semantic_core.exceptions import PersistenceError, ProviderError, TransientProviderError
from semantic_core.store import SourceRecord


@pytest.fixture
def summaries(summary_store):
    summary_store.add("s1", "Vector search with pgvector", owner="alice")
    summary_store.add("s2", "Hybrid ranking notes", owner="alice")
    summary_store.add("s3", "Chunking long documents", owner="bob")
    summary_store.add("s4", "Already embedded", owner="alice", embedding=[1.0] * 8)
    summary_store.add("s5", "   ", owner="bob")
    return summary_store


class TestDryRun:
    """Test counting without writes."""

    async def test_dry_run_counts_and_writes_nothing(self, summaries, generator, provider):
        orchestrator = BackfillOrchestrator(summaries, generator)
        first = await orchestrator.backfill_embeddings(BackfillConfig(batch_size=10, dry_run=True))
        second = await orchestrator.backfill_embeddings(BackfillConfig(batch_size=10, dry_run=True))

        assert first.candidates == 4
        assert second.candidates == first.candidates
        assert first.processed == 0
        assert first.dry_run is True
        assert summaries.writes == 0
        assert provider.calls == []

    async def test_dry_run_scoped_to_owner(self, summaries, generator):
        result = await BackfillOrchestrator(summaries, generator).backfill_embeddings(
            BackfillConfig(batch_size=10, dry_run=True, owner_id="alice")
        )
        assert result.candidates == 2


class TestRun:
    """Test real runs."""

    async def test_counts_move_by_processed(self, summaries, generator):
        orchestrator = BackfillOrchestrator(summaries, generator)
        pending_before = await orchestrator.get_pending_count()
        completed_before = await orchestrator.get_completed_count()
        untouched = list(summaries.rows["s4"]["embedding"])

        result = await orchestrator.backfill_embeddings(BackfillConfig(batch_size=2))

        assert result.processed == 3
        assert result.skipped == 1
        assert result.failed == 0
        assert await orchestrator.get_pending_count() == pending_before - result.processed
        assert await orchestrator.get_completed_count() == completed_before + result.processed
        assert summaries.rows["s4"]["embedding"] == untouched
        assert result.duration_ms >= 0

    async def test_rerun_is_idempotent(self, summaries, generator, provider):
        orchestrator = BackfillOrchestrator(summaries, generator)
        await orchestrator.backfill_embeddings(BackfillConfig(batch_size=10))
        calls = len(provider.calls)

        again = await orchestrator.backfill_embeddings(BackfillConfig(batch_size=10))

        assert again.processed == 0
        assert again.skipped == 1
        assert len(provider.calls) == calls

    async def test_failures_recorded_and_batch_continues(self, summaries, generator, provider, sleeper):
        provider.fail_texts["Hybrid ranking notes"] = TransientProviderError("overloaded", status_code=503)
        orchestrator = BackfillOrchestrator(summaries, generator)

        result = await orchestrator.backfill_embeddings(BackfillConfig(batch_size=10))

        assert result.processed == 2
        assert result.failed == 1
        assert [f.item_id for f in result.failures] == ["s2"]
        assert "overloaded" in result.failures[0].error
        assert summaries.rows["s2"]["embedding"] is None
        assert sleeper.delays == [1.0, 2.0, 4.0]

    async def test_max_retries_override(self, summaries, generator, provider, sleeper):
        provider.fail_texts["Hybrid ranking notes"] = TransientProviderError("overloaded")
        result = await BackfillOrchestrator(summaries, generator).backfill_embeddings(
            BackfillConfig(batch_size=10, max_retries=1)
        )
        assert result.failed == 1
        assert sleeper.delays == [1.0]

    async def test_persistence_failure_is_per_item(self, summaries, generator):
        original = summaries.update_embedding

        async def flaky_update(item_id, embedding):
            if item_id == "s1":
                raise PersistenceError("write failed", operation="update_embedding")
            await original(item_id, embedding)

        summaries.update_embedding = flaky_update
        result = await BackfillOrchestrator(summaries, generator).backfill_embeddings(BackfillConfig(batch_size=10))

        assert result.failed == 1
        assert result.processed == 2
        assert result.failures[0].item_id == "s1"

    async def test_process_batch_limits_items(self, summaries, generator):
        orchestrator = BackfillOrchestrator(summaries, generator, default_batch_size=2)
        result = await orchestrator.process_batch()
        assert result.processed + result.skipped + result.failed == 2
        assert await orchestrator.get_pending_count() == 2

    async def test_skip_existing_false_reembeds(self, summaries, generator):
        result = await BackfillOrchestrator(summaries, generator).backfill_embeddings(
            BackfillConfig(batch_size=10, skip_existing=False)
        )
        assert result.candidates == 5
        assert result.processed == 4
        assert summaries.rows["s4"]["embedding"] != [1.0] * 8


class TestChunkTarget:
    """Test the orchestrator over chunks without embeddings."""

    async def test_chunks_without_embeddings_get_filled(self, chunk_store, source_store, generator, provider):
        source = source_store.add(SourceRecord(id="src-1", owner_id="alice", content_type="text", content=long_text()))
        provider.failures = [ProviderError("rejected", retryable=False)] * 100
        await ChunkService(chunk_store, generator).create_source_chunks(source)
        provider.failures = []
        assert await chunk_store.count_completed() == 0

        orchestrator = BackfillOrchestrator(chunk_store, generator)
        result = await orchestrator.backfill_embeddings(BackfillConfig(batch_size=50))

        assert result.processed == len(chunk_store.rows)
        assert await orchestrator.get_pending_count() == 0


class TestChunkBackfill:
    """Test chunk creation for unchunked sources."""

    @pytest.fixture
    def sources(self, source_store):
        source_store.add(SourceRecord(id="a-text", owner_id="alice", content_type="text", content=long_text()))
        source_store.add(SourceRecord(id="a-short", owner_id="alice", content_type="text", content="Too short."))
        source_store.add(SourceRecord(id="a-image", owner_id="alice", content_type="image", content=long_text()))
        source_store.add(SourceRecord(id="b-pdf", owner_id="bob", content_type="pdf", content=long_text(4, 4)))
        return source_store

    async def test_dry_run_counts_sources(self, sources, chunk_store, generator):
        job = ChunkBackfill(sources, ChunkService(chunk_store, generator))
        result = await job.backfill_chunks(dry_run=True)

        assert result.candidates == 2
        assert result.chunks_created == 0
        assert chunk_store.rows == {}

    async def test_creates_chunks_for_owner(self, sources, chunk_store, generator):
        job = ChunkBackfill(sources, ChunkService(chunk_store, generator))
        result = await job.backfill_chunks(owner_id="alice", batch_size=10)

        assert result.sources_processed == 1
        assert result.chunks_created == len(await chunk_store.list_by_source("a-text"))
        assert result.chunks_embedded == result.chunks_created
        assert await chunk_store.list_by_source("b-pdf") == []

        again = await job.backfill_chunks(owner_id="alice")
        assert again.candidates == 0

    async def test_single_source_and_failure_isolation(self, sources, chunk_store, generator):
        chunk_store.fail_insert_at = 0
        job = ChunkBackfill(sources, ChunkService(chunk_store, generator))
        result = await job.backfill_chunks(source_id="a-text")

        assert result.candidates == 1
        assert result.failed == 1
        assert result.failures[0].item_id == "a-text"
        assert result.chunks_created == result.chunks_embedded == 0
        assert chunk_store.rows == {}

    async def test_counts_chunks_stored_without_embedding(self, sources, chunk_store, generator, provider):
        provider.failures = [ProviderError("rejected", retryable=False)]
        job = ChunkBackfill(sources, ChunkService(chunk_store, generator))
        result = await job.backfill_chunks(source_id="a-text")

        assert result.chunks_created == len(chunk_store.rows) > 1
        assert result.chunks_embedded == result.chunks_created - 1
