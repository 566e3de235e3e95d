"""Backfill jobs that bring embedding and chunk coverage up to date.

Includes:
- BackfillOrchestrator: embeds stored items (summaries or chunks) whose embedding
  is null, one at a time, recording per-item failures without aborting the run
- ChunkBackfill: creates chunks for sources that qualify for chunking but have none

Both are safe to re-run: completed items are no longer candidates on the next pass.
Runs are not coordinated across processes; a single worker is assumed.
"""
import dataclasses
import logging
import time
from dataclasses import dataclass, field
from typing import List, Optional

from semantic_core.chunks import ChunkService
from semantic_core.config import settings
from semantic_core.embedding import EmbeddableKind, EmbeddingGenerator
from semantic_core.obs import span
from semantic_core.store import EmbeddingTarget, PendingItem, SourceRepository

logger = logging.getLogger(__name__)


@dataclass
class BackfillConfig:
    """Options for one backfill run.

    Attributes:
        batch_size: Items handled per slice of the scanned candidates.
        dry_run: Count candidates only; nothing is written.
        skip_existing: Only target items whose embedding is null.
        owner_id: Restrict to one owner; None means all owners.
        scan_limit: Maximum candidates considered in one run.
        max_retries: Override of the generator's retry count.
    """
    batch_size: int = 50
    dry_run: bool = False
    skip_existing: bool = True
    owner_id: Optional[str] = None
    scan_limit: int = 1000
    max_retries: Optional[int] = None


@dataclass
class BackfillFailure:
    item_id: str
    error: str


@dataclass
class BackfillResult:
    processed: int = 0
    failed: int = 0
    skipped: int = 0
    duration_ms: int = 0
    failures: List[BackfillFailure] = field(default_factory=list)
    candidates: int = 0
    dry_run: bool = False


@dataclass
class ChunkBackfillResult:
    sources_processed: int = 0
    chunks_created: int = 0
    chunks_embedded: int = 0
    failed: int = 0
    duration_ms: int = 0
    failures: List[BackfillFailure] = field(default_factory=list)
    candidates: int = 0
    dry_run: bool = False


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


class BackfillOrchestrator:
    """Drive the embedding generator over one EmbeddingTarget.

    Args:
        target: Summaries or chunks persistence.
        generator: Embedding generator (its retry policy applies per item).
        default_batch_size: Batch size used when the caller passes none.
    """

    def __init__(self, target: EmbeddingTarget, generator: EmbeddingGenerator, default_batch_size: Optional[int] = None):
        self.target = target
        self.generator = generator
        self.default_batch_size = default_batch_size or settings.BACKFILL_BATCH_SIZE

    @property
    def kind(self) -> EmbeddableKind:
        return EmbeddableKind.CHUNK if self.target.name == "content_chunks" else EmbeddableKind.SUMMARY

    async def get_pending_count(self, owner_id: Optional[str] = None) -> int:
        return await self.target.count_pending(owner_id)

    async def get_completed_count(self, owner_id: Optional[str] = None) -> int:
        return await self.target.count_completed(owner_id)

    async def process_batch(self, batch_size: Optional[int] = None) -> BackfillResult:
        """Embed at most one batch of pending items."""
        size = batch_size or self.default_batch_size
        return await self.backfill_embeddings(BackfillConfig(batch_size=size, scan_limit=size))

    async def backfill_embeddings(self, config: Optional[BackfillConfig] = None) -> BackfillResult:
        """Embed candidates sequentially and report the outcome.

        Args:
            config: Run options; defaults to BackfillConfig with the default batch size.

        Returns:
            BackfillResult: processed/failed/skipped counters, elapsed time and the
            per-item failures. In dry-run mode only ``candidates`` is filled.
        """
        config = config or BackfillConfig(batch_size=self.default_batch_size, scan_limit=settings.BACKFILL_SCAN_LIMIT)
        started = time.perf_counter()
        result = BackfillResult(dry_run=config.dry_run)

        with span("backfill.embeddings", {"target": self.target.name, "dry_run": config.dry_run}):
            items = await self.target.fetch_candidates(
                config.scan_limit, owner_id=config.owner_id, only_missing=config.skip_existing
            )
            result.candidates = len(items)
            if config.dry_run:
                logger.info("[dry-run] %d %s item(s) would be embedded", result.candidates, self.target.name)
                result.duration_ms = _elapsed_ms(started)
                return result

            policy = self.generator.retry_policy
            if config.max_retries is not None:
                policy = dataclasses.replace(policy, max_retries=config.max_retries)

            batch_size = max(1, config.batch_size)
            for start in range(0, len(items), batch_size):
                batch = items[start:start + batch_size]
                for item in batch:
                    await self._process_item(item, result, policy)
                logger.info(
                    "%s batch %d: processed=%d failed=%d skipped=%d",
                    self.target.name,
                    start // batch_size + 1,
                    result.processed,
                    result.failed,
                    result.skipped,
                )

        result.duration_ms = _elapsed_ms(started)
        logger.info(
            "Backfill of %s done in %dms: processed=%d failed=%d skipped=%d",
            self.target.name,
            result.duration_ms,
            result.processed,
            result.failed,
            result.skipped,
        )
        return result

    async def _process_item(self, item: PendingItem, result: BackfillResult, policy) -> None:
        if not item.text or not item.text.strip():
            result.skipped += 1
            return
        outcome = await self.generator.try_generate(item.text, kind=self.kind, retry_policy=policy)
        if not outcome.ok:
            result.failed += 1
            result.failures.append(BackfillFailure(item_id=item.item_id, error=str(outcome.error)))
            return
        try:
            await self.target.update_embedding(item.item_id, outcome.value.embedding)
        except Exception as exc:
            logger.error("Storing embedding for %s failed: %s", item.item_id, exc)
            result.failed += 1
            result.failures.append(BackfillFailure(item_id=item.item_id, error=str(exc)))
            return
        result.processed += 1


class ChunkBackfill:
    """Create chunks for sources that have none.

    Args:
        sources: Source lookup.
        service: Chunk service that segments, embeds and stores.
    """

    def __init__(self, sources: SourceRepository, service: ChunkService):
        self.sources = sources
        self.service = service

    async def backfill_chunks(
        self,
        owner_id: Optional[str] = None,
        batch_size: Optional[int] = None,
        dry_run: bool = False,
        source_id: Optional[str] = None,
    ) -> ChunkBackfillResult:
        """Chunk up to ``batch_size`` unchunked sources (all owners when owner_id is None)."""
        limit = batch_size or settings.CHUNK_BACKFILL_BATCH_SIZE
        started = time.perf_counter()
        result = ChunkBackfillResult(dry_run=dry_run)

        with span("backfill.chunks", {"dry_run": dry_run, "batch_size": limit}):
            pending = await self.sources.list_without_chunks(limit, owner_id=owner_id, source_id=source_id)
            result.candidates = len(pending)
            if dry_run:
                logger.info("[dry-run] %d source(s) need chunks", result.candidates)
                result.duration_ms = _elapsed_ms(started)
                return result

            for source in pending:
                try:
                    created = await self.service.create_source_chunks(source)
                except Exception as exc:
                    logger.error("Chunking source %s failed: %s", source.id, exc)
                    result.failed += 1
                    result.failures.append(BackfillFailure(item_id=source.id, error=str(exc)))
                    continue
                result.sources_processed += 1
                result.chunks_created += created.chunks_created
                result.chunks_embedded += created.chunks_embedded

        result.duration_ms = _elapsed_ms(started)
        logger.info(
            "Chunk backfill done in %dms: sources=%d chunks=%d embedded=%d failed=%d",
            result.duration_ms,
            result.sources_processed,
            result.chunks_created,
            result.chunks_embedded,
            result.failed,
        )
        return result
