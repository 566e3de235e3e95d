"""Backfill job runner.

Targets:
- summaries: embed summaries whose embedding is null
- chunks: embed stored chunks whose embedding is null
- sources: create chunks for sources that qualify for chunking but have none

Usage:
  python -m semantic_core.jobs.run_backfill summaries --batch-size 50
  python -m semantic_core.jobs.run_backfill sources --owner user-1 --dry-run

Configuration:
- Database: semantic_core.config.settings.DATABASE_URL
- Embeddings: semantic_core.config.settings.OPENAI_EMBEDDING_MODEL
- Defaults: BACKFILL_BATCH_SIZE, BACKFILL_SCAN_LIMIT, CHUNK_BACKFILL_BATCH_SIZE
"""
import argparse
import asyncio
import logging

from semantic_core.backfill import BackfillConfig, BackfillOrchestrator, ChunkBackfill
from semantic_core.chunks import ChunkService
from semantic_core.config import settings
from semantic_core.db import init_db
from semantic_core.embedding import get_generator
from semantic_core.store import SqlChunkStore, SqlSourceStore, SqlSummaryStore

logger = logging.getLogger(__name__)


async def run(args: argparse.Namespace) -> int:
    """Run one backfill and return the number of failures."""
    generator = get_generator()
    if args.target == "sources":
        job = ChunkBackfill(SqlSourceStore(), ChunkService(SqlChunkStore(), generator))
        result = await job.backfill_chunks(
            owner_id=args.owner,
            batch_size=args.batch_size or settings.CHUNK_BACKFILL_BATCH_SIZE,
            dry_run=args.dry_run,
        )
        if result.dry_run:
            print(f"[BACKFILL] sources needing chunks: {result.candidates}")
        else:
            print(
                f"[BACKFILL] sources={result.sources_processed} chunks={result.chunks_created} "
                f"embedded={result.chunks_embedded} "
                f"failed={result.failed} in {result.duration_ms}ms"
            )
        failures = result.failures
    else:
        target = SqlSummaryStore() if args.target == "summaries" else SqlChunkStore()
        orchestrator = BackfillOrchestrator(target, generator)
        result = await orchestrator.backfill_embeddings(
            BackfillConfig(
                batch_size=args.batch_size or settings.BACKFILL_BATCH_SIZE,
                dry_run=args.dry_run,
                owner_id=args.owner,
                scan_limit=args.scan_limit,
                max_retries=args.max_retries,
            )
        )
        if result.dry_run:
            print(f"[BACKFILL] {args.target} pending: {result.candidates}")
        else:
            print(
                f"[BACKFILL] {args.target} processed={result.processed} failed={result.failed} "
                f"skipped={result.skipped} in {result.duration_ms}ms"
            )
        failures = result.failures

    for failure in failures:
        logger.warning("Failed %s: %s", failure.item_id, failure.error)
    return len(failures)


def main():
    parser = argparse.ArgumentParser(description="Backfill embeddings or chunks.")
    parser.add_argument("target", choices=["summaries", "chunks", "sources"], help="What to backfill")
    parser.add_argument("--batch-size", type=int, default=None, help="Items per batch")
    parser.add_argument("--scan-limit", type=int, default=settings.BACKFILL_SCAN_LIMIT, help="Max candidates per run")
    parser.add_argument("--max-retries", type=int, default=None, help="Override retry count per item")
    parser.add_argument("--owner", default=None, help="Restrict to one owner id")
    parser.add_argument("--dry-run", action="store_true", help="Only count candidates")
    parser.add_argument(
        "--log-level",
        default=settings.LOG_LEVEL,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging verbosity (default: INFO)",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )
    logger.info("Starting %s backfill (dry_run=%s, owner=%s)", args.target, args.dry_run, args.owner or "*")

    init_db()
    try:
        failed = asyncio.run(run(args))
    except Exception:
        logger.exception("Backfill of %s aborted", args.target)
        raise
    if failed:
        raise SystemExit(1)


if __name__ == "__main__":
    main()
