"""Local text ingestor.

Reads a text/markdown file (or PDF text export with "Page N" markers), stores
it as a Source, then chunks and embeds it through ChunkService.

Usage:
  python -m semantic_core.jobs.ingest_text --file notes.md --owner user-1 --type note
"""
import argparse
import asyncio
import logging
from pathlib import Path
from typing import Optional

from semantic_core.chunking import ContentType
from semantic_core.chunks import ChunkCreationResult, ChunkService
from semantic_core.config import settings
from semantic_core.db import init_db
from semantic_core.embedding import get_generator
from semantic_core.store import SqlChunkStore, SqlSourceStore

logger = logging.getLogger(__name__)


async def ingest_text(path: Path, owner_id: str, content_type: ContentType, title: Optional[str] = None) -> ChunkCreationResult:
    """Store the file as a source and create its chunks."""
    content = path.read_text(encoding="utf-8")
    logger.info("Read %d chars from %s", len(content), path)
    source = await SqlSourceStore().create(owner_id, content_type.value, content, title=title or path.name)
    service = ChunkService(SqlChunkStore(), get_generator())
    return await service.create_source_chunks(source)


def main():
    parser = argparse.ArgumentParser(description="Ingest a local text file as a source.")
    parser.add_argument("--file", required=True, type=Path, help="Path to a UTF-8 text file")
    parser.add_argument("--owner", required=True, help="Owner (user) id")
    parser.add_argument(
        "--type",
        default=ContentType.TEXT.value,
        choices=[t.value for t in ContentType if t != ContentType.IMAGE],
        help="Content type of the file (default: text)",
    )
    parser.add_argument("--title", default=None, help="Source title (default: file name)")
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
    logger.info("Starting text ingestion for %s", args.file)

    init_db()
    try:
        result = asyncio.run(ingest_text(args.file, args.owner, ContentType(args.type), args.title))
    except Exception:
        logger.exception("Ingestion failed for %s", args.file)
        raise
    if result.skipped:
        print(f"[INGEST-TEXT] {args.file} -> stored, too short to chunk")
    else:
        print(f"[INGEST-TEXT] {args.file} -> {result.chunks_created} chunks ({result.chunks_embedded} embedded)")


if __name__ == "__main__":
    main()
