"""Database setup and session utilities for SQLAlchemy.

This module centralizes engine/session initialization, metadata base, and helpers:
- init_db: Ensures the pgvector extension exists and creates required tables and the
  IVFFLAT indexes over the summaries/content_chunks embedding columns.
- session_scope: Context-managed transactional scope for imperative workflows.
- run_in_session: Runs a unit of work inside session_scope on the default executor
  so async callers can await blocking database I/O.

Configuration is read from semantic_core.config.settings.DATABASE_URL.
"""
import asyncio
from contextlib import contextmanager
from typing import Callable, TypeVar

from sqlalchemy import create_engine, text
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from semantic_core.config import settings

T = TypeVar("T")

# SQLAlchemy setup
engine = create_engine(settings.DATABASE_URL, pool_pre_ping=True, future=True)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, future=True)
Base = declarative_base()

_VECTOR_INDEXES = {
    "idx_summaries_embedding_ivfflat": "summaries",
    "idx_chunks_embedding_ivfflat": "content_chunks",
}


def init_db() -> None:
    """Initialize database extensions, tables, and vector indexes.

    Ensures pgvector extension is available, creates tables from SQLAlchemy metadata,
    and creates the IVFFLAT indexes over embedding columns if missing.

    This function is idempotent and safe to run multiple times.
    """
    with engine.connect() as conn:
        conn.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))
        conn.commit()

    # Import models after Base is defined
    from semantic_core import models  # noqa: F401

    Base.metadata.create_all(bind=engine)

    with engine.connect() as conn:
        for index_name, table in _VECTOR_INDEXES.items():
            conn.execute(
                text(
                    f"CREATE INDEX IF NOT EXISTS {index_name} "
                    f"ON {table} USING ivfflat (embedding vector_cosine_ops) WITH (lists = 100)"
                )
            )
        conn.commit()


@contextmanager
def session_scope():
    """Provide a transactional scope around a series of operations.

    Yields:
        Session: A SQLAlchemy session bound to the configured engine.

    Notes:
        - Commits on successful exit.
        - Rolls back and re-raises on exception.
        - Always closes the session at the end.
    """
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


async def run_in_session(work: Callable[[Session], T]) -> T:
    """Run ``work(session)`` in a transactional scope without blocking the event loop."""

    def _call() -> T:
        with session_scope() as session:
            return work(session)

    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, _call)
