"""Command-line jobs.

- run_backfill: embed pending summaries/chunks or chunk unchunked sources
- ingest_text: store a local text file as a source and chunk it
"""
