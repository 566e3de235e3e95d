"""Observability utilities providing OpenTelemetry spans.

A tracer provider is installed once on first use. When
settings.OTEL_CONSOLE_EXPORT is enabled, finished spans are printed through a
console exporter; otherwise spans are recorded for any exporter configured
externally.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Dict, Optional

from opentelemetry import trace
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter

from semantic_core.config import settings

_otel_inited: bool = False


def _init_otel() -> None:
    """Initialize a tracer provider, with console export when enabled."""
    global _otel_inited
    if _otel_inited:
        return
    tp = TracerProvider()
    if settings.OTEL_CONSOLE_EXPORT:
        tp.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))
    trace.set_tracer_provider(tp)
    _otel_inited = True


@contextmanager
def span(name: str, attributes: Optional[Dict[str, Any]] = None):
    """
    Context manager wrapping a block in an OpenTelemetry span.
    Exceptions raised in the block are recorded on the span and re-raised.
    """
    _init_otel()
    tracer = trace.get_tracer(__name__)
    with tracer.start_as_current_span(name, attributes=attributes or {}) as otel_span:
        yield otel_span
