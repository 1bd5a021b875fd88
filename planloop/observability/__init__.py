"""
Observability Module

Structured logging and run tracing.
"""

from planloop.observability.logging import (
    BufferHandler,
    ConsoleHandler,
    FileHandler,
    LogLevel,
    StructuredLogger,
    configure_logging,
    get_logger,
)
from planloop.observability.tracing import (
    ConsoleSpanExporter,
    InMemorySpanExporter,
    Span,
    SpanContext,
    SpanExporter,
    SpanStatus,
    Tracer,
)

__all__ = [
    # Logging
    "BufferHandler",
    "ConsoleHandler",
    "FileHandler",
    "LogLevel",
    "StructuredLogger",
    "configure_logging",
    "get_logger",
    # Tracing
    "ConsoleSpanExporter",
    "InMemorySpanExporter",
    "Span",
    "SpanContext",
    "SpanExporter",
    "SpanStatus",
    "Tracer",
]
