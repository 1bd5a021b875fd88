"""
Run Tracing

Span-based tracing for orchestrator runs.

Design decisions:
- A Tracer is an explicit object handed to start/resume, never a global
- Spans form a tree: run -> planning / step / replan round
- Exporters are pluggable; export errors never affect the run
- The caller owns teardown through Tracer.close()
"""

import contextvars
import json
import random
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import uuid4

from planloop.observability.logging import get_logger

logger = get_logger("planloop.tracing")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SpanStatus(str, Enum):
    """Status of a span."""

    UNSET = "unset"
    OK = "ok"
    ERROR = "error"


@dataclass
class SpanContext:
    """Identifiers linking a span into its trace."""

    trace_id: str = field(default_factory=lambda: uuid4().hex)
    span_id: str = field(default_factory=lambda: uuid4().hex[:16])
    parent_span_id: str | None = None


@dataclass
class SpanEvent:
    """An event within a span."""

    name: str
    timestamp: datetime = field(default_factory=_utcnow)
    attributes: dict[str, Any] = field(default_factory=dict)


@dataclass
class Span:
    """A unit of work in a trace."""

    name: str
    context: SpanContext = field(default_factory=SpanContext)

    start_time: datetime = field(default_factory=_utcnow)
    end_time: datetime | None = None

    status: SpanStatus = SpanStatus.UNSET
    status_message: str | None = None

    attributes: dict[str, Any] = field(default_factory=dict)
    events: list[SpanEvent] = field(default_factory=list)

    @property
    def duration_ms(self) -> float:
        if self.end_time is None:
            return 0.0
        return (self.end_time - self.start_time).total_seconds() * 1000

    def set_attribute(self, key: str, value: Any) -> None:
        self.attributes[key] = value

    def add_event(self, name: str, attributes: dict[str, Any] | None = None) -> None:
        self.events.append(SpanEvent(name=name, attributes=attributes or {}))

    def set_status(self, status: SpanStatus, message: str | None = None) -> None:
        self.status = status
        self.status_message = message

    def end(self) -> None:
        self.end_time = _utcnow()
        if self.status == SpanStatus.UNSET:
            self.status = SpanStatus.OK

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "trace_id": self.context.trace_id,
            "span_id": self.context.span_id,
            "parent_span_id": self.context.parent_span_id,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "duration_ms": self.duration_ms,
            "status": self.status.value,
            "status_message": self.status_message,
            "attributes": self.attributes,
            "events": [
                {
                    "name": e.name,
                    "timestamp": e.timestamp.isoformat(),
                    "attributes": e.attributes,
                }
                for e in self.events
            ],
        }


class SpanExporter:
    """Base class for span exporters."""

    async def export(self, spans: list[Span]) -> None:
        pass


class ConsoleSpanExporter(SpanExporter):
    """Prints spans as JSON."""

    async def export(self, spans: list[Span]) -> None:
        for span in spans:
            print(f"[TRACE] {json.dumps(span.to_dict(), default=str)}")


class InMemorySpanExporter(SpanExporter):
    """Stores spans in memory for testing."""

    def __init__(self, max_spans: int = 1000):
        self.spans: list[Span] = []
        self._max_spans = max_spans

    async def export(self, spans: list[Span]) -> None:
        self.spans.extend(spans)
        if len(self.spans) > self._max_spans:
            self.spans = self.spans[-self._max_spans :]

    def get_trace(self, trace_id: str) -> list[Span]:
        return [s for s in self.spans if s.context.trace_id == trace_id]

    def names(self) -> list[str]:
        return [s.name for s in self.spans]

    def clear(self) -> None:
        self.spans.clear()


class Tracer:
    """
    Creates spans and exports them in batches.

    One Tracer is scoped to whatever lifetime the caller chooses, usually a
    single run or an application. Call close() to flush remaining spans.
    """

    def __init__(
        self,
        service_name: str = "planloop",
        exporters: list[SpanExporter] | None = None,
        sample_rate: float = 1.0,
        batch_size: int = 10,
    ):
        self._service_name = service_name
        self._exporters = exporters or []
        self._sample_rate = sample_rate
        self._batch_size = batch_size
        self._current_span: contextvars.ContextVar[Span | None] = contextvars.ContextVar(
            f"planloop_span_{id(self)}", default=None
        )
        self._pending: list[Span] = []
        self._closed = False

    def start_span(
        self,
        name: str,
        parent_context: SpanContext | None = None,
        attributes: dict[str, Any] | None = None,
    ) -> Span:
        """
        Start a new span.

        If no parent context is provided, uses the current span as parent.
        """
        if parent_context is None:
            current = self._current_span.get()
            if current:
                parent_context = current.context

        if parent_context is not None:
            context = SpanContext(
                trace_id=parent_context.trace_id,
                parent_span_id=parent_context.span_id,
            )
        else:
            context = SpanContext()

        span = Span(name=name, context=context, attributes=dict(attributes or {}))
        span.set_attribute("service.name", self._service_name)
        return span

    @asynccontextmanager
    async def trace(
        self,
        name: str,
        attributes: dict[str, Any] | None = None,
        parent_context: SpanContext | None = None,
    ) -> AsyncIterator[Span]:
        """
        Context manager for tracing a block.

        Usage:
            async with tracer.trace("step", {"step.id": step.id}) as span:
                ...
        """
        span = self.start_span(name, parent_context=parent_context, attributes=attributes)
        token = self._current_span.set(span)

        try:
            yield span
        except BaseException as e:
            span.set_status(SpanStatus.ERROR, str(e) or type(e).__name__)
            span.add_event(
                "exception",
                {
                    "exception.type": type(e).__name__,
                    "exception.message": str(e),
                },
            )
            raise
        finally:
            span.end()
            self._current_span.reset(token)
            await self._record_span(span)

    async def _record_span(self, span: Span) -> None:
        if random.random() > self._sample_rate:
            return

        self._pending.append(span)

        if len(self._pending) >= self._batch_size:
            await self.flush()

    async def flush(self) -> None:
        """Flush pending spans to exporters."""
        if not self._pending:
            return

        spans = self._pending[:]
        self._pending.clear()

        for exporter in self._exporters:
            try:
                await exporter.export(spans)
            except Exception as e:
                logger.warning(
                    "Span export failed",
                    exporter=type(exporter).__name__,
                    error_message=str(e),
                )

    async def close(self) -> None:
        """Flush and stop accepting the caller's spans."""
        if self._closed:
            return
        self._closed = True
        await self.flush()

    def get_current_span(self) -> Span | None:
        return self._current_span.get()
