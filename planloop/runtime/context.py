"""
Run Context

The object every agent and tool receives for one run.

Design decisions:
- Cancellation is a shared signal, observed cooperatively
- A deadline is just cancellation that fires on its own
- Events leave the run only through the bound sink
- Tracing is explicit and optional, scoped to the run
"""

import asyncio
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from planloop.core.exceptions import StreamCancelledError
from planloop.core.interfaces import EventSinkProtocol
from planloop.core.types import AgentEvent, new_id
from planloop.observability.tracing import Span, Tracer


class RunContext:
    """
    Cancellation, deadline, event sink and trace scope of a run.

    A context is created per start/resume call. Cancelling it stops the
    producer at its next checkpoint and terminates the consumer's stream.
    """

    def __init__(
        self,
        run_id: str | None = None,
        *,
        timeout: float | None = None,
        tracer: Tracer | None = None,
        metadata: dict[str, Any] | None = None,
    ):
        self.run_id = run_id or new_id()
        self.tracer = tracer
        self.metadata = metadata or {}
        self._deadline = time.monotonic() + timeout if timeout is not None else None
        self._cancelled = asyncio.Event()
        self._cancel_reason: str | None = None
        self._sink: EventSinkProtocol | None = None

    # ------------------------------------------------------------------
    # Cancellation
    # ------------------------------------------------------------------

    @property
    def deadline(self) -> float | None:
        """Monotonic clock time after which the run is cancelled."""
        return self._deadline

    @property
    def remaining(self) -> float | None:
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    @property
    def cancelled(self) -> bool:
        if not self._cancelled.is_set() and self.remaining == 0.0:
            self.cancel("deadline exceeded")
        return self._cancelled.is_set()

    @property
    def cancel_reason(self) -> str | None:
        return self._cancel_reason

    def cancel(self, reason: str = "cancelled") -> None:
        """Signal cancellation. Idempotent; the first reason wins."""
        if self._cancelled.is_set():
            return
        self._cancel_reason = reason
        self._cancelled.set()

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise StreamCancelledError(
                f"Run cancelled: {self._cancel_reason}",
                context={"run_id": self.run_id, "reason": self._cancel_reason},
            )

    async def wait_cancelled(self) -> None:
        """Block until the context is cancelled or its deadline passes."""
        if self.cancelled:
            return
        try:
            await asyncio.wait_for(self._cancelled.wait(), timeout=self.remaining)
        except asyncio.TimeoutError:
            self.cancel("deadline exceeded")

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def bind(self, sink: EventSinkProtocol) -> None:
        self._sink = sink

    async def emit(self, event: AgentEvent) -> None:
        """
        Publish an event for this run.

        Raises StreamCancelledError once the run is cancelled.
        """
        self.raise_if_cancelled()
        if event.run_id is None:
            event = event.model_copy(update={"run_id": self.run_id})
        if self._sink is not None:
            await self._sink.emit(event)

    # ------------------------------------------------------------------
    # Tracing
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def span(self, name: str, **attributes: Any) -> AsyncIterator[Span | None]:
        """Trace a block when a tracer is attached; otherwise a no-op."""
        if self.tracer is None:
            yield None
            return
        async with self.tracer.trace(name, attributes) as span:
            yield span
