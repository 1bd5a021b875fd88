"""
Event Stream

Single-producer, single-consumer, pull-based stream of AgentEvents.

Design decisions:
- Capacity-one channel: the producer waits until the consumer has taken
  the previous event before handing over the next one
- The producer runs as its own asyncio task; next() only suspends the
  awaiting coroutine
- Cancellation of the run context unblocks next() with has_more=False
- Not restartable: once exhausted or cancelled it stays ended
- Exceptions escaping the producer are re-raised to the consumer
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

from planloop.core.exceptions import StreamCancelledError
from planloop.core.types import AgentEvent
from planloop.observability.logging import get_logger
from planloop.runtime.context import RunContext

logger = get_logger("planloop.stream")

_END = object()

Producer = Callable[[], Awaitable[None]]


class EventStream:
    """
    Pull-based event stream backed by a background producer task.

    Usage:
        stream = await orchestrator.start("Plan a trip")
        while True:
            event, has_more = await stream.next()
            if not has_more:
                break
            ...

    or simply ``async for event in stream``.
    """

    def __init__(self, context: RunContext):
        self._context = context
        self._queue: asyncio.Queue[Any] = asyncio.Queue(maxsize=1)
        self._task: asyncio.Task[None] | None = None
        self._exhausted = False
        self._error: BaseException | None = None
        context.bind(self)

    @property
    def context(self) -> RunContext:
        return self._context

    @property
    def run_id(self) -> str:
        return self._context.run_id

    @property
    def exhausted(self) -> bool:
        return self._exhausted

    @property
    def error(self) -> BaseException | None:
        """Exception that ended the producer, if any."""
        return self._error

    # ------------------------------------------------------------------
    # Producer side
    # ------------------------------------------------------------------

    def start(self, producer: Producer) -> None:
        """Launch the producer. A stream runs exactly one producer."""
        if self._task is not None:
            raise RuntimeError("EventStream is not restartable")
        self._task = asyncio.create_task(self._produce(producer), name=f"run-{self.run_id}")

    async def _produce(self, producer: Producer) -> None:
        try:
            await producer()
        except StreamCancelledError:
            logger.info("Producer stopped on cancellation", reason=self._context.cancel_reason)
        except Exception as e:
            self._error = e
            logger.error("Producer failed", error=e)
        finally:
            await self._finish()

    async def emit(self, event: AgentEvent) -> None:
        """
        Hand one event to the consumer.

        Waits while the previous event is still unclaimed. Raises
        StreamCancelledError if the run is cancelled meanwhile.
        """
        self._context.raise_if_cancelled()
        delivered = await self._until_cancelled(self._queue.put(event))
        if not delivered:
            self._context.raise_if_cancelled()

    async def _finish(self) -> None:
        if self._context.cancelled:
            return
        await self._until_cancelled(self._queue.put(_END))

    # ------------------------------------------------------------------
    # Consumer side
    # ------------------------------------------------------------------

    async def next(self) -> tuple[AgentEvent | None, bool]:
        """
        Wait for the next event.

        Returns (event, True) while events flow and (None, False) once the
        stream has ended or the run was cancelled. If the producer died on
        an unexpected exception, that exception is raised here once.
        """
        if self._exhausted:
            return None, False

        got, item = await self._get()

        if not got or item is _END:
            self._exhausted = True
            if self._error is not None:
                error, self._error = self._error, None
                raise error
            return None, False

        return item, True

    async def _get(self) -> tuple[bool, Any]:
        if self._context.cancelled:
            return False, None

        getter = asyncio.ensure_future(self._queue.get())
        stopper = asyncio.ensure_future(self._context.wait_cancelled())
        try:
            await asyncio.wait({getter, stopper}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            stopper.cancel()
            if not getter.done():
                getter.cancel()

        # Cancellation wins over an item that arrived at the same moment.
        if self._context.cancelled or getter.cancelled():
            return False, None
        return True, getter.result()

    def __aiter__(self) -> "EventStream":
        return self

    async def __anext__(self) -> AgentEvent:
        event, has_more = await self.next()
        if not has_more:
            raise StopAsyncIteration
        return event

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def cancel(self, reason: str = "cancelled by consumer") -> None:
        """Cancel the run; the in-flight next() returns has_more=False."""
        self._context.cancel(reason)

    async def wait_closed(self) -> None:
        """Wait for the producer task to stop."""
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)

    async def aclose(self) -> None:
        """Cancel the run and tear the producer down."""
        self._exhausted = True
        self.cancel("stream closed")
        if self._task is not None and not self._task.done():
            self._task.cancel()
        await self.wait_closed()

    async def _until_cancelled(self, operation: Awaitable[Any]) -> bool:
        """Run operation unless cancellation comes first. True if it completed."""
        op = asyncio.ensure_future(operation)
        stopper = asyncio.ensure_future(self._context.wait_cancelled())
        try:
            await asyncio.wait({op, stopper}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            stopper.cancel()
            if not op.done():
                op.cancel()
        return op.done() and not op.cancelled()
