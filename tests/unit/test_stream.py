"""
Tests for Event Stream and Run Context
"""

import asyncio

import pytest

from planloop.core.exceptions import StreamCancelledError
from planloop.core.types import ProgressEvent
from planloop.runtime.context import RunContext
from planloop.runtime.stream import EventStream

pytestmark = pytest.mark.unit


def progress(n: int) -> ProgressEvent:
    return ProgressEvent(agent_name="test", payload={"n": n})


class TestRunContext:
    """Tests for RunContext."""

    def test_cancel_is_idempotent(self):
        ctx = RunContext("run-1")

        ctx.cancel("first")
        ctx.cancel("second")

        assert ctx.cancelled
        assert ctx.cancel_reason == "first"

    def test_raise_if_cancelled(self):
        ctx = RunContext("run-1")
        ctx.raise_if_cancelled()

        ctx.cancel("stop")

        with pytest.raises(StreamCancelledError) as exc_info:
            ctx.raise_if_cancelled()
        assert exc_info.value.context["reason"] == "stop"

    @pytest.mark.asyncio
    async def test_deadline_cancels(self):
        ctx = RunContext("run-1", timeout=0.01)

        await asyncio.wait_for(ctx.wait_cancelled(), timeout=1)

        assert ctx.cancelled
        assert ctx.cancel_reason == "deadline exceeded"

    @pytest.mark.asyncio
    async def test_emit_stamps_run_id(self):
        received = []

        class Sink:
            async def emit(self, event):
                received.append(event)

        ctx = RunContext("run-7")
        ctx.bind(Sink())
        await ctx.emit(progress(1))

        assert received[0].run_id == "run-7"

    @pytest.mark.asyncio
    async def test_span_without_tracer(self):
        async with RunContext().span("noop") as span:
            assert span is None


class TestEventStream:
    """Tests for EventStream."""

    @pytest.mark.asyncio
    async def test_delivers_in_order_then_ends(self):
        ctx = RunContext("run-1")
        stream = EventStream(ctx)

        async def producer():
            for n in range(3):
                await ctx.emit(progress(n))

        stream.start(producer)
        received = [event.payload["n"] async for event in stream]

        assert received == [0, 1, 2]
        assert stream.exhausted
        assert await stream.next() == (None, False)

    @pytest.mark.asyncio
    async def test_producer_waits_for_consumer(self):
        """Test the producer never runs more than one event ahead."""
        ctx = RunContext("run-1")
        stream = EventStream(ctx)
        emitted = []

        async def producer():
            for n in range(3):
                await ctx.emit(progress(n))
                emitted.append(n)

        stream.start(producer)
        await asyncio.sleep(0.05)
        assert emitted == [0]

        event, has_more = await stream.next()
        await asyncio.sleep(0.05)

        assert has_more
        assert event.payload["n"] == 0
        assert emitted == [0, 1]

        await stream.aclose()

    @pytest.mark.asyncio
    async def test_cancel_unblocks_next(self):
        ctx = RunContext("run-1")
        stream = EventStream(ctx)
        stopped = asyncio.Event()

        async def producer():
            try:
                await asyncio.Event().wait()
            finally:
                stopped.set()

        stream.start(producer)
        pending = asyncio.create_task(stream.next())
        await asyncio.sleep(0.01)

        stream.cancel("user")
        event, has_more = await asyncio.wait_for(pending, timeout=1)

        assert event is None
        assert not has_more
        await stream.aclose()
        assert stopped.is_set()

    @pytest.mark.asyncio
    async def test_cancel_stops_blocked_producer(self):
        ctx = RunContext("run-1")
        stream = EventStream(ctx)
        outcome = []

        async def producer():
            try:
                for n in range(3):
                    await ctx.emit(progress(n))
            except StreamCancelledError:
                outcome.append("cancelled")
                raise

        stream.start(producer)
        await stream.next()
        await asyncio.sleep(0.01)

        stream.cancel()
        await asyncio.wait_for(stream.wait_closed(), timeout=1)

        assert outcome == ["cancelled"]
        assert stream.error is None

    @pytest.mark.asyncio
    async def test_deadline_ends_stream(self):
        ctx = RunContext("run-1", timeout=0.05)
        stream = EventStream(ctx)

        async def producer():
            await ctx.emit(progress(0))
            await asyncio.sleep(10)

        stream.start(producer)
        first, _ = await stream.next()
        event, has_more = await asyncio.wait_for(stream.next(), timeout=2)

        assert first.payload["n"] == 0
        assert (event, has_more) == (None, False)
        await stream.aclose()

    @pytest.mark.asyncio
    async def test_producer_error_is_raised_once(self):
        ctx = RunContext("run-1")
        stream = EventStream(ctx)

        async def producer():
            await ctx.emit(progress(0))
            raise ValueError("producer broke")

        stream.start(producer)
        event, has_more = await stream.next()
        assert has_more

        with pytest.raises(ValueError, match="producer broke"):
            await stream.next()

        assert await stream.next() == (None, False)

    @pytest.mark.asyncio
    async def test_not_restartable(self):
        ctx = RunContext("run-1")
        stream = EventStream(ctx)

        async def producer():
            return None

        stream.start(producer)

        with pytest.raises(RuntimeError):
            stream.start(producer)

        await stream.aclose()
