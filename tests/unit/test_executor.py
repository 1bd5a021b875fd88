"""
Tests for the Tool-Calling Executor
"""

import pytest

from planloop.core.exceptions import InvalidStateError, StepError
from planloop.core.types import Continuation, ResumeRequest, Step
from planloop.observability.tracing import InMemorySpanExporter, Tracer
from planloop.planning.agents import ExecutorInput, ToolCallingExecutor
from planloop.runtime.context import RunContext
from tests.fakes import ScriptedSelector, types_of

pytestmark = pytest.mark.unit


class RecordingSink:
    def __init__(self):
        self.events = []

    async def emit(self, event):
        self.events.append(event)


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def ctx(sink) -> RunContext:
    ctx = RunContext("run-1")
    ctx.bind(sink)
    return ctx


def approval_script(step: str) -> dict:
    return {
        step: [
            ("echo", {"text": "before"}),
            ("approve", {"item": "hotel"}),
            ("echo", {"text": "after"}),
        ]
    }


class TestToolCallingExecutor:
    """Tests for ToolCallingExecutor."""

    @pytest.mark.asyncio
    async def test_runs_calls_in_order(self, tools, ctx, sink):
        executor = ToolCallingExecutor(tools.registry, ScriptedSelector())
        step = Step(description="Say hello")

        outcome = await executor.run(ctx, ExecutorInput(request="r", step=step))

        assert not outcome.suspended
        result = outcome.output
        assert result.step_id == step.id
        assert result.result[0]["tool"] == "echo"
        assert result.result[0]["result"] == {"text": "Say hello", "error": None}
        assert types_of(sink.events) == ["tool_call", "tool_result"]
        assert all(e.run_id == "run-1" for e in sink.events)

    @pytest.mark.asyncio
    async def test_suspends_with_continuation(self, tools, ctx, sink):
        executor = ToolCallingExecutor(tools.registry, ScriptedSelector(approval_script("Book")))
        step = Step(description="Book")

        outcome = await executor.run(ctx, ExecutorInput(request="r", step=step))

        assert outcome.suspended
        suspension = outcome.suspension
        assert suspension.reason == "approval required"
        assert suspension.info["item"] == "hotel"
        assert suspension.info["tool"] == "approve"

        continuation = suspension.continuation
        assert continuation.tag == ToolCallingExecutor.continuation_tag
        assert continuation.payload["step_id"] == step.id
        assert len(continuation.payload["calls"]) == 3
        assert [c["tool"] for c in continuation.payload["completed"]] == ["echo"]
        assert continuation.payload["interrupted"] == suspension.info["call_id"]
        assert continuation.payload["state"] == {"item": "hotel"}

        assert types_of(sink.events) == ["tool_call", "tool_result", "tool_call"]
        assert tools.count("echo") == 1

    @pytest.mark.asyncio
    async def test_resume_replays_completed_calls(self, tools, ctx, sink):
        executor = ToolCallingExecutor(tools.registry, ScriptedSelector(approval_script("Book")))
        step = Step(description="Book")
        first = await executor.run(ctx, ExecutorInput(request="r", step=step))
        sink.events.clear()

        resume = ResumeRequest(continuation=first.suspension.continuation, value="yes")
        outcome = await executor.run(ctx, ExecutorInput(request="r", step=step, resume=resume))

        assert not outcome.suspended
        entries = outcome.output.result
        assert [e["tool"] for e in entries] == ["echo", "approve", "echo"]
        assert entries[1]["result"] == {"item": "hotel", "approved": True, "note": "yes"}

        # The "before" echo ran once, the approval twice (interrupt, then answer).
        assert tools.invocations == [
            ("echo", {"text": "before"}),
            ("approve", {"item": "hotel"}),
            ("approve", {"item": "hotel"}),
            ("echo", {"text": "after"}),
        ]
        # No repeated ToolCall for the resumed call.
        assert types_of(sink.events) == ["tool_result", "tool_call", "tool_result"]

    @pytest.mark.asyncio
    async def test_resume_rejects_foreign_continuation(self, tools, ctx):
        executor = ToolCallingExecutor(tools.registry, ScriptedSelector())
        step = Step(description="Book")
        resume = ResumeRequest(continuation=Continuation(tag="someone_else", payload={}))

        with pytest.raises(InvalidStateError):
            await executor.run(ctx, ExecutorInput(request="r", step=step, resume=resume))

    @pytest.mark.asyncio
    async def test_resume_rejects_other_step(self, tools, ctx):
        executor = ToolCallingExecutor(tools.registry, ScriptedSelector())
        step = Step(description="Book")
        resume = ResumeRequest(
            continuation=Continuation(
                tag=ToolCallingExecutor.continuation_tag,
                payload={"step_id": "other", "calls": [], "completed": [], "interrupted": None},
            )
        )

        with pytest.raises(InvalidStateError):
            await executor.run(ctx, ExecutorInput(request="r", step=step, resume=resume))

    @pytest.mark.asyncio
    async def test_tool_failure_becomes_step_error(self, tools, ctx):
        executor = ToolCallingExecutor(
            tools.registry, ScriptedSelector({"Fail": [("explode", {"text": "x"})]})
        )
        step = Step(description="Fail")

        with pytest.raises(StepError) as exc_info:
            await executor.run(ctx, ExecutorInput(request="r", step=step))

        assert exc_info.value.context["step_id"] == step.id
        assert exc_info.value.context["tool"] == "explode"
        assert exc_info.value.context["cause"]["error"] == "TOOL_EXECUTION_ERROR"

    @pytest.mark.asyncio
    async def test_unknown_tool_becomes_step_error(self, tools, ctx):
        executor = ToolCallingExecutor(
            tools.registry, ScriptedSelector({"Fail": [("missing", {})]})
        )

        with pytest.raises(StepError) as exc_info:
            await executor.run(ctx, ExecutorInput(request="r", step=Step(description="Fail")))

        assert exc_info.value.context["cause"]["error"] == "TOOL_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_tool_calls_are_traced(self, tools, sink):
        exporter = InMemorySpanExporter()
        ctx = RunContext("run-1", tracer=Tracer("test", exporters=[exporter], batch_size=1))
        ctx.bind(sink)
        executor = ToolCallingExecutor(tools.registry, ScriptedSelector())

        await executor.run(ctx, ExecutorInput(request="r", step=Step(description="Hi")))
        await ctx.tracer.flush()

        assert "tool.echo" in exporter.names()
