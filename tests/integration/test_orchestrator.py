"""
Integration Tests for the Plan-Execute-Replan Orchestrator

Drives full runs with scripted agents and instrumented tools.
"""

import asyncio

import pytest

from planloop.core.exceptions import (
    CheckpointConflictError,
    CheckpointNotFoundError,
    InvalidStateError,
)
from planloop.core.types import (
    CompletedEvent,
    ContinueWithPlan,
    FailedEvent,
    Finalize,
    InterruptedEvent,
    Plan,
    Step,
    StepStatus,
)
from planloop.observability.tracing import InMemorySpanExporter, Tracer
from planloop.planning.checkpoints import CheckpointPolicy, ConflictPolicy
from planloop.runtime.orchestrator import OrchestratorConfig, RunPhase
from tests.fakes import ScriptedPlanner, ScriptedReplanner, collect, types_of

pytestmark = pytest.mark.integration


APPROVE_SECOND = {"Book": [("approve", {"item": "flight CA123"})]}


def step_events(events):
    return [e for e in events if e.type == "progress" and e.agent_name == "executor"]


class TestCompleteRun:
    """Tests for runs that finish without suspending."""

    @pytest.mark.asyncio
    async def test_three_steps_then_completed(self, make_orchestrator, tools):
        orchestrator = make_orchestrator(["A", "B", "C"])

        stream = await orchestrator.start("do things", "run-a")
        events = await collect(stream)

        assert types_of(events) == [
            "progress",
            "tool_call", "tool_result", "progress",
            "tool_call", "tool_result", "progress",
            "tool_call", "tool_result", "progress",
            "completed",
        ]
        assert events[0].payload["phase"] == "planning"
        assert [e.payload["description"] for e in step_events(events)] == ["A", "B", "C"]
        assert all(e.payload["status"] == "done" for e in step_events(events))
        assert events[-1].final_output == "done"
        assert len({e.run_id for e in events}) == 1
        assert tools.count("echo") == 3

    @pytest.mark.asyncio
    async def test_completed_run_leaves_no_checkpoint(self, make_orchestrator, store):
        orchestrator = make_orchestrator(["A"])

        await collect(await orchestrator.start("do things", "run-a"))

        assert len(store) == 0
        assert await orchestrator.inspect("run-a") is None

    @pytest.mark.asyncio
    async def test_replanner_sees_every_result(self, make_orchestrator):
        replanner = ScriptedReplanner()
        orchestrator = make_orchestrator(["A", "B"], replanner=replanner)

        await collect(await orchestrator.start("do things"))

        (call,) = replanner.calls
        assert [r.description for r in call.results] == ["A", "B"]
        assert call.iteration == 1
        assert all(s.status == StepStatus.DONE for s in call.plan.steps)

    @pytest.mark.asyncio
    async def test_next_after_end(self, make_orchestrator):
        orchestrator = make_orchestrator(["A"])
        stream = await orchestrator.start("do things")

        await collect(stream)

        assert await stream.next() == (None, False)
        assert await stream.next() == (None, False)


class TestSuspendAndResume:
    """Tests for suspension at a step and resumption from the checkpoint."""

    @pytest.mark.asyncio
    async def test_suspend_then_resume(self, make_orchestrator, tools, store):
        orchestrator = make_orchestrator(["Check", "Book", "Summarize"], script=APPROVE_SECOND)

        first = await collect(await orchestrator.start("plan a trip", "trip-1"))

        interrupted = first[-1]
        assert isinstance(interrupted, InterruptedEvent)
        assert interrupted.reason == "approval required"
        assert interrupted.resume_token == "trip-1"
        assert interrupted.info["item"] == "flight CA123"
        assert [e.payload["description"] for e in step_events(first)] == ["Check"]
        assert await store.exists("trip-1")

        state = await orchestrator.inspect("trip-1")
        assert state.phase == RunPhase.SUSPENDED
        assert state.suspended.step_id == interrupted.step_id
        assert state.plan.get(interrupted.step_id).status == StepStatus.RUNNING

        second = await collect(await orchestrator.resume("trip-1", "yes"))

        assert [e.payload["description"] for e in step_events(second)] == ["Book", "Summarize"]
        assert isinstance(second[-1], CompletedEvent)
        assert step_events(second)[0].payload["result"][0]["result"]["approved"] is True
        assert first[0].run_id == second[0].run_id

        # "Check" ran exactly once, before the suspension.
        assert tools.invocations.count(("echo", {"text": "Check"})) == 1
        assert tools.count("approve") == 2

        # The checkpoint is gone once the resumed run completes.
        assert not await store.exists("trip-1")
        with pytest.raises(CheckpointNotFoundError):
            await orchestrator.resume("trip-1", "yes")

    @pytest.mark.asyncio
    async def test_resume_emits_no_planning(self, make_orchestrator):
        planner = ScriptedPlanner(["Check", "Book"])
        orchestrator = make_orchestrator([], script=APPROVE_SECOND, planner=planner)

        await collect(await orchestrator.start("plan a trip", "trip-1"))
        second = await collect(await orchestrator.resume("trip-1", "no"))

        assert len(planner.calls) == 1
        assert not any(
            e.type == "progress" and e.payload.get("phase") == "planning" for e in second
        )
        assert step_events(second)[0].payload["result"][0]["result"]["approved"] is False

    @pytest.mark.asyncio
    async def test_generated_checkpoint_id(self, make_orchestrator):
        orchestrator = make_orchestrator(["Book"], script=APPROVE_SECOND)

        events = await collect(await orchestrator.start("plan a trip"))

        token = events[-1].resume_token
        assert token
        assert await orchestrator.inspect(token) is not None

    @pytest.mark.asyncio
    async def test_suspend_again_after_resume(self, make_orchestrator, store):
        script = {
            "Book": [("approve", {"item": "flight"})],
            "Pay": [("approve", {"item": "payment"})],
        }
        orchestrator = make_orchestrator(
            ["Book", "Pay"],
            script=script,
            policy=CheckpointPolicy(on_conflict=ConflictPolicy.ERROR),
        )

        await collect(await orchestrator.start("trip", "trip-1"))
        second = await collect(await orchestrator.resume("trip-1", "yes"))

        assert isinstance(second[-1], InterruptedEvent)
        assert second[-1].info["item"] == "payment"

        third = await collect(await orchestrator.resume("trip-1", "yes"))

        assert isinstance(third[-1], CompletedEvent)
        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_checkpoint_retained_when_configured(self, make_orchestrator, store):
        orchestrator = make_orchestrator(
            ["Book"],
            script=APPROVE_SECOND,
            policy=CheckpointPolicy(delete_on_finish=False),
        )

        await collect(await orchestrator.start("trip", "trip-1"))
        await collect(await orchestrator.resume("trip-1", "yes"))

        assert await store.exists("trip-1")

    @pytest.mark.asyncio
    async def test_resume_unknown_checkpoint(self, make_orchestrator):
        orchestrator = make_orchestrator(["A"])

        with pytest.raises(CheckpointNotFoundError):
            await orchestrator.resume("missing")

    @pytest.mark.asyncio
    async def test_resume_run_that_is_not_suspended(self, make_orchestrator, store):
        orchestrator = make_orchestrator(["Book"], script=APPROVE_SECOND)
        await collect(await orchestrator.start("trip", "trip-1"))

        state = await orchestrator.inspect("trip-1")
        state.phase = RunPhase.EXECUTING
        await store.save("trip-1", state.dumps())

        with pytest.raises(InvalidStateError):
            await orchestrator.resume("trip-1")

    @pytest.mark.asyncio
    async def test_conflict_policy_error(self, make_orchestrator, store):
        orchestrator = make_orchestrator(
            ["Book"],
            script=APPROVE_SECOND,
            policy=CheckpointPolicy(on_conflict=ConflictPolicy.ERROR),
        )
        await collect(await orchestrator.start("trip", "trip-1"))

        stream = await orchestrator.start("another trip", "trip-1")

        received = []
        with pytest.raises(CheckpointConflictError):
            async for event in stream:
                received.append(event)

        assert not any(isinstance(e, InterruptedEvent) for e in received)
        state = await orchestrator.inspect("trip-1")
        assert state.request == "trip"

    @pytest.mark.asyncio
    async def test_conflict_policy_overwrite(self, make_orchestrator):
        orchestrator = make_orchestrator(["Book"], script=APPROVE_SECOND)
        await collect(await orchestrator.start("trip", "trip-1"))

        events = await collect(await orchestrator.start("another trip", "trip-1"))

        assert isinstance(events[-1], InterruptedEvent)
        assert (await orchestrator.inspect("trip-1")).request == "another trip"

    @pytest.mark.asyncio
    async def test_discard(self, make_orchestrator):
        orchestrator = make_orchestrator(["Book"], script=APPROVE_SECOND)
        await collect(await orchestrator.start("trip", "trip-1"))

        assert await orchestrator.discard("trip-1")
        assert not await orchestrator.discard("trip-1")


class TestReplanning:
    """Tests for replanner decisions."""

    @pytest.mark.asyncio
    async def test_continue_with_plan_appends_steps(self, make_orchestrator):
        replanner = ScriptedReplanner(
            [ContinueWithPlan(plan=Plan.from_descriptions(["D", "E"]))],
            summary="all done",
        )
        orchestrator = make_orchestrator(["A", "B"], replanner=replanner)

        events = await collect(await orchestrator.start("do things"))

        assert [e.payload["description"] for e in step_events(events)] == ["A", "B", "D", "E"]
        replans = [e for e in events if e.type == "progress" and e.agent_name == "replanner"]
        assert len(replans) == 1
        assert replans[0].payload["iteration"] == 1
        assert [s["description"] for s in replans[0].payload["plan"]["steps"]] == ["A", "B", "D", "E"]

        assert len(replanner.calls) == 2
        assert replanner.calls[1].iteration == 2
        assert [r.description for r in replanner.calls[1].results] == ["A", "B", "D", "E"]
        assert events[-1].final_output == "all done"

    @pytest.mark.asyncio
    async def test_revision_with_repeated_step_id_runs_once(self, make_orchestrator):
        revised = Plan(steps=[Step(id="x", description="D"), Step(id="x", description="E")])
        replanner = ScriptedReplanner([ContinueWithPlan(plan=revised)])
        orchestrator = make_orchestrator(["A"], replanner=replanner)

        events = await collect(await orchestrator.start("do things"))

        assert [e.payload["description"] for e in step_events(events)] == ["A", "D"]
        assert [s.id for s in replanner.calls[1].plan.steps].count("x") == 1
        assert isinstance(events[-1], CompletedEvent)

    @pytest.mark.asyncio
    async def test_max_iterations(self, make_orchestrator):
        def more(input):
            return ContinueWithPlan(plan=Plan.from_descriptions([f"extra {input.iteration}"]))

        replanner = ScriptedReplanner([more, more, more, more])
        orchestrator = make_orchestrator(
            ["A"],
            replanner=replanner,
            config=OrchestratorConfig(max_iterations=2),
        )

        events = await collect(await orchestrator.start("do things"))

        failed = events[-1]
        assert isinstance(failed, FailedEvent)
        assert failed.error["error"] == "MAX_ITERATIONS_EXCEEDED"
        assert len(replanner.calls) == 2

    @pytest.mark.asyncio
    async def test_replanner_failure(self, make_orchestrator):
        orchestrator = make_orchestrator(["A"], decisions=[RuntimeError("model unavailable")])

        events = await collect(await orchestrator.start("do things"))

        assert isinstance(events[-1], FailedEvent)
        assert events[-1].error["error"] == "REPLANNING_ERROR"
        assert "model unavailable" in events[-1].error["message"]


class TestFailures:
    """Tests for planner and step failures."""

    @pytest.mark.asyncio
    async def test_planner_failure(self, make_orchestrator, tools):
        planner = ScriptedPlanner([], error=RuntimeError("cannot plan"))
        orchestrator = make_orchestrator([], planner=planner)

        events = await collect(await orchestrator.start("do things"))

        assert types_of(events) == ["failed"]
        assert events[0].error["error"] == "PLANNING_ERROR"
        assert tools.invocations == []

    @pytest.mark.asyncio
    async def test_step_failure_is_recorded_and_run_continues(self, make_orchestrator):
        replanner = ScriptedReplanner()
        orchestrator = make_orchestrator(
            ["A", "Fail", "C"],
            script={"Fail": [("explode", {"text": "x"})]},
            replanner=replanner,
        )

        events = await collect(await orchestrator.start("do things"))

        statuses = [e.payload["status"] for e in step_events(events)]
        assert statuses == ["done", "failed", "done"]
        assert "boom" in step_events(events)[1].payload["error"]
        assert isinstance(events[-1], CompletedEvent)
        assert replanner.calls[0].results[1].is_error

    @pytest.mark.asyncio
    async def test_abort_on_step_error(self, make_orchestrator):
        replanner = ScriptedReplanner([Finalize(summary="gave up")])
        orchestrator = make_orchestrator(
            ["A", "Fail", "C"],
            script={"Fail": [("explode", {"text": "x"})]},
            replanner=replanner,
            config=OrchestratorConfig(abort_on_step_error=True),
        )

        events = await collect(await orchestrator.start("do things"))

        assert [e.payload["description"] for e in step_events(events)] == ["A", "Fail"]
        assert events[-1].final_output == "gave up"
        assert replanner.calls[0].plan.steps[2].status == StepStatus.PENDING


class TestCancellation:
    """Tests for cancellation and deadlines."""

    @pytest.mark.asyncio
    async def test_cancel_during_step(self, make_orchestrator, tools):
        orchestrator = make_orchestrator(["Wait"], script={"Wait": [("wait", {"text": "x"})]})
        stream = await orchestrator.start("do things")

        await stream.next()  # planning
        await stream.next()  # tool call
        pending = asyncio.create_task(stream.next())
        await asyncio.wait_for(tools.started.wait(), timeout=1)

        stream.cancel("user")
        event, has_more = await asyncio.wait_for(pending, timeout=1)

        assert (event, has_more) == (None, False)
        await stream.aclose()

    @pytest.mark.asyncio
    async def test_cancel_stops_remaining_steps(self, make_orchestrator, tools):
        orchestrator = make_orchestrator(["Wait", "B", "C"], script={"Wait": [("wait", {"text": "x"})]})
        stream = await orchestrator.start("do things")

        await stream.next()  # planning
        await stream.next()  # tool call
        pending = asyncio.create_task(stream.next())
        await asyncio.wait_for(tools.started.wait(), timeout=1)

        stream.cancel("user")
        event, has_more = await asyncio.wait_for(pending, timeout=1)
        tools.gate.set()
        await asyncio.wait_for(stream.wait_closed(), timeout=1)

        assert (event, has_more) == (None, False)
        assert tools.count("wait") == 1
        assert tools.count("echo") == 0
        await stream.aclose()

    @pytest.mark.asyncio
    async def test_deadline(self, make_orchestrator, tools):
        orchestrator = make_orchestrator(["Wait"], script={"Wait": [("wait", {"text": "x"})]})
        stream = await orchestrator.start("do things", timeout=0.2)

        events = await asyncio.wait_for(collect(stream), timeout=2)

        assert "completed" not in types_of(events)
        assert stream.context.cancel_reason == "deadline exceeded"
        await stream.aclose()

    @pytest.mark.asyncio
    async def test_cancelled_resume_keeps_checkpoint(self, make_orchestrator, tools, store):
        script = {"Book": [("approve", {"item": "x"})], "Wait": [("wait", {"text": "x"})]}
        orchestrator = make_orchestrator(["Book", "Wait"], script=script)
        await collect(await orchestrator.start("trip", "trip-1"))

        stream = await orchestrator.resume("trip-1", "yes")
        pending = asyncio.ensure_future(collect(stream))
        await asyncio.wait_for(tools.started.wait(), timeout=1)
        stream.cancel()
        await asyncio.wait_for(pending, timeout=1)
        await stream.aclose()

        assert await store.exists("trip-1")


class TestTracing:
    """Tests for run tracing."""

    @pytest.mark.asyncio
    async def test_run_spans(self, make_orchestrator):
        exporter = InMemorySpanExporter()
        tracer = Tracer("test", exporters=[exporter])
        orchestrator = make_orchestrator(["A", "B"])

        await collect(await orchestrator.start("do things", tracer=tracer))
        await tracer.close()

        names = exporter.names()
        assert names[-1] == "run"
        assert names.count("step") == 2
        assert names.count("tool.echo") == 2
        assert "planning" in names
        assert "replanning" in names
        assert len({s.context.trace_id for s in exporter.spans}) == 1

    @pytest.mark.asyncio
    async def test_logs_carry_run_context(self, make_orchestrator, log_buffer):
        orchestrator = make_orchestrator(["A"])

        events = await collect(await orchestrator.start("do things", "trip-9"))

        finished = [r for r in log_buffer.records if r.message == "Step finished"]
        assert finished
        assert finished[0].run_id == events[0].run_id
        assert finished[0].checkpoint_id == "trip-9"
