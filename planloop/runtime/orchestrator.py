"""
Plan-Execute-Replan Orchestrator

Drives Planner -> Executor -> Replanner until the Replanner finalizes,
suspending into the checkpoint store whenever a step needs outside input.

Design decisions:
- One producer task per start/resume; the caller pulls events from an
  EventStream and never shares state with the task
- RunState is the only thing persisted, as opaque bytes
- The checkpoint is saved before Interrupted is emitted; once Interrupted
  is delivered the producer has nothing left to do
- Step failures are data (StepResult.error); Planner and Replanner
  failures end the run with a Failed event
- Persistence failures are never converted to events; they surface to the
  caller from stream.next()

Debugging:
- Every phase transition and step outcome is logged under the run's
  run_id and checkpoint_id
- An explicit Tracer, when given, records a span per phase, step and
  replan round
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from planloop.config.settings import OrchestratorSettings
from planloop.core.exceptions import (
    AgentError,
    CheckpointCorruptedError,
    CheckpointError,
    CheckpointNotFoundError,
    InvalidStateError,
    MaxIterationsExceededError,
    PlanloopError,
    PlanningError,
    ReplanningError,
    StreamCancelledError,
)
from planloop.core.interfaces import Agent, AgentOutcome, CheckpointStoreProtocol
from planloop.core.types import (
    CompletedEvent,
    ContinueWithPlan,
    Continuation,
    FailedEvent,
    Finalize,
    InterruptedEvent,
    Plan,
    ProgressEvent,
    ResumeRequest,
    Step,
    StepResult,
    StepStatus,
    new_id,
)
from planloop.observability.logging import StructuredLogger, get_logger
from planloop.observability.tracing import Tracer
from planloop.planning.agents import (
    ExecutorInput,
    PlannerInput,
    ReplanInput,
)
from planloop.planning.checkpoints import CheckpointPolicy, InMemoryCheckpointStore
from planloop.runtime.context import RunContext
from planloop.runtime.stream import EventStream


class RunPhase(str, Enum):
    """
    Orchestrator state machine.

    Valid transitions:
    PLANNING → EXECUTING → REPLANNING → EXECUTING | COMPLETED
                   ↓
               SUSPENDED → (resume) → EXECUTING
    PLANNING | REPLANNING → FAILED
    """

    PLANNING = "planning"
    EXECUTING = "executing"
    REPLANNING = "replanning"
    SUSPENDED = "suspended"
    COMPLETED = "completed"
    FAILED = "failed"


class SuspendedStep(BaseModel):
    """The step a run is parked on and the executor's continuation."""

    step_id: str
    reason: str
    info: dict[str, Any] = Field(default_factory=dict)
    continuation: Continuation


class RunState(BaseModel):
    """Everything needed to pick a run back up. Persisted at suspension."""

    version: int = 1
    run_id: str = Field(default_factory=new_id)
    checkpoint_id: str
    request: str
    phase: RunPhase = RunPhase.PLANNING
    plan: Plan = Field(default_factory=Plan)
    results: list[StepResult] = Field(default_factory=list)
    iterations: int = 0
    suspended: SuspendedStep | None = None

    def dumps(self) -> bytes:
        return self.model_dump_json().encode("utf-8")

    @classmethod
    def loads(cls, data: bytes, checkpoint_id: str | None = None) -> "RunState":
        try:
            return cls.model_validate_json(data)
        except ValidationError as e:
            raise CheckpointCorruptedError(
                "Stored run state could not be decoded",
                context={"checkpoint_id": checkpoint_id, "errors": e.error_count()},
                cause=e,
            )


@dataclass
class OrchestratorConfig:
    """
    Configuration for PlanExecuteReplan.

    Built from OrchestratorSettings by the factory; the orchestrator never
    reads global settings itself.
    """

    max_iterations: int = 10
    abort_on_step_error: bool = False
    run_timeout_seconds: float | None = None

    @classmethod
    def from_settings(cls, settings: OrchestratorSettings) -> "OrchestratorConfig":
        return cls(
            max_iterations=settings.max_iterations,
            abort_on_step_error=settings.abort_on_step_error,
            run_timeout_seconds=settings.run_timeout_seconds,
        )


class PlanExecuteReplan:
    """
    The plan-execute-replan loop.

    Usage:
        orchestrator = PlanExecuteReplan(planner, executor, replanner)
        stream = await orchestrator.start("Plan a 3-day trip to Tokyo", "trip-1")
        async for event in stream:
            if event.type == "interrupted":
                ...
        stream = await orchestrator.resume("trip-1", "Window seat, please")

    Does NOT know about:
    - How agents reach their decisions
    - What tools a step uses
    - How or where checkpoints are stored
    """

    def __init__(
        self,
        planner: Agent[PlannerInput, Plan],
        executor: Agent[ExecutorInput, StepResult],
        replanner: Agent[ReplanInput, Any],
        store: CheckpointStoreProtocol | None = None,
        config: OrchestratorConfig | None = None,
        policy: CheckpointPolicy | None = None,
        logger: StructuredLogger | None = None,
    ):
        self._planner = planner
        self._executor = executor
        self._replanner = replanner
        self._store = store if store is not None else InMemoryCheckpointStore()
        self._config = config or OrchestratorConfig()
        self._policy = policy or CheckpointPolicy()
        self._logger = logger or get_logger("planloop.orchestrator")

    @property
    def store(self) -> CheckpointStoreProtocol:
        return self._store

    @property
    def config(self) -> OrchestratorConfig:
        return self._config

    @property
    def policy(self) -> CheckpointPolicy:
        return self._policy

    async def start(
        self,
        request: str,
        checkpoint_id: str | None = None,
        *,
        timeout: float | None = None,
        tracer: Tracer | None = None,
    ) -> EventStream:
        """
        Start a new run.

        When no checkpoint ID is given one is generated; it is the
        resume_token of any Interrupted event the run emits.
        """
        state = RunState(checkpoint_id=checkpoint_id or new_id(), request=request)
        self._logger.info(
            "Starting run",
            run_id=state.run_id,
            checkpoint_id=state.checkpoint_id,
        )
        return self._launch(state, resume=None, timeout=timeout, tracer=tracer)

    async def resume(
        self,
        checkpoint_id: str,
        supplementary_input: Any = None,
        *,
        timeout: float | None = None,
        tracer: Tracer | None = None,
    ) -> EventStream:
        """
        Continue a suspended run at the exact step it suspended on.

        Raises:
            CheckpointNotFoundError: nothing is stored under the ID
            CheckpointCorruptedError: the stored state cannot be decoded
            InvalidStateError: the stored run is not suspended
        """
        state = await self.inspect(checkpoint_id)
        if state is None:
            raise CheckpointNotFoundError(checkpoint_id)

        suspended = state.suspended
        if state.phase != RunPhase.SUSPENDED or suspended is None:
            raise InvalidStateError(
                f"Run under checkpoint {checkpoint_id} is not suspended",
                context={"checkpoint_id": checkpoint_id, "phase": state.phase.value},
            )
        if state.plan.get(suspended.step_id) is None:
            raise InvalidStateError(
                f"Suspended step {suspended.step_id} is not part of the plan",
                context={"checkpoint_id": checkpoint_id, "step_id": suspended.step_id},
            )

        self._logger.info(
            "Resuming run",
            run_id=state.run_id,
            checkpoint_id=checkpoint_id,
            step_id=suspended.step_id,
        )
        resume = ResumeRequest(continuation=suspended.continuation, value=supplementary_input)
        return self._launch(state, resume=resume, timeout=timeout, tracer=tracer)

    async def inspect(self, checkpoint_id: str) -> RunState | None:
        """Load the suspended run state stored under an ID, if any."""
        data = await self._store.load(checkpoint_id)
        self._logger.debug("Checkpoint loaded", checkpoint_id=checkpoint_id, found=data is not None)
        if data is None:
            return None
        return RunState.loads(data, checkpoint_id)

    async def discard(self, checkpoint_id: str) -> bool:
        """Drop a suspended run. True if one existed."""
        deleted = await self._store.delete(checkpoint_id)
        self._logger.info("Checkpoint discarded", checkpoint_id=checkpoint_id, deleted=deleted)
        return deleted

    def _launch(
        self,
        state: RunState,
        resume: ResumeRequest | None,
        timeout: float | None,
        tracer: Tracer | None,
    ) -> EventStream:
        if timeout is None:
            timeout = self._config.run_timeout_seconds

        context = RunContext(
            state.run_id,
            timeout=timeout,
            tracer=tracer,
            metadata={"checkpoint_id": state.checkpoint_id},
        )
        stream = EventStream(context)
        run = _Run(self, state, context, resume)
        stream.start(run.drive)
        return stream


class _Run:
    """State of one start/resume invocation, driven inside the producer task."""

    def __init__(
        self,
        orchestrator: PlanExecuteReplan,
        state: RunState,
        ctx: RunContext,
        resume: ResumeRequest | None,
    ):
        self._planner = orchestrator._planner
        self._executor = orchestrator._executor
        self._replanner = orchestrator._replanner
        self._store = orchestrator._store
        self._config = orchestrator._config
        self._policy = orchestrator._policy
        self._logger = orchestrator._logger
        self._state = state
        self._ctx = ctx
        self._resume = resume
        self._had_resume = resume is not None

    async def drive(self) -> None:
        state = self._state
        with StructuredLogger.context(run_id=state.run_id, checkpoint_id=state.checkpoint_id):
            try:
                async with self._ctx.span(
                    "run",
                    run_id=state.run_id,
                    checkpoint_id=state.checkpoint_id,
                    resumed=self._had_resume,
                ):
                    await self._loop()
            except StreamCancelledError:
                self._logger.info("Run cancelled", reason=self._ctx.cancel_reason, phase=state.phase.value)
                raise

    async def _loop(self) -> None:
        try:
            if self._resume is None:
                await self._plan()

            while True:
                if await self._execute():
                    return
                if await self._replan():
                    return
        except AgentError as e:
            await self._fail(e)

    def _transition(self, phase: RunPhase) -> None:
        self._logger.info(
            "Phase transition",
            from_phase=self._state.phase.value,
            to_phase=phase.value,
        )
        self._state.phase = phase

    # ------------------------------------------------------------------
    # Planning
    # ------------------------------------------------------------------

    async def _plan(self) -> None:
        self._transition(RunPhase.PLANNING)
        self._ctx.raise_if_cancelled()

        async with self._ctx.span("planning"):
            outcome = await self._invoke(
                self._planner,
                PlannerInput(request=self._state.request),
                PlanningError,
            )

        if outcome.suspended:
            raise PlanningError("Planner cannot suspend a run", agent_name=self._planner.name)
        if not isinstance(outcome.output, Plan):
            raise PlanningError("Planner did not return a Plan", agent_name=self._planner.name)

        # Fresh plans start with every step pending.
        self._state.plan = Plan().merge(outcome.output)
        self._logger.info("Plan created", steps=len(self._state.plan.steps))

        await self._ctx.emit(
            ProgressEvent(
                agent_name=self._planner.name,
                payload={
                    "phase": RunPhase.PLANNING.value,
                    "plan": self._state.plan.model_dump(mode="json"),
                },
            )
        )

    # ------------------------------------------------------------------
    # Executing
    # ------------------------------------------------------------------

    async def _execute(self) -> bool:
        """Run every unfinished step in order. True if the run suspended."""
        self._transition(RunPhase.EXECUTING)

        for step in self._state.plan.steps:
            if step.is_finished:
                continue

            self._ctx.raise_if_cancelled()

            resume = None
            if self._resume is not None and self._state.suspended is not None:
                if step.id == self._state.suspended.step_id:
                    resume, self._resume = self._resume, None

            if await self._execute_step(step, resume):
                return True

            if step.status == StepStatus.FAILED and self._config.abort_on_step_error:
                self._logger.warning("Aborting executing phase", step_id=step.id)
                break

        return False

    async def _execute_step(self, step: Step, resume: ResumeRequest | None) -> bool:
        step.status = StepStatus.RUNNING
        self._logger.info("Executing step", step_id=step.id, resuming=resume is not None)

        executor_input = ExecutorInput(
            request=self._state.request,
            step=step.model_copy(deep=True),
            results=list(self._state.results),
            resume=resume,
        )

        try:
            async with self._ctx.span("step", step_id=step.id):
                outcome = await self._executor.run(self._ctx, executor_input)
        except (StreamCancelledError, CheckpointError):
            raise
        except Exception as e:
            message = e.message if isinstance(e, PlanloopError) else str(e) or type(e).__name__
            self._logger.warning("Step failed", step_id=step.id, error_message=message)
            await self._record(step, StepResult(step_id=step.id, description=step.description, error=message))
            return False

        if outcome.suspended:
            await self._suspend(step, outcome)
            return True

        result = outcome.output
        if not isinstance(result, StepResult):
            result = StepResult(step_id=step.id, description=step.description, result=result)
        elif result.step_id != step.id:
            result = result.model_copy(update={"step_id": step.id})

        await self._record(step, result)
        return False

    async def _record(self, step: Step, result: StepResult) -> None:
        step.status = StepStatus.FAILED if result.is_error else StepStatus.DONE
        self._state.results.append(result)
        if self._state.suspended is not None and self._state.suspended.step_id == step.id:
            self._state.suspended = None

        self._logger.info("Step finished", step_id=step.id, status=step.status.value)
        await self._ctx.emit(
            ProgressEvent(
                agent_name=self._executor.name,
                payload={
                    "phase": RunPhase.EXECUTING.value,
                    "step_id": step.id,
                    "description": step.description,
                    "status": step.status.value,
                    "result": result.result,
                    "error": result.error,
                },
            )
        )

    async def _suspend(self, step: Step, outcome: AgentOutcome[StepResult]) -> None:
        suspension = outcome.suspension
        assert suspension is not None

        self._state.suspended = SuspendedStep(
            step_id=step.id,
            reason=suspension.reason,
            info=suspension.info,
            continuation=suspension.continuation,
        )
        self._transition(RunPhase.SUSPENDED)

        # A resumed run always owns its checkpoint ID.
        await self._store.save(
            self._state.checkpoint_id,
            self._state.dumps(),
            overwrite=self._had_resume or self._policy.overwrite,
        )
        self._logger.info("Checkpoint saved", step_id=step.id, reason=suspension.reason)

        await self._ctx.emit(
            InterruptedEvent(
                reason=suspension.reason,
                resume_token=self._state.checkpoint_id,
                step_id=step.id,
                info=suspension.info,
            )
        )

    # ------------------------------------------------------------------
    # Replanning
    # ------------------------------------------------------------------

    async def _replan(self) -> bool:
        """One replan round. True if the run reached a terminal state."""
        self._transition(RunPhase.REPLANNING)
        self._ctx.raise_if_cancelled()

        if self._state.iterations >= self._config.max_iterations:
            raise MaxIterationsExceededError(
                f"Max iterations ({self._config.max_iterations}) exceeded",
                agent_name=self._replanner.name,
                context={"iterations": self._state.iterations},
            )
        self._state.iterations += 1

        async with self._ctx.span("replanning", iteration=self._state.iterations):
            outcome = await self._invoke(
                self._replanner,
                ReplanInput(
                    request=self._state.request,
                    plan=self._state.plan.model_copy(deep=True),
                    results=list(self._state.results),
                    iteration=self._state.iterations,
                ),
                ReplanningError,
            )

        if outcome.suspended:
            raise ReplanningError("Replanner cannot suspend a run", agent_name=self._replanner.name)

        decision = outcome.output
        if isinstance(decision, Finalize):
            self._transition(RunPhase.COMPLETED)
            await self._finish()
            await self._ctx.emit(CompletedEvent(final_output=decision.summary))
            return True

        if isinstance(decision, ContinueWithPlan):
            self._state.plan = self._state.plan.merge(decision.plan)
            self._logger.info(
                "Plan revised",
                iteration=self._state.iterations,
                pending=len(self._state.plan.pending()),
            )
            await self._ctx.emit(
                ProgressEvent(
                    agent_name=self._replanner.name,
                    payload={
                        "phase": RunPhase.REPLANNING.value,
                        "iteration": self._state.iterations,
                        "plan": self._state.plan.model_dump(mode="json"),
                    },
                )
            )
            return False

        raise ReplanningError(
            f"Replanner returned an unknown decision: {type(decision).__name__}",
            agent_name=self._replanner.name,
        )

    # ------------------------------------------------------------------
    # Termination
    # ------------------------------------------------------------------

    async def _fail(self, error: AgentError) -> None:
        self._logger.error("Run failed", error=error, phase=self._state.phase.value)
        self._transition(RunPhase.FAILED)
        await self._finish()
        await self._ctx.emit(FailedEvent(error=error.to_dict()))

    async def _finish(self) -> None:
        """Apply the retention policy once a resumed run terminates."""
        if not (self._had_resume and self._policy.delete_on_finish):
            return
        await self._store.delete(self._state.checkpoint_id)
        self._logger.info("Checkpoint deleted", checkpoint_id=self._state.checkpoint_id)

    async def _invoke(
        self,
        agent: Agent[Any, Any],
        input: Any,
        error_type: type[AgentError],
    ) -> AgentOutcome[Any]:
        try:
            return await agent.run(self._ctx, input)
        except (StreamCancelledError, CheckpointError, AgentError):
            raise
        except Exception as e:
            message = e.message if isinstance(e, PlanloopError) else str(e) or type(e).__name__
            raise error_type(
                f"{agent.name} failed: {message}",
                agent_name=agent.name,
                cause=e,
            )
