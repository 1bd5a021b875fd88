"""
Agent Roles

Planner, Executor and Replanner share the Agent contract; the orchestrator
only ever sees `run(ctx, input) -> AgentOutcome`.

Design decisions:
- Role bases adapt a narrow method (plan/decide) to the uniform contract
- The tool-calling executor owns its continuation format end to end
- Completed tool calls are replayed from the continuation on resume,
  never invoked twice
- Tool failures become StepError; the orchestrator records them per step
"""

from abc import abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from planloop.core.exceptions import InvalidStateError, StepError, ToolError
from planloop.core.interfaces import Agent, AgentOutcome
from planloop.core.types import (
    Continuation,
    Plan,
    ReplanDecision,
    ResumeRequest,
    Step,
    StepResult,
    Suspension,
    ToolCall,
    ToolCallEvent,
    ToolResultEvent,
)
from planloop.observability.logging import get_logger
from planloop.tools.registry import ToolContext, ToolInterrupt, ToolRegistry, to_payload

if TYPE_CHECKING:
    from planloop.runtime.context import RunContext

logger = get_logger("planloop.agents")


# =============================================================================
# INPUTS
# =============================================================================

@dataclass
class PlannerInput:
    """The user request plus any prior context."""

    request: str
    context: dict[str, Any] = field(default_factory=dict)


@dataclass
class ExecutorInput:
    """
    One step to execute.

    `resume` is set only when the step was suspended and the caller has
    supplied the missing input.
    """

    request: str
    step: Step
    results: list[StepResult] = field(default_factory=list)
    resume: ResumeRequest | None = None


@dataclass
class ReplanInput:
    """Full history handed to the Replanner once per round."""

    request: str
    plan: Plan
    results: list[StepResult] = field(default_factory=list)
    iteration: int = 1


# =============================================================================
# ROLE BASES
# =============================================================================

class Planner(Agent[PlannerInput, Plan]):
    """Turns a request into a Plan."""

    name = "planner"

    async def run(self, ctx: "RunContext", input: PlannerInput) -> AgentOutcome[Plan]:
        return AgentOutcome.done(await self.plan(ctx, input))

    @abstractmethod
    async def plan(self, ctx: "RunContext", input: PlannerInput) -> Plan:
        ...


class Replanner(Agent[ReplanInput, ReplanDecision]):
    """Decides whether the request is satisfied or the plan needs revising."""

    name = "replanner"

    async def run(self, ctx: "RunContext", input: ReplanInput) -> AgentOutcome[ReplanDecision]:
        return AgentOutcome.done(await self.decide(ctx, input))

    @abstractmethod
    async def decide(self, ctx: "RunContext", input: ReplanInput) -> ReplanDecision:
        ...


class Executor(Agent[ExecutorInput, StepResult]):
    """Executes a single step; may suspend."""

    name = "executor"


# =============================================================================
# TOOL-CALLING EXECUTOR
# =============================================================================

@runtime_checkable
class ToolSelector(Protocol):
    """
    Chooses the tool calls that carry out a step.

    A model-backed implementation would prompt with the step and the tool
    schemas from ToolRegistry.get_schemas_for_llm().
    """

    async def select(
        self,
        step: Step,
        results: list[StepResult],
        ctx: "RunContext",
    ) -> list[ToolCall]:
        ...


class ToolCallingExecutor(Executor):
    """
    Executes a step as an ordered list of tool calls.

    The StepResult payload is a list of
    ``{"tool": name, "call_id": id, "result": json}`` entries, one per call.
    """

    name = "executor"
    continuation_tag = "tool_calling_executor"

    def __init__(self, registry: ToolRegistry, selector: ToolSelector):
        self._registry = registry
        self._selector = selector

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    async def run(self, ctx: "RunContext", input: ExecutorInput) -> AgentOutcome[StepResult]:
        step = input.step

        if input.resume is None:
            calls = await self._selector.select(step, input.results, ctx)
            completed: list[dict[str, Any]] = []
            interrupted_id: str | None = None
            interrupt_state: dict[str, Any] = {}
            resume_value: Any = None
        else:
            payload = self._unpack(input.resume, step)
            calls = [ToolCall.model_validate(c) for c in payload["calls"]]
            completed = list(payload["completed"])
            interrupted_id = payload["interrupted"]
            interrupt_state = dict(payload.get("state") or {})
            resume_value = input.resume.value
            logger.info(
                "Resuming step",
                step_id=step.id,
                call_id=interrupted_id,
                replayed=len(completed),
            )

        outputs: list[dict[str, Any]] = list(completed)

        for call in calls[len(completed):]:
            ctx.raise_if_cancelled()
            resuming = call.id == interrupted_id

            if not resuming:
                await ctx.emit(
                    ToolCallEvent(name=call.name, arguments=call.arguments, call_id=call.id)
                )

            tool_context = ToolContext(
                call_id=call.id,
                run=ctx,
                resuming=resuming,
                resume_value=resume_value if resuming else None,
                interrupt_state=interrupt_state if resuming else {},
            )

            try:
                async with ctx.span(f"tool.{call.name}", call_id=call.id):
                    result = await self._registry.invoke(call.name, call.arguments, tool_context)
            except ToolInterrupt as interrupt:
                return AgentOutcome.suspend(
                    self._suspension(step, calls, outputs, call, interrupt)
                )
            except ToolError as e:
                raise StepError(
                    f"Step {step.id} failed: {e.message}",
                    context={"step_id": step.id, "tool": call.name, "cause": e.to_dict()},
                    cause=e,
                )

            payload = to_payload(result)
            await ctx.emit(ToolResultEvent(name=call.name, result=payload, call_id=call.id))
            outputs.append({"tool": call.name, "call_id": call.id, "result": payload})

        return AgentOutcome.done(
            StepResult(step_id=step.id, description=step.description, result=outputs)
        )

    def _suspension(
        self,
        step: Step,
        calls: list[ToolCall],
        outputs: list[dict[str, Any]],
        call: ToolCall,
        interrupt: ToolInterrupt,
    ) -> Suspension:
        return Suspension(
            reason=interrupt.reason,
            info={**interrupt.info, "tool": call.name, "call_id": call.id},
            continuation=Continuation(
                tag=self.continuation_tag,
                payload={
                    "step_id": step.id,
                    "calls": [c.model_dump(mode="json") for c in calls],
                    "completed": outputs,
                    "interrupted": call.id,
                    "state": interrupt.state,
                },
            ),
        )

    def _unpack(self, resume: ResumeRequest, step: Step) -> dict[str, Any]:
        continuation = resume.continuation
        if continuation.tag != self.continuation_tag:
            raise InvalidStateError(
                f"Continuation {continuation.tag!r} does not belong to {self.continuation_tag!r}",
                context={"step_id": step.id},
            )

        payload = continuation.payload
        if not isinstance(payload, dict) or payload.get("step_id") != step.id:
            raise InvalidStateError(
                "Continuation does not match the suspended step",
                context={"step_id": step.id},
            )
        return payload
