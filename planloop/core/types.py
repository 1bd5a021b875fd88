"""
Core Types and Data Structures

Defines the data model shared by the agents, the orchestrator and the
checkpoint layer. Everything here is serializable so that run state can be
persisted at a suspension point and restored later.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Literal, Union
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return uuid4().hex


# =============================================================================
# PLAN
# =============================================================================

class StepStatus(str, Enum):
    """Lifecycle of a plan step."""

    PENDING = "pending"
    RUNNING = "running"
    DONE = "done"
    FAILED = "failed"


class Step(BaseModel):
    """
    One unit of work within a Plan.

    The ID is the step's identity; it survives Replanner revisions.
    """

    id: str = Field(default_factory=new_id)
    description: str
    status: StepStatus = StepStatus.PENDING
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def is_finished(self) -> bool:
        return self.status in {StepStatus.DONE, StepStatus.FAILED}


class Plan(BaseModel):
    """Ordered sequence of steps produced by the Planner."""

    steps: list[Step] = Field(default_factory=list)

    @classmethod
    def from_descriptions(cls, descriptions: list[str]) -> "Plan":
        return cls(steps=[Step(description=d) for d in descriptions])

    def get(self, step_id: str) -> Step | None:
        return next((s for s in self.steps if s.id == step_id), None)

    def pending(self) -> list[Step]:
        return [s for s in self.steps if s.status == StepStatus.PENDING]

    def finished(self) -> list[Step]:
        return [s for s in self.steps if s.is_finished]

    def merge(self, revised: "Plan") -> "Plan":
        """
        Replace the unfinished part of this plan with a revision.

        Done and Failed steps are kept in place, untouched. Revised steps
        reusing the ID of a finished step are dropped, as are repeats of an
        ID already taken; every other revised step is scheduled as Pending in
        the revision's order.
        """
        finished = [s.model_copy(deep=True) for s in self.finished()]
        seen = {s.id for s in finished}

        remaining = []
        for step in revised.steps:
            if step.id in seen:
                continue
            seen.add(step.id)
            remaining.append(step.model_copy(update={"status": StepStatus.PENDING}, deep=True))
        return Plan(steps=finished + remaining)


class StepResult(BaseModel):
    """Outcome of executing a single step. Immutable once produced."""

    model_config = ConfigDict(frozen=True)

    step_id: str
    description: str
    result: Any = None
    error: str | None = None
    created_at: datetime = Field(default_factory=_utcnow)

    @property
    def is_error(self) -> bool:
        return self.error is not None


# =============================================================================
# REPLANNING
# =============================================================================

class Finalize(BaseModel):
    """Replanner decision: the request is satisfied."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["finalize"] = "finalize"
    summary: str


class ContinueWithPlan(BaseModel):
    """Replanner decision: keep executing with a revised plan."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["continue"] = "continue"
    plan: Plan


ReplanDecision = Annotated[Union[Finalize, ContinueWithPlan], Field(discriminator="kind")]


# =============================================================================
# TOOLS & SUSPENSION
# =============================================================================

class ToolCall(BaseModel):
    """A tool invocation chosen for a step."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: f"call_{uuid4().hex[:8]}")
    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)


class Continuation(BaseModel):
    """
    Opaque data an agent needs to pick up where it suspended.

    The tag names the agent that owns the payload. The orchestrator stores
    it verbatim and hands it back unchanged on resume.
    """

    model_config = ConfigDict(frozen=True)

    tag: str
    payload: Any = None


class Suspension(BaseModel):
    """A request to pause the run until external input arrives."""

    model_config = ConfigDict(frozen=True)

    reason: str
    info: dict[str, Any] = Field(default_factory=dict)
    continuation: Continuation


class ResumeRequest(BaseModel):
    """Continuation plus the supplementary input supplied by the caller."""

    model_config = ConfigDict(frozen=True)

    continuation: Continuation
    value: Any = None


# =============================================================================
# EVENTS
# =============================================================================

class EventType(str, Enum):
    """Tags of the AgentEvent union."""

    PROGRESS = "progress"
    TOOL_CALL = "tool_call"
    TOOL_RESULT = "tool_result"
    INTERRUPTED = "interrupted"
    COMPLETED = "completed"
    FAILED = "failed"


class _EventBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    run_id: str | None = None
    timestamp: datetime = Field(default_factory=_utcnow)


class ProgressEvent(_EventBase):
    type: Literal["progress"] = "progress"
    agent_name: str
    payload: dict[str, Any] = Field(default_factory=dict)


class ToolCallEvent(_EventBase):
    type: Literal["tool_call"] = "tool_call"
    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)
    call_id: str | None = None


class ToolResultEvent(_EventBase):
    type: Literal["tool_result"] = "tool_result"
    name: str
    result: Any = None
    call_id: str | None = None


class InterruptedEvent(_EventBase):
    type: Literal["interrupted"] = "interrupted"
    reason: str
    resume_token: str
    step_id: str | None = None
    info: dict[str, Any] = Field(default_factory=dict)


class CompletedEvent(_EventBase):
    type: Literal["completed"] = "completed"
    final_output: Any = None


class FailedEvent(_EventBase):
    type: Literal["failed"] = "failed"
    error: dict[str, Any] = Field(default_factory=dict)


AgentEvent = Annotated[
    Union[
        ProgressEvent,
        ToolCallEvent,
        ToolResultEvent,
        InterruptedEvent,
        CompletedEvent,
        FailedEvent,
    ],
    Field(discriminator="type"),
]

agent_event_adapter: TypeAdapter[AgentEvent] = TypeAdapter(AgentEvent)

TERMINAL_EVENT_TYPES = frozenset(
    {EventType.INTERRUPTED.value, EventType.COMPLETED.value, EventType.FAILED.value}
)
