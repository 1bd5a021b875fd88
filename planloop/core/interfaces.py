"""
Core Interfaces and Protocols

Defines the contracts between modules to prevent circular dependencies.

Design decisions:
- One Agent contract shared by Planner, Executor and Replanner
- Suspension is returned as data, errors are raised
- Checkpoint persistence only ever sees opaque bytes
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Generic, Protocol, TypeVar, runtime_checkable

from planloop.core.types import AgentEvent, Suspension

if TYPE_CHECKING:
    from planloop.runtime.context import RunContext


InputT = TypeVar("InputT")
OutputT = TypeVar("OutputT")


# =============================================================================
# AGENT CONTRACT
# =============================================================================

@dataclass(frozen=True)
class AgentOutcome(Generic[OutputT]):
    """
    What an agent hands back to the orchestrator.

    Exactly one of output or suspension is set.
    """

    output: OutputT | None = None
    suspension: Suspension | None = None

    def __post_init__(self) -> None:
        if (self.output is None) == (self.suspension is None):
            raise ValueError("AgentOutcome needs exactly one of output or suspension")

    @property
    def suspended(self) -> bool:
        return self.suspension is not None

    @classmethod
    def done(cls, output: OutputT) -> "AgentOutcome[OutputT]":
        return cls(output=output)

    @classmethod
    def suspend(cls, suspension: Suspension) -> "AgentOutcome[OutputT]":
        return cls(suspension=suspension)


class Agent(ABC, Generic[InputT, OutputT]):
    """
    Uniform invocation contract for Planner, Executor and Replanner.

    Implementations consume a typed input plus the run context and return
    an AgentOutcome. Failures are raised as exceptions.
    """

    name: str = "agent"

    @abstractmethod
    async def run(self, ctx: "RunContext", input: InputT) -> AgentOutcome[OutputT]:
        """Run the agent once."""
        ...


# =============================================================================
# EVENT SINK PROTOCOL
# =============================================================================

@runtime_checkable
class EventSinkProtocol(Protocol):
    """
    Receiver of progress events.

    Implemented by: EventStream
    Used by: RunContext, agents
    """

    async def emit(self, event: AgentEvent) -> None:
        """Deliver one event, waiting for buffer space if needed."""
        ...


# =============================================================================
# CHECKPOINT STORE PROTOCOL
# =============================================================================

@runtime_checkable
class CheckpointStoreProtocol(Protocol):
    """
    Keyed persistence of opaque run state.

    Implemented by: InMemoryCheckpointStore, FileCheckpointStore, RedisCheckpointStore
    Used by: PlanExecuteReplan
    """

    async def save(self, checkpoint_id: str, state: bytes, *, overwrite: bool = True) -> None:
        """Persist state under an ID."""
        ...

    async def load(self, checkpoint_id: str) -> bytes | None:
        """Return the stored state, or None when absent."""
        ...

    async def delete(self, checkpoint_id: str) -> bool:
        """Remove the state; True when something was deleted."""
        ...
