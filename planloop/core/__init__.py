"""
Core Module

Contains fundamental types, exceptions and interfaces used across all other
modules. The interfaces module defines the contracts for cross-module
communication, preventing circular dependencies.
"""

from planloop.core.exceptions import (
    AgentError,
    CheckpointConflictError,
    CheckpointCorruptedError,
    CheckpointError,
    CheckpointNotFoundError,
    ConfigurationError,
    InvalidStateError,
    MaxIterationsExceededError,
    PlanloopError,
    PlanningError,
    ReplanningError,
    StepError,
    StreamCancelledError,
    ToolError,
    ToolExecutionError,
    ToolNotFoundError,
    ToolValidationError,
)
from planloop.core.interfaces import (
    Agent,
    AgentOutcome,
    CheckpointStoreProtocol,
    EventSinkProtocol,
)
from planloop.core.types import (
    AgentEvent,
    CompletedEvent,
    Continuation,
    ContinueWithPlan,
    EventType,
    FailedEvent,
    Finalize,
    InterruptedEvent,
    Plan,
    ProgressEvent,
    ReplanDecision,
    ResumeRequest,
    Step,
    StepResult,
    StepStatus,
    Suspension,
    ToolCall,
    ToolCallEvent,
    ToolResultEvent,
    agent_event_adapter,
)

__all__ = [
    # Types
    "AgentEvent",
    "CompletedEvent",
    "Continuation",
    "ContinueWithPlan",
    "EventType",
    "FailedEvent",
    "Finalize",
    "InterruptedEvent",
    "Plan",
    "ProgressEvent",
    "ReplanDecision",
    "ResumeRequest",
    "Step",
    "StepResult",
    "StepStatus",
    "Suspension",
    "ToolCall",
    "ToolCallEvent",
    "ToolResultEvent",
    "agent_event_adapter",
    # Exceptions
    "AgentError",
    "CheckpointConflictError",
    "CheckpointCorruptedError",
    "CheckpointError",
    "CheckpointNotFoundError",
    "ConfigurationError",
    "InvalidStateError",
    "MaxIterationsExceededError",
    "PlanloopError",
    "PlanningError",
    "ReplanningError",
    "StepError",
    "StreamCancelledError",
    "ToolError",
    "ToolExecutionError",
    "ToolNotFoundError",
    "ToolValidationError",
    # Interfaces
    "Agent",
    "AgentOutcome",
    "CheckpointStoreProtocol",
    "EventSinkProtocol",
]
