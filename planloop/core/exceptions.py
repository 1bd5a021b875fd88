"""
Exception Hierarchy

Defines all exceptions used by the orchestration core.
Exceptions are organized by domain and include context for debugging.

Design decisions:
- All exceptions inherit from PlanloopError for easy catching
- Exceptions carry structured context, not just messages
- Error codes enable programmatic handling
"""

from typing import Any


class PlanloopError(Exception):
    """
    Base exception for all Planloop errors.

    Provides structured error information including:
    - Human-readable message
    - Machine-readable error code
    - Additional context for debugging
    """

    error_code: str = "PLANLOOP_ERROR"

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.error_code
        self.context = context or {}
        self.__cause__ = cause

    def to_dict(self) -> dict[str, Any]:
        """Serialize exception for events and API responses."""
        return {
            "error": self.code,
            "message": self.message,
            "context": self.context,
        }


# ============================================================
# Configuration Errors
# ============================================================

class ConfigurationError(PlanloopError):
    """Error in configuration or settings."""

    error_code = "CONFIGURATION_ERROR"


# ============================================================
# Agent Errors
# ============================================================

class AgentError(PlanloopError):
    """
    Planner or Replanner failure.

    Fatal to the run; surfaces as a terminal Failed event.
    """

    error_code = "AGENT_ERROR"

    def __init__(
        self,
        message: str,
        *,
        agent_name: str | None = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.agent_name = agent_name
        if agent_name:
            self.context.setdefault("agent", agent_name)


class PlanningError(AgentError):
    """The Planner could not produce a plan."""

    error_code = "PLANNING_ERROR"


class ReplanningError(AgentError):
    """The Replanner could not produce a decision."""

    error_code = "REPLANNING_ERROR"


class MaxIterationsExceededError(AgentError):
    """The run exceeded its replan-round limit."""

    error_code = "MAX_ITERATIONS_EXCEEDED"


class StepError(PlanloopError):
    """
    Executor or tool failure for a single step.

    Non-fatal: recorded on the StepResult and surfaced to the Replanner.
    """

    error_code = "STEP_ERROR"


# ============================================================
# Tool Errors
# ============================================================

class ToolError(PlanloopError):
    """Base error for tool-related issues."""

    error_code = "TOOL_ERROR"


class ToolNotFoundError(ToolError):
    """Requested tool does not exist."""

    error_code = "TOOL_NOT_FOUND"


class ToolValidationError(ToolError):
    """Tool arguments or response failed schema validation."""

    error_code = "TOOL_VALIDATION_ERROR"


class ToolExecutionError(ToolError):
    """Error during tool execution."""

    error_code = "TOOL_EXECUTION_ERROR"

    def __init__(
        self,
        message: str,
        *,
        tool_name: str,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.tool_name = tool_name
        self.context.setdefault("tool", tool_name)


# ============================================================
# Checkpoint Errors
# ============================================================

class CheckpointError(PlanloopError):
    """
    Persistence failure.

    Always fatal to the current operation and propagated to the caller.
    """

    error_code = "CHECKPOINT_ERROR"


class CheckpointNotFoundError(CheckpointError):
    """No suspended run exists under the checkpoint ID."""

    error_code = "CHECKPOINT_NOT_FOUND"

    def __init__(self, checkpoint_id: str, **kwargs: Any):
        super().__init__(
            f"No checkpoint found for ID: {checkpoint_id}",
            context={"checkpoint_id": checkpoint_id},
            **kwargs,
        )
        self.checkpoint_id = checkpoint_id


class CheckpointConflictError(CheckpointError):
    """Save collided with an active checkpoint and overwrite is forbidden."""

    error_code = "CHECKPOINT_CONFLICT"

    def __init__(self, checkpoint_id: str, **kwargs: Any):
        super().__init__(
            f"An active checkpoint already exists for ID: {checkpoint_id}",
            context={"checkpoint_id": checkpoint_id},
            **kwargs,
        )
        self.checkpoint_id = checkpoint_id


class CheckpointCorruptedError(CheckpointError):
    """Stored state could not be decoded."""

    error_code = "CHECKPOINT_CORRUPTED"


# ============================================================
# Run Control Errors
# ============================================================

class StreamCancelledError(PlanloopError):
    """
    The run's context was cancelled.

    Graceful stream termination, never reported as a Failed event.
    """

    error_code = "STREAM_CANCELLED"


class InvalidStateError(PlanloopError):
    """Operation is not valid for the run's current state."""

    error_code = "INVALID_STATE"
