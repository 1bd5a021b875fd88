"""
Runtime Module

PlanExecuteReplan is the single orchestration point for a run.
All plan, execute and replan work flows through here.
"""

from planloop.runtime.context import RunContext
from planloop.runtime.factory import OrchestratorBuilder, create_orchestrator, create_tracer
from planloop.runtime.orchestrator import (
    OrchestratorConfig,
    PlanExecuteReplan,
    RunPhase,
    RunState,
    SuspendedStep,
)
from planloop.runtime.stream import EventStream

__all__ = [
    # Orchestrator
    "OrchestratorConfig",
    "PlanExecuteReplan",
    "RunPhase",
    "RunState",
    "SuspendedStep",
    # Run plumbing
    "EventStream",
    "RunContext",
    # Factory
    "OrchestratorBuilder",
    "create_orchestrator",
    "create_tracer",
]
