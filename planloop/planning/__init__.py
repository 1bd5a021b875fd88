"""
Planning Module

Agent roles for the plan-execute-replan loop and checkpoint persistence.
"""

from planloop.planning.agents import (
    Executor,
    ExecutorInput,
    Planner,
    PlannerInput,
    Replanner,
    ReplanInput,
    ToolCallingExecutor,
    ToolSelector,
)
from planloop.planning.checkpoints import (
    CheckpointPolicy,
    CheckpointStore,
    ConflictPolicy,
    FileCheckpointStore,
    InMemoryCheckpointStore,
    RedisCheckpointStore,
    build_checkpoint_store,
)

__all__ = [
    # Agents
    "Executor",
    "ExecutorInput",
    "Planner",
    "PlannerInput",
    "Replanner",
    "ReplanInput",
    "ToolCallingExecutor",
    "ToolSelector",
    # Checkpoints
    "CheckpointPolicy",
    "CheckpointStore",
    "ConflictPolicy",
    "FileCheckpointStore",
    "InMemoryCheckpointStore",
    "RedisCheckpointStore",
    "build_checkpoint_store",
]
