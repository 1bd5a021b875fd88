"""
Planloop: Plan-Execute-Replan Agent Orchestration

A control loop that coordinates a Planner, an Executor and a Replanner to
satisfy a free-form request, designed for:
- Suspension: runs pause mid-step and persist a checkpoint
- Resumption: checkpoints resume with externally supplied input
- Streaming: progress is pulled from a bounded, cancellable event stream

Copyright (c) 2024 Planloop Contributors
"""

__version__ = "0.1.0"
__author__ = "Planloop Team"
