"""
Checkpoint Routes

Inspect and discard suspended runs.
"""

from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from planloop.api.dependencies import get_orchestrator
from planloop.runtime.orchestrator import PlanExecuteReplan

router = APIRouter()


class CheckpointResponse(BaseModel):
    """Suspended run information."""

    checkpoint_id: str
    suspended: bool
    run_id: str | None = None
    phase: str | None = None
    step_id: str | None = None
    reason: str | None = None
    info: dict[str, Any] = Field(default_factory=dict)
    completed_steps: int = 0
    total_steps: int = 0


@router.get("/checkpoints/{checkpoint_id}", response_model=CheckpointResponse)
async def get_checkpoint(
    checkpoint_id: str,
    orchestrator: PlanExecuteReplan = Depends(get_orchestrator),
) -> CheckpointResponse:
    """Whether a suspended run exists under the ID, and where it stopped."""
    state = await orchestrator.inspect(checkpoint_id)
    if state is None:
        return CheckpointResponse(checkpoint_id=checkpoint_id, suspended=False)

    suspended = state.suspended
    return CheckpointResponse(
        checkpoint_id=checkpoint_id,
        suspended=suspended is not None,
        run_id=state.run_id,
        phase=state.phase.value,
        step_id=suspended.step_id if suspended else None,
        reason=suspended.reason if suspended else None,
        info=suspended.info if suspended else {},
        completed_steps=len(state.plan.finished()),
        total_steps=len(state.plan.steps),
    )


@router.delete("/checkpoints/{checkpoint_id}")
async def delete_checkpoint(
    checkpoint_id: str,
    orchestrator: PlanExecuteReplan = Depends(get_orchestrator),
) -> dict[str, str]:
    """Discard a suspended run."""
    if not await orchestrator.discard(checkpoint_id):
        raise HTTPException(status_code=404, detail="Checkpoint not found")

    return {"status": "deleted", "checkpoint_id": checkpoint_id}
