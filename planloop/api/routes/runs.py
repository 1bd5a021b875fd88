"""
Run Routes

Start, resume and cancel plan-execute-replan runs. Runs stream their
events back as Server-Sent Events.
"""

from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from starlette.background import BackgroundTask
from starlette.responses import StreamingResponse as StarletteStreamingResponse

from planloop.api.dependencies import get_components, get_orchestrator
from planloop.api.streaming import StreamingResponse, sse_events
from planloop.runtime.orchestrator import PlanExecuteReplan
from planloop.runtime.stream import EventStream

router = APIRouter()


class StartRunRequest(BaseModel):
    """Request body for starting a run."""

    request: str = Field(..., min_length=1, max_length=100000)
    checkpoint_id: str | None = Field(
        default=None,
        description="ID to suspend under; generated when omitted",
    )
    timeout: float | None = Field(default=None, gt=0)


class ResumeRunRequest(BaseModel):
    """Request body for resuming a suspended run."""

    input: Any = Field(default=None, description="Answer handed to the suspended tool call")
    timeout: float | None = Field(default=None, gt=0)


def _active_runs(components: dict[str, Any]) -> dict[str, EventStream]:
    return components.setdefault("active_runs", {})


async def _release(stream: EventStream, active: dict[str, EventStream]) -> None:
    active.pop(stream.run_id, None)
    await stream.aclose()


def _stream_run(stream: EventStream, components: dict[str, Any]) -> StarletteStreamingResponse:
    """
    Register a started run and stream it back.

    The run is torn down by the response's background task, which also
    fires when the client goes away before the first event is sent.
    """
    active = _active_runs(components)
    active[stream.run_id] = stream
    return StreamingResponse(sse_events(stream), background=BackgroundTask(_release, stream, active))


@router.post("/runs")
async def start_run(
    body: StartRunRequest,
    orchestrator: PlanExecuteReplan = Depends(get_orchestrator),
    components: dict[str, Any] = Depends(get_components),
) -> StarletteStreamingResponse:
    """
    Start a run and stream its events.

    An `interrupted` event carries the resume_token to pass to
    /runs/{checkpoint_id}/resume.
    """
    stream = await orchestrator.start(body.request, body.checkpoint_id, timeout=body.timeout)
    return _stream_run(stream, components)


@router.post("/runs/{checkpoint_id}/resume")
async def resume_run(
    checkpoint_id: str,
    body: ResumeRunRequest | None = None,
    orchestrator: PlanExecuteReplan = Depends(get_orchestrator),
    components: dict[str, Any] = Depends(get_components),
) -> StarletteStreamingResponse:
    """
    Resume a suspended run with supplementary input.

    404 when no suspended run exists under the ID.
    """
    body = body or ResumeRunRequest()
    stream = await orchestrator.resume(checkpoint_id, body.input, timeout=body.timeout)
    return _stream_run(stream, components)


@router.post("/runs/{run_id}/cancel")
async def cancel_run(
    run_id: str,
    components: dict[str, Any] = Depends(get_components),
) -> dict[str, str]:
    """Cancel a run that is still streaming."""
    stream = _active_runs(components).get(run_id)
    if stream is None:
        raise HTTPException(status_code=404, detail="Run not found")

    stream.cancel("cancelled by client")
    return {"status": "cancelled", "run_id": run_id}
