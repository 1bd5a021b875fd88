"""
Streaming Response Utilities

Server-Sent Events over an orchestrator EventStream.
"""

import json
from collections.abc import AsyncIterator
from typing import Any

from starlette.responses import StreamingResponse as StarletteStreamingResponse

from planloop.core.exceptions import PlanloopError
from planloop.observability.logging import get_logger
from planloop.runtime.stream import EventStream

logger = get_logger("planloop.api.streaming")


def format_sse(
    data: Any,
    event: str | None = None,
    id: str | None = None,
    retry: int | None = None,
) -> str:
    """Format one event in the SSE wire format."""
    lines = []

    if event:
        lines.append(f"event: {event}")

    if id:
        lines.append(f"id: {id}")

    if retry:
        lines.append(f"retry: {retry}")

    if isinstance(data, (dict, list)):
        data = json.dumps(data)

    for line in str(data).split("\n"):
        lines.append(f"data: {line}")

    lines.append("")  # Empty line to end event

    return "\n".join(lines) + "\n"


async def sse_events(stream: EventStream) -> AsyncIterator[str]:
    """
    Pull events off a run and format them as SSE.

    Each AgentEvent goes out under its own type as the SSE event name. A
    planloop error raised by the run (a failed checkpoint save, say) is sent
    as an `error` event. The stream always ends with `done`. When the client
    disconnects the run is cancelled.
    """
    event_id = 0
    try:
        while True:
            try:
                event, has_more = await stream.next()
            except PlanloopError as e:
                logger.error("Run aborted", error=e, run_id=stream.run_id)
                yield format_sse(e.to_dict(), event="error")
                break

            if not has_more:
                break

            event_id += 1
            yield format_sse(event.model_dump(mode="json"), event=event.type, id=str(event_id))

        yield format_sse({"run_id": stream.run_id}, event="done")
    finally:
        await stream.aclose()


def StreamingResponse(
    content: AsyncIterator[str],
    media_type: str = "text/event-stream",
    **kwargs: Any,
) -> StarletteStreamingResponse:
    """
    Create a streaming response for SSE.
    """
    return StarletteStreamingResponse(
        content,
        media_type=media_type,
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",  # Disable nginx buffering
        },
        **kwargs,
    )
