"""
Interface & Serving Layer

FastAPI endpoints for starting, resuming and inspecting runs over SSE.
"""

from planloop.api.app import create_app
from planloop.api.dependencies import get_orchestrator, get_tool_registry
from planloop.api.middleware import TracingMiddleware, status_code_for
from planloop.api.streaming import StreamingResponse, format_sse, sse_events

__all__ = [
    # App
    "create_app",
    # Dependencies
    "get_orchestrator",
    "get_tool_registry",
    # Middleware
    "TracingMiddleware",
    "status_code_for",
    # Streaming
    "StreamingResponse",
    "format_sse",
    "sse_events",
]
