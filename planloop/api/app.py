"""
FastAPI Application Factory

Creates and configures the HTTP surface of the run-control boundary.

Design decisions:
- Factory pattern for testability
- Components are wired at creation and stored in app.state.components for DI
- Lifespan handles logging setup and teardown of streaming runs
- PlanloopError is translated to JSON error bodies in one place
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from planloop.api.middleware import TracingMiddleware, planloop_error_handler
from planloop.config.settings import Settings, get_settings
from planloop.core.exceptions import PlanloopError
from planloop.observability.logging import configure_logging, get_logger
from planloop.runtime.orchestrator import PlanExecuteReplan
from planloop.tools.registry import ToolRegistry
from planloop.tools.travel import register_travel_tools

logger = get_logger("planloop.api")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Application lifespan manager.

    On shutdown every run still streaming is cancelled; suspended runs stay
    in the checkpoint store.
    """
    components: dict[str, Any] = app.state.components
    settings: Settings = components["settings"]

    configure_logging(
        level=settings.observability.log_level,
        json_output=settings.observability.log_format == "json",
        log_file=settings.observability.log_file,
    )
    logger.info(
        "API starting",
        app=settings.app_name,
        version=settings.app_version,
        environment=settings.environment,
    )

    yield

    active = components.get("active_runs", {})
    for stream in list(active.values()):
        await stream.aclose()
    logger.info("API stopped", cancelled_runs=len(active))


def create_app(
    orchestrator: PlanExecuteReplan | None = None,
    settings: Settings | None = None,
    tool_registry: ToolRegistry | None = None,
    **kwargs: Any,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        orchestrator: Orchestrator serving the run routes; run routes
            answer 503 without one
        settings: Application settings; the cached settings when omitted
        tool_registry: Registry listed by the tool routes; the travel
            tools when omitted
        **kwargs: Additional FastAPI arguments
    """
    settings = settings or get_settings()

    if tool_registry is None:
        tool_registry = register_travel_tools(ToolRegistry())

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Plan-Execute-Replan agent orchestration",
        debug=settings.debug,
        lifespan=lifespan,
        **kwargs,
    )

    components: dict[str, Any] = {
        "settings": settings,
        "tool_registry": tool_registry,
        "active_runs": {},
    }
    if orchestrator is not None:
        components["orchestrator"] = orchestrator
    app.state.components = components

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(TracingMiddleware)
    app.add_exception_handler(PlanloopError, planloop_error_handler)

    from planloop.api.routes import checkpoints, health, runs, tools

    app.include_router(health.router, tags=["health"])
    app.include_router(runs.router, prefix=settings.api_prefix, tags=["runs"])
    app.include_router(checkpoints.router, prefix=settings.api_prefix, tags=["checkpoints"])
    app.include_router(tools.router, prefix=settings.api_prefix, tags=["tools"])

    return app
