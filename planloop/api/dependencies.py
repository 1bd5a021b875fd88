"""
FastAPI Dependencies

Dependency injection for API routes.

Components are wired by create_app and read from app.state.components.
"""

from typing import Any

from fastapi import Depends, HTTPException, Request

from planloop.config.settings import Settings
from planloop.runtime.orchestrator import PlanExecuteReplan
from planloop.tools.registry import ToolRegistry


async def get_components(request: Request) -> dict[str, Any]:
    """Get application components from state."""
    return getattr(request.app.state, "components", {})


async def get_orchestrator(
    components: dict[str, Any] = Depends(get_components),
) -> PlanExecuteReplan:
    """Get the plan-execute-replan orchestrator."""
    if "orchestrator" not in components:
        raise HTTPException(status_code=503, detail="Orchestrator not available")
    value = components["orchestrator"]
    assert isinstance(value, PlanExecuteReplan)
    return value


async def get_tool_registry(
    components: dict[str, Any] = Depends(get_components),
) -> ToolRegistry:
    """Get tool registry."""
    if "tool_registry" not in components:
        raise HTTPException(status_code=503, detail="Tool registry not available")
    value = components["tool_registry"]
    assert isinstance(value, ToolRegistry)
    return value


async def get_app_settings(
    components: dict[str, Any] = Depends(get_components),
) -> Settings:
    value = components.get("settings")
    if not isinstance(value, Settings):
        raise HTTPException(status_code=503, detail="Settings not available")
    return value
