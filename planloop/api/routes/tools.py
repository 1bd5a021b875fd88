"""
Tool Routes

Read-only view of the registered tools.
"""

from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from planloop.api.dependencies import get_tool_registry
from planloop.tools.registry import ToolRegistry

router = APIRouter()


class ToolInfo(BaseModel):
    """Tool information."""

    name: str
    description: str
    category: str
    tags: list[str]
    parameters: dict[str, Any]


@router.get("/tools", response_model=list[ToolInfo])
async def list_tools(
    registry: ToolRegistry = Depends(get_tool_registry),
) -> list[ToolInfo]:
    """List registered tools with their argument schemas."""
    return [
        ToolInfo(
            name=t.name,
            description=t.description,
            category=t.category.value,
            tags=t.tags,
            parameters=t.parameters,
        )
        for t in registry.list_tools()
    ]


@router.get("/tools/schemas")
async def get_tool_schemas(
    format: str = "openai",
    registry: ToolRegistry = Depends(get_tool_registry),
) -> list[dict[str, Any]]:
    """Tool schemas in a model provider's function-calling format."""
    try:
        return registry.get_schemas_for_llm(format=format)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
