"""
Tools Module

Schema-validated tool registration and invocation, plus the travel tool set.
"""

from planloop.tools.registry import (
    ToolCategory,
    ToolContext,
    ToolDefinition,
    ToolInterrupt,
    ToolRegistry,
    to_payload,
    tool,
)
from planloop.tools.travel import TRAVEL_TOOLS, register_travel_tools

__all__ = [
    "ToolCategory",
    "ToolContext",
    "ToolDefinition",
    "ToolInterrupt",
    "ToolRegistry",
    "to_payload",
    "tool",
    "TRAVEL_TOOLS",
    "register_travel_tools",
]
