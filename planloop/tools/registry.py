"""
Tool Registry

Schema-driven registration, lookup and invocation of tools.

Design decisions:
- Decorator-based registration for convenience
- Pydantic request/response models define the JSON schemas
- Arguments and responses are validated on every invocation
- Tools suspend by raising ToolInterrupt, which is never wrapped
- Domain failures travel inside the response (an `error` field)
"""

import asyncio
import inspect
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, NoReturn, get_type_hints

from pydantic import BaseModel, ValidationError

from planloop.core.exceptions import (
    ToolExecutionError,
    ToolNotFoundError,
    ToolValidationError,
)
from planloop.observability.logging import get_logger

if TYPE_CHECKING:
    from planloop.runtime.context import RunContext

logger = get_logger("planloop.tools")


class ToolCategory(str, Enum):
    """Categories for organizing tools."""

    SEARCH = "search"
    TRAVEL = "travel"
    HUMAN = "human"
    COMPUTE = "compute"
    CUSTOM = "custom"


class ToolInterrupt(Exception):
    """
    Raised by a tool that cannot finish without external input.

    The executor turns it into a run suspension. `state` is handed back to
    the tool through ToolContext.interrupt_state when the call resumes.
    """

    def __init__(
        self,
        reason: str,
        *,
        info: dict[str, Any] | None = None,
        state: dict[str, Any] | None = None,
    ):
        super().__init__(reason)
        self.reason = reason
        self.info = info or {}
        self.state = state or {}


@dataclass
class ToolContext:
    """Per-call context optionally received by a tool."""

    call_id: str = ""
    run: "RunContext | None" = None
    resuming: bool = False
    resume_value: Any = None
    interrupt_state: dict[str, Any] = field(default_factory=dict)

    def interrupt(
        self,
        reason: str,
        *,
        info: dict[str, Any] | None = None,
        state: dict[str, Any] | None = None,
    ) -> NoReturn:
        raise ToolInterrupt(reason, info=info, state=state)


@dataclass
class ToolDefinition:
    """
    Complete definition of a tool.

    Contains all metadata needed for:
    - a model-backed agent to choose and call the tool
    - the registry to validate and run it
    """

    name: str
    description: str
    function: Callable[..., Any]

    request_model: type[BaseModel]
    response_model: type[BaseModel] | None = None

    accepts_context: bool = False
    is_async: bool = True
    timeout_seconds: float = 30.0

    version: str = "1.0.0"
    category: ToolCategory = ToolCategory.CUSTOM
    tags: list[str] = field(default_factory=list)

    @property
    def parameters(self) -> dict[str, Any]:
        """JSON Schema for the arguments."""
        return self.request_model.model_json_schema()

    @property
    def response_schema(self) -> dict[str, Any] | None:
        if self.response_model is None:
            return None
        return self.response_model.model_json_schema()

    def to_openai_format(self) -> dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }

    def to_anthropic_format(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.parameters,
        }


def _build_definition(
    func: Callable[..., Any],
    name: str | None = None,
    description: str | None = None,
    **kwargs: Any,
) -> ToolDefinition:
    """
    Derive a ToolDefinition from a function's signature.

    The first parameter must be annotated with a pydantic model (the
    request). A parameter named `context` receives a ToolContext. A pydantic
    return annotation becomes the response model.
    """
    tool_name = name or func.__name__
    hints = get_type_hints(func)
    params = [
        p for p in inspect.signature(func).parameters.values()
        if p.name not in ("self", "cls")
    ]

    request_params = [p for p in params if p.name != "context"]
    if len(request_params) != 1:
        raise ValueError(f"Tool {tool_name} must take exactly one request parameter")

    request_model = hints.get(request_params[0].name)
    if not (inspect.isclass(request_model) and issubclass(request_model, BaseModel)):
        raise ValueError(f"Tool {tool_name} request parameter must be a pydantic model")

    response_model = hints.get("return")
    if not (inspect.isclass(response_model) and issubclass(response_model, BaseModel)):
        response_model = None

    return ToolDefinition(
        name=tool_name,
        description=description or inspect.getdoc(func) or f"Execute {tool_name}",
        function=func,
        request_model=request_model,
        response_model=response_model,
        accepts_context=any(p.name == "context" for p in params),
        is_async=inspect.iscoroutinefunction(func),
        **kwargs,
    )


def tool(
    name: str | None = None,
    description: str | None = None,
    category: ToolCategory = ToolCategory.CUSTOM,
    tags: list[str] | None = None,
    timeout: float = 30.0,
    version: str = "1.0.0",
) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """
    Decorator to mark a function as a tool.

    Usage:
        @tool(name="get_weather", description="Get weather for a city")
        async def get_weather(request: WeatherRequest) -> WeatherResponse:
            ...

        registry.register_decorated(get_weather)
    """

    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        func._tool_definition = _build_definition(  # type: ignore[attr-defined]
            func,
            name=name,
            description=description,
            category=category,
            tags=tags or [],
            timeout_seconds=timeout,
            version=version,
        )
        return func

    return decorator


class ToolRegistry:
    """
    Central registry for tools.

    Provides:
    - Tool registration and discovery
    - Schema retrieval for model-backed agents
    - Validated invocation by name
    """

    def __init__(self):
        self._tools: dict[str, ToolDefinition] = {}

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def register(self, definition: ToolDefinition) -> None:
        """Register a tool definition, replacing one with the same name."""
        self._tools[definition.name] = definition

    def register_function(
        self,
        func: Callable[..., Any],
        name: str | None = None,
        description: str | None = None,
        **kwargs: Any,
    ) -> ToolDefinition:
        """
        Register a function as a tool.

        Alternative to using the @tool decorator.
        """
        definition = _build_definition(func, name=name, description=description, **kwargs)
        self.register(definition)
        return definition

    def register_decorated(self, func: Callable[..., Any]) -> None:
        """Register a function that was decorated with @tool."""
        definition = getattr(func, "_tool_definition", None)
        if definition is None:
            raise ValueError(f"Function {func.__name__} is not decorated with @tool")
        self.register(definition)

    def get(self, name: str) -> ToolDefinition | None:
        return self._tools.get(name)

    def resolve(self, name: str) -> ToolDefinition:
        """Get a tool by name or raise ToolNotFoundError."""
        definition = self._tools.get(name)
        if definition is None:
            raise ToolNotFoundError(
                f"Tool not found: {name}",
                context={"tool": name, "available": sorted(self._tools)},
            )
        return definition

    def list_tools(
        self,
        category: ToolCategory | None = None,
        tags: list[str] | None = None,
    ) -> list[ToolDefinition]:
        tools = list(self._tools.values())

        if category:
            tools = [t for t in tools if t.category == category]

        if tags:
            tag_set = set(tags)
            tools = [t for t in tools if tag_set & set(t.tags)]

        return tools

    def get_schemas_for_llm(
        self,
        format: str = "openai",
        tool_names: list[str] | None = None,
    ) -> list[dict[str, Any]]:
        """
        Get tool schemas in LLM-specific format.

        Args:
            format: "openai" or "anthropic"
            tool_names: Optional list of tools to include
        """
        tools = list(self._tools.values())

        if tool_names:
            tools = [t for t in tools if t.name in tool_names]

        if format == "openai":
            return [t.to_openai_format() for t in tools]
        elif format == "anthropic":
            return [t.to_anthropic_format() for t in tools]
        else:
            raise ValueError(f"Unknown format: {format}")

    def unregister(self, name: str) -> bool:
        return self._tools.pop(name, None) is not None

    async def invoke(
        self,
        name: str,
        arguments: dict[str, Any],
        context: ToolContext | None = None,
    ) -> Any:
        """
        Validate arguments, run the tool and validate its response.

        Returns the response model instance (or the raw value for tools
        without a response model).

        Raises:
            ToolNotFoundError: no tool under that name
            ToolValidationError: arguments or response do not match the schema
            ToolExecutionError: the tool raised or timed out
            ToolInterrupt: the tool asked to suspend
        """
        definition = self.resolve(name)
        context = context or ToolContext()

        try:
            request = definition.request_model.model_validate(arguments)
        except ValidationError as e:
            raise ToolValidationError(
                f"Invalid arguments for tool {name}: {e.error_count()} error(s)",
                context={"tool": name, "errors": _errors(e)},
                cause=e,
            )

        call_args: tuple[Any, ...] = (request, context) if definition.accepts_context else (request,)

        try:
            if definition.is_async:
                result = await asyncio.wait_for(
                    definition.function(*call_args),
                    timeout=definition.timeout_seconds,
                )
            else:
                result = await asyncio.wait_for(
                    asyncio.to_thread(definition.function, *call_args),
                    timeout=definition.timeout_seconds,
                )
        except ToolInterrupt:
            logger.info("Tool interrupted", tool=name, call_id=context.call_id)
            raise
        except asyncio.TimeoutError as e:
            raise ToolExecutionError(
                f"Tool {name} timed out after {definition.timeout_seconds}s",
                tool_name=name,
                cause=e,
            )
        except Exception as e:
            raise ToolExecutionError(f"Tool {name} failed: {e}", tool_name=name, cause=e)

        if definition.response_model is None or isinstance(result, definition.response_model):
            return result

        try:
            return definition.response_model.model_validate(result)
        except ValidationError as e:
            raise ToolValidationError(
                f"Invalid response from tool {name}: {e.error_count()} error(s)",
                context={"tool": name, "errors": _errors(e)},
                cause=e,
            )


def _errors(error: ValidationError) -> list[dict[str, Any]]:
    return [
        {"loc": list(err["loc"]), "msg": err["msg"], "type": err["type"]}
        for err in error.errors()
    ]


def to_payload(result: Any) -> Any:
    """JSON-compatible form of a tool result."""
    if isinstance(result, BaseModel):
        return result.model_dump(mode="json")
    return result

