"""Tools the model can call, and their dispatch."""

import inspect
import json
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)


@dataclass
class ToolResult:
    """Result from tool execution.

    Attributes:
        success: Whether the tool ran without error.
        output: Text sent back to the model.
        error: Error message when not successful.
        data: The tool's raw return value, for callers inspecting results.
    """

    success: bool
    output: str
    error: str | None = None
    data: Any = None


class Tool(ABC):
    """Base interface for all tools."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique tool name."""
        ...

    @property
    @abstractmethod
    def description(self) -> str:
        """Tool description for the model."""
        ...

    @property
    @abstractmethod
    def parameters(self) -> dict[str, Any]:
        """JSON Schema for tool parameters."""
        ...

    @abstractmethod
    async def execute(self, **kwargs: Any) -> ToolResult:
        """Execute the tool with given arguments."""
        ...

    def get_schema(self) -> dict[str, Any]:
        """Get tool schema for function calling."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }

    def validate_args(self, args: dict[str, Any]) -> tuple[bool, str | None]:
        """Check required arguments. Returns (valid, error_message)."""
        for field_name in self.parameters.get("required", []):
            if field_name not in args:
                return False, f"Missing required argument: {field_name}"
        return True, None


class FunctionTool(Tool):
    """A Tool backed by a plain function, sync or async.

    Example:
        names = FunctionTool(
            "penguinNames",
            "List the names of the penguins",
            {"type": "object", "properties": {}},
            lambda: ["Pingu", "Pinga"],
        )
    """

    def __init__(
        self,
        name: str,
        description: str,
        parameters: dict[str, Any],
        func: Callable[..., Any],
    ) -> None:
        self._name = name
        self._description = description
        self._parameters = parameters
        self._func = func

    @property
    def name(self) -> str:
        return self._name

    @property
    def description(self) -> str:
        return self._description

    @property
    def parameters(self) -> dict[str, Any]:
        return self._parameters

    async def execute(self, **kwargs: Any) -> ToolResult:
        value = self._func(**kwargs)
        if inspect.isawaitable(value):
            value = await value
        if isinstance(value, ToolResult):
            return value
        output = value if isinstance(value, str) else json.dumps(value, default=str)
        return ToolResult(success=True, output=output, data=value)


class ToolRegistry:
    """Registry for available tools."""

    def __init__(self, tools: Iterable[Tool] = ()) -> None:
        self._tools: dict[str, Tool] = {}
        for tool in tools:
            self.register(tool)

    def register(self, tool: Tool) -> None:
        """Register a tool."""
        if tool.name in self._tools:
            raise ValueError(f"Tool '{tool.name}' already registered")
        self._tools[tool.name] = tool

    def get(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def list_tools(self) -> list[str]:
        return list(self._tools.keys())

    def get_tools_schema(self) -> list[dict[str, Any]]:
        """Get schemas for all tools (for function calling)."""
        return [tool.get_schema() for tool in self._tools.values()]

    async def dispatch(self, tool_name: str, args: dict[str, Any]) -> ToolResult:
        """Dispatch a tool call by name. Failures come back as error results."""
        tool = self._tools.get(tool_name)
        if tool is None:
            return ToolResult(success=False, output="", error=f"Unknown tool: {tool_name}")

        valid, error = tool.validate_args(args)
        if not valid:
            return ToolResult(success=False, output="", error=error)

        try:
            return await tool.execute(**args)
        except Exception as e:
            logger.warning("Tool %s failed: %s", tool_name, e)
            return ToolResult(success=False, output="", error=f"Tool execution failed: {e}")


def format_tool_result(tool_name: str, result: ToolResult) -> str:
    """Format a tool result for the conversation."""
    if result.success:
        return f"[{tool_name}] Success:\n{result.output}"
    return f"[{tool_name}] Error: {result.error}"


async def run_tool_calls(
    registry: ToolRegistry,
    tool_calls: list[dict[str, Any]],
) -> list[dict[str, Any]]:
    """Run each requested call in order.

    Returns:
        One ``{"id", "name", "args", "result"}`` record per call, where
        ``result`` is the ToolResult.
    """
    records = []
    for call in tool_calls:
        args = call.get("args") or {}
        result = await registry.dispatch(call["name"], args)
        records.append({"id": call.get("id"), "name": call["name"], "args": args, "result": result})
    return records
