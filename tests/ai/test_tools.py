"""Tests for tools and the tool registry."""

import pytest

from specialist.ai.tools import (
    FunctionTool,
    Tool,
    ToolRegistry,
    ToolResult,
    format_tool_result,
    run_tool_calls,
)


class EchoTool(Tool):
    """Simple echo tool for testing."""

    @property
    def name(self) -> str:
        return "echo"

    @property
    def description(self) -> str:
        return "Echoes the input message"

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "message": {"type": "string", "description": "Message to echo"},
            },
            "required": ["message"],
        }

    async def execute(self, message: str) -> ToolResult:
        return ToolResult(success=True, output=message)


@pytest.fixture
def registry() -> ToolRegistry:
    return ToolRegistry()


@pytest.fixture
def echo_tool() -> EchoTool:
    return EchoTool()


def test_register_tool(registry: ToolRegistry, echo_tool: EchoTool) -> None:
    registry.register(echo_tool)
    assert "echo" in registry.list_tools()
    assert registry.get("echo") is echo_tool


def test_register_duplicate_raises(registry: ToolRegistry, echo_tool: EchoTool) -> None:
    registry.register(echo_tool)
    with pytest.raises(ValueError, match="already registered"):
        registry.register(echo_tool)


def test_get_unknown_tool(registry: ToolRegistry) -> None:
    assert registry.get("unknown") is None


def test_get_tools_schema(registry: ToolRegistry, echo_tool: EchoTool) -> None:
    registry.register(echo_tool)
    schemas = registry.get_tools_schema()
    assert len(schemas) == 1
    assert schemas[0]["type"] == "function"
    assert schemas[0]["function"]["name"] == "echo"
    assert schemas[0]["function"]["parameters"]["required"] == ["message"]


@pytest.mark.asyncio
async def test_dispatch_success(registry: ToolRegistry, echo_tool: EchoTool) -> None:
    registry.register(echo_tool)
    result = await registry.dispatch("echo", {"message": "hello"})
    assert result.success is True
    assert result.output == "hello"


@pytest.mark.asyncio
async def test_dispatch_unknown_tool(registry: ToolRegistry) -> None:
    result = await registry.dispatch("unknown", {})
    assert result.success is False
    assert "Unknown tool" in result.error


@pytest.mark.asyncio
async def test_dispatch_missing_required_arg(registry: ToolRegistry, echo_tool: EchoTool) -> None:
    registry.register(echo_tool)
    result = await registry.dispatch("echo", {})
    assert result.success is False
    assert "Missing required argument: message" in result.error


@pytest.mark.asyncio
async def test_dispatch_exception_becomes_error() -> None:
    def explode():
        raise RuntimeError("kaboom")

    registry = ToolRegistry([FunctionTool("explode", "Fails", {"type": "object"}, explode)])

    result = await registry.dispatch("explode", {})

    assert result.success is False
    assert result.error == "Tool execution failed: kaboom"


class TestFunctionTool:
    """Tests for function-backed tools."""

    @pytest.mark.asyncio
    async def test_sync_value_is_serialized(self):
        tool = FunctionTool(
            "penguinNames", "Penguin names", {"type": "object"}, lambda: ["Pingu", "Pinga"]
        )

        result = await tool.execute()

        assert result.success is True
        assert result.output == '["Pingu", "Pinga"]'
        assert result.data == ["Pingu", "Pinga"]

    @pytest.mark.asyncio
    async def test_async_function(self):
        async def greet(name: str) -> str:
            return f"Hello {name}"

        tool = FunctionTool("greet", "Greets", {"type": "object", "required": ["name"]}, greet)

        result = await tool.execute(name="Pingu")

        assert result.output == "Hello Pingu"
        assert result.data == "Hello Pingu"

    @pytest.mark.asyncio
    async def test_tool_result_passes_through(self):
        failure = ToolResult(success=False, output="", error="no colony")
        tool = FunctionTool("colony", "Colony", {"type": "object"}, lambda: failure)

        assert await tool.execute() is failure


def test_format_tool_result() -> None:
    ok = ToolResult(success=True, output="42")
    failed = ToolResult(success=False, output="", error="boom")

    assert format_tool_result("calc", ok) == "[calc] Success:\n42"
    assert format_tool_result("calc", failed) == "[calc] Error: boom"


@pytest.mark.asyncio
async def test_run_tool_calls_keeps_order(registry: ToolRegistry, echo_tool: EchoTool) -> None:
    registry.register(echo_tool)

    records = await run_tool_calls(registry, [
        {"id": "c1", "name": "echo", "args": {"message": "one"}},
        {"id": "c2", "name": "missing", "args": None},
        {"id": "c3", "name": "echo", "args": {"message": "three"}},
    ])

    assert [r["id"] for r in records] == ["c1", "c2", "c3"]
    assert [r["result"].success for r in records] == [True, False, True]
    assert records[1]["args"] == {}
    assert records[2]["result"].output == "three"
