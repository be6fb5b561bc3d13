"""One-shot completion over a context."""

import time
from typing import Any

from .context import Context
from .llm_client import CompletionClient, CompletionResult
from .models import model_string
from .tools import ToolResult, run_tool_calls
from .usage import UsageTracker


async def complete(
    context: Context,
    client: CompletionClient,
    usage_tracker: UsageTracker | None = None,
) -> CompletionResult:
    """Send the context's messages and return the full result.

    When the prompt has tools, the calls in the response are run once and
    their records stored in ``result.tool_results``. The model is not called
    again. Client errors propagate to the caller.
    """
    registry = context.prompt.tools
    tools = registry.get_tools_schema() if registry is not None else None

    start = time.monotonic()
    result = await client.complete(context.get_messages(), tools=tools or None)

    if usage_tracker is not None:
        usage_tracker.record(
            model_string(client),
            "complete",
            result.usage,
            duration_ms=(time.monotonic() - start) * 1000,
        )

    if registry is not None and result.tool_calls:
        result.tool_results = await run_tool_calls(registry, result.tool_calls)
    return result


def tool_calls_from_result(
    tool_name: str,
    result: CompletionResult,
) -> list[tuple[dict[str, Any], ToolResult]]:
    """(args, result) for every executed call to ``tool_name``."""
    return [
        (record["args"], record["result"])
        for record in result.tool_results
        if record["name"] == tool_name
    ]
