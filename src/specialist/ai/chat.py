"""Streamed generation of assistant replies."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from .attachments import UnsupportedAttachmentError, create_attachment
from .context import Context, Message
from .llm_client import CompletionClient, TokenUsage
from .models import model_string
from .tools import format_tool_result, run_tool_calls
from .usage import UsageTracker

if TYPE_CHECKING:
    from ..memory.context import MemoryContext

logger = logging.getLogger(__name__)

FILE_PREFIX = "file:"
MAX_STEPS = 5


def parse_file_input(message: str) -> str | None:
    """Return the path of a ``file:<path>`` input, else None."""
    if message.startswith(FILE_PREFIX):
        return message[len(FILE_PREFIX):].strip()
    return None


async def _stream_reply(
    messages: list[Message],
    client: CompletionClient,
    tools: list[dict[str, Any]] | None,
    on_delta: Callable[[str], Any] | None,
) -> tuple[str, TokenUsage | None, float]:
    """Stream a reply. Returns (text, usage, duration_ms)."""
    start = time.monotonic()
    parts = []
    async for delta in client.stream(messages, tools=tools):
        parts.append(delta)
        if on_delta is not None:
            on_delta(delta)
    duration_ms = (time.monotonic() - start) * 1000
    return "".join(parts), getattr(client, "last_usage", None), duration_ms


def _attachment_or_notice(path: str) -> tuple[Any, str | None]:
    """Load an attachment, or explain in a user message why it failed."""
    try:
        return create_attachment(path), None
    except FileNotFoundError:
        logger.error("File not found: %s", path)
        return None, f"I tried to attach a file ({path}) but it wasn't found."
    except (OSError, UnsupportedAttachmentError) as e:
        logger.error("Error processing file %s: %s", path, e)
        return None, f"I tried to attach a file but there was an error: {e}"


async def _run_steps(
    context: Any,
    client: CompletionClient,
    usage_tracker: UsageTracker | None,
    on_delta: Callable[[str], Any] | None,
    max_steps: int,
    operation: str,
) -> tuple[Any, str]:
    """Stream replies, running requested tools between them.

    Each step streams one reply. When the model asks for tools and the
    prompt has a registry, the calls are run, their results appended as
    tool messages and the model is called again. The loop stops on a reply
    without tool calls or after ``max_steps`` replies.

    Returns:
        The context with tool turns appended, and the final reply text.
    """
    registry = context.prompt.tools
    schema = registry.get_tools_schema() if registry is not None else None
    text = ""
    for step in range(1, max_steps + 1):
        text, usage, duration_ms = await _stream_reply(
            context.get_messages(), client, schema or None, on_delta
        )
        context = context.with_usage(usage)
        if usage_tracker is not None:
            usage_tracker.record(model_string(client), operation, usage, duration_ms)

        if registry is None:
            break
        tool_calls = list(getattr(client, "last_tool_calls", None) or [])
        if not tool_calls:
            break
        if step == max_steps:
            logger.warning("Stopped after %d steps with %d tool calls pending", step, len(tool_calls))
            break

        context = context.add_assistant_tool_calls(text, tool_calls)
        for record in await run_tool_calls(registry, tool_calls):
            context = context.add_tool_message(
                format_tool_result(record["name"], record["result"]), record["id"]
            )
    return context, text


async def generate(
    context: Context,
    message: str,
    client: CompletionClient,
    usage_tracker: UsageTracker | None = None,
    on_delta: Callable[[str], Any] | None = None,
    max_steps: int = MAX_STEPS,
) -> Context:
    """Add a user turn and stream the assistant's reply.

    ``file:<path>`` input attaches the file (or a note that it could not be
    attached) instead of sending the text. When the prompt has tools, they
    are run between replies for at most ``max_steps`` replies. Stream errors
    propagate; the caller's context is never modified.

    Args:
        context: Conversation so far.
        message: User input.
        client: Completion client for the reply.
        usage_tracker: Optional tracker for the ``stream`` operation.
        on_delta: Called with each text delta as it arrives.
        max_steps: Most replies to request when the prompt has tools.

    Returns:
        A new context ending with the assistant reply.
    """
    path = parse_file_input(message)
    if path is None:
        new_context = context.add_user_message(message)
    else:
        attachment, notice = _attachment_or_notice(path)
        if attachment is not None:
            try:
                new_context = context.add_attachment(attachment)
            except UnsupportedAttachmentError as e:
                new_context = context.add_user_message(
                    f"I tried to attach a file but there was an error: {e}"
                )
        else:
            new_context = context.add_user_message(notice or "")

    new_context, text = await _run_steps(
        new_context, client, usage_tracker, on_delta, max_steps, "stream"
    )
    return new_context.add_assistant_response(text)


async def generate_with_memory(
    context: MemoryContext,
    message: str,
    client: CompletionClient,
    usage_tracker: UsageTracker | None = None,
    on_delta: Callable[[str], Any] | None = None,
    max_steps: int = MAX_STEPS,
) -> MemoryContext:
    """Like generate, for a MemoryContext.

    The user turn is learned from, and the system message is enriched with
    the session's facts before the reply is streamed. Tool turns are kept in
    the context but not learned from.
    """
    path = parse_file_input(message)
    if path is None:
        new_context = await context.add_user_message(message)
    else:
        attachment, notice = _attachment_or_notice(path)
        if attachment is not None:
            try:
                new_context = await context.add_attachment(attachment)
            except UnsupportedAttachmentError as e:
                new_context = await context.add_user_message(
                    f"I tried to attach a file but there was an error: {e}"
                )
        else:
            new_context = await context.add_user_message(notice or "")

    new_context = new_context.enrich_context_with_memories()

    new_context, text = await _run_steps(
        new_context, client, usage_tracker, on_delta, max_steps, "stream-with-memory"
    )
    return await new_context.add_assistant_response(text)
