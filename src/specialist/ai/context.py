"""Conversation context with value semantics.

A Context is an immutable snapshot: a prompt, the message list (system
message first) and usage counters. Every mutator returns a new Context and
leaves the receiver untouched.
"""

import json
from dataclasses import dataclass, field, replace
from typing import Any

from .attachments import Attachment, attachment_to_content
from .llm_client import TokenUsage
from .tools import ToolRegistry

Message = dict[str, Any]


@dataclass(frozen=True)
class Prompt:
    """A named system prompt bound to a model string.

    Attributes:
        name: Display name, used as the REPL prompt.
        system: System instructions.
        model: Model string (provider/model).
        tools: Optional tools the model may call.
    """

    name: str
    system: str
    model: str
    tools: ToolRegistry | None = None


def make_prompt(
    system: str,
    model: str,
    name: str = "default",
    tools: ToolRegistry | None = None,
) -> Prompt:
    """Create a Prompt for a system text and model string."""
    return Prompt(name=name, system=system, model=model, tools=tools)


@dataclass(frozen=True)
class ContextUsage:
    """Token counters accumulated over a conversation."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    calls: int = 0

    def add(self, usage: TokenUsage | None) -> "ContextUsage":
        """Return counters with one more call and its token usage added."""
        if usage is None:
            return replace(self, calls=self.calls + 1)
        return ContextUsage(
            prompt_tokens=self.prompt_tokens + usage.prompt_tokens,
            completion_tokens=self.completion_tokens + usage.completion_tokens,
            total_tokens=self.total_tokens + usage.total_tokens,
            calls=self.calls + 1,
        )


@dataclass(frozen=True)
class Context:
    """Immutable conversation state."""

    prompt: Prompt
    messages: tuple[Message, ...] = ()
    usage: ContextUsage = field(default_factory=ContextUsage)

    def __post_init__(self) -> None:
        if not self.messages:
            system = {"role": "system", "content": self.prompt.system}
            object.__setattr__(self, "messages", (system,))
        elif self.messages[0].get("role") != "system":
            raise ValueError("First message of a context must be the system message")

    @property
    def system_message(self) -> str:
        return self.messages[0]["content"]

    def get_messages(self) -> list[Message]:
        """Return a copy of the messages, safe to hand to a client."""
        return [dict(msg) for msg in self.messages]

    def _append(self, message: Message) -> "Context":
        return replace(self, messages=self.messages + (message,))

    def add_user_message(self, text: str) -> "Context":
        return self._append({"role": "user", "content": text})

    def add_rich_user_message(self, parts: list[dict[str, Any]]) -> "Context":
        """Append a user message made of several content parts."""
        return self._append({"role": "user", "content": list(parts)})

    def add_assistant_response(self, text: str) -> "Context":
        return self._append({"role": "assistant", "content": text})

    def add_assistant_tool_calls(self, text: str, tool_calls: list[dict[str, Any]]) -> "Context":
        """Append an assistant turn that requests tool calls."""
        return self._append({
            "role": "assistant",
            "content": text,
            "tool_calls": [
                {
                    "id": call["id"],
                    "type": "function",
                    "function": {"name": call["name"], "arguments": json.dumps(call["args"])},
                }
                for call in tool_calls
            ],
        })

    def add_tool_message(self, content: Any, tool_call_id: str | None = None) -> "Context":
        """Append a tool result; non-string content is stored as its repr."""
        message: Message = {
            "role": "tool",
            "content": content if isinstance(content, str) else repr(content),
        }
        if tool_call_id:
            message["tool_call_id"] = tool_call_id
        return self._append(message)

    def add_attachment(self, attachment: Attachment) -> "Context":
        """Append a user message carrying an image or PDF.

        Raises:
            UnsupportedAttachmentError: For other file types.
        """
        part = attachment_to_content(attachment)
        return self.add_rich_user_message([
            {"type": "text", "text": f"I'm sharing a file: {attachment.filename}"},
            part,
        ])

    def update_system_message(self, text: str) -> "Context":
        system = {"role": "system", "content": text}
        return replace(self, messages=(system,) + self.messages[1:])

    def clear_messages(self) -> "Context":
        """Keep only the system message."""
        return replace(self, messages=self.messages[:1])

    def with_usage(self, usage: TokenUsage | None) -> "Context":
        """Record one completion call and its token usage."""
        return replace(self, usage=self.usage.add(usage))
