"""Memory-aware conversation context.

Wraps a plain Context: messages go to the wrapped context, and user and
assistant turns are also fed to the Memory store under the current session
id. Like Context, every mutator returns a new MemoryContext; the Memory
store itself is shared between all snapshots.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from typing import Any

from ..ai.attachments import Attachment
from ..ai.context import Context, ContextUsage, Message, Prompt
from ..ai.llm_client import TokenUsage
from .models import MemoryItem
from .store import Memory

logger = logging.getLogger(__name__)

MEMORY_HEADER = "I know the following about the user:"
MEMORY_GUIDANCE = (
    "Use this information to provide more personalized responses, but don't "
    "explicitly reference that you have this memory unless directly relevant "
    "to the conversation."
)


def new_session_id() -> str:
    """Generate a session id."""
    return f"session-{uuid.uuid4().hex[:8]}"


def format_memories(system: str, memories: list[MemoryItem]) -> str:
    """Append a block of known facts to a system prompt."""
    lines = "\n".join(f"- {item.memory}" for item in memories)
    return f"{system}\n\n{MEMORY_HEADER}\n{lines}\n\n{MEMORY_GUIDANCE}"


@dataclass(frozen=True)
class MemoryContext:
    """A Context whose turns update a Memory store."""

    base: Context
    memory: Memory
    session_id: str = ""
    session_id_factory: Callable[[], str] = field(default=new_session_id, compare=False)

    def __post_init__(self) -> None:
        if not self.session_id:
            object.__setattr__(self, "session_id", self.session_id_factory())

    @classmethod
    def create(
        cls,
        prompt: Prompt,
        memory: Memory,
        session_id_factory: Callable[[], str] = new_session_id,
    ) -> MemoryContext:
        """Start a new conversation with a fresh session id."""
        return cls(Context(prompt), memory, session_id_factory=session_id_factory)

    @property
    def prompt(self) -> Prompt:
        return self.base.prompt

    @property
    def usage(self) -> ContextUsage:
        return self.base.usage

    @property
    def system_message(self) -> str:
        return self.base.system_message

    def get_messages(self) -> list[Message]:
        return self.base.get_messages()

    def _with_base(self, base: Context) -> MemoryContext:
        return replace(self, base=base)

    async def _remember(self, messages: list[Message]) -> None:
        """Feed messages to memory; failures never block the conversation."""
        try:
            await self.memory.add(messages, self.session_id)
        except Exception as e:
            logger.error("Memory update failed for session %s: %s", self.session_id, e)

    async def add_user_message(self, text: str) -> MemoryContext:
        """Append a user message and learn from the whole conversation."""
        new_context = self._with_base(self.base.add_user_message(text))
        await self._remember(new_context.get_messages())
        return new_context

    async def add_assistant_response(self, text: str) -> MemoryContext:
        """Append an assistant reply and learn from that reply alone."""
        new_context = self._with_base(self.base.add_assistant_response(text))
        await self._remember([{"role": "assistant", "content": text}])
        return new_context

    async def add_attachment(self, attachment: Attachment) -> MemoryContext:
        """Append an attachment; memory only records that a file was shared."""
        new_context = self._with_base(self.base.add_attachment(attachment))
        await self._remember(
            [{"role": "user", "content": f"Shared a file with me: {attachment.filename}"}]
        )
        return new_context

    def add_assistant_tool_calls(self, text: str, tool_calls: list[dict[str, Any]]) -> MemoryContext:
        return self._with_base(self.base.add_assistant_tool_calls(text, tool_calls))

    def add_tool_message(self, content: Any, tool_call_id: str | None = None) -> MemoryContext:
        return self._with_base(self.base.add_tool_message(content, tool_call_id))

    def update_system_message(self, text: str) -> MemoryContext:
        return self._with_base(self.base.update_system_message(text))

    def clear_messages(self) -> MemoryContext:
        return self._with_base(self.base.clear_messages())

    def with_usage(self, usage: TokenUsage | None) -> MemoryContext:
        return self._with_base(self.base.with_usage(usage))

    def search_memory(self, query: str, limit: int = 5) -> list[MemoryItem]:
        return self.memory.search(query, self.session_id, limit)

    def get_memories(self) -> list[MemoryItem]:
        """All facts stored for the current session."""
        return self.memory.get_all(self.session_id)

    def enrich_context_with_memories(self, query: str | None = None) -> MemoryContext:
        """Add known facts to the system message.

        The block is always built on the prompt's own system text, so
        enriching twice does not stack. With no facts, returns self.
        """
        if query:
            memories = self.memory.search(query, self.session_id)
        else:
            memories = self.memory.get_all(self.session_id)

        if not memories:
            return self

        return self.update_system_message(format_memories(self.prompt.system, memories))

    def reset_memory(self) -> MemoryContext:
        """Switch to a new session id; stored facts are kept."""
        return replace(self, session_id=self.session_id_factory())
