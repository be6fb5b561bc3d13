"""Completion clients, conversation context and usage tracking."""

from .attachments import (
    Attachment,
    UnsupportedAttachmentError,
    attachment_to_content,
    create_attachment,
)
from .chat import generate, generate_with_memory
from .complete import complete, tool_calls_from_result
from .context import Context, ContextUsage, Prompt, make_prompt
from .llm_client import (
    AnthropicCompletionClient,
    ChatCompletionsClient,
    CompletionClient,
    CompletionResult,
    TokenUsage,
)
from .models import (
    PROVIDERS,
    MissingCredentialsError,
    ModelConfigError,
    ModelSpec,
    UnknownProviderError,
    client_from_model_string,
    model_string,
    parse_model_string,
)
from .tools import (
    FunctionTool,
    Tool,
    ToolRegistry,
    ToolResult,
    format_tool_result,
    run_tool_calls,
)
from .usage import UsageData, UsageStats, UsageTracker

__all__ = [
    "AnthropicCompletionClient",
    "Attachment",
    "ChatCompletionsClient",
    "CompletionClient",
    "CompletionResult",
    "Context",
    "ContextUsage",
    "FunctionTool",
    "MissingCredentialsError",
    "ModelConfigError",
    "ModelSpec",
    "PROVIDERS",
    "Prompt",
    "TokenUsage",
    "Tool",
    "ToolRegistry",
    "ToolResult",
    "UnknownProviderError",
    "UnsupportedAttachmentError",
    "UsageData",
    "UsageStats",
    "UsageTracker",
    "attachment_to_content",
    "client_from_model_string",
    "complete",
    "create_attachment",
    "format_tool_result",
    "generate",
    "generate_with_memory",
    "make_prompt",
    "model_string",
    "parse_model_string",
    "run_tool_calls",
    "tool_calls_from_result",
]
