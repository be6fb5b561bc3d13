"""Completion client implementations.

Every provider is reached through the CompletionClient Protocol, so the
memory subsystem and the chat helpers never depend on a specific SDK.
Groq, OpenAI, Mistral and Ollama speak the chat-completions API; Anthropic
has its own messages API and gets a translating client.
"""

import json
import re
from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol

_DATA_URL_RE = re.compile(r"^data:(?P<mime>[^;]+);base64,(?P<data>.*)$", re.DOTALL)


@dataclass(frozen=True)
class TokenUsage:
    """Token counts reported by a completion service."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


@dataclass
class CompletionResult:
    """Result of a single completion call."""

    text: str
    usage: TokenUsage | None = None
    tool_calls: list[dict[str, Any]] = field(default_factory=list)
    tool_results: list[dict[str, Any]] = field(default_factory=list)
    finish_reason: str | None = None


class CompletionClient(Protocol):
    """Protocol for text generation.

    Send a message list, get back generated text and optional usage.
    """

    model: str
    provider: str
    last_usage: TokenUsage | None
    last_tool_calls: list[dict[str, Any]]

    async def complete(
        self,
        messages: Sequence[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
    ) -> CompletionResult:
        """Return the full reply for a message list."""
        ...

    def stream(
        self,
        messages: Sequence[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
    ) -> AsyncIterator[str]:
        """Yield text deltas.

        Usage and any requested tool calls are available on last_usage and
        last_tool_calls once the stream is exhausted.
        """
        ...


def _int(value: Any) -> int:
    return value if isinstance(value, int) else 0


def _parse_args(arguments: Any) -> dict[str, Any]:
    try:
        args = json.loads(arguments) if arguments else {}
    except (json.JSONDecodeError, TypeError):
        return {}
    return args if isinstance(args, dict) else {}


def _usage_from_chat(usage: Any) -> TokenUsage | None:
    if usage is None:
        return None
    prompt = _int(getattr(usage, "prompt_tokens", 0))
    completion = _int(getattr(usage, "completion_tokens", 0))
    total = _int(getattr(usage, "total_tokens", 0)) or prompt + completion
    return TokenUsage(prompt, completion, total)


class ChatCompletionsClient:
    """CompletionClient over any SDK exposing ``chat.completions.create``.

    Wraps ``groq.AsyncGroq`` or ``openai.AsyncOpenAI`` (the latter also
    pointed at Mistral or Ollama through ``base_url``).

    Example:
        from groq import AsyncGroq

        llm = ChatCompletionsClient(AsyncGroq(api_key="..."), model="llama-3.1-70b-versatile")
        result = await llm.complete([{"role": "user", "content": "Hi"}])
    """

    def __init__(
        self,
        client: Any,
        model: str,
        provider: str = "groq",
        stream_usage: bool = False,
    ) -> None:
        """Initialize the wrapper.

        Args:
            client: An async SDK client (AsyncGroq, AsyncOpenAI).
            model: Model name without the provider prefix.
            provider: Provider name, used in model strings.
            stream_usage: Ask the service to append usage to streams.
        """
        self._client = client
        self.model = model
        self.provider = provider
        self._stream_usage = stream_usage
        self.last_usage: TokenUsage | None = None
        self.last_tool_calls: list[dict[str, Any]] = []

    def _request(
        self,
        messages: Sequence[dict[str, Any]],
        tools: list[dict[str, Any]] | None,
    ) -> dict[str, Any]:
        kwargs: dict[str, Any] = {"model": self.model, "messages": list(messages)}
        if tools:
            kwargs["tools"] = tools
            kwargs["tool_choice"] = "auto"
        return kwargs

    async def complete(
        self,
        messages: Sequence[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
    ) -> CompletionResult:
        response = await self._client.chat.completions.create(**self._request(messages, tools))

        choice = response.choices[0]
        message = choice.message

        tool_calls = [
            {
                "id": tool_call.id,
                "name": tool_call.function.name,
                "args": _parse_args(tool_call.function.arguments),
            }
            for tool_call in getattr(message, "tool_calls", None) or []
        ]

        finish_reason = getattr(choice, "finish_reason", None)
        return CompletionResult(
            text=message.content or "",
            usage=_usage_from_chat(getattr(response, "usage", None)),
            tool_calls=tool_calls,
            finish_reason=finish_reason if isinstance(finish_reason, str) else None,
        )

    async def stream(
        self,
        messages: Sequence[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
    ) -> AsyncIterator[str]:
        self.last_usage = None
        self.last_tool_calls = []

        kwargs = self._request(messages, tools)
        kwargs["stream"] = True
        if self._stream_usage:
            kwargs["stream_options"] = {"include_usage": True}

        response = await self._client.chat.completions.create(**kwargs)

        # Tool calls arrive in fragments keyed by index
        pending: dict[int, dict[str, str]] = {}

        async for chunk in response:
            # Groq reports usage on x_groq of the final chunk
            usage = getattr(chunk, "usage", None) or getattr(
                getattr(chunk, "x_groq", None), "usage", None
            )
            if usage is not None:
                self.last_usage = _usage_from_chat(usage)

            if not chunk.choices:
                continue
            delta = chunk.choices[0].delta

            for fragment in getattr(delta, "tool_calls", None) or []:
                entry = pending.setdefault(fragment.index, {"id": "", "name": "", "arguments": ""})
                if fragment.id:
                    entry["id"] = fragment.id
                function = getattr(fragment, "function", None)
                if function is not None:
                    if function.name:
                        entry["name"] = function.name
                    if function.arguments:
                        entry["arguments"] += function.arguments

            if delta.content:
                yield delta.content

        self.last_tool_calls = [
            {
                "id": entry["id"] or f"call_{index}",
                "name": entry["name"],
                "args": _parse_args(entry["arguments"]),
            }
            for index, entry in sorted(pending.items())
        ]


class AnthropicCompletionClient:
    """CompletionClient over ``anthropic.AsyncAnthropic``.

    Translates chat-completions style messages into the messages API:
    system messages move to the ``system`` parameter, data-URL images and
    files become base64 source blocks, assistant tool calls become
    ``tool_use`` blocks and tool messages become ``tool_result`` blocks.
    """

    def __init__(self, client: Any, model: str, max_tokens: int = 4096) -> None:
        self._client = client
        self.model = model
        self.provider = "anthropic"
        self.max_tokens = max_tokens
        self.last_usage: TokenUsage | None = None
        self.last_tool_calls: list[dict[str, Any]] = []

    def _request(
        self,
        messages: Sequence[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
    ) -> dict[str, Any]:
        system_parts: list[str] = []
        converted: list[dict[str, Any]] = []

        for msg in messages:
            role = msg.get("role")
            content = msg.get("content", "")
            if role == "system":
                system_parts.append(content if isinstance(content, str) else str(content))
            elif role == "tool":
                converted.append(_anthropic_tool_result(msg))
            elif role == "assistant" and msg.get("tool_calls"):
                converted.append(_anthropic_tool_use(msg))
            else:
                converted.append({"role": role, "content": _anthropic_content(content)})

        kwargs: dict[str, Any] = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "messages": converted,
        }
        if system_parts:
            kwargs["system"] = "\n\n".join(system_parts)
        if tools:
            kwargs["tools"] = [
                {
                    "name": t["function"]["name"],
                    "description": t["function"].get("description", ""),
                    "input_schema": t["function"].get("parameters", {"type": "object"}),
                }
                for t in tools
            ]
        return kwargs

    @staticmethod
    def _tool_calls(response: Any) -> list[dict[str, Any]]:
        return [
            {"id": block.id, "name": block.name, "args": block.input}
            for block in response.content
            if block.type == "tool_use"
        ]

    async def complete(
        self,
        messages: Sequence[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
    ) -> CompletionResult:
        response = await self._client.messages.create(**self._request(messages, tools))

        text = "".join(block.text for block in response.content if block.type == "text")
        return CompletionResult(
            text=text,
            usage=self._usage(response),
            tool_calls=self._tool_calls(response),
            finish_reason=response.stop_reason,
        )

    async def stream(
        self,
        messages: Sequence[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
    ) -> AsyncIterator[str]:
        self.last_usage = None
        self.last_tool_calls = []
        async with self._client.messages.stream(**self._request(messages, tools)) as stream:
            async for text in stream.text_stream:
                yield text
            final = await stream.get_final_message()
        self.last_usage = self._usage(final)
        self.last_tool_calls = self._tool_calls(final)

    @staticmethod
    def _usage(response: Any) -> TokenUsage | None:
        usage = getattr(response, "usage", None)
        if usage is None:
            return None
        prompt = _int(getattr(usage, "input_tokens", 0))
        completion = _int(getattr(usage, "output_tokens", 0))
        return TokenUsage(prompt, completion, prompt + completion)


def _anthropic_tool_use(msg: dict[str, Any]) -> dict[str, Any]:
    blocks: list[dict[str, Any]] = []
    if msg.get("content"):
        blocks.append({"type": "text", "text": msg["content"]})
    for call in msg["tool_calls"]:
        blocks.append({
            "type": "tool_use",
            "id": call["id"],
            "name": call["function"]["name"],
            "input": _parse_args(call["function"].get("arguments")),
        })
    return {"role": "assistant", "content": blocks}


def _anthropic_tool_result(msg: dict[str, Any]) -> dict[str, Any]:
    content = msg.get("content", "")
    if not msg.get("tool_call_id"):
        return {"role": "user", "content": f"Tool result: {content}"}
    return {
        "role": "user",
        "content": [
            {"type": "tool_result", "tool_use_id": msg["tool_call_id"], "content": content},
        ],
    }


def _anthropic_content(content: Any) -> Any:
    """Convert chat-completions content parts into Anthropic content blocks."""
    if isinstance(content, str):
        return content

    blocks: list[dict[str, Any]] = []
    for part in content:
        kind = part.get("type")
        if kind == "text":
            blocks.append({"type": "text", "text": part["text"]})
        elif kind == "image_url":
            match = _DATA_URL_RE.match(part["image_url"]["url"])
            if match:
                blocks.append({
                    "type": "image",
                    "source": {
                        "type": "base64",
                        "media_type": match.group("mime"),
                        "data": match.group("data"),
                    },
                })
        elif kind == "file":
            match = _DATA_URL_RE.match(part["file"]["file_data"])
            if match:
                blocks.append({
                    "type": "document",
                    "source": {
                        "type": "base64",
                        "media_type": match.group("mime"),
                        "data": match.group("data"),
                    },
                })
    return blocks
