"""Command-line interface: complete, chat and usage subcommands."""

from __future__ import annotations

import argparse
import asyncio
import logging
import time
from datetime import datetime
from pathlib import Path

from .ai.attachments import UnsupportedAttachmentError, create_attachment
from .ai.chat import generate, generate_with_memory
from .ai.complete import complete
from .ai.context import Context, Prompt, make_prompt
from .ai.llm_client import CompletionClient
from .ai.models import ModelConfigError, client_from_model_string, model_string
from .ai.usage import UsageStats, UsageTracker
from .config import SpecialistConfig, load_config
from .logging import JSONLLogger, configure_logger
from .memory import Memory, MemoryContext, new_session_id

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = "You are a helpful assistant."

HELP = """
Commands:
  /exit, /quit, q  - Exit the chat
  /context         - Show the current conversation context
  /memories        - Show stored memories (memory mode)
  /reset           - Start a new memory session (memory mode)
  /help            - Show this help

To attach a file, type 'file:' followed by its path, e.g.:
  file:/path/to/document.pdf
"""

EXIT_COMMANDS = ("/exit", "/quit", "q")


class ChatCLI:
    """Interactive chat session, optionally backed by memory."""

    def __init__(
        self,
        client: CompletionClient,
        prompt: Prompt,
        memory: Memory | None = None,
        usage_tracker: UsageTracker | None = None,
        event_logger: JSONLLogger | None = None,
    ) -> None:
        self.client = client
        self.prompt = prompt
        self.memory = memory
        self.usage_tracker = usage_tracker
        self.event_logger = event_logger
        self.context: Context | MemoryContext
        if memory is not None:
            self.context = MemoryContext.create(prompt, memory, session_id_factory=new_session_id)
        else:
            self.context = Context(prompt)
        self._bind_session()

    @property
    def session_id(self) -> str | None:
        if isinstance(self.context, MemoryContext):
            return self.context.session_id
        return None

    def _bind_session(self) -> None:
        """Make the current session the default for logged events."""
        if self.event_logger is not None:
            self.event_logger.set_session_id(self.session_id)

    def _log(self, event: str, **fields) -> None:
        if self.event_logger is not None:
            self.event_logger.log(event, **fields)

    async def attach_file(self, path: str) -> None:
        """Attach a file before the first turn.

        Raises:
            FileNotFoundError: If the file does not exist.
            UnsupportedAttachmentError: If it is not an image or PDF.
        """
        attachment = create_attachment(path)
        if isinstance(self.context, MemoryContext):
            self.context = await self.context.add_attachment(attachment)
        else:
            self.context = self.context.add_attachment(attachment)

    def _format_context(self) -> str:
        lines = [f"Model: {self.prompt.model}"]
        if self.session_id:
            lines.append(f"Session: {self.session_id}")
        for msg in self.context.get_messages():
            content = msg["content"]
            if not isinstance(content, str):
                content = "[Content with attachments]"
            lines.append(f"[{msg['role']}] {content}")
        usage = self.context.usage
        lines.append(f"Usage: {usage.calls} call(s), {usage.total_tokens} tokens")
        return "\n".join(lines)

    def _format_memories(self) -> str:
        assert isinstance(self.context, MemoryContext)
        memories = self.context.get_memories()
        if not memories:
            return "No memories stored yet."

        lines = ["Stored memories:"]
        for i, item in enumerate(memories, start=1):
            try:
                created = datetime.fromisoformat(item.created_at).strftime("%Y-%m-%d %H:%M:%S")
            except ValueError:
                created = item.created_at
            lines.append(f"[{i}] {item.memory} ({created})")
        return "\n".join(lines)

    def _handle_command(self, command: str) -> bool:
        """Handle a special command. Returns True if should continue, False to exit."""
        cmd = command.strip()

        if cmd in EXIT_COMMANDS:
            return False

        if cmd == "/help":
            print(HELP)
        elif cmd == "/context":
            print(self._format_context())
        elif cmd == "/memories" and isinstance(self.context, MemoryContext):
            print(self._format_memories())
        elif cmd == "/reset" and isinstance(self.context, MemoryContext):
            old_session = self.context.session_id
            self.context = self.context.reset_memory()
            self._bind_session()
            self._log("session_reset", old_session_id=old_session)
            print(f"Memory reset. New session: {self.context.session_id}")
        else:
            print(f"Unknown command: {cmd} (try /help)")

        return True

    async def _process_message(self, message: str) -> None:
        """Generate and print a reply; errors are reported, not raised."""
        print("\nAssistant: ", end="", flush=True)

        def on_delta(delta: str) -> None:
            print(delta, end="", flush=True)

        start = time.monotonic()
        try:
            if isinstance(self.context, MemoryContext):
                self.context = await generate_with_memory(
                    self.context, message, self.client, self.usage_tracker, on_delta
                )
            else:
                self.context = await generate(
                    self.context, message, self.client, self.usage_tracker, on_delta
                )
            print("\n")
            self._log_llm_call(start)
        except Exception as e:
            print(f"\nError generating response: {e}")
            logger.error("Error generating response: %s", e)
            self._log("error", error=str(e))

    def _log_llm_call(self, start: float) -> None:
        if self.event_logger is None:
            return
        usage = self.client.last_usage
        self.event_logger.log_llm_call(
            model_string(self.client),
            "stream-with-memory" if isinstance(self.context, MemoryContext) else "stream",
            duration_ms=(time.monotonic() - start) * 1000,
            total_tokens=usage.total_tokens if usage else None,
        )

    def _is_command(self, text: str) -> bool:
        return text.startswith("/") or text in EXIT_COMMANDS

    async def run(self) -> None:
        """Run the interactive loop until the user exits."""
        mode = "memory-enabled" if self.memory is not None else "standard"
        print(f"Starting {mode} chat...")
        print(f"Model: {model_string(self.client)}")
        if self.memory is not None:
            print(f"Memory storage: {self.memory.storage_path}")
        print(HELP)

        self._log("session_start", model=model_string(self.client))

        while True:
            try:
                user_input = input(f"{self.prompt.name}> ").strip()
            except (KeyboardInterrupt, EOFError):
                print()
                break

            if not user_input:
                continue

            if self._is_command(user_input):
                if not self._handle_command(user_input):
                    break
                continue

            await self._process_message(user_input)

        self._log("session_end")
        print("Chat session ended.")


def _format_stats(stats: UsageStats) -> str:
    """Format usage statistics for display."""
    bold, cyan, yellow, reset = "\033[1m", "\033[36m", "\033[33m", "\033[0m"
    lines = [
        f"\n{bold}AI Usage Statistics{reset}\n",
        f"{cyan}Total Calls:{reset} {stats.total_calls}",
        f"{cyan}Total Tokens:{reset} {stats.total_tokens}",
        f"{cyan}Prompt Tokens:{reset} {stats.total_prompt_tokens}",
        f"{cyan}Completion Tokens:{reset} {stats.total_completion_tokens}",
        f"\n{cyan}Usage by Model:{reset}",
    ]
    for model, count in stats.calls_by_model.items():
        tokens = stats.tokens_by_model.get(model, 0)
        lines.append(f"  {yellow}{model}{reset}: {count} calls, {tokens} tokens")

    lines.append(f"\n{cyan}Usage by Operation:{reset}")
    for operation, count in stats.calls_by_operation.items():
        lines.append(f"  {yellow}{operation}{reset}: {count} calls")

    return "\n".join(lines) + "\n"


async def _run_complete(args: argparse.Namespace, config: SpecialistConfig) -> int:
    model = args.model or config.model
    client = client_from_model_string(model)
    tracker = UsageTracker(config.usage_path)
    event_logger = configure_logger(config.log_dir)

    context = Context(make_prompt(args.system, model))
    if args.file:
        context = context.add_attachment(create_attachment(args.file))
    context = context.add_user_message(" ".join(args.prompt))

    print(f"[Model] {model}")
    start = time.monotonic()
    result = await complete(context, client, tracker)
    event_logger.log_llm_call(
        model,
        "complete",
        duration_ms=(time.monotonic() - start) * 1000,
        total_tokens=result.usage.total_tokens if result.usage else None,
    )
    print(result.text)
    return 0


async def _run_chat(args: argparse.Namespace, config: SpecialistConfig) -> int:
    model = args.model or config.model
    client = client_from_model_string(model)
    tracker = UsageTracker(config.usage_path)
    event_logger = configure_logger(config.log_dir)

    system = " ".join(args.system) if args.system else DEFAULT_SYSTEM_PROMPT
    prompt = make_prompt(system, model, name=args.name)

    memory = None
    if args.memory:
        memory_path = Path(args.memory_path).expanduser() if args.memory_path else config.memory_path
        memory = Memory.from_model(
            memory_path,
            config.memory_model_for(model),
            usage_tracker=tracker,
            event_logger=event_logger,
        )

    chat = ChatCLI(client, prompt, memory=memory, usage_tracker=tracker, event_logger=event_logger)
    if args.file:
        await chat.attach_file(args.file)
    await chat.run()
    return 0


def cmd_complete(args: argparse.Namespace) -> int:
    """One-shot completion."""
    return asyncio.run(_run_complete(args, load_config()))


def cmd_chat(args: argparse.Namespace) -> int:
    """Interactive chat."""
    return asyncio.run(_run_chat(args, load_config()))


def cmd_usage(args: argparse.Namespace) -> int:
    """Show usage statistics."""
    config = load_config()
    print(_format_stats(UsageTracker(config.usage_path).get_stats()))
    return 0


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="specialist",
        description="Chat with language models, with optional long-term memory",
    )

    subparsers = parser.add_subparsers(dest="command", help="Sub-command help")

    # complete command
    complete_parser = subparsers.add_parser("complete", help="One-shot completion")
    complete_parser.add_argument("prompt", nargs="+", help="The prompt to send")
    complete_parser.add_argument("-m", "--model", help="Model as provider/model")
    complete_parser.add_argument("-f", "--file", help="File to attach (image or PDF)")
    complete_parser.add_argument(
        "-s", "--system",
        default=DEFAULT_SYSTEM_PROMPT,
        help="System prompt",
    )

    # chat command
    chat_parser = subparsers.add_parser("chat", help="Interactive chat")
    chat_parser.add_argument("system", nargs="*", help="System prompt for the chat")
    chat_parser.add_argument("-m", "--model", help="Model as provider/model")
    chat_parser.add_argument("-f", "--file", help="File to attach before chatting")
    chat_parser.add_argument("-n", "--name", default="default", help="Prompt name shown in the REPL")
    chat_parser.add_argument(
        "--memory",
        action="store_true",
        help="Remember facts about the user across turns",
    )
    chat_parser.add_argument("--memory-path", help="Directory for memories.json")

    # usage command
    subparsers.add_parser("usage", help="Show usage statistics")

    return parser


def run_cli(argv: list[str] | None = None) -> int:
    """Run the CLI with given arguments.

    Args:
        argv: Command-line arguments. Uses sys.argv[1:] if None.

    Returns:
        Exit code (0 for success, 1 for error).
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    commands = {
        "complete": cmd_complete,
        "chat": cmd_chat,
        "usage": cmd_usage,
    }

    handler = commands.get(args.command)
    if handler is None:
        parser.print_help()
        return 1

    try:
        return handler(args)
    except ModelConfigError as e:
        print(f"Error: {e}")
        return 1
    except (FileNotFoundError, UnsupportedAttachmentError) as e:
        print(f"Error: {e}")
        return 1
    except Exception as e:
        logger.exception("Unhandled error")
        print(f"Error: {e}")
        return 1
