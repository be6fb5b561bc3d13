"""Tests for Context and Prompt."""

import pytest

from specialist.ai.attachments import Attachment, UnsupportedAttachmentError
from specialist.ai.context import Context, ContextUsage, make_prompt
from specialist.ai.llm_client import TokenUsage


@pytest.fixture
def context() -> Context:
    return Context(make_prompt("You are helpful.", "ollama/llama3.2"))


def test_new_context_has_system_message(context: Context):
    assert context.get_messages() == [{"role": "system", "content": "You are helpful."}]
    assert context.system_message == "You are helpful."


def test_first_message_must_be_system():
    with pytest.raises(ValueError):
        Context(make_prompt("sys", "ollama/x"), messages=({"role": "user", "content": "hi"},))


def test_mutators_return_new_contexts(context: Context):
    """The original snapshot is never modified."""
    updated = context.add_user_message("Hello").add_assistant_response("Hi!")

    assert len(context.get_messages()) == 1
    assert [m["role"] for m in updated.get_messages()] == ["system", "user", "assistant"]


def test_get_messages_returns_copies(context: Context):
    messages = context.get_messages()
    messages[0]["content"] = "changed"
    messages.append({"role": "user", "content": "x"})

    assert context.get_messages() == [{"role": "system", "content": "You are helpful."}]


def test_update_system_message_keeps_history(context: Context):
    updated = context.add_user_message("Hello").update_system_message("Be brief.")
    assert updated.system_message == "Be brief."
    assert updated.get_messages()[1]["content"] == "Hello"
    assert updated.prompt.system == "You are helpful."


def test_clear_messages_keeps_system(context: Context):
    cleared = context.add_user_message("a").add_user_message("b").clear_messages()
    assert cleared.get_messages() == context.get_messages()


def test_tool_message(context: Context):
    updated = context.add_tool_message(["a", 1], tool_call_id="call-1")
    assert updated.get_messages()[-1] == {
        "role": "tool",
        "content": "['a', 1]",
        "tool_call_id": "call-1",
    }


def test_assistant_tool_calls(context: Context):
    updated = context.add_assistant_tool_calls(
        "Checking.", [{"id": "call-1", "name": "penguinNames", "args": {"colony": "south"}}]
    )
    assert updated.get_messages()[-1] == {
        "role": "assistant",
        "content": "Checking.",
        "tool_calls": [{
            "id": "call-1",
            "type": "function",
            "function": {"name": "penguinNames", "arguments": '{"colony": "south"}'},
        }],
    }
    assert len(context.get_messages()) == 1


def test_image_attachment(context: Context):
    updated = context.add_attachment(Attachment("cat.png", "image/png", "aGk="))

    content = updated.get_messages()[-1]["content"]
    assert content[0] == {"type": "text", "text": "I'm sharing a file: cat.png"}
    assert content[1] == {"type": "image_url", "image_url": {"url": "data:image/png;base64,aGk="}}


def test_unsupported_attachment(context: Context):
    with pytest.raises(UnsupportedAttachmentError):
        context.add_attachment(Attachment("notes.txt", "text/plain", "aGk="))


def test_usage_accumulates(context: Context):
    updated = context.with_usage(TokenUsage(10, 5, 15)).with_usage(None).with_usage(TokenUsage(1, 1, 2))

    assert updated.usage == ContextUsage(prompt_tokens=11, completion_tokens=6, total_tokens=17, calls=3)
    assert context.usage == ContextUsage()
