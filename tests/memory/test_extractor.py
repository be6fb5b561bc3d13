"""Tests for FactExtractor."""

from unittest.mock import AsyncMock, Mock

import pytest

from specialist.ai.llm_client import CompletionResult, TokenUsage
from specialist.memory import FactExtractor
from specialist.memory.extractor import strip_code_fence


def make_llm(*texts: str) -> Mock:
    """Create a mock completion client returning the given texts."""
    llm = Mock()
    llm.model = "qwen2.5"
    llm.provider = "ollama"
    llm.complete = AsyncMock(
        side_effect=[CompletionResult(text=t, usage=TokenUsage(10, 5, 15)) for t in texts]
    )
    return llm


class TestStripCodeFence:
    """Tests for fenced-block handling."""

    def test_plain_text(self):
        assert strip_code_fence('  {"facts": []}\n') == '{"facts": []}'

    def test_json_fence(self):
        assert strip_code_fence('```json\n{"facts": []}\n```') == '{"facts": []}'

    def test_bare_fence(self):
        assert strip_code_fence('Here:\n```\n[1, 2]\n```\nDone') == "[1, 2]"


class TestExtractFacts:
    """Tests for extract_facts."""

    @pytest.mark.asyncio
    async def test_empty_messages_skip_llm(self):
        """Empty input returns no facts without calling the model."""
        llm = make_llm()
        extractor = FactExtractor(llm)

        assert await extractor.extract_facts([]) == []
        llm.complete.assert_not_called()

    @pytest.mark.asyncio
    async def test_valid_extraction(self):
        llm = make_llm('{"facts": ["Name is John", "Is a Software engineer"]}')
        extractor = FactExtractor(llm)

        facts = await extractor.extract_facts([
            {"role": "user", "content": "Hi, my name is John. I am a software engineer."},
        ])

        assert facts == ["Name is John", "Is a Software engineer"]

    @pytest.mark.asyncio
    async def test_prompt_shape(self):
        """A system prompt with today's date plus a user transcript is sent."""
        llm = make_llm('{"facts": []}')
        extractor = FactExtractor(llm)

        await extractor.extract_facts([
            {"role": "user", "content": "Hello"},
            {"role": "assistant", "content": "Hi there"},
        ])

        messages = llm.complete.call_args.args[0]
        assert [m["role"] for m in messages] == ["system", "user"]
        assert "{current_date}" not in messages[0]["content"]
        assert messages[1]["content"] == "user: Hello\n\nassistant: Hi there"

    @pytest.mark.asyncio
    async def test_fenced_response(self):
        llm = make_llm('```json\n{"facts": ["Likes tea"]}\n```')
        facts = await FactExtractor(llm).extract_facts([{"role": "user", "content": "I like tea"}])
        assert facts == ["Likes tea"]

    @pytest.mark.asyncio
    async def test_invalid_json_returns_empty(self):
        llm = make_llm("I could not find any facts.")
        facts = await FactExtractor(llm).extract_facts([{"role": "user", "content": "Hi"}])
        assert facts == []

    @pytest.mark.asyncio
    async def test_missing_facts_key_returns_empty(self):
        llm = make_llm('{"items": ["Likes tea"]}')
        facts = await FactExtractor(llm).extract_facts([{"role": "user", "content": "Hi"}])
        assert facts == []

    @pytest.mark.asyncio
    async def test_non_string_items_are_dropped(self):
        llm = make_llm('{"facts": ["Likes tea", 42, "", {"k": "v"}, "  Owns a cat "]}')
        facts = await FactExtractor(llm).extract_facts([{"role": "user", "content": "Hi"}])
        assert facts == ["Likes tea", "Owns a cat"]

    @pytest.mark.asyncio
    async def test_llm_error_returns_empty(self):
        """A failing client never propagates out of extraction."""
        llm = make_llm()
        llm.complete = AsyncMock(side_effect=RuntimeError("connection refused"))
        facts = await FactExtractor(llm).extract_facts([{"role": "user", "content": "Hi"}])
        assert facts == []

    @pytest.mark.asyncio
    async def test_usage_is_recorded(self):
        llm = make_llm('{"facts": []}')
        tracker = Mock()
        await FactExtractor(llm, usage_tracker=tracker).extract_facts(
            [{"role": "user", "content": "Hi"}]
        )

        args = tracker.record.call_args
        assert args.args[0] == "ollama/qwen2.5"
        assert args.args[1] == "memory-extract-facts"
        assert args.args[2] == TokenUsage(10, 5, 15)


class TestFormatConversation:
    """Tests for transcript formatting."""

    def test_attachment_and_unknown_content(self):
        extractor = FactExtractor(make_llm())
        text = extractor._format_conversation([
            {"role": "user", "content": [{"type": "text", "text": "see file"}]},
            {"role": "tool", "content": None},
        ])
        assert text == "user: [Content with attachments]\n\ntool: [Unknown content format]"
