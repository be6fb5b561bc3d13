"""End-to-end memory tests: extraction, reconciliation and storage together."""

import json
from pathlib import Path
from unittest.mock import AsyncMock, Mock

import pytest

from specialist.ai.chat import generate_with_memory
from specialist.ai.context import make_prompt
from specialist.ai.llm_client import CompletionResult
from specialist.memory import FactExtractor, Memory, MemoryContext, MemoryEvent, OperationReconciler


def make_llm(*texts: str) -> Mock:
    """Mock completion client answering calls in order."""
    llm = Mock()
    llm.model = "qwen2.5"
    llm.provider = "ollama"
    llm.complete = AsyncMock(side_effect=[CompletionResult(text=t) for t in texts])
    return llm


def make_memory(path: Path, llm: Mock) -> Memory:
    return Memory(path, extractor=FactExtractor(llm), reconciler=OperationReconciler(llm))


def facts(*items: str) -> str:
    return json.dumps({"facts": list(items)})


class TestMemoryPipeline:
    """Scenarios run through Memory.add."""

    @pytest.mark.asyncio
    async def test_two_adds_scoped_to_session(self, tmp_path: Path):
        llm = make_llm(
            facts("Name is John", "Is a software engineer"),
            json.dumps({"memory": [
                {"id": "0", "text": "Name is John", "event": "ADD"},
                {"id": "1", "text": "Is a software engineer", "event": "ADD"},
            ]}),
        )
        memory = make_memory(tmp_path, llm)

        result = await memory.add(
            [{"role": "user", "content": "Hi, my name is John. I am a software engineer."}],
            user_id="session-1",
        )

        assert result.counts() == {"ADD": 2}
        stored = memory.get_all("session-1")
        assert [item.memory for item in stored] == ["Name is John", "Is a software engineer"]
        assert len({item.id for item in stored}) == 2
        assert memory.get_all("session-2") == []

    @pytest.mark.asyncio
    async def test_update_replaces_text_in_place(self, tmp_path: Path):
        """A refined fact updates the stored one instead of duplicating it."""
        llm = make_llm(
            facts("Name is John"),
            json.dumps({"memory": [{"id": "0", "text": "Name is John", "event": "ADD"}]}),
            facts("Name is John Smith"),
            json.dumps({"memory": [
                {
                    "id": "0",
                    "text": "Name is John Smith",
                    "event": "UPDATE",
                    "old_memory": "Name is John",
                },
            ]}),
        )
        memory = make_memory(tmp_path, llm)

        await memory.add([{"role": "user", "content": "I'm John"}], user_id="s")
        original = memory.get_all("s")[0]

        result = await memory.add([{"role": "user", "content": "Full name is John Smith"}], user_id="s")

        assert [op.event for op in result.results] == [MemoryEvent.UPDATE]
        stored = memory.get_all("s")
        assert len(stored) == 1
        assert stored[0].id == original.id
        assert stored[0].memory == "Name is John Smith"
        assert stored[0].created_at == original.created_at

        reconcile_prompt = llm.complete.call_args_list[3].args[0][0]["content"]
        assert "Name is John" in reconcile_prompt
        assert original.id not in reconcile_prompt

    @pytest.mark.asyncio
    async def test_bad_reconciliation_still_adds(self, tmp_path: Path):
        llm = make_llm(facts("Likes tea"), "I am not JSON")
        memory = make_memory(tmp_path, llm)

        await memory.add([{"role": "user", "content": "I like tea"}], user_id="s")

        assert [item.memory for item in memory.get_all("s")] == ["Likes tea"]

    @pytest.mark.asyncio
    async def test_no_facts_skips_reconciliation(self, tmp_path: Path):
        llm = make_llm(facts())
        memory = make_memory(tmp_path, llm)

        result = await memory.add([{"role": "user", "content": "Hi"}], user_id="s")

        assert result.results == []
        assert llm.complete.await_count == 1


class TestChatWithMemory:
    """A full memory-enabled turn."""

    @pytest.mark.asyncio
    async def test_turn_learns_and_enriches(self, tmp_path: Path):
        memory_llm = make_llm(
            facts("Name is John"),
            json.dumps({"memory": [{"id": "0", "text": "Name is John", "event": "ADD"}]}),
            facts(),
        )
        memory = make_memory(tmp_path, memory_llm)
        context = MemoryContext.create(
            make_prompt("You are helpful.", "ollama/llama3.2"),
            memory,
            session_id_factory=lambda: "session-1",
        )

        seen: list[list[dict]] = []

        async def stream(messages, tools=None):
            seen.append(messages)
            for part in ("Hello ", "John!"):
                yield part

        chat_llm = Mock()
        chat_llm.model = "llama3.2"
        chat_llm.provider = "ollama"
        chat_llm.last_usage = None
        chat_llm.stream = stream

        new_context = await generate_with_memory(context, "My name is John", chat_llm)

        assert new_context.get_messages()[-1] == {"role": "assistant", "content": "Hello John!"}
        assert "- Name is John" in seen[0][0]["content"]
        assert [item.memory for item in memory.get_all("session-1")] == ["Name is John"]
        assert Memory(tmp_path).get_all("session-1")[0].memory == "Name is John"
