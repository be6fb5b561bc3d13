"""Reconciliation of new facts against stored memory using an LLM.

The model sees existing facts under small positional ids ("0", "1", ...)
and answers with one event per fact. Positional ids are mapped back to real
ids locally, so internal ids never reach the model.
"""

import json
import logging
import time
import uuid
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from ..ai.llm_client import CompletionClient
from ..ai.models import model_string
from ..ai.usage import UsageTracker
from .extractor import strip_code_fence
from .models import MemoryEvent, MemoryItem, MemoryOperation, MemoryOperationResult

logger = logging.getLogger(__name__)

MEMORY_OPERATION_PROMPT = """You are a smart memory manager which controls the memory of a system.
You can perform four operations: (1) add into the memory, (2) update the memory, (3) delete from the memory, and (4) no change.

Based on the above four operations, the memory will change.

Compare newly retrieved facts with the existing memory. For each new fact, decide whether to:
- ADD: Add it to the memory as a new element
- UPDATE: Update an existing memory element
- DELETE: Delete an existing memory element
- NONE: Make no change (if the fact is already present or irrelevant)

There are specific guidelines to select which operation to perform:

1. **Add**: If the retrieved facts contain new information not present in the memory, then you have to add it by generating a new ID in the id field.
    - **Example**:
        - Old Memory:
            [
                {
                    "id" : "0",
                    "text" : "User is a software engineer"
                }
            ]
        - Retrieved facts: ["Name is John"]
        - New Memory:
            {
                "memory" : [
                    {
                        "id" : "0",
                        "text" : "User is a software engineer",
                        "event" : "NONE"
                    },
                    {
                        "id" : "1",
                        "text" : "Name is John",
                        "event" : "ADD"
                    }
                ]
            }

2. **Update**: If the retrieved facts contain information that is already present in the memory but the information is totally different, then you have to update it.
    If the retrieved fact contains information that conveys the same thing as the elements present in the memory, then you have to keep the fact which has the most information.
    Example (a) -- if the memory contains "User likes to play cricket" and the retrieved fact is "Loves to play cricket with friends", then update the memory with the retrieved facts.
    Example (b) -- if the memory contains "Likes cheese pizza" and the retrieved fact is "Loves cheese pizza", then you do not need to update it because they convey the same information.
    If the direction is to update the memory, then you have to update it.
    Please keep in mind while updating you have to keep the same ID.
    Please note to return the IDs in the output from the input IDs only and do not generate any new ID.
    - **Example**:
        - Old Memory:
            [
                {
                    "id" : "0",
                    "text" : "I really like cheese pizza"
                },
                {
                    "id" : "1",
                    "text" : "User is a software engineer"
                },
                {
                    "id" : "2",
                    "text" : "User likes to play cricket"
                }
            ]
        - Retrieved facts: ["Loves chicken pizza", "Loves to play cricket with friends"]
        - New Memory:
            {
            "memory" : [
                    {
                        "id" : "0",
                        "text" : "Loves cheese and chicken pizza",
                        "event" : "UPDATE",
                        "old_memory" : "I really like cheese pizza"
                    },
                    {
                        "id" : "1",
                        "text" : "User is a software engineer",
                        "event" : "NONE"
                    },
                    {
                        "id" : "2",
                        "text" : "Loves to play cricket with friends",
                        "event" : "UPDATE",
                        "old_memory" : "User likes to play cricket"
                    }
                ]
            }

3. **Delete**: If the retrieved facts contain information that contradicts the information present in the memory, then you have to delete it. Or if the direction is to delete the memory, then you have to delete it.
    Please note to return the IDs in the output from the input IDs only and do not generate any new ID.
    - **Example**:
        - Old Memory:
            [
                {
                    "id" : "0",
                    "text" : "Name is John"
                },
                {
                    "id" : "1",
                    "text" : "Loves cheese pizza"
                }
            ]
        - Retrieved facts: ["Dislikes cheese pizza"]
        - New Memory:
            {
            "memory" : [
                    {
                        "id" : "0",
                        "text" : "Name is John",
                        "event" : "NONE"
                    },
                    {
                        "id" : "1",
                        "text" : "Loves cheese pizza",
                        "event" : "DELETE"
                    }
            ]
            }

4. **No Change**: If the retrieved facts contain information that is already present in the memory, then you do not need to make any changes.
    - **Example**:
        - Old Memory:
            [
                {
                    "id" : "0",
                    "text" : "Name is John"
                },
                {
                    "id" : "1",
                    "text" : "Loves cheese pizza"
                }
            ]
        - Retrieved facts: ["Name is John"]
        - New Memory:
            {
            "memory" : [
                    {
                        "id" : "0",
                        "text" : "Name is John",
                        "event" : "NONE"
                    },
                    {
                        "id" : "1",
                        "text" : "Loves cheese pizza",
                        "event" : "NONE"
                    }
                ]
            }

Below is the current content of my memory which I have collected till now. You have to update it in the following format only:

```
{retrieved_old_memory_dict}
```

The new retrieved facts are mentioned in the triple backticks. You have to analyze the new retrieved facts and determine whether these facts should be added, updated, or deleted in the memory.

```
{response_content}
```

Follow the instruction mentioned below:
- Do not return anything from the custom few shot prompts provided above.
- If the current memory is empty, then you have to add the new retrieved facts to the memory.
- You should return the updated memory in only JSON format as shown below. The memory key should be the same if no changes are made.
- If there is an addition, generate a new key and add the new memory corresponding to it.
- If there is a deletion, the memory key-value pair should be removed from the memory.
- If there is an update, the ID key should remain the same and only the value needs to be updated.

Do not return anything except the JSON format."""


def new_memory_id() -> str:
    """Generate a fresh fact id."""
    return str(uuid.uuid4())


@dataclass(frozen=True)
class ParsedOperations:
    """Successful parse of a reconciliation response."""

    operations: list[MemoryOperation]


@dataclass(frozen=True)
class ParseError:
    """Reconciliation response that does not have an accepted shape."""

    reason: str


ParseResult = ParsedOperations | ParseError


def parse_operations(
    text: str,
    id_map: dict[str, str],
    id_factory: Callable[[], str] = new_memory_id,
) -> ParseResult:
    """Validate a reconciliation response and map ids back.

    Accepted shapes are ``{"memory": [item, ...]}`` and a bare
    ``[item, ...]``. Each item must be an object with a string ``text``
    and an ``event`` among ADD, UPDATE, DELETE, NONE. ADD always receives
    a fresh id; other events translate their positional id through
    ``id_map`` and get a fresh id when it is unknown.

    Args:
        text: Raw model output, optionally inside a fenced code block.
        id_map: Positional id to real id.
        id_factory: Generator for fresh ids.

    Returns:
        ParsedOperations or ParseError.
    """
    try:
        data = json.loads(strip_code_fence(text))
    except json.JSONDecodeError as e:
        return ParseError(f"invalid JSON: {e}")

    if isinstance(data, dict) and "memory" in data:
        items = data["memory"]
    elif isinstance(data, list):
        items = data
    else:
        return ParseError("expected an object with 'memory' or a list")

    if not isinstance(items, list):
        return ParseError("'memory' is not a list")

    operations = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            return ParseError(f"item {index} is not an object")

        memory_text = item.get("text")
        if not isinstance(memory_text, str):
            return ParseError(f"item {index} has no string 'text'")

        try:
            event = MemoryEvent(str(item.get("event", "")).upper())
        except ValueError:
            return ParseError(f"item {index} has unknown event {item.get('event')!r}")

        previous = item.get("old_memory")
        positional_id = item.get("id")
        real_id = id_map.get(str(positional_id)) if positional_id is not None else None

        if event is MemoryEvent.ADD or real_id is None:
            real_id = id_factory()

        operations.append(
            MemoryOperation(
                id=real_id,
                memory=memory_text,
                event=event,
                previous_memory=previous if isinstance(previous, str) else None,
            )
        )

    return ParsedOperations(operations)


class OperationReconciler:
    """Decides ADD/UPDATE/DELETE/NONE for new facts using an LLM."""

    def __init__(
        self,
        llm: CompletionClient,
        usage_tracker: UsageTracker | None = None,
        id_factory: Callable[[], str] = new_memory_id,
    ) -> None:
        """Initialize the reconciler.

        Args:
            llm: Completion client used for reconciliation.
            usage_tracker: Optional tracker receiving one record per call.
            id_factory: Generator for ids of new facts.
        """
        self.llm = llm
        self.usage_tracker = usage_tracker
        self.id_factory = id_factory

    def _fallback(self, facts: Sequence[str]) -> MemoryOperationResult:
        """Treat every fact as new so nothing is lost."""
        return MemoryOperationResult(
            results=[
                MemoryOperation(id=self.id_factory(), memory=fact, event=MemoryEvent.ADD)
                for fact in facts
            ]
        )

    def build_prompt(self, facts: Sequence[str], existing: Sequence[MemoryItem]) -> tuple[str, dict[str, str]]:
        """Render the reconciliation prompt and the positional id map."""
        old_memory = [{"id": str(i), "text": item.memory} for i, item in enumerate(existing)]
        id_map = {str(i): item.id for i, item in enumerate(existing)}

        prompt = MEMORY_OPERATION_PROMPT.replace(
            "{retrieved_old_memory_dict}", json.dumps(old_memory, indent=2, ensure_ascii=False)
        ).replace(
            "{response_content}", json.dumps(list(facts), indent=2, ensure_ascii=False)
        )
        return prompt, id_map

    async def determine_operations(
        self,
        facts: Sequence[str],
        existing: Sequence[MemoryItem] = (),
    ) -> MemoryOperationResult:
        """Reconcile new facts with existing ones.

        Args:
            facts: Newly extracted fact strings.
            existing: Stored facts in the relevant scope.

        Returns:
            One operation per model decision; all-ADD on any failure.
        """
        if not facts:
            return MemoryOperationResult()

        prompt, id_map = self.build_prompt(facts, existing)

        try:
            start = time.monotonic()
            result = await self.llm.complete([{"role": "user", "content": prompt}])
            if self.usage_tracker is not None:
                self.usage_tracker.record(
                    model_string(self.llm),
                    "memory-determine-ops",
                    result.usage,
                    duration_ms=(time.monotonic() - start) * 1000,
                )
        except Exception as e:
            logger.warning("Operation determination failed, adding all facts: %s", e)
            return self._fallback(facts)

        parsed = parse_operations(result.text, id_map, self.id_factory)
        if isinstance(parsed, ParseError):
            logger.warning("Unusable reconciliation response (%s), adding all facts", parsed.reason)
            logger.debug("Response text: %s", result.text)
            return self._fallback(facts)

        return MemoryOperationResult(results=parsed.operations)
