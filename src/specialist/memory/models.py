"""Data models for the memory system."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class MemoryEvent(Enum):
    """What a reconciled fact does to the store."""

    ADD = "ADD"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    NONE = "NONE"


@dataclass(frozen=True)
class MemoryItem:
    """A fact stored in memory.

    Attributes:
        id: Unique id, assigned once at ADD and never changed.
        memory: The fact text.
        hash: MD5 of ``memory``, refreshed on every write.
        created_at: ISO timestamp when created.
        updated_at: ISO timestamp when last updated.
        user_id: Session or user owning the fact, None for global facts.
    """

    id: str
    memory: str
    hash: str
    created_at: str
    updated_at: str
    user_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dict for the JSON file; user_id omitted when unset."""
        data = {
            "id": self.id,
            "memory": self.memory,
            "hash": self.hash,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }
        if self.user_id is not None:
            data["user_id"] = self.user_id
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MemoryItem":
        """Create from a dict read from the JSON file.

        Raises:
            KeyError: If a required field is missing.
        """
        return cls(
            id=str(data["id"]),
            memory=str(data["memory"]),
            hash=str(data.get("hash", "")),
            created_at=str(data["created_at"]),
            updated_at=str(data.get("updated_at", data["created_at"])),
            user_id=data.get("user_id"),
        )


@dataclass(frozen=True)
class MemoryOperation:
    """A single reconciled operation.

    Attributes:
        id: Real id of the affected fact (fresh for ADD).
        memory: Fact text after the operation.
        event: The operation kind.
        previous_memory: Text before an UPDATE, when the model reported it.
    """

    id: str
    memory: str
    event: MemoryEvent
    previous_memory: str | None = None


@dataclass
class MemoryOperationResult:
    """Operations produced for one batch of messages."""

    results: list[MemoryOperation] = field(default_factory=list)

    def counts(self) -> dict[str, int]:
        """Number of operations per event name."""
        counts: dict[str, int] = {}
        for op in self.results:
            counts[op.event.value] = counts.get(op.event.value, 0) + 1
        return counts
