"""Tests for memory data models."""

import pytest

from specialist.memory import MemoryEvent, MemoryItem, MemoryOperation, MemoryOperationResult


class TestMemoryItem:
    """Tests for MemoryItem serialization."""

    def test_to_dict_omits_missing_owner(self):
        item = MemoryItem("m1", "Likes tea", "h", "2024-01-01", "2024-01-02")
        assert item.to_dict() == {
            "id": "m1",
            "memory": "Likes tea",
            "hash": "h",
            "created_at": "2024-01-01",
            "updated_at": "2024-01-02",
        }

    def test_from_dict_defaults(self):
        """hash and updated_at are optional in stored records."""
        item = MemoryItem.from_dict(
            {"id": "m1", "memory": "Likes tea", "created_at": "2024-01-01", "user_id": "s"}
        )
        assert item.hash == ""
        assert item.updated_at == "2024-01-01"
        assert item.user_id == "s"

    def test_from_dict_requires_memory(self):
        with pytest.raises(KeyError):
            MemoryItem.from_dict({"id": "m1", "created_at": "2024-01-01"})


class TestMemoryOperationResult:
    """Tests for operation counting."""

    def test_counts(self):
        result = MemoryOperationResult(results=[
            MemoryOperation("a", "x", MemoryEvent.ADD),
            MemoryOperation("b", "y", MemoryEvent.ADD),
            MemoryOperation("c", "z", MemoryEvent.NONE),
        ])
        assert result.counts() == {"ADD": 2, "NONE": 1}

    def test_empty(self):
        assert MemoryOperationResult().counts() == {}
