"""JSON-file storage for memory facts.

The whole store lives in memory as a dict keyed by fact id and is mirrored
to ``<storage_path>/memories.json``: read once at construction, rewritten
in full after every mutation. Writes go through a temp file and
``os.replace`` so the file is never left half-written.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import os
import tempfile
import weakref
from collections.abc import Callable, Sequence
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any

from .models import MemoryEvent, MemoryItem, MemoryOperationResult

if TYPE_CHECKING:
    from ..ai.usage import UsageTracker
    from ..logging import JSONLLogger
    from .extractor import FactExtractor
    from .reconciler import OperationReconciler

logger = logging.getLogger(__name__)

MEMORY_FILENAME = "memories.json"


def content_hash(text: str) -> str:
    """MD5 fingerprint of a fact's text."""
    return hashlib.md5(text.encode("utf-8")).hexdigest()


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Memory:
    """Persistent fact store with LLM-driven updates.

    ``add`` runs extraction and reconciliation, then applies the resulting
    operations. Reads (``get``, ``get_all``, ``search``) never touch the
    disk.
    """

    def __init__(
        self,
        storage_path: Path,
        extractor: FactExtractor | None = None,
        reconciler: OperationReconciler | None = None,
        clock: Callable[[], datetime] = _utc_now,
        event_logger: JSONLLogger | None = None,
    ) -> None:
        """Initialize the store and load existing facts.

        Args:
            storage_path: Directory holding memories.json. Created on first write.
            extractor: FactExtractor used by ``add``.
            reconciler: OperationReconciler used by ``add``.
            clock: Source of timestamps.
            event_logger: Optional JSONL logger receiving one event per ``add``.
        """
        self.storage_path = Path(storage_path)
        self.extractor = extractor
        self.reconciler = reconciler
        self.clock = clock
        self.event_logger = event_logger
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()
        self._generation = 0
        self.memories: dict[str, MemoryItem] = self._load()

    @classmethod
    def from_model(
        cls,
        storage_path: Path,
        model: str,
        usage_tracker: UsageTracker | None = None,
        event_logger: JSONLLogger | None = None,
    ) -> Memory:
        """Build a store whose extractor and reconciler share one model.

        Raises:
            ModelConfigError: If a client cannot be built for ``model``.
        """
        from ..ai.models import client_from_model_string
        from .extractor import FactExtractor
        from .reconciler import OperationReconciler

        llm = client_from_model_string(model)
        return cls(
            storage_path,
            extractor=FactExtractor(llm, usage_tracker=usage_tracker),
            reconciler=OperationReconciler(llm, usage_tracker=usage_tracker),
            event_logger=event_logger,
        )

    @property
    def file_path(self) -> Path:
        return self.storage_path / MEMORY_FILENAME

    def __len__(self) -> int:
        return len(self.memories)

    def _load(self) -> dict[str, MemoryItem]:
        """Read the JSON file; missing or corrupt files give an empty store."""
        if not self.file_path.exists():
            return {}

        try:
            with open(self.file_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError, UnicodeDecodeError) as e:
            logger.error("Error loading memories from %s: %s", self.file_path, e)
            return {}

        if not isinstance(data, list):
            logger.error("Error loading memories from %s: not a JSON array", self.file_path)
            return {}

        memories: dict[str, MemoryItem] = {}
        for raw in data:
            try:
                item = MemoryItem.from_dict(raw)
            except (KeyError, TypeError, AttributeError) as e:
                logger.warning("Skipping invalid memory record %r: %s", raw, e)
                continue
            memories[item.id] = item
        return memories

    def _save(self) -> None:
        """Rewrite the JSON file. Failures are logged and swallowed."""
        records: list[dict[str, Any]] = [item.to_dict() for item in self.memories.values()]
        try:
            self.storage_path.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=self.storage_path, suffix=".json")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(records, f, indent=2, ensure_ascii=False)
                os.replace(tmp_path, self.file_path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        except OSError as e:
            logger.error("Error saving memories to %s: %s", self.file_path, e)

    def _get_lock(self, user_id: str | None) -> asyncio.Lock:
        # Entries live only while some add() holds or awaits the lock
        key = user_id or ""
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    async def add(
        self,
        messages: Sequence[dict[str, Any]],
        user_id: str | None = None,
    ) -> MemoryOperationResult:
        """Extract facts from messages and reconcile them into the store.

        Calls for the same ``user_id`` run one at a time. If ``reset`` runs
        while a call is extracting or reconciling, that call's operations
        are discarded.

        Args:
            messages: Conversation messages to learn from.
            user_id: Owner scope for new facts and for reconciliation.

        Returns:
            The reconciler's result, unchanged (empty on failure).
        """
        if self.extractor is None or self.reconciler is None:
            logger.warning("Memory.add called without an extractor and reconciler")
            return MemoryOperationResult()

        async with self._get_lock(user_id):
            generation = self._generation
            try:
                facts = await self.extractor.extract_facts(messages)
                existing = self.get_all(user_id)
                result = await self.reconciler.determine_operations(facts, existing)
                if generation != self._generation:
                    logger.info("Store was reset during add; discarding %d operations", len(result.results))
                    return MemoryOperationResult()
                self.apply_operations(result, user_id)
            except Exception as e:
                logger.error("Error adding memories: %s", e)
                return MemoryOperationResult()

        if self.event_logger is not None and result.results:
            self.event_logger.log_memory_add(result.counts(), session_id=user_id)

        return result

    def apply_operations(
        self,
        result: MemoryOperationResult,
        user_id: str | None = None,
    ) -> None:
        """Apply reconciled operations and persist.

        UPDATE and DELETE for unknown ids are ignored.
        """
        for op in result.results:
            now = self.clock().isoformat()

            if op.event is MemoryEvent.ADD:
                self.memories[op.id] = MemoryItem(
                    id=op.id,
                    memory=op.memory,
                    hash=content_hash(op.memory),
                    created_at=now,
                    updated_at=now,
                    user_id=user_id,
                )
            elif op.event is MemoryEvent.UPDATE:
                existing = self.memories.get(op.id)
                if existing is None:
                    logger.debug("Ignoring UPDATE for unknown memory %s", op.id)
                    continue
                self.memories[op.id] = MemoryItem(
                    id=existing.id,
                    memory=op.memory,
                    hash=content_hash(op.memory),
                    created_at=existing.created_at,
                    updated_at=now,
                    user_id=existing.user_id,
                )
            elif op.event is MemoryEvent.DELETE:
                self.memories.pop(op.id, None)

        self._save()

    def search(
        self,
        query: str,
        user_id: str | None = None,
        limit: int = 5,
    ) -> list[MemoryItem]:
        """Case-insensitive substring search over fact text.

        A plain text match, not similarity search.
        """
        needle = query.lower()
        results = [
            item
            for item in self.memories.values()
            if (user_id is None or item.user_id == user_id) and needle in item.memory.lower()
        ]
        return results[:limit]

    def get(self, memory_id: str) -> MemoryItem | None:
        return self.memories.get(memory_id)

    def get_all(self, user_id: str | None = None, limit: int = 100) -> list[MemoryItem]:
        """All facts, optionally restricted to one owner."""
        results = [
            item
            for item in self.memories.values()
            if user_id is None or item.user_id == user_id
        ]
        return results[:limit]

    def delete(self, memory_id: str) -> bool:
        """Delete a fact by id.

        Returns:
            True if a fact was deleted, False otherwise.
        """
        if memory_id not in self.memories:
            return False
        del self.memories[memory_id]
        self._save()
        return True

    def reset(self) -> None:
        """Remove every fact, for every owner.

        Pending ``add`` calls will not write back what they extracted.
        """
        self._generation += 1
        self.memories.clear()
        self._save()
