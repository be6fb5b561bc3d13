"""Usage tracking for completion calls.

Each call is appended to a JSON array file; statistics are computed from
the whole log on demand. Tracking never raises: a broken usage file must
not break a conversation.
"""

import json
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from .llm_client import TokenUsage

logger = logging.getLogger(__name__)

DEFAULT_USAGE_PATH = Path.home() / ".specialist" / "usage.json"


@dataclass
class UsageData:
    """A single usage record."""

    timestamp: str
    model: str
    operation: str
    prompt_tokens: int | None = None
    completion_tokens: int | None = None
    total_tokens: int | None = None
    duration_ms: float | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dict, excluding None values."""
        return {k: v for k, v in asdict(self).items() if v is not None}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "UsageData":
        """Create from a stored dict, ignoring unknown keys."""
        return cls(
            timestamp=str(data.get("timestamp", "")),
            model=str(data.get("model", "unknown")),
            operation=str(data.get("operation", "unknown")),
            prompt_tokens=data.get("prompt_tokens"),
            completion_tokens=data.get("completion_tokens"),
            total_tokens=data.get("total_tokens"),
            duration_ms=data.get("duration_ms"),
        )


@dataclass
class UsageStats:
    """Aggregated usage statistics."""

    total_calls: int = 0
    total_tokens: int = 0
    total_prompt_tokens: int = 0
    total_completion_tokens: int = 0
    tokens_by_model: dict[str, int] = field(default_factory=dict)
    prompt_tokens_by_model: dict[str, int] = field(default_factory=dict)
    completion_tokens_by_model: dict[str, int] = field(default_factory=dict)
    calls_by_model: dict[str, int] = field(default_factory=dict)
    calls_by_operation: dict[str, int] = field(default_factory=dict)


def _bump(counter: dict[str, int], key: str, amount: int = 1) -> None:
    counter[key] = counter.get(key, 0) + amount


class UsageTracker:
    """Appends usage records to a JSON file and aggregates them."""

    def __init__(self, path: Path | None = None) -> None:
        """Initialize the tracker.

        Args:
            path: JSON file to write. Defaults to ~/.specialist/usage.json.
        """
        self.path = Path(path) if path is not None else DEFAULT_USAGE_PATH

    def _load(self) -> list[dict[str, Any]]:
        if not self.path.exists():
            return []
        with open(self.path, "r", encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, list):
            raise ValueError(f"usage log {self.path} is not a JSON array")
        return data

    def track(self, data: UsageData) -> None:
        """Append a usage record. Failures are logged, never raised."""
        try:
            records = self._load()
            records.append(data.to_dict())
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "w", encoding="utf-8") as f:
                json.dump(records, f, indent=2)
        except (OSError, ValueError) as e:
            logger.error("Failed to track usage: %s", e)

    def record(
        self,
        model: str,
        operation: str,
        usage: TokenUsage | None,
        duration_ms: float | None = None,
    ) -> None:
        """Track a completed call from its token usage."""
        self.track(
            UsageData(
                timestamp=datetime.now(timezone.utc).isoformat(),
                model=model,
                operation=operation,
                prompt_tokens=usage.prompt_tokens if usage else None,
                completion_tokens=usage.completion_tokens if usage else None,
                total_tokens=usage.total_tokens if usage else None,
                duration_ms=duration_ms,
            )
        )

    def get_stats(self) -> UsageStats:
        """Aggregate all records. A missing or unreadable log yields zeros."""
        try:
            records = self._load()
        except (OSError, ValueError) as e:
            logger.error("Failed to get usage stats: %s", e)
            return UsageStats()

        stats = UsageStats(total_calls=len(records))

        for raw in records:
            if not isinstance(raw, dict):
                continue
            entry = UsageData.from_dict(raw)

            if entry.total_tokens:
                stats.total_tokens += entry.total_tokens
                _bump(stats.tokens_by_model, entry.model, entry.total_tokens)

            if entry.prompt_tokens:
                stats.total_prompt_tokens += entry.prompt_tokens
                _bump(stats.prompt_tokens_by_model, entry.model, entry.prompt_tokens)

            if entry.completion_tokens:
                stats.total_completion_tokens += entry.completion_tokens
                _bump(stats.completion_tokens_by_model, entry.model, entry.completion_tokens)

            _bump(stats.calls_by_model, entry.model)
            _bump(stats.calls_by_operation, entry.operation)

        return stats
