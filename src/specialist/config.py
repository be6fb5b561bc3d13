"""Configuration loader.

Loads settings from ~/.specialist/config.json, then applies environment
overrides. Every value has a default so a missing file is never an error.
"""

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

BASE_DIR = Path.home() / ".specialist"
DEFAULT_CONFIG_PATH = BASE_DIR / "config.json"

DEFAULT_MODEL = "ollama/llama3.2"


@dataclass
class SpecialistConfig:
    """Runtime configuration.

    Attributes:
        model: Model string used for chat and completion (provider/model).
        memory_model: Model string used for fact extraction and reconciliation.
            Falls back to the chat model when None.
        memory_path: Directory holding memories.json.
        usage_path: JSON file receiving usage records.
        log_dir: Directory for the JSONL event log.
    """

    model: str = DEFAULT_MODEL
    memory_model: str | None = None
    memory_path: Path | None = None
    usage_path: Path | None = None
    log_dir: Path | None = None

    def __post_init__(self) -> None:
        if self.memory_path is None:
            self.memory_path = BASE_DIR / "memories"

        if self.usage_path is None:
            self.usage_path = BASE_DIR / "usage.json"

        if self.log_dir is None:
            self.log_dir = BASE_DIR / "logs"

        if "/" not in self.model:
            raise ValueError(f"model must look like 'provider/model', got '{self.model}'")

    def memory_model_for(self, chat_model: str) -> str:
        """Model used by the memory subsystem alongside ``chat_model``."""
        return self.memory_model or chat_model


def load_config(config_path: Path | None = None) -> SpecialistConfig:
    """Load SpecialistConfig from a JSON file plus environment overrides.

    The config file should have this structure:
    ```json
    {
      "model": "groq/llama-3.1-70b-versatile",
      "memory": {
        "model": "ollama/qwen2.5",
        "path": "~/.specialist/memories"
      },
      "usage_path": "~/.specialist/usage.json",
      "log_dir": "~/.specialist/logs"
    }
    ```

    Environment variables win over the file: SPECIALIST_MODEL,
    SPECIALIST_MEMORY_MODEL, SPECIALIST_MEMORY_PATH, SPECIALIST_USAGE_PATH.

    Args:
        config_path: Path to config file. Uses DEFAULT_CONFIG_PATH if None.

    Returns:
        SpecialistConfig instance with loaded values.
    """
    path = config_path or DEFAULT_CONFIG_PATH
    data: dict[str, Any] = {}

    if not path.exists():
        logger.debug("No config file at %s, using defaults", path)
    else:
        try:
            with open(path, "r") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            logger.warning("Invalid JSON in %s: %s. Using defaults.", path, e)
        except OSError as e:
            logger.warning("Cannot read %s: %s. Using defaults.", path, e)

    if not isinstance(data, dict):
        logger.warning("Config in %s is not an object. Using defaults.", path)
        data = {}

    return _parse_config(data)


def _parse_config(data: dict[str, Any]) -> SpecialistConfig:
    """Parse config dictionary into SpecialistConfig, applying env overrides."""
    memory_data = data.get("memory", {})
    if not isinstance(memory_data, dict):
        memory_data = {}

    model = os.getenv("SPECIALIST_MODEL") or data.get("model") or DEFAULT_MODEL
    memory_model = os.getenv("SPECIALIST_MEMORY_MODEL") or memory_data.get("model")

    return SpecialistConfig(
        model=str(model),
        memory_model=str(memory_model) if memory_model else None,
        memory_path=_as_path(os.getenv("SPECIALIST_MEMORY_PATH") or memory_data.get("path")),
        usage_path=_as_path(os.getenv("SPECIALIST_USAGE_PATH") or data.get("usage_path")),
        log_dir=_as_path(data.get("log_dir")),
    )


def _as_path(value: Any) -> Path | None:
    if not value or not isinstance(value, str):
        return None
    return Path(value).expanduser()
