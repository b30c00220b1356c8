"""Durable storage collaborators for agent configuration."""
from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import List, Protocol, Sequence

from agentmux.core.errors import ValidationError
from agentmux.core.logging import get_logger
from agentmux.core.models import AgentConfig, parse_agent_config

logger = get_logger(__name__)


class ConfigStore(Protocol):
    def load_all(self) -> List[AgentConfig]:
        ...

    def save_all(self, configs: Sequence[AgentConfig]) -> None:
        ...


class InMemoryConfigStore:
    """Store keeping the last persisted snapshot in memory."""

    def __init__(self) -> None:
        self._snapshot: List[AgentConfig] = []
        self.save_count = 0

    def load_all(self) -> List[AgentConfig]:
        return list(self._snapshot)

    def save_all(self, configs: Sequence[AgentConfig]) -> None:
        self._snapshot = [config.model_copy(deep=True) for config in configs]
        self.save_count += 1


class JsonFileConfigStore:
    """Persist the full config list as one JSON document, replaced atomically."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    def load_all(self) -> List[AgentConfig]:
        if not self._path.exists():
            return []
        raw = json.loads(self._path.read_text("utf-8"))
        return [parse_agent_config(item) for item in raw]

    def save_all(self, configs: Sequence[AgentConfig]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        payload = json.dumps([config.model_dump(mode="json") for config in configs], indent=2)
        fd, tmp_path = tempfile.mkstemp(dir=self._path.parent, prefix=f".{self._path.name}.")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(payload)
            os.replace(tmp_path, self._path)
        except BaseException:
            Path(tmp_path).unlink(missing_ok=True)
            raise


def load_config_directory(directory: str | Path) -> List[AgentConfig]:
    """Read one AgentConfig per ``*.json`` file, in file-name order.

    Unreadable or invalid files are logged and skipped.
    """
    path = Path(directory)
    if not path.is_dir():
        logger.info("agent_config_dir_missing", directory=str(path))
        return []

    configs: List[AgentConfig] = []
    for file_path in sorted(path.glob("*.json")):
        try:
            payload = json.loads(file_path.read_text("utf-8"))
            configs.append(parse_agent_config(payload))
        except (OSError, json.JSONDecodeError, ValidationError) as exc:
            logger.warning("agent_config_file_skipped", file=str(file_path), error=str(exc))
    logger.info("agent_config_dir_scanned", directory=str(path), count=len(configs))
    return configs
