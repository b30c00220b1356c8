"""Registry holding agent configuration and lazily-loaded execution handlers."""
from __future__ import annotations

import asyncio
import inspect
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Mapping, Optional, Union

from agentmux.core.errors import HandlerLoadError, HandlerNotRegistered, NotFoundError, ValidationError
from agentmux.core.logging import get_logger
from agentmux.core.models import AgentConfig, Task, parse_agent_config
from agentmux.orchestration.store import ConfigStore, InMemoryConfigStore

logger = get_logger(__name__)

Handler = Callable[[Task], Awaitable[Any]]
Loader = Callable[[], Union[Handler, Awaitable[Handler]]]


@dataclass(slots=True)
class HandlerSlot:
    """Binds an agent id to its loader and the memoized handler once loaded."""

    agent_id: str
    loader: Loader
    handler: Optional[Handler] = None
    pending: Optional[asyncio.Future] = None
    generation: int = 0
    load_count: int = 0


class AgentRegistry:
    """Single source of truth for agent configuration and handler bindings."""

    def __init__(self, store: Optional[ConfigStore] = None) -> None:
        self._store = store if store is not None else InMemoryConfigStore()
        self._configs: Dict[str, AgentConfig] = {}
        self._slots: Dict[str, HandlerSlot] = {}
        self._lock = asyncio.Lock()

    async def load(self) -> int:
        """Pull previously persisted configs from the store into memory."""
        stored = self._store.load_all()
        async with self._lock:
            for config in stored:
                self._configs.setdefault(config.id, config)
        logger.info("agent_configs_loaded", count=len(stored))
        return len(stored)

    async def bootstrap(self, discovered: Iterable[AgentConfig]) -> List[str]:
        """Merge configs found at startup without overwriting ids already present."""
        added: List[str] = []
        async with self._lock:
            merged = dict(self._configs)
            for config in discovered:
                if config.id in merged:
                    logger.info("agent_config_bootstrap_skipped", agent_id=config.id)
                    continue
                merged[config.id] = config
                added.append(config.id)
            self._store.save_all(list(merged.values()))
            self._configs = merged
        logger.info("agent_configs_bootstrapped", added=added, total=len(self._configs))
        return added

    async def create(self, config: Union[Mapping[str, Any], AgentConfig]) -> str:
        """Validate and persist a config. An existing id is replaced (last writer wins)."""
        validated = parse_agent_config(config)
        async with self._lock:
            if validated.id in self._configs:
                logger.warning("agent_config_replaced", agent_id=validated.id)
            candidate = dict(self._configs)
            candidate[validated.id] = validated
            self._store.save_all(list(candidate.values()))
            self._configs = candidate
        logger.info("agent_config_saved", agent_id=validated.id)
        return validated.id

    async def update(self, agent_id: str, partial: Mapping[str, Any]) -> AgentConfig:
        """Merge ``partial`` onto an existing config. All-or-nothing."""
        if "id" in partial and partial["id"] != agent_id:
            raise ValidationError("Agent id cannot be changed by update", agent_id=agent_id)
        async with self._lock:
            existing = self._configs.get(agent_id)
            if existing is None:
                raise NotFoundError(f"Agent with id {agent_id} not found", agent_id=agent_id)
            merged = parse_agent_config({**existing.model_dump(), **dict(partial)})
            candidate = dict(self._configs)
            candidate[agent_id] = merged
            self._store.save_all(list(candidate.values()))
            self._configs = candidate
        logger.info("agent_config_updated", agent_id=agent_id, fields=sorted(partial))
        return merged

    def get(self, agent_id: str) -> Optional[AgentConfig]:
        return self._configs.get(agent_id)

    def list(self) -> List[AgentConfig]:
        return list(self._configs.values())

    def register_handler(self, agent_id: str, loader: Loader) -> None:
        """Store a loader for ``agent_id``, dropping any memoized handler."""
        if agent_id not in self._configs:
            logger.warning("agent_handler_without_config", agent_id=agent_id)
        slot = self._slots.get(agent_id)
        if slot is None:
            self._slots[agent_id] = HandlerSlot(agent_id=agent_id, loader=loader)
            return
        logger.warning("agent_handler_overwritten", agent_id=agent_id)
        slot.loader = loader
        self._reset_slot(slot)

    def invalidate_handler(self, agent_id: str) -> None:
        """Force the next run to call the loader again."""
        slot = self._slots.get(agent_id)
        if slot is None:
            raise HandlerNotRegistered(agent_id)
        self._reset_slot(slot)
        logger.info("agent_handler_invalidated", agent_id=agent_id)

    def has_handler(self, agent_id: str) -> bool:
        return agent_id in self._slots

    def slot(self, agent_id: str) -> Optional[HandlerSlot]:
        return self._slots.get(agent_id)

    async def resolve_handler(self, agent_id: str) -> Handler:
        """Return the memoized handler, loading it at most once per agent.

        Concurrent callers share one in-flight load. A failed load is not
        memoized, so the next call invokes the loader again.
        """
        slot = self._slots.get(agent_id)
        if slot is None:
            raise HandlerNotRegistered(agent_id)
        if slot.handler is not None:
            return slot.handler
        if slot.pending is None:
            slot.pending = asyncio.ensure_future(self._load(slot, slot.generation))
        return await asyncio.shield(slot.pending)

    async def _load(self, slot: HandlerSlot, generation: int) -> Handler:
        slot.load_count += 1
        logger.info("agent_handler_loading", agent_id=slot.agent_id, load_count=slot.load_count)
        try:
            handler = slot.loader()
            if inspect.isawaitable(handler):
                handler = await handler
        except Exception as exc:
            logger.error("agent_handler_load_failed", agent_id=slot.agent_id, error=str(exc))
            raise HandlerLoadError(slot.agent_id, exc) from exc
        finally:
            if slot.generation == generation:
                slot.pending = None
        if not callable(handler):
            raise HandlerLoadError(
                slot.agent_id, TypeError(f"loader returned non-callable {type(handler).__name__}")
            )
        # A loader swapped in mid-flight owns the slot now; do not memoize the stale result.
        if slot.generation == generation:
            slot.handler = handler
        return handler

    @staticmethod
    def _reset_slot(slot: HandlerSlot) -> None:
        slot.generation += 1
        slot.handler = None
        slot.pending = None
