"""Dispatcher executing tasks against named agents with caching and error wrapping."""
from __future__ import annotations

import time
from typing import Any, Callable, Mapping, Optional, TypeVar, Union

from agentmux.core.cache import InMemoryResultCache, ResultCache, make_cache_key
from agentmux.core.errors import AgentExecutionFailed, ValidationError
from agentmux.core.logging import get_logger, summarize_task
from agentmux.core.models import Task, parse_task
from agentmux.orchestration.registry import AgentRegistry

logger = get_logger(__name__)

H = TypeVar("H", bound=Callable[..., Any])


def cacheable(*actions: str) -> Callable[[H], H]:
    """Mark a plain handler so results for ``actions`` may be served from the cache."""

    def mark(handler: H) -> H:
        handler.cacheable = frozenset(actions)
        return handler

    return mark


def is_cacheable(handler: Any, task: Task) -> bool:
    # Handlers opt in per action; anything undeclared always runs.
    return task.action in getattr(handler, "cacheable", ())


class AgentDispatcher:
    """Resolve a handler from the registry, run a task and cache the result."""

    def __init__(
        self,
        *,
        registry: AgentRegistry,
        cache: Optional[ResultCache] = None,
        cache_ttl_seconds: int = 300,
    ) -> None:
        self._registry = registry
        self._cache = cache if cache is not None else InMemoryResultCache()
        self._cache_ttl_seconds = cache_ttl_seconds

    @property
    def registry(self) -> AgentRegistry:
        return self._registry

    @staticmethod
    def cache_key(agent_id: str, task: Union[Task, Mapping[str, Any]]) -> str:
        return make_cache_key(agent_id, parse_task(task))

    async def run_agent(self, agent_id: str, task: Union[Task, Mapping[str, Any]]) -> Any:
        """Execute ``task`` on ``agent_id``; the dispatcher applies no timeout of its own."""
        task = parse_task(task)
        summary = summarize_task(task)

        config = self._registry.get(agent_id)
        if config is not None and not config.enabled:
            raise ValidationError(f"Agent '{agent_id}' is disabled", agent_id=agent_id)

        handler = await self._registry.resolve_handler(agent_id)

        key = make_cache_key(agent_id, task) if is_cacheable(handler, task) else None
        if key is not None:
            cached = await self._cache_get(key, agent_id)
            if cached is not None:
                logger.info("agent_cache_hit", agent_id=agent_id, task=summary)
                return cached

        logger.info("agent_task_started", agent_id=agent_id, task=summary)
        started = time.perf_counter()
        try:
            result = await handler(task)
        except ValidationError:
            logger.warning("agent_task_rejected", agent_id=agent_id, task=summary)
            raise
        except Exception as exc:
            logger.error(
                "agent_task_failed",
                agent_id=agent_id,
                task=summary,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            raise AgentExecutionFailed(agent_id, exc) from exc

        duration_ms = round((time.perf_counter() - started) * 1000, 2)
        logger.info("agent_task_completed", agent_id=agent_id, task=summary, duration_ms=duration_ms)

        if key is not None:
            await self._cache_set(key, result, agent_id)
        return result

    async def _cache_get(self, key: str, agent_id: str) -> Any:
        try:
            return await self._cache.get(key)
        except Exception as exc:  # noqa: BLE001
            logger.warning("agent_cache_unavailable", agent_id=agent_id, op="get", error=str(exc))
            return None

    async def _cache_set(self, key: str, value: Any, agent_id: str) -> None:
        if value is None:
            return
        try:
            await self._cache.set(key, value, self._cache_ttl_seconds)
        except Exception as exc:  # noqa: BLE001
            logger.warning("agent_cache_unavailable", agent_id=agent_id, op="set", error=str(exc))
