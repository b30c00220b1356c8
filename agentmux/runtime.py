"""Application runtime composition helpers."""
from __future__ import annotations

import importlib
from dataclasses import dataclass
from typing import Any, Callable, Optional

from agentmux.config import Settings
from agentmux.core.cache import ResultCache, build_result_cache
from agentmux.core.logging import get_logger
from agentmux.orchestration.dispatcher import AgentDispatcher
from agentmux.orchestration.queue import TaskQueue
from agentmux.orchestration.registry import AgentRegistry, Handler
from agentmux.orchestration.store import ConfigStore, InMemoryConfigStore, JsonFileConfigStore, load_config_directory
from agentmux.services.llm_pool import LLMPool
from agentmux.services.tmux import CommandRunner, SessionOrchestrator

logger = get_logger(__name__)

ECHO_AGENT_ID = "echo-agent"
CLAUDE_AGENT_ID = "claude-agent"
GITHUB_AGENT_ID = "github-agent"
TMUX_AGENT_ID = "tmux-agent"


@dataclass
class Runtime:
    """Explicitly constructed service graph shared by the API and workers."""

    settings: Settings
    registry: AgentRegistry
    dispatcher: AgentDispatcher
    queue: TaskQueue
    orchestrator: SessionOrchestrator
    llm_pool: LLMPool
    cache: ResultCache

    async def start(self) -> None:
        await self.registry.load()
        await self.registry.bootstrap(load_config_directory(self.settings.agents_config_dir))
        await self.queue.start()
        logger.info("runtime_started", environment=self.settings.environment)

    async def stop(self) -> None:
        await self.queue.shutdown(self.settings.shutdown_grace_seconds)
        await self.llm_pool.close()
        await self.cache.close()
        logger.info("runtime_stopped")


def lazy_loader(module_path: str, **dependencies: Any) -> Callable[[], Handler]:
    """Loader importing ``module_path`` on first use and calling its ``build_handler``."""

    def load() -> Handler:
        module = importlib.import_module(module_path)
        return module.build_handler(**dependencies)

    return load


def build_config_store(settings: Settings) -> ConfigStore:
    if settings.agents_store_path:
        return JsonFileConfigStore(settings.agents_store_path)
    return InMemoryConfigStore()


def build_runtime(
    settings: Settings,
    *,
    store: Optional[ConfigStore] = None,
    cache: Optional[ResultCache] = None,
    command_runner: Optional[CommandRunner] = None,
) -> Runtime:
    registry = AgentRegistry(store if store is not None else build_config_store(settings))
    cache = cache if cache is not None else build_result_cache(settings)
    dispatcher = AgentDispatcher(
        registry=registry,
        cache=cache,
        cache_ttl_seconds=settings.cache_ttl_seconds,
    )
    queue = TaskQueue(
        dispatcher=dispatcher,
        max_workers=settings.max_workers,
        max_retries=settings.max_retries,
        retry_backoff_seconds=settings.retry_backoff_seconds,
        retention_seconds=settings.job_retention_seconds,
    )
    orchestrator = SessionOrchestrator(
        runner=command_runner,
        binary=settings.tmux_binary,
        timeout_seconds=settings.subprocess_timeout_seconds,
        max_capture_lines=settings.capture_max_lines,
    )
    llm_pool = LLMPool()
    if settings.anthropic:
        llm_pool.register_anthropic("claude", settings.anthropic)

    return Runtime(
        settings=settings,
        registry=registry,
        dispatcher=dispatcher,
        queue=queue,
        orchestrator=orchestrator,
        llm_pool=llm_pool,
        cache=cache,
    )


def register_builtin_handlers(runtime: Runtime) -> None:
    settings = runtime.settings
    registry = runtime.registry
    registry.register_handler(ECHO_AGENT_ID, lazy_loader("agentmux.agents.echo"))
    registry.register_handler(
        CLAUDE_AGENT_ID,
        lazy_loader(
            "agentmux.agents.claude",
            llm_pool=runtime.llm_pool,
            default_model=settings.anthropic.model if settings.anthropic else None,
        ),
    )
    registry.register_handler(
        GITHUB_AGENT_ID,
        lazy_loader("agentmux.agents.github", token=settings.github_token, api_url=settings.github_api_url),
    )
    registry.register_handler(
        TMUX_AGENT_ID,
        lazy_loader("agentmux.agents.session", orchestrator=runtime.orchestrator),
    )
