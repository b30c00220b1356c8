"""LLM client pool for shared model access with concurrency control."""
from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict

from anthropic import AsyncAnthropic

from agentmux.config import AnthropicConfig


class LLMPool:
    """Manages shared Anthropic clients with concurrency limiting."""

    def __init__(self) -> None:
        self._clients: Dict[str, Any] = {}
        self._semaphores: Dict[str, asyncio.Semaphore] = {}
        self._initialized: Dict[str, bool] = {}

    def register_anthropic(self, name: str, config: AnthropicConfig) -> None:
        """Register an Anthropic configuration; the client is built on first use."""
        self._clients[name] = config
        self._semaphores[name] = asyncio.Semaphore(config.max_concurrent)
        self._initialized[name] = False

    def register_client(self, name: str, client: Any, max_concurrent: int = 8) -> None:
        """Register an already constructed client."""
        self._clients[name] = client
        self._semaphores[name] = asyncio.Semaphore(max_concurrent)
        self._initialized[name] = True

    def has(self, name: str) -> bool:
        return name in self._clients

    @asynccontextmanager
    async def acquire(self, name: str) -> AsyncIterator[Any]:
        """Acquire access to a client with concurrency control."""
        if name not in self._clients:
            raise KeyError(f"LLM client '{name}' not registered in LLM pool")

        semaphore = self._semaphores[name]
        async with semaphore:
            if not self._initialized[name]:
                self._initialize_client(name)
            yield self._clients[name]

    def _initialize_client(self, name: str) -> None:
        config = self._clients[name]
        if isinstance(config, AnthropicConfig):
            self._clients[name] = AsyncAnthropic(api_key=config.api_key)
        self._initialized[name] = True

    async def close(self) -> None:
        for name, client in list(self._clients.items()):
            if self._initialized.get(name) and hasattr(client, "close"):
                await client.close()
