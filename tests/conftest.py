"""Shared fixtures: anyio backend and a recording subprocess runner."""
from __future__ import annotations

from typing import List, Optional, Sequence, Tuple

import pytest

from agentmux.core.errors import SubprocessError
from agentmux.services.tmux import CommandResult, SessionOrchestrator


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


class FakeRunner:
    """Records every argv and replays scripted outputs in order."""

    def __init__(self) -> None:
        self.calls: List[List[str]] = []
        self.timeouts: List[float] = []
        self._script: List[Tuple[str, Optional[Exception]]] = []

    def respond(self, stdout: str = "") -> None:
        self._script.append((stdout, None))

    def fail(self, message: str = "tmux failed") -> None:
        self._script.append(("", SubprocessError(message, returncode=1)))

    async def run(self, argv: Sequence[str], timeout: float) -> CommandResult:
        self.calls.append(list(argv))
        self.timeouts.append(timeout)
        stdout, error = self._script.pop(0) if self._script else ("", None)
        if error is not None:
            raise error
        return CommandResult(returncode=0, stdout=stdout, stderr="")


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def orchestrator(fake_runner: FakeRunner) -> SessionOrchestrator:
    return SessionOrchestrator(runner=fake_runner, timeout_seconds=2.0, max_capture_lines=1000)
