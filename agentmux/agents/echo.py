"""Simple agent returning its input, used for smoke tests and demos."""
from __future__ import annotations

from typing import Any, Dict

from agentmux.core.models import Task


async def echo_handler(task: Task) -> Dict[str, Any]:
    return {"echo": dict(task.data), "action": task.action}


def build_handler() -> Any:
    return echo_handler
