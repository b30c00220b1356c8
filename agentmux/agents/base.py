"""Base class for handlers that dispatch on ``task.action``."""
from __future__ import annotations

import abc
from typing import Any, ClassVar, Dict, FrozenSet, Type

from pydantic import BaseModel, ConfigDict

from agentmux.core.errors import ValidationError
from agentmux.core.models import Task, validate_model


class ActionPayload(BaseModel):
    """Per-action payload; accepts camelCase aliases as well as field names."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid")


class ActionAgent(abc.ABC):
    """Handler treating a task as a tagged variant keyed by its ``action``."""

    name: ClassVar[str] = "agent"
    actions: ClassVar[Dict[str, Type[ActionPayload]]] = {}
    # Actions whose results may be served from the result cache. Empty means none.
    cacheable: ClassVar[FrozenSet[str]] = frozenset()

    async def __call__(self, task: Task) -> Any:
        payload_model = self.actions.get(task.action)
        if payload_model is None:
            raise ValidationError(
                f"Unknown {self.name} action '{task.action}'",
                action=task.action,
                supported=sorted(self.actions),
            )
        payload = validate_model(payload_model, task.data, what=f"{task.action} payload")
        return await self.handle(task.action, payload)

    @abc.abstractmethod
    async def handle(self, action: str, payload: Any) -> Any:
        """Execute a validated action."""
