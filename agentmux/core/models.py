"""Core data models shared across registry, dispatcher, queue and session components."""
from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

import pydantic
from pydantic import BaseModel, ConfigDict, Field, StrictBool, field_validator

from .errors import ValidationError

SEMVER_PATTERN = r"^\d+\.\d+\.\d+$"


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class AgentConfig(BaseModel):
    """Identity and metadata for an agent held by the registry."""

    model_config = ConfigDict(extra="forbid")

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    enabled: StrictBool
    version: str = Field(..., pattern=SEMVER_PATTERN)
    capabilities: List[str] = Field(default_factory=list)
    description: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("capabilities")
    @classmethod
    def _dedupe_capabilities(cls, value: List[str]) -> List[str]:
        # Ordered set: keep first occurrence.
        return list(dict.fromkeys(value))


class Task(BaseModel):
    """Immutable task payload: an action tag plus action-specific data."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    action: str = Field(..., min_length=1)
    priority: Priority = Priority.MEDIUM
    data: Dict[str, Any] = Field(default_factory=dict)


def _format_errors(exc: pydantic.ValidationError) -> List[Dict[str, Any]]:
    return [
        {"loc": ".".join(str(part) for part in err["loc"]), "msg": err["msg"]}
        for err in exc.errors()
    ]


def validate_model(model: type, payload: Any, *, what: str) -> Any:
    """Validate ``payload`` into ``model``, converting pydantic failures to ``ValidationError``."""
    if isinstance(payload, model):
        return payload
    if isinstance(payload, BaseModel):
        payload = payload.model_dump()
    try:
        return model.model_validate(payload)
    except pydantic.ValidationError as exc:
        raise ValidationError(f"Invalid {what}", errors=_format_errors(exc)) from exc


def parse_agent_config(payload: Mapping[str, Any] | AgentConfig) -> AgentConfig:
    return validate_model(AgentConfig, payload, what="agent config")


def parse_task(payload: Mapping[str, Any] | Task) -> Task:
    return validate_model(Task, payload, what="task")


class JobState(str, Enum):
    """Lifecycle states for a queued job."""

    QUEUED = "queued"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"


_ALLOWED_TRANSITIONS = {
    JobState.QUEUED: {JobState.ACTIVE},
    # active -> queued is the bounded retry path used by the task queue.
    JobState.ACTIVE: {JobState.COMPLETED, JobState.FAILED, JobState.QUEUED},
    JobState.FAILED: set(),
    JobState.COMPLETED: set(),
}


@dataclass(slots=True)
class Job:
    """A queued unit of work tracked by the task queue."""

    id: str
    agent_name: str
    task: Task
    state: JobState = JobState.QUEUED
    attempts: int = 0
    created_at: float = field(default_factory=time.time)
    updated_at: float = field(default_factory=time.time)
    finished_at: Optional[float] = None
    result: Any = None
    error: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.state in (JobState.COMPLETED, JobState.FAILED)

    def transition(self, target: JobState) -> None:
        if target not in _ALLOWED_TRANSITIONS[self.state]:
            raise RuntimeError(
                f"Illegal job transition {self.state.value} -> {target.value} for job {self.id}"
            )
        self.state = target
        self.updated_at = time.time()
        if self.is_terminal:
            self.finished_at = self.updated_at

    def to_dict(self) -> Dict[str, Any]:
        record: Dict[str, Any] = {
            "id": self.id,
            "agentName": self.agent_name,
            "task": self.task.model_dump(mode="json"),
            "state": self.state.value,
            "attempts": self.attempts,
            "createdAt": self.created_at,
        }
        if self.result is not None:
            record["result"] = self.result
        if self.error is not None:
            record["error"] = self.error
        return record


@dataclass(slots=True, frozen=True)
class TmuxSession:
    """A terminal-multiplexer session as reported by the external tool."""

    name: str
    attached: bool
    window_count: int

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "attached": self.attached, "windows": self.window_count}
