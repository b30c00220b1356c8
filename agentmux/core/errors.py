"""Error taxonomy for registry, dispatch, queue and session operations."""
from __future__ import annotations

from typing import Any, Dict, Optional


class AgentmuxError(Exception):
    """Base exception carrying a stable ``kind`` tag and structured context."""

    kind = "internal_error"
    status_code = 500

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "message": self.message, "context": self.context}


class ValidationError(AgentmuxError):
    """Bad AgentConfig or Task shape. Rejected synchronously, never retried."""

    kind = "validation_error"
    status_code = 422


class NotFoundError(AgentmuxError):
    kind = "not_found"
    status_code = 404


class HandlerNotRegistered(NotFoundError):
    kind = "handler_not_registered"

    def __init__(self, agent_id: str) -> None:
        super().__init__(f"No handler registered for agent '{agent_id}'", agent_id=agent_id)
        self.agent_id = agent_id


class HandlerLoadError(AgentmuxError):
    """The handler loader raised; the failure is not memoized."""

    kind = "handler_load_failed"
    status_code = 502

    def __init__(self, agent_id: str, cause: BaseException) -> None:
        super().__init__(
            f"Failed to load handler for agent '{agent_id}': {cause}",
            agent_id=agent_id,
            cause=type(cause).__name__,
        )
        self.agent_id = agent_id
        self.cause = cause


class AgentExecutionFailed(AgentmuxError):
    """The handler ran but raised."""

    kind = "agent_execution_failed"
    status_code = 502

    def __init__(self, agent_id: str, cause: BaseException) -> None:
        super().__init__(
            f"Agent '{agent_id}' failed: {cause}",
            agent_id=agent_id,
            cause=type(cause).__name__,
        )
        self.agent_id = agent_id
        self.cause = cause


class SubprocessError(AgentmuxError):
    kind = "subprocess_error"
    status_code = 502

    def __init__(
        self,
        message: str,
        *,
        argv: Optional[list] = None,
        returncode: Optional[int] = None,
        timed_out: bool = False,
    ) -> None:
        super().__init__(message, argv=argv, returncode=returncode, timed_out=timed_out)
        self.argv = argv
        self.returncode = returncode
        self.timed_out = timed_out


class CacheUnavailable(AgentmuxError):
    kind = "cache_unavailable"
    status_code = 503


class QueueShutdown(AgentmuxError):
    kind = "queue_shutdown"
    status_code = 503
