"""Agent exposing terminal-multiplexer session operations."""
from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import Field

from agentmux.agents.base import ActionAgent, ActionPayload
from agentmux.services.tmux import DEFAULT_CAPTURE_LINES, SessionOrchestrator


class ListSessionsPayload(ActionPayload):
    pass


class CreateSessionPayload(ActionPayload):
    session_name: str = Field(..., alias="sessionName", min_length=1)


class CaptureContentPayload(ActionPayload):
    session_name: str = Field(..., alias="sessionName", min_length=1)
    window_index: int = Field(..., alias="windowIndex", ge=0)
    num_lines: int = Field(DEFAULT_CAPTURE_LINES, alias="numLines", gt=0)


class SendCommandPayload(ActionPayload):
    session_name: str = Field(..., alias="sessionName", min_length=1)
    window_index: int = Field(..., alias="windowIndex", ge=0)
    command: str


class RunAITaskPayload(ActionPayload):
    session_name: str = Field(..., alias="sessionName", min_length=1)
    prompt: str = Field(..., min_length=1)
    model: Optional[str] = None


class SessionAgent(ActionAgent):
    name = "tmux"
    actions = {
        "listSessions": ListSessionsPayload,
        "createSession": CreateSessionPayload,
        "captureContent": CaptureContentPayload,
        "sendCommand": SendCommandPayload,
        "runAITask": RunAITaskPayload,
    }

    def __init__(self, orchestrator: SessionOrchestrator) -> None:
        self._orchestrator = orchestrator

    async def handle(self, action: str, payload: Any) -> Dict[str, Any]:
        if action == "listSessions":
            sessions = await self._orchestrator.list_sessions()
            return {"sessions": [session.to_dict() for session in sessions]}
        if action == "createSession":
            return {"success": await self._orchestrator.create_session(payload.session_name)}
        if action == "captureContent":
            content = await self._orchestrator.capture_window_content(
                payload.session_name, payload.window_index, payload.num_lines
            )
            return {"content": content}
        if action == "sendCommand":
            success = await self._orchestrator.send_command(
                payload.session_name, payload.window_index, payload.command
            )
            return {"success": success}
        output = await self._orchestrator.run_ai_task(payload.session_name, payload.prompt, payload.model)
        return {"output": output}


def build_handler(orchestrator: SessionOrchestrator) -> SessionAgent:
    return SessionAgent(orchestrator)
