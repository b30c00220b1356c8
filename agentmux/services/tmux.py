"""Terminal-multiplexer session orchestration through argument-vector subprocess calls.

Nothing here goes through a shell. Session names, window targets and
commands are passed to tmux as discrete argv elements, so shell
metacharacters in them are never interpreted. Keys sent with
``send-keys`` follow ``--`` so a leading dash is never read as an option.
"""
from __future__ import annotations

import asyncio
import shlex
from dataclasses import dataclass
from typing import List, Optional, Protocol, Sequence

from agentmux.core.errors import SubprocessError, ValidationError
from agentmux.core.logging import get_logger
from agentmux.core.models import TmuxSession

logger = get_logger(__name__)

LIST_FORMAT = "#{session_name}:#{session_attached}:#{session_windows}"
DEFAULT_CAPTURE_LINES = 50
DEFAULT_AI_COMMAND = "mock-ai"


@dataclass(slots=True)
class CommandResult:
    returncode: int
    stdout: str
    stderr: str


class CommandRunner(Protocol):
    async def run(self, argv: Sequence[str], timeout: float) -> CommandResult:
        ...


class SubprocessRunner:
    """Run argv with ``asyncio.create_subprocess_exec``, killing the process on timeout."""

    async def run(self, argv: Sequence[str], timeout: float) -> CommandResult:
        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise SubprocessError(f"Failed to start {argv[0]}: {exc}", argv=list(argv)) from exc

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
        except asyncio.TimeoutError as exc:
            proc.kill()
            await proc.wait()
            raise SubprocessError(
                f"{argv[0]} timed out after {timeout}s",
                argv=list(argv),
                timed_out=True,
            ) from exc

        result = CommandResult(
            returncode=proc.returncode if proc.returncode is not None else -1,
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr=stderr.decode("utf-8", errors="replace"),
        )
        if result.returncode != 0:
            detail = result.stderr.strip() or f"exit status {result.returncode}"
            raise SubprocessError(
                f"{argv[0]} {argv[1] if len(argv) > 1 else ''} failed: {detail}".strip(),
                argv=list(argv),
                returncode=result.returncode,
            )
        return result


def validate_session_name(name: str) -> str:
    if not isinstance(name, str) or not name:
        raise ValidationError("Session name must be a non-empty string", session_name=name)
    if any(ch in name for ch in ("\x00", "\n", "\r")):
        raise ValidationError("Session name contains control characters", session_name=name)
    return name


def validate_window_index(window_index: int) -> int:
    # bool is an int subclass; reject it explicitly.
    if isinstance(window_index, bool) or not isinstance(window_index, int) or window_index < 0:
        raise ValidationError("Window index must be a non-negative integer", window_index=window_index)
    return window_index


def parse_session_line(line: str) -> Optional[TmuxSession]:
    """Parse ``name:attached:windows``. The name itself may contain colons."""
    parts = line.strip().rsplit(":", 2)
    if len(parts) != 3:
        return None
    name, attached, windows = parts
    if not name or not windows.isdigit() or not attached.isdigit():
        return None
    return TmuxSession(name=name, attached=int(attached) > 0, window_count=int(windows))


class SessionOrchestrator:
    """Manage tmux sessions. The external process table is the only source of truth."""

    def __init__(
        self,
        *,
        runner: Optional[CommandRunner] = None,
        binary: str = "tmux",
        timeout_seconds: float = 10.0,
        max_capture_lines: int = 1000,
    ) -> None:
        self._runner = runner if runner is not None else SubprocessRunner()
        self._binary = binary
        self._timeout_seconds = timeout_seconds
        self._max_capture_lines = max_capture_lines

    async def _tmux(self, *args: str) -> CommandResult:
        return await self._runner.run([self._binary, *args], self._timeout_seconds)

    @staticmethod
    def _target(session_name: str, window_index: int) -> str:
        return f"{validate_session_name(session_name)}:{validate_window_index(window_index)}"

    def _clamp_lines(self, num_lines: int) -> int:
        if isinstance(num_lines, bool) or not isinstance(num_lines, int):
            return DEFAULT_CAPTURE_LINES
        return max(1, min(num_lines, self._max_capture_lines))

    async def list_sessions(self) -> List[TmuxSession]:
        """Best-effort listing; any command failure yields an empty list."""
        try:
            result = await self._tmux("list-sessions", "-F", LIST_FORMAT)
        except SubprocessError as exc:
            logger.error("tmux_list_failed", error=str(exc))
            return []

        sessions: List[TmuxSession] = []
        for line in result.stdout.splitlines():
            if not line.strip():
                continue
            session = parse_session_line(line)
            if session is None:
                logger.debug("tmux_list_line_skipped", line=line)
                continue
            sessions.append(session)
        return sessions

    async def create_session(self, session_name: str) -> bool:
        """Advisory create: returns False on any failure, including an existing session."""
        try:
            await self._tmux("new-session", "-d", "-s", validate_session_name(session_name))
        except (SubprocessError, ValidationError) as exc:
            logger.error("tmux_create_failed", session_name=session_name, error=str(exc))
            return False
        logger.info("tmux_session_created", session_name=session_name)
        return True

    async def capture_window_content(
        self,
        session_name: str,
        window_index: int,
        num_lines: int = DEFAULT_CAPTURE_LINES,
    ) -> str:
        """Return pane content, or an ``Error: ...`` string on failure."""
        lines = self._clamp_lines(num_lines)
        try:
            target = self._target(session_name, window_index)
            result = await self._tmux("capture-pane", "-p", "-t", target, "-S", f"-{lines}")
        except (SubprocessError, ValidationError) as exc:
            logger.error(
                "tmux_capture_failed",
                session_name=session_name,
                window_index=window_index,
                error=str(exc),
            )
            return f"Error: {exc}"
        logger.info("tmux_window_captured", session_name=session_name, window_index=window_index, lines=lines)
        return result.stdout

    async def send_command(self, session_name: str, window_index: int, command: str) -> bool:
        """Type ``command`` into the window followed by Enter."""
        try:
            target = self._target(session_name, window_index)
            await self._tmux("send-keys", "-t", target, "--", command, "C-m")
        except (SubprocessError, ValidationError) as exc:
            logger.error(
                "tmux_send_failed",
                session_name=session_name,
                window_index=window_index,
                error=str(exc),
            )
            return False
        logger.info("tmux_command_sent", session_name=session_name, window_index=window_index)
        return True

    async def run_ai_task(self, session_name: str, prompt: str, model: Optional[str] = None) -> str:
        """Pipe ``prompt`` into the model command inside window 0 and return the captured pane.

        Unlike the read paths, every failure here propagates.
        """
        target = self._target(session_name, 0)
        command_line = f"echo {shlex.quote(prompt)} | {shlex.quote(model or DEFAULT_AI_COMMAND)}"
        try:
            await self._tmux("send-keys", "-t", target, "--", command_line, "C-m")
            result = await self._tmux(
                "capture-pane", "-p", "-t", target, "-S", f"-{self._clamp_lines(DEFAULT_CAPTURE_LINES)}"
            )
        except SubprocessError as exc:
            logger.error("tmux_ai_task_failed", session_name=session_name, model=model, error=str(exc))
            raise
        logger.info("tmux_ai_task_completed", session_name=session_name, model=model)
        return result.stdout
