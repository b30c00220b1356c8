"""Tests for the built-in agent handlers run through the dispatcher."""
from __future__ import annotations

import json
from types import SimpleNamespace

import httpx
import pytest

from agentmux.agents import claude, github, session
from agentmux.core.errors import AgentExecutionFailed, ValidationError
from agentmux.orchestration.dispatcher import AgentDispatcher
from agentmux.orchestration.registry import AgentRegistry
from agentmux.runtime import lazy_loader
from agentmux.services.llm_pool import LLMPool


class FakeMessages:
    def __init__(self) -> None:
        self.calls = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        return SimpleNamespace(
            content=[SimpleNamespace(type="text", text="Paris")],
            model=kwargs["model"],
            usage=SimpleNamespace(input_tokens=12, output_tokens=3),
        )


def make_dispatcher() -> AgentDispatcher:
    return AgentDispatcher(registry=AgentRegistry())


@pytest.mark.anyio
async def test_session_agent_creates_session(orchestrator, fake_runner) -> None:
    dispatcher = make_dispatcher()
    dispatcher.registry.register_handler(
        "tmux-agent", lazy_loader("agentmux.agents.session", orchestrator=orchestrator)
    )

    result = await dispatcher.run_agent(
        "tmux-agent", {"action": "createSession", "data": {"sessionName": "build"}}
    )

    assert result == {"success": True}
    assert fake_runner.calls == [["tmux", "new-session", "-d", "-s", "build"]]


@pytest.mark.anyio
async def test_session_agent_lists_and_captures(orchestrator, fake_runner) -> None:
    handler = session.build_handler(orchestrator)
    dispatcher = make_dispatcher()
    dispatcher.registry.register_handler("tmux-agent", lambda: handler)
    fake_runner.respond("build:0:2\n")
    fake_runner.respond("line one\nline two\n")

    listed = await dispatcher.run_agent("tmux-agent", {"action": "listSessions"})
    captured = await dispatcher.run_agent(
        "tmux-agent",
        {"action": "captureContent", "data": {"sessionName": "build", "windowIndex": 1, "numLines": 20}},
    )

    assert listed == {"sessions": [{"name": "build", "attached": False, "windows": 2}]}
    assert captured == {"content": "line one\nline two\n"}
    assert fake_runner.calls[1] == ["tmux", "capture-pane", "-p", "-t", "build:1", "-S", "-20"]


@pytest.mark.anyio
async def test_session_agent_repeated_command_is_sent_each_time(orchestrator, fake_runner) -> None:
    dispatcher = make_dispatcher()
    dispatcher.registry.register_handler("tmux-agent", lambda: session.build_handler(orchestrator))
    task = {"action": "sendCommand", "data": {"sessionName": "s", "windowIndex": 0, "command": "make"}}

    assert await dispatcher.run_agent("tmux-agent", task) == {"success": True}
    assert await dispatcher.run_agent("tmux-agent", task) == {"success": True}

    assert fake_runner.calls == [
        ["tmux", "send-keys", "-t", "s:0", "--", "make", "C-m"],
        ["tmux", "send-keys", "-t", "s:0", "--", "make", "C-m"],
    ]


@pytest.mark.anyio
async def test_session_agent_lists_live_sessions_every_time(orchestrator, fake_runner) -> None:
    dispatcher = make_dispatcher()
    dispatcher.registry.register_handler("tmux-agent", lambda: session.build_handler(orchestrator))
    fake_runner.respond("a:0:1\n")
    fake_runner.respond("a:0:1\nb:1:2\n")

    first = await dispatcher.run_agent("tmux-agent", {"action": "listSessions"})
    second = await dispatcher.run_agent("tmux-agent", {"action": "listSessions"})

    assert [s["name"] for s in first["sessions"]] == ["a"]
    assert [s["name"] for s in second["sessions"]] == ["a", "b"]


@pytest.mark.anyio
async def test_session_agent_run_ai_task(orchestrator, fake_runner) -> None:
    dispatcher = make_dispatcher()
    dispatcher.registry.register_handler("tmux-agent", lambda: session.build_handler(orchestrator))
    fake_runner.respond("")
    fake_runner.respond("42")

    result = await dispatcher.run_agent(
        "tmux-agent",
        {"action": "runAITask", "data": {"sessionName": "ai", "prompt": "answer?", "model": "claude"}},
    )

    assert result == {"output": "42"}
    assert fake_runner.calls[0][5] == "echo 'answer?' | claude"


@pytest.mark.anyio
async def test_session_agent_rejects_unknown_action(orchestrator) -> None:
    dispatcher = make_dispatcher()
    dispatcher.registry.register_handler("tmux-agent", lambda: session.build_handler(orchestrator))

    with pytest.raises(ValidationError) as excinfo:
        await dispatcher.run_agent("tmux-agent", {"action": "killServer"})
    assert "killServer" in excinfo.value.message


@pytest.mark.anyio
async def test_session_agent_rejects_negative_window(orchestrator, fake_runner) -> None:
    dispatcher = make_dispatcher()
    dispatcher.registry.register_handler("tmux-agent", lambda: session.build_handler(orchestrator))

    with pytest.raises(ValidationError):
        await dispatcher.run_agent(
            "tmux-agent",
            {"action": "sendCommand", "data": {"sessionName": "s", "windowIndex": -2, "command": "ls"}},
        )
    assert fake_runner.calls == []


@pytest.mark.anyio
async def test_echo_agent_returns_payload() -> None:
    dispatcher = make_dispatcher()
    dispatcher.registry.register_handler("echo-agent", lazy_loader("agentmux.agents.echo"))

    result = await dispatcher.run_agent("echo-agent", {"action": "run", "data": {"prompt": "hi"}})

    assert result == {"echo": {"prompt": "hi"}, "action": "run"}


@pytest.mark.anyio
async def test_claude_agent_sends_prompt_through_pool() -> None:
    messages = FakeMessages()
    pool = LLMPool()
    pool.register_client(claude.CLIENT_NAME, SimpleNamespace(messages=messages))
    dispatcher = make_dispatcher()
    dispatcher.registry.register_handler("claude-agent", lambda: claude.build_handler(pool))

    result = await dispatcher.run_agent(
        "claude-agent",
        {"action": "complete", "data": {"prompt": "Capital of France?", "temperature": 0.1, "maxTokens": 50}},
    )

    assert result == {
        "completion": "Paris",
        "model": claude.DEFAULT_MODEL,
        "usage": {"input_tokens": 12, "output_tokens": 3},
    }
    assert messages.calls == [
        {
            "model": claude.DEFAULT_MODEL,
            "max_tokens": 50,
            "temperature": 0.1,
            "messages": [{"role": "user", "content": "Capital of France?"}],
        }
    ]


@pytest.mark.anyio
async def test_claude_completion_is_served_from_cache() -> None:
    messages = FakeMessages()
    pool = LLMPool()
    pool.register_client(claude.CLIENT_NAME, SimpleNamespace(messages=messages))
    dispatcher = make_dispatcher()
    dispatcher.registry.register_handler("claude-agent", lambda: claude.build_handler(pool))
    task = {"action": "complete", "data": {"prompt": "Capital of France?"}}

    first = await dispatcher.run_agent("claude-agent", task)
    second = await dispatcher.run_agent("claude-agent", task)

    assert first == second
    assert len(messages.calls) == 1


@pytest.mark.anyio
async def test_claude_agent_without_credentials_fails() -> None:
    dispatcher = make_dispatcher()
    dispatcher.registry.register_handler("claude-agent", lambda: claude.build_handler(LLMPool()))

    with pytest.raises(AgentExecutionFailed) as excinfo:
        await dispatcher.run_agent("claude-agent", {"action": "complete", "data": {"prompt": "hi"}})
    assert isinstance(excinfo.value.__cause__, RuntimeError)


@pytest.mark.anyio
async def test_claude_agent_requires_prompt() -> None:
    dispatcher = make_dispatcher()
    dispatcher.registry.register_handler("claude-agent", lambda: claude.build_handler(LLMPool()))

    with pytest.raises(ValidationError):
        await dispatcher.run_agent("claude-agent", {"action": "complete", "data": {"prompt": ""}})


def github_dispatcher(handler) -> tuple:
    requests = []

    def respond(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return handler(request)

    dispatcher = make_dispatcher()
    dispatcher.registry.register_handler(
        "github-agent",
        lambda: github.build_handler(token="t0ken", transport=httpx.MockTransport(respond)),
    )
    return dispatcher, requests


@pytest.mark.anyio
async def test_github_agent_lists_issues() -> None:
    dispatcher, requests = github_dispatcher(
        lambda request: httpx.Response(200, json=[{"number": 1, "title": "Bug"}])
    )

    result = await dispatcher.run_agent(
        "github-agent", {"action": "listIssues", "data": {"owner": "octo", "repo": "hello"}}
    )

    assert result == {"issues": [{"number": 1, "title": "Bug"}]}
    assert requests[0].method == "GET"
    assert requests[0].url.path == "/repos/octo/hello/issues"
    assert requests[0].headers["Authorization"] == "Bearer t0ken"


@pytest.mark.anyio
async def test_github_agent_creates_comment() -> None:
    dispatcher, requests = github_dispatcher(lambda request: httpx.Response(201, json={"id": 7}))

    result = await dispatcher.run_agent(
        "github-agent",
        {
            "action": "createComment",
            "data": {"owner": "octo", "repo": "hello", "issueNumber": 4, "body": "LGTM"},
        },
    )

    assert result == {"comment": {"id": 7}, "success": True}
    assert requests[0].url.path == "/repos/octo/hello/issues/4/comments"
    assert json.loads(requests[0].content) == {"body": "LGTM"}


@pytest.mark.anyio
async def test_github_agent_http_error_is_wrapped() -> None:
    dispatcher, _ = github_dispatcher(lambda request: httpx.Response(404, json={"message": "Not Found"}))

    with pytest.raises(AgentExecutionFailed) as excinfo:
        await dispatcher.run_agent(
            "github-agent",
            {"action": "createIssue", "data": {"owner": "octo", "repo": "gone", "title": "x"}},
        )
    assert isinstance(excinfo.value.__cause__, httpx.HTTPStatusError)


@pytest.mark.anyio
async def test_github_agent_rejects_path_traversal_in_repo() -> None:
    dispatcher, requests = github_dispatcher(lambda request: httpx.Response(200, json=[]))

    with pytest.raises(ValidationError):
        await dispatcher.run_agent(
            "github-agent", {"action": "listIssues", "data": {"owner": "octo", "repo": "../../user"}}
        )
    assert requests == []


@pytest.mark.anyio
async def test_github_agent_without_token_fails() -> None:
    dispatcher = make_dispatcher()
    dispatcher.registry.register_handler("github-agent", lambda: github.build_handler(token=None))

    with pytest.raises(AgentExecutionFailed):
        await dispatcher.run_agent(
            "github-agent", {"action": "listIssues", "data": {"owner": "octo", "repo": "hello"}}
        )
